"""Exception types for travel data processing."""


class TravelDataError(Exception):
    """Base class for all travel data errors."""


class NetworkError(TravelDataError):
    """Raised when the upstream feed is unreachable or returns a non-success status."""


class ValidationError(TravelDataError):
    """Raised when a partner search request is missing required fields."""


class RecordNotFoundError(ValidationError):
    """Raised when a partner search names a record id that is not in the cache."""


class TimeParseError(TravelDataError, ValueError):
    """Raised when a departure time is not a well-formed HH:MM[:SS] value."""
