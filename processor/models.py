"""Data models for travel record processing."""
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from processor.errors import ValidationError


def generate_record_id(name: str, travel_date: str, place: str) -> str:
    """
    Generate a stable identifier for a travel record.

    Args:
        name: Traveler name
        travel_date: Travel date as it appears in the feed
        place: Destination

    Returns:
        SHA256 hex digest of name|travel_date|place
    """
    composite = f"{name.strip()}|{travel_date.strip()}|{place.strip()}"
    return hashlib.sha256(composite.encode('utf-8')).hexdigest()


def format_timestamp(epoch_seconds: Optional[float]) -> Optional[str]:
    """Render epoch seconds as an ISO 8601 UTC string."""
    if epoch_seconds is None:
        return None
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class TravelRecord:
    """Normalized travel plan from the feed."""
    id: str
    name: str
    travel_date: str
    place: str
    timestamp: str = ''
    email: str = ''
    contact: str = ''
    departure_time: str = ''
    flight_train_number: str = ''

    @classmethod
    def create(cls, name: str, travel_date: str, place: str, **fields) -> 'TravelRecord':
        """Build a record with a content-hash id."""
        return cls(
            id=generate_record_id(name, travel_date, place),
            name=name,
            travel_date=travel_date,
            place=place,
            **fields
        )

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'TravelRecord':
        """
        Build a record from its wire representation.

        Missing fields default to empty strings and a missing id is
        recomputed from name, travel date and place.
        """
        def value(key: str) -> str:
            raw = data.get(key)
            return str(raw).strip() if raw is not None else ''

        name = value('name')
        travel_date = value('travelDate')
        place = value('place')
        record_id = value('id') or generate_record_id(name, travel_date, place)

        return cls(
            id=record_id,
            name=name,
            travel_date=travel_date,
            place=place,
            timestamp=value('timestamp'),
            email=value('email'),
            contact=value('contact'),
            departure_time=value('departureTime'),
            flight_train_number=value('flightTrainNumber')
        )

    def to_dict(self) -> Dict[str, str]:
        """Render the record with the feed's camelCase field names."""
        return {
            'id': self.id,
            'timestamp': self.timestamp,
            'email': self.email,
            'name': self.name,
            'contact': self.contact,
            'travelDate': self.travel_date,
            'departureTime': self.departure_time,
            'place': self.place,
            'flightTrainNumber': self.flight_train_number
        }


@dataclass(frozen=True)
class MatchWindow:
    """Allowed departure time offset, in minutes, around a target time."""
    before_minutes: int
    after_minutes: int

    def __post_init__(self):
        if self.before_minutes < 0 or self.after_minutes < 0:
            raise ValidationError(
                f"Match window bounds must be non-negative, got "
                f"before={self.before_minutes} after={self.after_minutes}"
            )

    @classmethod
    def from_preset(cls, name: str) -> 'MatchWindow':
        """
        Look up a named window preset.

        Raises:
            ValidationError: If the preset name is unknown
        """
        try:
            return WINDOW_PRESETS[name.strip().lower()]
        except KeyError:
            raise ValidationError(
                f"Unknown match window preset '{name}'. "
                f"Expected one of: {', '.join(sorted(WINDOW_PRESETS))}"
            ) from None

    def to_dict(self) -> Dict[str, int]:
        return {'before': self.before_minutes, 'after': self.after_minutes}


WINDOW_PRESETS: Dict[str, MatchWindow] = {
    'tight': MatchWindow(before_minutes=30, after_minutes=30),
    '1h': MatchWindow(before_minutes=60, after_minutes=60),
    '2h': MatchWindow(before_minutes=120, after_minutes=120),
    'legacy': MatchWindow(before_minutes=120, after_minutes=60),
}


@dataclass
class RefreshResult:
    """Outcome of a single fetch-and-parse cycle."""
    records: Tuple[TravelRecord, ...]
    fingerprint: str
    fetched_at: float
    changed: bool


@dataclass
class RecordsSnapshot:
    """Current record set as served to callers."""
    records: List[TravelRecord]
    fetched_at: Optional[float]
    fingerprint: str

    def to_dict(self) -> dict:
        return {
            'data': [record.to_dict() for record in self.records],
            'count': len(self.records),
            'lastUpdated': format_timestamp(self.fetched_at),
            'dataHash': self.fingerprint
        }


@dataclass
class UpdateCheck:
    """Answer to a polling client asking whether its data is current."""
    has_changed: bool
    current_fingerprint: str
    record_count: int
    fetched_at: Optional[float]

    def to_dict(self) -> dict:
        return {
            'hasUpdates': self.has_changed,
            'currentHash': self.current_fingerprint,
            'count': self.record_count,
            'lastUpdated': format_timestamp(self.fetched_at)
        }


@dataclass
class PartnerMatch:
    """Compatible partners found for one traveler."""
    target: TravelRecord
    partners: List[TravelRecord]
    window: MatchWindow
    time_differences: List[Optional[int]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.partners)

    def to_dict(self) -> dict:
        differences = self.time_differences or [None] * len(self.partners)
        return {
            'partners': [
                {**partner.to_dict(), 'timeDifferenceMinutes': difference}
                for partner, difference in zip(self.partners, differences)
            ],
            'count': self.count,
            'window': self.window.to_dict()
        }


@dataclass
class SyncResult:
    """Result of sync operation."""
    added: int
    updated: int
    deleted: int
    errors: List[str] = field(default_factory=list)
