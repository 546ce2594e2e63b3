"""Partner matching for travel records."""
import logging
import re
from typing import Iterable, List, Optional

from processor.errors import TimeParseError, ValidationError
from processor.models import MatchWindow, TravelRecord

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3

FLEXIBLE_TIME_SENTINELS = ('N/A', 'Not specified')

TIME_PATTERN = re.compile(r'^([0-9]{1,2}):([0-9]{2})(?::([0-9]{2}))?$')


def is_flexible_time(value: Optional[str]) -> bool:
    """Return True if the departure time means "no fixed time"."""
    if value is None:
        return True
    stripped = value.strip()
    return not stripped or stripped in FLEXIBLE_TIME_SENTINELS


def parse_departure_minutes(value: str) -> int:
    """
    Parse an HH:MM[:SS] departure time into minutes since midnight.

    Seconds are validated but do not contribute to the result.

    Args:
        value: Departure time string

    Returns:
        Minutes since midnight

    Raises:
        TimeParseError: If the value is not a well-formed time of day
    """
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise TimeParseError(f"Invalid departure time: {value!r}")

    hours = int(match.group(1))
    minutes = int(match.group(2))
    seconds = int(match.group(3) or 0)

    if hours > 23 or minutes > 59 or seconds > 59:
        raise TimeParseError(f"Departure time out of range: {value!r}")

    return hours * 60 + minutes


def time_difference_minutes(target_time: Optional[str], candidate_time: Optional[str]) -> Optional[int]:
    """
    Minutes from the target departure to the candidate departure.

    Returns:
        Signed difference, or None if either time is flexible or invalid
    """
    if is_flexible_time(target_time) or is_flexible_time(candidate_time):
        return None
    try:
        return parse_departure_minutes(candidate_time) - parse_departure_minutes(target_time)
    except TimeParseError:
        return None


def is_time_compatible(target_time: Optional[str], candidate_time: Optional[str], window: MatchWindow) -> bool:
    """
    Check whether two departure times fall within the match window.

    A flexible time on either side matches anything. When both are
    fixed, the candidate must depart no more than window.before_minutes
    earlier and no more than window.after_minutes later than the target.

    Raises:
        TimeParseError: If either fixed time is malformed
    """
    if is_flexible_time(target_time) or is_flexible_time(candidate_time):
        return True

    diff = parse_departure_minutes(candidate_time) - parse_departure_minutes(target_time)
    return -window.before_minutes <= diff <= window.after_minutes


def normalize_place(place: str) -> str:
    return place.strip().lower()


def is_compatible(target: TravelRecord, candidate: TravelRecord, window: MatchWindow) -> bool:
    """Apply the full matching predicate to a single candidate."""
    if candidate.id == target.id:
        return False
    if normalize_place(candidate.place) != normalize_place(target.place):
        return False
    if candidate.travel_date != target.travel_date:
        return False

    try:
        return is_time_compatible(target.departure_time, candidate.departure_time, window)
    except TimeParseError as e:
        logger.debug(f"Treating candidate {candidate.id} as incompatible: {e}")
        return False


def find_partners(
    target: TravelRecord,
    pool: Iterable[TravelRecord],
    window: MatchWindow,
    limit: int = DEFAULT_LIMIT
) -> List[TravelRecord]:
    """
    Find travelers compatible with the target.

    Args:
        target: Traveler looking for partners
        pool: Candidate records, in feed order
        window: Allowed departure time offset
        limit: Maximum number of partners to return

    Returns:
        Compatible records in pool order, at most limit entries
    """
    if limit < 0:
        raise ValidationError(f"Partner limit must be non-negative, got {limit}")

    partners = []
    if limit == 0:
        return partners

    for candidate in pool:
        if is_compatible(target, candidate, window):
            partners.append(candidate)
            if len(partners) >= limit:
                break

    return partners
