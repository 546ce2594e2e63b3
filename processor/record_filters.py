"""Search and filtering helpers over travel records."""
from typing import Dict, Iterable, List, Optional

from processor.models import TravelRecord


def dedupe_records(records: Iterable[TravelRecord]) -> List[TravelRecord]:
    """Drop repeated (name, travel date, place) entries, keeping the first."""
    seen = set()
    unique = []
    for record in records:
        key = (record.name, record.travel_date, record.place)
        if key not in seen:
            seen.add(key)
            unique.append(record)
    return unique


def matches_search(record: TravelRecord, search: str) -> bool:
    """Case-insensitive substring match over name, place, contact and flight/train number."""
    needle = search.strip().lower()
    if not needle:
        return True
    haystacks = (
        record.name,
        record.place,
        record.contact,
        record.flight_train_number,
    )
    return any(needle in value.lower() for value in haystacks)


def filter_records(
    records: Iterable[TravelRecord],
    search: Optional[str] = None,
    date: Optional[str] = None,
    destination: Optional[str] = None
) -> List[TravelRecord]:
    """
    Apply the table filters.

    Args:
        records: Records to filter
        search: Free-text search term
        date: Exact travel date
        destination: Exact destination

    Returns:
        Matching records in their original order
    """
    filtered = list(records)

    if search and search.strip():
        filtered = [record for record in filtered if matches_search(record, search)]

    if date and date.strip():
        filtered = [record for record in filtered if record.travel_date == date.strip()]

    if destination and destination.strip():
        filtered = [record for record in filtered if record.place == destination.strip()]

    return filtered


def filter_options(records: Iterable[TravelRecord]) -> Dict[str, List[str]]:
    """Distinct travel dates and destinations, in first-seen order."""
    dates: Dict[str, None] = {}
    destinations: Dict[str, None] = {}
    for record in records:
        dates.setdefault(record.travel_date)
        destinations.setdefault(record.place)
    return {
        'dates': list(dates),
        'destinations': list(destinations)
    }
