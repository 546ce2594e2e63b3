"""Parser for the travel plans spreadsheet export."""
import logging
import re
from typing import Dict, List, Optional, Tuple

from processor.models import TravelRecord

logger = logging.getLogger(__name__)

# Column layout of the published form responses sheet
CANONICAL_HEADER = (
    'Timestamp',
    'Email address',
    'Name',
    'Contact Number ',
    'Travel Date',
    'Departure time from the location ',
    'Place',
    'Flight/train number (optional)',
    'Column 9',
)

HEADER_ALIASES = {
    'timestamp': 'timestamp',
    'email address': 'email',
    'email': 'email',
    'name': 'name',
    'contact number': 'contact',
    'contact': 'contact',
    'travel date': 'travel_date',
    'departure time from the location': 'departure_time',
    'departure time': 'departure_time',
    'place': 'place',
    'flight/train number (optional)': 'flight_train_number',
    'flight/train number': 'flight_train_number',
}

REQUIRED_FIELDS = ('name', 'travel_date', 'place')

FLIGHT_COLUMN_MARKER = 'Flight/train number'

# The sheet export sometimes breaks the header row right before "Place"
WRAPPED_PLACE_PATTERN = re.compile(r',"\s*\n\s*Place"')
QUOTED_PLACE_PATTERN = re.compile(r'"\s*Place\s*"')
PLACE_FRAGMENT_PATTERN = re.compile(r'^\s*"?\s*Place\s*"?\s*(,|$)', re.IGNORECASE)


def split_fields(line: str, delimiter: str = ',') -> List[str]:
    """
    Split a delimited line into trimmed fields.

    Double quotes toggle a quoted segment in which the delimiter is
    literal. Quote characters are dropped; doubled quotes are not
    treated as escapes.

    Args:
        line: A single line of delimited text
        delimiter: Field separator character

    Returns:
        List of trimmed field values
    """
    fields = []
    current = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append(''.join(current).strip())
            current = []
        else:
            current.append(char)

    fields.append(''.join(current).strip())
    return fields


def normalize_header_name(header: str) -> str:
    return ' '.join(header.replace('"', '').split()).lower()


class FeedParser:
    """Turns raw sheet export text into normalized travel records."""

    def __init__(self, strict: bool = True, delimiter: str = ','):
        """
        Initialize the feed parser.

        Args:
            strict: Reject rows whose field count differs from the header.
                When False, rows with extra trailing fields are accepted
                and the extras ignored.
            delimiter: Field separator character
        """
        self.strict = strict
        self.delimiter = delimiter

    def parse(self, raw_text: Optional[str]) -> List[TravelRecord]:
        """
        Parse raw feed text into travel records, in feed order.

        Malformed rows are dropped. This method never raises for bad
        input; an unusable feed yields an empty list.

        Args:
            raw_text: Raw delimited text as published by the sheet

        Returns:
            List of TravelRecord objects
        """
        if not raw_text:
            return []

        text = WRAPPED_PLACE_PATTERN.sub(',"Place"', raw_text)
        lines = [line for line in text.splitlines() if line.strip()]

        if len(lines) < 2:
            logger.info("Feed has no data rows")
            return []

        headers, data_lines = self.resolve_header(lines)
        records = []

        for line_number, line in enumerate(data_lines, start=1):
            try:
                record = self._parse_row(headers, line)
                if record:
                    records.append(record)
            except Exception as e:
                logger.warning(f"Failed to parse feed row {line_number}: {e}")
                continue

        logger.info(
            f"Parsed {len(records)} travel records out of "
            f"{len(data_lines)} data rows"
        )
        return records

    def resolve_header(self, lines: List[str]) -> Tuple[List[str], List[str]]:
        """
        Pick the header columns and the data lines that follow them.

        The sheet export is known to wrap its header row before the
        "Place" column. When that happens the partial header is replaced
        with the fixed sheet layout, and a dangling "Place" fragment line
        is consumed as part of the header.

        Args:
            lines: Non-blank lines of the feed

        Returns:
            Tuple of (header names, data lines)
        """
        header_line = lines[0]
        rest = lines[1:]

        if FLIGHT_COLUMN_MARKER not in header_line:
            if rest and self._is_place_fragment(rest[0]):
                logger.info("Header row wrapped before Place column, using sheet layout")
                return list(CANONICAL_HEADER), rest[1:]

            if QUOTED_PLACE_PATTERN.search(header_line):
                logger.info("Header row is incomplete, using sheet layout")
                return list(CANONICAL_HEADER), rest

        return split_fields(header_line, self.delimiter), rest

    def _is_place_fragment(self, line: str) -> bool:
        return bool(PLACE_FRAGMENT_PATTERN.match(line))

    def _parse_row(self, headers: List[str], line: str) -> Optional[TravelRecord]:
        """
        Build a record from one data line.

        Args:
            headers: Header names in column order
            line: Data line

        Returns:
            TravelRecord or None if the row is rejected
        """
        values = split_fields(line, self.delimiter)

        if self.strict and len(values) != len(headers):
            logger.debug(
                f"Skipping row with {len(values)} fields, expected {len(headers)}"
            )
            return None
        if len(values) < len(headers):
            logger.debug(
                f"Skipping row with {len(values)} fields, expected at least {len(headers)}"
            )
            return None

        fields = self._map_fields(headers, values)

        missing = [name for name in REQUIRED_FIELDS if not fields.get(name)]
        if missing:
            logger.debug(f"Skipping row missing required fields: {', '.join(missing)}")
            return None

        return TravelRecord.create(
            name=fields['name'],
            travel_date=fields['travel_date'],
            place=fields['place'],
            timestamp=fields.get('timestamp', ''),
            email=fields.get('email', ''),
            contact=fields.get('contact', ''),
            departure_time=fields.get('departure_time', ''),
            flight_train_number=fields.get('flight_train_number', '')
        )

    def _map_fields(self, headers: List[str], values: List[str]) -> Dict[str, str]:
        """Map positional values onto record attributes, first non-empty variant wins."""
        fields: Dict[str, str] = {}
        for header, value in zip(headers, values):
            attribute = HEADER_ALIASES.get(normalize_header_name(header))
            if attribute and not fields.get(attribute):
                fields[attribute] = value
        return fields
