"""Shared fixtures for travel data tests."""
from dataclasses import replace

import pytest

from processor.models import TravelRecord


SHEET_HEADER = (
    'Timestamp,Email address,Name,Contact Number ,Travel Date,'
    'Departure time from the location ,Place,Flight/train number (optional),Column 9'
)

SAMPLE_ROWS = [
    '1/10/2024 9:15:02,asha@example.com,Asha Rao,9876543210,2024-01-15,10:00:00,Airport,6E 2131,',
    '1/10/2024 9:20:11,ben@example.com,Ben Thomas,9123456780,2024-01-15,10:20:00,airport ,,',
    '1/10/2024 10:02:45,chitra@example.com,Chitra Iyer,9000000001,2024-01-15,,Airport,"AI 101, Gate 3",',
    '1/11/2024 8:00:00,dev@example.com,Dev Mehta,9000000002,2024-01-16,11:00:00,Railway Station,12627,',
    '1/11/2024 8:05:00,,,9000000003,2024-01-16,11:00:00,Railway Station,,',
    'broken,row',
    '1/12/2024 7:00:00,esha@example.com,Esha Paul,9000000004,2024-01-15,13:30:00,Airport,,',
]


@pytest.fixture
def sample_feed():
    """Raw sheet export with five admissible rows and two rejected ones."""
    return '\n'.join([SHEET_HEADER] + SAMPLE_ROWS) + '\n'


@pytest.fixture
def make_record():
    """Factory for travel records with sensible defaults."""
    def _make_record(name='Asha Rao', departure_time='10:00', place='Airport',
                     travel_date='2024-01-15', record_id=None, **fields):
        record = TravelRecord.create(
            name=name,
            travel_date=travel_date,
            place=place,
            departure_time=departure_time,
            **fields
        )
        if record_id is not None:
            return replace(record, id=record_id)
        return record
    return _make_record


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeFeed:
    """Feed collaborator returning queued payloads or raising queued errors."""

    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        payload = self.payloads[0] if len(self.payloads) == 1 else self.payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return payload


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_feed_class():
    return FakeFeed
