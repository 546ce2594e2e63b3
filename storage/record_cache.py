"""In-memory cache of the latest normalized travel records."""
import hashlib
import json
import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable, Iterable, Optional, Sequence, Tuple

from processor.feed_parser import FeedParser
from processor.models import RefreshResult, TravelRecord

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_SECONDS = 30


def compute_fingerprint(records: Sequence[TravelRecord]) -> str:
    """
    Hash the normalized record set.

    Hashing records rather than the raw payload keeps the fingerprint
    stable when the export changes only in formatting.
    """
    payload = json.dumps(
        [record.to_dict() for record in records],
        sort_keys=True,
        separators=(',', ':')
    )
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


class RecordCache:
    """
    Holds the current record set, its fingerprint and last fetch time.

    Only one fetch-and-parse cycle runs at a time. Callers arriving while
    a refresh is in flight wait for it and share its result or error.
    """

    def __init__(
        self,
        fetch_raw: Callable[[], str],
        parser: Optional[FeedParser] = None,
        freshness_seconds: float = DEFAULT_FRESHNESS_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the record cache.

        Args:
            fetch_raw: Returns the raw feed text; raises NetworkError on failure
            parser: Feed parser (default: strict FeedParser)
            freshness_seconds: Age after which cached records are refetched
            clock: Returns the current time in epoch seconds
        """
        self.fetch_raw = fetch_raw
        self.parser = parser or FeedParser()
        self.freshness_seconds = freshness_seconds
        self.clock = clock

        self.records: Tuple[TravelRecord, ...] = ()
        self.fingerprint = ''
        self.fetched_at: Optional[float] = None

        self._lock = threading.Lock()
        self._in_flight: Optional[Future] = None

    def is_stale(self) -> bool:
        """Return True if the cache should be refreshed before serving."""
        if self.fetched_at is None or not self.records:
            return True
        return self.clock() - self.fetched_at > self.freshness_seconds

    def get_or_refresh(self, force: bool = False) -> Tuple[TravelRecord, ...]:
        """
        Return cached records, refreshing first if stale or forced.

        Raises:
            NetworkError: If a required refresh fails
        """
        if force or self.is_stale():
            return self.refresh().records
        return self.records

    def current(self) -> Tuple[Tuple[TravelRecord, ...], str]:
        """Return the cached records together with their fingerprint."""
        with self._lock:
            return self.records, self.fingerprint

    def refresh(self) -> RefreshResult:
        """
        Fetch, parse and fingerprint the feed.

        The record tuple is replaced only when the fingerprint changes;
        the fetch time is updated on every successful fetch. A failed
        fetch leaves the cache untouched.

        Raises:
            NetworkError: If the feed cannot be fetched
        """
        with self._lock:
            in_flight = self._in_flight
            if in_flight is None:
                in_flight = Future()
                self._in_flight = in_flight
                leader = True
            else:
                leader = False

        if not leader:
            logger.debug("Waiting for in-flight refresh")
            return in_flight.result()

        try:
            result = self._run_refresh()
        except BaseException as e:
            in_flight.set_exception(e)
            raise
        else:
            in_flight.set_result(result)
            return result
        finally:
            with self._lock:
                self._in_flight = None

    def _run_refresh(self) -> RefreshResult:
        raw_text = self.fetch_raw()
        records = tuple(self.parser.parse(raw_text))
        fingerprint = compute_fingerprint(records)
        fetched_at = self.clock()

        with self._lock:
            changed = fingerprint != self.fingerprint
            if changed:
                logger.info(
                    f"Travel data updated: {len(records)} records "
                    f"(was {len(self.records)})"
                )
                self.records = records
                self.fingerprint = fingerprint
            else:
                logger.info(f"Travel data unchanged ({len(self.records)} records)")
            self.fetched_at = fetched_at

            return RefreshResult(
                records=self.records,
                fingerprint=self.fingerprint,
                fetched_at=fetched_at,
                changed=changed
            )

    def seed(self, records: Iterable[TravelRecord]) -> None:
        """
        Load previously persisted records without marking them fresh.

        Seeded records are served only when a refresh fails.
        """
        records = tuple(records)
        with self._lock:
            self.records = records
            self.fingerprint = compute_fingerprint(records)
        logger.info(f"Seeded cache with {len(records)} persisted records")
