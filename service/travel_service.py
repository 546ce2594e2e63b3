"""Core travel data operations: record listing, update polling, partner search."""
import logging
import time
from typing import Callable, Dict, Optional, Tuple, Union

from processor.errors import NetworkError, RecordNotFoundError, ValidationError
from processor.models import (
    MatchWindow,
    PartnerMatch,
    RecordsSnapshot,
    RefreshResult,
    TravelRecord,
    UpdateCheck,
    WINDOW_PRESETS,
    format_timestamp,
)
from processor.partner_matcher import DEFAULT_LIMIT, find_partners, time_difference_minutes
from processor.record_filters import dedupe_records, filter_options, filter_records
from storage.record_cache import RecordCache

logger = logging.getLogger(__name__)

WindowSpec = Union[MatchWindow, str, Dict[str, int], None]


def resolve_window(window: WindowSpec, default: MatchWindow) -> MatchWindow:
    """
    Turn a caller-supplied window into a MatchWindow.

    Accepts a MatchWindow, a preset name, or a {"before": .., "after": ..}
    mapping. Missing bounds in a mapping fall back to the default.

    Raises:
        ValidationError: If the window cannot be interpreted
    """
    if window is None:
        return default
    if isinstance(window, MatchWindow):
        return window
    if isinstance(window, str):
        return MatchWindow.from_preset(window)
    if isinstance(window, dict):
        if 'preset' in window:
            return MatchWindow.from_preset(str(window['preset']))
        try:
            return MatchWindow(
                before_minutes=int(window.get('before', default.before_minutes)),
                after_minutes=int(window.get('after', default.after_minutes))
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid match window: {e}") from e
    raise ValidationError(f"Invalid match window: {window!r}")


class TravelService:
    """Serves travel records and partner matches from a refreshing cache."""

    def __init__(
        self,
        cache: RecordCache,
        repository=None,
        default_window: MatchWindow = WINDOW_PRESETS['tight'],
        partner_limit: int = DEFAULT_LIMIT,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the travel service.

        Args:
            cache: Record cache wrapping the feed
            repository: Optional durable store with load_all() and replace_all()
            default_window: Match window used when a search names none
            partner_limit: Default maximum number of partners per search
            clock: Returns the current time in epoch seconds
        """
        self.cache = cache
        self.repository = repository
        self.default_window = default_window
        self.partner_limit = partner_limit
        self.clock = clock
        self.persisted_fingerprint: Optional[str] = None

    def warm_start(self) -> int:
        """
        Seed the cache from the durable store.

        Returns:
            Number of records loaded
        """
        if self.repository is None:
            return 0
        records = self.repository.load_all()
        if records:
            self.cache.seed(records)
            self.persisted_fingerprint = self.cache.current()[1]
        return len(records)

    def get_records(
        self,
        search: Optional[str] = None,
        date: Optional[str] = None,
        destination: Optional[str] = None,
        unique: bool = False
    ) -> RecordsSnapshot:
        """
        Return the current record set, refreshing it if stale.

        Raises:
            NetworkError: If a refresh is due and the feed cannot be fetched
        """
        records = self._refresh_if_stale()
        if unique:
            records = dedupe_records(records)
        records = filter_records(records, search=search, date=date, destination=destination)

        return RecordsSnapshot(
            records=records,
            fetched_at=self.cache.fetched_at,
            fingerprint=self.cache.fingerprint
        )

    def check_for_updates(self, caller_fingerprint: Optional[str]) -> UpdateCheck:
        """
        Tell a polling client whether its copy of the data is outdated.

        A failed refresh is tolerated while cached data exists.

        Raises:
            NetworkError: If the feed has never been fetched successfully
        """
        self._records_tolerating_failure()

        return UpdateCheck(
            has_changed=(caller_fingerprint or '') != self.cache.fingerprint,
            current_fingerprint=self.cache.fingerprint,
            record_count=len(self.cache.records),
            fetched_at=self.cache.fetched_at
        )

    def find_partners(
        self,
        target_id: Optional[str] = None,
        target: Optional[Union[TravelRecord, Dict[str, str]]] = None,
        window: WindowSpec = None,
        limit: Optional[int] = None
    ) -> PartnerMatch:
        """
        Find compatible travel partners for a record or an ad-hoc traveler.

        Args:
            target_id: Id of a record in the current set
            target: Traveler fields (travelDate and place required)
            window: MatchWindow, preset name or {"before", "after"} mapping
            limit: Maximum number of partners (default: service limit)

        Raises:
            ValidationError: If the target is missing required fields
            RecordNotFoundError: If target_id is not in the current set
        """
        match_window = resolve_window(window, self.default_window)
        limit = self.partner_limit if limit is None else limit
        if limit < 0:
            raise ValidationError(f"Partner limit must be non-negative, got {limit}")

        if target is not None:
            target_record = self._validate_target(target)
            pool = self._records_tolerating_failure()
        elif target_id:
            pool = self._records_tolerating_failure()
            target_record = next((r for r in pool if r.id == target_id), None)
            if target_record is None:
                raise RecordNotFoundError(f"No travel record with id {target_id}")
        else:
            raise ValidationError("Either a target record or a target id is required")

        partners = find_partners(target_record, pool, match_window, limit=limit)
        logger.info(
            f"Found {len(partners)} partners for {target_record.id}",
            extra={'window': match_window.to_dict()}
        )
        return PartnerMatch(
            target=target_record,
            partners=partners,
            window=match_window,
            time_differences=[
                time_difference_minutes(target_record.departure_time, partner.departure_time)
                for partner in partners
            ]
        )

    def sync(self, force: bool = True) -> RefreshResult:
        """
        Refresh from the feed and persist the record set if the durable
        store does not hold it yet. A failed write is retried on the next sync.

        Raises:
            NetworkError: If the feed cannot be fetched
        """
        if force or self.cache.is_stale():
            result = self.cache.refresh()
        else:
            records, fingerprint = self.cache.current()
            result = RefreshResult(
                records=records,
                fingerprint=fingerprint,
                fetched_at=self.cache.fetched_at,
                changed=False
            )

        self._persist_if_needed()
        return result

    def filter_options(self) -> Dict[str, list]:
        """Distinct travel dates and destinations for the current records."""
        return filter_options(self._records_tolerating_failure())

    def health(self) -> dict:
        return {
            'success': True,
            'message': 'CabMate Finder API is running',
            'timestamp': format_timestamp(self.clock()),
            'dataCount': len(self.cache.records),
            'lastUpdated': format_timestamp(self.cache.fetched_at)
        }

    def _validate_target(self, target: Union[TravelRecord, Dict[str, str]]) -> TravelRecord:
        if not isinstance(target, TravelRecord):
            target = TravelRecord.from_dict(target)

        missing = [
            label for label, value in (('travelDate', target.travel_date), ('place', target.place))
            if not value.strip()
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        return target

    def _refresh_if_stale(self) -> Tuple[TravelRecord, ...]:
        records = self.cache.get_or_refresh()
        self._persist_if_needed()
        return records

    def _records_tolerating_failure(self) -> Tuple[TravelRecord, ...]:
        try:
            return self._refresh_if_stale()
        except NetworkError as e:
            if self.cache.fetched_at is None and not self.cache.records:
                raise
            logger.warning(
                f"Serving {len(self.cache.records)} cached records after failed refresh: {e}"
            )
            return self.cache.records

    def _persist_if_needed(self) -> None:
        """Write the cached records to the durable store until a write succeeds."""
        if self.repository is None:
            return
        records, fingerprint = self.cache.current()
        if fingerprint == self.persisted_fingerprint:
            return

        try:
            result = self.repository.replace_all(records)
        except Exception as e:
            logger.error(
                f"Failed to persist travel records: {str(e)}",
                extra={'error_type': type(e).__name__}
            )
            return

        if result.errors:
            for error in result.errors:
                logger.error(f"Failed to persist travel records: {error}")
            return
        self.persisted_fingerprint = fingerprint
