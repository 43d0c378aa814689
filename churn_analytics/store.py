"""
Canonical record store.

Owns the deduplicated record set and the upload history. The set is only
ever appended to (a committed batch) or emptied (``clear``); readers get
tuple snapshots, so they observe either the whole old set or the whole new
superset. Persistence is an injected strategy and never blocks the
in-memory state: load failures start the store empty, save failures leave
memory authoritative for the session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from churn_analytics.config import PREVIEW_SAMPLE_SIZE
from churn_analytics.deduplication import UploadOutcome, partition_batch
from churn_analytics.logger import debug_watcher, get_logger
from churn_analytics.persistence import PersistenceError, UploadHistoryEntry

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from churn_analytics.normalization import ChurnRecord
    from churn_analytics.persistence import Persistence

logger = get_logger(__name__)


class StaleUploadError(RuntimeError):
    """A preview was committed after the canonical set had changed."""


@dataclass(frozen=True)
class MergeEvent:
    """One event per committed merge: rows in, records out."""

    timestamp: str
    rows_in: int
    new_records: int
    duplicates: int
    errors: int
    total_records: int


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChurnStore:
    """
    Explicit owner of the canonical churn record set.

    Typical flow::

        store = ChurnStore(DuckDBPersistence())
        store.load()
        outcome = store.preview(rows)
        if not outcome.requires_confirmation or user_confirms(outcome):
            store.commit(outcome)
    """

    def __init__(
        self,
        persistence: Persistence | None = None,
        on_merge: Callable[[MergeEvent], Any] | None = None,
        sample_size: int = PREVIEW_SAMPLE_SIZE,
    ):
        self.persistence = persistence
        self.on_merge = on_merge
        self.sample_size = sample_size
        self.last_error: PersistenceError | None = None
        self._records: tuple[ChurnRecord, ...] = ()
        self._history: tuple[UploadHistoryEntry, ...] = ()
        self._ids: frozenset[str] = frozenset()
        self._version = 0

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        """Incremented on every mutation of the record set."""
        return self._version

    @property
    def history(self) -> tuple[UploadHistoryEntry, ...]:
        return self._history

    def current_records(self) -> tuple[ChurnRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, stripe_user_id: object) -> bool:
        return stripe_user_id in self._ids

    @property
    def last_upload(self) -> str | None:
        return self._history[-1].timestamp if self._history else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @debug_watcher
    def load(self) -> None:
        """Load records and history from persistence; start empty on failure."""
        if self.persistence is None:
            return

        try:
            records, history = self.persistence.load()
        except PersistenceError as exc:
            logger.error(f"Could not load stored churn data, starting empty: {exc}")
            self.last_error = exc
            records, history = [], []

        # Persisted data is trusted for types but not for uniqueness
        unique: dict[str, ChurnRecord] = {}
        for record in records:
            unique.setdefault(record.stripe_user_id, record)
        if len(unique) != len(records):
            logger.warning(f"Dropped {len(records) - len(unique)} duplicate stored records")

        self._set_state(tuple(unique.values()), tuple(history))
        logger.info(f"Loaded {len(self._records)} records, {len(self._history)} uploads")

    def preview(self, rows: Iterable[Mapping[str, Any]]) -> UploadOutcome:
        """Partition rows against a snapshot of the current identifiers."""
        return partition_batch(
            self._ids,
            rows,
            snapshot_version=self._version,
            sample_size=self.sample_size,
        )

    @debug_watcher
    def commit(self, outcome: UploadOutcome) -> UploadOutcome:
        """
        Append the new records of a previewed batch.

        Raises:
            StaleUploadError: If the set changed since ``outcome`` was computed.
        """
        if outcome.snapshot_version != self._version:
            raise StaleUploadError(
                f"Upload preview is from version {outcome.snapshot_version}, "
                f"store is at version {self._version}; preview again"
            )

        records = self._records + tuple(outcome.new_records)
        entry = UploadHistoryEntry(
            timestamp=_now_iso(),
            records_added=outcome.new_count,
            duplicates_skipped=outcome.duplicate_count,
            total_records=len(records),
        )
        self._set_state(records, self._history + (entry,))
        self._save()
        self._emit(outcome, entry)
        return outcome

    def merge(self, rows: Iterable[Mapping[str, Any]]) -> UploadOutcome:
        """Preview and commit in one step, without confirmation."""
        return self.commit(self.preview(rows))

    def ingest(
        self,
        rows: Iterable[Mapping[str, Any]],
        confirm: Callable[[UploadOutcome], bool] | None = None,
    ) -> tuple[UploadOutcome, bool]:
        """
        Preview rows and commit when allowed.

        A batch without duplicates is committed immediately. A batch with
        duplicates is committed only if ``confirm(outcome)`` returns True.

        Returns:
            (outcome, committed)
        """
        outcome = self.preview(rows)
        if outcome.requires_confirmation and (confirm is None or not confirm(outcome)):
            logger.info(
                f"Upload held for review: {outcome.new_count} new, "
                f"{outcome.duplicate_count} duplicates, {outcome.error_count} errors"
            )
            return outcome, False
        self.commit(outcome)
        return outcome, True

    @debug_watcher
    def clear(self) -> None:
        """Remove every record and the upload history."""
        self._set_state((), ())
        self._save()
        logger.info("Cleared all churn data")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_state(
        self,
        records: tuple[ChurnRecord, ...],
        history: tuple[UploadHistoryEntry, ...],
    ) -> None:
        self._records = records
        self._history = history
        self._ids = frozenset(r.stripe_user_id for r in records)
        self._version += 1

    def _save(self) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.save(self._records, self._history)
            self.last_error = None
        except PersistenceError as exc:
            logger.error(f"Could not save churn data; keeping in-memory state: {exc}")
            self.last_error = exc

    def _emit(self, outcome: UploadOutcome, entry: UploadHistoryEntry) -> None:
        event = MergeEvent(
            timestamp=entry.timestamp,
            rows_in=outcome.total_rows,
            new_records=outcome.new_count,
            duplicates=outcome.duplicate_count,
            errors=outcome.error_count,
            total_records=entry.total_records,
        )
        logger.info(
            f"Merged upload: {event.rows_in} rows in, {event.new_records} new, "
            f"{event.duplicates} duplicates, {event.errors} errors, {event.total_records} total"
        )
        if self.on_merge is not None:
            self.on_merge(event)
