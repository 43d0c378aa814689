"""
Deduplication of uploaded rows against the canonical record set.

Duplicates are identified purely by ``stripe_user_id``. A duplicate row is
always dropped; it never updates the record already held.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from churn_analytics.config import PREVIEW_SAMPLE_SIZE
from churn_analytics.normalization import ChurnRecord, RowParseError, normalize_row

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


@dataclass(frozen=True)
class MalformedRow:
    """A row rejected by the normalizer, kept for the upload summary."""

    row_number: int
    reason: str
    row: dict[str, Any]


@dataclass
class UploadOutcome:
    """
    Result of partitioning one upload batch.

    ``snapshot_version`` is the store version the partition was computed
    against; committing against any other version is refused.
    """

    new_records: list[ChurnRecord] = field(default_factory=list)
    duplicates: list[ChurnRecord] = field(default_factory=list)
    malformed: list[MalformedRow] = field(default_factory=list)
    error_count: int = 0
    snapshot_version: int = 0
    sample_size: int = PREVIEW_SAMPLE_SIZE

    @property
    def new_count(self) -> int:
        return len(self.new_records)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)

    @property
    def total_rows(self) -> int:
        return self.new_count + self.duplicate_count + self.error_count

    @property
    def requires_confirmation(self) -> bool:
        return self.duplicate_count > 0

    @property
    def sample_new_records(self) -> list[ChurnRecord]:
        return self.new_records[: self.sample_size]

    @property
    def sample_duplicates(self) -> list[ChurnRecord]:
        return self.duplicates[: self.sample_size]

    @property
    def sample_errors(self) -> list[MalformedRow]:
        return self.malformed[: self.sample_size]

    def summary(self) -> dict[str, int]:
        return {
            "new_records": self.new_count,
            "duplicates": self.duplicate_count,
            "errors": self.error_count,
        }


def partition_batch(
    existing_ids: Iterable[str],
    rows: Iterable[Mapping[str, Any]],
    *,
    snapshot_version: int = 0,
    sample_size: int = PREVIEW_SAMPLE_SIZE,
) -> UploadOutcome:
    """
    Normalize rows and split them into new records and duplicates.

    One pass in input order: the first occurrence of an identifier not yet
    seen is new, every later occurrence is a duplicate, including a repeat
    inside the same batch.

    Args:
        existing_ids: Identifiers already in the canonical set. Copied before
            use, so the caller's collection is never modified.
        rows: Raw CSV rows.
        snapshot_version: Store version ``existing_ids`` was taken from.
        sample_size: Number of malformed rows kept for review.

    Returns:
        UploadOutcome with both partitions in input order.
    """
    seen = set(existing_ids)
    outcome = UploadOutcome(snapshot_version=snapshot_version, sample_size=sample_size)

    for row_number, row in enumerate(rows, start=1):
        try:
            record = normalize_row(row)
        except RowParseError as exc:
            outcome.error_count += 1
            if len(outcome.malformed) < sample_size:
                outcome.malformed.append(MalformedRow(row_number=row_number, reason=str(exc), row=dict(row)))
            continue

        if record.stripe_user_id in seen:
            outcome.duplicates.append(record)
        else:
            seen.add(record.stripe_user_id)
            outcome.new_records.append(record)

    return outcome
