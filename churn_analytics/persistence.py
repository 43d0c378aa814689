"""
Persistence strategies for the canonical record set and upload history.

A strategy exposes ``load() -> (records, history)`` and
``save(records, history)``. The store calls ``load`` once at startup and
``save`` after every merge or clear; it does not care where the data lives.
Backend failures surface as ``PersistenceError``.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import duckdb
import pandas as pd

from churn_analytics.config import STORE_PATH
from churn_analytics.logger import get_logger
from churn_analytics.normalization import CANONICAL_COLUMNS, frame_to_records

if TYPE_CHECKING:
    from collections.abc import Sequence

    from churn_analytics.normalization import ChurnRecord

logger = get_logger(__name__)


class PersistenceError(RuntimeError):
    """Loading from or saving to a durable store failed."""


@dataclass(frozen=True)
class UploadHistoryEntry:
    timestamp: str
    records_added: int
    duplicates_skipped: int
    total_records: int


class Persistence(Protocol):
    def load(self) -> tuple[list[ChurnRecord], list[UploadHistoryEntry]]: ...

    def save(self, records: Sequence[ChurnRecord], history: Sequence[UploadHistoryEntry]) -> None: ...


def _history_from_dicts(rows: list[dict[str, Any]]) -> list[UploadHistoryEntry]:
    return [
        UploadHistoryEntry(
            timestamp=str(row["timestamp"]),
            records_added=int(row["records_added"]),
            duplicates_skipped=int(row["duplicates_skipped"]),
            total_records=int(row["total_records"]),
        )
        for row in rows
    ]


class DuckDBPersistence:
    """
    Stores records and history in a DuckDB database file.

    ``churn_data`` keeps one row per Stripe user ID (primary key) plus a
    ``position`` column so the canonical order survives a round trip.
    Each save rewrites both tables inside a single transaction.
    """

    def __init__(self, db_path: str | Path | None = None):
        """
        Args:
            db_path: Path to the database file, or ":memory:".
                If None, uses the configured STORE_PATH.
        """
        if db_path is None:
            db_path = STORE_PATH

        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.con = duckdb.connect(self.db_path)
            self._ensure_schema()
        except duckdb.Error as exc:
            raise PersistenceError(f"Failed to open store {self.db_path}: {exc}") from exc

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        self.con.execute("""
            CREATE TABLE IF NOT EXISTS churn_data (
                position INTEGER,
                email VARCHAR,
                stripe_user_id VARCHAR PRIMARY KEY,
                plans VARCHAR,
                activity VARCHAR,
                mrr_cancelled DOUBLE,
                cancellation_date VARCHAR,
                sign_up_date VARCHAR,
                seats INTEGER,
                months_subscribed INTEGER,
                country VARCHAR,
                crm VARCHAR
            )
        """)
        self.con.execute("""
            CREATE TABLE IF NOT EXISTS upload_history (
                position INTEGER,
                timestamp VARCHAR,
                records_added INTEGER,
                duplicates_skipped INTEGER,
                total_records INTEGER
            )
        """)

    def load(self) -> tuple[list[ChurnRecord], list[UploadHistoryEntry]]:
        try:
            columns = ", ".join(CANONICAL_COLUMNS)
            records_df = self.con.execute(
                f"SELECT {columns} FROM churn_data ORDER BY position"
            ).df()
            history_rows = self.con.execute("""
                SELECT timestamp, records_added, duplicates_skipped, total_records
                FROM upload_history
                ORDER BY position
            """).df().to_dict(orient="records")
        except duckdb.Error as exc:
            raise PersistenceError(f"Failed to load from {self.db_path}: {exc}") from exc

        return frame_to_records(records_df), _history_from_dicts(history_rows)

    def save(self, records: Sequence[ChurnRecord], history: Sequence[UploadHistoryEntry]) -> None:
        records_df = pd.DataFrame([asdict(r) for r in records], columns=CANONICAL_COLUMNS)
        records_df.insert(0, "position", range(len(records_df)))
        history_df = pd.DataFrame(
            [asdict(h) for h in history],
            columns=["timestamp", "records_added", "duplicates_skipped", "total_records"],
        )
        history_df.insert(0, "position", range(len(history_df)))

        try:
            self.con.execute("BEGIN TRANSACTION")
            self.con.execute("DELETE FROM churn_data")
            self.con.execute("DELETE FROM upload_history")
            if not records_df.empty:
                self.con.register("incoming_records", records_df)
                self.con.execute("INSERT INTO churn_data SELECT * FROM incoming_records")
                self.con.unregister("incoming_records")
            if not history_df.empty:
                self.con.register("incoming_history", history_df)
                self.con.execute("INSERT INTO upload_history SELECT * FROM incoming_history")
                self.con.unregister("incoming_history")
            self.con.execute("COMMIT")
        except duckdb.Error as exc:
            try:
                self.con.execute("ROLLBACK")
            except duckdb.Error:
                logger.debug("Rollback after failed save also failed", exc_info=True)
            raise PersistenceError(f"Failed to save to {self.db_path}: {exc}") from exc

        logger.debug(f"Saved {len(records_df)} records and {len(history_df)} history entries")

    def close(self) -> None:
        self.con.close()


class JsonFilePersistence:
    """Stores records and history as one JSON document."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> tuple[list[ChurnRecord], list[UploadHistoryEntry]]:
        if not self.path.exists():
            return [], []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            records_df = pd.DataFrame(data.get("records", []), columns=CANONICAL_COLUMNS)
            return frame_to_records(records_df), _history_from_dicts(data.get("history", []))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise PersistenceError(f"Failed to load from {self.path}: {exc}") from exc

    def save(self, records: Sequence[ChurnRecord], history: Sequence[UploadHistoryEntry]) -> None:
        payload = {
            "records": [asdict(r) for r in records],
            "history": [asdict(h) for h in history],
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise PersistenceError(f"Failed to save to {self.path}: {exc}") from exc
