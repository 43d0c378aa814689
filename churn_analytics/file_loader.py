"""
CSV loading and export utilities.

Uploads are read with pandas as all-string frames (no type inference, no NaN
substitution) so the normalizer sees exactly what was in the file. Exports are
plain comma-joined lines in the fixed header order.
"""

from __future__ import annotations

import csv
import io
import warnings
from datetime import date
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

import pandas as pd

from churn_analytics.config import (
    ALLOWED_SUFFIXES,
    CSV_ENCODINGS,
    EXPORT_COLUMNS,
    SETTINGS,
)
from churn_analytics.logger import get_logger
from churn_analytics.normalization import record_to_row

if TYPE_CHECKING:
    from collections.abc import Iterable

    from churn_analytics.normalization import ChurnRecord

logger = get_logger(__name__)

CSV_DELIMITERS = [",", ";", "\t", "|"]


class CSVFormatError(ValueError):
    """The file could not be tokenized as CSV; nothing from it is ingested."""


def sniff_csv_delimiter(sample: str) -> str | None:
    if not sample:
        return None
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS)
        return dialect.delimiter
    except csv.Error:
        return None


def _frame_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    df.columns = [str(col).strip() for col in df.columns]
    return df.to_dict(orient="records")


def read_csv_text(text: str, *, delimiter: str | None = None) -> list[dict[str, Any]]:
    """
    Tokenize CSV text with a header row into string-keyed rows.

    Args:
        text: Full file contents.
        delimiter: Field separator. If None, sniffed from the first 8 KB,
            falling back to a comma.

    Returns:
        One dict per data row, header -> cell string. Blank lines are skipped.

    Raises:
        CSVFormatError: If the text has no header row or cannot be tokenized.
    """
    if not text or not text.strip():
        raise CSVFormatError("CSV file is empty")

    sep = delimiter or sniff_csv_delimiter(text[:8192]) or ","
    ragged_lines: list[list[str]] = []

    def _keep_ragged(bad_line: list[str]) -> list[str]:
        # Extra trailing fields are dropped; the row itself is kept
        ragged_lines.append(bad_line)
        return bad_line

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", pd.errors.ParserWarning)
            df = pd.read_csv(
                io.StringIO(text),
                sep=sep,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                index_col=False,
                engine="python",
                on_bad_lines=_keep_ragged,
            )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, csv.Error) as exc:
        raise CSVFormatError(f"Failed to parse CSV: {exc}") from exc

    if ragged_lines:
        logger.warning(f"{len(ragged_lines)} CSV lines had more fields than the header")

    return _frame_to_rows(df)


def decode_bytes(data: bytes, encodings: list[str] | None = None) -> str:
    """Decode raw upload bytes, trying each configured encoding in turn."""
    last_error: Exception | None = None
    for candidate in encodings or CSV_ENCODINGS:
        try:
            return data.decode(candidate)
        except UnicodeDecodeError as exc:
            last_error = exc
            continue
    raise CSVFormatError("Failed to decode CSV with any known encoding") from last_error


def load_csv_buffer(buffer: IO[bytes] | IO[str], *, delimiter: str | None = None) -> list[dict[str, Any]]:
    """Read an uploaded file-like object (bytes or text)."""
    data = buffer.read()
    text = decode_bytes(data) if isinstance(data, bytes) else data
    return read_csv_text(text, delimiter=delimiter)


def load_csv(path: Path | str, *, delimiter: str | None = None) -> list[dict[str, Any]]:
    """Read a CSV file from disk."""
    file_path = Path(path)
    if file_path.suffix.lower() not in ALLOWED_SUFFIXES:
        raise CSVFormatError(f"Unsupported file format: {file_path.suffix or 'unknown'}")

    rows = read_csv_text(decode_bytes(file_path.read_bytes()), delimiter=delimiter)
    logger.info(f"Loaded {file_path.name} ({len(rows)} rows)")
    return rows


def _format_cell(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def export_csv(records: Iterable[ChurnRecord]) -> str:
    """
    Render records as CSV text in the fixed export column order.

    Values are comma-joined without quoting; a field containing a comma
    will shift the columns of its line.
    """
    lines = [",".join(EXPORT_COLUMNS)]
    for record in records:
        row = record_to_row(record)
        lines.append(",".join(_format_cell(row[col]) for col in EXPORT_COLUMNS))
    return "\n".join(lines)


def default_export_filename(today: date | None = None) -> str:
    today = today or date.today()
    return SETTINGS["export_filename_pattern"].format(date=today.isoformat())


def write_export(records: Iterable[ChurnRecord], path: Path | str) -> Path:
    """Write an export to disk and return its path."""
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    content = export_csv(records)
    out_path.write_text(content, encoding="utf-8")
    logger.info(f"Exported {content.count(chr(10))} records to {out_path}")
    return out_path
