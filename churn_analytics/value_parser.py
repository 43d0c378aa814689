"""
Shared scalar parsing utilities for loosely-typed CSV values.

Monetary values may carry currency symbols/codes, thousands separators and
accounting-style parentheses. Dates are parsed leniently; anything that cannot
be parsed comes back as None rather than raising.
"""

from __future__ import annotations

import functools
import re
from typing import Any

import pandas as pd

_NULL_TOKENS = {"", "null", "n/a", "none", "nan", "-", "--"}
_CURRENCY_CODES = ["usd", "eur", "gbp", "cad", "aud", "chf", "jpy", "inr", "sek", "nok", "dkk"]
_CURRENCY_SYMBOLS = r"[$€£¥]"


def _strip_currency_tokens(text: str) -> str:
    pattern = r"\b(" + "|".join(_CURRENCY_CODES) + r")\b"
    return re.sub(pattern, "", text, flags=re.IGNORECASE)


def _normalize_number_string(text: str) -> str:
    cleaned = _strip_currency_tokens(text)
    cleaned = cleaned.replace(" ", "").replace("\u00a0", "")
    cleaned = re.sub(_CURRENCY_SYMBOLS, "", cleaned)

    # Handle European decimals: "1.234,56" -> "1234.56"
    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "")
            cleaned = cleaned.replace(",", ".")
    elif "," in cleaned and "." not in cleaned:
        # Treat comma as decimal if it looks like cents (one or two digits)
        parts = cleaned.split(",")
        if len(parts[-1]) in (1, 2):
            cleaned = ".".join(parts)

    cleaned = cleaned.replace(",", "")
    return cleaned.strip()


def parse_numeric_value(value: Any) -> float | None:
    """Parse a monetary/numeric cell into a float, or None if it is not a number."""
    if value is None:
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return None if pd.isna(value) else float(value)

    text = str(value).strip()
    if text.lower() in _NULL_TOKENS:
        return None

    is_negative = False
    if text.startswith("(") and text.endswith(")"):
        is_negative = True
        text = text[1:-1].strip()
    if text.startswith("-"):
        is_negative = True
        text = text[1:]
    text = text.lstrip("+")

    cleaned = _normalize_number_string(text)
    if cleaned.lower() in _NULL_TOKENS:
        return None

    try:
        numeric = float(cleaned)
    except ValueError:
        return None

    if numeric != numeric or numeric in (float("inf"), float("-inf")):
        return None

    return -abs(numeric) if is_negative else numeric


def parse_int_value(value: Any) -> int | None:
    """Parse a count-like cell; fractional values are truncated toward zero."""
    numeric = parse_numeric_value(value)
    if numeric is None:
        return None
    return int(numeric)


def parse_date_value(value: Any) -> pd.Timestamp | None:
    """
    Parse a date string into a timezone-naive Timestamp.

    Returns None for empty or unparseable input. Timezone-aware values are
    converted to UTC and made naive so they compare with naive bounds.
    """
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None

    try:
        parsed = pd.to_datetime(value, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None

    if parsed is None or pd.isna(parsed):
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert("UTC").tz_localize(None)
    return parsed


@functools.lru_cache(maxsize=65536)
def parse_date_string(text: str) -> pd.Timestamp | None:
    """Cached ``parse_date_value`` for the repeated date strings of a record set."""
    return parse_date_value(text)
