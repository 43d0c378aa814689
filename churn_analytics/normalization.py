"""
Record normalization module.

Turns one loosely-typed CSV row into a canonical ``ChurnRecord``. Every
recognized field is listed explicitly in ``FIELD_SPECS`` together with the
human-readable header that takes precedence, the camelCase fallback key and
the default used when neither is present.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, NamedTuple

import pandas as pd

from churn_analytics.config import NO_CRM
from churn_analytics.value_parser import parse_int_value, parse_numeric_value

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class RowParseError(ValueError):
    """A CSV row that cannot become a ChurnRecord (missing identifier or email)."""


@dataclass(frozen=True)
class ChurnRecord:
    """One cancelled customer. ``stripe_user_id`` is the dataset's uniqueness key."""

    email: str
    stripe_user_id: str
    plans: str
    activity: str
    mrr_cancelled: float
    cancellation_date: str
    sign_up_date: str
    seats: int
    months_subscribed: int
    country: str
    crm: str


class FieldSpec(NamedTuple):
    attr: str
    header: str
    key: str
    kind: str
    default: Any


FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("email", "Email", "email", "str", ""),
    FieldSpec("stripe_user_id", "Stripe User ID", "stripeUserId", "str", ""),
    FieldSpec("plans", "Plans", "plans", "str", ""),
    FieldSpec("activity", "Activity", "activity", "str", ""),
    FieldSpec("mrr_cancelled", "MRR Cancelled", "mrrCancelled", "money", 0.0),
    FieldSpec("cancellation_date", "Cancellation date", "cancellationDate", "str", ""),
    FieldSpec("sign_up_date", "Sign Up Date", "signUpDate", "str", ""),
    FieldSpec("seats", "Seats", "seats", "int", 1),
    FieldSpec("months_subscribed", "Months Subscribed", "monthsSubscribed", "int", 0),
    FieldSpec("country", "Country", "country", "str", ""),
    FieldSpec("crm", "CRM", "crm", "str", NO_CRM),
)

CANONICAL_COLUMNS = [spec.attr for spec in FIELD_SPECS]

CANONICAL_DTYPES = {
    "email": "string",
    "stripe_user_id": "string",
    "plans": "string",
    "activity": "string",
    "mrr_cancelled": "float64",
    "cancellation_date": "string",
    "sign_up_date": "string",
    "seats": "int64",
    "months_subscribed": "int64",
    "country": "string",
    "crm": "string",
}

_PLAN_SUFFIX = re.compile(r"\s*\([^)]*\)\s*$")

# Counts are stored as 32-bit INTEGER columns
_COUNT_MAX = 2**31 - 1


def get_canonical_schema() -> dict[str, str]:
    """Returns the canonical schema definition as a dictionary of column names to types."""
    return CANONICAL_DTYPES.copy()


def _present(value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, str) and pd.isna(value):
        return False
    return str(value).strip() != ""


def _resolve(row: Mapping[str, Any], spec: FieldSpec) -> Any:
    """Header first, then canonical key; empty values fall through."""
    for key in (spec.header, spec.key):
        value = row.get(key)
        if _present(value):
            return value
    return None


def _coerce(raw: Any, spec: FieldSpec) -> Any:
    if raw is None:
        return spec.default

    if spec.kind == "money":
        value = parse_numeric_value(raw)
        return spec.default if value is None else abs(value)

    if spec.kind == "int":
        value = parse_int_value(raw)
        if value is None or value > _COUNT_MAX:
            return spec.default
        return max(value, 0)

    return str(raw).strip()


def normalize_row(row: Mapping[str, Any]) -> ChurnRecord:
    """
    Convert one raw row into a ChurnRecord.

    Args:
        row: String-keyed mapping using human-readable headers ("Stripe User ID")
            or canonical field names ("stripeUserId"). Unknown keys are ignored.

    Returns:
        The canonical record. ``mrr_cancelled`` is always non-negative.

    Raises:
        RowParseError: If the row has no identifier or no email.
    """
    values = {spec.attr: _coerce(_resolve(row, spec), spec) for spec in FIELD_SPECS}

    if not values["stripe_user_id"]:
        raise RowParseError("Row is missing a Stripe User ID")
    if not values["email"]:
        raise RowParseError(f"Row {values['stripe_user_id']} is missing an email")

    return ChurnRecord(**values)


def clean_plan_name(plan: str) -> str:
    """Strip a trailing parenthetical billing suffix, e.g. "Pro (Monthly)" -> "Pro"."""
    return _PLAN_SUFFIX.sub("", plan or "").strip()


def record_to_row(record: ChurnRecord) -> dict[str, Any]:
    """Map a record back to human-readable CSV headers."""
    data = asdict(record)
    return {spec.header: data[spec.attr] for spec in FIELD_SPECS}


def records_to_frame(records: Iterable[ChurnRecord]) -> pd.DataFrame:
    """Build a DataFrame with the canonical columns and dtypes, preserving order."""
    df = pd.DataFrame([asdict(r) for r in records], columns=CANONICAL_COLUMNS)
    return df.astype(CANONICAL_DTYPES)


def frame_to_records(df: pd.DataFrame) -> list[ChurnRecord]:
    """
    Rehydrate records from a canonical DataFrame (e.g. a persisted table).

    Missing columns take their field defaults; missing values in present
    columns do too.
    """
    if df.empty:
        return []

    records = []
    for row in df.to_dict(orient="records"):
        values = {}
        for spec in FIELD_SPECS:
            raw = row.get(spec.attr)
            values[spec.attr] = _coerce(raw if _present(raw) else None, spec)
        records.append(ChurnRecord(**values))
    return records
