"""
Filter engine for the canonical record set.

``apply_filters`` is a pure function of (records, FilterConfig): it never
mutates its inputs, keeps the input order of surviving records, and is
idempotent. All seven predicates are ANDed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pandas as pd

from churn_analytics.config import NO_CRM, RANGE_MAX, WILDCARD
from churn_analytics.logger import get_logger
from churn_analytics.normalization import clean_plan_name
from churn_analytics.value_parser import parse_date_string, parse_date_value

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from churn_analytics.normalization import ChurnRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class NumericRange:
    """Inclusive [min, max] bounds."""

    min: float = 0
    max: float = RANGE_MAX

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class FilterConfig:
    """
    Active view criteria. Replace wholesale with ``dataclasses.replace``.

    Empty or None date bounds mean no constraint on that side. ``plan``,
    ``country`` and ``crm`` accept the wildcard ``"all"``.
    """

    date_start: str | None = None
    date_end: str | None = None
    plan: str = WILDCARD
    country: str = WILDCARD
    crm: str = WILDCARD
    mrr_range: NumericRange = field(default_factory=NumericRange)
    seats_range: NumericRange = field(default_factory=NumericRange)
    tenure_range: NumericRange = field(default_factory=NumericRange)

    @property
    def is_default(self) -> bool:
        return self == FilterConfig()


DEFAULT_FILTERS = FilterConfig()


def _parse_bound(value: str | None, name: str) -> pd.Timestamp | None:
    if value is None or not str(value).strip():
        return None
    parsed = parse_date_value(value)
    if parsed is None:
        logger.warning(f"Ignoring unparseable {name} date filter: {value!r}")
    return parsed


def _in_date_range(
    record: ChurnRecord,
    start: pd.Timestamp | None,
    end: pd.Timestamp | None,
) -> bool:
    if start is None and end is None:
        return True
    # A record without a usable date cannot satisfy a bound
    cancelled = parse_date_string(record.cancellation_date)
    if cancelled is None:
        return False
    if start is not None and cancelled < start:
        return False
    if end is not None and cancelled > end:
        return False
    return True


def apply_filters(records: Sequence[ChurnRecord], config: FilterConfig) -> list[ChurnRecord]:
    """
    Return the records matching every criterion in ``config``.

    Args:
        records: Canonical record set (any sequence of ChurnRecord).
        config: Active filter configuration.

    Returns:
        New list; surviving records in their input order.
    """
    start = _parse_bound(config.date_start, "start")
    end = _parse_bound(config.date_end, "end")
    plan_needle = config.plan.lower() if config.plan != WILDCARD else None

    result = []
    for record in records:
        if not _in_date_range(record, start, end):
            continue
        if plan_needle is not None and plan_needle not in record.plans.lower():
            continue
        if config.country != WILDCARD and record.country != config.country:
            continue
        if config.crm != WILDCARD and record.crm != config.crm:
            continue
        if not config.mrr_range.contains(record.mrr_cancelled):
            continue
        if not config.seats_range.contains(record.seats):
            continue
        if not config.tenure_range.contains(record.months_subscribed):
            continue
        result.append(record)
    return result


@dataclass(frozen=True)
class FilterOptions:
    """Values offered by the plan/country/CRM selectors."""

    plans: list[str]
    countries: list[str]
    crms: list[str]


def filter_options(records: Iterable[ChurnRecord]) -> FilterOptions:
    """Sorted unique non-empty cleaned plan names and countries, and CRM values."""
    plans: set[str] = set()
    countries: set[str] = set()
    crms: set[str] = set()
    for record in records:
        cleaned = clean_plan_name(record.plans)
        if cleaned:
            plans.add(cleaned)
        if record.country:
            countries.add(record.country)
        crms.add(record.crm or NO_CRM)
    return FilterOptions(plans=sorted(plans), countries=sorted(countries), crms=sorted(crms))
