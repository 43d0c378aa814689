"""
Churn aggregation engine.

Every function here is a pure function of a record subset (a sequence of
ChurnRecord or a canonical DataFrame from ``records_to_frame``) and returns a
new DataFrame. Empty input gives an empty frame with the declared columns,
except the tenure distribution, which always reports its five segments.

Sorting by MRR lost is descending and stable: groups with equal totals keep
the order in which they first appear in the input.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from churn_analytics.config import (
    GEO_LIMIT,
    NO_CRM,
    TENURE_SEGMENTS,
    TIME_VIEWS,
    TOP_COUNTRIES_LIMIT,
    TOP_PLANS_LIMIT,
    UNKNOWN,
)
from churn_analytics.normalization import records_to_frame
from churn_analytics.value_parser import parse_date_string

if TYPE_CHECKING:
    from collections.abc import Sequence

    from churn_analytics.normalization import ChurnRecord

PLAN_COLUMNS = ["plan", "customers", "mrr_lost", "avg_mrr"]
CRM_COLUMNS = ["crm", "customers", "mrr_lost", "avg_mrr"]
GEO_COLUMNS = ["country", "customers"]
COUNTRY_COLUMNS = ["country", "customers", "mrr_lost", "percent_of_total"]
TENURE_COLUMNS = ["segment", "customers", "percentage"]
TREND_COLUMNS = ["period", "customers", "mrr_lost"]


@dataclass(frozen=True)
class MetricsSummary:
    total_churned_customers: int = 0
    total_mrr_lost: float = 0.0
    avg_customer_lifetime: float = 0.0
    avg_mrr_per_customer: float = 0.0


def _as_frame(data: Sequence[ChurnRecord] | pd.DataFrame) -> pd.DataFrame:
    if isinstance(data, pd.DataFrame):
        return data
    return records_to_frame(data)


def _labels(series: pd.Series, fallback: str) -> pd.Series:
    """Object-dtype labels with empty values replaced by ``fallback``."""
    labels = series.astype(object).fillna("")
    return labels.where(labels != "", fallback)


def _sort_by_mrr_lost(df: pd.DataFrame) -> pd.DataFrame:
    return df.sort_values("mrr_lost", key=lambda s: -s, kind="stable").reset_index(drop=True)


def _rollup(labels: pd.Series, mrr: pd.Series, label_column: str) -> pd.DataFrame:
    """Customers, summed |MRR| and average |MRR| per label, in first-seen order."""
    work = pd.DataFrame({label_column: labels.to_numpy(), "mrr": mrr.abs().to_numpy()})
    grouped = (
        work.groupby(label_column, sort=False)
        .agg(customers=("mrr", "size"), mrr_lost=("mrr", "sum"))
        .reset_index()
    )
    grouped["avg_mrr"] = grouped["mrr_lost"] / grouped["customers"]
    return _sort_by_mrr_lost(grouped)


def calculate_metrics(data: Sequence[ChurnRecord] | pd.DataFrame) -> MetricsSummary:
    """Headline totals and averages; all zero for an empty subset."""
    df = _as_frame(data)
    total = len(df)
    if total == 0:
        return MetricsSummary()

    total_mrr = float(df["mrr_cancelled"].sum())
    return MetricsSummary(
        total_churned_customers=total,
        total_mrr_lost=total_mrr,
        avg_customer_lifetime=float(df["months_subscribed"].sum()) / total,
        avg_mrr_per_customer=total_mrr / total,
    )


def churn_by_plan(data: Sequence[ChurnRecord] | pd.DataFrame) -> pd.DataFrame:
    """
    Roll up by the raw plan string (billing suffix kept).

    Columns: plan, customers, mrr_lost, avg_mrr. Sorted by mrr_lost descending.
    """
    df = _as_frame(data)
    if df.empty:
        return pd.DataFrame(columns=PLAN_COLUMNS)
    return _rollup(_labels(df["plans"], UNKNOWN), df["mrr_cancelled"], "plan")[PLAN_COLUMNS]


def top_plans(data: Sequence[ChurnRecord] | pd.DataFrame, limit: int = TOP_PLANS_LIMIT) -> pd.DataFrame:
    return churn_by_plan(data).head(limit).reset_index(drop=True)


def crm_breakdown(data: Sequence[ChurnRecord] | pd.DataFrame) -> pd.DataFrame:
    """Same rollup as ``churn_by_plan`` keyed by CRM (empty CRM counts as No_CRM)."""
    df = _as_frame(data)
    if df.empty:
        return pd.DataFrame(columns=CRM_COLUMNS)
    return _rollup(_labels(df["crm"], NO_CRM), df["mrr_cancelled"], "crm")[CRM_COLUMNS]


def geographic_distribution(
    data: Sequence[ChurnRecord] | pd.DataFrame,
    limit: int = GEO_LIMIT,
) -> pd.DataFrame:
    """
    Customer count per country, most customers first.

    Records without a country are left out of this view.
    """
    df = _as_frame(data)
    countries = df["country"].astype(object).fillna("") if not df.empty else pd.Series(dtype=object)
    countries = countries[countries != ""]
    if countries.empty:
        return pd.DataFrame(columns=GEO_COLUMNS)

    counts = (
        countries.to_frame("country")
        .groupby("country", sort=False)
        .size()
        .reset_index(name="customers")
    )
    counts = counts.sort_values("customers", key=lambda s: -s, kind="stable")
    return counts.head(limit).reset_index(drop=True)


def top_countries(
    data: Sequence[ChurnRecord] | pd.DataFrame,
    limit: int = TOP_COUNTRIES_LIMIT,
) -> pd.DataFrame:
    """
    Country rollup sorted by MRR lost, truncated to ``limit``.

    Unlike ``geographic_distribution``, records without a country are kept
    under "Unknown". ``percent_of_total`` is the share of customers, not MRR.
    """
    df = _as_frame(data)
    if df.empty:
        return pd.DataFrame(columns=COUNTRY_COLUMNS)

    total = len(df)
    rollup = _rollup(_labels(df["country"], UNKNOWN), df["mrr_cancelled"], "country")
    rollup["percent_of_total"] = rollup["customers"] / total * 100
    return rollup[COUNTRY_COLUMNS].head(limit).reset_index(drop=True)


def tenure_segment(months: int) -> str:
    for label, low, high in TENURE_SEGMENTS:
        if low <= months <= high:
            return label
    # Negative tenures never survive normalization; bucket them with the shortest
    return TENURE_SEGMENTS[0][0]


def tenure_distribution(data: Sequence[ChurnRecord] | pd.DataFrame) -> pd.DataFrame:
    """
    Customers per tenure segment, always all five segments in display order.

    Percentages are of the subset size and are 0 for an empty subset.
    """
    df = _as_frame(data)
    labels = [label for label, _, _ in TENURE_SEGMENTS]
    total = len(df)

    if total:
        edges = [-np.inf] + [high for _, _, high in TENURE_SEGMENTS[:-1]] + [np.inf]
        segments = pd.cut(df["months_subscribed"].astype("int64"), bins=edges, labels=labels, right=True)
        counts = segments.value_counts().reindex(labels, fill_value=0)
    else:
        counts = pd.Series(0, index=labels)

    result = pd.DataFrame({
        "segment": labels,
        "customers": counts.to_numpy(dtype="int64"),
    })
    result["percentage"] = result["customers"] / total * 100 if total else 0.0
    return result[TENURE_COLUMNS]


def _period_key(ts: pd.Timestamp, time_view: str) -> str:
    if time_view == "quarter":
        return f"{ts.year}-Q{(ts.month - 1) // 3 + 1}"
    return f"{ts.year}-{ts.month:02d}"


def churn_trend(data: Sequence[ChurnRecord] | pd.DataFrame, time_view: str = "month") -> pd.DataFrame:
    """
    Customers and MRR lost per calendar month ("YYYY-MM") or quarter ("YYYY-Qn").

    MRR is summed as stored (signed). Records whose cancellation date is
    missing or unparseable are excluded. Periods are in lexicographic order,
    which is chronological for these key formats.
    """
    if time_view not in TIME_VIEWS:
        raise ValueError(f"Unknown time view: {time_view!r}; expected one of {TIME_VIEWS}")

    df = _as_frame(data)
    if df.empty:
        return pd.DataFrame(columns=TREND_COLUMNS)

    dates = df["cancellation_date"].astype(object).fillna("").map(parse_date_string)
    valid = dates.notna().to_numpy()
    if not valid.any():
        return pd.DataFrame(columns=TREND_COLUMNS)

    work = pd.DataFrame({
        "period": [_period_key(ts, time_view) for ts in dates[valid]],
        "mrr": df["mrr_cancelled"].to_numpy()[valid],
    })
    trend = (
        work.groupby("period", sort=False)
        .agg(customers=("mrr", "size"), mrr_lost=("mrr", "sum"))
        .reset_index()
    )
    return trend.sort_values("period", kind="stable").reset_index(drop=True)[TREND_COLUMNS]
