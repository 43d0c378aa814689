"""
Derived dashboard view.

``build_dashboard`` recomputes the filtered subset and every aggregate from
scratch. Callers invoke it after any store mutation or filter edit; there is
no cached state to invalidate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import pandas as pd

from churn_analytics import analytics
from churn_analytics.config import DEFAULT_TIME_VIEW
from churn_analytics.filters import DEFAULT_FILTERS, FilterConfig, FilterOptions, apply_filters, filter_options
from churn_analytics.logger import debug_watcher
from churn_analytics.normalization import records_to_frame

if TYPE_CHECKING:
    from collections.abc import Sequence

    from churn_analytics.normalization import ChurnRecord


@dataclass(frozen=True)
class DashboardView:
    filters: FilterConfig
    time_view: str
    total_records: int
    filtered: list[ChurnRecord]
    options: FilterOptions
    metrics: analytics.MetricsSummary
    churn_by_plan: pd.DataFrame
    top_plans: pd.DataFrame
    top_countries: pd.DataFrame
    geographic: pd.DataFrame
    tenure: pd.DataFrame
    trend: pd.DataFrame
    crm: pd.DataFrame


@debug_watcher
def build_dashboard(
    records: Sequence[ChurnRecord],
    filters: FilterConfig = DEFAULT_FILTERS,
    time_view: str = DEFAULT_TIME_VIEW,
) -> DashboardView:
    """
    Filter the canonical set and compute every aggregate over the result.

    Filter options come from the full set so a narrow filter never hides
    the values needed to widen it again.
    """
    filtered = apply_filters(records, filters)
    # One frame conversion shared by all aggregations
    frame = records_to_frame(filtered)

    return DashboardView(
        filters=filters,
        time_view=time_view,
        total_records=len(records),
        filtered=filtered,
        options=filter_options(records),
        metrics=analytics.calculate_metrics(frame),
        churn_by_plan=analytics.churn_by_plan(frame),
        top_plans=analytics.top_plans(frame),
        top_countries=analytics.top_countries(frame),
        geographic=analytics.geographic_distribution(frame),
        tenure=analytics.tenure_distribution(frame),
        trend=analytics.churn_trend(frame, time_view),
        crm=analytics.crm_breakdown(frame),
    )
