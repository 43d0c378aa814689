"""
Visualization module for the churn dashboard.

Renders KPIs, trend and breakdown charts, and top-N tables from a
``DashboardView``. Holds no state of its own.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import streamlit as st

from churn_analytics.normalization import records_to_frame

if TYPE_CHECKING:
    from churn_analytics.dashboard import DashboardView
    from churn_analytics.deduplication import UploadOutcome


STALE_UPLOAD_MESSAGE = (
    "The data changed while this upload was waiting for review, so nothing was added. "
    "Process the file again to review it against the current data."
)


def format_currency(amount: float) -> str:
    return f"${amount:,.0f}"


def render_upload_notice(message: str | None) -> None:
    """Sidebar warning carried over a rerun, e.g. a rejected upload confirmation."""
    if message:
        st.sidebar.warning(message)


def render_upload_preview(outcome: UploadOutcome) -> None:
    """Counts plus sample rows of each partition, shown before a merge is confirmed."""
    st.write(
        f"Found **{outcome.total_rows}** rows: {outcome.new_count} new, "
        f"{outcome.duplicate_count} duplicates, {outcome.error_count} errors."
    )
    if outcome.sample_new_records:
        st.caption("Sample new records")
        st.dataframe(records_to_frame(outcome.sample_new_records), hide_index=True)
    if outcome.sample_duplicates:
        st.warning(f"{outcome.duplicate_count} duplicate records will be skipped")
        st.dataframe(records_to_frame(outcome.sample_duplicates), hide_index=True)
    if outcome.error_count:
        st.error(f"{outcome.error_count} rows have errors and will be skipped")
        for bad in outcome.sample_errors:
            st.caption(f"Row {bad.row_number}: {bad.reason}")


def render_dashboard(view: DashboardView) -> None:
    """
    Render the main churn dashboard.

    Displays:
    - KPI metrics (churned customers, MRR lost, average lifetime, average MRR)
    - Churn trend (monthly or quarterly)
    - Churn by plan, tenure distribution, geographic distribution
    - Top plans and top countries tables
    """
    if view.total_records == 0:
        st.info("No data yet. Upload a churn CSV in the sidebar to get started.")
        return

    # --- KPI Row ---
    metrics = view.metrics
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Churned Customers", f"{metrics.total_churned_customers:,}")
    col2.metric("MRR Lost", format_currency(metrics.total_mrr_lost))
    col3.metric("Avg Customer Lifetime", f"{metrics.avg_customer_lifetime:.1f} months")
    col4.metric("Avg MRR per Customer", format_currency(metrics.avg_mrr_per_customer))

    if not view.filtered:
        st.warning("No records match the current filters.")
        return

    st.divider()

    # --- Trend ---
    st.subheader(f"Churn Trend by {view.time_view.title()}")
    if view.trend.empty:
        st.info("No parseable cancellation dates in the current selection.")
    else:
        st.line_chart(view.trend.set_index("period")[["customers", "mrr_lost"]])

    # --- Breakdowns ---
    left, right = st.columns(2)
    with left:
        st.subheader("MRR Lost by Plan")
        st.bar_chart(view.churn_by_plan.set_index("plan")["mrr_lost"])
    with right:
        st.subheader("Customer Tenure at Cancellation")
        st.bar_chart(view.tenure.set_index("segment")["customers"])
        st.caption(
            " | ".join(f"{row.segment}: {row.percentage:.1f}%" for row in view.tenure.itertuples())
        )

    st.subheader("Geographic Distribution")
    if view.geographic.empty:
        st.info("No country data in the current selection.")
    else:
        st.bar_chart(view.geographic.set_index("country")["customers"])

    st.divider()

    # --- Tables ---
    left, right = st.columns(2)
    with left:
        st.subheader("Top Plans by MRR Lost")
        st.dataframe(
            view.top_plans.round({"mrr_lost": 2, "avg_mrr": 2}),
            use_container_width=True,
            hide_index=True,
        )
    with right:
        st.subheader("Top Countries by MRR Lost")
        st.dataframe(
            view.top_countries.round({"mrr_lost": 2, "percent_of_total": 1}),
            use_container_width=True,
            hide_index=True,
        )

    with st.expander("CRM breakdown"):
        st.dataframe(view.crm.round({"mrr_lost": 2, "avg_mrr": 2}), use_container_width=True, hide_index=True)

    with st.expander(f"Filtered records ({len(view.filtered):,})"):
        st.dataframe(records_to_frame(view.filtered), use_container_width=True, hide_index=True)
