"""Churn Analysis Dashboard - Streamlit app."""

import dataclasses
import datetime
from pathlib import Path

import streamlit as st

from setup_dirs import ensure_dirs

from churn_analytics.config import (
    DEFAULT_TIME_VIEW,
    STORE_PATH,
    TIME_VIEWS,
    WILDCARD,
)
from churn_analytics.dashboard import build_dashboard
from churn_analytics.file_loader import CSVFormatError, default_export_filename, export_csv, load_csv_buffer
from churn_analytics.filters import DEFAULT_FILTERS, FilterConfig, NumericRange, filter_options
from churn_analytics.logger import LOG_FILE, get_logger
from churn_analytics.persistence import DuckDBPersistence, PersistenceError
from churn_analytics.store import ChurnStore, StaleUploadError
from churn_analytics.visuals import STALE_UPLOAD_MESSAGE, render_dashboard, render_upload_notice, render_upload_preview

logger = get_logger(__name__)

ensure_dirs()

st.set_page_config(
    page_title="Churn Analysis Dashboard",
    layout="wide",
)


@st.cache_resource
def get_store() -> ChurnStore:
    """One store per server process, loaded once at startup."""
    try:
        persistence = DuckDBPersistence(STORE_PATH)
    except PersistenceError as e:
        logger.critical(f"Store unavailable, running in memory only: {e}")
        persistence = None
    store = ChurnStore(persistence)
    store.load()
    return store


store = get_store()

# Initialize session state
if "filters" not in st.session_state:
    st.session_state.filters = DEFAULT_FILTERS
if "time_view" not in st.session_state:
    st.session_state.time_view = DEFAULT_TIME_VIEW
if "pending_upload" not in st.session_state:
    st.session_state.pending_upload = None
if "last_outcome" not in st.session_state:
    st.session_state.last_outcome = None
if "upload_notice" not in st.session_state:
    st.session_state.upload_notice = None


def _date_or_none(value: datetime.date | None) -> str | None:
    return value.isoformat() if value else None


def _range_inputs(label: str, current: NumericRange, key: str) -> NumericRange:
    lo, hi = st.sidebar.columns(2)
    low = lo.number_input(f"{label} min", min_value=0.0, value=float(current.min), key=f"{key}_min")
    high = hi.number_input(f"{label} max", min_value=0.0, value=float(current.max), key=f"{key}_max")
    return NumericRange(min=low, max=high)


# --- Sidebar: Upload ---

st.sidebar.header("Upload")
render_upload_notice(st.session_state.upload_notice)
st.session_state.upload_notice = None
uploaded = st.sidebar.file_uploader(
    "Upload churn CSV",
    type=["csv"],
    disabled=st.session_state.pending_upload is not None,
)
if uploaded is not None and st.sidebar.button("Process file", type="primary", use_container_width=True):
    try:
        rows = load_csv_buffer(uploaded)
    except CSVFormatError as e:
        st.sidebar.error(f"Could not read {uploaded.name}: {e}")
    else:
        outcome, committed = store.ingest(rows)
        if committed:
            st.session_state.last_outcome = outcome
        else:
            st.session_state.pending_upload = outcome

pending = st.session_state.pending_upload
if pending is not None:
    with st.sidebar.container(border=True):
        st.subheader("Review upload")
        render_upload_preview(pending)
        confirm_col, cancel_col = st.columns(2)
        if confirm_col.button("Add new records", type="primary"):
            try:
                store.commit(pending)
                st.session_state.last_outcome = pending
            except StaleUploadError as e:
                st.session_state.last_outcome = None
                st.session_state.upload_notice = STALE_UPLOAD_MESSAGE
                logger.warning(str(e))
            st.session_state.pending_upload = None
            st.rerun()
        if cancel_col.button("Cancel"):
            st.session_state.pending_upload = None
            st.rerun()

# --- Sidebar: Filters ---

st.sidebar.divider()
st.sidebar.header("Filters")

options = filter_options(store.current_records())
current: FilterConfig = st.session_state.filters

start = st.sidebar.date_input("From", value=None, key="date_start")
end = st.sidebar.date_input("To", value=None, key="date_end")
plan = st.sidebar.selectbox("Plan", [WILDCARD] + options.plans, key="plan")
country = st.sidebar.selectbox("Country", [WILDCARD] + options.countries, key="country")
crm = st.sidebar.selectbox("CRM", [WILDCARD] + options.crms, key="crm")
mrr_range = _range_inputs("MRR", current.mrr_range, "mrr")
seats_range = _range_inputs("Seats", current.seats_range, "seats")
tenure_range = _range_inputs("Months", current.tenure_range, "tenure")

st.session_state.filters = dataclasses.replace(
    current,
    date_start=_date_or_none(start),
    date_end=_date_or_none(end),
    plan=plan,
    country=country,
    crm=crm,
    mrr_range=mrr_range,
    seats_range=seats_range,
    tenure_range=tenure_range,
)

if st.sidebar.button("Clear filters", use_container_width=True):
    for key in list(st.session_state.keys()):
        if key.startswith(("date_", "plan", "country", "crm", "mrr_", "seats_", "tenure_")):
            del st.session_state[key]
    st.session_state.filters = DEFAULT_FILTERS
    st.rerun()

st.session_state.time_view = st.sidebar.radio("Trend by", TIME_VIEWS, horizontal=True)

# --- Sidebar: Data management ---

st.sidebar.divider()
st.sidebar.header("Data")
confirm_clear = st.sidebar.checkbox("I understand clearing cannot be undone")
if st.sidebar.button("Clear all data", disabled=not confirm_clear, use_container_width=True):
    store.clear()
    st.session_state.last_outcome = None
    st.rerun()

if store.last_error is not None:
    st.sidebar.warning(f"Storage problem, changes are kept for this session only: {store.last_error}")

enable_debug = st.sidebar.checkbox("Enable Verbose Debugging", value=False)
if enable_debug:
    with st.sidebar.expander("Debug Log", expanded=True):
        log_path = Path(LOG_FILE)
        if log_path.exists():
            lines = log_path.read_text(encoding="utf-8", errors="replace").splitlines()[-50:]
            st.code("\n".join(lines) or "Debug log is empty.", language="text")
        else:
            st.info("Debug log file not found.")

# --- Main area ---

view = build_dashboard(store.current_records(), st.session_state.filters, st.session_state.time_view)

header_left, header_right = st.columns([3, 1])
with header_left:
    st.title("Churn Analysis Dashboard")
    st.caption("Monitor and analyze customer churn patterns")
with header_right:
    st.caption(f"Total Records: {view.total_records:,}")
    last_upload = store.last_upload
    st.caption(f"Last Upload: {last_upload[:10] if last_upload else 'Never'}")

outcome = st.session_state.last_outcome
if outcome is not None:
    message = (
        f"Upload complete: {outcome.new_count} new records added, "
        f"{outcome.duplicate_count} duplicates skipped"
    )
    if outcome.error_count:
        message += f", {outcome.error_count} errors"
    st.success(message)

if view.filtered:
    st.download_button(
        "Export filtered data",
        data=export_csv(view.filtered),
        file_name=default_export_filename(),
        mime="text/csv",
    )

render_dashboard(view)

if store.history:
    with st.expander("Upload history"):
        for entry in reversed(store.history):
            st.json(dataclasses.asdict(entry))
