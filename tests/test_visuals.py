"""
Tests for Streamlit rendering helpers.
"""

import sys
from pathlib import Path

import pytest
from streamlit.testing.v1 import AppTest

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from churn_analytics.store import ChurnStore, StaleUploadError
from churn_analytics.visuals import STALE_UPLOAD_MESSAGE


def _stale_confirm_app():
    import streamlit as st

    from churn_analytics.store import ChurnStore, StaleUploadError
    from churn_analytics.visuals import STALE_UPLOAD_MESSAGE, render_upload_notice

    store = ChurnStore()
    pending = store.preview([{"Email": "a@x.com", "Stripe User ID": "A"}])
    store.merge([{"Email": "b@x.com", "Stripe User ID": "B"}])
    notice = None
    try:
        store.commit(pending)
    except StaleUploadError:
        notice = STALE_UPLOAD_MESSAGE
    render_upload_notice(notice)
    st.write(f"{len(store)} records")


def _quiet_app():
    from churn_analytics.visuals import render_upload_notice

    render_upload_notice(None)


class TestUploadNotice:
    """Tests for the upload notice shown after a rejected confirmation."""

    def test_stale_confirm_shows_sidebar_warning(self):
        at = AppTest.from_function(_stale_confirm_app)
        at.run()
        assert not at.exception
        assert [w.value for w in at.sidebar.warning] == [STALE_UPLOAD_MESSAGE]

    def test_no_notice_renders_nothing(self):
        at = AppTest.from_function(_quiet_app)
        at.run()
        assert not at.exception
        assert len(at.sidebar.warning) == 0

    def test_stale_commit_adds_nothing(self):
        store = ChurnStore()
        pending = store.preview([{"Email": "a@x.com", "Stripe User ID": "A"}])
        store.merge([{"Email": "b@x.com", "Stripe User ID": "B"}])
        with pytest.raises(StaleUploadError):
            store.commit(pending)
        assert "A" not in store
