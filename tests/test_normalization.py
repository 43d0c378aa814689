"""
Unit tests for record normalization.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from churn_analytics.normalization import (
    CANONICAL_COLUMNS,
    ChurnRecord,
    RowParseError,
    clean_plan_name,
    frame_to_records,
    normalize_row,
    record_to_row,
    records_to_frame,
)

FULL_ROW = {
    "Email": "ada@example.com",
    "Stripe User ID": "cus_001",
    "Plans": "Pro (default_monthly)",
    "Activity": "Cancelled",
    "MRR Cancelled": "-49.5",
    "Cancellation date": "2024-02-10",
    "Sign Up Date": "2023-01-05",
    "Seats": "3",
    "Months Subscribed": "13",
    "Country": "US",
    "CRM": "HubSpot",
}


class TestNormalizeRow:
    """Tests for normalize_row."""

    def test_human_readable_headers(self):
        record = normalize_row(FULL_ROW)
        assert record == ChurnRecord(
            email="ada@example.com",
            stripe_user_id="cus_001",
            plans="Pro (default_monthly)",
            activity="Cancelled",
            mrr_cancelled=49.5,
            cancellation_date="2024-02-10",
            sign_up_date="2023-01-05",
            seats=3,
            months_subscribed=13,
            country="US",
            crm="HubSpot",
        )

    def test_canonical_field_names(self):
        record = normalize_row({
            "email": "b@example.com",
            "stripeUserId": "cus_002",
            "mrrCancelled": "20",
            "monthsSubscribed": "4",
            "crm": "Salesforce",
        })
        assert record.stripe_user_id == "cus_002"
        assert record.mrr_cancelled == 20.0
        assert record.months_subscribed == 4
        assert record.crm == "Salesforce"

    def test_header_takes_precedence_over_canonical_name(self):
        record = normalize_row({"Email": "header@x.com", "email": "field@x.com", "Stripe User ID": "A"})
        assert record.email == "header@x.com"

    def test_empty_header_falls_back_to_canonical_name(self):
        record = normalize_row({"Email": "", "email": "field@x.com", "stripeUserId": "A"})
        assert record.email == "field@x.com"

    def test_defaults_for_missing_fields(self):
        record = normalize_row({"Email": "a@x.com", "Stripe User ID": "A"})
        assert record.mrr_cancelled == 0.0
        assert record.seats == 1
        assert record.months_subscribed == 0
        assert record.crm == "No_CRM"
        assert record.plans == ""
        assert record.country == ""

    def test_mrr_is_absolute(self):
        assert normalize_row({**FULL_ROW, "MRR Cancelled": "-10"}).mrr_cancelled == 10.0
        assert normalize_row({**FULL_ROW, "MRR Cancelled": "10"}).mrr_cancelled == 10.0
        assert normalize_row({**FULL_ROW, "MRR Cancelled": "($12.00)"}).mrr_cancelled == 12.0

    def test_unparseable_numbers_take_defaults(self):
        record = normalize_row({**FULL_ROW, "MRR Cancelled": "n/a", "Seats": "lots", "Months Subscribed": "?"})
        assert record.mrr_cancelled == 0.0
        assert record.seats == 1
        assert record.months_subscribed == 0

    def test_negative_counts_clamped(self):
        record = normalize_row({**FULL_ROW, "Seats": "-2", "Months Subscribed": "-5"})
        assert record.seats == 0
        assert record.months_subscribed == 0

    def test_oversized_counts_take_defaults(self):
        record = normalize_row({
            **FULL_ROW,
            "Seats": "99999999999999999999",
            "Months Subscribed": "99999999999999999999",
        })
        assert record.seats == 1
        assert record.months_subscribed == 0

    def test_largest_count_kept(self):
        record = normalize_row({**FULL_ROW, "Seats": "2147483647", "Months Subscribed": "-99999999999999999999"})
        assert record.seats == 2147483647
        assert record.months_subscribed == 0

    def test_missing_identifier_rejected(self):
        with pytest.raises(RowParseError):
            normalize_row({**FULL_ROW, "Stripe User ID": ""})

    def test_missing_email_rejected(self):
        with pytest.raises(RowParseError):
            normalize_row({"Stripe User ID": "A"})

    def test_whitespace_only_identifier_rejected(self):
        with pytest.raises(RowParseError):
            normalize_row({**FULL_ROW, "Stripe User ID": "   "})

    def test_unknown_columns_ignored(self):
        record = normalize_row({**FULL_ROW, "Favourite Colour": "blue"})
        assert record.stripe_user_id == "cus_001"


class TestCleanPlanName:
    """Tests for clean_plan_name."""

    def test_strips_billing_suffix(self):
        assert clean_plan_name("Pro (default_monthly)") == "Pro"
        assert clean_plan_name("Team (Annual) ") == "Team"

    def test_keeps_plain_names(self):
        assert clean_plan_name("Enterprise") == "Enterprise"
        assert clean_plan_name("") == ""

    def test_only_trailing_parenthetical(self):
        assert clean_plan_name("Pro (EU) Plus") == "Pro (EU) Plus"

    def test_record_keeps_raw_plan(self):
        assert normalize_row(FULL_ROW).plans == "Pro (default_monthly)"


class TestFrameConversion:
    """Tests for record <-> DataFrame conversion."""

    def test_round_trip_preserves_order_and_values(self):
        records = [
            normalize_row(FULL_ROW),
            normalize_row({**FULL_ROW, "Stripe User ID": "cus_002", "Country": ""}),
        ]
        df = records_to_frame(records)
        assert list(df.columns) == CANONICAL_COLUMNS
        assert frame_to_records(df) == records

    def test_empty(self):
        df = records_to_frame([])
        assert df.empty
        assert list(df.columns) == CANONICAL_COLUMNS
        assert frame_to_records(df) == []

    def test_record_to_row_uses_headers(self):
        row = record_to_row(normalize_row(FULL_ROW))
        assert row["Stripe User ID"] == "cus_001"
        assert row["MRR Cancelled"] == 49.5
