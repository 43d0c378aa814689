"""
Unit tests for the filter engine.
"""

import sys
from dataclasses import replace
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from churn_analytics.filters import (
    DEFAULT_FILTERS,
    FilterConfig,
    NumericRange,
    apply_filters,
    filter_options,
)
from churn_analytics.normalization import ChurnRecord


def make_record(stripe_user_id, **overrides):
    values = dict(
        email=f"{stripe_user_id.lower()}@example.com",
        stripe_user_id=stripe_user_id,
        plans="Pro (default_monthly)",
        activity="Cancelled",
        mrr_cancelled=10.0,
        cancellation_date="2024-01-15",
        sign_up_date="2023-01-01",
        seats=1,
        months_subscribed=6,
        country="US",
        crm="No_CRM",
    )
    values.update(overrides)
    return ChurnRecord(**values)


RECORDS = [
    make_record("A", cancellation_date="2024-01-05", mrr_cancelled=50.0, country="US", crm="HubSpot"),
    make_record("B", cancellation_date="2024-02-10", plans="Team (Annual)", country="DE", seats=5),
    make_record("C", cancellation_date="2024-03-20", plans="Enterprise", country="", months_subscribed=30),
    make_record("D", cancellation_date="not a date", country="US", mrr_cancelled=0.0),
    make_record("E", cancellation_date="", plans="", country="FR", crm="Salesforce", months_subscribed=1),
]


def ids(records):
    return [r.stripe_user_id for r in records]


class TestApplyFilters:
    """Tests for apply_filters."""

    def test_default_filters_keep_everything(self):
        assert DEFAULT_FILTERS.is_default
        assert apply_filters(RECORDS, DEFAULT_FILTERS) == RECORDS

    def test_result_is_ordered_subset(self):
        config = FilterConfig(country="US")
        result = apply_filters(RECORDS, config)
        assert ids(result) == ["A", "D"]
        assert all(r in RECORDS for r in result)

    def test_idempotent(self):
        config = FilterConfig(date_start="2024-01-01", plan="pro", mrr_range=NumericRange(5, 100))
        once = apply_filters(RECORDS, config)
        assert apply_filters(once, config) == once

    def test_inputs_not_mutated(self):
        records = list(RECORDS)
        apply_filters(records, FilterConfig(country="DE"))
        assert records == RECORDS

    def test_date_range_inclusive(self):
        config = FilterConfig(date_start="2024-01-05", date_end="2024-02-10")
        assert ids(apply_filters(RECORDS, config)) == ["A", "B"]

    def test_single_sided_date_bounds(self):
        assert ids(apply_filters(RECORDS, FilterConfig(date_start="2024-02-01"))) == ["B", "C"]
        assert ids(apply_filters(RECORDS, FilterConfig(date_end="2024-01-31"))) == ["A"]

    def test_unparseable_record_dates_only_excluded_by_date_filter(self):
        assert "D" in ids(apply_filters(RECORDS, FilterConfig()))
        assert "E" in ids(apply_filters(RECORDS, FilterConfig()))
        result = ids(apply_filters(RECORDS, FilterConfig(date_start="2000-01-01")))
        assert "D" not in result
        assert "E" not in result

    def test_unparseable_bound_ignored(self):
        config = FilterConfig(date_start="someday")
        assert apply_filters(RECORDS, config) == RECORDS

    def test_empty_bounds_mean_unbounded(self):
        assert apply_filters(RECORDS, FilterConfig(date_start="", date_end="  ")) == RECORDS

    def test_plan_substring_case_insensitive(self):
        assert ids(apply_filters(RECORDS, FilterConfig(plan="PRO"))) == ["A", "D"]
        assert ids(apply_filters(RECORDS, FilterConfig(plan="annual"))) == ["B"]

    def test_country_exact(self):
        assert ids(apply_filters(RECORDS, FilterConfig(country="DE"))) == ["B"]
        assert apply_filters(RECORDS, FilterConfig(country="D")) == []

    def test_crm_exact(self):
        assert ids(apply_filters(RECORDS, FilterConfig(crm="No_CRM"))) == ["B", "C", "D"]

    def test_numeric_ranges_inclusive(self):
        assert ids(apply_filters(RECORDS, FilterConfig(mrr_range=NumericRange(10, 50)))) == ["A", "B", "C", "E"]
        assert ids(apply_filters(RECORDS, FilterConfig(seats_range=NumericRange(5, 5)))) == ["B"]
        assert ids(apply_filters(RECORDS, FilterConfig(tenure_range=NumericRange(25, 999999)))) == ["C"]

    def test_predicates_are_anded(self):
        config = FilterConfig(country="US", mrr_range=NumericRange(1, 100))
        assert ids(apply_filters(RECORDS, config)) == ["A"]

    def test_no_match(self):
        assert apply_filters(RECORDS, FilterConfig(plan="does-not-exist")) == []
        assert apply_filters([], DEFAULT_FILTERS) == []

    def test_replace_yields_non_default(self):
        config = replace(DEFAULT_FILTERS, country="US")
        assert not config.is_default
        assert DEFAULT_FILTERS.country == "all"


class TestFilterOptions:
    """Tests for filter_options."""

    def test_options(self):
        options = filter_options(RECORDS)
        assert options.plans == ["Enterprise", "Pro", "Team"]
        assert options.countries == ["DE", "FR", "US"]
        assert options.crms == ["HubSpot", "No_CRM", "Salesforce"]

    def test_empty(self):
        options = filter_options([])
        assert options.plans == []
        assert options.countries == []
        assert options.crms == []
