"""
Unit tests for shared scalar value parsing.
"""

import sys
from pathlib import Path

import pandas as pd

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from churn_analytics.value_parser import parse_date_value, parse_int_value, parse_numeric_value


def test_parse_currency():
    assert parse_numeric_value("$1,234.56") == 1234.56
    assert parse_numeric_value("USD 1,234.56") == 1234.56


def test_parse_negative_and_parentheses():
    assert parse_numeric_value("-10") == -10.0
    assert parse_numeric_value("(1,234)") == -1234.0


def test_parse_european_decimal():
    assert parse_numeric_value("1.234,56") == 1234.56
    assert parse_numeric_value("10,5") == 10.5


def test_parse_non_numeric_is_none():
    assert parse_numeric_value("abc") is None
    assert parse_numeric_value("") is None
    assert parse_numeric_value("N/A") is None
    assert parse_numeric_value(None) is None
    assert parse_numeric_value(float("nan")) is None


def test_parse_native_numbers():
    assert parse_numeric_value(5) == 5.0
    assert parse_numeric_value(-2.5) == -2.5


def test_parse_int_truncates():
    assert parse_int_value("2.7") == 2
    assert parse_int_value("12") == 12
    assert parse_int_value("-3") == -3
    assert parse_int_value("many") is None


def test_parse_date():
    assert parse_date_value("2024-01-15") == pd.Timestamp("2024-01-15")
    assert parse_date_value("not a date") is None
    assert parse_date_value("") is None
    assert parse_date_value(None) is None


def test_parse_date_drops_timezone():
    parsed = parse_date_value("2024-01-15T10:00:00Z")
    assert parsed == pd.Timestamp("2024-01-15 10:00:00")
    assert parsed.tzinfo is None
