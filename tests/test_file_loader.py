"""
Unit tests for CSV loading and export.
"""

import io
import sys
from datetime import date
from pathlib import Path

import pytest

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from churn_analytics.file_loader import (
    CSVFormatError,
    decode_bytes,
    default_export_filename,
    export_csv,
    load_csv,
    load_csv_buffer,
    read_csv_text,
    sniff_csv_delimiter,
    write_export,
)
from churn_analytics.normalization import ChurnRecord

HEADER = "Email,Stripe User ID,Plans,MRR Cancelled,Cancellation date,Country"
EXPORT_HEADER = (
    "Email,Stripe User ID,Plans,Activity,MRR Cancelled,Cancellation date,"
    "Sign Up Date,Seats,Months Subscribed,Country,CRM"
)


def make_record(**overrides):
    values = dict(
        email="a@example.com",
        stripe_user_id="A",
        plans="Pro",
        activity="Cancelled",
        mrr_cancelled=10.0,
        cancellation_date="2024-01-05",
        sign_up_date="2023-01-01",
        seats=1,
        months_subscribed=12,
        country="US",
        crm="No_CRM",
    )
    values.update(overrides)
    return ChurnRecord(**values)


class TestReadCsvText:
    """Tests for read_csv_text."""

    def test_rows_are_strings_keyed_by_header(self):
        rows = read_csv_text(f"{HEADER}\na@x.com,A,Pro,10,2024-01-05,US\nb@x.com,B,Team,20.5,2024-02-01,DE\n")
        assert len(rows) == 2
        assert rows[0]["Stripe User ID"] == "A"
        assert rows[1]["MRR Cancelled"] == "20.5"
        assert rows[1]["Country"] == "DE"

    def test_empty_cells_stay_empty_strings(self):
        rows = read_csv_text(f"{HEADER}\na@x.com,A,,,,\n")
        assert rows[0]["Plans"] == ""
        assert rows[0]["Country"] == ""

    def test_blank_lines_skipped(self):
        rows = read_csv_text(f"{HEADER}\n\na@x.com,A,Pro,10,2024-01-05,US\n\n")
        assert len(rows) == 1

    def test_quoted_field_with_comma(self):
        rows = read_csv_text(f'{HEADER}\na@x.com,A,"Pro, Annual",10,2024-01-05,US\n')
        assert rows[0]["Plans"] == "Pro, Annual"
        assert rows[0]["Country"] == "US"

    def test_header_whitespace_stripped(self):
        rows = read_csv_text(" Email , Stripe User ID \na@x.com,A\n")
        assert rows[0]["Stripe User ID"] == "A"

    def test_semicolon_delimiter_sniffed(self):
        rows = read_csv_text("Email;Stripe User ID;Country\na@x.com;A;US\nb@x.com;B;FR\n")
        assert rows[1]["Country"] == "FR"

    def test_header_only(self):
        assert read_csv_text(f"{HEADER}\n") == []

    def test_empty_text_rejected(self):
        with pytest.raises(CSVFormatError):
            read_csv_text("")
        with pytest.raises(CSVFormatError):
            read_csv_text("   \n\n")

    def test_short_rows_missing_cells(self):
        rows = read_csv_text("Email,Stripe User ID,Country\na@x.com,A,US\nb@x.com,B\n")
        assert len(rows) == 2
        assert rows[1]["Stripe User ID"] == "B"


class TestSniffDelimiter:
    def test_sniff(self):
        assert sniff_csv_delimiter("a|b|c\n1|2|3\n") == "|"
        assert sniff_csv_delimiter("") is None


class TestLoading:
    """Tests for file and buffer loading."""

    def test_decode_latin1_fallback(self):
        assert decode_bytes("café".encode("latin-1")) == "café"

    def test_load_csv_buffer_bytes(self):
        buffer = io.BytesIO(f"{HEADER}\na@x.com,A,Pro,10,2024-01-05,US\n".encode("utf-8"))
        rows = load_csv_buffer(buffer)
        assert rows[0]["Email"] == "a@x.com"

    def test_load_csv_buffer_text(self):
        rows = load_csv_buffer(io.StringIO(f"{HEADER}\na@x.com,A,Pro,10,2024-01-05,US\n"))
        assert rows[0]["Plans"] == "Pro"

    def test_load_csv_from_disk(self, tmp_path):
        path = tmp_path / "upload.csv"
        path.write_text(f"{HEADER}\na@x.com,A,Pro,10,2024-01-05,US\n", encoding="utf-8")
        rows = load_csv(path)
        assert len(rows) == 1

    def test_load_csv_rejects_other_formats(self, tmp_path):
        path = tmp_path / "upload.xlsx"
        path.write_bytes(b"not a csv")
        with pytest.raises(CSVFormatError):
            load_csv(path)


class TestExport:
    """Tests for CSV export."""

    def test_header_order(self):
        assert export_csv([]) == EXPORT_HEADER

    def test_row_rendering(self):
        text = export_csv([make_record(mrr_cancelled=10.0), make_record(stripe_user_id="B", mrr_cancelled=49.5, seats=3)])
        lines = text.split("\n")
        assert len(lines) == 3
        assert lines[1] == "a@example.com,A,Pro,Cancelled,10,2024-01-05,2023-01-01,1,12,US,No_CRM"
        assert lines[2].split(",")[4] == "49.5"
        assert lines[2].split(",")[7] == "3"

    def test_empty_fields_rendered_empty(self):
        line = export_csv([make_record(country="", plans="")]).split("\n")[1]
        fields = line.split(",")
        assert fields[2] == ""
        assert fields[9] == ""

    def test_default_filename(self):
        assert default_export_filename(date(2024, 3, 1)) == "churn_data_2024-03-01.csv"

    def test_write_export(self, tmp_path):
        out = write_export([make_record()], tmp_path / "exports" / "out.csv")
        assert out.exists()
        assert out.read_text(encoding="utf-8").startswith("Email,Stripe User ID")
