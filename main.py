"""
Churn Analytics CLI - ingest, report, export

Command-line entry point for the churn analytics pipeline. Works against the
same DuckDB store as the Streamlit dashboard:

1. ingest:  parse CSV files, deduplicate against the store, merge new records
2. report:  print headline metrics and breakdowns for the filtered subset
3. export:  write the filtered subset to CSV
4. history: list past uploads
5. clear:   remove every record and the upload history

Usage:
    python main.py ingest FILE [FILE ...] [--yes]
    python main.py report [--from DATE] [--to DATE] [--plan P] [--country C] [--crm X] [--view month|quarter]
    python main.py export [--output PATH] [filter options]
    python main.py history
    python main.py clear --yes

Examples:
    python main.py ingest data/uploads/churn_march.csv
    python main.py report --from 2024-01-01 --view quarter
    python main.py export --country US --output us_churn.csv
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd

from churn_analytics.config import DEFAULT_TIME_VIEW, EXPORT_PATH, RANGE_MAX, STORE_PATH, TIME_VIEWS, WILDCARD
from churn_analytics.dashboard import build_dashboard
from churn_analytics.deduplication import UploadOutcome
from churn_analytics.file_loader import CSVFormatError, default_export_filename, load_csv, write_export
from churn_analytics.filters import FilterConfig, NumericRange, apply_filters
from churn_analytics.logger import set_console_level
from churn_analytics.persistence import DuckDBPersistence
from churn_analytics.store import ChurnStore


def log(message: str, level: str = "INFO") -> None:
    """Simple logging function."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] [{level}] {message}")


def open_store(db_path: str | Path | None = None) -> ChurnStore:
    store = ChurnStore(DuckDBPersistence(db_path or STORE_PATH))
    store.load()
    return store


def filters_from_args(args: argparse.Namespace) -> FilterConfig:
    return FilterConfig(
        date_start=args.date_from,
        date_end=args.date_to,
        plan=args.plan,
        country=args.country,
        crm=args.crm,
        mrr_range=NumericRange(args.mrr_min, args.mrr_max),
        seats_range=NumericRange(args.seats_min, args.seats_max),
        tenure_range=NumericRange(args.tenure_min, args.tenure_max),
    )


def _print_preview(outcome: UploadOutcome) -> None:
    log(f"  {outcome.new_count} new, {outcome.duplicate_count} duplicates, {outcome.error_count} errors")
    for record in outcome.sample_duplicates:
        log(f"    duplicate: {record.stripe_user_id} <{record.email}>")
    for bad in outcome.sample_errors:
        log(f"    row {bad.row_number}: {bad.reason}", "WARNING")


def run_ingest(store: ChurnStore, files: list[str], assume_yes: bool = False) -> int:
    """Ingest files one at a time; a file that cannot be parsed is skipped whole."""
    failed = 0
    for file in files:
        log(f"Ingesting {file}...")
        try:
            rows = load_csv(file)
        except (CSVFormatError, OSError) as e:
            log(f"Skipping {file}: {e}", "ERROR")
            failed += 1
            continue

        def confirm(outcome: UploadOutcome) -> bool:
            _print_preview(outcome)
            if assume_yes:
                return True
            answer = input(f"  Add {outcome.new_count} new records and skip duplicates? [y/N] ")
            return answer.strip().lower() in ("y", "yes")

        outcome, committed = store.ingest(rows, confirm=confirm)
        if committed:
            log(
                f"Upload complete: {outcome.new_count} new records added, "
                f"{outcome.duplicate_count} duplicates skipped, {outcome.error_count} errors"
            )
        else:
            log(f"Upload of {file} cancelled", "WARNING")

    log(f"Store now holds {len(store)} records")
    if store.last_error is not None:
        log(f"Storage problem: {store.last_error}", "ERROR")
        return 1
    return 1 if failed else 0


def run_report(store: ChurnStore, filters: FilterConfig, time_view: str) -> int:
    view = build_dashboard(store.current_records(), filters, time_view)
    m = view.metrics

    with pd.option_context("display.width", 120, "display.max_columns", 10, "display.float_format", "{:,.2f}".format):
        print("=" * 60)
        print(f"CHURN REPORT ({len(view.filtered)} of {view.total_records} records)")
        print("=" * 60)
        print(f"Churned customers:      {m.total_churned_customers:,}")
        print(f"MRR lost:               ${m.total_mrr_lost:,.2f}")
        print(f"Avg customer lifetime:  {m.avg_customer_lifetime:.1f} months")
        print(f"Avg MRR per customer:   ${m.avg_mrr_per_customer:,.2f}")
        for title, frame in (
            (f"Trend by {time_view}", view.trend),
            ("Top plans", view.top_plans),
            ("Top countries", view.top_countries),
            ("Tenure distribution", view.tenure),
            ("CRM breakdown", view.crm),
        ):
            print(f"\n{title}:")
            print(frame.to_string(index=False) if not frame.empty else "  (none)")
    return 0


def run_export(store: ChurnStore, filters: FilterConfig, output: str | None) -> int:
    records = apply_filters(store.current_records(), filters)
    out_path = Path(output) if output else EXPORT_PATH / default_export_filename()
    write_export(records, out_path)
    log(f"Exported {len(records)} records to {out_path}")
    return 0


def run_history(store: ChurnStore) -> int:
    if not store.history:
        log("No uploads yet")
        return 0
    for entry in store.history:
        log(
            f"{entry.timestamp}: +{entry.records_added} records, "
            f"{entry.duplicates_skipped} duplicates skipped, {entry.total_records} total"
        )
    return 0


def run_clear(store: ChurnStore, assume_yes: bool = False) -> int:
    if not assume_yes:
        answer = input(f"Clear all {len(store)} records? This cannot be undone. [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            log("Clear cancelled")
            return 0
    store.clear()
    log("All churn data cleared")
    return 0 if store.last_error is None else 1


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="date_from", default=None, help="Earliest cancellation date (inclusive)")
    parser.add_argument("--to", dest="date_to", default=None, help="Latest cancellation date (inclusive)")
    parser.add_argument("--plan", default=WILDCARD, help="Plan name, case-insensitive substring")
    parser.add_argument("--country", default=WILDCARD, help="Exact country")
    parser.add_argument("--crm", default=WILDCARD, help="Exact CRM value")
    parser.add_argument("--mrr-min", type=float, default=0)
    parser.add_argument("--mrr-max", type=float, default=RANGE_MAX)
    parser.add_argument("--seats-min", type=float, default=0)
    parser.add_argument("--seats-max", type=float, default=RANGE_MAX)
    parser.add_argument("--tenure-min", type=float, default=0, help="Minimum months subscribed")
    parser.add_argument("--tenure-max", type=float, default=RANGE_MAX, help="Maximum months subscribed")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Churn Analytics - ingest and analyze customer cancellations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py ingest march.csv april.csv     # Merge two uploads
  python main.py report --view quarter          # Quarterly trend
  python main.py export --plan pro              # Export Pro-plan churn
        """
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the DuckDB store (optional, uses data/churn.duckdb if not provided)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging on the console"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Merge CSV files into the store")
    ingest.add_argument("files", nargs="+")
    ingest.add_argument("--yes", "-y", action="store_true", help="Merge without confirming duplicates")

    report = sub.add_parser("report", help="Print metrics for the filtered subset")
    _add_filter_arguments(report)
    report.add_argument("--view", choices=TIME_VIEWS, default=DEFAULT_TIME_VIEW)

    export = sub.add_parser("export", help="Export the filtered subset to CSV")
    _add_filter_arguments(export)
    export.add_argument("--output", "-o", default=None)

    sub.add_parser("history", help="List past uploads")

    clear = sub.add_parser("clear", help="Remove all records and history")
    clear.add_argument("--yes", "-y", action="store_true")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point with argument parsing."""
    args = build_parser().parse_args(argv)
    if args.verbose:
        set_console_level(logging.DEBUG)
    store = None

    try:
        store = open_store(args.db)

        if args.command == "ingest":
            return run_ingest(store, args.files, assume_yes=args.yes)
        if args.command == "report":
            return run_report(store, filters_from_args(args), args.view)
        if args.command == "export":
            return run_export(store, filters_from_args(args), args.output)
        if args.command == "history":
            return run_history(store)
        if args.command == "clear":
            return run_clear(store, assume_yes=args.yes)
        return 1

    except Exception as e:
        log(f"Command failed: {e}", "ERROR")
        import traceback
        traceback.print_exc()
        return 1

    finally:
        if store is not None and isinstance(store.persistence, DuckDBPersistence):
            store.persistence.close()


if __name__ == "__main__":
    sys.exit(main())
