"""Initialize project directory structure. Idempotent; safe to run repeatedly."""

from churn_analytics.config import CONFIG_DIR, DATA_PATH, EXPORT_PATH, PROJECT_ROOT, UPLOADS_PATH

DIRS = [
    (DATA_PATH, "DuckDB store holding churn records and upload history"),
    (UPLOADS_PATH, "Churn CSV files waiting to be ingested"),
    (EXPORT_PATH, "CSV exports of filtered records"),
    (CONFIG_DIR, "Optional settings.json overrides"),
]


def ensure_dirs() -> None:
    """Create the store, upload, export and config directories. No output."""
    for path, _ in DIRS:
        path.mkdir(parents=True, exist_ok=True)


def main() -> None:
    for path, purpose in DIRS:
        existed = path.exists()
        path.mkdir(parents=True, exist_ok=True)
        status = "exists" if existed else "created"
        print(f"  {path.relative_to(PROJECT_ROOT)}: {status} ({purpose})")


if __name__ == "__main__":
    print("Project directories:")
    main()
    print("Done.")
