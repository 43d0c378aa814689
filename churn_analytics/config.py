"""
Configuration Module - Centralized Configuration Hub

Contains all configurable parameters for the churn analytics pipeline:
- Directory paths
- CSV schema (recognized headers and their canonical field names)
- Filter defaults and view limits
- Tenure segment definitions
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


# ============================================================================
# DIRECTORY PATHS
# ============================================================================

# Project root directory (parent of churn_analytics/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

DATA_PATH = PROJECT_ROOT / "data"
UPLOADS_PATH = DATA_PATH / "uploads"
EXPORT_PATH = DATA_PATH / "exports"

# Canonical record set and upload history
STORE_PATH = DATA_PATH / "churn.duckdb"

CONFIG_DIR = PROJECT_ROOT / "config"


# ============================================================================
# CSV SCHEMA
# ============================================================================
# Human-readable header -> canonical (camelCase) field name.
# Order is the export column order.

CSV_HEADERS: dict[str, str] = {
    "Email": "email",
    "Stripe User ID": "stripeUserId",
    "Plans": "plans",
    "Activity": "activity",
    "MRR Cancelled": "mrrCancelled",
    "Cancellation date": "cancellationDate",
    "Sign Up Date": "signUpDate",
    "Seats": "seats",
    "Months Subscribed": "monthsSubscribed",
    "Country": "country",
    "CRM": "crm",
}

EXPORT_COLUMNS = list(CSV_HEADERS)

ALLOWED_SUFFIXES = (".csv",)
CSV_ENCODINGS = ["utf-8", "latin-1", "cp1252"]


# ============================================================================
# SETTINGS
# ============================================================================
# Note: Settings are loaded from config/settings.json if available (see bottom of file)
# Default values are defined in _SETTINGS_DEFAULT below.

_SETTINGS_DEFAULT: dict[str, Any] = {
    "no_crm_label": "No_CRM",
    "unknown_label": "Unknown",
    "wildcard": "all",
    # Upper bound of the "effectively unbounded" numeric filter ranges
    "range_max": 999999,
    "preview_sample_size": 3,
    "geo_limit": 15,
    "top_countries_limit": 10,
    "top_plans_limit": 5,
    "default_time_view": "month",
    "export_filename_pattern": "churn_data_{date}.csv",
}

# Closed month ranges; the last bucket is open-ended
TENURE_SEGMENTS: list[tuple[str, int, float]] = [
    ("0-3 months", 0, 3),
    ("4-6 months", 4, 6),
    ("7-12 months", 7, 12),
    ("13-24 months", 13, 24),
    ("25+ months", 25, float("inf")),
]

TIME_VIEWS = ("month", "quarter")


# ============================================================================
# CONFIG LOADING AND VALIDATION
# ============================================================================

def _load_settings_from_json(defaults: dict[str, Any]) -> dict[str, Any]:
    """Load settings from JSON file, merge with defaults."""
    settings_file = CONFIG_DIR / "settings.json"
    if settings_file.exists():
        try:
            with open(settings_file, "r") as f:
                data = json.load(f)
                if "settings" in data and isinstance(data["settings"], dict):
                    merged = defaults.copy()
                    merged.update(data["settings"])
                    return merged
        except Exception as e:
            import warnings
            warnings.warn(f"Failed to load settings from JSON: {e}. Using defaults.")
    return defaults


SETTINGS = _load_settings_from_json(_SETTINGS_DEFAULT)

NO_CRM = SETTINGS["no_crm_label"]
UNKNOWN = SETTINGS["unknown_label"]
WILDCARD = SETTINGS["wildcard"]
RANGE_MAX = SETTINGS["range_max"]
PREVIEW_SAMPLE_SIZE = SETTINGS["preview_sample_size"]
GEO_LIMIT = SETTINGS["geo_limit"]
TOP_COUNTRIES_LIMIT = SETTINGS["top_countries_limit"]
TOP_PLANS_LIMIT = SETTINGS["top_plans_limit"]
DEFAULT_TIME_VIEW = SETTINGS["default_time_view"]


def load_config() -> dict[str, Any]:
    """
    Load and return all configuration as a dictionary.

    Returns:
        Dictionary with all configuration values.
    """
    return {
        "project_root": PROJECT_ROOT,
        "data_path": DATA_PATH,
        "uploads_path": UPLOADS_PATH,
        "export_path": EXPORT_PATH,
        "store_path": STORE_PATH,
        "config_dir": CONFIG_DIR,
        "csv_headers": CSV_HEADERS,
        "tenure_segments": TENURE_SEGMENTS,
        "settings": SETTINGS,
    }


def validate_config() -> tuple[bool, list[str]]:
    """
    Validate configuration settings.

    Returns:
        Tuple of (is_valid, list_of_errors).
    """
    errors = []

    for key in ("preview_sample_size", "geo_limit", "top_countries_limit", "top_plans_limit"):
        value = SETTINGS.get(key)
        if not isinstance(value, int) or value < 0:
            errors.append(f"Invalid {key}: {value}")

    if not isinstance(SETTINGS.get("range_max"), (int, float)) or SETTINGS["range_max"] <= 0:
        errors.append(f"Invalid range_max: {SETTINGS.get('range_max')}")

    if SETTINGS.get("default_time_view") not in TIME_VIEWS:
        errors.append(f"Invalid default_time_view: {SETTINGS.get('default_time_view')}")

    # Tenure segments must be contiguous and ascending
    previous_high: float = -1
    for label, low, high in TENURE_SEGMENTS:
        if low != previous_high + 1:
            errors.append(f"Tenure segment {label} does not start where the previous one ends")
        if high < low:
            errors.append(f"Tenure segment {label} has high < low")
        previous_high = high

    return len(errors) == 0, errors


def ensure_directories() -> None:
    """Create required directories if they don't exist."""
    DATA_PATH.mkdir(parents=True, exist_ok=True)
    UPLOADS_PATH.mkdir(parents=True, exist_ok=True)
    EXPORT_PATH.mkdir(parents=True, exist_ok=True)
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def save_config_to_json(filepath: Path | str | None = None) -> None:
    """
    Save the active settings to a JSON file.

    Args:
        filepath: Output path. If None, saves to CONFIG_DIR/settings.json.
    """
    if filepath is None:
        ensure_directories()
        filepath = CONFIG_DIR / "settings.json"

    filepath = Path(filepath)

    with open(filepath, "w") as f:
        json.dump({"settings": SETTINGS}, f, indent=2)


if __name__ == "__main__":
    print("=" * 60)
    print("Configuration Validation")
    print("=" * 60)

    is_valid, errors = validate_config()

    if is_valid:
        print("[OK] Configuration is valid")
    else:
        print("[ERROR] Configuration has errors:")
        for error in errors:
            print(f"  - {error}")

    print("\nDirectory paths:")
    print(f"  Project Root: {PROJECT_ROOT}")
    print(f"  Data: {DATA_PATH}")
    print(f"  Store: {STORE_PATH}")
    print(f"  Exports: {EXPORT_PATH}")

    print(f"\nRecognized CSV headers: {len(CSV_HEADERS)}")
    print(f"Tenure segments: {[label for label, _, _ in TENURE_SEGMENTS]}")
