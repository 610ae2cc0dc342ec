"""File path resolution for persistent data and reports.

In dev mode (not bundled), paths resolve relative to the project root.
In bundled mode (PyInstaller), paths use platform-appropriate directories:
  macOS: ~/Library/Application Support/com.fulfillmentdesk.app/
  Linux: ~/.local/share/com.fulfillmentdesk.app/

FULFILLMENT_DATA_DIR overrides both.
"""

import os
from pathlib import Path

import platformdirs

from src.utils.runtime import get_project_root, is_bundled

APP_NAME = "FulfillmentDesk"
_BUNDLE_ID = "com.fulfillmentdesk.app"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB, history)."""
    override = os.environ.get("FULFILLMENT_DATA_DIR", "").strip()
    if override:
        return Path(override)
    if is_bundled():
        return Path(platformdirs.user_data_dir(_BUNDLE_ID, appauthor=False))
    return get_project_root() / "data"


def get_reports_dir() -> Path:
    """Return the directory for generated report files (CSV/XLSX)."""
    return get_data_dir() / "reports"


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "fulfillment.db"


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    for d in [get_data_dir(), get_reports_dir()]:
        d.mkdir(parents=True, exist_ok=True)
