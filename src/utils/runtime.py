"""Runtime environment detection for dev vs PyInstaller bundled mode."""

import sys
from pathlib import Path


def is_bundled() -> bool:
    """Return True when running from a PyInstaller bundle."""
    return getattr(sys, "frozen", False)


def get_project_root() -> Path:
    """Return the directory that holds the project's data in dev mode.

    In dev mode this is the repository root (parent of src/). In a
    one-folder PyInstaller build it is the directory containing the
    executable.
    """
    if is_bundled():
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent.parent.parent
