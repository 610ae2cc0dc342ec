"""Storage for job reports (high-risk and failure CSVs).

Reports are written under the data directory's ``reports`` folder and
served back by name through the download endpoint, which only accepts
plain filenames.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Protocol

from src.errors.domain import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SAFE_FILENAME = re.compile(r"^[A-Za-z0-9_\-.]+$")

DOWNLOAD_ROUTE = "/api/v1/files"


def validate_filename(filename: str) -> str:
    """Reject anything but a plain alphanumeric/underscore/dash/dot name.

    Raises:
        ValidationError: On an unsafe name (including ``.`` and ``..``).
    """
    if not filename or not SAFE_FILENAME.match(filename) or filename in {".", ".."}:
        raise ValidationError("Invalid filename")
    return filename


def download_url(filename: str) -> str:
    """API path a client uses to fetch a stored report."""
    return f"{DOWNLOAD_ROUTE}/{filename}"


def high_risk_filename(job_id: str) -> str:
    """Name of the high-risk report for a job."""
    return f"HIGH_RISK_{job_id}.csv"


def failed_filename(job_id: str) -> str:
    """Name of the failed-orders report for a job."""
    return f"FAILED_{job_id}.csv"


class ReportStorage(Protocol):
    """Storage contract used by the label job for report persistence."""

    def save(self, filename: str, content: bytes) -> str:
        """Persist a report and return its download URL."""

    def resolve(self, filename: str) -> Path:
        """Return the local path of a stored report."""


class LocalReportStorage:
    """Filesystem-backed report storage."""

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)

    def save(self, filename: str, content: bytes) -> str:
        validate_filename(filename)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        path = self.base_dir / filename
        path.write_bytes(content)
        logger.info("Wrote report %s (%d bytes)", path, len(content))
        return download_url(filename)

    def resolve(self, filename: str) -> Path:
        """Return the path of an existing report.

        Raises:
            ValidationError: Unsafe filename.
            NotFoundError: No such report.
        """
        validate_filename(filename)
        path = self.base_dir / filename
        if not path.is_file():
            raise NotFoundError("File", filename)
        return path


def build_report_storage(base_dir: str | Path | None = None) -> LocalReportStorage:
    """Build report storage rooted at ``base_dir`` or the default reports dir."""
    if base_dir is None:
        from src.utils.paths import get_reports_dir
        base_dir = get_reports_dir()
    return LocalReportStorage(base_dir)
