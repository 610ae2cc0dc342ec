"""Report downloads (label-job outputs such as high-risk and failure CSVs)."""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from src.api.dependencies import get_report_storage
from src.services.report_storage import ReportStorage

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/{filename}")
def download_file(
    filename: str,
    reports: ReportStorage = Depends(get_report_storage),
) -> FileResponse:
    """Download a stored report.

    Unsafe names are rejected with 400 and missing files with 404 by the
    application's exception handlers.
    """
    path = reports.resolve(filename)
    return FileResponse(path, media_type="text/csv", filename=path.name)
