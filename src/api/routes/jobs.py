"""FastAPI routes for label jobs.

Submitting a job returns immediately; the job runs on the event loop and
the dashboard polls ``GET /jobs/{id}`` until it reaches a terminal status.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.dependencies import JobRunner, get_job_runner, get_job_store
from src.api.schemas import JobCreatedResponse, serialize_job
from src.services.job_store import JobStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])

# Strong references so running jobs are not garbage collected mid-flight
_running_jobs: set[asyncio.Task] = set()


async def _run_job_safe(job_id: str, runner: JobRunner, job_store: JobStore) -> None:
    """Run a job, marking it FAILED if setup itself blows up."""
    try:
        await runner(job_id)
    except Exception as e:
        logger.exception("Label job %s crashed: %s", job_id, e)
        job_store.fail(job_id, str(e))


@router.post("", response_model=JobCreatedResponse, status_code=202)
async def submit_job(
    job_store: JobStore = Depends(get_job_store),
    runner: JobRunner = Depends(get_job_runner),
) -> JobCreatedResponse:
    """Start a label job for the latest exported batch.

    Returns:
        The new job id. Processing begins after the response is sent.
    """
    job = job_store.create_job()
    task = asyncio.create_task(_run_job_safe(job.id, runner, job_store))
    _running_jobs.add(task)
    task.add_done_callback(_running_jobs.discard)
    return JobCreatedResponse(job_id=job.id)


@router.get("")
def list_jobs(
    limit: int = Query(20, ge=1, le=200),
    job_store: JobStore = Depends(get_job_store),
) -> list[dict[str, Any]]:
    """Most recent jobs first."""
    return [serialize_job(job) for job in job_store.list_jobs(limit=limit)]


@router.get("/{job_id}")
def get_job(
    job_id: str,
    job_store: JobStore = Depends(get_job_store),
) -> dict[str, Any]:
    """Current state of a job.

    Raises:
        HTTPException: 404 if the job does not exist.
    """
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return serialize_job(job)
