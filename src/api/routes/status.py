"""Service status for the dashboard header."""

from typing import Any

from fastapi import APIRouter, Depends

from src.api.dependencies import get_batch_store, get_config, get_job_store
from src.cli.config import FulfillmentConfig
from src.db.models import TERMINAL_STATUSES, JobStatus
from src.services.batch_store import BatchStore
from src.services.job_store import JobStore

router = APIRouter(prefix="/status", tags=["status"])


@router.get("")
def get_status(
    config: FulfillmentConfig = Depends(get_config),
    job_store: JobStore = Depends(get_job_store),
    batch_store: BatchStore = Depends(get_batch_store),
) -> dict[str, Any]:
    """Which integrations are configured and what is in flight."""
    latest = batch_store.get_latest_batch()
    active = [
        job.id
        for job in job_store.list_jobs()
        if JobStatus(job.status) not in TERMINAL_STATUSES
    ]
    return {
        "status": "ok",
        "shopifyConfigured": bool(
            config.shopify.store_domain
            and config.shopify.client_id
            and config.shopify.client_secret
        ),
        "shiprocketConfigured": bool(config.carrier.email and config.carrier.password),
        "lookbackDays": config.shopify.lookback_days,
        "latestBatchId": latest.id if latest else None,
        "activeJobs": active,
    }
