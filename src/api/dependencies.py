"""FastAPI dependencies shared by the route modules.

Tests replace any of these through ``app.dependency_overrides``.
"""

import os
from collections.abc import AsyncIterator, Awaitable, Callable
from functools import lru_cache, partial

from fastapi import Depends

from src.cli.config import FulfillmentConfig, load_config
from src.db.connection import SessionLocal
from src.db.models import FulfillmentJob
from src.services.batch_store import BatchStore
from src.services.job_store import JobStore
from src.services.label_job import run_label_job
from src.services.report_storage import ReportStorage, build_report_storage
from src.services.shopify_client import ShopifyClient

JobRunner = Callable[[str], Awaitable[FulfillmentJob]]


@lru_cache
def get_config() -> FulfillmentConfig:
    """Process-wide configuration, loaded once."""
    return load_config(os.environ.get("FULFILLMENT_CONFIG_PATH"))


def get_job_store() -> JobStore:
    """Dependency to get the JobStore."""
    return JobStore(SessionLocal)


def get_batch_store(config: FulfillmentConfig = Depends(get_config)) -> BatchStore:
    """Dependency to get the BatchStore."""
    return BatchStore(SessionLocal, history_limit=config.reports.history_limit)


def get_report_storage() -> ReportStorage:
    """Dependency to get report storage."""
    return build_report_storage()


async def get_shopify_client(
    config: FulfillmentConfig = Depends(get_config),
) -> AsyncIterator[ShopifyClient]:
    """Per-request storefront client, closed after the response."""
    async with ShopifyClient(config.shopify) as client:
        yield client


def get_job_runner(
    config: FulfillmentConfig = Depends(get_config),
    job_store: JobStore = Depends(get_job_store),
    batch_store: BatchStore = Depends(get_batch_store),
    reports: ReportStorage = Depends(get_report_storage),
) -> JobRunner:
    """Coroutine function that runs one label job to completion."""
    return partial(
        run_label_job,
        config=config,
        job_store=job_store,
        batch_store=batch_store,
        reports=reports,
    )
