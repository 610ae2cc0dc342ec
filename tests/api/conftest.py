"""Pytest fixtures for API tests.

Every service dependency is overridden: stores use the in-memory test
database, the storefront client and job runner are AsyncMocks.
"""

from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import (
    get_batch_store,
    get_config,
    get_job_runner,
    get_job_store,
    get_report_storage,
    get_shopify_client,
)
from src.api.main import app
from src.api.middleware.auth import reset_rate_limiter
from src.cli.config import CarrierConfig, FulfillmentConfig, ShopifyConfig


@pytest.fixture
def config() -> FulfillmentConfig:
    return FulfillmentConfig(
        shopify=ShopifyConfig(store_domain="my-shop", client_id="cid", client_secret="secret"),
        carrier=CarrierConfig(email="ops@example.com", password="pw"),
    )


@pytest.fixture
def shopify() -> AsyncMock:
    client = AsyncMock()
    client.domain = "my-shop.myshopify.com"
    return client


@pytest.fixture
def job_runner() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def client(
    config, job_store, batch_store, reports, shopify, job_runner, monkeypatch
) -> Generator[TestClient, None, None]:
    """TestClient with all service dependencies overridden.

    Used as a context manager so background job tasks share one event
    loop with the requests.
    """
    monkeypatch.delenv("FULFILLMENT_API_KEY", raising=False)
    reset_rate_limiter()

    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_job_store] = lambda: job_store
    app.dependency_overrides[get_batch_store] = lambda: batch_store
    app.dependency_overrides[get_report_storage] = lambda: reports
    app.dependency_overrides[get_shopify_client] = lambda: shopify
    app.dependency_overrides[get_job_runner] = lambda: job_runner

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    reset_rate_limiter()
