"""Tests for SKU assignment, status and health endpoints."""

from fastapi.testclient import TestClient

from src.db.models import JobStatus
from src.services.errors import StorefrontError
from src.services.batch_store import BatchStore
from src.services.job_store import JobStore
from tests.helpers import make_row


class TestAssignSku:
    """POST /api/v1/products/{id}/assign-sku."""

    def test_returns_assigned_sku(self, client: TestClient, shopify):
        shopify.assign_sku_to_product.return_value = 137

        response = client.post("/api/v1/products/8812/assign-sku")

        assert response.status_code == 200
        assert response.json() == {"success": True, "productId": "8812", "sku": 137}
        shopify.assign_sku_to_product.assert_awaited_once_with("8812")

    def test_storefront_error_is_502(self, client: TestClient, shopify):
        shopify.assign_sku_to_product.side_effect = StorefrontError("Product has no variants")

        response = client.post("/api/v1/products/8812/assign-sku")

        assert response.status_code == 502
        assert response.json()["error"] == "Product has no variants"


class TestStatus:
    """GET /api/v1/status."""

    def test_reports_configuration_and_activity(
        self, client: TestClient, job_store: JobStore, batch_store: BatchStore
    ):
        batch_store.save_batch([make_row()])
        running = job_store.create_job()
        done = job_store.create_job()
        job_store.fail(done.id, "boom")

        body = client.get("/api/v1/status").json()

        assert body["shopifyConfigured"] is True
        assert body["shiprocketConfigured"] is True
        assert body["latestBatchId"] == "000001"
        assert body["activeJobs"] == [running.id]

    def test_nothing_in_flight(self, client: TestClient, job_store: JobStore):
        job = job_store.create_job()
        job_store.update_status(job.id, JobStatus.FAILED, error="x")

        body = client.get("/api/v1/status").json()

        assert body["latestBatchId"] is None
        assert body["activeJobs"] == []


class TestHealth:
    """Health endpoints."""

    def test_health(self, client: TestClient):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["uptime_seconds"] >= 0

    def test_versioned_health(self, client: TestClient):
        assert client.get("/api/v1/health").json()["status"] == "healthy"
