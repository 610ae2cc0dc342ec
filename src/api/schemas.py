"""Pydantic schemas for API request/response validation.

The dashboard speaks camelCase, so every schema here aliases its
snake_case fields with ``to_camel``.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.db.models import FulfillmentJob, JobStatus


class CamelModel(BaseModel):
    """Base schema with camelCase aliases; accepts either spelling on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# Job schemas


class JobCreatedResponse(CamelModel):
    """Response for a submitted label job."""

    job_id: str


class JobResponse(CamelModel):
    """A label job as seen by the polling client."""

    id: str
    status: str
    progress: str | None = None
    batch_id: str | None = None
    estimated_cost: float | None = None
    current_balance: float | None = None
    shortfall: float | None = None
    order_count: int | None = None
    line_item_count: int | None = None
    avg_cost_per_order: float | None = None
    label_url: str | None = None
    high_risk_url: str | None = None
    failed_report_url: str | None = None
    high_risk_count: int | None = None
    failed_count: int | None = None
    success_count: int | None = None
    message: str | None = None
    error: str | None = None
    created_at: str
    updated_at: str


def serialize_job(job: FulfillmentJob) -> dict[str, Any]:
    """Job record for the wire: unset fields omitted.

    A completed job always carries ``labelUrl`` (null when nothing was
    shipped) so the client can tell "no labels" from "not done yet".
    """
    data = JobResponse.model_validate(job).model_dump(by_alias=True, exclude_none=True)
    if job.status == JobStatus.COMPLETED.value:
        data.setdefault("labelUrl", None)
    return data


# Order schemas


class OrderStats(CamelModel):
    """Dashboard totals for the fetched orders."""

    total_orders: int
    total_items: int
    subtotal: float
    revenue: float
    gst: float
    total: float


class OrdersResponse(CamelModel):
    """Processed order rows for the dashboard."""

    success: bool = True
    stats: OrderStats
    orders: list[dict[str, Any]]
    raw_count: int


class ExportRequest(CamelModel):
    """Request body for exporting the order manifest."""

    rows: list[dict[str, Any]] = Field(default_factory=list)
    skip_history: bool = False
    format: Literal["csv", "xlsx"] = "csv"


# Batch schemas


class BatchUpdate(CamelModel):
    """Replacement rows for a stored batch."""

    rows: list[dict[str, Any]]


# Product schemas


class SkuAssignedResponse(CamelModel):
    """Result of assigning the next SKU to a product."""

    success: bool = True
    product_id: str
    sku: int
