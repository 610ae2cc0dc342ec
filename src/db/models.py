"""SQLAlchemy ORM models for the fulfillment state database.

Two tables: ``batches`` holds exported order batches (the rows a label job
ships from) and ``fulfillment_jobs`` holds background label job records
polled by the dashboard. Uses SQLAlchemy 2.0 style with Mapped and
mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def generate_job_id() -> str:
    """Generate a label job identifier."""
    return f"JOB-{uuid4().hex}"


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


class JobStatus(str, Enum):
    """Status values for label jobs.

    Lifecycle: STARTING -> FETCHING_DETAILS -> CHECKING_WALLET ->
    PROCESSING_SHIPROCKET -> GENERATING_LABELS -> COMPLETED.
    REQUIRES_MONEY is reachable only from CHECKING_WALLET; FAILED from any
    non-terminal status.
    """

    STARTING = "STARTING"
    FETCHING_DETAILS = "FETCHING_DETAILS"
    CHECKING_WALLET = "CHECKING_WALLET"
    PROCESSING_SHIPROCKET = "PROCESSING_SHIPROCKET"
    GENERATING_LABELS = "GENERATING_LABELS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REQUIRES_MONEY = "REQUIRES_MONEY"


TERMINAL_STATUSES = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.REQUIRES_MONEY,
})


class BatchType(str, Enum):
    """How a batch left the system."""

    DOWNLOAD = "DOWNLOAD"
    EMAIL = "EMAIL"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Batch(Base):
    """Exported order batch.

    Attributes:
        id: Zero-padded six digit sequence ("000042")
        seq: Integer form of ``id``; strictly increases across history
        timestamp: ISO8601 timestamp of the export
        type: DOWNLOAD or EMAIL
        rows: OrderRow dicts exactly as exported
        last_modified: ISO8601 timestamp of the last manual edit
    """

    __tablename__ = "batches"

    id: Mapped[str] = mapped_column(String(6), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    timestamp: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BatchType.DOWNLOAD.value
    )
    rows: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    last_modified: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (Index("idx_batches_seq", "seq"),)

    def __repr__(self) -> str:
        return f"<Batch(id={self.id!r}, type={self.type!r}, rows={len(self.rows or [])})>"


class FulfillmentJob(Base):
    """Background label job record.

    Monetary fields are rupees. Counts and URLs are only populated once the
    phase that produces them has run.
    """

    __tablename__ = "fulfillment_jobs"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=generate_job_id
    )
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=JobStatus.STARTING.value
    )
    progress: Mapped[str | None] = mapped_column(String(255), nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String(6), nullable=True)

    # Wallet check
    estimated_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_balance: Mapped[float | None] = mapped_column(Float, nullable=True)
    shortfall: Mapped[float | None] = mapped_column(Float, nullable=True)
    order_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    line_item_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    avg_cost_per_order: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Outcome
    label_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    high_risk_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    failed_report_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    high_risk_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    failed_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    success_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    __table_args__ = (
        Index("idx_fulfillment_jobs_status", "status"),
        Index("idx_fulfillment_jobs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<FulfillmentJob(id={self.id!r}, status={self.status!r})>"
