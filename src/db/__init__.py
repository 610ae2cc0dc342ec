"""Database module for batch history and label job persistence."""

from src.db.connection import (
    SessionLocal,
    close_db,
    engine,
    init_db,
)
from src.db.models import (
    TERMINAL_STATUSES,
    Base,
    Batch,
    BatchType,
    FulfillmentJob,
    JobStatus,
)

__all__ = [
    # Models
    "Base",
    "Batch",
    "FulfillmentJob",
    # Enums
    "BatchType",
    "JobStatus",
    "TERMINAL_STATUSES",
    # Connection
    "engine",
    "SessionLocal",
    "close_db",
    "init_db",
]
