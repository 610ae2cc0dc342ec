"""Service layer for the fulfillment service.

Provides the storefront and carrier clients, order processing, risk
checks, report rendering, batch and job persistence, and the label job.
"""

from src.services.batch_store import BatchStore
from src.services.errors import AuthenticationError, CarrierAPIError, StorefrontError
from src.services.job_store import InvalidStateTransition, JobStore
from src.services.label_job import LabelJob, run_label_job

__all__ = [
    "BatchStore",
    "JobStore",
    "InvalidStateTransition",
    "LabelJob",
    "run_label_job",
    "CarrierAPIError",
    "AuthenticationError",
    "StorefrontError",
]
