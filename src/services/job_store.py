"""Label job records with state machine validation.

Each job is touched by exactly one writer (the coroutine running it) while
any number of pollers read it. Every operation opens its own short-lived
session so the running job never holds a session across awaits.
"""

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.models import TERMINAL_STATUSES, FulfillmentJob, JobStatus, utc_now_iso
from src.errors.domain import NotFoundError
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Interrupted by server restart"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid job state transition.

    Attributes:
        current_state: The current state of the job.
        attempted_state: The state that was attempted.
        allowed_transitions: List of valid transition targets from current state.
    """

    def __init__(
        self,
        current_state: JobStatus,
        attempted_state: JobStatus,
        allowed_transitions: list[JobStatus],
    ) -> None:
        self.current_state = current_state
        self.attempted_state = attempted_state
        self.allowed_transitions = allowed_transitions
        allowed_str = ", ".join(s.value for s in allowed_transitions) or "none (terminal)"
        super().__init__(
            f"Cannot transition from '{current_state.value}' to '{attempted_state.value}'. "
            f"Allowed transitions: {allowed_str}"
        )


# Forward-only lifecycle. COMPLETED is reachable early when there is nothing
# left to ship; REQUIRES_MONEY only from the wallet check.
VALID_TRANSITIONS: dict[JobStatus, list[JobStatus]] = {
    JobStatus.STARTING: [JobStatus.FETCHING_DETAILS, JobStatus.FAILED],
    JobStatus.FETCHING_DETAILS: [
        JobStatus.CHECKING_WALLET,
        JobStatus.COMPLETED,
        JobStatus.FAILED,
    ],
    JobStatus.CHECKING_WALLET: [
        JobStatus.PROCESSING_SHIPROCKET,
        JobStatus.REQUIRES_MONEY,
        JobStatus.FAILED,
    ],
    JobStatus.PROCESSING_SHIPROCKET: [
        JobStatus.GENERATING_LABELS,
        JobStatus.COMPLETED,
        JobStatus.FAILED,
    ],
    JobStatus.GENERATING_LABELS: [JobStatus.COMPLETED, JobStatus.FAILED],
    JobStatus.COMPLETED: [],
    JobStatus.FAILED: [],
    JobStatus.REQUIRES_MONEY: [],
}

# Columns a job runner may set alongside (or without) a status change
UPDATABLE_FIELDS = frozenset({
    "progress",
    "batch_id",
    "estimated_cost",
    "current_balance",
    "shortfall",
    "order_count",
    "line_item_count",
    "avg_cost_per_order",
    "label_url",
    "high_risk_url",
    "failed_report_url",
    "high_risk_count",
    "failed_count",
    "success_count",
    "message",
    "error",
})


class JobStore:
    """SQLAlchemy-backed store of label jobs.

    Attributes:
        session_factory: Callable returning a new Session.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def _load(self, db: Session, job_id: str) -> FulfillmentJob:
        job = db.get(FulfillmentJob, job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    @staticmethod
    def _detach(db: Session, job: FulfillmentJob) -> FulfillmentJob:
        db.refresh(job)
        db.expunge(job)
        return job

    @staticmethod
    def can_transition(current: JobStatus, target: JobStatus) -> bool:
        """Check if a state transition is valid."""
        return target in VALID_TRANSITIONS.get(current, [])

    def create_job(self) -> FulfillmentJob:
        """Create a job in STARTING state."""
        with self.session_factory() as db:
            job = FulfillmentJob(status=JobStatus.STARTING.value)
            db.add(job)
            db.commit()
            logger.info("Created job %s", job.id)
            return self._detach(db, job)

    def get_job(self, job_id: str) -> FulfillmentJob | None:
        """Get a job by id, or None."""
        with self.session_factory() as db:
            job = db.get(FulfillmentJob, job_id)
            if job is None:
                return None
            db.expunge(job)
            return job

    def list_jobs(self, limit: int = 50) -> list[FulfillmentJob]:
        """Most recent jobs first."""
        with self.session_factory() as db:
            jobs = list(
                db.scalars(
                    select(FulfillmentJob)
                    .order_by(FulfillmentJob.created_at.desc())
                    .limit(limit)
                )
            )
            for job in jobs:
                db.expunge(job)
            return jobs

    def _apply_fields(self, job: FulfillmentJob, fields: dict[str, Any]) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown job fields: {', '.join(sorted(unknown))}")
        for name, value in fields.items():
            if name == "error":
                value = sanitize_error_message(value)
            setattr(job, name, value)
        job.updated_at = utc_now_iso()

    def update_fields(self, job_id: str, **fields: Any) -> FulfillmentJob:
        """Set job fields without changing status.

        Raises:
            NotFoundError: Unknown job.
            ValueError: A field name that is not updatable.
        """
        with self.session_factory() as db:
            job = self._load(db, job_id)
            self._apply_fields(job, fields)
            db.commit()
            return self._detach(db, job)

    def update_status(
        self, job_id: str, new_status: JobStatus, **fields: Any
    ) -> FulfillmentJob:
        """Transition a job, optionally setting fields in the same write.

        Raises:
            NotFoundError: Unknown job.
            InvalidStateTransition: The transition is not allowed.
        """
        with self.session_factory() as db:
            job = self._load(db, job_id)
            current = JobStatus(job.status)
            if not self.can_transition(current, new_status):
                raise InvalidStateTransition(
                    current_state=current,
                    attempted_state=new_status,
                    allowed_transitions=VALID_TRANSITIONS.get(current, []),
                )
            job.status = new_status.value
            self._apply_fields(job, fields)
            db.commit()
            logger.info("Job %s: %s -> %s", job_id, current.value, new_status.value)
            return self._detach(db, job)

    def fail(self, job_id: str, error: str) -> FulfillmentJob:
        """Move a job to FAILED with an error message.

        A job that already reached a terminal status is returned unchanged.
        """
        with self.session_factory() as db:
            job = self._load(db, job_id)
            if JobStatus(job.status) in TERMINAL_STATUSES:
                logger.warning(
                    "Job %s already %s; not marking FAILED (%s)", job_id, job.status, error
                )
                return self._detach(db, job)
        return self.update_status(job_id, JobStatus.FAILED, error=error)

    def recover_interrupted(self) -> int:
        """Mark jobs left non-terminal by a previous process as FAILED.

        Returns:
            Number of jobs marked.
        """
        terminal = [s.value for s in TERMINAL_STATUSES]
        with self.session_factory() as db:
            stale = list(
                db.scalars(
                    select(FulfillmentJob).where(FulfillmentJob.status.not_in(terminal))
                )
            )
            for job in stale:
                job.status = JobStatus.FAILED.value
                job.error = INTERRUPTED_MESSAGE
                job.updated_at = utc_now_iso()
            db.commit()
        if stale:
            logger.warning("Marked %d interrupted job(s) as FAILED", len(stale))
        return len(stale)
