"""Tests for job persistence and the forward-only state machine."""

import pytest

from src.db.models import JobStatus
from src.errors.domain import NotFoundError
from src.services.job_store import (
    INTERRUPTED_MESSAGE,
    VALID_TRANSITIONS,
    InvalidStateTransition,
    JobStore,
)


class TestTransitions:
    """State machine rules."""

    def test_happy_path(self, job_store: JobStore):
        job = job_store.create_job()
        assert job.status == "STARTING"
        assert job.id.startswith("JOB-")
        for status in (
            JobStatus.FETCHING_DETAILS,
            JobStatus.CHECKING_WALLET,
            JobStatus.PROCESSING_SHIPROCKET,
            JobStatus.GENERATING_LABELS,
            JobStatus.COMPLETED,
        ):
            job = job_store.update_status(job.id, status)
        assert job.status == "COMPLETED"

    def test_cannot_skip_forward(self, job_store: JobStore):
        job = job_store.create_job()
        with pytest.raises(InvalidStateTransition) as exc:
            job_store.update_status(job.id, JobStatus.GENERATING_LABELS)
        assert exc.value.current_state is JobStatus.STARTING

    def test_cannot_regress(self, job_store: JobStore):
        job = job_store.create_job()
        job_store.update_status(job.id, JobStatus.FETCHING_DETAILS)
        job_store.update_status(job.id, JobStatus.CHECKING_WALLET)
        with pytest.raises(InvalidStateTransition):
            job_store.update_status(job.id, JobStatus.FETCHING_DETAILS)

    def test_requires_money_only_after_wallet_check(self):
        sources = [s for s, targets in VALID_TRANSITIONS.items() if JobStatus.REQUIRES_MONEY in targets]
        assert sources == [JobStatus.CHECKING_WALLET]

    def test_terminal_states_have_no_exits(self):
        for status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.REQUIRES_MONEY):
            assert VALID_TRANSITIONS[status] == []


class TestFields:
    """Field updates."""

    def test_fields_set_with_status(self, job_store: JobStore):
        job = job_store.create_job()
        job = job_store.update_status(
            job.id, JobStatus.FETCHING_DETAILS, batch_id="000001", line_item_count=3
        )
        assert job.batch_id == "000001"
        assert job.line_item_count == 3

    def test_update_fields_keeps_status(self, job_store: JobStore):
        job = job_store.create_job()
        job = job_store.update_fields(job.id, progress="Reviewing Order 5/10")
        assert job.status == "STARTING"
        assert job.progress == "Reviewing Order 5/10"

    def test_unknown_field_rejected(self, job_store: JobStore):
        job = job_store.create_job()
        with pytest.raises(ValueError, match="status"):
            job_store.update_fields(job.id, status="COMPLETED")

    def test_unknown_job_raises(self, job_store: JobStore):
        with pytest.raises(NotFoundError):
            job_store.update_fields("JOB-missing", progress="x")
        assert job_store.get_job("JOB-missing") is None

    def test_error_is_sanitized(self, job_store: JobStore):
        job = job_store.create_job()
        job = job_store.fail(job.id, "login failed password=hunter2")
        assert "hunter2" not in job.error


class TestFailAndRecovery:
    """Failure handling and restart recovery."""

    def test_fail_from_any_running_state(self, job_store: JobStore):
        job = job_store.create_job()
        job_store.update_status(job.id, JobStatus.FETCHING_DETAILS)
        job = job_store.fail(job.id, "Shiprocket Authentication Failed")
        assert job.status == "FAILED"
        assert job.error == "Shiprocket Authentication Failed"

    def test_fail_leaves_terminal_job_alone(self, job_store: JobStore):
        job = job_store.create_job()
        job_store.update_status(job.id, JobStatus.FETCHING_DETAILS)
        job_store.update_status(job.id, JobStatus.COMPLETED)
        job = job_store.fail(job.id, "late error")
        assert job.status == "COMPLETED"
        assert job.error is None

    def test_recover_marks_running_jobs_failed(self, job_store: JobStore):
        running = job_store.create_job()
        job_store.update_status(running.id, JobStatus.FETCHING_DETAILS)
        done = job_store.create_job()
        job_store.update_status(done.id, JobStatus.FETCHING_DETAILS)
        job_store.update_status(done.id, JobStatus.COMPLETED)

        assert job_store.recover_interrupted() == 1
        recovered = job_store.get_job(running.id)
        assert recovered.status == "FAILED"
        assert recovered.error == INTERRUPTED_MESSAGE
        assert job_store.get_job(done.id).status == "COMPLETED"

    def test_list_jobs_newest_first(self, job_store: JobStore):
        first = job_store.create_job()
        second = job_store.create_job()
        ids = [j.id for j in job_store.list_jobs()]
        assert set(ids) == {first.id, second.id}
