"""Tests for CLI commands run in-process against the test database."""

from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

import src.cli.main as cli_main
from src.cli.main import EXIT_FAILED, EXIT_REQUIRES_MONEY, app
from src.db.models import JobStatus
from src.services.batch_store import BatchStore
from src.services.errors import StorefrontError
from src.services.job_store import JobStore
from tests.helpers import make_row

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path, session_factory):
    """Point the CLI at the test database and away from real config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setattr(cli_main, "SessionLocal", session_factory)
    monkeypatch.setattr(cli_main, "init_db", lambda: None)
    monkeypatch.setattr(cli_main, "_config_path", None)


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "ship" in result.stdout


def test_missing_config_file_exits_1(tmp_path):
    result = runner.invoke(app, ["--config", str(tmp_path / "nope.yaml"), "history"])
    assert result.exit_code == 1
    assert "Config file not found" in result.stdout


def test_history_lists_batches(batch_store: BatchStore):
    batch_store.save_batch([make_row("1001")])

    result = runner.invoke(app, ["history"])

    assert result.exit_code == 0
    assert "000001" in result.stdout


def test_config_show_masks_secrets(monkeypatch):
    monkeypatch.setenv("SHIPROCKET_PASSWORD", "very-secret-password")

    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0
    assert "very-secret-password" not in result.stdout
    assert "***word" in result.stdout


def test_export_writes_file_and_batch(monkeypatch, tmp_path, batch_store: BatchStore):
    monkeypatch.setattr(
        cli_main, "_fetch_rows", AsyncMock(return_value=[make_row("1001", payment="Prepaid")])
    )

    result = runner.invoke(app, ["export", "--output", str(tmp_path / "out")])

    assert result.exit_code == 0
    written = list((tmp_path / "out").iterdir())
    assert len(written) == 1
    assert written[0].name.endswith("_NLG_POD_PREPAID_BATCH-001.csv")
    assert batch_store.get_latest_batch().id == "000001"


def test_export_storefront_error(monkeypatch):
    monkeypatch.setattr(
        cli_main, "_fetch_rows", AsyncMock(side_effect=StorefrontError("Shopify auth failed"))
    )

    result = runner.invoke(app, ["export"])

    assert result.exit_code == 1
    assert "Shopify auth failed" in result.stdout


def test_export_rejects_unknown_format():
    result = runner.invoke(app, ["export", "--format", "pdf"])
    assert result.exit_code == 1


def _job_runner(final_status: JobStatus, **fields):
    async def run(job_id, *, job_store: JobStore, **kwargs):
        job_store.update_status(job_id, JobStatus.FETCHING_DETAILS)
        if final_status == JobStatus.REQUIRES_MONEY:
            job_store.update_status(job_id, JobStatus.CHECKING_WALLET)
        return job_store.update_status(job_id, final_status, **fields)
    return run


def test_ship_requires_money_exit_code(monkeypatch):
    monkeypatch.setattr(
        cli_main,
        "run_label_job",
        _job_runner(
            JobStatus.REQUIRES_MONEY, estimated_cost=210, current_balance=100, shortfall=110
        ),
    )

    result = runner.invoke(app, ["ship"])

    assert result.exit_code == EXIT_REQUIRES_MONEY
    assert "REQUIRES_MONEY" in result.stdout


def test_ship_failed_exit_code(monkeypatch):
    monkeypatch.setattr(
        cli_main, "run_label_job", _job_runner(JobStatus.FAILED, error="No batch history found")
    )

    result = runner.invoke(app, ["ship"])

    assert result.exit_code == EXIT_FAILED


def test_ship_completed(monkeypatch):
    monkeypatch.setattr(
        cli_main,
        "run_label_job",
        _job_runner(JobStatus.COMPLETED, success_count=0, failed_count=0),
    )

    result = runner.invoke(app, ["ship"])

    assert result.exit_code == 0
    assert "COMPLETED" in result.stdout
