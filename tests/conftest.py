"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- In-memory SQLite session factory (StaticPool, so every session sees
  the same database)
- Job and batch stores bound to it
- Report storage in a temporary directory
"""

import os
from collections.abc import Callable, Generator
from pathlib import Path

# Must precede any src.db import: the app engine is built at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.db.models import Base
from src.services.batch_store import BatchStore
from src.services.job_store import JobStore
from src.services.report_storage import LocalReportStorage


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring external services"
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def session_factory() -> Generator[Callable[[], Session], None, None]:
    """Session factory over a fresh in-memory database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def job_store(session_factory) -> JobStore:
    """JobStore bound to the test database."""
    return JobStore(session_factory)


@pytest.fixture
def batch_store(session_factory) -> BatchStore:
    """BatchStore bound to the test database."""
    return BatchStore(session_factory)


@pytest.fixture
def reports(tmp_path: Path) -> LocalReportStorage:
    """Report storage rooted in a temporary directory."""
    return LocalReportStorage(tmp_path / "reports")
