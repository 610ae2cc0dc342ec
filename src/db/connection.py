"""Database connection management for the fulfillment service.

Usage:
    from src.db.connection import SessionLocal, init_db

    init_db()  # Create tables
    store = JobStore(SessionLocal)
"""

import logging
import os
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from src.db.models import Base

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. FULFILLMENT_DB_PATH (file path, converted to sqlite URL)
    3. sqlite:///<data dir>/fulfillment.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("FULFILLMENT_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from src.utils.paths import get_default_db_path
    return f"sqlite:///{get_default_db_path()}"


DATABASE_URL = get_database_url()

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False}
    if DATABASE_URL.startswith("sqlite")
    else {},
    echo=os.environ.get("SQL_ECHO", "").lower() == "true",
)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Use WAL so job polling reads never block the job writer."""
    if DATABASE_URL.startswith("sqlite") and ":memory:" not in DATABASE_URL:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.close()


SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_db() -> None:
    """Create all database tables.

    Safe to call multiple times; existing tables are left alone.
    """
    if DATABASE_URL.startswith("sqlite:///") and ":memory:" not in DATABASE_URL:
        from src.utils.paths import ensure_dirs_exist
        ensure_dirs_exist()
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized at %s", DATABASE_URL)


def close_db() -> None:
    """Dispose of the engine connection pool."""
    engine.dispose()
