"""Database engine, session factory and FastAPI dependency.

WHAT:
    Provides the sync SQLAlchemy engine, SessionLocal and get_db().

WHY:
    Attribution runs inside API requests, arq jobs and batch worker threads.
    All three use short-lived sync sessions: one per request, one per job,
    one per thread.

USAGE:
    from channelproof.database import SessionLocal, get_db

    @router.get("/items")
    def list_items(db: Session = Depends(get_db)):
        ...

    # Worker threads
    with get_session_context() as db:
        ...

REFERENCES:
    - channelproof/services/factory.py (builds services from a Session)
    - channelproof/services/attribution/batch.py (per-thread sessions)
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def _get_database_url() -> str:
    """Get DATABASE_URL from environment, loading .env if needed.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        # Attempt to load from local .env for developer convenience
        from channelproof.utils.env import load_env_file
        load_env_file()
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. "
            "Ensure backend/.env is loaded or env var is exported."
        )

    return database_url


DATABASE_URL = _get_database_url()


# =============================================================================
# ENGINE
# =============================================================================

# SQLite engines (tests/dev) do not support pool_size/max_overflow.
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=10,
        max_overflow=20,        # batch workers open one session per thread
        pool_recycle=3600,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


# Base is defined in channelproof.models to keep a single registry
from .models import Base  # noqa: E402,F401


# =============================================================================
# SESSION HELPERS
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_session_context() -> Generator[Session, None, None]:
    """Context manager for sessions outside FastAPI (workers, threads).

    Rolls back on error so a failed transaction never leaks into the pool.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
