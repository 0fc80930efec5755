# app/db/session.py
# Database session management
#
# Two connection modes:
#   PostgreSQL -> pooled TCP connections (DATABASE_URL)
#   SQLite     -> local development / tests, no pool sizing
#
# FastAPI endpoints get a session via: Depends(get_db)

import logging
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

log = logging.getLogger(__name__)


def build_engine(database_url: str, **overrides: Any) -> Engine:
    """
    Create an engine with options suited to the backend.

    pool_pre_ping=True  -> test connection before each use (handles idle
                           disconnects gracefully)
    pool_size / max_overflow -> keep per-instance pool small; the service
                                scales horizontally
    """
    kwargs: Dict[str, Any]
    if database_url.startswith("sqlite"):
        # timeout -> seconds a writer waits on SQLite's database lock
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
    else:
        kwargs = {
            "pool_pre_ping": True,
            "pool_size": 5,
            "max_overflow": 10,
            "pool_recycle": 1800,  # Recycle connections every 30 min
        }
    kwargs.update(overrides)
    return create_engine(database_url, **kwargs)


# ── Engine ────────────────────────────────────────────────────────────────────
engine = build_engine(settings.database_url)

# ── Session Factory ───────────────────────────────────────────────────────────
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # Prevents lazy load errors after commit
)


# ── FastAPI Dependency ────────────────────────────────────────────────────────
def get_db() -> Generator[Session, None, None]:
    """
    Dependency injected into every FastAPI endpoint that needs DB access.

    Usage:
        @router.get("/example")
        def example(db: Session = Depends(get_db)):
            ...

    Guarantees the session is always closed, even on exceptions.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ── Health Check Helper ───────────────────────────────────────────────────────
def check_db_connection() -> bool:
    """
    Used by /health endpoint to verify DB connectivity.
    Returns True if connected, False otherwise.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        log.warning("Database health check failed: %s", exc)
        return False
