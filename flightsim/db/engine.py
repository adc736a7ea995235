# flightsim/db/engine.py
"""
Database engine and session management.

SQLite is the default store; any SQLAlchemy URL (e.g. PostgreSQL) works.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from ..settings import settings


def build_engine(url: str) -> Engine:
    """Create an engine with options suited to the backend."""
    if url.startswith("sqlite"):
        # FastAPI runs sync handlers in a threadpool
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,  # Check connection health
        pool_size=10,
        max_overflow=20,
    )


engine = build_engine(settings.database_url)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Base class for ORM models
Base = declarative_base()


def get_engine() -> Engine:
    """Get SQLAlchemy engine."""
    return engine


def init_db(bind: Engine = None) -> None:
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401  register tables on Base.metadata
    Base.metadata.create_all(bind=bind or engine)


def get_session() -> Generator[Session, None, None]:
    """
    Get database session.

    Yields a session that auto-closes on context exit.
    For use with FastAPI Depends.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Session that commits on success and rolls back on error.

    Usage:
        with session_scope() as session:
            session.add(...)
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def check_connection() -> bool:
    """
    Check database connection.

    Returns:
        True if connection successful
    """
    try:
        with session_scope() as session:
            session.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


def next_seq(session: Session, model, scenario_id: str) -> int:
    """
    Next per-scenario sequence number for an append-only table.

    All appends to ordered logs (states, responses, communications) go
    through this so "latest" never depends on timestamp resolution.
    """
    current = session.execute(
        select(func.coalesce(func.max(model.seq), 0)).where(
            model.scenario_id == scenario_id
        )
    ).scalar()
    return int(current) + 1
