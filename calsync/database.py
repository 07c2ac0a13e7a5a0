"""
Database engine and session management.

Provides:
- Engine creation with SQLite/PostgreSQL specific configuration
- Session factory creation
- session_scope() context manager with commit/rollback handling
- Schema initialization utilities

Nothing here is created at import time; application startup owns the engine.
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a database engine for the given URL.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log SQL statements

    Returns:
        Configured engine
    """
    if "sqlite" in database_url.lower():
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},  # Sync passes run off the caller's thread
            poolclass=StaticPool,  # Single-file (or in-memory) database
            echo=echo,
        )

    return create_engine(
        database_url,
        pool_size=5,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=echo,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to an engine."""
    return sessionmaker(
        autocommit=False,  # Explicit commits required
        autoflush=False,
        expire_on_commit=False,  # Rows are read after the session closes
        bind=engine,
    )


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for a unit of work.

    Usage:
        with session_scope(factory) as session:
            session.add(row)
            # Automatic commit on context exit

    Yields:
        Session: SQLAlchemy database session
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """
    Initialize database by creating all tables.

    Tables that already exist are left untouched.
    """
    from calsync.models.base import Base
    import calsync.models  # noqa: F401  (registers the tables on Base.metadata)

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")


def drop_all_tables(engine: Engine) -> None:
    """
    Drop all tables from the database.

    WARNING: This will delete all cached events and sync cursors.
    """
    from calsync.models.base import Base
    import calsync.models  # noqa: F401

    logger.warning("Dropping all database tables...")
    Base.metadata.drop_all(bind=engine)
    logger.info("All database tables dropped")
