"""
Pytest configuration and fixtures for calsync tests.

Provides in-memory database fixtures, stores and event factories.
"""

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from calsync.database import create_db_engine, create_session_factory, drop_all_tables, init_db
from calsync.integrations.base import CalendarSource, DateRange, UnifiedEvent
from calsync.services.event_store import UnifiedEventStore
from calsync.services.sync_state import SyncStateStore

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """
    Create a clean in-memory SQLite database for each test.

    Yields:
        Engine: engine with all tables created
    """
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    try:
        yield engine
    finally:
        drop_all_tables(engine)
        engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine) -> sessionmaker:
    return create_session_factory(db_engine)


@pytest.fixture
def event_store(session_factory: sessionmaker) -> UnifiedEventStore:
    return UnifiedEventStore(session_factory)


@pytest.fixture
def sync_state(session_factory: sessionmaker) -> SyncStateStore:
    return SyncStateStore(session_factory)


@pytest.fixture
def window() -> DateRange:
    """Window of 30 days before and 90 days after NOW's date."""
    return DateRange.around(NOW, 30, 90)


def _make_event(
    source: CalendarSource = CalendarSource.GOOGLE,
    native_id: str = "evt-1",
    title: str = "Team Meeting",
    start: datetime = NOW + timedelta(days=1),
    duration: timedelta = timedelta(hours=1),
    last_modified: datetime = NOW,
    **kwargs,
) -> UnifiedEvent:
    """Build a UnifiedEvent with sensible defaults."""
    return UnifiedEvent.create(
        source=source,
        native_id=native_id,
        title=title,
        start_time=start,
        end_time=start + duration,
        last_modified=last_modified,
        **kwargs,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_event():
    """Factory fixture building UnifiedEvents; see _make_event for defaults."""
    return _make_event
