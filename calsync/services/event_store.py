"""
Unified event store.

SQLAlchemy-backed repository holding the merged event set of all sources.
Writes happen inside `transaction()` so a change set applies completely or
not at all. All access is serialized by a re-entrant lock so reads from the
UI thread never observe a half-written transaction.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Iterable, Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from calsync.database import session_scope
from calsync.integrations.base import CalendarSource, DateRange, UnifiedEvent, make_event_id
from calsync.models.events import CachedEvent

logger = logging.getLogger(__name__)


def _overlaps(window: DateRange):
    """SQL filter matching DateRange.overlaps."""
    return or_(
        and_(CachedEvent.start_time < window.end, CachedEvent.end_time > window.start),
        and_(
            CachedEvent.start_time == CachedEvent.end_time,
            CachedEvent.start_time >= window.start,
            CachedEvent.start_time < window.end,
        ),
    )


def row_to_event(row: CachedEvent) -> UnifiedEvent:
    """Convert a stored row to a UnifiedEvent."""
    return UnifiedEvent(
        id=row.id,
        source=CalendarSource(row.source),
        native_id=row.native_id,
        title=row.title,
        start_time=row.start_time,
        end_time=row.end_time,
        last_modified=row.last_modified,
        is_all_day=row.is_all_day,
        location=row.location,
        notes=row.notes,
        calendar_id=row.calendar_id,
    )


def _apply_to_row(row: CachedEvent, event: UnifiedEvent) -> None:
    row.title = event.title
    row.start_time = event.start_time
    row.end_time = event.end_time
    row.is_all_day = event.is_all_day
    row.location = event.location
    row.notes = event.notes
    row.last_modified = event.last_modified
    row.calendar_id = event.calendar_id
    row.content_hash = event.content_hash()


class EventTransaction:
    """
    Write operations bound to one database session.

    Obtained from UnifiedEventStore.transaction(); committed when the
    context exits cleanly and rolled back otherwise.
    """

    def __init__(self, session: Session):
        self._session = session

    def get(self, source: CalendarSource, native_id: str) -> Optional[UnifiedEvent]:
        """Get the stored event for a backend id."""
        row = self._session.get(CachedEvent, make_event_id(source, native_id))
        return row_to_event(row) if row is not None else None

    def get_version(
        self,
        source: CalendarSource,
        native_id: str,
    ) -> Optional[tuple[datetime, str]]:
        """Get (last_modified, content_hash) of the stored event for a backend id."""
        row = self._session.get(CachedEvent, make_event_id(source, native_id))
        if row is None:
            return None
        return row.last_modified, row.content_hash

    def upsert(self, event: UnifiedEvent) -> None:
        """Insert or overwrite the row for `event`."""
        row = self._session.get(CachedEvent, event.id)
        if row is None:
            row = CachedEvent(
                id=event.id,
                source=CalendarSource(event.source).value,
                native_id=event.native_id,
            )
            self._session.add(row)
        _apply_to_row(row, event)
        self._session.flush()

    def delete(self, source: CalendarSource, native_id: str) -> bool:
        """
        Delete one source's event by backend id.

        Returns:
            True if a row was deleted, False if none existed
        """
        row = self._session.get(CachedEvent, make_event_id(source, native_id))
        if row is None or row.source != CalendarSource(source).value:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    def native_ids_in_window(self, source: CalendarSource, window: DateRange) -> set[str]:
        """Backend ids of one source's events overlapping a window."""
        stmt = select(CachedEvent.native_id).where(
            CachedEvent.source == CalendarSource(source).value,
            _overlaps(window),
        )
        return set(self._session.scalars(stmt))


class UnifiedEventStore:
    """
    Repository for the merged event set.

    Used by the merge engine for writes and by downstream consumers
    (UI, filtering) for queries.
    """

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize the store.

        Args:
            session_factory: Factory for database sessions
        """
        self._session_factory = session_factory
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Generator[EventTransaction, None, None]:
        """
        Open an all-or-nothing unit of work.

        Usage:
            with store.transaction() as tx:
                tx.upsert(event)
                tx.delete(CalendarSource.GOOGLE, "abc")
        """
        with self._lock:
            with session_scope(self._session_factory) as session:
                yield EventTransaction(session)

    def upsert(self, event: UnifiedEvent) -> None:
        """Insert or overwrite a single event."""
        with self.transaction() as tx:
            tx.upsert(event)

    def delete(self, source: CalendarSource, native_id: str) -> bool:
        """Delete a single event of one source."""
        with self.transaction() as tx:
            return tx.delete(source, native_id)

    def get(self, source: CalendarSource, native_id: str) -> Optional[UnifiedEvent]:
        """Get a single event by backend id."""
        with self.transaction() as tx:
            return tx.get(source, native_id)

    def native_ids_in_window(self, source: CalendarSource, window: DateRange) -> set[str]:
        """Backend ids of one source's events overlapping a window."""
        with self.transaction() as tx:
            return tx.native_ids_in_window(source, window)

    def query(
        self,
        date_range: DateRange,
        sources: Optional[Iterable[CalendarSource]] = None,
    ) -> Sequence[UnifiedEvent]:
        """
        Get events overlapping a date range.

        Args:
            date_range: Window to query
            sources: Restrict to these sources (all when None)

        Returns:
            Events ordered by start time, then source
        """
        stmt = select(CachedEvent).where(_overlaps(date_range))
        if sources is not None:
            stmt = stmt.where(
                CachedEvent.source.in_([CalendarSource(s).value for s in sources])
            )
        stmt = stmt.order_by(CachedEvent.start_time, CachedEvent.source, CachedEvent.native_id)

        with self._lock:
            with session_scope(self._session_factory) as session:
                return [row_to_event(row) for row in session.scalars(stmt)]

    def count(self, source: Optional[CalendarSource] = None) -> int:
        """Count stored events, optionally for one source."""
        stmt = select(func.count()).select_from(CachedEvent)
        if source is not None:
            stmt = stmt.where(CachedEvent.source == CalendarSource(source).value)

        with self._lock:
            with session_scope(self._session_factory) as session:
                return session.scalar(stmt) or 0

    def prune_ended_before(self, cutoff: datetime) -> int:
        """
        Delete events that ended before `cutoff`.

        Returns:
            Number of events deleted
        """
        stmt = delete(CachedEvent).where(CachedEvent.end_time < cutoff)

        with self._lock:
            with session_scope(self._session_factory) as session:
                result = session.execute(stmt)
                deleted = result.rowcount or 0

        if deleted:
            logger.info(f"Pruned {deleted} events that ended before {cutoff}")
        return deleted
