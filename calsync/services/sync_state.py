"""
Sync state store.

Durable per-source cursor persistence. Each write is a single-row
transaction, so a crash leaves either the old or the new cursor, never a
mix. A crash between a merge commit and the cursor write only causes one
redundant refetch, which idempotent merging tolerates.
"""

import logging
import threading
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from calsync.database import session_scope
from calsync.integrations.base import CalendarSource, SyncCursor
from calsync.models.sync_status import CalendarSyncStatus

logger = logging.getLogger(__name__)

_KNOWN_SOURCES = {source.value for source in CalendarSource}


class SyncStateStore:
    """Per-source cursor persistence backed by the calendar_sync_status table."""

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize the store.

        Args:
            session_factory: Factory for database sessions
        """
        self._session_factory = session_factory
        self._lock = threading.RLock()

    def get_cursor(self, source: CalendarSource) -> Optional[SyncCursor]:
        """
        Get the persisted cursor for a source.

        Returns:
            The cursor, or None if the source was never synced or was reset
        """
        with self._lock:
            with session_scope(self._session_factory) as session:
                row = session.get(CalendarSyncStatus, CalendarSource(source).value)
                if row is None:
                    return None
                return SyncCursor(token=row.sync_token, last_sync_date=row.last_sync_date)

    def set_cursor(self, source: CalendarSource, cursor: SyncCursor) -> SyncCursor:
        """
        Persist a cursor after a successful fetch and merge.

        The stored sync date never moves backwards: an older date than the
        one on record is clamped to the stored date.

        Returns:
            The cursor as stored
        """
        key = CalendarSource(source).value

        with self._lock:
            with session_scope(self._session_factory) as session:
                row = session.get(CalendarSyncStatus, key)
                if row is None:
                    row = CalendarSyncStatus(
                        source=key,
                        last_sync_date=cursor.last_sync_date,
                        sync_token=cursor.token,
                    )
                    session.add(row)
                else:
                    if cursor.last_sync_date < row.last_sync_date:
                        logger.warning(
                            f"Cursor date for {key} would move backwards "
                            f"({cursor.last_sync_date} < {row.last_sync_date}); keeping stored date"
                        )
                    else:
                        row.last_sync_date = cursor.last_sync_date
                    row.sync_token = cursor.token

                stored = SyncCursor(token=row.sync_token, last_sync_date=row.last_sync_date)

        logger.debug(f"Stored cursor for {key} at {stored.last_sync_date}")
        return stored

    def clear_cursor(self, source: CalendarSource) -> None:
        """Forget a source's cursor so its next fetch is a full one."""
        key = CalendarSource(source).value
        with self._lock:
            with session_scope(self._session_factory) as session:
                session.execute(delete(CalendarSyncStatus).where(CalendarSyncStatus.source == key))
        logger.info(f"Cleared sync cursor for {key}")

    def clear_all(self) -> None:
        """Forget every source's cursor."""
        with self._lock:
            with session_scope(self._session_factory) as session:
                session.execute(delete(CalendarSyncStatus))
        logger.info("Cleared all sync cursors")

    def all_cursors(self) -> dict[CalendarSource, SyncCursor]:
        """Get every persisted cursor keyed by source."""
        with self._lock:
            with session_scope(self._session_factory) as session:
                rows = session.scalars(select(CalendarSyncStatus)).all()
                return {
                    CalendarSource(row.source): SyncCursor(
                        token=row.sync_token,
                        last_sync_date=row.last_sync_date,
                    )
                    for row in rows
                    if row.source in _KNOWN_SOURCES
                }
