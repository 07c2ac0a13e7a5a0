"""
Outlook calendar source adapter.

Implements the SourceAdapter protocol on top of Microsoft Graph
calendarView delta queries.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from calsync.integrations.base import (
    CalendarSource,
    ChangeSet,
    DateRange,
    SyncCursor,
)
from calsync.integrations.exceptions import SyncTokenExpiredError
from calsync.integrations.outlook.adapter import OutlookEventAdapter
from calsync.integrations.outlook.client import OutlookGraphClient

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_graph_datetime(dt: datetime) -> str:
    """Format a datetime the way calendarView expects (UTC, no offset suffix)."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S") + "Z"


class OutlookCalendarSource:
    """
    SourceAdapter for the signed-in user's Outlook calendar view.

    The cursor token is the Graph delta link. Without one the window is
    fetched in full and returned as a snapshot; an expired delta link falls
    back to a full window fetch.
    """

    source = CalendarSource.OUTLOOK

    def __init__(
        self,
        client: OutlookGraphClient,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._client = client
        self._clock = clock
        self._adapter = OutlookEventAdapter()

    async def fetch_changes(
        self,
        cursor: Optional[SyncCursor],
        window: DateRange,
    ) -> ChangeSet:
        """Fetch changes since `cursor`, or the whole window without one."""
        if cursor is not None and cursor.token:
            try:
                items, delta_link = await self._client.list_delta(cursor.token)
                return self._build_change_set(items, delta_link, full_window=None)
            except SyncTokenExpiredError:
                logger.warning("Outlook delta link expired, falling back to full window fetch")

        items, delta_link = await self._client.list_window(
            _format_graph_datetime(window.start),
            _format_graph_datetime(window.end),
        )
        return self._build_change_set(items, delta_link, full_window=window)

    def _build_change_set(
        self,
        items: list[dict],
        delta_link: str,
        full_window: Optional[DateRange],
    ) -> ChangeSet:
        upserts = []
        deletions = []

        for item in items:
            if self._adapter.is_removed(item):
                native_id = item.get("id")
                if isinstance(native_id, str) and native_id.strip():
                    deletions.append(native_id.strip())
                continue
            upserts.append(self._adapter.from_graph_event(item))

        logger.info(
            f"Outlook: {len(upserts)} changed, {len(deletions)} removed "
            f"({'full' if full_window else 'delta'})"
        )
        return ChangeSet(
            source=self.source,
            upserts=tuple(upserts),
            deletions=tuple(deletions),
            next_cursor=SyncCursor(token=delta_link, last_sync_date=self._clock()),
            full_window=full_window,
        )
