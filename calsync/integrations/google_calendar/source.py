"""
Google Calendar source adapter.

Implements the SourceAdapter protocol on top of Google's incremental sync
(syncToken / nextSyncToken).
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Optional

from calsync.integrations.base import (
    CalendarSource,
    ChangeSet,
    DateRange,
    SyncCursor,
)
from calsync.integrations.exceptions import SyncTokenExpiredError
from calsync.integrations.google_calendar.adapter import (
    GoogleCalendarAdapter,
    _format_datetime,
)
from calsync.integrations.google_calendar.auth import GoogleAuthManager
from calsync.integrations.google_calendar.client import GoogleCalendarClient

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GoogleCalendarSource:
    """
    SourceAdapter for one Google calendar.

    Without a cursor the window is listed in full and returned as a snapshot.
    With a cursor only the changes since its sync token are listed and the
    window is ignored. An expired token falls back to a full window listing.

    The Google API client is synchronous, so calls run in a thread pool.
    """

    source = CalendarSource.GOOGLE

    def __init__(
        self,
        auth_manager: GoogleAuthManager,
        calendar_id: str = "primary",
        executor: Optional[ThreadPoolExecutor] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the source.

        Args:
            auth_manager: Supplies OAuth credentials
            calendar_id: Google Calendar ID to sync
            executor: Thread pool for blocking API calls (creates default if None)
            clock: Time source for cursor dates
        """
        self._auth_manager = auth_manager
        self._calendar_id = calendar_id
        self._executor = executor or ThreadPoolExecutor(max_workers=2)
        self._clock = clock
        self._client: Optional[GoogleCalendarClient] = None
        self._adapter = GoogleCalendarAdapter()

    @property
    def client(self) -> GoogleCalendarClient:
        """Get or create the API client."""
        if self._client is None:
            credentials = self._auth_manager.get_credentials()
            self._client = GoogleCalendarClient(credentials)
        return self._client

    async def _run_in_executor(self, func, *args, **kwargs):
        """Run a synchronous function in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(func, *args, **kwargs),
        )

    async def fetch_changes(
        self,
        cursor: Optional[SyncCursor],
        window: DateRange,
    ) -> ChangeSet:
        """Fetch changes since `cursor`, or the whole window without one."""
        client = await self._run_in_executor(lambda: self.client)

        if cursor is not None and cursor.token:
            try:
                items, next_token = await self._run_in_executor(
                    client.list_changes,
                    calendar_id=self._calendar_id,
                    sync_token=cursor.token,
                )
                return self._build_change_set(items, next_token, full_window=None)
            except SyncTokenExpiredError:
                logger.warning(
                    f"Google sync token for {self._calendar_id} expired, "
                    "falling back to full window fetch"
                )

        items, next_token = await self._run_in_executor(
            client.list_changes,
            calendar_id=self._calendar_id,
            time_min=_format_datetime(window.start),
            time_max=_format_datetime(window.end),
        )
        return self._build_change_set(items, next_token, full_window=window)

    def _build_change_set(
        self,
        items: list[dict],
        next_token: str,
        full_window: Optional[DateRange],
    ) -> ChangeSet:
        upserts = []
        deletions = []

        for item in items:
            if self._adapter.is_cancelled(item):
                native_id = item.get("id")
                if isinstance(native_id, str) and native_id.strip():
                    deletions.append(native_id.strip())
                continue
            upserts.append(self._adapter.from_google_event(item, self._calendar_id))

        logger.info(
            f"Google {self._calendar_id}: {len(upserts)} changed, "
            f"{len(deletions)} cancelled ({'full' if full_window else 'delta'})"
        )
        return ChangeSet(
            source=self.source,
            upserts=tuple(upserts),
            deletions=tuple(deletions),
            next_cursor=SyncCursor(token=next_token, last_sync_date=self._clock()),
            full_window=full_window,
        )
