"""
Local calendar source adapter.

The device calendar is read from iCalendar (.ics) files: a single file or a
directory of them. Files have no delta API, so every fetch reads the whole
window and returns it as a snapshot. The cursor token is a digest of that
snapshot, which lets an unchanged calendar short-circuit to an empty change
set.

Recurring series are expanded into their occurrences inside the window, the
same shape the remote backends return.
"""

import asyncio
import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from icalendar import Calendar

from calsync.integrations.base import (
    CalendarSource,
    ChangeSet,
    DateRange,
    SyncCursor,
    UnifiedEvent,
    make_event_id,
)
from calsync.integrations.exceptions import (
    MalformedResponseError,
    SourceNotAuthorizedError,
)
from calsync.integrations.local_calendar.recurrence import (
    expand_occurrences,
    format_recurrence_id,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_datetime(value) -> Optional[datetime]:
    """Convert an icalendar date/datetime property to an aware datetime."""
    if value is None:
        return None
    dt = value.dt if hasattr(value, "dt") else value
    if isinstance(dt, datetime):
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    if isinstance(dt, date):
        # date only -> midnight UTC
        return datetime.combine(dt, time.min, tzinfo=timezone.utc)
    return None


def _is_all_day(value) -> bool:
    if value is None:
        return False
    dt = value.dt if hasattr(value, "dt") else value
    return isinstance(dt, date) and not isinstance(dt, datetime)


def _text(component, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _is_cancelled(component) -> bool:
    return str(component.get("status", "")).upper() == "CANCELLED"


def _keep_newest(events: dict[str, UnifiedEvent], event: UnifiedEvent) -> None:
    """Keep one event per native id, the newest by LAST-MODIFIED."""
    existing = events.get(event.native_id)
    if existing is None or event.last_modified >= existing.last_modified:
        events[event.native_id] = event


def snapshot_digest(events: list[UnifiedEvent]) -> str:
    """Digest of a snapshot; equal digests mean nothing changed."""
    hasher = hashlib.sha256()
    for event in sorted(events, key=lambda e: e.native_id):
        hasher.update(event.native_id.encode("utf-8"))
        hasher.update(event.content_hash().encode("ascii"))
        hasher.update(event.last_modified.isoformat().encode("ascii"))
    return hasher.hexdigest()


class LocalCalendarSource:
    """
    SourceAdapter for on-device .ics calendars.

    Always fetches the window. Never fails for network reasons; a missing or
    unreadable calendar is reported as not-authorized (no calendar access).
    """

    source = CalendarSource.LOCAL

    def __init__(
        self,
        path: str | Path,
        executor: Optional[ThreadPoolExecutor] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the source.

        Args:
            path: .ics file or directory containing .ics files
            executor: Thread pool for file I/O (uses the loop default if None)
            clock: Time source for cursor dates
        """
        self._path = Path(path)
        self._executor = executor
        self._clock = clock

    async def fetch_changes(
        self,
        cursor: Optional[SyncCursor],
        window: DateRange,
    ) -> ChangeSet:
        """Read the window; return an empty change set if it is unchanged."""
        loop = asyncio.get_running_loop()
        events = await loop.run_in_executor(
            self._executor,
            partial(self.read_window, window),
        )
        digest = snapshot_digest(events)
        next_cursor = SyncCursor(token=digest, last_sync_date=self._clock())

        if cursor is not None and cursor.token == digest:
            logger.debug(f"Local calendar unchanged ({len(events)} events in window)")
            return ChangeSet(source=self.source, next_cursor=next_cursor)

        logger.info(f"Local calendar snapshot: {len(events)} events in window")
        return ChangeSet(
            source=self.source,
            upserts=tuple(events),
            next_cursor=next_cursor,
            full_window=window,
        )

    def calendar_files(self) -> list[Path]:
        """List the .ics files backing this calendar."""
        if not self._path.exists():
            raise SourceNotAuthorizedError(f"Local calendar not available: {self._path}")
        if self._path.is_dir():
            return sorted(p for p in self._path.glob("*.ics") if p.is_file())
        return [self._path]

    def read_window(self, window: DateRange) -> list[UnifiedEvent]:
        """
        Parse every calendar file and keep events overlapping the window.

        Recurring series are expanded into one event per occurrence, keyed
        `uid@<occurrence start>`. A RECURRENCE-ID override carries the same
        key and replaces its occurrence; a cancelled override removes it.
        """
        events: dict[str, UnifiedEvent] = {}
        overridden: set[str] = set()
        series = []

        for file_path in self.calendar_files():
            calendar, fallback_modified = self._load(file_path)
            calendar_id = file_path.stem

            for component in calendar.walk("VEVENT"):
                is_override = component.get("recurrence-id") is not None
                if component.get("rrule") is not None and not is_override:
                    series.append((component, calendar_id, fallback_modified))
                    continue

                event = self._to_unified_event(component, calendar_id, fallback_modified)
                if event is None:
                    continue
                if is_override:
                    overridden.add(event.native_id)
                if _is_cancelled(component):
                    continue
                if window.overlaps(event.start_time, event.end_time):
                    _keep_newest(events, event)

        for component, calendar_id, fallback_modified in series:
            for event in self._expand_series(component, calendar_id, fallback_modified, window):
                if event.native_id not in overridden:
                    _keep_newest(events, event)

        return list(events.values())

    def _load(self, file_path: Path) -> tuple[Calendar, datetime]:
        try:
            raw = file_path.read_bytes()
            fallback_modified = datetime.fromtimestamp(file_path.stat().st_mtime, tz=timezone.utc)
        except PermissionError as e:
            raise SourceNotAuthorizedError(
                f"No permission to read {file_path}",
                original_error=e,
            ) from e
        except OSError as e:
            raise MalformedResponseError(
                f"Failed to read {file_path}: {e}",
                original_error=e,
            ) from e

        try:
            calendar = Calendar.from_ical(raw)
        except ValueError as e:
            raise MalformedResponseError(
                f"Invalid iCalendar data in {file_path}: {e}",
                original_error=e,
            ) from e

        return calendar, fallback_modified

    def _expand_series(
        self,
        component,
        calendar_id: str,
        fallback_modified: datetime,
        window: DateRange,
    ) -> list[UnifiedEvent]:
        """One event per occurrence of a series master inside the window."""
        master = self._to_unified_event(component, calendar_id, fallback_modified)
        if master is None or _is_cancelled(component):
            return []

        duration = master.end_time - master.start_time
        starts = expand_occurrences(component, window, duration)
        if starts is None:
            # Unexpandable rule: keep the first instance
            if window.overlaps(master.start_time, master.end_time):
                return [master]
            return []

        occurrences = []
        for start in starts:
            native_id = f"{master.native_id}@{format_recurrence_id(start)}"
            occurrences.append(replace(
                master,
                id=make_event_id(master.source, native_id),
                native_id=native_id,
                start_time=start,
                end_time=start + duration,
            ))
        return occurrences

    @staticmethod
    def _to_unified_event(
        component,
        calendar_id: str,
        fallback_modified: datetime,
    ) -> Optional[UnifiedEvent]:
        uid = _text(component, "uid")
        start_prop = component.get("dtstart")
        start_time = _to_datetime(start_prop)
        if not uid or start_time is None:
            logger.debug(f"Skipping VEVENT without UID or DTSTART in {calendar_id}")
            return None

        # Overridden occurrences share the UID of their series
        native_id = uid
        recurrence_id = _to_datetime(component.get("recurrence-id"))
        if recurrence_id is not None:
            native_id = f"{uid}@{format_recurrence_id(recurrence_id)}"

        all_day = _is_all_day(start_prop)
        end_time = _to_datetime(component.get("dtend"))
        if end_time is None:
            duration = component.get("duration")
            if duration is not None:
                end_time = start_time + duration.dt
            else:
                end_time = start_time + (timedelta(days=1) if all_day else timedelta(0))

        last_modified = (
            _to_datetime(component.get("last-modified"))
            or _to_datetime(component.get("dtstamp"))
            or _to_datetime(component.get("created"))
            or fallback_modified
        )

        return UnifiedEvent.create(
            source=CalendarSource.LOCAL,
            native_id=native_id,
            title=_text(component, "summary") or "Untitled",
            start_time=start_time,
            end_time=end_time,
            last_modified=last_modified,
            is_all_day=all_day,
            location=_text(component, "location"),
            notes=_text(component, "description"),
            calendar_id=calendar_id,
        )
