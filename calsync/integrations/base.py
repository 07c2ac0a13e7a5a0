"""
Calendar source protocol and base types.

Defines the canonical event representation every backend is normalized into,
the continuation cursor, the change set returned by a fetch, and the
interface all source adapters implement.
"""

import hashlib
import uuid
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Protocol, Sequence


# Namespace for deterministic unified event ids
UNIFIED_EVENT_NAMESPACE = uuid.UUID("6f1c3c1e-2b7a-5d3e-9a41-0c8f7e2d4b19")


class CalendarSource(str, Enum):
    """
    Identity of a calendar backend.

    Declaration order is the total order used when sources are sorted.
    """

    LOCAL = "local"
    GOOGLE = "google"
    OUTLOOK = "outlook"

    def __lt__(self, other):
        if not isinstance(other, CalendarSource):
            return NotImplemented
        members = list(CalendarSource)
        return members.index(self) < members.index(other)

    def __str__(self) -> str:
        return self.value


def make_event_id(source: CalendarSource, native_id: str) -> str:
    """
    Derive the unified event id for a backend event.

    The same (source, native_id) pair always yields the same id, so
    re-fetching an event maps it back onto the row it already has.
    """
    return str(uuid.uuid5(UNIFIED_EVENT_NAMESPACE, f"{CalendarSource(source).value}:{native_id}"))


def ensure_utc(dt: datetime) -> datetime:
    """Return an aware UTC datetime, treating naive values as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class DateRange:
    """Half-open time window [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.end < self.start:
            raise ValueError(f"DateRange end {self.end} is before start {self.start}")

    @classmethod
    def around(cls, now: datetime, past_days: int, future_days: int) -> "DateRange":
        """Window from `past_days` before the start of today to `future_days` after it."""
        today = ensure_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
        return cls(
            start=today - timedelta(days=past_days),
            end=today + timedelta(days=future_days),
        )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Check whether [start, end] intersects this window."""
        start = ensure_utc(start)
        end = ensure_utc(end)
        if start == end:
            return self.start <= start < self.end
        return start < self.end and end > self.start


@dataclass(frozen=True)
class UnifiedEvent:
    """
    Canonical event representation across calendar sources.

    Adapters map backend-specific payloads into this format. `id` is derived
    from (source, native_id); use `UnifiedEvent.create` to build one.
    """

    id: str
    source: CalendarSource
    native_id: str
    title: str
    start_time: datetime
    end_time: datetime
    last_modified: datetime
    is_all_day: bool = False
    location: Optional[str] = None
    notes: Optional[str] = None
    calendar_id: Optional[str] = None

    @classmethod
    def create(
        cls,
        source: CalendarSource,
        native_id: str,
        title: str,
        start_time: datetime,
        end_time: datetime,
        last_modified: datetime,
        is_all_day: bool = False,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> "UnifiedEvent":
        """Build an event with its deterministic unified id."""
        source = CalendarSource(source)
        return cls(
            id=make_event_id(source, native_id),
            source=source,
            native_id=native_id,
            title=title,
            start_time=ensure_utc(start_time),
            end_time=ensure_utc(end_time),
            last_modified=ensure_utc(last_modified),
            is_all_day=is_all_day,
            location=location,
            notes=notes,
            calendar_id=calendar_id,
        )

    def content_hash(self) -> str:
        """SHA-256 over the user-visible fields."""
        content = "|".join([
            self.title,
            ensure_utc(self.start_time).isoformat(),
            ensure_utc(self.end_time).isoformat(),
            self.location or "",
            self.notes or "",
            str(self.is_all_day),
            self.calendar_id or "",
        ])
        return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SyncCursor:
    """
    Continuation point for one source.

    Attributes:
        token: Opaque backend token (sync token, delta link, snapshot digest)
        last_sync_date: When the fetch and merge that produced it completed
    """

    token: Optional[str]
    last_sync_date: datetime

    def __post_init__(self):
        object.__setattr__(self, "last_sync_date", ensure_utc(self.last_sync_date))


@dataclass(frozen=True)
class ChangeSet:
    """
    Result of one fetch from one source.

    Attributes:
        source: Source the changes belong to
        upserts: New or modified events
        deletions: Native ids removed at the backend
        next_cursor: Cursor to persist once the changes are merged
        full_window: Set when upserts are a complete snapshot of this window;
            stored events of the source in the window that are missing from
            the snapshot are removed
    """

    source: CalendarSource
    upserts: Sequence[UnifiedEvent] = field(default_factory=tuple)
    deletions: Sequence[str] = field(default_factory=tuple)
    next_cursor: Optional[SyncCursor] = None
    full_window: Optional[DateRange] = None

    @property
    def is_empty(self) -> bool:
        return not self.upserts and not self.deletions and self.full_window is None


class SourceAdapter(Protocol):
    """
    Protocol for calendar source adapters.

    Implementations:
    - LocalCalendarSource: .ics files on the device
    - GoogleCalendarSource: Google Calendar API v3
    - OutlookCalendarSource: Microsoft Graph calendarView delta

    Adapters never write to the unified store; they only fetch.
    """

    source: CalendarSource

    @abstractmethod
    async def fetch_changes(
        self,
        cursor: Optional[SyncCursor],
        window: DateRange,
    ) -> ChangeSet:
        """
        Fetch changes since a cursor.

        Args:
            cursor: Previous cursor, or None for a full fetch of the window
            window: Bounding window for full fetches. Sources with a native
                delta API ignore it once a cursor exists.

        Returns:
            ChangeSet whose replay against the store is idempotent

        Raises:
            SourceError: Classified failure (see calsync.integrations.exceptions)
        """
        ...
