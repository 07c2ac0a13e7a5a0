"""
Sync coordinator.

Orchestrates sync passes across all calendar sources:

- Single-flight: at most one pass runs at a time. A call made while a pass
  is running returns the current state without fetching.
- Per-source isolation: each source runs read cursor -> fetch -> merge ->
  write cursor on its own. A failure is recorded as a SyncError for that
  source and never stops the others or escapes the pass.
- Sources are fetched concurrently; merges and cursor writes are fast and
  synchronous.
- Periodic passes via start_real_time_sync(); stopping only cancels future
  passes, never one in flight.

The coordinator is constructed explicitly by application startup with its
adapters and stores injected. Observers subscribe to SyncRunState snapshots.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from calsync.integrations.base import (
    CalendarSource,
    ChangeSet,
    DateRange,
    SourceAdapter,
)
from calsync.integrations.exceptions import (
    MalformedResponseError,
    MergeFailureError,
    RateLimitedError,
    SourceError,
    SyncErrorKind,
)
from calsync.services.event_store import UnifiedEventStore
from calsync.services.merge import MergeEngine, MergeStats
from calsync.services.sync_state import SyncStateStore

logger = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL = 300.0  # seconds


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourcePhase(str, Enum):
    """Progress of one source within a pass."""

    PENDING = "pending"
    FETCHING = "fetching"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncError:
    """A failure of one source during one pass."""

    source: CalendarSource
    kind: SyncErrorKind
    cause: Exception
    timestamp: datetime

    @property
    def retryable(self) -> bool:
        return getattr(self.cause, "retryable", False)

    @property
    def description(self) -> str:
        return f"Sync failed for {self.source.value}: {self.cause}"


@dataclass(frozen=True)
class SyncRunState:
    """
    Published sync status.

    Attributes:
        is_syncing: Whether a pass is running
        last_sync_date: When a pass last succeeded for at least one source
        errors: Errors of the current (or last finished) pass, in the order
            they occurred
        source_phases: Phase of each source in the current or last pass
        merge_stats: Merge outcome of each source that succeeded in the last pass
    """

    is_syncing: bool = False
    last_sync_date: Optional[datetime] = None
    errors: tuple[SyncError, ...] = ()
    source_phases: Mapping[CalendarSource, SourcePhase] = field(default_factory=dict)
    merge_stats: Mapping[CalendarSource, MergeStats] = field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def errors_for(self, source: CalendarSource) -> list[SyncError]:
        """Errors recorded for one source."""
        return [error for error in self.errors if error.source == source]


StateCallback = Callable[[SyncRunState], None]


class SyncCoordinator:
    """Drives incremental sync of every configured calendar source."""

    def __init__(
        self,
        adapters: Iterable[SourceAdapter],
        event_store: UnifiedEventStore,
        sync_state: SyncStateStore,
        merge_engine: Optional[MergeEngine] = None,
        window_past_days: int = 30,
        window_future_days: int = 90,
        retention_days: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the coordinator.

        Args:
            adapters: One adapter per source; sources without one are not synced
            event_store: Unified event store
            sync_state: Cursor persistence
            merge_engine: Merge engine (built on event_store if None)
            window_past_days: Days before today covered by full fetches
            window_future_days: Days after today covered by full fetches
            retention_days: Prune events that ended this many days ago after
                each pass (disabled when None or 0)
            clock: Time source

        Raises:
            ValueError: If two adapters claim the same source
        """
        self._adapters: dict[CalendarSource, SourceAdapter] = {}
        for adapter in adapters:
            source = CalendarSource(adapter.source)
            if source in self._adapters:
                raise ValueError(f"More than one adapter registered for {source.value}")
            self._adapters[source] = adapter

        self._event_store = event_store
        self._sync_state = sync_state
        self._merge_engine = merge_engine or MergeEngine(event_store)
        self._window_past_days = window_past_days
        self._window_future_days = window_future_days
        self._retention_days = retention_days
        self._clock = clock

        self._is_syncing = False
        self._last_sync_date = self._initial_last_sync_date()
        self._errors: list[SyncError] = []
        self._phases: dict[CalendarSource, SourcePhase] = {}
        self._stats: dict[CalendarSource, MergeStats] = {}
        self._backoff_until: dict[CalendarSource, datetime] = {}

        self._subscribers: list[StateCallback] = []
        self._idle = asyncio.Event()
        self._idle.set()
        self._timer_task: Optional[asyncio.Task] = None
        self._pass_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def sources(self) -> list[CalendarSource]:
        """Sources with a registered adapter, in source order."""
        return sorted(self._adapters)

    @property
    def state(self) -> SyncRunState:
        """Snapshot of the current sync status."""
        return SyncRunState(
            is_syncing=self._is_syncing,
            last_sync_date=self._last_sync_date,
            errors=tuple(self._errors),
            source_phases=dict(self._phases),
            merge_stats=dict(self._stats),
        )

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """
        Register a callback invoked with every state change.

        Returns:
            Function that removes the callback
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        state = self.state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception("Sync state subscriber raised")

    def _initial_last_sync_date(self) -> Optional[datetime]:
        try:
            cursors = self._sync_state.all_cursors()
        except SQLAlchemyError as e:
            logger.error(f"Could not load sync cursors: {e}")
            return None
        dates = [
            cursor.last_sync_date
            for source, cursor in cursors.items()
            if source in self._adapters
        ]
        return min(dates) if dates else None

    # ------------------------------------------------------------------
    # Sync passes
    # ------------------------------------------------------------------

    def current_window(self) -> DateRange:
        """Window used for full fetches in a pass starting now."""
        return DateRange.around(self._clock(), self._window_past_days, self._window_future_days)

    async def perform_incremental_sync(self) -> SyncRunState:
        """
        Run one sync pass over every source.

        Returns immediately with the current state if a pass is already
        running. Never raises for source or storage failures; they are
        reported in the returned state's errors.
        """
        if self._is_syncing:
            logger.info("Sync already in progress, skipping")
            return self.state

        self._is_syncing = True
        self._idle.clear()
        self._errors = []
        self._stats = {}
        self._phases = {source: SourcePhase.PENDING for source in self.sources}
        self._publish()

        logger.info(f"Starting incremental sync of {len(self._adapters)} sources")
        try:
            window = self.current_window()
            results = await asyncio.gather(
                *(self._sync_source(source, window) for source in self.sources)
            )

            succeeded = sum(1 for ok in results if ok)
            if succeeded:
                self._last_sync_date = self._clock()
                self._prune_expired()

            logger.info(
                f"Incremental sync completed: {succeeded}/{len(results)} sources succeeded, "
                f"{len(self._errors)} errors"
            )
        finally:
            self._is_syncing = False
            self._idle.set()
            self._publish()

        return self.state

    async def _sync_source(self, source: CalendarSource, window: DateRange) -> bool:
        """Sync one source. Returns True on success; failures are recorded."""
        adapter = self._adapters[source]

        backoff_until = self._backoff_until.get(source)
        if backoff_until is not None:
            if self._clock() < backoff_until:
                self._record_error(
                    source,
                    RateLimitedError(f"Backing off {source.value} until {backoff_until.isoformat()}"),
                )
                return False
            del self._backoff_until[source]

        try:
            cursor = self._sync_state.get_cursor(source)

            self._set_phase(source, SourcePhase.FETCHING)
            logger.debug(
                f"Fetching {source.value} "
                f"({'delta' if cursor is not None else 'full window'})"
            )
            change_set = await adapter.fetch_changes(cursor, window)
            self._validate_change_set(source, change_set)

            self._set_phase(source, SourcePhase.MERGING)
            stats = self._merge_engine.apply(change_set)
            self._sync_state.set_cursor(source, change_set.next_cursor)
        except SourceError as e:
            self._record_error(source, e)
            return False
        except SQLAlchemyError as e:
            self._record_error(
                source,
                MergeFailureError(f"Local storage error for {source.value}: {e}", original_error=e),
            )
            return False
        except Exception as e:
            logger.exception(f"Unexpected error syncing {source.value}")
            self._record_error(
                source,
                MalformedResponseError(f"Unexpected error syncing {source.value}: {e}", original_error=e),
            )
            return False

        self._stats[source] = stats
        self._set_phase(source, SourcePhase.DONE)
        return True

    @staticmethod
    def _validate_change_set(source: CalendarSource, change_set: ChangeSet) -> None:
        if not isinstance(change_set, ChangeSet):
            raise MalformedResponseError(f"{source.value} adapter returned {type(change_set).__name__}")
        if change_set.source != source:
            raise MalformedResponseError(
                f"{source.value} adapter returned changes for {change_set.source}"
            )
        if change_set.next_cursor is None:
            raise MalformedResponseError(f"{source.value} adapter returned no cursor")

    def _set_phase(self, source: CalendarSource, phase: SourcePhase) -> None:
        self._phases[source] = phase
        self._publish()

    def _record_error(self, source: CalendarSource, error: SourceError) -> None:
        now = self._clock()
        self._errors.append(
            SyncError(source=source, kind=error.kind, cause=error, timestamp=now)
        )

        if isinstance(error, RateLimitedError) and error.retry_after and source not in self._backoff_until:
            self._backoff_until[source] = now + timedelta(seconds=error.retry_after)

        logger.warning(f"Sync failed for {source.value} ({error.kind.value}): {error}")
        self._set_phase(source, SourcePhase.FAILED)

    def _prune_expired(self) -> None:
        if not self._retention_days:
            return
        cutoff = self._clock() - timedelta(days=self._retention_days)
        try:
            self._event_store.prune_ended_before(cutoff)
        except SQLAlchemyError as e:
            logger.error(f"Failed to prune events that ended before {cutoff}: {e}")

    async def force_full_resync(self, source: Optional[CalendarSource] = None) -> SyncRunState:
        """
        Clear cursors and run a pass.

        Args:
            source: Source to reset, or None for all sources

        Returns:
            State after the pass
        """
        # A pass in flight would write its cursor over the cleared one
        await self._idle.wait()

        if source is None:
            logger.info("Forcing full resync of all sources")
            self._sync_state.clear_all()
            self._backoff_until.clear()
        else:
            source = CalendarSource(source)
            logger.info(f"Forcing full resync of {source.value}")
            self._sync_state.clear_cursor(source)
            self._backoff_until.pop(source, None)

        return await self.perform_incremental_sync()

    # ------------------------------------------------------------------
    # Periodic sync
    # ------------------------------------------------------------------

    @property
    def is_real_time_sync_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def start_real_time_sync(self, interval: float = DEFAULT_SYNC_INTERVAL) -> None:
        """
        Run a pass now and then every `interval` seconds.

        Replaces any existing periodic schedule. Must be called from a
        running event loop.
        """
        if interval <= 0:
            raise ValueError(f"Sync interval must be positive, got {interval}")

        self.stop_real_time_sync()
        logger.info(f"Starting real-time sync with {interval}s interval")

        self._spawn_pass()
        self._timer_task = asyncio.get_running_loop().create_task(self._run_timer(interval))

    def stop_real_time_sync(self) -> None:
        """Cancel future periodic passes. A pass already running finishes."""
        if self._timer_task is None:
            return
        logger.info("Stopping real-time sync")
        self._timer_task.cancel()
        self._timer_task = None

    async def _run_timer(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self._spawn_pass()

    def _spawn_pass(self) -> None:
        # Passes run as their own tasks so cancelling the timer cannot cancel them
        task = asyncio.get_running_loop().create_task(self.perform_incremental_sync())
        self._pass_tasks.add(task)
        task.add_done_callback(self._pass_tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for spawned and in-flight passes to finish."""
        while self._pass_tasks:
            await asyncio.gather(*list(self._pass_tasks), return_exceptions=True)
        await self._idle.wait()

    async def aclose(self) -> None:
        """Stop periodic sync and wait for running passes."""
        self.stop_real_time_sync()
        await self.wait_idle()
