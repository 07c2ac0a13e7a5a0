"""
Service layer for calsync.

Provides:
- UnifiedEventStore: merged event set of all sources
- SyncStateStore: per-source cursor persistence
- MergeEngine: applies change sets with last-writer-wins dedup
- SyncCoordinator: runs sync passes across sources
"""

from calsync.services.event_store import EventTransaction, UnifiedEventStore
from calsync.services.merge import MergeEngine, MergeStats
from calsync.services.sync_coordinator import (
    SourcePhase,
    SyncCoordinator,
    SyncError,
    SyncRunState,
)
from calsync.services.sync_state import SyncStateStore

__all__ = [
    "EventTransaction",
    "UnifiedEventStore",
    "MergeEngine",
    "MergeStats",
    "SourcePhase",
    "SyncCoordinator",
    "SyncError",
    "SyncRunState",
    "SyncStateStore",
]
