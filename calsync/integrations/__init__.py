"""
Calendar source integrations for calsync.

Provides the adapter contract and the shared event/cursor types.
"""

from calsync.integrations.base import (
    CalendarSource,
    ChangeSet,
    DateRange,
    SourceAdapter,
    SyncCursor,
    UnifiedEvent,
    make_event_id,
)
from calsync.integrations.exceptions import (
    MalformedResponseError,
    MergeFailureError,
    RateLimitedError,
    SourceError,
    SourceNotAuthorizedError,
    SyncErrorKind,
    SyncTokenExpiredError,
    TransientNetworkError,
)

__all__ = [
    "CalendarSource",
    "ChangeSet",
    "DateRange",
    "SourceAdapter",
    "SyncCursor",
    "UnifiedEvent",
    "make_event_id",
    "MalformedResponseError",
    "MergeFailureError",
    "RateLimitedError",
    "SourceError",
    "SourceNotAuthorizedError",
    "SyncErrorKind",
    "SyncTokenExpiredError",
    "TransientNetworkError",
]
