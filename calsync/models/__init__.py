"""
SQLAlchemy models for calsync.

Importing this package registers every table on Base.metadata.
"""

from calsync.models.base import Base, TimestampMixin, UTCDateTime, utcnow
from calsync.models.events import CachedEvent
from calsync.models.sync_status import CalendarSyncStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "utcnow",
    "CachedEvent",
    "CalendarSyncStatus",
]
