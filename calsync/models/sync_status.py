"""
Per-source sync status model.

Stores the continuation cursor for each calendar source so incremental
syncs survive process restarts.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from calsync.models.base import Base, TimestampMixin, UTCDateTime


class CalendarSyncStatus(TimestampMixin, Base):
    """
    One row per calendar source.

    Attributes:
        source: CalendarSource value (primary key)
        last_sync_date: When the last successful fetch and merge completed
        sync_token: Opaque continuation token returned by the backend
    """

    __tablename__ = "calendar_sync_status"

    source: Mapped[str] = mapped_column(
        String(20),
        primary_key=True,
        doc="Calendar source: local, google, outlook"
    )

    last_sync_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Last successful sync (UTC)"
    )

    sync_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Opaque backend continuation token"
    )

    def __repr__(self) -> str:
        return f"<CalendarSyncStatus(source={self.source}, last_sync_date={self.last_sync_date})>"
