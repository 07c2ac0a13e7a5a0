"""
Cached event model.

One row per (source, native_id): the unified, locally queryable copy of an
event fetched from a calendar backend.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from calsync.models.base import Base, TimestampMixin, UTCDateTime


class CachedEvent(TimestampMixin, Base):
    """
    Unified event row.

    Attributes:
        id: Deterministic unified id derived from (source, native_id)
        source: CalendarSource value that owns the event
        native_id: Backend's own identifier for the event
        title: Event title
        start_time: Event start (UTC)
        end_time: Event end (UTC)
        is_all_day: Whether this is an all-day event
        location: Optional location
        notes: Optional description / notes
        last_modified: Backend-reported modification timestamp
        calendar_id: Sub-calendar within the source
        content_hash: Hash of the visible fields, used to detect no-op updates
    """

    __tablename__ = "unified_events"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        doc="Unified event id (uuid5 of source and native id)"
    )

    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Calendar source: local, google, outlook"
    )

    native_id: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        doc="Backend-native event identifier"
    )

    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        default="",
        doc="Event title"
    )

    start_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Event start (UTC)"
    )

    end_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Event end (UTC)"
    )

    is_all_day: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="All-day event flag"
    )

    location: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        doc="Event location"
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Event description / notes"
    )

    last_modified: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Backend-reported modification timestamp"
    )

    calendar_id: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
        doc="Sub-calendar within the source"
    )

    content_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="SHA-256 of the visible fields"
    )

    __table_args__ = (
        UniqueConstraint("source", "native_id", name="uq_unified_events_source_native"),
        Index("ix_unified_events_start_end", "start_time", "end_time"),
        Index("ix_unified_events_source", "source"),
    )

    def __repr__(self) -> str:
        return f"<CachedEvent(source={self.source}, native_id={self.native_id}, title={self.title!r})>"
