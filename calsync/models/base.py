"""
Base model definitions for SQLAlchemy.

Provides:
- UTCDateTime TypeDecorator for timezone-aware datetimes across SQLite and PostgreSQL
- Base declarative base
- Timestamp mixin with audit fields
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class UTCDateTime(TypeDecorator):
    """
    Platform-independent timezone-aware datetime.

    PostgreSQL keeps the offset natively. SQLite has no timezone support and
    returns naive values, so values are normalized to UTC on the way in and
    tagged as UTC on the way out. Comparisons between stored and freshly
    fetched timestamps are therefore always between aware datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Normalize to UTC before storing."""
        if value is None:
            return value

        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)

        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        """Return an aware UTC datetime."""
        if value is None:
            return value

        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all models."""

    type_annotation_map = {
        datetime: UTCDateTime,
    }


class TimestampMixin:
    """
    Audit timestamps shared by all tables.

    - created_at: When the row was first written (UTC)
    - updated_at: When the row was last written (UTC)
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
        doc="Timestamp of record creation (UTC)"
    )

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        onupdate=utcnow,
        nullable=True,
        doc="Timestamp of last update (UTC)"
    )
