"""
Mapping from Google Calendar API events to the unified event format.

Handles:
- DateTime formatting (RFC 3339 for Google API)
- All-day event handling
- Cancelled events (reported as deletions by incremental sync)
"""

from datetime import datetime, timezone

from dateutil.parser import parse as parse_datetime

from calsync.integrations.base import CalendarSource, UnifiedEvent
from calsync.integrations.exceptions import MalformedResponseError


class GoogleCalendarAdapter:
    """Maps Google Calendar API events to UnifiedEvent."""

    @staticmethod
    def is_cancelled(google_event: dict) -> bool:
        """Check if an incremental sync item represents a deleted event."""
        return str(google_event.get("status", "")).lower() == "cancelled"

    @staticmethod
    def from_google_event(google_event: dict, calendar_id: str) -> UnifiedEvent:
        """
        Convert Google Calendar event to unified format.

        Args:
            google_event: Event from Google Calendar API
            calendar_id: Calendar ID the event belongs to

        Returns:
            UnifiedEvent tagged with CalendarSource.GOOGLE

        Raises:
            MalformedResponseError: If the event has no id or no usable times
        """
        native_id = google_event.get("id")
        if not isinstance(native_id, str) or not native_id.strip():
            raise MalformedResponseError("Google event without an id")

        start_data = google_event.get("start") or {}
        end_data = google_event.get("end") or start_data

        try:
            if "dateTime" in start_data:
                start_time = _parse_datetime(start_data["dateTime"])
                end_time = _parse_datetime(end_data.get("dateTime", start_data["dateTime"]))
                all_day = False
            elif "date" in start_data:
                # All-day event; end date is exclusive
                start_time = _parse_date(start_data["date"])
                end_time = _parse_date(end_data.get("date", start_data["date"]))
                all_day = True
            else:
                raise MalformedResponseError(f"Google event {native_id} has no start time")

            # `updated` is Google's last modification time
            updated = google_event.get("updated") or google_event.get("created")
            last_modified = _parse_datetime(updated) if updated else start_time
        except (ValueError, OverflowError) as e:
            raise MalformedResponseError(
                f"Google event {native_id} has unparsable times: {e}",
                original_error=e,
            ) from e

        return UnifiedEvent.create(
            source=CalendarSource.GOOGLE,
            native_id=native_id.strip(),
            title=google_event.get("summary") or "Untitled",
            start_time=start_time,
            end_time=end_time,
            last_modified=last_modified,
            is_all_day=all_day,
            location=google_event.get("location"),
            notes=google_event.get("description"),
            calendar_id=calendar_id,
        )


def _format_datetime(dt: datetime) -> str:
    """
    Format datetime to RFC 3339 format for Google API.

    Args:
        dt: Datetime to format

    Returns:
        RFC 3339 formatted string
    """
    # Ensure UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    elif dt.tzinfo != timezone.utc:
        dt = dt.astimezone(timezone.utc)

    return dt.isoformat()


def _parse_datetime(dt_str: str) -> datetime:
    """
    Parse datetime string from Google API.

    Args:
        dt_str: RFC 3339 datetime string

    Returns:
        Parsed datetime (naive values are taken as UTC)
    """
    dt = parse_datetime(dt_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_date(date_str: str) -> datetime:
    """
    Parse date string from Google API (for all-day events).

    Args:
        date_str: Date string in YYYY-MM-DD format

    Returns:
        Datetime at midnight UTC
    """
    return datetime.strptime(date_str, "%Y-%m-%d").replace(tzinfo=timezone.utc)
