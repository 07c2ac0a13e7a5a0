"""
Mapping from Microsoft Graph events to the unified event format.
"""

from datetime import datetime, timezone
from typing import Optional

from dateutil import tz
from dateutil.parser import parse as parse_datetime

from calsync.integrations.base import CalendarSource, UnifiedEvent
from calsync.integrations.exceptions import MalformedResponseError


class OutlookEventAdapter:
    """Maps Graph event resources to UnifiedEvent."""

    @staticmethod
    def is_removed(graph_event: dict) -> bool:
        """Check if a delta item reports a deleted event."""
        return "@removed" in graph_event

    @staticmethod
    def from_graph_event(graph_event: dict, calendar_id: Optional[str] = None) -> UnifiedEvent:
        """
        Convert a Graph event to unified format.

        Args:
            graph_event: Event resource from calendarView/delta
            calendar_id: Calendar the event belongs to, if known

        Returns:
            UnifiedEvent tagged with CalendarSource.OUTLOOK

        Raises:
            MalformedResponseError: If the event has no id or no usable times
        """
        native_id = graph_event.get("id")
        if not isinstance(native_id, str) or not native_id.strip():
            raise MalformedResponseError("Outlook event without an id")

        try:
            start_time = _parse_graph_time(graph_event.get("start"))
            end_time = _parse_graph_time(graph_event.get("end")) if graph_event.get("end") else start_time
            modified = graph_event.get("lastModifiedDateTime") or graph_event.get("createdDateTime")
            last_modified = _parse_utc(modified) if modified else start_time
        except (ValueError, OverflowError, TypeError, KeyError) as e:
            raise MalformedResponseError(
                f"Outlook event {native_id} has unparsable times: {e}",
                original_error=e,
            ) from e

        location = graph_event.get("location") or {}
        location_name = location.get("displayName") if isinstance(location, dict) else None

        return UnifiedEvent.create(
            source=CalendarSource.OUTLOOK,
            native_id=native_id.strip(),
            title=graph_event.get("subject") or "Untitled",
            start_time=start_time,
            end_time=end_time,
            last_modified=last_modified,
            is_all_day=bool(graph_event.get("isAllDay", False)),
            location=location_name or None,
            notes=graph_event.get("bodyPreview") or None,
            calendar_id=calendar_id or graph_event.get("calendarId"),
        )


def _parse_utc(value: str) -> datetime:
    dt = parse_datetime(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_graph_time(value: Optional[dict]) -> datetime:
    """
    Parse a Graph dateTimeTimeZone object.

    Graph sends a local wall time plus a zone name. Unknown zone names
    (Windows names are not in the IANA database) are taken as UTC, which is
    what the client asks for via the Prefer header.
    """
    if not isinstance(value, dict) or "dateTime" not in value:
        raise ValueError("missing dateTime")

    dt = parse_datetime(value["dateTime"])
    if dt.tzinfo is None:
        zone = tz.gettz(value.get("timeZone") or "UTC") or timezone.utc
        dt = dt.replace(tzinfo=zone)
    return dt.astimezone(timezone.utc)
