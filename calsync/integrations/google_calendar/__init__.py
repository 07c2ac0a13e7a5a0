"""
Google Calendar integration for calsync.

Provides the Google Calendar API as an incremental event source.
"""

from calsync.integrations.google_calendar.adapter import GoogleCalendarAdapter
from calsync.integrations.google_calendar.auth import GoogleAuthManager
from calsync.integrations.google_calendar.client import GoogleCalendarClient
from calsync.integrations.google_calendar.source import GoogleCalendarSource

__all__ = [
    "GoogleCalendarAdapter",
    "GoogleAuthManager",
    "GoogleCalendarClient",
    "GoogleCalendarSource",
]
