"""
Local (on-device) calendar integration for calsync.
"""

from calsync.integrations.local_calendar.source import LocalCalendarSource

__all__ = ["LocalCalendarSource"]
