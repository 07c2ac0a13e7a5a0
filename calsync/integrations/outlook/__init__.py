"""
Outlook (Microsoft Graph) integration for calsync.
"""

from calsync.integrations.outlook.adapter import OutlookEventAdapter
from calsync.integrations.outlook.client import OutlookGraphClient
from calsync.integrations.outlook.source import OutlookCalendarSource

__all__ = [
    "OutlookEventAdapter",
    "OutlookGraphClient",
    "OutlookCalendarSource",
]
