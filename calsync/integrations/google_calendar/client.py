"""
Google Calendar API client wrapper with error classification.

Provides a thin interface over the Google Calendar API v3 events.list
incremental sync flow (syncToken / nextSyncToken).
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError

from calsync.integrations.exceptions import (
    MalformedResponseError,
    RateLimitedError,
    SourceNotAuthorizedError,
    SyncTokenExpiredError,
    TransientNetworkError,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

# Maximum page size accepted by events.list
PAGE_SIZE = 250


def _handle_http_error(error: HttpError) -> None:
    """Convert HttpError to the matching SourceError."""
    status = error.resp.status
    message = str(error)

    if status == 401:
        raise SourceNotAuthorizedError(
            "Authentication failed - credentials may be invalid or expired",
            original_error=error,
        )
    elif status == 403:
        if "quota" in message.lower() or "rate limit" in message.lower():
            raise RateLimitedError(
                "API quota exceeded",
                retry_after=parse_retry_after(error.resp.get("retry-after")),
                original_error=error,
            )
        raise SourceNotAuthorizedError(
            "Access denied - check calendar sharing permissions",
            original_error=error,
        )
    elif status == 410:
        raise SyncTokenExpiredError(
            "Sync token is no longer valid - full sync required",
            original_error=error,
        )
    elif status == 429:
        raise RateLimitedError(
            "Rate limit exceeded - too many requests",
            retry_after=parse_retry_after(error.resp.get("retry-after")),
            original_error=error,
        )
    elif status >= 500:
        raise TransientNetworkError(
            f"Google Calendar server error ({status})",
            original_error=error,
        )
    else:
        raise MalformedResponseError(
            f"Google Calendar API error ({status}): {message}",
            original_error=error,
        )


@contextmanager
def _classified_errors() -> Generator[None, None, None]:
    """Translate google-api-python-client failures into SourceErrors."""
    try:
        yield
    except HttpError as e:
        _handle_http_error(e)
    except RefreshError as e:
        raise SourceNotAuthorizedError(
            f"Failed to refresh Google credentials: {e}",
            original_error=e,
        ) from e
    except (TransportError, httplib2.HttpLib2Error, OSError) as e:
        # httplib2 reports DNS failures (offline device) as ServerNotFoundError
        raise TransientNetworkError(
            f"Network error talking to Google Calendar: {e}",
            original_error=e,
        ) from e


class GoogleCalendarClient:
    """
    Wrapper around Google Calendar API v3.

    Provides:
    - Consistent error classification
    - Pagination handling for incremental list operations

    Calls are blocking; callers run them in an executor.
    """

    def __init__(self, credentials: Credentials):
        """
        Initialize the client.

        Args:
            credentials: Google OAuth2 user credentials (refreshed by google-auth)
        """
        with _classified_errors():
            self._service: Resource = build(
                "calendar",
                "v3",
                credentials=credentials,
                cache_discovery=False,
            )

    @property
    def service(self) -> Resource:
        """Get the underlying Google API service."""
        return self._service

    def list_events_page(
        self,
        calendar_id: str,
        sync_token: Optional[str] = None,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        page_token: Optional[str] = None,
    ) -> dict:
        """
        Fetch one page of events.list.

        Args:
            calendar_id: Calendar to query
            sync_token: Token from a previous listing (delta mode)
            time_min: Lower bound, RFC 3339 (full mode only)
            time_max: Upper bound, RFC 3339 (full mode only)
            page_token: Token for pagination

        Returns:
            API response with items, nextPageToken and, on the last page,
            nextSyncToken
        """
        params = {
            "calendarId": calendar_id,
            "showDeleted": True,
            "singleEvents": True,
            "maxResults": PAGE_SIZE,
        }
        if sync_token:
            # Google rejects time bounds together with syncToken
            params["syncToken"] = sync_token
        else:
            if time_min:
                params["timeMin"] = time_min
            if time_max:
                params["timeMax"] = time_max
        if page_token:
            params["pageToken"] = page_token

        with _classified_errors():
            return self._service.events().list(**params).execute()

    def list_changes(
        self,
        calendar_id: str,
        sync_token: Optional[str] = None,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
    ) -> tuple[list[dict], str]:
        """
        List all changed events with automatic pagination.

        Without a sync token this lists every event in [time_min, time_max).
        With one it lists only what changed since the token was issued,
        including cancelled (deleted) events.

        Returns:
            (items, next_sync_token)

        Raises:
            SyncTokenExpiredError: If Google no longer accepts `sync_token`
            MalformedResponseError: If the last page carries no nextSyncToken
        """
        all_items: list[dict] = []
        page_token = None
        next_sync_token = None

        while True:
            response = self.list_events_page(
                calendar_id=calendar_id,
                sync_token=sync_token,
                time_min=time_min,
                time_max=time_max,
                page_token=page_token,
            )
            if not isinstance(response, dict):
                raise MalformedResponseError(
                    f"Unexpected events.list payload for {calendar_id}"
                )

            items = response.get("items", [])
            if not isinstance(items, list):
                raise MalformedResponseError(
                    f"events.list items for {calendar_id} is not a list"
                )
            all_items.extend(item for item in items if isinstance(item, dict))

            next_sync_token = response.get("nextSyncToken") or next_sync_token
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        if not next_sync_token:
            raise MalformedResponseError(
                f"Google Calendar listing for {calendar_id} did not return nextSyncToken"
            )

        logger.debug(
            f"Listed {len(all_items)} changed events from {calendar_id} "
            f"({'delta' if sync_token else 'full'})"
        )
        return all_items, next_sync_token
