"""
Microsoft Graph client for Outlook calendar delta queries.

Uses `GET /me/calendarView/delta` for the initial window and the returned
`@odata.deltaLink` for every later fetch.
"""

import logging
from typing import Callable, Optional

import httpx

from calsync.integrations.exceptions import (
    MalformedResponseError,
    RateLimitedError,
    SourceNotAuthorizedError,
    SyncTokenExpiredError,
    TransientNetworkError,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_TIMEOUT = 30.0  # seconds
PAGE_SIZE = 50

TokenProvider = Callable[[], Optional[str]]


def _raise_for_status(response: httpx.Response) -> None:
    """Convert a non-2xx Graph response to the matching SourceError."""
    status = response.status_code
    if 200 <= status < 300:
        return

    detail = response.text[:200]

    if status in (401, 403):
        raise SourceNotAuthorizedError(
            f"Microsoft Graph refused the access token ({status})"
        )
    elif status == 410:
        raise SyncTokenExpiredError(
            "Delta link is no longer valid - full sync required"
        )
    elif status == 429:
        raise RateLimitedError(
            "Microsoft Graph throttled the request",
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    elif status >= 500:
        raise TransientNetworkError(f"Microsoft Graph server error ({status}): {detail}")
    else:
        raise MalformedResponseError(f"Microsoft Graph API error ({status}): {detail}")


class OutlookGraphClient:
    """
    Async wrapper around the Graph calendarView delta API.

    Provides:
    - Bearer token injection from a token provider
    - Consistent error classification
    - Pagination over @odata.nextLink
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = DEFAULT_GRAPH_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            token_provider: Returns a current access token, or None when signed out
            base_url: Graph API base URL
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self._token_provider = token_provider
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        token = self._token_provider()
        if not token:
            raise SourceNotAuthorizedError("Outlook is not signed in")
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Prefer": f'outlook.timezone="UTC", odata.maxpagesize={PAGE_SIZE}',
        }

    async def list_window(self, start_iso: str, end_iso: str) -> tuple[list[dict], str]:
        """
        Start a delta round for a time window.

        Args:
            start_iso: Window start, ISO 8601
            end_iso: Window end, ISO 8601

        Returns:
            (items, delta_link)
        """
        url = f"{self._base_url}/me/calendarView/delta"
        params = {"startDateTime": start_iso, "endDateTime": end_iso}
        return await self._collect(url, params)

    async def list_delta(self, delta_link: str) -> tuple[list[dict], str]:
        """
        Fetch changes since a previous round.

        Returns:
            (items, delta_link)
        """
        return await self._collect(delta_link, None)

    async def _collect(self, url: str, params: Optional[dict]) -> tuple[list[dict], str]:
        items: list[dict] = []
        delta_link = None
        pages = 0

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            next_url: Optional[str] = url
            while next_url:
                try:
                    response = await client.get(next_url, params=params, headers=self._headers())
                except httpx.TimeoutException as e:
                    raise TransientNetworkError(
                        "Microsoft Graph request timed out",
                        original_error=e,
                    ) from e
                except httpx.RequestError as e:
                    raise TransientNetworkError(
                        f"Microsoft Graph request error: {e}",
                        original_error=e,
                    ) from e

                _raise_for_status(response)

                try:
                    payload = response.json()
                except ValueError as e:
                    raise MalformedResponseError(
                        "Microsoft Graph returned invalid JSON",
                        original_error=e,
                    ) from e

                if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
                    raise MalformedResponseError(
                        "Microsoft Graph delta payload has unexpected shape"
                    )

                items.extend(item for item in payload["value"] if isinstance(item, dict))
                pages += 1

                # nextLink and deltaLink already carry the query string
                params = None
                next_url = payload.get("@odata.nextLink")
                delta_link = payload.get("@odata.deltaLink") or delta_link

        if not delta_link:
            raise MalformedResponseError("Microsoft Graph delta round ended without a deltaLink")

        logger.debug(f"Collected {len(items)} Outlook delta items over {pages} pages")
        return items, delta_link
