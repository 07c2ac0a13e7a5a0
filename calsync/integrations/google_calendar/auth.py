"""
Credentials for the Google Calendar source.

Token acquisition (the OAuth sign-in flow) happens elsewhere; this module
only turns the resulting tokens into google-auth credentials. Access token
refresh is performed by google-auth when requests are made.
"""

import logging
from typing import Optional

from google.oauth2.credentials import Credentials

from calsync.integrations.exceptions import SourceNotAuthorizedError

logger = logging.getLogger(__name__)

# Read-only access is enough to aggregate events
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
]

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def get_oauth_credentials(
    access_token: Optional[str],
    refresh_token: Optional[str] = None,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    token_uri: str = GOOGLE_TOKEN_URI,
    scopes: Optional[list[str]] = None,
) -> Credentials:
    """
    Create credentials from OAuth tokens.

    Args:
        access_token: Access token (may be empty when a refresh token is given)
        refresh_token: Refresh token for automatic renewal
        client_id: OAuth client ID, required for refresh
        client_secret: OAuth client secret, required for refresh
        token_uri: Google's token endpoint
        scopes: OAuth scopes

    Returns:
        Google credentials object

    Raises:
        SourceNotAuthorizedError: If neither token is available
    """
    if not access_token and not refresh_token:
        raise SourceNotAuthorizedError("Google Calendar is not signed in")

    return Credentials(
        token=access_token or None,
        refresh_token=refresh_token or None,
        token_uri=token_uri,
        client_id=client_id or None,
        client_secret=client_secret or None,
        scopes=scopes or CALENDAR_SCOPES,
    )


class GoogleAuthManager:
    """
    Supplies credentials to the Google Calendar source.

    Credentials are built lazily so a source can be constructed before the
    user signs in; until then every fetch reports not-authorized.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ):
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._credentials: Optional[Credentials] = None

    @classmethod
    def from_settings(cls, settings) -> "GoogleAuthManager":
        """Build from application settings."""
        return cls(
            access_token=settings.google_oauth_token,
            refresh_token=settings.google_oauth_refresh_token,
            client_id=settings.google_oauth_client_id,
            client_secret=settings.google_oauth_client_secret,
        )

    @property
    def is_signed_in(self) -> bool:
        """Check if any token is available."""
        return bool(self._access_token or self._refresh_token)

    def get_credentials(self) -> Credentials:
        """
        Get credentials, building them on first use.

        Raises:
            SourceNotAuthorizedError: If no token is available, or the
                credentials are expired and cannot be refreshed
        """
        if self._credentials is None:
            self._credentials = get_oauth_credentials(
                access_token=self._access_token,
                refresh_token=self._refresh_token,
                client_id=self._client_id,
                client_secret=self._client_secret,
            )
            logger.info("Loaded Google OAuth credentials")

        if self._credentials.expired and not self._credentials.refresh_token:
            raise SourceNotAuthorizedError(
                "Google access token expired and no refresh token is available"
            )

        return self._credentials
