"""
Exceptions raised by calendar sources and the merge engine.

Provides structured error handling with an error kind and retryable flag.
"""

from enum import Enum
from typing import Optional


class SyncErrorKind(str, Enum):
    """Classification of a per-source sync failure."""

    NOT_AUTHORIZED = "not_authorized"
    TRANSIENT_NETWORK = "transient_network"
    RATE_LIMITED = "rate_limited"
    MALFORMED_RESPONSE = "malformed_response"
    MERGE_FAILURE = "merge_failure"


class SourceError(Exception):
    """Base exception for calendar source operations."""

    kind: SyncErrorKind = SyncErrorKind.MALFORMED_RESPONSE
    retryable: bool = False

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class SourceNotAuthorizedError(SourceError):
    """
    Credential missing, expired or refused.

    Causes:
    - User never signed in, or revoked access
    - Refresh token expired
    - Local calendar access not granted

    Not retried until the user re-authenticates.
    """

    kind = SyncErrorKind.NOT_AUTHORIZED
    retryable = False


class TransientNetworkError(SourceError):
    """
    Network failure or server-side error (5xx, timeouts, resets).

    Retried by the next scheduled pass.
    """

    kind = SyncErrorKind.TRANSIENT_NETWORK
    retryable = True


class RateLimitedError(SourceError):
    """
    Backend throttled the request (429, quota exceeded).

    Carries the backend's backoff hint when one was sent.
    """

    kind = SyncErrorKind.RATE_LIMITED
    retryable = True

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)
        self.retry_after = retry_after


class MalformedResponseError(SourceError):
    """
    Backend response did not match the expected contract.

    Causes:
    - Invalid JSON or iCalendar data
    - Missing required fields (ids, times, continuation tokens)

    Not retried; indicates a backend contract change.
    """

    kind = SyncErrorKind.MALFORMED_RESPONSE
    retryable = False


class MergeFailureError(SourceError):
    """
    Applying a change set to the local store failed.

    The cursor is not advanced, so the next pass refetches the same changes.
    """

    kind = SyncErrorKind.MERGE_FAILURE
    retryable = True


class SyncTokenExpiredError(SourceError):
    """
    Backend rejected the continuation token (HTTP 410 Gone).

    Handled inside remote sources by falling back to a full window fetch.
    """

    kind = SyncErrorKind.MALFORMED_RESPONSE
    retryable = False


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return max(seconds, 0.0)
