"""Tests for the Google Calendar source adapter."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httplib2
import pytest

from calsync.integrations.base import CalendarSource, DateRange, SyncCursor
from calsync.integrations.exceptions import (
    SourceNotAuthorizedError,
    SyncTokenExpiredError,
    SyncErrorKind,
    TransientNetworkError,
)
from calsync.integrations.google_calendar.auth import GoogleAuthManager
from calsync.integrations.google_calendar.source import GoogleCalendarSource

FETCHED_AT = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
WINDOW = DateRange(
    start=datetime(2024, 5, 16, tzinfo=timezone.utc),
    end=datetime(2024, 9, 13, tzinfo=timezone.utc),
)


def google_item(event_id: str, status: str = "confirmed") -> dict:
    return {
        "id": event_id,
        "status": status,
        "summary": f"Event {event_id}",
        "start": {"dateTime": "2024-06-20T10:00:00Z"},
        "end": {"dateTime": "2024-06-20T11:00:00Z"},
        "updated": "2024-06-10T09:00:00Z",
    }


@pytest.fixture
def mock_client():
    """Patch the API client class used by the source."""
    with patch("calsync.integrations.google_calendar.source.GoogleCalendarClient") as client_class:
        yield client_class.return_value


@pytest.fixture
def source(mock_client):
    return GoogleCalendarSource(
        GoogleAuthManager(access_token="token"),
        calendar_id="primary",
        clock=lambda: FETCHED_AT,
    )


class TestFullFetch:
    """Tests for fetching without a cursor."""

    @pytest.mark.asyncio
    async def test_lists_window(self, source, mock_client):
        """Should list the window and return a snapshot change set."""
        mock_client.list_changes.return_value = ([google_item("a"), google_item("b")], "sync-1")

        change_set = await source.fetch_changes(None, WINDOW)

        mock_client.list_changes.assert_called_once_with(
            calendar_id="primary",
            time_min="2024-05-16T00:00:00+00:00",
            time_max="2024-09-13T00:00:00+00:00",
        )
        assert change_set.source == CalendarSource.GOOGLE
        assert [e.native_id for e in change_set.upserts] == ["a", "b"]
        assert change_set.full_window == WINDOW
        assert change_set.next_cursor == SyncCursor(token="sync-1", last_sync_date=FETCHED_AT)

    @pytest.mark.asyncio
    async def test_cursor_without_token_is_full(self, source, mock_client):
        """Should treat a cursor without a token as a full fetch."""
        mock_client.list_changes.return_value = ([], "sync-1")

        change_set = await source.fetch_changes(SyncCursor(None, FETCHED_AT), WINDOW)

        assert change_set.full_window == WINDOW
        assert "sync_token" not in mock_client.list_changes.call_args.kwargs


class TestDeltaFetch:
    """Tests for fetching with a sync token."""

    @pytest.mark.asyncio
    async def test_uses_sync_token(self, source, mock_client):
        """Should list only changes since the token."""
        mock_client.list_changes.return_value = (
            [google_item("a"), google_item("gone", status="cancelled")],
            "sync-2",
        )

        change_set = await source.fetch_changes(SyncCursor("sync-1", FETCHED_AT), WINDOW)

        mock_client.list_changes.assert_called_once_with(
            calendar_id="primary",
            sync_token="sync-1",
        )
        assert [e.native_id for e in change_set.upserts] == ["a"]
        assert list(change_set.deletions) == ["gone"]
        assert change_set.full_window is None
        assert change_set.next_cursor.token == "sync-2"

    @pytest.mark.asyncio
    async def test_expired_token_falls_back_to_full(self, source, mock_client):
        """Should refetch the window when Google rejects the token."""
        mock_client.list_changes.side_effect = [
            SyncTokenExpiredError("gone"),
            ([google_item("a")], "sync-fresh"),
        ]

        change_set = await source.fetch_changes(SyncCursor("stale", FETCHED_AT), WINDOW)

        assert mock_client.list_changes.call_count == 2
        second_call = mock_client.list_changes.call_args_list[1]
        assert "time_min" in second_call.kwargs
        assert change_set.full_window == WINDOW
        assert change_set.next_cursor.token == "sync-fresh"

    @pytest.mark.asyncio
    async def test_transient_error_propagates(self, source, mock_client):
        """Should surface transient failures to the caller."""
        mock_client.list_changes.side_effect = TransientNetworkError("503")

        with pytest.raises(TransientNetworkError):
            await source.fetch_changes(SyncCursor("sync-1", FETCHED_AT), WINDOW)


class TestNotSignedIn:
    """Tests for a source without credentials."""

    @pytest.mark.asyncio
    async def test_not_authorized(self, mock_client):
        """Should report not-authorized before any API call."""
        source = GoogleCalendarSource(GoogleAuthManager(), clock=lambda: FETCHED_AT)

        with pytest.raises(SourceNotAuthorizedError):
            await source.fetch_changes(None, WINDOW)

        mock_client.list_changes.assert_not_called()


class TestOffline:
    """Tests for a device without network access."""

    @pytest.mark.asyncio
    async def test_dns_failure_is_transient(self):
        """Should report an unresolvable API host as a transient network error."""
        with patch("calsync.integrations.google_calendar.client.build") as mock_build:
            mock_build.return_value.events.return_value.list.return_value.execute.side_effect = (
                httplib2.ServerNotFoundError("Unable to find the server at www.googleapis.com")
            )
            source = GoogleCalendarSource(
                GoogleAuthManager(access_token="token"),
                calendar_id="primary",
                clock=lambda: FETCHED_AT,
            )

            with pytest.raises(TransientNetworkError) as exc_info:
                await source.fetch_changes(SyncCursor("sync-1", FETCHED_AT), WINDOW)

        assert exc_info.value.kind == SyncErrorKind.TRANSIENT_NETWORK
