"""Tests for per-source cursor persistence."""

from datetime import timedelta

from calsync.integrations.base import CalendarSource, SyncCursor


class TestCursorPersistence:
    """Tests for reading and writing cursors."""

    def test_unknown_source_has_no_cursor(self, sync_state):
        """Should return None before the first sync."""
        assert sync_state.get_cursor(CalendarSource.GOOGLE) is None

    def test_set_and_get(self, sync_state, now):
        """Should persist token and date."""
        sync_state.set_cursor(CalendarSource.GOOGLE, SyncCursor("sync-1", now))

        assert sync_state.get_cursor(CalendarSource.GOOGLE) == SyncCursor("sync-1", now)

    def test_sources_independent(self, sync_state, now):
        """Should keep one cursor per source."""
        sync_state.set_cursor(CalendarSource.GOOGLE, SyncCursor("g", now))
        sync_state.set_cursor(CalendarSource.OUTLOOK, SyncCursor("o", now))

        assert sync_state.get_cursor(CalendarSource.GOOGLE).token == "g"
        assert sync_state.get_cursor(CalendarSource.OUTLOOK).token == "o"
        assert sync_state.get_cursor(CalendarSource.LOCAL) is None

    def test_advances(self, sync_state, now):
        """Should replace the token and move the date forward."""
        later = now + timedelta(minutes=5)
        sync_state.set_cursor(CalendarSource.GOOGLE, SyncCursor("sync-1", now))
        stored = sync_state.set_cursor(CalendarSource.GOOGLE, SyncCursor("sync-2", later))

        assert stored == SyncCursor("sync-2", later)
        assert sync_state.get_cursor(CalendarSource.GOOGLE) == SyncCursor("sync-2", later)

    def test_date_never_moves_backwards(self, sync_state, now):
        """Should clamp an earlier date to the stored one."""
        sync_state.set_cursor(CalendarSource.GOOGLE, SyncCursor("sync-1", now))
        stored = sync_state.set_cursor(
            CalendarSource.GOOGLE, SyncCursor("sync-2", now - timedelta(hours=1))
        )

        assert stored.last_sync_date == now
        assert stored.token == "sync-2"
        assert sync_state.get_cursor(CalendarSource.GOOGLE).last_sync_date == now

    def test_none_token(self, sync_state, now):
        """Should store cursors without a token."""
        sync_state.set_cursor(CalendarSource.LOCAL, SyncCursor(None, now))
        assert sync_state.get_cursor(CalendarSource.LOCAL).token is None


class TestClearing:
    """Tests for cursor resets."""

    def test_clear_one(self, sync_state, now):
        """Should forget only the given source."""
        sync_state.set_cursor(CalendarSource.GOOGLE, SyncCursor("g", now))
        sync_state.set_cursor(CalendarSource.LOCAL, SyncCursor("l", now))

        sync_state.clear_cursor(CalendarSource.GOOGLE)

        assert sync_state.get_cursor(CalendarSource.GOOGLE) is None
        assert sync_state.get_cursor(CalendarSource.LOCAL) is not None

    def test_clear_all(self, sync_state, now):
        """Should forget every source."""
        sync_state.set_cursor(CalendarSource.GOOGLE, SyncCursor("g", now))
        sync_state.set_cursor(CalendarSource.OUTLOOK, SyncCursor("o", now))

        sync_state.clear_all()

        assert sync_state.all_cursors() == {}

    def test_cleared_cursor_accepts_earlier_date(self, sync_state, now):
        """Should allow any date after a reset."""
        sync_state.set_cursor(CalendarSource.GOOGLE, SyncCursor("g", now))
        sync_state.clear_cursor(CalendarSource.GOOGLE)

        earlier = now - timedelta(days=1)
        sync_state.set_cursor(CalendarSource.GOOGLE, SyncCursor("g2", earlier))

        assert sync_state.get_cursor(CalendarSource.GOOGLE).last_sync_date == earlier

    def test_all_cursors(self, sync_state, now):
        """Should return every stored cursor keyed by source."""
        sync_state.set_cursor(CalendarSource.LOCAL, SyncCursor("l", now))
        sync_state.set_cursor(CalendarSource.OUTLOOK, SyncCursor("o", now))

        cursors = sync_state.all_cursors()

        assert set(cursors) == {CalendarSource.LOCAL, CalendarSource.OUTLOOK}
        assert cursors[CalendarSource.OUTLOOK].token == "o"
