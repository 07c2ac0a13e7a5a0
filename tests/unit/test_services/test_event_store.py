"""Tests for the unified event store."""

from datetime import timedelta, timezone

import pytest

from calsync.integrations.base import CalendarSource, DateRange, make_event_id


class TestUpsertAndGet:
    """Tests for single-event writes."""

    def test_insert_then_get(self, event_store, make_event):
        """Should round-trip an event through the database."""
        event = make_event(location="Room 1", notes="Agenda", calendar_id="primary")
        event_store.upsert(event)

        assert event_store.get(CalendarSource.GOOGLE, "evt-1") == event

    def test_times_come_back_utc(self, event_store, make_event):
        """Should return timezone-aware UTC datetimes."""
        event_store.upsert(make_event())
        stored = event_store.get(CalendarSource.GOOGLE, "evt-1")

        assert stored.start_time.tzinfo == timezone.utc
        assert stored.last_modified.tzinfo == timezone.utc

    def test_upsert_overwrites(self, event_store, make_event):
        """Should replace the row with the same id."""
        event_store.upsert(make_event(title="Old"))
        event_store.upsert(make_event(title="New"))

        assert event_store.count() == 1
        assert event_store.get(CalendarSource.GOOGLE, "evt-1").title == "New"

    def test_same_native_id_different_sources(self, event_store, make_event):
        """Should keep events of different sources apart."""
        event_store.upsert(make_event(source=CalendarSource.GOOGLE, native_id="shared"))
        event_store.upsert(make_event(source=CalendarSource.OUTLOOK, native_id="shared"))

        assert event_store.count() == 2
        assert event_store.count(CalendarSource.GOOGLE) == 1

    def test_get_missing(self, event_store):
        """Should return None for unknown ids."""
        assert event_store.get(CalendarSource.LOCAL, "nope") is None


class TestDelete:
    """Tests for deletion."""

    def test_delete_existing(self, event_store, make_event):
        """Should delete and report True."""
        event_store.upsert(make_event())
        assert event_store.delete(CalendarSource.GOOGLE, "evt-1") is True
        assert event_store.count() == 0

    def test_delete_missing(self, event_store):
        """Should report False when nothing was deleted."""
        assert event_store.delete(CalendarSource.GOOGLE, "nope") is False

    def test_delete_scoped_to_source(self, event_store, make_event):
        """Should not delete another source's event with the same native id."""
        event_store.upsert(make_event(source=CalendarSource.OUTLOOK, native_id="shared"))

        assert event_store.delete(CalendarSource.GOOGLE, "shared") is False
        assert event_store.count(CalendarSource.OUTLOOK) == 1


class TestQuery:
    """Tests for range queries."""

    def test_overlap_and_order(self, event_store, make_event, now):
        """Should return overlapping events ordered by start then source."""
        start = now + timedelta(days=1)
        event_store.upsert(make_event(source=CalendarSource.OUTLOOK, native_id="o", start=start))
        event_store.upsert(make_event(source=CalendarSource.LOCAL, native_id="l", start=start))
        event_store.upsert(make_event(native_id="early", start=start - timedelta(hours=3)))
        event_store.upsert(make_event(native_id="outside", start=now + timedelta(days=40)))

        results = event_store.query(DateRange(now, now + timedelta(days=2)))

        assert [e.native_id for e in results] == ["early", "l", "o"]

    def test_partial_overlap(self, event_store, make_event, now):
        """Should include events straddling a window edge."""
        event_store.upsert(make_event(start=now - timedelta(minutes=30)))
        assert len(event_store.query(DateRange(now, now + timedelta(hours=1)))) == 1

    def test_touching_edge_excluded(self, event_store, make_event, now):
        """Should exclude events ending exactly at the window start."""
        event_store.upsert(make_event(start=now - timedelta(hours=1)))
        assert event_store.query(DateRange(now, now + timedelta(hours=1))) == []

    def test_zero_length_event(self, event_store, make_event, now):
        """Should include instant events inside the window."""
        event_store.upsert(make_event(start=now, duration=timedelta(0)))
        assert len(event_store.query(DateRange(now, now + timedelta(hours=1)))) == 1

    def test_filter_sources(self, event_store, make_event, now):
        """Should restrict results to the given sources."""
        event_store.upsert(make_event(source=CalendarSource.LOCAL, native_id="l"))
        event_store.upsert(make_event(source=CalendarSource.GOOGLE, native_id="g"))

        results = event_store.query(
            DateRange(now, now + timedelta(days=7)),
            sources=[CalendarSource.LOCAL],
        )
        assert [e.native_id for e in results] == ["l"]


class TestTransaction:
    """Tests for all-or-nothing writes."""

    def test_commit(self, event_store, make_event):
        """Should persist every write of a clean transaction."""
        with event_store.transaction() as tx:
            tx.upsert(make_event(native_id="a"))
            tx.upsert(make_event(native_id="b"))

        assert event_store.count() == 2

    def test_rollback_on_error(self, event_store, make_event):
        """Should discard every write when the block raises."""
        event_store.upsert(make_event(native_id="keep"))

        with pytest.raises(RuntimeError):
            with event_store.transaction() as tx:
                tx.upsert(make_event(native_id="a"))
                tx.delete(CalendarSource.GOOGLE, "keep")
                raise RuntimeError("boom")

        assert event_store.count() == 1
        assert event_store.get(CalendarSource.GOOGLE, "keep") is not None

    def test_native_ids_in_window(self, event_store, make_event, now):
        """Should list one source's ids inside a window."""
        event_store.upsert(make_event(native_id="in"))
        event_store.upsert(make_event(native_id="far", start=now + timedelta(days=60)))
        event_store.upsert(make_event(source=CalendarSource.LOCAL, native_id="other"))

        with event_store.transaction() as tx:
            ids = tx.native_ids_in_window(CalendarSource.GOOGLE, DateRange(now, now + timedelta(days=7)))

        assert ids == {"in"}

    def test_version_stored(self, event_store, make_event):
        """Should store the backend timestamp and content hash."""
        event = make_event()
        event_store.upsert(event)

        with event_store.transaction() as tx:
            assert tx.get_version(CalendarSource.GOOGLE, "evt-1") == (
                event.last_modified,
                event.content_hash(),
            )
            assert tx.get_version(CalendarSource.GOOGLE, "missing") is None


class TestPrune:
    """Tests for retention pruning."""

    def test_prune_ended_before(self, event_store, make_event, now):
        """Should delete events that ended before the cutoff."""
        event_store.upsert(make_event(native_id="old", start=now - timedelta(days=100)))
        event_store.upsert(make_event(native_id="recent", start=now - timedelta(days=1)))

        deleted = event_store.prune_ended_before(now - timedelta(days=30))

        assert deleted == 1
        assert event_store.get(CalendarSource.GOOGLE, "old") is None
        assert event_store.get(CalendarSource.GOOGLE, "recent") is not None


def test_ids_are_deterministic(event_store, make_event):
    """Should store events under the id derived from source and native id."""
    event_store.upsert(make_event(native_id="abc"))
    stored = event_store.get(CalendarSource.GOOGLE, "abc")
    assert stored.id == make_event_id(CalendarSource.GOOGLE, "abc")
