"""Tests for the SQLite fact store."""

from datetime import date

import pytest

from conftest import local, utc
from hovimestari.models.facts import (
    CalendarEvent,
    Fact,
    FactStore,
    SourceKind,
    SourceTag,
    StoreError,
    from_db_timestamp,
    to_db_timestamp,
)


def manual(content: str, day=None) -> Fact:
    return Fact(content=content, relevance_date=day, source=SourceTag.manual())


def event(uid: str, summary: str, start, end=None, source=None) -> CalendarEvent:
    return CalendarEvent(
        external_uid=uid,
        summary=summary,
        start_time=start,
        end_time=end,
        source=source or SourceTag.calendar("Family"),
    )


class TestSourceTag:
    def test_flat_form(self):
        """Tags render as prefix:scope."""
        assert str(SourceTag.weather("Espoo")) == "weather-metno:Espoo"
        assert str(SourceTag.calendar("Family")) == "calendar:Family"
        assert str(SourceTag.manual()) == "manual"

    def test_parse_known_kinds(self):
        """Known prefixes parse into kind and scope."""
        assert SourceTag.parse("weather-metno:Espoo") == SourceTag(SourceKind.WEATHER, "Espoo")
        assert SourceTag.parse("calendar:Work:Shared") == SourceTag(SourceKind.CALENDAR, "Work:Shared")
        assert SourceTag.parse("manual") == SourceTag(SourceKind.MANUAL, None)
        assert SourceTag.parse("waterquality:Otaniemi") == SourceTag.water_quality("Otaniemi")

    def test_unknown_source_is_kept(self):
        """Unknown producers survive a parse/str cycle unchanged."""
        tag = SourceTag.parse("school-lunch:Ruusutorppa")
        assert tag.kind is SourceKind.OTHER
        assert str(tag) == "school-lunch:Ruusutorppa"


class TestTimestamps:
    def test_utc_normalization(self):
        """Aware datetimes are stored in UTC."""
        assert to_db_timestamp(local(2025, 4, 21, 10, 0)) == "2025-04-21T07:00:00.000000"

    def test_lexical_order_matches_time(self):
        """Fixed-width strings sort chronologically."""
        earlier = to_db_timestamp(utc(2025, 4, 21, 9, 59, 59, 999999))
        later = to_db_timestamp(utc(2025, 4, 21, 10, 0, 0))
        assert earlier < later
        assert from_db_timestamp(later) == utc(2025, 4, 21, 10, 0)


class TestInitDb:
    def test_idempotent(self, store: FactStore):
        """Running init_db twice keeps existing data."""
        store.insert_fact(manual("Buy milk"))
        store.init_db()
        assert len(store.query_facts_in_window(date(2025, 1, 1), date(2025, 1, 1))) == 1

    def test_missing_schema_raises_store_error(self, tmp_path):
        """sqlite errors surface as StoreError naming the operation."""
        s = FactStore(str(tmp_path / "empty.db"))
        with pytest.raises(StoreError, match="query_facts_in_window"):
            s.query_facts_in_window(date(2025, 1, 1), date(2025, 1, 2))


class TestFacts:
    def test_insert_assigns_id_and_created_at(self, store: FactStore):
        """Inserted facts get an id and a creation time."""
        fact = store.insert_fact(manual("Dentist", date(2025, 4, 21)))
        assert fact.id is not None
        assert fact.created_at is not None

    def test_explicit_created_at_is_kept(self, store: FactStore):
        """A caller-provided created_at is stored as is."""
        f = manual("Old note")
        f.created_at = utc(2024, 1, 1, 12, 0)
        store.insert_fact(f)
        stored = store.query_facts_in_window(date(2024, 1, 1), date(2024, 1, 1))[0]
        assert stored.created_at == utc(2024, 1, 1, 12, 0)

    def test_evergreen_and_dated_in_window(self, store: FactStore):
        """Evergreen facts are always returned, dated ones only inside the window."""
        store.insert_fact(manual("Buy milk"))
        store.insert_fact(manual("Dentist", date(2025, 4, 21)))

        inside = [f.content for f in store.query_facts_in_window(date(2025, 4, 20), date(2025, 4, 22))]
        outside = [f.content for f in store.query_facts_in_window(date(2025, 4, 25), date(2025, 4, 27))]

        assert sorted(inside) == ["Buy milk", "Dentist"]
        assert outside == ["Buy milk"]

    @pytest.mark.parametrize("start,end", [
        (date(2000, 1, 1), date(2000, 1, 1)),
        (date(2099, 12, 30), date(2099, 12, 31)),
        (date(2025, 4, 21), date(2025, 4, 21)),
    ])
    def test_evergreen_in_any_window(self, store: FactStore, start, end):
        """Evergreen inclusion holds for past, future and single-day windows."""
        store.insert_fact(manual("Always"))
        assert [f.content for f in store.query_facts_in_window(start, end)] == ["Always"]

    def test_window_boundaries_inclusive(self, store: FactStore):
        """Facts on either boundary are in, a day outside is out."""
        for day in (19, 20, 22, 23):
            store.insert_fact(manual(f"day {day}", date(2025, 4, day)))

        result = [f.content for f in store.query_facts_in_window(date(2025, 4, 20), date(2025, 4, 22))]
        assert result == ["day 20", "day 22"]

    def test_ordering_dated_then_evergreen(self, store: FactStore):
        """Dated facts ascend by date, evergreen facts follow."""
        store.insert_fact(manual("evergreen"))
        store.insert_fact(manual("later", date(2025, 4, 22)))
        store.insert_fact(manual("sooner", date(2025, 4, 20)))

        result = [f.content for f in store.query_facts_in_window(date(2025, 4, 20), date(2025, 4, 22))]
        assert result == ["sooner", "later", "evergreen"]

    def test_query_by_source(self, store: FactStore):
        """Only facts with the exact source tag are returned."""
        store.insert_fact(Fact("Espoo sunny", SourceTag.weather("Espoo"), date(2025, 4, 21)))
        store.insert_fact(Fact("Oulu snow", SourceTag.weather("Oulu"), date(2025, 4, 21)))
        store.insert_fact(manual("note", date(2025, 4, 21)))

        result = store.query_facts_by_source(SourceTag.weather("Espoo"), date(2025, 4, 21), date(2025, 4, 21))
        assert [f.content for f in result] == ["Espoo sunny"]
        assert result[0].source == SourceTag.weather("Espoo")


class TestEvents:
    def test_upsert_updates_existing(self, store: FactStore):
        """Same (source, uid, start) updates instead of duplicating."""
        start = utc(2025, 4, 21, 7, 0)
        store.upsert_event(event("a", "Dentist", start, utc(2025, 4, 21, 8, 0)))
        store.upsert_event(event("a", "Dentist (moved room)", start, utc(2025, 4, 21, 8, 30)))

        events = store.query_events_overlapping(utc(2025, 4, 21, 0, 0), utc(2025, 4, 22, 0, 0))
        assert len(events) == 1
        assert events[0].summary == "Dentist (moved room)"
        assert events[0].end_time == utc(2025, 4, 21, 8, 30)

    def test_event_exists(self, store: FactStore):
        """event_exists matches on source, uid and start."""
        start = utc(2025, 4, 21, 7, 0)
        store.upsert_event(event("a", "Dentist", start))
        assert store.event_exists(SourceTag.calendar("Family"), "a", start)
        assert not store.event_exists(SourceTag.calendar("Work"), "a", start)
        assert not store.event_exists(SourceTag.calendar("Family"), "a", utc(2025, 4, 22, 7, 0))

    def test_delete_by_source(self, store: FactStore):
        """Deleting one source leaves other calendars alone."""
        store.upsert_event(event("a", "A", utc(2025, 4, 21, 7, 0)))
        store.upsert_event(event("b", "B", utc(2025, 4, 21, 9, 0)))
        store.upsert_event(event("c", "C", utc(2025, 4, 21, 9, 0), source=SourceTag.calendar("Work")))

        assert store.delete_events_by_source(SourceTag.calendar("Family")) == 2
        remaining = store.query_events_overlapping(utc(2025, 4, 21, 0, 0), utc(2025, 4, 22, 0, 0))
        assert [e.summary for e in remaining] == ["C"]

    def test_overlapping(self, store: FactStore):
        """Events starting in, ending in, or spanning the window are returned."""
        store.upsert_event(event("before", "Before", utc(2025, 4, 19, 8), utc(2025, 4, 19, 9)))
        store.upsert_event(event("ends", "Ends inside", utc(2025, 4, 20, 22), utc(2025, 4, 21, 1)))
        store.upsert_event(event("spans", "Spans", utc(2025, 4, 18, 0), utc(2025, 4, 30, 0)))
        store.upsert_event(event("point", "Point", utc(2025, 4, 21, 12)))
        store.upsert_event(event("after", "After", utc(2025, 4, 23, 8), utc(2025, 4, 23, 9)))

        result = store.query_events_overlapping(utc(2025, 4, 21, 0), utc(2025, 4, 22, 0))
        assert [e.summary for e in result] == ["Spans", "Ends inside", "Point"]

    def test_ongoing(self, store: FactStore):
        """Ongoing means started and not yet ended, end inclusive."""
        now = utc(2025, 4, 21, 10, 0)
        store.upsert_event(event("running", "Running", utc(2025, 4, 21, 9), utc(2025, 4, 21, 11)))
        store.upsert_event(event("ending", "Ending now", utc(2025, 4, 21, 9), now))
        store.upsert_event(event("open", "Open ended", utc(2025, 4, 21, 8)))
        store.upsert_event(event("future", "Future", utc(2025, 4, 21, 10, 1), utc(2025, 4, 21, 12)))
        store.upsert_event(event("past", "Past", utc(2025, 4, 21, 8), utc(2025, 4, 21, 9, 59)))

        assert [e.summary for e in store.query_events_ongoing(now)] == ["Open ended", "Running", "Ending now"]

    def test_log_import(self, store: FactStore):
        """Import runs are recorded."""
        store.log_import("weather:Espoo", 9, "success", duration=0.4)
        store.log_import("calendar:Family", 0, "failed", "timeout", 30.0)
        rows = store._execute("test", "SELECT importer, status, error_message FROM import_log ORDER BY id")
        assert [tuple(r) for r in rows] == [
            ("weather:Espoo", "success", None),
            ("calendar:Family", "failed", "timeout"),
        ]
