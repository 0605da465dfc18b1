"""Tests for the relevance selector and line formatting."""

from datetime import date

import pytest

from conftest import HELSINKI, local, utc
from hovimestari.brief.formatter import extract_brief, format_event, format_fact
from hovimestari.brief.relevance import RelevanceSelector
from hovimestari.models.facts import CalendarEvent, Fact, FactStore, SourceTag

NOW = local(2025, 4, 20, 9, 0)


@pytest.fixture
def selector(store: FactStore) -> RelevanceSelector:
    return RelevanceSelector(store, HELSINKI)


def dentist(**overrides) -> CalendarEvent:
    values = dict(
        external_uid="dentist-1",
        summary="Dentist",
        start_time=local(2025, 4, 21, 10, 0),
        end_time=local(2025, 4, 21, 11, 0),
        location="Clinic",
        source=SourceTag.calendar("Family"),
    )
    values.update(overrides)
    return CalendarEvent(**values)


class TestFormatting:
    def test_dated_fact(self):
        fact = Fact("Dentist", SourceTag.manual(), date(2025, 4, 21))
        assert format_fact(fact) == "Dentist (relevant on 2025-04-21) [Source: manual]"

    def test_evergreen_fact(self):
        assert format_fact(Fact("Buy milk", SourceTag.manual())) == "Buy milk [Source: manual]"

    def test_same_day_event(self):
        assert format_event(dentist(), HELSINKI) == (
            "Calendar Event: Dentist from 2025-04-21 10:00 to 11:00 at Clinic "
            "(relevant on 2025-04-21) [Source: calendar:Family]"
        )

    def test_multi_day_event(self):
        """An end on another local day carries its full date."""
        e = dentist(summary="Cabin trip", location=None,
                    start_time=local(2025, 4, 21, 16, 0), end_time=local(2025, 4, 23, 12, 0))
        assert format_event(e, HELSINKI) == (
            "Calendar Event: Cabin trip from 2025-04-21 16:00 to 2025-04-23 12:00 "
            "(relevant on 2025-04-21) [Source: calendar:Family]"
        )

    def test_point_event_rendered_in_local_time(self):
        """A UTC start is shown in the configured timezone."""
        e = dentist(end_time=None, location=None, start_time=utc(2025, 4, 21, 21, 30))
        assert format_event(e, HELSINKI) == (
            "Calendar Event: Dentist at 2025-04-22 00:30 (relevant on 2025-04-22) [Source: calendar:Family]"
        )

    def test_long_description_truncated(self):
        e = dentist(description="x" * 500)
        line = format_event(e, HELSINKI)
        assert ". Description: " + "x" * 197 + "... (relevant on" in line

    def test_extract_brief_strips_fence(self):
        assert extract_brief("```markdown\nGood morning!\n```") == "Good morning!"
        assert extract_brief("  Plain text  ") == "Plain text"


class TestSelect:
    def test_scenario_window(self, store, selector):
        """Evergreen and in-window facts are both selected."""
        store.insert_fact(Fact("Buy milk", SourceTag.manual()))
        store.insert_fact(Fact("Dentist", SourceTag.manual(), date(2025, 4, 21)))

        lines = selector.select(NOW, 2)
        assert lines == [
            "Dentist (relevant on 2025-04-21) [Source: manual]",
            "Buy milk [Source: manual]",
        ]

    def test_outside_window(self, store, selector):
        """Only evergreen facts remain for a window that misses the dated one."""
        store.insert_fact(Fact("Buy milk", SourceTag.manual()))
        store.insert_fact(Fact("Dentist", SourceTag.manual(), date(2025, 4, 21)))

        lines = selector.select(local(2025, 4, 25, 9, 0), 2)
        assert lines == ["Buy milk [Source: manual]"]

    def test_boundaries(self, store, selector):
        """Local dates of both window ends are included."""
        for day in (19, 20, 22, 23):
            store.insert_fact(Fact(f"day {day}", SourceTag.manual(), date(2025, 4, day)))

        lines = selector.select(NOW, 2)
        assert [line.split(" (")[0] for line in lines] == ["day 20", "day 22"]

    def test_zero_days_ahead(self, store, selector):
        """days_ahead=0 still covers today."""
        store.insert_fact(Fact("today", SourceTag.manual(), date(2025, 4, 20)))
        store.insert_fact(Fact("tomorrow", SourceTag.manual(), date(2025, 4, 21)))
        assert [line.split(" (")[0] for line in selector.select(NOW, 0)] == ["today"]

    def test_facts_before_events(self, store, selector):
        """Facts come first, events after, each in store order."""
        store.upsert_event(dentist())
        store.insert_fact(Fact("Buy milk", SourceTag.manual()))

        lines = selector.select(NOW, 2)
        assert lines[0] == "Buy milk [Source: manual]"
        assert lines[1].startswith("Calendar Event: Dentist")

    def test_event_already_over_is_excluded(self, store, selector):
        """Events that ended before now are not selected."""
        store.upsert_event(dentist(start_time=local(2025, 4, 20, 7, 0), end_time=local(2025, 4, 20, 8, 0)))
        assert selector.select(NOW, 2) == []

    def test_negative_days_ahead(self, selector):
        with pytest.raises(ValueError):
            selector.select(NOW, -1)
