import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone

from ..models.facts import Fact, FactStore, SourceTag

log = logging.getLogger("hovimestari.brief.forecasts")


def utc_day_window(start: datetime, end: datetime) -> tuple[date, date]:
    """Floor start to 00:00 UTC and ceil end to the next day's 00:00 UTC.

    The window also covers the local dates of both ends, which fall outside
    the UTC days in timezones behind UTC.
    """
    utc_start = start.astimezone(timezone.utc)
    utc_end = end.astimezone(timezone.utc)
    first = min(start.date(), utc_start.date())
    last = max(end.date(), utc_end.date()) + timedelta(days=1)
    return first, last


def _newest_first(facts: list[Fact]) -> list[Fact]:
    # Row id breaks ties between identical created_at values.
    return sorted(facts, key=lambda f: (f.created_at, f.id or 0), reverse=True)


class ForecastReconciler:
    """Resolve repeated forecast imports to one forecast per date."""

    def __init__(self, store: FactStore, location_name: str):
        self.store = store
        self.source = SourceTag.weather(location_name)

    def _grouped(self, start: datetime, end: datetime) -> dict[str, list[Fact]]:
        first, last = utc_day_window(start, end)
        groups: dict[str, list[Fact]] = defaultdict(list)
        for fact in self.store.query_facts_by_source(self.source, first, last):
            if fact.relevance_date is None:
                continue
            groups[fact.relevance_date.isoformat()].append(fact)
        return groups

    def latest_forecasts(self, start: datetime, end: datetime) -> dict[str, str]:
        return {
            day: _newest_first(facts)[0].content
            for day, facts in self._grouped(start, end).items()
        }

    def forecast_changes(self, start: datetime, end: datetime) -> dict[str, str]:
        """Flag dates whose two most recent forecasts differ."""
        changes = {}
        for day, facts in sorted(self._grouped(start, end).items()):
            if len(facts) < 2:
                continue
            newest, previous = _newest_first(facts)[:2]
            if newest.content != previous.content:
                changes[day] = f"Forecast for {day} has changed since the previous update"
        if changes:
            log.info("Forecast changed for %d day(s)", len(changes))
        return changes
