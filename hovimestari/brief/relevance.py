import logging
from datetime import datetime, timedelta, tzinfo

from ..models.facts import FactStore
from .formatter import format_event, format_fact

log = logging.getLogger("hovimestari.brief.relevance")


class RelevanceSelector:
    """Facts and calendar events relevant to [now, now + days_ahead]."""

    def __init__(self, store: FactStore, tz: tzinfo):
        self.store = store
        self.tz = tz

    def select(self, now: datetime, days_ahead: int) -> list[str]:
        if days_ahead < 0:
            raise ValueError("days_ahead must not be negative")

        start = now.astimezone(self.tz)
        end = start + timedelta(days=days_ahead)

        # A dated fact covers its whole local day.
        facts = self.store.query_facts_in_window(start.date(), end.date())
        events = self.store.query_events_overlapping(start, end)

        log.debug("Selected %d facts and %d events for %s..%s",
                  len(facts), len(events), start.date(), end.date())

        lines = [format_fact(f) for f in facts]
        lines.extend(format_event(e, self.tz) for e in events)
        return lines
