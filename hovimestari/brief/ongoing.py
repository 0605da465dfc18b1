from datetime import datetime, tzinfo

from ..models.facts import FactStore


class OngoingEventDetector:
    def __init__(self, store: FactStore, tz: tzinfo):
        self.store = store
        self.tz = tz

    def detect(self, now: datetime) -> list[str]:
        ongoing = []
        for event in self.store.query_events_ongoing(now):
            if event.end_time:
                until = event.end_time.astimezone(self.tz).strftime("%H:%M")
                ongoing.append(f"{event.summary} (until {until})")
            else:
                ongoing.append(event.summary)
        return ongoing
