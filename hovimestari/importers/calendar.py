import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional

import httpx
from icalendar import Calendar

from ..config import CalendarConfig
from ..models.facts import CalendarEvent, FactStore, SourceTag
from .base import Importer

log = logging.getLogger("hovimestari.importers.calendar")


class CalendarError(Exception):
    """A calendar feed could not be parsed."""


def normalize_url(url: str) -> str:
    if url.startswith("webcal://"):
        return "https://" + url[len("webcal://"):]
    return url


def _as_datetime(value, tz: tzinfo) -> datetime:
    # datetime is a subclass of date, so test it first.
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=tz)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz)
    raise ValueError(f"unsupported date value {value!r}")


def _text(component, key: str) -> Optional[str]:
    value = component.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_events(ics_data: str | bytes, source: SourceTag, tz: tzinfo) -> list[CalendarEvent]:
    """Parse VEVENTs, skipping (and logging) the ones that cannot be used."""
    try:
        calendar = Calendar.from_ical(ics_data)
    except ValueError as e:
        raise CalendarError(f"failed to parse calendar data: {e}") from e

    events = []
    skipped = 0
    for component in calendar.walk("VEVENT"):
        uid = _text(component, "UID")
        summary = _text(component, "SUMMARY")
        dtstart = component.get("DTSTART")
        if not uid or not summary or dtstart is None:
            log.warning("Skipping calendar event without UID, SUMMARY or DTSTART: %s", summary or uid or "unknown")
            skipped += 1
            continue

        try:
            start = _as_datetime(dtstart.dt, tz)
            dtend = component.get("DTEND")
            duration = component.get("DURATION")
            if dtend is not None:
                end = _as_datetime(dtend.dt, tz)
            elif duration is not None:
                end = start + duration.dt
            elif not isinstance(dtstart.dt, datetime):
                # All-day event without DTEND lasts one day.
                end = start + timedelta(days=1)
            else:
                end = None
        except (ValueError, TypeError, AttributeError) as e:
            log.warning("Skipping calendar event %s with unparsable time: %s", summary, e)
            skipped += 1
            continue

        events.append(CalendarEvent(
            external_uid=uid,
            summary=summary,
            start_time=start,
            end_time=end,
            location=_text(component, "LOCATION"),
            description=_text(component, "DESCRIPTION"),
            source=source,
        ))

    log.info("Parsed %d calendar events, skipped %d", len(events), skipped)
    return events


class CalendarImporter(Importer):
    name = "calendar"

    def __init__(self, store: FactStore, calendar: CalendarConfig, tz: tzinfo,
                 http: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.store = store
        self.calendar = calendar
        self.tz = tz
        self.http = http
        self.timeout = timeout
        self.url = normalize_url(calendar.url)
        self.source = SourceTag.calendar(calendar.name)

    def fetch(self) -> bytes:
        if self.http is not None:
            resp = self.http.get(self.url, timeout=self.timeout, follow_redirects=True)
        else:
            resp = httpx.get(self.url, timeout=self.timeout, follow_redirects=True)
        resp.raise_for_status()
        return resp.content

    def run(self) -> int:
        events = parse_events(self.fetch(), self.source, self.tz)
        return self.store_events(events)

    def store_events(self, events: list[CalendarEvent]) -> int:
        if self.calendar.update_mode == "full_refresh":
            self.store.delete_events_by_source(self.source)

        stored = 0
        new = 0
        for event in events:
            if not self.store.event_exists(self.source, event.external_uid, event.start_time):
                new += 1
            self.store.upsert_event(event)
            stored += 1

        log.info("Calendar %s: stored %d events, %d new (%s)",
                 self.calendar.name, stored, new, self.calendar.update_mode)
        return stored
