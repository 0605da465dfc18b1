"""Assemble everything the brief prompt needs into one ``BriefContext``.

The relevance query and timezone resolution are fatal. Forecasts, ongoing
events and the hourly forecast degrade to empty results with a warning so a
brief can still be produced without them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from ..config import Config, resolve_timezone
from ..importers.weather import MetNoClient, WeatherError
from ..models.facts import FactStore, StoreError
from .birthdays import find_birthdays
from .forecasts import ForecastReconciler
from .ongoing import OngoingEventDetector
from .relevance import RelevanceSelector

log = logging.getLogger("hovimestari.brief.context")

WEATHER_NOT_AVAILABLE = "Weather information not available"


@dataclass
class BriefContext:
    facts: list[str]
    attributes: dict[str, str]
    output_language: str


class ContextAssembler:
    def __init__(self, store: FactStore, config: Config, weather_client: Optional[MetNoClient] = None):
        self.store = store
        self.config = config
        self.weather_client = weather_client

    def build_context(self, now: Optional[datetime] = None, days_ahead: Optional[int] = None) -> BriefContext:
        tz = resolve_timezone(self.config.timezone)
        if days_ahead is None:
            days_ahead = self.config.days_ahead
        now_local = (now or datetime.now(timezone.utc)).astimezone(tz)
        end = now_local + timedelta(days=days_ahead)

        facts = RelevanceSelector(self.store, tz).select(now_local, days_ahead)
        birthdays = find_birthdays(now_local, self.config.family)

        try:
            ongoing = OngoingEventDetector(self.store, tz).detect(now_local)
        except StoreError as e:
            log.warning("Ongoing events unavailable: %s", e)
            ongoing = []

        reconciler = ForecastReconciler(self.store, self.config.location_name)
        try:
            forecasts = reconciler.latest_forecasts(now_local, end)
            changes = reconciler.forecast_changes(now_local, end)
        except StoreError as e:
            log.warning("Weather forecasts unavailable: %s", e)
            forecasts, changes = {}, {}

        hourly = ""
        if self.weather_client is not None:
            try:
                hourly = self.weather_client.hourly_forecast_today(now_local)
            except (httpx.HTTPError, WeatherError) as e:
                log.warning("Hourly forecast unavailable: %s", e)

        attributes = self._attributes(now_local, days_ahead, ongoing, birthdays, forecasts, changes, hourly)
        log.info("Brief context: %d facts, %d attributes", len(facts), len(attributes))
        return BriefContext(
            facts=facts,
            attributes=attributes,
            output_language=self.config.output_language,
        )

    def _attributes(self, now: datetime, days_ahead: int, ongoing: list[str], birthdays: list[str],
                    forecasts: dict[str, str], changes: dict[str, str], hourly: str) -> dict[str, str]:
        attributes = {
            "date": now.strftime("%A, ") + str(now.day) + now.strftime(" %B %Y"),
            "current_time": now.strftime("%H:%M"),
            "timezone": self.config.timezone,
            "location": self.config.location_name,
        }

        family = [member.name for member in self.config.family]
        if family:
            attributes["family"] = ", ".join(family)

        if ongoing:
            attributes["ongoing_events"] = "\n".join(ongoing)

        # Always present, unlike every other weather key.
        attributes["weather_today"] = forecasts.get(now.date().isoformat(), WEATHER_NOT_AVAILABLE)

        if hourly:
            attributes["hourly_forecast_today"] = hourly

        future = []
        for i in range(1, days_ahead + 1):
            day = (now + timedelta(days=i)).date().isoformat()
            if day in forecasts:
                future.append(forecasts[day])
        if future:
            attributes["weather_future"] = "\n".join(future)

        if changes:
            attributes["weather_changes"] = "\n".join(changes[day] for day in sorted(changes))

        if birthdays:
            attributes["birthdays"] = ", ".join(birthdays)

        return attributes
