import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Optional

import httpx

from ..models.facts import Fact, FactStore, SourceTag
from .base import Importer

log = logging.getLogger("hovimestari.importers.weather")

METNO_API_URL = "https://api.met.no/weatherapi/locationforecast/2.0/compact"
# MET Norway rejects requests without an identifying User-Agent.
USER_AGENT = "Hovimestari/1.0 github.com/lepinkainen/hovimestari"

WIND_THRESHOLD = 5.0
UV_THRESHOLD = 3.0
HOURLY_LIMIT = 12


class WeatherError(Exception):
    """The weather provider returned unusable data."""


@dataclass
class DailyForecast:
    date: date
    min_temp: float
    max_temp: float
    symbol_code: str = ""
    wind_speed: float = 0.0
    uv_index: float = 0.0


def _symbol(data: dict, order: tuple[str, ...]) -> str:
    for period in order:
        block = data.get(period)
        if block:
            code = block.get("summary", {}).get("symbol_code")
            if code:
                return code
    return ""


def format_daily_forecast(forecast: DailyForecast) -> str:
    text = (
        f"Weather {forecast.date.isoformat()}: {forecast.symbol_code or 'variable'}, "
        f"temperature {forecast.min_temp:.0f}-{forecast.max_temp:.0f}°C"
    )
    if forecast.wind_speed > WIND_THRESHOLD:
        text += f", wind speed {forecast.wind_speed:.1f} m/s"
    if forecast.uv_index >= UV_THRESHOLD:
        text += f", Max UV Index: {forecast.uv_index:.1f}"
    return text


class MetNoClient:
    """Client for the MET Norway Locationforecast API."""

    def __init__(self, latitude: float, longitude: float, tz: tzinfo,
                 http: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.latitude = latitude
        self.longitude = longitude
        self.tz = tz
        self.http = http
        self.timeout = timeout

    def fetch_timeseries(self) -> list[dict]:
        params = {"lat": f"{self.latitude:.4f}", "lon": f"{self.longitude:.4f}"}
        headers = {"User-Agent": USER_AGENT}
        if self.http is not None:
            resp = self.http.get(METNO_API_URL, params=params, headers=headers, timeout=self.timeout)
        else:
            resp = httpx.get(METNO_API_URL, params=params, headers=headers, timeout=self.timeout)
        resp.raise_for_status()

        try:
            timeseries = resp.json()["properties"]["timeseries"]
        except (ValueError, KeyError, TypeError) as e:
            raise WeatherError(f"unexpected forecast payload: {e}") from e
        if not timeseries:
            raise WeatherError("no forecast data available")
        return timeseries

    def _entries(self, timeseries: list[dict]):
        for ts in timeseries:
            try:
                when = datetime.fromisoformat(ts["time"].replace("Z", "+00:00")).astimezone(self.tz)
                details = ts["data"]["instant"]["details"]
            except (KeyError, ValueError, AttributeError):
                log.warning("Skipping malformed forecast entry: %r", ts)
                continue
            yield when, details, ts["data"]

    def daily_forecasts(self, timeseries: Optional[list[dict]] = None) -> list[DailyForecast]:
        """Aggregate the timeseries into one forecast per local calendar date."""
        if timeseries is None:
            timeseries = self.fetch_timeseries()

        days: dict[date, DailyForecast] = {}
        winds: dict[date, list[float]] = {}

        for when, details, data in self._entries(timeseries):
            day = when.date()
            temp = details.get("air_temperature")
            if temp is None:
                continue

            forecast = days.get(day)
            if forecast is None:
                forecast = days[day] = DailyForecast(date=day, min_temp=temp, max_temp=temp)
                winds[day] = []

            forecast.min_temp = min(forecast.min_temp, temp)
            forecast.max_temp = max(forecast.max_temp, temp)
            if details.get("wind_speed") is not None:
                winds[day].append(details["wind_speed"])
            forecast.uv_index = max(forecast.uv_index, details.get("ultraviolet_index_clear_sky") or 0.0)

            # Daytime symbols win over night ones.
            if not forecast.symbol_code or 8 <= when.hour <= 20:
                code = _symbol(data, ("next_6_hours", "next_1_hours", "next_12_hours"))
                if code:
                    forecast.symbol_code = code

        for day, speeds in winds.items():
            if speeds:
                days[day].wind_speed = sum(speeds) / len(speeds)

        return [days[d] for d in sorted(days)]

    def hourly_forecast_today(self, now: datetime) -> str:
        timeseries = self.fetch_timeseries()
        local_now = now.astimezone(self.tz)

        hours = []
        for when, details, data in self._entries(timeseries):
            if when < local_now or when.date() != local_now.date():
                continue
            code = _symbol(data, ("next_1_hours", "next_6_hours", "next_12_hours")) or "unknown"
            hours.append(f"{when.strftime('%H:%M')}: {details.get('air_temperature', 0):.0f}°C ({code})")
            if len(hours) >= HOURLY_LIMIT:
                break

        if not hours:
            return ""
        return "Hourly forecast for today: " + ", ".join(hours)


class WeatherImporter(Importer):
    name = "weather"

    def __init__(self, store: FactStore, client: MetNoClient, location_name: str):
        self.store = store
        self.client = client
        self.source = SourceTag.weather(location_name)

    def run(self) -> int:
        forecasts = self.client.daily_forecasts()
        for forecast in forecasts:
            # Each run appends; reconciliation picks the newest at read time.
            self.store.insert_fact(Fact(
                content=format_daily_forecast(forecast),
                relevance_date=forecast.date,
                source=self.source,
            ))
        log.info("Stored %d daily forecasts for %s", len(forecasts), self.source.scope)
        return len(forecasts)
