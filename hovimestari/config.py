"""Configuration loading from environment variables and a TOML file.

Priority: environment variables > config file > defaults. The result is a
fully resolved ``Config`` that is handed to every component explicitly.
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

log = logging.getLogger("hovimestari.config")

CONFIG_FILENAME = "hovimestari.toml"
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_OUTPUT_LANGUAGE = "Finnish"
DEFAULT_DAYS_AHEAD = 2
UPDATE_MODES = ("upsert", "full_refresh")


class ConfigError(Exception):
    """Configuration is missing or invalid."""


@dataclass
class CalendarConfig:
    name: str
    url: str
    update_mode: str = "upsert"


@dataclass
class FamilyMember:
    name: str
    birthday: Optional[str] = None  # YYYY-MM-DD, year only used for age


@dataclass
class TelegramConfig:
    bot_token: str
    chat_id: str


@dataclass
class OutputConfig:
    enable_cli: bool = False
    discord_webhook_urls: list[str] = field(default_factory=list)
    telegram_bots: list[TelegramConfig] = field(default_factory=list)

    def has_channels(self) -> bool:
        return self.enable_cli or bool(self.discord_webhook_urls) or bool(self.telegram_bots)


@dataclass
class SchedulerConfig:
    brief_hour: int = 6
    brief_minute: int = 0
    weather_interval_hours: int = 3
    calendar_interval_minutes: int = 30


@dataclass
class Config:
    location_name: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    timezone: str = ""
    db_path: str = ""
    log_level: str = "INFO"
    anthropic_api_key: str = ""
    model: str = ""
    max_tokens: int = 2048
    output_language: str = ""
    prompt_file: Optional[str] = None
    days_ahead: Optional[int] = None
    dry_run: bool = False
    calendars: list[CalendarConfig] = field(default_factory=list)
    family: list[FamilyMember] = field(default_factory=list)
    outputs: OutputConfig = field(default_factory=OutputConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


def config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "hovimestari"


def resolve_timezone(name: str) -> ZoneInfo:
    if not name:
        raise ConfigError("timezone is required")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"invalid timezone {name!r}") from e


def _find_config_file(config_path: Optional[Path]) -> Optional[Path]:
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"config file not found: {config_path}")
        return config_path
    env_path = os.environ.get("HOVIMESTARI_CONFIG")
    if env_path:
        return _find_config_file(Path(env_path))
    for candidate in [Path.cwd() / CONFIG_FILENAME, config_dir() / "config.toml"]:
        if candidate.exists():
            return candidate
    return None


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def _birthday(value) -> Optional[str]:
    # An unquoted TOML date arrives as a date object.
    if isinstance(value, date):
        return value.isoformat()
    return str(value) if value else None


def _parse(data: dict) -> Config:
    location = data.get("location", {})
    llm = data.get("llm", {})
    outputs = data.get("outputs", {})
    scheduler = data.get("scheduler", {})
    try:
        days_ahead = os.environ.get("HOVIMESTARI_DAYS_AHEAD", data.get("days_ahead"))
        return Config(
            location_name=location.get("name", ""),
            latitude=float(location.get("latitude", 0.0)),
            longitude=float(location.get("longitude", 0.0)),
            timezone=location.get("timezone", ""),
            db_path=os.environ.get("HOVIMESTARI_DB_PATH", data.get("db_path", "")),
            log_level=os.environ.get("HOVIMESTARI_LOG_LEVEL", data.get("log_level", "INFO")),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", llm.get("api_key", "")),
            model=os.environ.get("HOVIMESTARI_MODEL", llm.get("model", "")),
            max_tokens=int(llm.get("max_tokens", 2048)),
            output_language=llm.get("output_language", ""),
            prompt_file=llm.get("prompt_file"),
            days_ahead=int(days_ahead) if days_ahead is not None else None,
            dry_run=_env_bool("DRY_RUN", bool(data.get("dry_run", False))),
            calendars=[
                CalendarConfig(
                    name=c.get("name", ""),
                    url=c.get("url", ""),
                    update_mode=c.get("update_mode", ""),
                )
                for c in data.get("calendars", [])
            ],
            family=[
                FamilyMember(
                    name=m.get("name", ""),
                    birthday=_birthday(m.get("birthday")),
                )
                for m in data.get("family", [])
            ],
            outputs=OutputConfig(
                enable_cli=bool(outputs.get("enable_cli", False)),
                discord_webhook_urls=[u for u in outputs.get("discord_webhook_urls", []) if u],
                telegram_bots=[
                    TelegramConfig(bot_token=t.get("bot_token", ""), chat_id=str(t.get("chat_id", "")))
                    for t in outputs.get("telegram_bots", [])
                    if t.get("bot_token") and t.get("chat_id")
                ],
            ),
            scheduler=SchedulerConfig(
                brief_hour=int(scheduler.get("brief_hour", 6)),
                brief_minute=int(scheduler.get("brief_minute", 0)),
                weather_interval_hours=int(scheduler.get("weather_interval_hours", 3)),
                calendar_interval_minutes=int(scheduler.get("calendar_interval_minutes", 30)),
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"malformed configuration value: {e}") from e


def resolve_defaults(config: Config, base_dir: Optional[Path] = None) -> Config:
    """Fill in every default in one place so nothing downstream falls back."""
    base_dir = base_dir or config_dir()
    if not config.db_path:
        config.db_path = str(base_dir / "memories.db")
    elif not Path(config.db_path).is_absolute():
        config.db_path = str(base_dir / config.db_path)
    if config.prompt_file and not Path(config.prompt_file).is_absolute():
        config.prompt_file = str(base_dir / config.prompt_file)
    if not config.model:
        config.model = DEFAULT_MODEL
    if not config.output_language:
        config.output_language = DEFAULT_OUTPUT_LANGUAGE
    if config.days_ahead is None:
        config.days_ahead = DEFAULT_DAYS_AHEAD
    for cal in config.calendars:
        if not cal.update_mode:
            cal.update_mode = "upsert"
    if not config.outputs.has_channels():
        config.outputs.enable_cli = True
    return config


def validate(config: Config):
    if not config.location_name:
        raise ConfigError("location name is required")
    if not -90 <= config.latitude <= 90:
        raise ConfigError("latitude must be between -90 and 90")
    if not -180 <= config.longitude <= 180:
        raise ConfigError("longitude must be between -180 and 180")
    resolve_timezone(config.timezone)
    if config.days_ahead is not None and config.days_ahead < 0:
        raise ConfigError("days_ahead must not be negative")
    for i, cal in enumerate(config.calendars, start=1):
        if not cal.name:
            raise ConfigError(f"calendar {i} is missing a name")
        if not cal.url:
            raise ConfigError(f"calendar {i} ({cal.name}) is missing a URL")
        if cal.update_mode not in UPDATE_MODES:
            raise ConfigError(f"calendar {cal.name} has unknown update mode {cal.update_mode!r}")
    for i, member in enumerate(config.family, start=1):
        if not member.name:
            raise ConfigError(f"family member {i} is missing a name")


def load_config(config_path: Optional[Path] = None) -> Config:
    path = _find_config_file(config_path)
    data: dict = {}
    if path is not None:
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"failed to parse {path}: {e}") from e
        log.debug("Using config file %s", path)
    else:
        log.warning("No configuration file found, using defaults and environment variables")

    config = _parse(data)
    resolve_defaults(config, base_dir=path.parent if path is not None else None)
    validate(config)
    return config
