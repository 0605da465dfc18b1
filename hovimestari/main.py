import argparse
import logging
import sys
import time
from datetime import date, datetime, timezone
from pathlib import Path

import anthropic
import httpx
from apscheduler.schedulers.blocking import BlockingScheduler

from .brief.engine import BriefEngine
from .config import Config, ConfigError, load_config, resolve_timezone
from .delivery.dispatch import DeliveryError, deliver
from .importers.base import Importer
from .importers.calendar import CalendarError, CalendarImporter
from .importers.weather import MetNoClient, WeatherError, WeatherImporter
from .models.facts import Fact, FactStore, SourceTag, StoreError

log = logging.getLogger("hovimestari")


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def open_store(config: Config) -> FactStore:
    Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)
    store = FactStore(config.db_path)
    store.init_db()
    return store


def weather_client(config: Config) -> MetNoClient:
    return MetNoClient(config.latitude, config.longitude, resolve_timezone(config.timezone))


def run_import(store: FactStore, importer: Importer, label: str) -> bool:
    """Run one importer and record the outcome in the import log."""
    start = time.time()
    try:
        count = importer.run()
    except (httpx.HTTPError, WeatherError, CalendarError) as e:
        duration = time.time() - start
        store.log_import(label, 0, "failed", str(e), duration)
        log.error("Import %s failed: %s", label, e)
        return False
    duration = time.time() - start
    store.log_import(label, count, "success", duration=duration)
    log.info("Import %s: %d items (%.1fs)", label, count, duration)
    return True


def import_weather(config: Config, store: FactStore) -> bool:
    importer = WeatherImporter(store, weather_client(config), config.location_name)
    return run_import(store, importer, f"weather:{config.location_name}")


def import_calendars(config: Config, store: FactStore) -> bool:
    tz = resolve_timezone(config.timezone)
    ok = True
    for calendar in config.calendars:
        importer = CalendarImporter(store, calendar, tz)
        ok = run_import(store, importer, f"calendar:{calendar.name}") and ok
    return ok


def generate_and_deliver(config: Config, store: FactStore, days_ahead: int | None = None):
    engine = BriefEngine(store, config, weather_client=weather_client(config))
    brief = engine.generate_brief(days_ahead=days_ahead)
    deliver(brief, config.outputs, dry_run=config.dry_run)


def run_brief_job(config: Config, store: FactStore):
    log.info("=== Starting daily brief ===")
    try:
        generate_and_deliver(config, store)
    except (ConfigError, StoreError, anthropic.APIError, DeliveryError) as e:
        log.error("Daily brief failed: %s", e)
        return
    log.info("=== Daily brief complete ===")


def run_scheduler(config: Config, store: FactStore) -> int:
    scheduler = BlockingScheduler(timezone=resolve_timezone(config.timezone))
    sched = config.scheduler

    scheduler.add_job(
        import_weather, "interval", hours=sched.weather_interval_hours,
        args=[config, store], id="import_weather", name="Weather import",
    )
    if config.calendars:
        scheduler.add_job(
            import_calendars, "interval", minutes=sched.calendar_interval_minutes,
            args=[config, store], id="import_calendars", name="Calendar import",
        )
    scheduler.add_job(
        run_brief_job, "cron", hour=sched.brief_hour, minute=sched.brief_minute,
        args=[config, store], id="daily_brief", name="Daily brief",
    )

    log.info("Running initial imports...")
    try:
        import_weather(config, store)
        import_calendars(config, store)
    except StoreError as e:
        log.error("Initial import failed, scheduler not started: %s", e)
        return 1

    log.info(
        "Scheduler started. Brief at %02d:%02d %s. Weather every %d h, calendars every %d min.",
        sched.brief_hour, sched.brief_minute, config.timezone,
        sched.weather_interval_hours, sched.calendar_interval_minutes,
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        log.info("Shutting down...")
    return 0


def cmd_add_memory(config: Config, store: FactStore, args) -> int:
    relevance = date.fromisoformat(args.date) if args.date else None
    fact = store.insert_fact(Fact(
        content=args.content,
        relevance_date=relevance,
        source=SourceTag.manual(args.scope),
    ))
    log.info("Memory added with id %d", fact.id)
    return 0


def cmd_import_weather(config: Config, store: FactStore, args) -> int:
    return 0 if import_weather(config, store) else 1


def cmd_import_water_quality(config: Config, store: FactStore, args) -> int:
    today = datetime.now(timezone.utc).astimezone(resolve_timezone(config.timezone)).date()
    fact = store.insert_fact(Fact(
        content=f"Water quality at {args.location} is {args.quality}.",
        relevance_date=today,
        source=SourceTag.water_quality(args.location),
    ))
    log.info("Water quality for %s added with id %d", args.location, fact.id)
    return 0


def cmd_import_calendar(config: Config, store: FactStore, args) -> int:
    if not config.calendars:
        log.warning("No calendars configured")
        return 0
    return 0 if import_calendars(config, store) else 1


def cmd_show_brief_context(config: Config, store: FactStore, args) -> int:
    engine = BriefEngine(store, config, weather_client=weather_client(config))
    print("=== CONTEXT GIVEN TO LLM ===")
    print(engine.build_prompt(days_ahead=args.days_ahead))
    print("===========================")
    return 0


def cmd_generate_brief(config: Config, store: FactStore, args) -> int:
    generate_and_deliver(config, store, args.days_ahead)
    return 0


def cmd_ask(config: Config, store: FactStore, args) -> int:
    engine = BriefEngine(store, config)
    print(engine.answer_query(args.question))
    return 0


def cmd_run(config: Config, store: FactStore, args) -> int:
    if args.once:
        log.info("Running one-shot imports + brief")
        import_weather(config, store)
        import_calendars(config, store)
        generate_and_deliver(config, store)
        return 0
    return run_scheduler(config, store)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hovimestari", description="Family daily brief assistant")
    parser.add_argument("--config", type=Path, help="Path to config TOML file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add-memory", help="Store a manual memory")
    p.add_argument("content")
    p.add_argument("--date", help="Relevance date (YYYY-MM-DD); omit for an evergreen memory")
    p.add_argument("--scope", help="Optional source scope, stored as manual:<scope>")
    p.set_defaults(func=cmd_add_memory)

    p = sub.add_parser("import-weather", help="Import the weather forecast")
    p.set_defaults(func=cmd_import_weather)

    p = sub.add_parser("import-water-quality", help="Store today's water quality for a location")
    p.add_argument("--location", required=True, help="Name of the measurement location")
    p.add_argument("--quality", required=True, help="Water quality status")
    p.set_defaults(func=cmd_import_water_quality)

    p = sub.add_parser("import-calendar", help="Import all configured calendars")
    p.set_defaults(func=cmd_import_calendar)

    for name, func, help_text in [
        ("show-brief-context", cmd_show_brief_context, "Print the prompt without calling the LLM"),
        ("generate-brief", cmd_generate_brief, "Generate and deliver the daily brief"),
    ]:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--days-ahead", type=int, help="Days ahead to include (overrides config)")
        p.set_defaults(func=func)

    p = sub.add_parser("ask", help="Ask a question about stored memories")
    p.add_argument("question")
    p.set_defaults(func=cmd_ask)

    p = sub.add_parser("run", help="Run imports and the daily brief on a schedule")
    p.add_argument("--once", action="store_true", help="Run imports and one brief, then exit")
    p.set_defaults(func=cmd_run)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        setup_logging("INFO")
        log.error("Configuration error: %s", e)
        return 1
    setup_logging(config.log_level)

    if getattr(args, "days_ahead", None) is not None and args.days_ahead < 0:
        log.error("Configuration error: --days-ahead must not be negative")
        return 1

    try:
        store = open_store(config)
    except (StoreError, OSError) as e:
        log.error("Store initialization failed: %s", e)
        return 1

    try:
        return args.func(config, store, args)
    except ConfigError as e:
        log.error("Configuration error: %s", e)
    except StoreError as e:
        log.error("Store error: %s", e)
    except ValueError as e:
        log.error("Invalid input: %s", e)
    except anthropic.APIError as e:
        log.error("LLM call failed: %s", e)
    except DeliveryError as e:
        log.error("Delivery failed: %s", e)
    except (httpx.HTTPError, WeatherError, CalendarError) as e:
        log.error("Import failed: %s", e)
    return 1


if __name__ == "__main__":
    sys.exit(main())
