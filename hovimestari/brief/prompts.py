import json
import logging
from pathlib import Path
from typing import Optional

from .context import BriefContext

log = logging.getLogger("hovimestari.brief.prompts")

CONTEXT_PLACEHOLDER = "%CONTEXT%"
NOTES_PLACEHOLDER = "%NOTES%"
LANGUAGE_PLACEHOLDER = "%LANG%"
QUERY_PLACEHOLDER = "%QUERY%"

SYSTEM_PROMPT = """You are Hovimestari, a discreet and well-informed household butler. You prepare short, practical daily briefs for a family from the facts they have collected: calendar events, weather forecasts and notes.

Rules:
- Only state what the provided facts support; never invent events or people
- Mention weather only as far as it affects the day's plans, and call out forecast changes
- Congratulate anyone whose birthday is today
- Keep it readable on a phone"""

DEFAULT_PROMPTS = {
    "daily_brief": [
        "Write today's brief for the household using the information below.",
        "",
        "Current situation:",
        CONTEXT_PLACEHOLDER,
        "Things to remember:",
        NOTES_PLACEHOLDER,
        "Start with a greeting suited to the time of day, then cover today, then",
        "anything worth preparing for in the coming days.",
        f"Write the brief in {LANGUAGE_PLACEHOLDER}.",
    ],
    "user_query": [
        "Answer the household's question using only the notes below.",
        "",
        f"Question: {QUERY_PLACEHOLDER}",
        "",
        "Notes:",
        NOTES_PLACEHOLDER,
        f"Answer in {LANGUAGE_PLACEHOLDER}. Say so if the notes do not contain the answer.",
    ],
}

# (attribute key, label, rendered as sub-bullets)
CONTEXT_FIELDS = [
    ("date", "Current Date", False),
    ("current_time", "Current Time", False),
    ("timezone", "Timezone", False),
    ("location", "Location", False),
    ("family", "Family Members", False),
    ("weather_today", "Today's Weather", False),
    ("hourly_forecast_today", "Hourly Forecast", False),
    ("weather_future", "Upcoming Weather Forecasts", True),
    ("weather_changes", "Weather Forecast Changes", True),
    ("birthdays", "Birthdays Today", False),
    ("ongoing_events", "Currently Ongoing", True),
]


def load_prompts(path: Optional[str]) -> dict[str, list[str]]:
    """Built-in prompts, overridden per key by an optional JSON file."""
    prompts = {key: list(lines) for key, lines in DEFAULT_PROMPTS.items()}
    if not path:
        return prompts
    prompt_path = Path(path)
    if not prompt_path.exists():
        log.warning("Prompt file %s not found, using built-in prompts", path)
        return prompts
    with open(prompt_path, encoding="utf-8") as f:
        custom = json.load(f)
    for key, lines in custom.items():
        prompts[key] = [lines] if isinstance(lines, str) else list(lines)
    return prompts


def build_context_block(attributes: dict[str, str]) -> str:
    lines = []
    known = set()
    for key, label, multiline in CONTEXT_FIELDS:
        known.add(key)
        value = attributes.get(key)
        if not value:
            continue
        if multiline:
            lines.append(f"- {label}:")
            lines.extend(f"  * {item}" for item in value.split("\n"))
        else:
            lines.append(f"- {label}: {value}")

    # Pass through anything else as a named slot.
    for key, value in attributes.items():
        if key not in known and value:
            lines.append(f"- {key}: {value}")

    return "\n".join(lines) + "\n" if lines else ""


def format_notes(facts: list[str]) -> str:
    return "".join(f"- {fact}\n" for fact in facts)


def build_brief_prompt(context: BriefContext, prompts: dict[str, list[str]]) -> str:
    template = "\n".join(prompts["daily_brief"])
    return (
        template
        .replace(CONTEXT_PLACEHOLDER, build_context_block(context.attributes))
        .replace(NOTES_PLACEHOLDER, format_notes(context.facts))
        .replace(LANGUAGE_PLACEHOLDER, context.output_language)
    )


def build_query_prompt(query: str, facts: list[str], language: str, prompts: dict[str, list[str]]) -> str:
    template = "\n".join(prompts["user_query"])
    return (
        template
        .replace(QUERY_PLACEHOLDER, query)
        .replace(NOTES_PLACEHOLDER, format_notes(facts))
        .replace(LANGUAGE_PLACEHOLDER, language)
    )
