from datetime import tzinfo

from ..models.facts import CalendarEvent, Fact

DESCRIPTION_LIMIT = 200


def _relevance_suffix(day) -> str:
    return f" (relevant on {day.isoformat()})" if day else ""


def format_fact(fact: Fact) -> str:
    return f"{fact.content}{_relevance_suffix(fact.relevance_date)} [Source: {fact.source}]"


def format_event(event: CalendarEvent, tz: tzinfo) -> str:
    """Render an event in local time, same-day end times as HH:MM only."""
    start = event.start_time.astimezone(tz)
    parts = [f"Calendar Event: {event.summary}"]

    if event.end_time:
        end = event.end_time.astimezone(tz)
        end_str = end.strftime("%H:%M") if end.date() == start.date() else end.strftime("%Y-%m-%d %H:%M")
        parts.append(f" from {start.strftime('%Y-%m-%d %H:%M')} to {end_str}")
    else:
        parts.append(f" at {start.strftime('%Y-%m-%d %H:%M')}")

    if event.location:
        parts.append(f" at {event.location}")

    if event.description:
        description = event.description
        if len(description) > DESCRIPTION_LIMIT:
            description = description[:DESCRIPTION_LIMIT - 3] + "..."
        parts.append(f". Description: {description}")

    parts.append(_relevance_suffix(start.date()))
    parts.append(f" [Source: {event.source}]")
    return "".join(parts)


def extract_brief(llm_response: str) -> str:
    """Strip a ```markdown fence the model sometimes wraps its answer in."""
    text = llm_response.strip()
    if text.startswith("```markdown") and text.endswith("```"):
        text = text[len("```markdown"):-3].strip()
    return text
