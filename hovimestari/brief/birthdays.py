import logging
from datetime import date, datetime

from ..config import FamilyMember

log = logging.getLogger("hovimestari.brief.birthdays")


def find_birthdays(now: datetime, family: list[FamilyMember]) -> list[str]:
    """Family members whose birthday (month and day) falls on ``now``."""
    birthdays = []
    for member in family:
        if not member.birthday:
            continue
        try:
            birthday = date.fromisoformat(member.birthday)
        except (TypeError, ValueError):
            log.warning("Skipping invalid birthday %r for %s", member.birthday, member.name)
            continue

        if birthday.month == now.month and birthday.day == now.day:
            age = now.year - birthday.year
            birthdays.append(f"{member.name} ({age} years)")
    return birthdays
