from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from hovimestari.config import Config, FamilyMember
from hovimestari.models.facts import Fact, FactStore, SourceTag

HELSINKI = ZoneInfo("Europe/Helsinki")


@pytest.fixture
def store(tmp_path) -> FactStore:
    """A fresh, initialized store on disk."""
    s = FactStore(str(tmp_path / "test.db"))
    s.init_db()
    return s


@pytest.fixture
def make_config(tmp_path):
    """Factory for a fully resolved Config with test-friendly defaults."""

    def _make(**overrides) -> Config:
        values = dict(
            location_name="Espoo",
            latitude=60.2,
            longitude=24.66,
            timezone="Europe/Helsinki",
            db_path=str(tmp_path / "test.db"),
            anthropic_api_key="test-key",
            model="claude-test",
            output_language="English",
            days_ahead=2,
            family=[FamilyMember(name="Anna", birthday="1990-04-21"), FamilyMember(name="Ville")],
        )
        values.update(overrides)
        return Config(**values)

    return _make


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def local(*args) -> datetime:
    return datetime(*args, tzinfo=HELSINKI)


def add_forecast(store: FactStore, day, content: str, created_at: datetime, location: str = "Espoo") -> Fact:
    return store.insert_fact(Fact(
        content=content,
        relevance_date=day,
        source=SourceTag.weather(location),
        created_at=created_at,
    ))
