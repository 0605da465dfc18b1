import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

log = logging.getLogger("hovimestari.store")

# Fixed width so that lexical order in SQLite equals chronological order.
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


class StoreError(Exception):
    """A fact store operation failed."""


class SourceKind(str, Enum):
    MANUAL = "manual"
    CALENDAR = "calendar"
    WEATHER = "weather-metno"
    WATER_QUALITY = "waterquality"
    OTHER = "other"


@dataclass(frozen=True)
class SourceTag:
    """Producer kind plus an optional scope (location, calendar name)."""

    kind: SourceKind
    scope: Optional[str] = None

    def __str__(self) -> str:
        if self.kind is SourceKind.OTHER:
            return self.scope or ""
        if self.scope:
            return f"{self.kind.value}:{self.scope}"
        return self.kind.value

    @classmethod
    def parse(cls, text: str) -> "SourceTag":
        prefix, sep, scope = text.partition(":")
        try:
            kind = SourceKind(prefix)
        except ValueError:
            return cls(SourceKind.OTHER, text)
        if kind is SourceKind.OTHER:
            return cls(SourceKind.OTHER, text)
        return cls(kind, scope if sep else None)

    @classmethod
    def manual(cls, scope: Optional[str] = None) -> "SourceTag":
        return cls(SourceKind.MANUAL, scope)

    @classmethod
    def calendar(cls, name: str) -> "SourceTag":
        return cls(SourceKind.CALENDAR, name)

    @classmethod
    def weather(cls, location: str) -> "SourceTag":
        return cls(SourceKind.WEATHER, location)

    @classmethod
    def water_quality(cls, location: str) -> "SourceTag":
        return cls(SourceKind.WATER_QUALITY, location)


@dataclass
class Fact:
    content: str
    source: SourceTag
    relevance_date: Optional[date] = None
    external_uid: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def evergreen(self) -> bool:
        return self.relevance_date is None


@dataclass
class CalendarEvent:
    external_uid: str
    summary: str
    start_time: datetime
    source: SourceTag
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


def to_db_timestamp(dt: datetime) -> str:
    """Normalize to UTC; naive datetimes are taken to be UTC already."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_TS_FORMAT)


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class FactStore:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def _connect(self, operation: str) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreError(f"{operation}: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    def _execute(self, operation: str, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._connect(operation)
        try:
            with conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"{operation}: {e}") from e
        finally:
            conn.close()

    def init_db(self):
        conn = self._connect("init_db")
        try:
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS memories (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        content TEXT NOT NULL,
                        created_at TIMESTAMP NOT NULL,
                        relevance_date DATE,
                        source TEXT NOT NULL,
                        uid TEXT
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_relevance_date ON memories(relevance_date)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_source ON memories(source)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_source_uid ON memories(source, uid)")

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS calendar_events (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        uid TEXT NOT NULL,
                        summary TEXT NOT NULL,
                        start_time TIMESTAMP NOT NULL,
                        end_time TIMESTAMP,
                        location TEXT,
                        description TEXT,
                        created_at TIMESTAMP NOT NULL,
                        source TEXT NOT NULL,
                        UNIQUE(source, uid, start_time)
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_events_start_time ON calendar_events(start_time)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_events_source ON calendar_events(source)")

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS import_log (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        importer TEXT NOT NULL,
                        imported_at TIMESTAMP NOT NULL,
                        items_imported INTEGER,
                        status TEXT,
                        error_message TEXT,
                        duration_seconds REAL
                    )
                """)
        except sqlite3.Error as e:
            raise StoreError(f"init_db: {e}") from e
        finally:
            conn.close()

    def insert_fact(self, fact: Fact) -> Fact:
        created_at = fact.created_at or datetime.now(timezone.utc)
        rows = self._execute(
            "insert_fact",
            """INSERT INTO memories (content, created_at, relevance_date, source, uid)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id""",
            (
                fact.content,
                to_db_timestamp(created_at),
                fact.relevance_date.isoformat() if fact.relevance_date else None,
                str(fact.source),
                fact.external_uid,
            ),
        )
        return Fact(
            id=rows[0]["id"],
            content=fact.content,
            source=fact.source,
            relevance_date=fact.relevance_date,
            external_uid=fact.external_uid,
            created_at=from_db_timestamp(to_db_timestamp(created_at)),
        )

    def query_facts_in_window(self, start: date, end: date) -> list[Fact]:
        """Dated facts within [start, end] ascending, then every evergreen fact."""
        rows = self._execute(
            "query_facts_in_window",
            """SELECT * FROM memories
            WHERE relevance_date IS NULL OR (relevance_date >= ? AND relevance_date <= ?)
            ORDER BY CASE WHEN relevance_date IS NULL THEN 1 ELSE 0 END,
                     relevance_date ASC, id ASC""",
            (start.isoformat(), end.isoformat()),
        )
        return [self._row_to_fact(r) for r in rows]

    def query_facts_by_source(self, source: SourceTag, start: date, end: date) -> list[Fact]:
        rows = self._execute(
            "query_facts_by_source",
            """SELECT * FROM memories
            WHERE source = ? AND relevance_date >= ? AND relevance_date <= ?
            ORDER BY relevance_date ASC, created_at ASC, id ASC""",
            (str(source), start.isoformat(), end.isoformat()),
        )
        return [self._row_to_fact(r) for r in rows]

    def upsert_event(self, event: CalendarEvent) -> CalendarEvent:
        created_at = event.created_at or datetime.now(timezone.utc)
        rows = self._execute(
            "upsert_event",
            """INSERT INTO calendar_events
            (uid, summary, start_time, end_time, location, description, created_at, source)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(source, uid, start_time) DO UPDATE SET
                summary = excluded.summary,
                end_time = excluded.end_time,
                location = excluded.location,
                description = excluded.description
            RETURNING id, created_at""",
            (
                event.external_uid,
                event.summary,
                to_db_timestamp(event.start_time),
                to_db_timestamp(event.end_time) if event.end_time else None,
                event.location,
                event.description,
                to_db_timestamp(created_at),
                str(event.source),
            ),
        )
        return CalendarEvent(
            id=rows[0]["id"],
            external_uid=event.external_uid,
            summary=event.summary,
            start_time=event.start_time,
            end_time=event.end_time,
            location=event.location,
            description=event.description,
            source=event.source,
            created_at=from_db_timestamp(rows[0]["created_at"]),
        )

    def event_exists(self, source: SourceTag, uid: str, start_time: datetime) -> bool:
        rows = self._execute(
            "event_exists",
            """SELECT COUNT(*) AS n FROM calendar_events
            WHERE source = ? AND uid = ? AND start_time = ?""",
            (str(source), uid, to_db_timestamp(start_time)),
        )
        return rows[0]["n"] > 0

    def delete_events_by_source(self, source: SourceTag) -> int:
        rows = self._execute(
            "delete_events_by_source",
            "DELETE FROM calendar_events WHERE source = ? RETURNING id",
            (str(source),),
        )
        log.info("Deleted %d events for %s", len(rows), source)
        return len(rows)

    def query_events_overlapping(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        """Events that start in, end in, or span the whole of [start, end]."""
        rows = self._execute(
            "query_events_overlapping",
            """SELECT * FROM calendar_events
            WHERE start_time <= ? AND COALESCE(end_time, start_time) >= ?
            ORDER BY start_time ASC, id ASC""",
            (to_db_timestamp(end), to_db_timestamp(start)),
        )
        return [self._row_to_event(r) for r in rows]

    def query_events_ongoing(self, instant: datetime) -> list[CalendarEvent]:
        ts = to_db_timestamp(instant)
        rows = self._execute(
            "query_events_ongoing",
            """SELECT * FROM calendar_events
            WHERE start_time <= ? AND (end_time IS NULL OR end_time >= ?)
            ORDER BY start_time ASC, id ASC""",
            (ts, ts),
        )
        return [self._row_to_event(r) for r in rows]

    def log_import(self, importer: str, count: int, status: str,
                   error: Optional[str] = None, duration: float = 0.0):
        self._execute(
            "log_import",
            """INSERT INTO import_log
            (importer, imported_at, items_imported, status, error_message, duration_seconds)
            VALUES (?, ?, ?, ?, ?, ?)""",
            (importer, to_db_timestamp(datetime.now(timezone.utc)), count, status, error, duration),
        )

    def _row_to_fact(self, row: sqlite3.Row) -> Fact:
        relevance = row["relevance_date"]
        return Fact(
            id=row["id"],
            content=row["content"],
            created_at=from_db_timestamp(row["created_at"]),
            relevance_date=date.fromisoformat(relevance) if relevance else None,
            source=SourceTag.parse(row["source"]),
            external_uid=row["uid"],
        )

    def _row_to_event(self, row: sqlite3.Row) -> CalendarEvent:
        return CalendarEvent(
            id=row["id"],
            external_uid=row["uid"],
            summary=row["summary"],
            start_time=from_db_timestamp(row["start_time"]),
            end_time=from_db_timestamp(row["end_time"]),
            location=row["location"],
            description=row["description"],
            created_at=from_db_timestamp(row["created_at"]),
            source=SourceTag.parse(row["source"]),
        )
