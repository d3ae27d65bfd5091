"""SQLite-backed datastore for events and moderated conversation logs."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Protocol

import aiosqlite
from dateutil import parser as date_parser

EventRecord = dict[str, Any]

EVENT_FIELDS = (
    "name",
    "artist",
    "description",
    "event_date",
    "venue",
    "city",
    "price",
    "latitude",
    "longitude",
    "ticket_url",
    "tags",
)
REQUIRED_EVENT_FIELDS = ("name", "venue", "city", "event_date")

CONVERSATION_FIELDS = (
    "session_id",
    "conversation_type",
    "message_role",
    "message_content",
    "device_type",
    "user_agent",
    "language",
)


class RepositoryError(Exception):
    """Raised when the datastore rejects or fails an operation."""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def normalize_timestamp(value: datetime | str) -> str:
    """Return an ISO8601 UTC string that sorts chronologically as text."""

    if isinstance(value, str):
        try:
            parsed = date_parser.isoparse(value)
        except ValueError:
            try:
                parsed = date_parser.parse(value)
            except (ValueError, OverflowError) as exc:
                raise RepositoryError(f"Invalid event date: {value!r}") from exc
    else:
        parsed = value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.isoformat(timespec="seconds")


def _row_to_event(row: aiosqlite.Row) -> EventRecord:
    record: EventRecord = {}
    for key in row.keys():
        value = row[key]
        if value is None:
            continue
        if key == "tags":
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                value = [value]
        record[key] = value
    return record


class EventStore(Protocol):
    """The datastore operations the tools and routes depend on."""

    async def insert_event(self, fields: Mapping[str, Any]) -> EventRecord:
        ...

    async def find_events(
        self,
        start: datetime,
        end_exclusive: datetime,
        *,
        city: str | None = None,
    ) -> list[EventRecord]:
        ...

    async def find_events_at(
        self,
        *,
        venue: str,
        city: str,
        start: datetime,
        end: datetime,
    ) -> list[EventRecord]:
        ...

    async def update_event(
        self, event_id: str, fields: Mapping[str, Any]
    ) -> EventRecord | None:
        ...

    async def log_conversation(self, entry: Mapping[str, Any]) -> None:
        ...


class EventRepository:
    """Persist events and conversation entries in SQLite."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                artist TEXT,
                description TEXT,
                event_date TEXT NOT NULL,
                venue TEXT NOT NULL,
                city TEXT NOT NULL,
                price REAL,
                latitude REAL,
                longitude REAL,
                ticket_url TEXT,
                tags TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_date ON events(event_date);

            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                conversation_type TEXT NOT NULL,
                message_role TEXT NOT NULL,
                message_content TEXT NOT NULL,
                device_type TEXT,
                user_agent TEXT,
                language TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_conversations_session
                ON conversations(session_id);
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RepositoryError("Repository is not initialized")
        return self._connection

    @staticmethod
    def _encode_event_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
        encoded: dict[str, Any] = {}
        for key in EVENT_FIELDS:
            if key not in fields:
                continue
            value = fields[key]
            if key == "event_date" and value is not None:
                value = normalize_timestamp(value)
            elif key == "tags" and value is not None:
                value = json.dumps([value] if isinstance(value, str) else list(value))
            encoded[key] = value
        return encoded

    async def insert_event(self, fields: Mapping[str, Any]) -> EventRecord:
        """Insert one event, writing only the columns present in ``fields``."""

        connection = self._require_connection()
        missing = [key for key in REQUIRED_EVENT_FIELDS if not fields.get(key)]
        if missing:
            raise RepositoryError(f"Missing required event fields: {', '.join(missing)}")

        values = self._encode_event_fields(fields)
        now = _utc_now()
        values["id"] = uuid.uuid4().hex
        values["created_at"] = now
        values["updated_at"] = now

        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        try:
            await connection.execute(
                f"INSERT INTO events ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            await connection.commit()
        except aiosqlite.Error as exc:
            raise RepositoryError(str(exc)) from exc

        record = await self.get_event(values["id"])
        assert record is not None
        return record

    async def get_event(self, event_id: str) -> EventRecord | None:
        connection = self._require_connection()
        try:
            cursor = await connection.execute(
                "SELECT * FROM events WHERE id = ?", (event_id,)
            )
            row = await cursor.fetchone()
            await cursor.close()
        except aiosqlite.Error as exc:
            raise RepositoryError(str(exc)) from exc
        return _row_to_event(row) if row is not None else None

    async def find_events(
        self,
        start: datetime,
        end_exclusive: datetime,
        *,
        city: str | None = None,
    ) -> list[EventRecord]:
        """Return events with ``start <= event_date < end_exclusive`` by date."""

        connection = self._require_connection()
        query = "SELECT * FROM events WHERE event_date >= ? AND event_date < ?"
        params: list[Any] = [normalize_timestamp(start), normalize_timestamp(end_exclusive)]
        if city:
            query += " AND city = ? COLLATE NOCASE"
            params.append(city)
        query += " ORDER BY event_date"

        try:
            cursor = await connection.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
        except aiosqlite.Error as exc:
            raise RepositoryError(str(exc)) from exc
        return [_row_to_event(row) for row in rows]

    async def find_events_at(
        self,
        *,
        venue: str,
        city: str,
        start: datetime,
        end: datetime,
    ) -> list[EventRecord]:
        """Return events at the same venue and city between ``start`` and ``end``."""

        connection = self._require_connection()
        try:
            cursor = await connection.execute(
                """
                SELECT * FROM events
                WHERE venue = ? COLLATE NOCASE
                  AND city = ? COLLATE NOCASE
                  AND event_date >= ? AND event_date <= ?
                ORDER BY event_date
                """,
                (venue, city, normalize_timestamp(start), normalize_timestamp(end)),
            )
            rows = await cursor.fetchall()
            await cursor.close()
        except aiosqlite.Error as exc:
            raise RepositoryError(str(exc)) from exc
        return [_row_to_event(row) for row in rows]

    async def update_event(
        self, event_id: str, fields: Mapping[str, Any]
    ) -> EventRecord | None:
        connection = self._require_connection()
        values = self._encode_event_fields(fields)
        values["updated_at"] = _utc_now()
        assignments = ", ".join(f"{column} = ?" for column in values)
        try:
            cursor = await connection.execute(
                f"UPDATE events SET {assignments} WHERE id = ?",
                (*values.values(), event_id),
            )
            await connection.commit()
            updated = cursor.rowcount
            await cursor.close()
        except aiosqlite.Error as exc:
            raise RepositoryError(str(exc)) from exc
        if not updated:
            return None
        return await self.get_event(event_id)

    async def log_conversation(self, entry: Mapping[str, Any]) -> None:
        connection = self._require_connection()
        values = {key: entry.get(key) for key in CONVERSATION_FIELDS}
        values["created_at"] = _utc_now()
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        try:
            await connection.execute(
                f"INSERT INTO conversations ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            await connection.commit()
        except aiosqlite.Error as exc:
            raise RepositoryError(str(exc)) from exc

    async def get_conversation(self, session_id: str) -> list[dict[str, Any]]:
        connection = self._require_connection()
        cursor = await connection.execute(
            "SELECT * FROM conversations WHERE session_id = ? ORDER BY id",
            (session_id,),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [dict(row) for row in rows]


__all__ = [
    "CONVERSATION_FIELDS",
    "EVENT_FIELDS",
    "EventRecord",
    "EventRepository",
    "EventStore",
    "REQUIRED_EVENT_FIELDS",
    "RepositoryError",
    "normalize_timestamp",
]
