from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from typing import Any, Callable, TypeVar

from clockin.db import Database
from clockin.db_models import SessionState, TimeEntry
from clockin.errors import PersistenceFailure

T = TypeVar("T")


async def _run(fn: Callable[..., T], *args: Any) -> T:
    try:
        return await asyncio.to_thread(fn, *args)
    except sqlite3.Error as exc:
        raise PersistenceFailure(str(exc)) from exc


class SqliteEntryStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def open_entry(self, user_id: int, category_id: str, started_at: datetime, entry_type: str) -> int:
        entry = await _run(self.db.open_entry, user_id, category_id, started_at, entry_type)
        return entry.id

    async def close_entry(self, entry_id: int, ended_at: datetime, duration_seconds: int) -> TimeEntry:
        return await _run(self.db.close_entry, entry_id, ended_at, duration_seconds)

    async def get_entry(self, entry_id: int) -> TimeEntry | None:
        return await _run(self.db.get_entry, entry_id)

    async def delete_open_entry(self, entry_id: int) -> None:
        await _run(self.db.delete_open_entry, entry_id)

    async def list_entries(self, user_id: int, since: datetime | None = None) -> list[TimeEntry]:
        return await _run(self.db.list_entries, user_id, since)


class SqliteSessionSlot:
    """Session slot of one user, stored as a single row."""

    def __init__(self, db: Database, user_id: int) -> None:
        self.db = db
        self.user_id = user_id

    async def load(self) -> SessionState | None:
        return await _run(self.db.load_session_state, self.user_id)

    async def save(self, state: SessionState) -> None:
        await _run(self.db.save_session_state, self.user_id, state)
