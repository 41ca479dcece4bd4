from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Protocol

from clockin.db_converters import _row_to_entry
from clockin.db_models import TimeEntry
from clockin.errors import EntryAlreadyClosed, EntryNotFound


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def get_entry(self, entry_id: int) -> TimeEntry | None: ...


class EntryMixin:
    def open_entry(
        self: DbProtocol,
        user_id: int,
        category_id: str,
        started_at: datetime,
        entry_type: str = "timer",
        notes: str | None = None,
    ) -> TimeEntry:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO time_entries(user_id, category_id, started_at, entry_type, notes)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, category_id, started_at.isoformat(), entry_type, notes),
            )
            row = conn.execute("SELECT * FROM time_entries WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_entry(row)

    def close_entry(self: DbProtocol, entry_id: int, ended_at: datetime, duration_seconds: int) -> TimeEntry:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE time_entries
                SET ended_at = ?, duration_seconds = ?
                WHERE id = ? AND duration_seconds IS NULL
                """,
                (ended_at.isoformat(), duration_seconds, entry_id),
            )
            row = conn.execute("SELECT * FROM time_entries WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            raise EntryNotFound(entry_id)
        if cur.rowcount == 0:
            raise EntryAlreadyClosed(entry_id)
        return _row_to_entry(row)

    def add_manual_entry(
        self: DbProtocol,
        user_id: int,
        category_id: str,
        started_at: datetime,
        ended_at: datetime,
        notes: str | None = None,
    ) -> TimeEntry:
        duration = int((ended_at - started_at).total_seconds())
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO time_entries(
                    user_id, category_id, started_at, ended_at, duration_seconds, entry_type, notes
                )
                VALUES (?, ?, ?, ?, ?, 'manual', ?)
                """,
                (user_id, category_id, started_at.isoformat(), ended_at.isoformat(), duration, notes),
            )
            row = conn.execute("SELECT * FROM time_entries WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_entry(row)

    def get_entry(self: DbProtocol, entry_id: int) -> TimeEntry | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM time_entries WHERE id = ?", (entry_id,)).fetchone()
        return _row_to_entry(row) if row else None

    def delete_open_entry(self: DbProtocol, entry_id: int) -> bool:
        """Drop an entry that was never closed; recorded time is left alone."""
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM time_entries WHERE id = ? AND duration_seconds IS NULL",
                (entry_id,),
            )
        return cur.rowcount > 0

    def mark_entry_processed(self: DbProtocol, entry_id: int, processed_at: datetime) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE time_entries
                SET processed_at = ?
                WHERE id = ? AND processed_at IS NULL AND duration_seconds IS NOT NULL
                """,
                (processed_at.isoformat(), entry_id),
            )
        return cur.rowcount > 0

    def list_entries(
        self: DbProtocol,
        user_id: int,
        since: datetime | None = None,
        until: datetime | None = None,
        closed_only: bool = True,
    ) -> list[TimeEntry]:
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if closed_only:
            conditions.append("duration_seconds IS NOT NULL")
        if since is not None:
            conditions.append("started_at >= ?")
            params.append(since.isoformat())
        if until is not None:
            conditions.append("started_at < ?")
            params.append(until.isoformat())
        query = f"SELECT * FROM time_entries WHERE {' AND '.join(conditions)} ORDER BY started_at DESC, id DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_entry(r) for r in rows]

    def list_recent_entries(self: DbProtocol, user_id: int, limit: int = 10) -> list[TimeEntry]:
        capped = max(1, min(int(limit), 200))
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM time_entries
                WHERE user_id = ? AND duration_seconds IS NOT NULL
                ORDER BY started_at DESC, id DESC
                LIMIT ?
                """,
                (user_id, capped),
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def entry_counters(self: DbProtocol, user_id: int) -> dict[str, int]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_entries,
                    COALESCE(SUM(CASE WHEN entry_type = 'pomodoro' THEN 1 ELSE 0 END), 0) AS pomodoro_count,
                    COUNT(DISTINCT category_id) AS unique_categories,
                    COALESCE(SUM(CASE WHEN duration_seconds > 0 THEN duration_seconds ELSE 0 END), 0) AS total_seconds
                FROM time_entries
                WHERE user_id = ? AND duration_seconds IS NOT NULL
                """,
                (user_id,),
            ).fetchone()
        return {key: int(row[key]) for key in row.keys()}

    def list_unprocessed_entries(self: DbProtocol, user_id: int) -> list[TimeEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM time_entries
                WHERE user_id = ? AND duration_seconds IS NOT NULL AND processed_at IS NULL
                ORDER BY started_at, id
                """,
                (user_id,),
            ).fetchall()
        return [_row_to_entry(r) for r in rows]
