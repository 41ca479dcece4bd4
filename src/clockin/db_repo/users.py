from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Protocol

from clockin.db_models import UserSettings


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class UserMixin:
    def upsert_user_profile(self: DbProtocol, user_id: int, chat_id: int, seen_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO user_profiles(user_id, chat_id, last_seen_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    chat_id=excluded.chat_id,
                    last_seen_at=excluded.last_seen_at
                """,
                (user_id, chat_id, seen_at.isoformat()),
            )
            conn.execute("INSERT OR IGNORE INTO user_settings(user_id) VALUES (?)", (user_id,))

    def get_all_user_profiles(self: DbProtocol) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT p.user_id, p.chat_id, p.last_seen_at, COALESCE(s.reminders_enabled, 1) AS reminders_enabled, s.quiet_hours
                FROM user_profiles p
                LEFT JOIN user_settings s ON s.user_id = p.user_id
                ORDER BY p.user_id
                """
            ).fetchall()
        return [dict(row) for row in rows]

    def get_settings(self: DbProtocol, user_id: int) -> UserSettings:
        with self._connect() as conn:
            conn.execute("INSERT OR IGNORE INTO user_settings(user_id) VALUES (?)", (user_id,))
            row = conn.execute(
                "SELECT user_id, reminders_enabled, quiet_hours FROM user_settings WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        assert row is not None
        return UserSettings(
            user_id=int(row["user_id"]),
            reminders_enabled=bool(row["reminders_enabled"]),
            quiet_hours=row["quiet_hours"],
        )

    def update_reminders_enabled(self: DbProtocol, user_id: int, enabled: bool) -> None:
        with self._connect() as conn:
            conn.execute("INSERT OR IGNORE INTO user_settings(user_id) VALUES (?)", (user_id,))
            conn.execute(
                "UPDATE user_settings SET reminders_enabled = ? WHERE user_id = ?",
                (1 if enabled else 0, user_id),
            )

    def update_quiet_hours(self: DbProtocol, user_id: int, quiet_hours: str | None) -> None:
        with self._connect() as conn:
            conn.execute("INSERT OR IGNORE INTO user_settings(user_id) VALUES (?)", (user_id,))
            conn.execute(
                "UPDATE user_settings SET quiet_hours = ? WHERE user_id = ?",
                (quiet_hours, user_id),
            )

    def was_event_sent(self: DbProtocol, user_id: int, event_key: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM reminder_events WHERE user_id = ? AND event_key = ?",
                (user_id, event_key),
            ).fetchone()
        return row is not None

    def mark_event_sent(self: DbProtocol, user_id: int, event_key: str, sent_at: datetime) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO reminder_events(user_id, event_key, sent_at) VALUES (?, ?, ?)",
                (user_id, event_key, sent_at.isoformat()),
            )
        return cur.rowcount > 0
