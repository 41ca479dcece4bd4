from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from clockin.db_converters import _row_to_session
from clockin.db_models import SessionState


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class SessionMixin:
    def load_session_state(self: DbProtocol, user_id: int) -> SessionState | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM session_state WHERE user_id = ?", (user_id,)).fetchone()
        return _row_to_session(row) if row else None

    def save_session_state(self: DbProtocol, user_id: int, state: SessionState) -> None:
        # Single upsert statement: the slot is replaced atomically.
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO session_state(
                    user_id, status, category_id, entry_id, started_at, paused_at,
                    accumulated_ms, entry_type, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    status=excluded.status,
                    category_id=excluded.category_id,
                    entry_id=excluded.entry_id,
                    started_at=excluded.started_at,
                    paused_at=excluded.paused_at,
                    accumulated_ms=excluded.accumulated_ms,
                    entry_type=excluded.entry_type,
                    updated_at=excluded.updated_at
                """,
                (
                    user_id,
                    state.status,
                    state.category_id,
                    state.entry_id,
                    _iso(state.started_at),
                    _iso(state.paused_at),
                    state.accumulated_ms,
                    state.entry_type,
                    datetime.now().isoformat(timespec="seconds"),
                ),
            )
