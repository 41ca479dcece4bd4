from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Protocol

from clockin.db_converters import _row_to_badge, _row_to_challenge, _row_to_level, _row_to_stats, _row_to_streak
from clockin.db_models import ChallengeRecord, LevelUpEvent, StreakRecord, UserBadge, UserStats
from clockin.gamification import level_from_xp


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class GamificationMixin:
    def get_user_stats(self: DbProtocol, user_id: int) -> UserStats:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO user_stats(user_id, updated_at) VALUES (?, ?)",
                (user_id, datetime.now().isoformat(timespec="seconds")),
            )
            row = conn.execute("SELECT * FROM user_stats WHERE user_id = ?", (user_id,)).fetchone()
        assert row is not None
        return _row_to_stats(row)

    def save_user_stats(self: DbProtocol, stats: UserStats, updated_at: datetime) -> UserStats:
        if stats.total_xp < 0:
            raise ValueError("total_xp must not be negative")
        level = level_from_xp(stats.total_xp)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO user_stats(user_id, total_xp, current_level, total_focus_minutes, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    total_xp=excluded.total_xp,
                    current_level=excluded.current_level,
                    total_focus_minutes=excluded.total_focus_minutes,
                    updated_at=excluded.updated_at
                """,
                (stats.user_id, stats.total_xp, level, stats.total_focus_minutes, updated_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM user_stats WHERE user_id = ?", (stats.user_id,)).fetchone()
        assert row is not None
        return _row_to_stats(row)

    def get_streak(self: DbProtocol, user_id: int) -> StreakRecord:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO streaks(user_id, current_streak, longest_streak, updated_at) VALUES (?, 0, 0, ?)",
                (user_id, datetime.now().isoformat(timespec="seconds")),
            )
            row = conn.execute(
                "SELECT user_id, current_streak, longest_streak, last_active_date FROM streaks WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        assert row is not None
        return _row_to_streak(row)

    def save_streak(self: DbProtocol, record: StreakRecord, updated_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO streaks(user_id, current_streak, longest_streak, last_active_date, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    current_streak=excluded.current_streak,
                    longest_streak=excluded.longest_streak,
                    last_active_date=excluded.last_active_date,
                    updated_at=excluded.updated_at
                """,
                (
                    record.user_id,
                    record.current_streak,
                    max(record.longest_streak, record.current_streak),
                    record.last_active_date.isoformat() if record.last_active_date else None,
                    updated_at.isoformat(),
                ),
            )

    def add_level_up_event(self: DbProtocol, user_id: int, level: int, created_at: datetime) -> LevelUpEvent | None:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO level_up_events(user_id, level, created_at) VALUES (?, ?, ?)",
                (user_id, level, created_at.isoformat()),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM level_up_events WHERE user_id = ? AND level = ?",
                (user_id, level),
            ).fetchone()
        assert row is not None
        return _row_to_level(row)

    def max_level_event_level(self: DbProtocol, user_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(level), 1) AS lvl FROM level_up_events WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return int(row["lvl"]) if row else 1

    def record_challenge_completion(
        self: DbProtocol,
        user_id: int,
        challenge_key: str,
        period_start: date,
        completed_at: datetime,
    ) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO challenge_progress(user_id, challenge_key, period_start, status, completed_at)
                VALUES (?, ?, ?, 'completed', ?)
                """,
                (user_id, challenge_key, period_start.isoformat(), completed_at.isoformat()),
            )
        return cur.rowcount > 0

    def list_completed_challenges(self: DbProtocol, user_id: int, since: date) -> list[ChallengeRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM challenge_progress
                WHERE user_id = ? AND period_start >= ?
                ORDER BY completed_at DESC
                """,
                (user_id, since.isoformat()),
            ).fetchall()
        return [_row_to_challenge(r) for r in rows]

    def list_badges(self: DbProtocol, user_id: int) -> list[UserBadge]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM user_badges WHERE user_id = ? ORDER BY earned_at DESC",
                (user_id,),
            ).fetchall()
        return [_row_to_badge(r) for r in rows]

    def award_badge(self: DbProtocol, user_id: int, badge_key: str, earned_at: datetime) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO user_badges(user_id, badge_key, earned_at) VALUES (?, ?, ?)",
                (user_id, badge_key, earned_at.isoformat()),
            )
        return cur.rowcount > 0
