from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from clockin.db_constants import DEFAULT_DREAM_TARGET_HOURS, DEFAULT_DREAM_TITLE, DREAM_THEMES, GOAL_PERIODS
from clockin.db_converters import _row_to_dream_goal, _row_to_dream_progress, _row_to_entry, _row_to_goal
from clockin.db_models import DreamGoal, DreamProgressRecord, Goal, TimeEntry
from clockin.dream_goal import retarget


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def get_dream_goal(self, user_id: int) -> DreamGoal | None: ...


def _write_dream_goal(conn: sqlite3.Connection, goal: DreamGoal, updated_at: datetime) -> None:
    conn.execute(
        """
        UPDATE dream_goals
        SET current_hours = MAX(current_hours, ?),
            milestone_reached = MAX(milestone_reached, ?),
            is_completed = MAX(is_completed, ?),
            completed_at = COALESCE(completed_at, ?),
            updated_at = ?
        WHERE id = ?
        """,
        (
            goal.current_hours,
            goal.milestone_reached,
            1 if goal.is_completed else 0,
            goal.completed_at.isoformat() if goal.completed_at else None,
            updated_at.isoformat(),
            goal.id,
        ),
    )


class GoalMixin:
    def create_goal(
        self: DbProtocol,
        user_id: int,
        target_minutes: int,
        period: str,
        created_at: datetime,
        category_id: str | None = None,
    ) -> Goal:
        if period not in GOAL_PERIODS:
            raise ValueError(f"Unknown goal period: {period}")
        if target_minutes <= 0:
            raise ValueError("target_minutes must be positive")
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO goals(user_id, category_id, target_minutes, period, is_active, created_at)
                VALUES (?, ?, ?, ?, 1, ?)
                """,
                (user_id, category_id, target_minutes, period, created_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM goals WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_goal(row)

    def list_goals(self: DbProtocol, user_id: int, active_only: bool = True) -> list[Goal]:
        query = "SELECT * FROM goals WHERE user_id = ?"
        if active_only:
            query += " AND is_active = 1"
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY id", (user_id,)).fetchall()
        return [_row_to_goal(r) for r in rows]

    def deactivate_goal(self: DbProtocol, user_id: int, goal_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE goals SET is_active = 0 WHERE id = ? AND user_id = ? AND is_active = 1",
                (goal_id, user_id),
            )
        return cur.rowcount > 0

    def get_dream_goal(self: DbProtocol, user_id: int) -> DreamGoal | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM dream_goals WHERE user_id = ?", (user_id,)).fetchone()
        return _row_to_dream_goal(row) if row else None

    def get_or_create_dream_goal(
        self: DbProtocol,
        user_id: int,
        now: datetime,
        target_hours: float = DEFAULT_DREAM_TARGET_HOURS,
    ) -> DreamGoal:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO dream_goals(user_id, theme, title, target_hours, created_at, updated_at)
                VALUES (?, 'mountain', ?, ?, ?, ?)
                """,
                (user_id, DEFAULT_DREAM_TITLE, target_hours, now.isoformat(), now.isoformat()),
            )
            row = conn.execute("SELECT * FROM dream_goals WHERE user_id = ?", (user_id,)).fetchone()
        assert row is not None
        return _row_to_dream_goal(row)

    def update_dream_goal_settings(
        self: DbProtocol,
        user_id: int,
        now: datetime,
        target_hours: float | None = None,
        theme: str | None = None,
        title: str | None = None,
    ) -> DreamGoal | None:
        if theme is not None and theme not in DREAM_THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM dream_goals WHERE user_id = ?", (user_id,)).fetchone()
            if row is None:
                return None
            goal = _row_to_dream_goal(row)
            if target_hours is not None:
                goal = retarget(goal, target_hours, now)
            # Written directly: a new target may lower milestone and completion.
            conn.execute(
                """
                UPDATE dream_goals
                SET target_hours = ?,
                    milestone_reached = ?,
                    is_completed = ?,
                    completed_at = ?,
                    theme = COALESCE(?, theme),
                    title = COALESCE(?, title),
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    goal.target_hours,
                    goal.milestone_reached,
                    1 if goal.is_completed else 0,
                    goal.completed_at.isoformat() if goal.completed_at else None,
                    theme,
                    title,
                    now.isoformat(),
                    goal.id,
                ),
            )
        return self.get_dream_goal(user_id)

    def apply_dream_progress(
        self: DbProtocol,
        goal: DreamGoal,
        entry_id: int | None,
        previous_hours: float,
        hours_added: float,
        milestone: int | None,
        now: datetime,
    ) -> bool:
        """Store the updated goal together with its progress row.

        Returns False without touching the goal when this entry was already
        counted. Stored hours and milestone never decrease.
        """
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO dream_goal_progress(
                    dream_goal_id, entry_id, hours_added, previous_hours, new_hours,
                    milestone_reached, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    goal.id,
                    entry_id,
                    hours_added,
                    previous_hours,
                    goal.current_hours,
                    milestone,
                    now.isoformat(),
                ),
            )
            if cur.rowcount == 0:
                return False
            _write_dream_goal(conn, goal, now)
        return True

    def list_uncounted_dream_entries(self: DbProtocol, user_id: int, dream_goal_id: int) -> list[TimeEntry]:
        """Processed entries whose hours never reached the dream goal."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT e.* FROM time_entries e
                WHERE e.user_id = ?
                  AND e.duration_seconds > 0
                  AND e.processed_at IS NOT NULL
                  AND NOT EXISTS (
                      SELECT 1 FROM dream_goal_progress p
                      WHERE p.dream_goal_id = ? AND p.entry_id = e.id
                  )
                ORDER BY e.started_at, e.id
                """,
                (user_id, dream_goal_id),
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def list_dream_progress(self: DbProtocol, dream_goal_id: int, limit: int = 20) -> list[DreamProgressRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM dream_goal_progress
                WHERE dream_goal_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (dream_goal_id, limit),
            ).fetchall()
        return [_row_to_dream_progress(r) for r in rows]
