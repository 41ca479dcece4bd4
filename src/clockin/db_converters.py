from __future__ import annotations

import sqlite3
from datetime import date, datetime

from clockin.db_models import (
    ChallengeRecord,
    DreamGoal,
    DreamProgressRecord,
    Goal,
    LevelUpEvent,
    SessionState,
    StreakRecord,
    TimeEntry,
    UserBadge,
    UserStats,
)


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_entry(row: sqlite3.Row) -> TimeEntry:
    return TimeEntry(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        category_id=str(row["category_id"]),
        started_at=datetime.fromisoformat(row["started_at"]),
        ended_at=_dt(row["ended_at"]),
        duration_seconds=int(row["duration_seconds"]) if row["duration_seconds"] is not None else None,
        entry_type=str(row["entry_type"]),
        notes=row["notes"],
        processed_at=_dt(row["processed_at"]),
    )


def _row_to_session(row: sqlite3.Row) -> SessionState:
    return SessionState(
        status=str(row["status"]),
        category_id=row["category_id"],
        entry_id=int(row["entry_id"]) if row["entry_id"] is not None else None,
        started_at=_dt(row["started_at"]),
        paused_at=_dt(row["paused_at"]),
        accumulated_ms=int(row["accumulated_ms"]),
        entry_type=str(row["entry_type"] or "timer"),
    )


def _row_to_stats(row: sqlite3.Row) -> UserStats:
    return UserStats(
        user_id=int(row["user_id"]),
        total_xp=int(row["total_xp"]),
        current_level=int(row["current_level"]),
        total_focus_minutes=int(row["total_focus_minutes"]),
    )


def _row_to_streak(row: sqlite3.Row) -> StreakRecord:
    return StreakRecord(
        user_id=int(row["user_id"]),
        current_streak=int(row["current_streak"]),
        longest_streak=int(row["longest_streak"]),
        last_active_date=date.fromisoformat(row["last_active_date"]) if row["last_active_date"] else None,
    )


def _row_to_level(row: sqlite3.Row) -> LevelUpEvent:
    return LevelUpEvent(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        level=int(row["level"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_goal(row: sqlite3.Row) -> Goal:
    return Goal(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        category_id=row["category_id"],
        target_minutes=int(row["target_minutes"]),
        period=str(row["period"]),
        is_active=bool(row["is_active"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_dream_goal(row: sqlite3.Row) -> DreamGoal:
    return DreamGoal(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        theme=str(row["theme"]),
        title=str(row["title"]),
        target_hours=float(row["target_hours"]),
        current_hours=float(row["current_hours"]),
        milestone_reached=int(row["milestone_reached"]),
        is_completed=bool(row["is_completed"]),
        completed_at=_dt(row["completed_at"]),
    )


def _row_to_challenge(row: sqlite3.Row) -> ChallengeRecord:
    return ChallengeRecord(
        user_id=int(row["user_id"]),
        challenge_key=str(row["challenge_key"]),
        period_start=date.fromisoformat(row["period_start"]),
        status=str(row["status"]),
        completed_at=_dt(row["completed_at"]),
    )


def _row_to_badge(row: sqlite3.Row) -> UserBadge:
    return UserBadge(
        user_id=int(row["user_id"]),
        badge_key=str(row["badge_key"]),
        earned_at=datetime.fromisoformat(row["earned_at"]),
    )


def _row_to_dream_progress(row: sqlite3.Row) -> DreamProgressRecord:
    return DreamProgressRecord(
        dream_goal_id=int(row["dream_goal_id"]),
        entry_id=int(row["entry_id"]) if row["entry_id"] is not None else None,
        hours_added=float(row["hours_added"]),
        previous_hours=float(row["previous_hours"]),
        new_hours=float(row["new_hours"]),
        milestone_reached=int(row["milestone_reached"]) if row["milestone_reached"] is not None else None,
        created_at=datetime.fromisoformat(row["created_at"]),
    )
