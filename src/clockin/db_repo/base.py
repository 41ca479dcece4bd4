from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from clockin.gamification import level_from_xp


class BaseDatabase:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE time_entries (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL,
                        category_id TEXT NOT NULL,
                        started_at TEXT NOT NULL,
                        ended_at TEXT,
                        duration_seconds INTEGER,
                        entry_type TEXT NOT NULL CHECK(entry_type IN ('timer', 'manual', 'pomodoro')),
                        notes TEXT
                    );

                    CREATE INDEX idx_time_entries_user_started ON time_entries(user_id, started_at);

                    CREATE TABLE session_state (
                        user_id INTEGER PRIMARY KEY,
                        status TEXT NOT NULL CHECK(status IN ('idle', 'running', 'paused')),
                        category_id TEXT,
                        entry_id INTEGER,
                        started_at TEXT,
                        paused_at TEXT,
                        accumulated_ms INTEGER NOT NULL DEFAULT 0 CHECK(accumulated_ms >= 0),
                        entry_type TEXT NOT NULL DEFAULT 'timer',
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE user_profiles (
                        user_id INTEGER PRIMARY KEY,
                        chat_id INTEGER NOT NULL,
                        last_seen_at TEXT NOT NULL
                    );

                    CREATE TABLE user_settings (
                        user_id INTEGER PRIMARY KEY,
                        reminders_enabled INTEGER NOT NULL DEFAULT 1,
                        quiet_hours TEXT
                    );

                    CREATE TABLE reminder_events (
                        user_id INTEGER NOT NULL,
                        event_key TEXT NOT NULL,
                        sent_at TEXT NOT NULL,
                        PRIMARY KEY(user_id, event_key)
                    );
                """,
                2: """
                    CREATE TABLE user_stats (
                        user_id INTEGER PRIMARY KEY,
                        total_xp INTEGER NOT NULL DEFAULT 0 CHECK(total_xp >= 0),
                        current_level INTEGER NOT NULL DEFAULT 1 CHECK(current_level >= 1),
                        total_focus_minutes INTEGER NOT NULL DEFAULT 0,
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE streaks (
                        user_id INTEGER PRIMARY KEY,
                        current_streak INTEGER NOT NULL DEFAULT 0,
                        longest_streak INTEGER NOT NULL DEFAULT 0,
                        last_active_date TEXT,
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE level_up_events (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL,
                        level INTEGER NOT NULL,
                        created_at TEXT NOT NULL,
                        UNIQUE(user_id, level)
                    );

                    ALTER TABLE time_entries ADD COLUMN processed_at TEXT;
                """,
                3: """
                    CREATE TABLE goals (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL,
                        category_id TEXT,
                        target_minutes INTEGER NOT NULL CHECK(target_minutes > 0),
                        period TEXT NOT NULL CHECK(period IN ('daily', 'weekly', 'monthly')),
                        is_active INTEGER NOT NULL DEFAULT 1,
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX idx_goals_user_active ON goals(user_id, is_active);

                    CREATE TABLE dream_goals (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL UNIQUE,
                        theme TEXT NOT NULL DEFAULT 'mountain',
                        title TEXT NOT NULL,
                        target_hours REAL NOT NULL CHECK(target_hours > 0),
                        current_hours REAL NOT NULL DEFAULT 0,
                        milestone_reached INTEGER NOT NULL DEFAULT 0,
                        is_completed INTEGER NOT NULL DEFAULT 0,
                        completed_at TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE dream_goal_progress (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        dream_goal_id INTEGER NOT NULL,
                        entry_id INTEGER,
                        hours_added REAL NOT NULL,
                        previous_hours REAL NOT NULL,
                        new_hours REAL NOT NULL,
                        milestone_reached INTEGER,
                        created_at TEXT NOT NULL,
                        UNIQUE(dream_goal_id, entry_id),
                        FOREIGN KEY (dream_goal_id) REFERENCES dream_goals(id)
                    );
                """,
                4: """
                    CREATE TABLE challenge_progress (
                        user_id INTEGER NOT NULL,
                        challenge_key TEXT NOT NULL,
                        period_start TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'completed',
                        completed_at TEXT,
                        PRIMARY KEY(user_id, challenge_key, period_start)
                    );

                    CREATE TABLE user_badges (
                        user_id INTEGER NOT NULL,
                        badge_key TEXT NOT NULL,
                        earned_at TEXT NOT NULL,
                        PRIMARY KEY(user_id, badge_key)
                    );
                """,
            }

            now = datetime.now().isoformat(timespec="seconds")
            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, now),
                )

            self._sync_cached_levels(conn)

    def _sync_cached_levels(self, conn: sqlite3.Connection) -> None:
        rows = conn.execute("SELECT user_id, total_xp, current_level FROM user_stats").fetchall()
        for row in rows:
            expected = level_from_xp(int(row["total_xp"]))
            if int(row["current_level"]) != expected:
                conn.execute(
                    "UPDATE user_stats SET current_level = ? WHERE user_id = ?",
                    (expected, row["user_id"]),
                )
