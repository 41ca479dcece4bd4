from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class TimeEntry:
    id: int
    user_id: int
    category_id: str
    started_at: datetime
    ended_at: datetime | None
    duration_seconds: int | None
    entry_type: str
    notes: str | None
    processed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.duration_seconds is None


@dataclass(frozen=True)
class SessionState:
    status: str = "idle"
    category_id: str | None = None
    entry_id: int | None = None
    started_at: datetime | None = None
    paused_at: datetime | None = None
    accumulated_ms: int = 0
    entry_type: str = "timer"

    @property
    def is_active(self) -> bool:
        return self.status in {"running", "paused"}


IDLE_SESSION = SessionState()


@dataclass(frozen=True)
class UserStats:
    user_id: int
    total_xp: int
    current_level: int
    total_focus_minutes: int


@dataclass(frozen=True)
class StreakRecord:
    user_id: int
    current_streak: int
    longest_streak: int
    last_active_date: date | None


@dataclass(frozen=True)
class LevelUpEvent:
    id: int
    user_id: int
    level: int
    created_at: datetime


@dataclass(frozen=True)
class Goal:
    id: int
    user_id: int
    category_id: str | None
    target_minutes: int
    period: str
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class DreamGoal:
    id: int
    user_id: int
    theme: str
    title: str
    target_hours: float
    current_hours: float
    milestone_reached: int
    is_completed: bool
    completed_at: datetime | None


@dataclass(frozen=True)
class ChallengeRecord:
    user_id: int
    challenge_key: str
    period_start: date
    status: str
    completed_at: datetime | None


@dataclass(frozen=True)
class UserBadge:
    user_id: int
    badge_key: str
    earned_at: datetime


@dataclass(frozen=True)
class DreamProgressRecord:
    dream_goal_id: int
    entry_id: int | None
    hours_added: float
    previous_hours: float
    new_hours: float
    milestone_reached: int | None
    created_at: datetime


@dataclass(frozen=True)
class UserSettings:
    user_id: int
    reminders_enabled: bool
    quiet_hours: str | None
