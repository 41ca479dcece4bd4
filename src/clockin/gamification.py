from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import date, timedelta

from clockin.db_constants import BADGE_DEFINITIONS, XP_PER_LEVEL
from clockin.db_models import StreakRecord, UserStats


@dataclass(frozen=True)
class LevelInfo:
    current_level: int
    current_xp: int
    xp_for_next_level: int
    xp_progress: int
    progress_percentage: float


def level_from_xp(total_xp: int) -> int:
    return max(0, total_xp) // XP_PER_LEVEL + 1


def xp_for_next_level(level: int) -> int:
    return level * XP_PER_LEVEL


def level_info(total_xp: int) -> LevelInfo:
    xp = max(0, total_xp)
    level = level_from_xp(xp)
    progress = xp - (level - 1) * XP_PER_LEVEL
    return LevelInfo(
        current_level=level,
        current_xp=xp,
        xp_for_next_level=xp_for_next_level(level),
        xp_progress=progress,
        progress_percentage=min(progress / XP_PER_LEVEL * 100, 100.0),
    )


def apply_xp(stats: UserStats, delta: int, minutes: int = 0) -> tuple[UserStats, LevelInfo]:
    # The level is a cache of total_xp and is always recomputed from it.
    if delta < 0:
        raise ValueError("XP delta must not be negative")
    if minutes < 0:
        raise ValueError("minutes must not be negative")
    new_total = stats.total_xp + delta
    info = level_info(new_total)
    updated = replace(
        stats,
        total_xp=new_total,
        current_level=info.current_level,
        total_focus_minutes=stats.total_focus_minutes + minutes,
    )
    return updated, info


def levels_crossed(old_xp: int, new_xp: int) -> list[int]:
    return list(range(level_from_xp(old_xp) + 1, level_from_xp(new_xp) + 1))


def streak_multiplier(streak_days: int) -> float:
    if streak_days >= 30:
        return 1.25
    if streak_days >= 7:
        return 1.1
    return 1.0


def xp_for_minutes(minutes: int, streak_days: int) -> int:
    return max(0, math.floor(minutes * streak_multiplier(streak_days)))


def advance_streak(record: StreakRecord, today: date) -> StreakRecord:
    """Count ``today`` as active. Calling it again on the same day, or for an earlier day, is a no-op."""
    last = record.last_active_date
    if last is not None and today <= last:
        return record
    if last is not None and last == today - timedelta(days=1):
        current = record.current_streak + 1
    else:
        current = 1
    return replace(
        record,
        current_streak=current,
        longest_streak=max(record.longest_streak, current),
        last_active_date=today,
    )


def effective_streak(record: StreakRecord, today: date) -> int:
    """Streak as seen today: it survives until the end of the day after the last activity."""
    last = record.last_active_date
    if last is None or (today - last).days > 1:
        return 0
    return record.current_streak


@dataclass(frozen=True)
class BadgeFacts:
    total_entries: int
    current_streak: int
    total_hours: float
    pomodoro_count: int
    unique_categories: int
    entry_start_hour: int | None = None
    entry_end_hour: int | None = None


def _badge_condition_met(condition: str, threshold: int, facts: BadgeFacts) -> bool:
    if condition == "started_before_hour":
        return facts.entry_start_hour is not None and facts.entry_start_hour < threshold
    if condition == "ended_after_hour":
        return facts.entry_end_hour is not None and facts.entry_end_hour >= threshold
    value = getattr(facts, condition, None)
    if value is None:
        return False
    return value >= threshold


def newly_earned_badges(facts: BadgeFacts, earned: set[str]) -> list[tuple[str, str]]:
    result: list[tuple[str, str]] = []
    for key, name, _description, condition, threshold in BADGE_DEFINITIONS:
        if key in earned:
            continue
        if _badge_condition_met(condition, threshold, facts):
            result.append((key, name))
    return result


def format_minutes_hm(minutes: int) -> str:
    sign = "-" if minutes < 0 else ""
    total = abs(minutes)
    h, m = divmod(total, 60)
    if m == 0:
        return f"{sign}{h}h"
    if h == 0:
        return f"{sign}{m}m"
    return f"{sign}{h}h {m}m"
