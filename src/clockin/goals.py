from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from clockin.db_models import Goal, TimeEntry
from clockin.errors import AggregationInputInvalid
from clockin.time_utils import WEEK_START_SUNDAY, start_of_day, start_of_month, week_range_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GoalProgress:
    current: int
    target: int
    percentage: int

    @property
    def complete(self) -> bool:
        return self.current >= self.target


@dataclass(frozen=True)
class ChallengeDefinition:
    key: str
    name: str
    description: str
    target_minutes: int
    period: str


DAILY_CHALLENGES = (
    ChallengeDefinition("daily_1h", "One Hour Focus", "Log at least 1 hour today", 60, "daily"),
    ChallengeDefinition("daily_2h", "Two Hour Push", "Log at least 2 hours today", 120, "daily"),
    ChallengeDefinition("daily_4h", "Half Day Hero", "Log at least 4 hours today", 240, "daily"),
)

WEEKLY_CHALLENGES = (
    ChallengeDefinition("weekly_10h", "Steady Week", "Log 10 hours this week", 600, "weekly"),
    ChallengeDefinition("weekly_20h", "Productive Week", "Log 20 hours this week", 1200, "weekly"),
    ChallengeDefinition("weekly_40h", "Full-time Focus", "Log 40 hours this week", 2400, "weekly"),
)

ALL_CHALLENGES = DAILY_CHALLENGES + WEEKLY_CHALLENGES


def period_start(period: str, now: datetime, week_start: int = WEEK_START_SUNDAY) -> datetime:
    if period == "daily":
        return start_of_day(now)
    if period == "weekly":
        return week_range_for(now, week_start=week_start).start
    if period == "monthly":
        return start_of_month(now)
    raise ValueError(f"Unknown goal period: {period}")


def entry_seconds(entry: TimeEntry) -> int:
    if entry.duration_seconds is None:
        raise AggregationInputInvalid(entry.id, "entry is still open")
    if entry.duration_seconds < 0:
        raise AggregationInputInvalid(entry.id, "negative duration")
    if entry.ended_at is not None and entry.ended_at < entry.started_at:
        raise AggregationInputInvalid(entry.id, "ends before it starts")
    return int(entry.duration_seconds)


def sum_entry_seconds(
    entries: Iterable[TimeEntry],
    since: datetime | None = None,
    category_id: str | None = None,
) -> int:
    total = 0
    for entry in entries:
        if since is not None and entry.started_at < since:
            continue
        if category_id is not None and entry.category_id != category_id:
            continue
        try:
            total += entry_seconds(entry)
        except AggregationInputInvalid as exc:
            logger.warning("%s", exc)
    return total


def _progress(current: int, target: int) -> GoalProgress:
    percentage = min(100, round(current / target * 100)) if target > 0 else 0
    return GoalProgress(current=current, target=target, percentage=percentage)


def goal_progress(
    goal: Goal,
    entries: Iterable[TimeEntry],
    now: datetime,
    week_start: int = WEEK_START_SUNDAY,
) -> GoalProgress:
    boundary = period_start(goal.period, now, week_start=week_start)
    seconds = sum_entry_seconds(entries, since=boundary, category_id=goal.category_id)
    return _progress(seconds // 60, goal.target_minutes)


def challenge_progress(
    challenge: ChallengeDefinition,
    entries: Iterable[TimeEntry],
    now: datetime,
    week_start: int = WEEK_START_SUNDAY,
) -> GoalProgress:
    boundary = period_start(challenge.period, now, week_start=week_start)
    seconds = sum_entry_seconds(entries, since=boundary)
    return _progress(seconds // 60, challenge.target_minutes)


def get_challenge(key: str) -> ChallengeDefinition | None:
    for challenge in ALL_CHALLENGES:
        if challenge.key == key:
            return challenge
    return None
