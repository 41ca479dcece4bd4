from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime

from clockin.db_constants import MILESTONE_THRESHOLDS
from clockin.db_models import DreamGoal

MILESTONE_NAMES = ("Base camp", "First steps", "Quarter way", "Halfway", "Almost there", "Summit")


@dataclass(frozen=True)
class DreamGoalProgress:
    percentage: float
    current_milestone: int
    hours_to_next_milestone: float
    next_milestone_percentage: int


@dataclass(frozen=True)
class DreamUpdate:
    goal: DreamGoal
    previous_hours: float
    milestone: int | None
    just_completed: bool


def _percentage(hours: float, target_hours: float) -> float:
    return hours / target_hours * 100


def milestone_for(hours: float, target_hours: float) -> int:
    pct = _percentage(hours, target_hours)
    for index in range(len(MILESTONE_THRESHOLDS) - 1, -1, -1):
        if pct >= MILESTONE_THRESHOLDS[index]:
            return index
    return 0


def detect_milestone(
    previous_hours: float,
    new_hours: float,
    target_hours: float,
    already_reached: int,
) -> int | None:
    """Return the highest milestone crossed by ``new_hours`` that was not reached before.

    Skipped intermediate thresholds are not replayed; only the highest one
    is reported. Progress never moves backwards, so a decrease reports nothing.
    """
    if target_hours <= 0:
        raise ValueError("target_hours must be positive")
    if new_hours < previous_hours:
        return None
    candidate = milestone_for(new_hours, target_hours)
    if candidate > already_reached:
        return candidate
    return None


def dream_progress(current_hours: float, target_hours: float) -> DreamGoalProgress:
    percentage = min(_percentage(current_hours, target_hours), 100.0)
    current = milestone_for(current_hours, target_hours)
    next_index = min(current + 1, len(MILESTONE_THRESHOLDS) - 1)
    next_pct = MILESTONE_THRESHOLDS[next_index]
    hours_for_next = next_pct / 100 * target_hours
    return DreamGoalProgress(
        percentage=percentage,
        current_milestone=current,
        hours_to_next_milestone=max(0.0, hours_for_next - current_hours),
        next_milestone_percentage=next_pct,
    )


def apply_hours(goal: DreamGoal, hours: float, now: datetime) -> DreamUpdate:
    if hours < 0:
        raise ValueError("hours must not be negative")
    previous = goal.current_hours
    raw_hours = previous + hours
    milestone = detect_milestone(previous, raw_hours, goal.target_hours, goal.milestone_reached)
    completed = raw_hours >= goal.target_hours
    just_completed = completed and not goal.is_completed
    updated = replace(
        goal,
        current_hours=min(raw_hours, goal.target_hours),
        milestone_reached=milestone if milestone is not None else goal.milestone_reached,
        is_completed=goal.is_completed or completed,
        completed_at=now if just_completed else goal.completed_at,
    )
    return DreamUpdate(goal=updated, previous_hours=previous, milestone=milestone, just_completed=just_completed)


def retarget(goal: DreamGoal, target_hours: float, now: datetime) -> DreamGoal:
    """Move the goal to a new target, re-deriving milestone and completion from the logged hours.

    Milestones are percentages of the target, so a larger target can re-open
    milestones and completion. A target below the hours already logged is
    rejected.
    """
    if not math.isfinite(target_hours) or target_hours <= 0:
        raise ValueError("target_hours must be a positive number")
    if target_hours < goal.current_hours:
        raise ValueError(f"target_hours cannot be below the {goal.current_hours:g}h already logged")
    completed = goal.current_hours >= target_hours
    if not completed:
        completed_at = None
    elif goal.is_completed:
        completed_at = goal.completed_at
    else:
        completed_at = now
    return replace(
        goal,
        target_hours=target_hours,
        milestone_reached=milestone_for(goal.current_hours, target_hours),
        is_completed=completed,
        completed_at=completed_at,
    )
