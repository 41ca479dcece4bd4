from dataclasses import replace
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from clockin.db_models import DreamGoal
from clockin.dream_goal import apply_hours, detect_milestone, dream_progress, milestone_for, retarget

NOW = datetime(2026, 2, 4, 10, 0, tzinfo=ZoneInfo("Europe/Oslo"))


def _goal(current: float = 0.0, reached: int = 0, target: float = 100.0) -> DreamGoal:
    return DreamGoal(
        id=1,
        user_id=1,
        theme="mountain",
        title="Climb",
        target_hours=target,
        current_hours=current,
        milestone_reached=reached,
        is_completed=False,
        completed_at=None,
    )


def test_detects_highest_new_milestone() -> None:
    assert detect_milestone(40, 60, 100, already_reached=2) == 3


def test_already_reached_milestone_is_not_repeated() -> None:
    assert detect_milestone(40, 60, 100, already_reached=3) is None


def test_skipped_milestones_report_only_highest() -> None:
    assert detect_milestone(5, 80, 100, already_reached=0) == 4


def test_decrease_reports_nothing() -> None:
    assert detect_milestone(60, 40, 100, already_reached=0) is None


def test_invalid_target_rejected() -> None:
    with pytest.raises(ValueError):
        detect_milestone(0, 10, 0, already_reached=0)


def test_milestone_for_thresholds() -> None:
    assert milestone_for(0, 100) == 0
    assert milestone_for(9.9, 100) == 0
    assert milestone_for(10, 100) == 1
    assert milestone_for(150, 100) == 5


def test_dream_progress() -> None:
    progress = dream_progress(30, 100)
    assert progress.percentage == 30
    assert progress.current_milestone == 2
    assert progress.next_milestone_percentage == 50
    assert progress.hours_to_next_milestone == 20


def test_apply_hours_clamps_and_completes() -> None:
    update = apply_hours(_goal(current=95, reached=4), 10, NOW)
    assert update.goal.current_hours == 100
    assert update.goal.is_completed
    assert update.goal.completed_at == NOW
    assert update.goal.milestone_reached == 5
    assert update.milestone == 5
    assert update.just_completed


def test_apply_hours_without_new_milestone_keeps_reached() -> None:
    update = apply_hours(_goal(current=30, reached=2), 5, NOW)
    assert update.goal.current_hours == 35
    assert update.goal.milestone_reached == 2
    assert update.milestone is None


def test_apply_hours_rejects_negative() -> None:
    with pytest.raises(ValueError):
        apply_hours(_goal(), -1, NOW)


def test_retarget_reopens_completed_goal() -> None:
    done = replace(_goal(current=100, reached=5), is_completed=True, completed_at=NOW)
    moved = retarget(done, 200, NOW)
    assert moved.target_hours == 200
    assert moved.milestone_reached == 3
    assert not moved.is_completed
    assert moved.completed_at is None

    update = apply_hours(moved, 50, NOW)
    assert update.milestone == 4
    assert update.goal.current_hours == 150


def test_retarget_down_to_logged_hours_completes() -> None:
    moved = retarget(_goal(current=30, reached=2, target=100), 30, NOW)
    assert moved.is_completed
    assert moved.completed_at == NOW
    assert moved.milestone_reached == 5


@pytest.mark.parametrize("target", [float("nan"), float("inf"), 0, -1, 29.5])
def test_retarget_rejects_invalid_targets(target: float) -> None:
    with pytest.raises(ValueError):
        retarget(_goal(current=30), target, NOW)
