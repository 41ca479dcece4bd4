import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from clockin.db import Database
from clockin.db_models import IDLE_SESSION, SessionState
from clockin.errors import AggregationInputInvalid
from clockin.notifications import CollectingSink
from clockin.service import (
    add_manual_entry,
    complete_entry,
    compute_status,
    process_completed_entry,
    sync_dream_goal_with_history,
)

TZ = ZoneInfo("Europe/Oslo")


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=TZ)


def _log(db: Database, start: datetime, minutes: int, category: str = "study", user_id: int = 1):
    return add_manual_entry(db, user_id, category, start, start + timedelta(minutes=minutes))


def test_completion_awards_xp_streak_and_dream_hours(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    entry = _log(db, _dt(2026, 2, 4, 9), 90)
    outcome = process_completed_entry(db, entry, _dt(2026, 2, 4, 11))

    assert outcome.processed
    assert outcome.xp_earned == 90
    assert outcome.streak.current_streak == 1
    stats = db.get_user_stats(1)
    assert stats.total_xp == 90
    assert stats.total_focus_minutes == 90
    goal = db.get_dream_goal(1)
    assert goal is not None
    assert goal.current_hours == pytest.approx(1.5)


def test_completion_runs_once_per_entry(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    entry = _log(db, _dt(2026, 2, 4, 9), 60)
    now = _dt(2026, 2, 4, 11)

    first = process_completed_entry(db, entry, now)
    second = process_completed_entry(db, entry, now)

    assert first.processed and first.events
    assert not second.processed
    assert second.events == ()
    assert db.get_user_stats(1).total_xp == 60


def test_level_up_emitted_once(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    sink = CollectingSink()
    now = _dt(2026, 2, 4, 23, 30)

    async def scenario() -> None:
        for hour in (0, 10, 20):
            entry = _log(db, _dt(2026, 2, 4, hour), 400)
            await complete_entry(db, entry, now, sink)

    asyncio.run(scenario())
    levels = [e.new_level for e in sink.of_kind("level_up")]
    assert levels == [2]
    assert db.get_user_stats(1).current_level == 2


def test_milestone_persisted_and_emitted_once(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 2, 4, 23)
    db.get_or_create_dream_goal(1, now, target_hours=10)
    sink = CollectingSink()

    async def scenario() -> None:
        await complete_entry(db, _log(db, _dt(2026, 2, 4, 8), 90), now, sink)
        await complete_entry(db, _log(db, _dt(2026, 2, 4, 12), 30), now, sink)

    asyncio.run(scenario())
    milestones = sink.of_kind("milestone_crossed")
    assert [m.milestone_index for m in milestones] == [1]
    assert milestones[0].percentage == 10
    goal = db.get_dream_goal(1)
    assert goal.milestone_reached == 1
    assert goal.current_hours == pytest.approx(2.0)


def test_challenges_and_badges_recorded_once(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 2, 4, 12)
    first = process_completed_entry(db, _log(db, _dt(2026, 2, 4, 6), 70), now)
    kinds = {e.kind for e in first.events}
    assert "challenge_completed" in kinds
    assert "badge_earned" in kinds
    badge_keys = {e.badge_key for e in first.events if e.kind == "badge_earned"}
    assert {"first_entry", "early_bird"} <= badge_keys

    second = process_completed_entry(db, _log(db, _dt(2026, 2, 4, 9), 10), now)
    assert [e for e in second.events if e.kind == "challenge_completed"] == []
    assert [e for e in second.events if e.kind == "badge_earned"] == []


def test_open_entry_cannot_be_completed(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    entry = db.open_entry(1, "study", _dt(2026, 2, 4, 9))
    with pytest.raises(AggregationInputInvalid):
        process_completed_entry(db, entry, _dt(2026, 2, 4, 10))


def test_manual_entry_validation(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    start = _dt(2026, 2, 4, 9)
    with pytest.raises(ValueError):
        add_manual_entry(db, 1, "study", start, start)
    with pytest.raises(ValueError):
        add_manual_entry(db, 1, "study", start, start + timedelta(hours=25))
    with pytest.raises(ValueError):
        add_manual_entry(db, 1, "  ", start, start + timedelta(hours=1))
    entry = add_manual_entry(db, 1, "Study", start, start + timedelta(minutes=45), "notes")
    assert entry.entry_type == "manual"
    assert entry.category_id == "study"
    assert entry.duration_seconds == 45 * 60


def test_sync_leaves_unprocessed_entries_to_processing(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 2, 4, 20)
    db.get_or_create_dream_goal(1, now, target_hours=10)
    entry = _log(db, _dt(2026, 2, 4, 9), 120)

    goal, milestone = sync_dream_goal_with_history(db, 1, now)
    assert goal.current_hours == 0
    assert milestone is None

    process_completed_entry(db, entry, now)
    sync_dream_goal_with_history(db, 1, now)
    assert db.get_dream_goal(1).current_hours == pytest.approx(2.0)


def test_sync_counts_processed_entries_missing_from_dream_goal_once(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 2, 4, 20)
    db.get_or_create_dream_goal(1, now, target_hours=10)
    entry = _log(db, _dt(2026, 2, 4, 9), 180)
    assert db.mark_entry_processed(entry.id, now)

    goal, milestone = sync_dream_goal_with_history(db, 1, now)
    assert goal.current_hours == pytest.approx(3.0)
    assert milestone is not None and milestone.milestone_index == 2

    goal, milestone = sync_dream_goal_with_history(db, 1, now)
    assert milestone is None
    assert goal.current_hours == pytest.approx(3.0)
    assert process_completed_entry(db, entry, now).processed is False
    assert db.get_dream_goal(1).current_hours == pytest.approx(3.0)


def test_dream_hours_never_decrease_when_history_shrinks(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 2, 4, 20)
    db.get_or_create_dream_goal(1, now, target_hours=10)
    entry = _log(db, _dt(2026, 2, 4, 9), 180)
    process_completed_entry(db, entry, now)
    with db._connect() as conn:
        conn.execute("DELETE FROM time_entries WHERE id = ?", (entry.id,))

    goal, milestone = sync_dream_goal_with_history(db, 1, now)
    assert milestone is None
    assert goal.current_hours == pytest.approx(3.0)
    assert goal.milestone_reached == 2


def test_raised_target_reopens_completed_dream_goal(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 2, 4, 20)
    db.get_or_create_dream_goal(1, now, target_hours=2)
    process_completed_entry(db, _log(db, _dt(2026, 2, 4, 9), 120), now)
    assert db.get_dream_goal(1).is_completed

    db.update_dream_goal_settings(1, now, target_hours=8)
    outcome = process_completed_entry(db, _log(db, _dt(2026, 2, 4, 12), 60), now)

    goal = db.get_dream_goal(1)
    assert goal.current_hours == pytest.approx(3.0)
    assert not goal.is_completed
    assert goal.milestone_reached == 2
    assert outcome.milestone is None

def test_compute_status(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 2, 4, 18)
    db.create_goal(1, 60, "daily", now)
    process_completed_entry(db, _log(db, _dt(2026, 2, 4, 9), 30), now)
    process_completed_entry(db, _log(db, _dt(2026, 2, 2, 9), 60), now)
    db.save_session_state(
        1,
        SessionState(status="running", category_id="study", entry_id=99, started_at=now - timedelta(minutes=5)),
    )

    view = compute_status(db, 1, now)
    assert view.today_minutes == 30
    assert view.week_minutes == 90
    assert view.total_focus_minutes == 90
    assert view.goals[0][1].percentage == 50
    assert view.session.status == "running"
    assert view.session_elapsed_ms == 5 * 60_000
    assert view.level.current_level == 1
    assert view.dream is not None


def test_compute_status_hides_stale_session(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 2, 4, 18)
    db.save_session_state(
        1,
        SessionState(status="running", category_id="study", entry_id=5, started_at=now - timedelta(hours=30)),
    )
    view = compute_status(db, 1, now)
    assert view.session == IDLE_SESSION
    assert view.session_elapsed_ms == 0
