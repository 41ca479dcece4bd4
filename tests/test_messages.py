from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from clockin.db import Database
from clockin.db_models import SessionState
from clockin.messages import dream_message, event_message, goals_message, session_message, status_message
from clockin.notifications import LevelUp, MilestoneCrossed, SessionDiscarded
from clockin.pomodoro import PomodoroPhase
from clockin.service import add_manual_entry, compute_status, process_completed_entry

NOW = datetime(2026, 2, 4, 18, 0, tzinfo=ZoneInfo("Europe/Oslo"))


def test_status_message_contains_core_sections(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    start = NOW - timedelta(hours=3)
    process_completed_entry(db, add_manual_entry(db, 1, "study", start, start + timedelta(minutes=45)), NOW)

    text = status_message(compute_status(db, 1, NOW), username="alice")
    assert "📊 Status — @alice" in text
    assert "⚡ Level 1" in text
    assert "🔥 Streak: 1 days" in text
    assert "📅 Today: 45m" in text
    assert "My Dream Goal" in text


def test_goals_message_lists_goals_and_challenges(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.create_goal(1, 60, "daily", NOW)
    text = goals_message(compute_status(db, 1, NOW))
    assert "#1 daily (all categories): 0h / 1h (0%)" in text
    assert "One Hour Focus" in text


def test_dream_message_without_goal(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    assert "No dream goal yet" in dream_message(compute_status(db, 1, NOW))


def test_session_message() -> None:
    state = SessionState(status="paused", category_id="study", entry_id=1, started_at=NOW, paused_at=NOW, entry_type="pomodoro")
    assert session_message(state, 65_000) == "⏸ Pomodoro on study: 00:01:05 (paused)"


def test_session_message_shows_pomodoro_phase() -> None:
    state = SessionState(status="running", category_id="study", entry_id=1, started_at=NOW, entry_type="pomodoro")
    work = PomodoroPhase(phase="work", cycle=2, total_cycles=4, remaining_ms=600_000)
    text = session_message(state, 30 * 60_000, work)
    assert text.splitlines() == ["⏱ Pomodoro on study: 00:30:00 (running)", "🍅 Cycle 2/4: 00:10:00 of work left"]

    over = PomodoroPhase(phase="break", cycle=2, total_cycles=4, remaining_ms=0)
    assert "Break is over" in session_message(state, 0, over)


def test_event_messages() -> None:
    assert "Level 3" in event_message(LevelUp(user_id=1, new_level=3))
    assert "Halfway (50%)" in event_message(MilestoneCrossed(user_id=1, dream_goal_id=1, milestone_index=3, percentage=50))
    stale = event_message(SessionDiscarded(user_id=1, reason="stale", discarded_ms=3_600_000))
    assert "over 24 hours" in stale
    assert "01:00:00" in stale
