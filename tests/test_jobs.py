import asyncio
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from clockin.config import Settings
from clockin.db import Database
from clockin.db_models import IDLE_SESSION, StreakRecord
from clockin.jobs_runner import evaluate_reminders, run_recompute, run_reminders
from clockin.notifications import CollectingSink
from clockin.session import SessionMachine
from clockin.stores import SqliteEntryStore, SqliteSessionSlot
from clockin.time_utils import WEEK_START_SUNDAY

TZ = ZoneInfo("Europe/Oslo")


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=TZ)


def _settings(tmp_path) -> Settings:
    return Settings(
        telegram_bot_token="test",
        database_path=tmp_path / "app.db",
        tz="Europe/Oslo",
        week_start=WEEK_START_SUNDAY,
        dream_goal_default_hours=100.0,
        admin_panel_token=None,
        admin_host="127.0.0.1",
        admin_port=8080,
        log_level="INFO",
    )


class FakeBot:
    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []

    async def send_message(self, chat_id: int, text: str) -> None:
        self.sent.append((chat_id, text))


def test_streak_reminder_due_after_20_when_inactive_today() -> None:
    decision = evaluate_reminders(_dt(2026, 2, 8, 20), streak_days=4, active_today=False, daily_goal_missing_minutes=0)
    assert decision.streak_at_risk is True
    assert decision.daily_goal is False


def test_no_streak_reminder_without_streak_or_before_evening() -> None:
    assert evaluate_reminders(_dt(2026, 2, 8, 20), 0, False, 0).streak_at_risk is False
    assert evaluate_reminders(_dt(2026, 2, 8, 19, 59), 4, False, 0).streak_at_risk is False
    assert evaluate_reminders(_dt(2026, 2, 8, 21), 4, True, 0).streak_at_risk is False


def test_daily_goal_due_after_2130_when_below_goal() -> None:
    assert evaluate_reminders(_dt(2026, 2, 8, 21, 30), 0, True, 30).daily_goal is True
    assert evaluate_reminders(_dt(2026, 2, 8, 22), 0, True, 0).daily_goal is False


def test_recompute_processes_pending_entries_once(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    now = _dt(2026, 2, 4, 12)
    db.upsert_user_profile(1, 100, now)
    start = _dt(2026, 2, 4, 8)
    db.add_manual_entry(1, "study", start, start + timedelta(minutes=90))

    sinks: dict[int, CollectingSink] = {}

    def sink_for(chat_id: int) -> CollectingSink:
        return sinks.setdefault(chat_id, CollectingSink())

    asyncio.run(run_recompute(db, settings, sink_for, now))

    sink = sinks[100]
    assert db.list_unprocessed_entries(1) == []
    assert db.get_user_stats(1).total_xp == 90
    assert db.get_dream_goal(1).current_hours == pytest.approx(1.5)

    asyncio.run(run_recompute(db, settings, sink_for, now))
    assert db.get_user_stats(1).total_xp == 90
    assert db.get_dream_goal(1).current_hours == pytest.approx(1.5)
    assert len(sink.of_kind("challenge_completed")) == 1


def test_recompute_leaves_live_session_to_the_bot(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    started = _dt(2026, 2, 3, 9)
    clock = {"now": started}
    db.upsert_user_profile(1, 100, started)
    bot_sink = CollectingSink()

    async def scenario() -> int:
        machine = await SessionMachine.restore(
            1, SqliteEntryStore(db), SqliteSessionSlot(db, 1), lambda: clock["now"], bot_sink
        )
        await machine.start("study")
        clock["now"] = started + timedelta(hours=25)
        await run_recompute(db, settings, lambda chat_id: CollectingSink(), clock["now"])
        assert db.load_session_state(1).status == "running"
        return (await machine.stop()).duration_seconds

    assert asyncio.run(scenario()) == 24 * 3600
    assert db.load_session_state(1) == IDLE_SESSION
    assert bot_sink.events == []

def test_reminders_sent_once_and_respect_quiet_hours(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    now = _dt(2026, 2, 4, 21, 45)
    db.upsert_user_profile(1, 100, now)
    db.upsert_user_profile(2, 200, now)
    db.update_quiet_hours(2, "21:00-08:00")
    for user_id in (1, 2):
        db.save_streak(StreakRecord(user_id, 3, 3, date(2026, 2, 3)), now)
        db.create_goal(user_id, 60, "daily", now)

    bot = FakeBot()
    asyncio.run(run_reminders(db, settings, bot, now))
    asyncio.run(run_reminders(db, settings, bot, now))

    assert [chat_id for chat_id, _ in bot.sent] == [100, 100]
    assert "3-day streak" in bot.sent[0][1]
    assert "1h short" in bot.sent[1][1]


def test_reminders_disabled(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    now = _dt(2026, 2, 4, 21, 45)
    db.upsert_user_profile(1, 100, now)
    db.update_reminders_enabled(1, False)
    db.create_goal(1, 60, "daily", now)

    bot = FakeBot()
    asyncio.run(run_reminders(db, settings, bot, now))
    assert bot.sent == []
