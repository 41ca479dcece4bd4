from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from functools import partial
from typing import Callable

from telegram import Bot

from clockin.config import Settings
from clockin.db import Database
from clockin.errors import AggregationInputInvalid
from clockin.gamification import format_minutes_hm
from clockin.goals import goal_progress
from clockin.notifications import NotificationSink
from clockin.service import complete_entry, evaluate_challenges, publish, sync_dream_goal_with_history
from clockin.telegram_bot import TelegramSink
from clockin.time_utils import in_quiet_hours, local_date, now_local, start_of_day, to_local

logger = logging.getLogger(__name__)

SinkFactory = Callable[[int], NotificationSink]


@dataclass(frozen=True)
class ReminderDecision:
    streak_at_risk: bool
    daily_goal: bool


def evaluate_reminders(
    now: datetime,
    streak_days: int,
    active_today: bool,
    daily_goal_missing_minutes: int,
) -> ReminderDecision:
    streak_due = now.time() >= time(hour=20, minute=0) and streak_days > 0 and not active_today
    goal_due = now.time() >= time(hour=21, minute=30) and daily_goal_missing_minutes > 0
    return ReminderDecision(streak_at_risk=streak_due, daily_goal=goal_due)


async def recompute_user(
    db: Database,
    settings: Settings,
    user_id: int,
    sink: NotificationSink,
    now: datetime,
) -> int:
    """Score closed entries that were never processed.

    The session slot belongs to the bot process and is not touched here; a
    stale session is flushed the next time the user talks to the bot.
    """
    processed = 0
    for entry in db.list_unprocessed_entries(user_id):
        try:
            outcome = await complete_entry(
                db,
                entry,
                now,
                sink,
                tz_name=settings.tz,
                week_start=settings.week_start,
                dream_default_hours=settings.dream_goal_default_hours,
            )
        except AggregationInputInvalid as exc:
            logger.warning("recompute skipped entry: %s", exc)
            continue
        if outcome.processed:
            processed += 1

    _, milestone = sync_dream_goal_with_history(db, user_id, now, settings.dream_goal_default_hours)
    if milestone is not None:
        await sink.emit(milestone)
    await publish(sink, evaluate_challenges(db, user_id, now, settings.tz, settings.week_start))
    return processed


async def run_recompute(
    db: Database,
    settings: Settings,
    sink_for: SinkFactory,
    now: datetime | None = None,
) -> None:
    now = now or now_local(settings.tz)
    for profile in db.get_all_user_profiles():
        user_id = int(profile["user_id"])
        processed = await recompute_user(db, settings, user_id, sink_for(int(profile["chat_id"])), now)
        logger.info("recompute user_id=%s processed_entries=%s", user_id, processed)


async def run_reminders(
    db: Database,
    settings: Settings,
    bot: Bot,
    now: datetime | None = None,
) -> None:
    now = to_local(now or now_local(settings.tz), settings.tz)
    day_start = start_of_day(now)
    today = local_date(now)
    date_key = today.isoformat()

    for profile in db.get_all_user_profiles():
        user_id = int(profile["user_id"])
        chat_id = int(profile["chat_id"])
        if not profile["reminders_enabled"]:
            continue
        if in_quiet_hours(now, profile.get("quiet_hours")):
            continue

        entries = db.list_entries(user_id, since=day_start)
        streak = db.get_streak(user_id)
        alive = streak.last_active_date == today - timedelta(days=1)
        missing = 0
        for goal in db.list_goals(user_id):
            if goal.period != "daily":
                continue
            progress = goal_progress(goal, entries, now, settings.week_start)
            missing = max(missing, progress.target - progress.current)

        decision = evaluate_reminders(
            now=now,
            streak_days=streak.current_streak if alive else 0,
            active_today=streak.last_active_date == today,
            daily_goal_missing_minutes=missing,
        )

        if decision.streak_at_risk:
            event_key = f"streak-risk:{date_key}"
            if not db.was_event_sent(user_id, event_key):
                await bot.send_message(
                    chat_id=chat_id,
                    text=f"🔥 Your {streak.current_streak}-day streak ends tonight. Log some focus time to keep it.",
                )
                db.mark_event_sent(user_id, event_key, now)
                logger.info("sent streak reminder user_id=%s", user_id)

        if decision.daily_goal:
            event_key = f"daily-goal:{date_key}"
            if not db.was_event_sent(user_id, event_key):
                await bot.send_message(
                    chat_id=chat_id,
                    text=f"🎯 Daily goal reminder: you are {format_minutes_hm(missing)} short of your goal.",
                )
                db.mark_event_sent(user_id, event_key, now)
                logger.info("sent daily goal reminder user_id=%s", user_id)


def run_job(job_name: str, db: Database, settings: Settings) -> None:
    bot = Bot(token=settings.telegram_bot_token)
    if job_name == "recompute":
        asyncio.run(run_recompute(db, settings, partial(TelegramSink, bot)))
    elif job_name == "reminders":
        asyncio.run(run_reminders(db, settings, bot))
    else:
        raise SystemExit(f"Unknown job '{job_name}'. Expected one of: recompute, reminders")
