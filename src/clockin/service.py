from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from clockin.db import Database
from clockin.db_constants import DEFAULT_DREAM_TARGET_HOURS, MILESTONE_THRESHOLDS, TIMER_MAX_DURATION_SECONDS
from clockin.db_models import DreamGoal, Goal, SessionState, StreakRecord, TimeEntry
from clockin.dream_goal import DreamGoalProgress, apply_hours, dream_progress
from clockin.duration import elapsed_ms
from clockin.gamification import (
    BadgeFacts,
    LevelInfo,
    advance_streak,
    apply_xp,
    effective_streak,
    level_from_xp,
    level_info,
    newly_earned_badges,
    streak_multiplier,
    xp_for_minutes,
)
from clockin.goals import (
    ALL_CHALLENGES,
    ChallengeDefinition,
    GoalProgress,
    challenge_progress,
    entry_seconds,
    goal_progress,
    period_start,
    sum_entry_seconds,
)
from clockin.notifications import (
    BadgeEarned,
    ChallengeCompleted,
    Event,
    LevelUp,
    MilestoneCrossed,
    NotificationSink,
)
from clockin.pomodoro import PomodoroPhase, pomodoro_phase
from clockin.recovery import recover_stale
from clockin.time_utils import DEFAULT_TZ, WEEK_START_SUNDAY, local_date, start_of_day, to_local, week_range_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionOutcome:
    entry: TimeEntry
    processed: bool
    xp_earned: int = 0
    streak: StreakRecord | None = None
    level: LevelInfo | None = None
    milestone: int | None = None
    events: tuple[Event, ...] = ()


@dataclass(frozen=True)
class StatusView:
    level: LevelInfo
    streak_current: int
    streak_longest: int
    streak_multiplier: float
    today_minutes: int
    week_minutes: int
    total_focus_minutes: int
    goals: list[tuple[Goal, GoalProgress]]
    challenges: list[tuple[ChallengeDefinition, GoalProgress]]
    dream_goal: DreamGoal | None
    dream: DreamGoalProgress | None
    badge_count: int
    session: SessionState
    session_elapsed_ms: int
    session_pomodoro: PomodoroPhase | None = None


def _record_level_ups(db: Database, user_id: int, total_xp: int, now: datetime) -> list[LevelUp]:
    current_level = level_from_xp(total_xp)
    max_recorded = db.max_level_event_level(user_id)
    created: list[LevelUp] = []
    for lvl in range(max_recorded + 1, current_level + 1):
        if lvl < 2:
            continue
        if db.add_level_up_event(user_id, lvl, now):
            created.append(LevelUp(user_id=user_id, new_level=lvl))
            logger.info("level up user=%s level=%s", user_id, lvl)
    return created


def _apply_dream_hours(
    db: Database,
    goal: DreamGoal,
    entry_id: int | None,
    hours: float,
    now: datetime,
) -> tuple[DreamGoal, MilestoneCrossed | None]:
    update = apply_hours(goal, hours, now)
    stored = db.apply_dream_progress(update.goal, entry_id, update.previous_hours, hours, update.milestone, now)
    if not stored or update.milestone is None:
        return update.goal, None
    logger.info("dream goal milestone user=%s milestone=%s", goal.user_id, update.milestone)
    event = MilestoneCrossed(
        user_id=goal.user_id,
        dream_goal_id=goal.id,
        milestone_index=update.milestone,
        percentage=MILESTONE_THRESHOLDS[update.milestone],
    )
    return update.goal, event


def evaluate_challenges(
    db: Database,
    user_id: int,
    now: datetime,
    tz_name: str = DEFAULT_TZ,
    week_start: int = WEEK_START_SUNDAY,
    entries: Iterable[TimeEntry] | None = None,
) -> list[ChallengeCompleted]:
    local_now = to_local(now, tz_name)
    if entries is None:
        since = min(period_start(c.period, local_now, week_start) for c in ALL_CHALLENGES)
        entries = db.list_entries(user_id, since=since)
    entries = list(entries)
    completed: list[ChallengeCompleted] = []
    for challenge in ALL_CHALLENGES:
        progress = challenge_progress(challenge, entries, local_now, week_start=week_start)
        if not progress.complete:
            continue
        boundary = period_start(challenge.period, local_now, week_start).date()
        if db.record_challenge_completion(user_id, challenge.key, boundary, now):
            completed.append(ChallengeCompleted(user_id=user_id, challenge_key=challenge.key, name=challenge.name))
    return completed


def _evaluate_badges(
    db: Database,
    entry: TimeEntry,
    streak: StreakRecord,
    now: datetime,
    tz_name: str,
) -> list[BadgeEarned]:
    counters = db.entry_counters(entry.user_id)
    facts = BadgeFacts(
        total_entries=counters["total_entries"],
        current_streak=streak.current_streak,
        total_hours=counters["total_seconds"] / 3600,
        pomodoro_count=counters["pomodoro_count"],
        unique_categories=counters["unique_categories"],
        entry_start_hour=to_local(entry.started_at, tz_name).hour,
        entry_end_hour=to_local(entry.ended_at, tz_name).hour if entry.ended_at else None,
    )
    earned = {badge.badge_key for badge in db.list_badges(entry.user_id)}
    awarded: list[BadgeEarned] = []
    for key, name in newly_earned_badges(facts, earned):
        if db.award_badge(entry.user_id, key, now):
            awarded.append(BadgeEarned(user_id=entry.user_id, badge_key=key, name=name))
    return awarded


def process_completed_entry(
    db: Database,
    entry: TimeEntry,
    now: datetime,
    tz_name: str = DEFAULT_TZ,
    week_start: int = WEEK_START_SUNDAY,
    dream_default_hours: float = DEFAULT_DREAM_TARGET_HOURS,
) -> CompletionOutcome:
    """Derive streak, XP, dream progress, challenges and badges from one closed entry.

    The entry is claimed first through its ``processed_at`` marker, so running
    this again for the same entry changes nothing and reports no events.
    Everything is written before the returned events are published.
    """
    seconds = entry_seconds(entry)
    if not db.mark_entry_processed(entry.id, now):
        logger.info("entry %s already processed", entry.id)
        return CompletionOutcome(entry=entry, processed=False)

    user_id = entry.user_id
    events: list[Event] = []

    day = local_date(entry.ended_at or now, tz_name)
    streak = advance_streak(db.get_streak(user_id), day)
    db.save_streak(streak, now)

    minutes = seconds // 60
    xp = xp_for_minutes(minutes, streak.current_streak)
    stats, info = apply_xp(db.get_user_stats(user_id), xp, minutes)
    db.save_user_stats(stats, now)
    events.extend(_record_level_ups(db, user_id, stats.total_xp, now))

    milestone: int | None = None
    goal = db.get_or_create_dream_goal(user_id, now, dream_default_hours)
    if seconds > 0 and not goal.is_completed:
        _, crossed = _apply_dream_hours(db, goal, entry.id, seconds / 3600, now)
        if crossed is not None:
            milestone = crossed.milestone_index
            events.append(crossed)

    events.extend(evaluate_challenges(db, user_id, now, tz_name, week_start))
    events.extend(_evaluate_badges(db, entry, streak, now, tz_name))

    return CompletionOutcome(
        entry=entry,
        processed=True,
        xp_earned=xp,
        streak=streak,
        level=info,
        milestone=milestone,
        events=tuple(events),
    )


async def publish(sink: NotificationSink, events: Iterable[Event]) -> None:
    for event in events:
        await sink.emit(event)


async def complete_entry(
    db: Database,
    entry: TimeEntry,
    now: datetime,
    sink: NotificationSink,
    tz_name: str = DEFAULT_TZ,
    week_start: int = WEEK_START_SUNDAY,
    dream_default_hours: float = DEFAULT_DREAM_TARGET_HOURS,
) -> CompletionOutcome:
    outcome = process_completed_entry(db, entry, now, tz_name, week_start, dream_default_hours)
    await publish(sink, outcome.events)
    return outcome


def add_manual_entry(
    db: Database,
    user_id: int,
    category_id: str,
    started_at: datetime,
    ended_at: datetime,
    notes: str | None = None,
) -> TimeEntry:
    if ended_at <= started_at:
        raise ValueError("Entry must end after it starts")
    if (ended_at - started_at).total_seconds() > TIMER_MAX_DURATION_SECONDS:
        raise ValueError("A single entry cannot exceed 24 hours")
    category = category_id.strip().lower()
    if not category:
        raise ValueError("Category is required")
    return db.add_manual_entry(user_id, category, started_at, ended_at, notes)


def sync_dream_goal_with_history(
    db: Database,
    user_id: int,
    now: datetime,
    dream_default_hours: float = DEFAULT_DREAM_TARGET_HOURS,
) -> tuple[DreamGoal, MilestoneCrossed | None]:
    """Count processed entries whose hours never reached the dream goal.

    Each entry is applied under its own id, so an entry that processing counts
    at the same time is added once. Unprocessed entries are left to
    ``process_completed_entry``. Only the last milestone crossed is returned.
    """
    goal = db.get_or_create_dream_goal(user_id, now, dream_default_hours)
    milestone: MilestoneCrossed | None = None
    for entry in db.list_uncounted_dream_entries(user_id, goal.id):
        if goal.is_completed:
            break
        _, crossed = _apply_dream_hours(db, goal, entry.id, (entry.duration_seconds or 0) / 3600, now)
        if crossed is not None:
            milestone = crossed
        goal = db.get_dream_goal(user_id) or goal
    return goal, milestone


def compute_status(
    db: Database,
    user_id: int,
    now: datetime,
    tz_name: str = DEFAULT_TZ,
    week_start: int = WEEK_START_SUNDAY,
) -> StatusView:
    local_now = to_local(now, tz_name)
    week = week_range_for(local_now, week_start=week_start)
    month_start = period_start("monthly", local_now, week_start)
    entries = db.list_entries(user_id, since=min(week.start, month_start))

    stats = db.get_user_stats(user_id)
    streak = db.get_streak(user_id)
    current_streak = effective_streak(streak, local_now.date())

    goals = [(goal, goal_progress(goal, entries, local_now, week_start)) for goal in db.list_goals(user_id)]
    challenges = [
        (challenge, challenge_progress(challenge, entries, local_now, week_start)) for challenge in ALL_CHALLENGES
    ]

    dream_goal = db.get_dream_goal(user_id)
    dream = dream_progress(dream_goal.current_hours, dream_goal.target_hours) if dream_goal else None

    session = recover_stale(db.load_session_state(user_id), now).state

    return StatusView(
        level=level_info(stats.total_xp),
        streak_current=current_streak,
        streak_longest=streak.longest_streak,
        streak_multiplier=streak_multiplier(current_streak),
        today_minutes=sum_entry_seconds(entries, since=start_of_day(local_now)) // 60,
        week_minutes=sum_entry_seconds(entries, since=week.start) // 60,
        total_focus_minutes=stats.total_focus_minutes,
        goals=goals,
        challenges=challenges,
        dream_goal=dream_goal,
        dream=dream,
        badge_count=len(db.list_badges(user_id)),
        session=session,
        session_elapsed_ms=elapsed_ms(session, now),
        session_pomodoro=pomodoro_phase(session, now),
    )
