from __future__ import annotations

from clockin.db_models import SessionState
from clockin.dream_goal import MILESTONE_NAMES
from clockin.duration import format_duration
from clockin.gamification import format_minutes_hm
from clockin.goals import GoalProgress
from clockin.notifications import (
    BadgeEarned,
    ChallengeCompleted,
    Event,
    LevelUp,
    MilestoneCrossed,
    SessionDiscarded,
)
from clockin.pomodoro import PomodoroPhase
from clockin.service import CompletionOutcome, StatusView

THEME_ICONS = {"mountain": "🏔", "castle": "🏰", "tree": "🌳", "space": "🚀"}


def _bar(ratio: float, width: int = 20) -> str:
    filled = max(0, min(width, int(round(ratio * width))))
    return "█" * filled + "░" * (width - filled)


def _progress_line(label: str, progress: GoalProgress) -> str:
    mark = "✅" if progress.complete else "▫️"
    return (
        f"{mark} {label}: {format_minutes_hm(progress.current)} / "
        f"{format_minutes_hm(progress.target)} ({progress.percentage}%)"
    )


def _pomodoro_line(pomodoro: PomodoroPhase) -> str:
    if pomodoro.phase == "done":
        return f"🎉 All {pomodoro.total_cycles} cycles done. /stop to log them."
    if pomodoro.phase == "break":
        if pomodoro.is_expired:
            return "☕ Break is over, /resume to keep going."
        return f"☕ Break: {format_duration(pomodoro.remaining_ms)} left"
    return f"🍅 Cycle {pomodoro.cycle}/{pomodoro.total_cycles}: {format_duration(pomodoro.remaining_ms)} of work left"


def session_message(state: SessionState, elapsed_ms: int, pomodoro: PomodoroPhase | None = None) -> str:
    if state.status == "idle":
        return "⏹ No active session. Start one with /focus <category>."
    icon = "⏸" if state.status == "paused" else "⏱"
    kind = "Pomodoro" if state.entry_type == "pomodoro" else "Focus"
    text = f"{icon} {kind} on {state.category_id}: {format_duration(elapsed_ms)} ({state.status})"
    if pomodoro is not None:
        text += "\n" + _pomodoro_line(pomodoro)
    return text


def stop_message(outcome: CompletionOutcome) -> str:
    seconds = outcome.entry.duration_seconds or 0
    lines = [f"✅ Logged {format_duration(seconds * 1000)} of {outcome.entry.category_id}."]
    if outcome.processed:
        lines.append(f"⚡ +{outcome.xp_earned} XP")
        if outcome.streak is not None:
            lines.append(f"🔥 Streak: {outcome.streak.current_streak} days")
    return "\n".join(lines)


def event_message(event: Event) -> str:
    if isinstance(event, SessionDiscarded):
        if event.reason == "stale":
            return (
                f"🗑 Your session was left running for over 24 hours and was discarded "
                f"({format_duration(event.discarded_ms)} not logged). Use /log to add the time manually."
            )
        return f"🗑 Session discarded ({format_duration(event.discarded_ms)} not logged)."
    if isinstance(event, LevelUp):
        return f"🎉 Level up! You reached Level {event.new_level}."
    if isinstance(event, MilestoneCrossed):
        name = MILESTONE_NAMES[event.milestone_index]
        return f"🏁 Dream goal milestone: {name} ({event.percentage}%)!"
    if isinstance(event, ChallengeCompleted):
        return f"🏆 Challenge completed: {event.name}"
    if isinstance(event, BadgeEarned):
        return f"🎖 Badge earned: {event.name}"
    return str(event)


def status_message(view: StatusView, username: str | None = None) -> str:
    header = f"📊 Status — @{username}" if username else "📊 Status"
    level = view.level
    lines = [
        header,
        "",
        f"⚡ Level {level.current_level}",
        f"📊 XP: {level.xp_progress:,} / 1,000 (total {level.current_xp:,})",
        f"{_bar(level.progress_percentage / 100)} {level.progress_percentage:.1f}%",
        f"🔥 Streak: {view.streak_current} days ({view.streak_multiplier:.2f}x XP) | Best: {view.streak_longest}",
        "",
        f"📅 Today: {format_minutes_hm(view.today_minutes)}",
        f"📅 This week: {format_minutes_hm(view.week_minutes)}",
        f"⏳ All time: {format_minutes_hm(view.total_focus_minutes)}",
        f"🎖 Badges: {view.badge_count}",
    ]
    if view.session.is_active:
        lines.extend(["", session_message(view.session, view.session_elapsed_ms, view.session_pomodoro)])
    if view.dream_goal is not None and view.dream is not None:
        icon = THEME_ICONS.get(view.dream_goal.theme, "🎯")
        lines.extend(
            [
                "",
                f"{icon} {view.dream_goal.title}: {view.dream_goal.current_hours:.1f}h / "
                f"{view.dream_goal.target_hours:.0f}h",
                f"{_bar(view.dream.percentage / 100)} {view.dream.percentage:.1f}%",
            ]
        )
    return "\n".join(lines)


def goals_message(view: StatusView) -> str:
    lines = ["🎯 Goals"]
    if not view.goals:
        lines.append("No goals yet. Add one with /goal <daily|weekly|monthly> <duration> [category]")
    for goal, progress in view.goals:
        scope = goal.category_id or "all categories"
        lines.append(_progress_line(f"#{goal.id} {goal.period} ({scope})", progress))
    lines.extend(["", "🏆 Challenges"])
    for challenge, progress in view.challenges:
        lines.append(_progress_line(challenge.name, progress))
    return "\n".join(lines)


def dream_message(view: StatusView) -> str:
    goal = view.dream_goal
    progress = view.dream
    if goal is None or progress is None:
        return "No dream goal yet. Set one with /dream <hours> [theme]"
    icon = THEME_ICONS.get(goal.theme, "🎯")
    lines = [
        f"{icon} {goal.title}",
        f"{goal.current_hours:.1f}h / {goal.target_hours:.0f}h",
        f"{_bar(progress.percentage / 100)} {progress.percentage:.1f}%",
        f"Milestone: {MILESTONE_NAMES[progress.current_milestone]}",
    ]
    if goal.is_completed or progress.current_milestone >= len(MILESTONE_NAMES) - 1:
        lines.append("🎉 Completed!")
    else:
        lines.append(
            f"Next: {MILESTONE_NAMES[progress.current_milestone + 1]} at {progress.next_milestone_percentage}% "
            f"({progress.hours_to_next_milestone:.1f}h to go)"
        )
    return "\n".join(lines)
