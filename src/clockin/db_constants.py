from __future__ import annotations

from datetime import timedelta

ENTRY_TYPES = ("timer", "manual", "pomodoro")
GOAL_PERIODS = ("daily", "weekly", "monthly")
DREAM_THEMES = ("mountain", "castle", "tree", "space")

TIMER_MAX_DURATION_SECONDS = 86400
STALE_THRESHOLD = timedelta(hours=24)

XP_PER_LEVEL = 1000
MILESTONE_THRESHOLDS = (0, 10, 25, 50, 75, 100)

POMODORO_WORK_MINUTES = 25
POMODORO_BREAK_MINUTES = 5
POMODORO_CYCLES = 4

DEFAULT_DREAM_TITLE = "My Dream Goal"
DEFAULT_DREAM_TARGET_HOURS = 100.0

# (key, name, description, condition type, threshold)
BADGE_DEFINITIONS: list[tuple[str, str, str, str, int]] = [
    ("first_entry", "First Step", "Log your first time entry", "total_entries", 1),
    ("streak_3", "On a Roll", "3-day streak", "current_streak", 3),
    ("streak_7", "Week Warrior", "7-day streak", "current_streak", 7),
    ("streak_30", "Monthly Master", "30-day streak", "current_streak", 30),
    ("hours_10", "Getting Started", "10 total hours logged", "total_hours", 10),
    ("hours_100", "Centurion", "100 total hours logged", "total_hours", 100),
    ("hours_500", "Dedication", "500 total hours logged", "total_hours", 500),
    ("pomodoro_10", "Focus Finder", "Complete 10 Pomodoro sessions", "pomodoro_count", 10),
    ("pomodoro_50", "Deep Worker", "Complete 50 Pomodoro sessions", "pomodoro_count", 50),
    ("categories_3", "Diversified", "Log time in 3 different categories", "unique_categories", 3),
    ("early_bird", "Early Bird", "Start a session before 7 AM", "started_before_hour", 7),
    ("night_owl", "Night Owl", "Log time after 11 PM", "ended_after_hour", 23),
]
