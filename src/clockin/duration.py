from __future__ import annotations

import re
from datetime import datetime

from clockin.db_constants import TIMER_MAX_DURATION_SECONDS
from clockin.db_models import SessionState

DURATION_PATTERN = re.compile(r"^(?:(?P<hours>\d+(?:\.\d+)?)h)?(?:(?P<minutes>\d+)m)?$")


class DurationParseError(ValueError):
    pass


def _delta_ms(later: datetime, earlier: datetime) -> int:
    return int((later - earlier).total_seconds() * 1000)


def elapsed_ms(session: SessionState, now: datetime) -> int:
    """Worked time of a session at ``now``.

    ``accumulated_ms`` holds the paused time folded in by ``resume``. While
    paused the clock is frozen at ``paused_at``, so the open pause never
    counts.
    """
    if session.status == "idle" or session.started_at is None:
        return 0
    if session.status == "paused" and session.paused_at is not None:
        end = session.paused_at
    else:
        end = now
    return max(0, _delta_ms(end, session.started_at) - session.accumulated_ms)


def elapsed_seconds(session: SessionState, now: datetime) -> int:
    return elapsed_ms(session, now) // 1000


def clamp_entry_seconds(seconds: int) -> int:
    return max(0, min(int(seconds), TIMER_MAX_DURATION_SECONDS))


def format_duration(ms: int) -> str:
    total = max(0, ms) // 1000
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def parse_duration_to_minutes(raw: str) -> int:
    value = raw.strip().lower()
    if not value:
        raise DurationParseError("Duration is required")

    if value.isdigit():
        minutes = int(value)
        if minutes <= 0:
            raise DurationParseError("Duration must be positive")
        return minutes

    if " " in value:
        raise DurationParseError("Use compact duration format like 1h20m")

    if value.endswith("m") and value[:-1].isdigit():
        minutes = int(value[:-1])
        if minutes <= 0:
            raise DurationParseError("Duration must be positive")
        return minutes

    match = DURATION_PATTERN.fullmatch(value)
    if not match:
        raise DurationParseError("Invalid duration format. Examples: 90m, 1.5h, 1h20m, 45")

    hours = float(match.group("hours")) if match.group("hours") else 0.0
    minutes = int(match.group("minutes")) if match.group("minutes") else 0
    total = int(round(hours * 60)) + minutes

    if total <= 0:
        raise DurationParseError("Duration must be positive")
    return total
