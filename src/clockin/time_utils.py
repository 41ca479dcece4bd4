from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo


DEFAULT_TZ = "Europe/Oslo"

WEEK_START_MONDAY = 0
WEEK_START_SUNDAY = 6
WEEK_START_NAMES = {"monday": WEEK_START_MONDAY, "sunday": WEEK_START_SUNDAY}


def now_local(tz_name: str = DEFAULT_TZ) -> datetime:
    return datetime.now(tz=ZoneInfo(tz_name))


def to_local(dt: datetime, tz_name: str = DEFAULT_TZ) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(tz_name))
    return dt.astimezone(ZoneInfo(tz_name))


def local_date(dt: datetime, tz_name: str | None = None) -> date:
    if tz_name is not None:
        return to_local(dt, tz_name).date()
    return dt.date()


@dataclass(frozen=True)
class WeekRange:
    start: datetime
    end: datetime


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def week_range_for(dt: datetime, week_start: int = WEEK_START_MONDAY) -> WeekRange:
    local_midnight = start_of_day(dt)
    offset = (local_midnight.weekday() - week_start) % 7
    start = local_midnight - timedelta(days=offset)
    end = start + timedelta(days=7)
    return WeekRange(start=start, end=end)


def start_of_month(dt: datetime) -> datetime:
    return start_of_day(dt).replace(day=1)


def parse_week_start(value: str | None) -> int:
    if not value:
        return WEEK_START_SUNDAY
    return WEEK_START_NAMES.get(value.strip().lower(), WEEK_START_SUNDAY)


def parse_hhmm(value: str) -> time:
    hour_str, minute_str = value.split(":", maxsplit=1)
    hour = int(hour_str)
    minute = int(minute_str)
    return time(hour=hour, minute=minute)


def in_quiet_hours(now: datetime, quiet_range: str | None) -> bool:
    if not quiet_range:
        return False
    try:
        start_raw, end_raw = quiet_range.split("-", maxsplit=1)
        start = parse_hhmm(start_raw)
        end = parse_hhmm(end_raw)
    except ValueError:
        return False

    current = now.time()
    if start <= end:
        return start <= current < end
    return current >= start or current < end
