from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from clockin.db_models import IDLE_SESSION, SessionState
from clockin.duration import (
    DurationParseError,
    clamp_entry_seconds,
    elapsed_ms,
    elapsed_seconds,
    format_duration,
    parse_duration_to_minutes,
)

T0 = datetime(2026, 2, 4, 9, 0, tzinfo=ZoneInfo("Europe/Oslo"))


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("90m", 90),
        ("1.5h", 90),
        ("1h20m", 80),
        ("45", 45),
        ("2h", 120),
    ],
)
def test_parse_duration_valid(raw: str, expected: int) -> None:
    assert parse_duration_to_minutes(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "0", "-10", "1 h", "1m20h"])
def test_parse_duration_invalid(raw: str) -> None:
    with pytest.raises(DurationParseError):
        parse_duration_to_minutes(raw)


def test_idle_session_has_no_elapsed_time() -> None:
    assert elapsed_ms(IDLE_SESSION, T0) == 0


def test_running_session_subtracts_banked_pause() -> None:
    state = SessionState(status="running", category_id="study", entry_id=1, started_at=T0, accumulated_ms=60_000)
    assert elapsed_ms(state, T0 + timedelta(minutes=10)) == 9 * 60_000


def test_paused_session_is_frozen_at_pause_time() -> None:
    state = SessionState(
        status="paused",
        category_id="study",
        entry_id=1,
        started_at=T0,
        paused_at=T0 + timedelta(minutes=5),
    )
    assert elapsed_ms(state, T0 + timedelta(minutes=5)) == 5 * 60_000
    assert elapsed_ms(state, T0 + timedelta(hours=3)) == 5 * 60_000
    assert elapsed_seconds(state, T0 + timedelta(hours=3)) == 300


def test_elapsed_is_never_negative() -> None:
    state = SessionState(status="running", category_id="study", entry_id=1, started_at=T0, accumulated_ms=10_000)
    assert elapsed_ms(state, T0) == 0


def test_clamp_entry_seconds() -> None:
    assert clamp_entry_seconds(-5) == 0
    assert clamp_entry_seconds(3600) == 3600
    assert clamp_entry_seconds(200_000) == 86_400


def test_format_duration() -> None:
    assert format_duration(0) == "00:00:00"
    assert format_duration(3_723_000) == "01:02:03"
    assert format_duration(-1) == "00:00:00"
