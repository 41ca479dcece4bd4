from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from clockin.db_constants import DEFAULT_DREAM_TARGET_HOURS
from clockin.time_utils import DEFAULT_TZ, parse_week_start


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    database_path: Path
    tz: str
    week_start: int
    dream_goal_default_hours: float
    admin_panel_token: str | None
    admin_host: str
    admin_port: int
    log_level: str


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_positive_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_settings(require_token: bool = True) -> Settings:
    _load_env_file(Path(".env"))

    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    if require_token and not token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is required")

    return Settings(
        telegram_bot_token=token,
        database_path=Path(os.getenv("DATABASE_PATH", "./data/app.db")),
        tz=os.getenv("TZ", DEFAULT_TZ),
        week_start=parse_week_start(os.getenv("WEEK_START")),
        dream_goal_default_hours=_parse_positive_float(
            os.getenv("DREAM_GOAL_DEFAULT_HOURS"), DEFAULT_DREAM_TARGET_HOURS
        ),
        admin_panel_token=os.getenv("ADMIN_PANEL_TOKEN"),
        admin_host=os.getenv("ADMIN_HOST", "127.0.0.1"),
        admin_port=_parse_int(os.getenv("ADMIN_PORT"), 8080),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
