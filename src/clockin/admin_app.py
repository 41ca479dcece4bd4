from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Callable

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from clockin.config import load_settings
from clockin.db import Database
from clockin.logging_setup import setup_logging
from clockin.service import compute_status
from clockin.time_utils import DEFAULT_TZ, WEEK_START_SUNDAY, now_local


def _require_auth(request: Request, token: str | None) -> None:
    if not token:
        return
    header = request.headers.get("x-admin-token")
    query = request.query_params.get("token")
    if header == token or query == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


class LevelOut(BaseModel):
    current_level: int
    current_xp: int
    xp_for_next_level: int
    xp_progress: int
    progress_percentage: float


class SessionOut(BaseModel):
    status: str
    category_id: str | None = None
    entry_type: str
    started_at: datetime | None = None
    elapsed_ms: int


class DreamOut(BaseModel):
    title: str
    theme: str
    current_hours: float
    target_hours: float
    percentage: float
    milestone_reached: int
    is_completed: bool


class StatusOut(BaseModel):
    user_id: int
    level: LevelOut
    streak_current: int
    streak_longest: int
    streak_multiplier: float
    today_minutes: int
    week_minutes: int
    total_focus_minutes: int
    badge_count: int
    session: SessionOut
    dream: DreamOut | None = None


class ProgressOut(BaseModel):
    key: str
    name: str
    period: str
    current: int
    target: int
    percentage: int
    complete: bool


class GoalsOut(BaseModel):
    user_id: int
    goals: list[ProgressOut]
    challenges: list[ProgressOut]


class EntryOut(BaseModel):
    id: int
    category_id: str
    entry_type: str
    started_at: datetime
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    notes: str | None = None


def build_admin_app(
    db: Database,
    admin_token: str | None,
    tz_name: str = DEFAULT_TZ,
    week_start: int = WEEK_START_SUNDAY,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    app = FastAPI(title="Clockin Admin", version="1.0.0")
    now_fn = clock or (lambda: now_local(tz_name))

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/users/{user_id}/status", response_model=StatusOut)
    async def user_status(user_id: int, request: Request) -> StatusOut:
        _require_auth(request, admin_token)
        view = compute_status(db, user_id, now_fn(), tz_name, week_start)
        dream = None
        if view.dream_goal is not None and view.dream is not None:
            dream = DreamOut(
                title=view.dream_goal.title,
                theme=view.dream_goal.theme,
                current_hours=view.dream_goal.current_hours,
                target_hours=view.dream_goal.target_hours,
                percentage=view.dream.percentage,
                milestone_reached=view.dream_goal.milestone_reached,
                is_completed=view.dream_goal.is_completed,
            )
        return StatusOut(
            user_id=user_id,
            level=LevelOut(**asdict(view.level)),
            streak_current=view.streak_current,
            streak_longest=view.streak_longest,
            streak_multiplier=view.streak_multiplier,
            today_minutes=view.today_minutes,
            week_minutes=view.week_minutes,
            total_focus_minutes=view.total_focus_minutes,
            badge_count=view.badge_count,
            session=SessionOut(
                status=view.session.status,
                category_id=view.session.category_id,
                entry_type=view.session.entry_type,
                started_at=view.session.started_at,
                elapsed_ms=view.session_elapsed_ms,
            ),
            dream=dream,
        )

    @app.get("/api/users/{user_id}/goals", response_model=GoalsOut)
    async def user_goals(user_id: int, request: Request) -> GoalsOut:
        _require_auth(request, admin_token)
        view = compute_status(db, user_id, now_fn(), tz_name, week_start)
        goals = [
            ProgressOut(
                key=f"goal:{goal.id}",
                name=goal.category_id or "all",
                period=goal.period,
                current=progress.current,
                target=progress.target,
                percentage=progress.percentage,
                complete=progress.complete,
            )
            for goal, progress in view.goals
        ]
        challenges = [
            ProgressOut(
                key=challenge.key,
                name=challenge.name,
                period=challenge.period,
                current=progress.current,
                target=progress.target,
                percentage=progress.percentage,
                complete=progress.complete,
            )
            for challenge, progress in view.challenges
        ]
        return GoalsOut(user_id=user_id, goals=goals, challenges=challenges)

    @app.get("/api/users/{user_id}/entries", response_model=list[EntryOut])
    async def user_entries(user_id: int, request: Request, limit: int = 20) -> list[EntryOut]:
        _require_auth(request, admin_token)
        return [
            EntryOut(
                id=e.id,
                category_id=e.category_id,
                entry_type=e.entry_type,
                started_at=e.started_at,
                ended_at=e.ended_at,
                duration_seconds=e.duration_seconds,
                notes=e.notes,
            )
            for e in db.list_recent_entries(user_id, limit)
        ]

    return app


def run_admin() -> None:
    settings = load_settings(require_token=False)
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    app = build_admin_app(db, settings.admin_panel_token, settings.tz, settings.week_start)
    uvicorn.run(app, host=settings.admin_host, port=settings.admin_port)
