from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from clockin.db_constants import POMODORO_BREAK_MINUTES, POMODORO_CYCLES, POMODORO_WORK_MINUTES
from clockin.db_models import SessionState
from clockin.duration import elapsed_ms


@dataclass(frozen=True)
class PomodoroPlan:
    work_minutes: int = POMODORO_WORK_MINUTES
    break_minutes: int = POMODORO_BREAK_MINUTES
    total_cycles: int = POMODORO_CYCLES

    def __post_init__(self) -> None:
        if self.work_minutes <= 0 or self.break_minutes <= 0 or self.total_cycles <= 0:
            raise ValueError("pomodoro plan values must be positive")


DEFAULT_PLAN = PomodoroPlan()


@dataclass(frozen=True)
class PomodoroPhase:
    phase: str  # work | break | done
    cycle: int
    total_cycles: int
    remaining_ms: int

    @property
    def is_expired(self) -> bool:
        return self.remaining_ms <= 0


def pomodoro_phase(state: SessionState, now: datetime, plan: PomodoroPlan = DEFAULT_PLAN) -> PomodoroPhase | None:
    """Place an active pomodoro session in its work/break cycle.

    Running time is work and a pause is the break. A work block ends after
    every ``work_minutes`` of focus, and the plan is done once
    ``total_cycles`` blocks are complete.
    """
    if state.entry_type != "pomodoro" or not state.is_active:
        return None
    work_ms = plan.work_minutes * 60_000
    focus_ms = elapsed_ms(state, now)
    finished = focus_ms // work_ms
    if finished >= plan.total_cycles:
        return PomodoroPhase(phase="done", cycle=plan.total_cycles, total_cycles=plan.total_cycles, remaining_ms=0)

    if state.status == "paused" and state.paused_at is not None:
        taken_ms = max(0, int((now - state.paused_at).total_seconds() * 1000))
        return PomodoroPhase(
            phase="break",
            cycle=max(1, -(-focus_ms // work_ms)),
            total_cycles=plan.total_cycles,
            remaining_ms=max(0, plan.break_minutes * 60_000 - taken_ms),
        )

    return PomodoroPhase(
        phase="work",
        cycle=finished + 1,
        total_cycles=plan.total_cycles,
        remaining_ms=work_ms - focus_ms % work_ms,
    )
