from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from clockin.db_constants import STALE_THRESHOLD
from clockin.db_models import IDLE_SESSION, SessionState
from clockin.duration import elapsed_ms


@dataclass(frozen=True)
class RecoveryResult:
    state: SessionState
    discarded: bool
    discarded_ms: int = 0
    entry_id: int | None = None


def is_stale(state: SessionState, now: datetime, threshold: timedelta = STALE_THRESHOLD) -> bool:
    if state.started_at is None:
        return False
    return now - state.started_at > threshold


def recover_stale(state: SessionState | None, now: datetime) -> RecoveryResult:
    """Validate a session loaded from durable storage before anyone reads it."""
    if state is None or not state.is_active:
        return RecoveryResult(state=IDLE_SESSION, discarded=False)
    if not is_stale(state, now):
        return RecoveryResult(state=state, discarded=False)
    return RecoveryResult(
        state=IDLE_SESSION,
        discarded=True,
        discarded_ms=elapsed_ms(state, now),
        entry_id=state.entry_id,
    )
