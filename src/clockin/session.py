from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Protocol

from clockin.db_constants import ENTRY_TYPES
from clockin.db_models import IDLE_SESSION, SessionState, TimeEntry
from clockin.duration import clamp_entry_seconds, elapsed_ms
from clockin.errors import EntryAlreadyClosed, EntryNotFound, InvalidTransition, PersistenceFailure
from clockin.notifications import NotificationSink, NullSink, SessionDiscarded
from clockin.pomodoro import PomodoroPhase, pomodoro_phase
from clockin.recovery import recover_stale

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class EntryStore(Protocol):
    async def open_entry(self, user_id: int, category_id: str, started_at: datetime, entry_type: str) -> int: ...
    async def close_entry(self, entry_id: int, ended_at: datetime, duration_seconds: int) -> TimeEntry: ...
    async def get_entry(self, entry_id: int) -> TimeEntry | None: ...
    async def delete_open_entry(self, entry_id: int) -> None: ...


class SessionSlot(Protocol):
    async def load(self) -> SessionState | None: ...
    async def save(self, state: SessionState) -> None: ...


@dataclass(frozen=True)
class StopResult:
    entry: TimeEntry
    duration_seconds: int


class SessionMachine:
    """Lifecycle of the single active session of one user: idle -> running <-> paused -> idle.

    Every transition is applied to a copy of the state, persisted, and only
    then made visible. Guards reject out-of-order calls with
    ``InvalidTransition`` so callers never need their own locking.
    """

    def __init__(
        self,
        user_id: int,
        entry_store: EntryStore,
        slot: SessionSlot,
        clock: Clock,
        sink: NotificationSink | None = None,
        state: SessionState = IDLE_SESSION,
    ) -> None:
        self.user_id = user_id
        self._entries = entry_store
        self._slot = slot
        self._clock = clock
        self._sink = sink or NullSink()
        self._state = state
        self._lock = asyncio.Lock()

    @classmethod
    async def restore(
        cls,
        user_id: int,
        entry_store: EntryStore,
        slot: SessionSlot,
        clock: Clock,
        sink: NotificationSink | None = None,
    ) -> SessionMachine:
        """Load the persisted session and repair it before it is exposed."""
        machine = cls(user_id, entry_store, slot, clock, sink)
        loaded = await slot.load()
        now = clock()
        if loaded is not None and loaded.is_active and loaded.entry_id is not None:
            entry = await entry_store.get_entry(loaded.entry_id)
            if entry is None or not entry.is_open:
                await machine._clear_detached(loaded, entry, now)
                return machine

        result = recover_stale(loaded, now)
        if not result.discarded:
            machine._state = result.state
            return machine

        await slot.save(result.state)
        try:
            if result.entry_id is not None:
                await entry_store.delete_open_entry(result.entry_id)
        finally:
            logger.info(
                "discarded stale session user=%s entry=%s elapsed_ms=%s",
                user_id,
                result.entry_id,
                result.discarded_ms,
            )
            await machine._sink.emit(
                SessionDiscarded(
                    user_id=user_id,
                    reason="stale",
                    discarded_ms=result.discarded_ms,
                    entry_id=result.entry_id,
                )
            )
        return machine

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> str:
        return self._state.status

    @property
    def sink(self) -> NotificationSink:
        return self._sink

    def elapsed_ms(self) -> int:
        return elapsed_ms(self._state, self._clock())

    def pomodoro(self) -> PomodoroPhase | None:
        return pomodoro_phase(self._state, self._clock())

    async def _clear_detached(self, state: SessionState, entry: TimeEntry | None, now: datetime) -> None:
        """Return to idle when the session's entry was closed or removed outside this machine.

        A closed entry keeps its recorded time and nothing is reported. A
        missing entry means the running time is gone, which is reported as a
        stale discard.
        """
        await self._commit(IDLE_SESSION)
        if entry is not None:
            logger.info("entry %s already closed, cleared session of user %s", entry.id, self.user_id)
            return
        logger.warning("entry %s of user %s no longer exists, session discarded", state.entry_id, self.user_id)
        await self._sink.emit(
            SessionDiscarded(
                user_id=self.user_id,
                reason="stale",
                discarded_ms=elapsed_ms(state, now),
                entry_id=state.entry_id,
            )
        )

    async def _commit(self, new_state: SessionState) -> None:
        previous = self._state
        self._state = new_state
        try:
            await self._slot.save(new_state)
        except PersistenceFailure:
            self._state = previous
            raise

    async def start(self, category_id: str, entry_type: str = "timer") -> SessionState:
        if entry_type not in ENTRY_TYPES or entry_type == "manual":
            raise ValueError("entry_type must be timer or pomodoro")
        async with self._lock:
            if self._state.status != "idle":
                raise InvalidTransition("start", self._state.status)
            now = self._clock()
            entry_id = await self._entries.open_entry(self.user_id, category_id, now, entry_type)
            new_state = SessionState(
                status="running",
                category_id=category_id,
                entry_id=entry_id,
                started_at=now,
                paused_at=None,
                accumulated_ms=0,
                entry_type=entry_type,
            )
            try:
                await self._commit(new_state)
            except PersistenceFailure:
                await self._entries.delete_open_entry(entry_id)
                raise
            logger.info("session started user=%s entry=%s category=%s", self.user_id, entry_id, category_id)
            return new_state

    async def pause(self) -> SessionState:
        async with self._lock:
            if self._state.status != "running":
                raise InvalidTransition("pause", self._state.status)
            new_state = replace(self._state, status="paused", paused_at=self._clock())
            await self._commit(new_state)
            return new_state

    async def resume(self) -> SessionState:
        async with self._lock:
            if self._state.status != "paused":
                raise InvalidTransition("resume", self._state.status)
            now = self._clock()
            paused_at = self._state.paused_at or now
            paused_ms = max(0, int((now - paused_at).total_seconds() * 1000))
            new_state = replace(
                self._state,
                status="running",
                paused_at=None,
                accumulated_ms=self._state.accumulated_ms + paused_ms,
            )
            await self._commit(new_state)
            return new_state

    async def stop(self) -> StopResult:
        """Close the open entry and return to idle.

        Closing the entry is the commit point. If the idle state cannot be
        saved afterwards the session stays active in memory, and calling
        ``stop`` again returns the already closed entry. When the entry has
        vanished the session is discarded and ``EntryNotFound`` is raised.
        """
        async with self._lock:
            current = self._state
            if not current.is_active or current.entry_id is None:
                raise InvalidTransition("stop", current.status)
            now = self._clock()
            duration = clamp_entry_seconds(elapsed_ms(current, now) // 1000)
            entry: TimeEntry | None
            try:
                entry = await self._entries.close_entry(current.entry_id, now, duration)
            except EntryAlreadyClosed:
                entry = await self._entries.get_entry(current.entry_id)
                if entry is not None:
                    duration = entry.duration_seconds or 0
            except EntryNotFound:
                entry = None
            if entry is None:
                await self._clear_detached(current, None, now)
                raise EntryNotFound(current.entry_id)
            try:
                await self._commit(IDLE_SESSION)
            except PersistenceFailure:
                logger.error("entry %s closed but idle session could not be saved", entry.id)
                raise
            logger.info("session stopped user=%s entry=%s seconds=%s", self.user_id, entry.id, duration)
            return StopResult(entry=entry, duration_seconds=duration)

    async def reset(self, reason: str = "explicit") -> SessionDiscarded | None:
        """Force the session back to idle, reporting any discarded time."""
        async with self._lock:
            current = self._state
            if not current.is_active:
                return None
            discarded = SessionDiscarded(
                user_id=self.user_id,
                reason=reason,
                discarded_ms=elapsed_ms(current, self._clock()),
                entry_id=current.entry_id,
            )
            await self._commit(IDLE_SESSION)
            try:
                if current.entry_id is not None:
                    await self._entries.delete_open_entry(current.entry_id)
            finally:
                logger.info("session discarded user=%s reason=%s", self.user_id, reason)
                await self._sink.emit(discarded)
        return discarded
