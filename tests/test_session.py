import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from clockin.db import Database
from clockin.db_models import IDLE_SESSION, SessionState, TimeEntry
from clockin.errors import EntryAlreadyClosed, EntryNotFound, InvalidTransition, PersistenceFailure
from clockin.notifications import CollectingSink
from clockin.session import SessionMachine
from clockin.stores import SqliteEntryStore, SqliteSessionSlot

T0 = datetime(2026, 2, 4, 9, 0, tzinfo=ZoneInfo("Europe/Oslo"))


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class MemoryEntryStore:
    def __init__(self) -> None:
        self.entries: dict[int, TimeEntry] = {}
        self.fail_close = False
        self.fail_delete = False

    async def open_entry(self, user_id: int, category_id: str, started_at: datetime, entry_type: str) -> int:
        entry_id = len(self.entries) + 1
        self.entries[entry_id] = TimeEntry(
            id=entry_id,
            user_id=user_id,
            category_id=category_id,
            started_at=started_at,
            ended_at=None,
            duration_seconds=None,
            entry_type=entry_type,
            notes=None,
        )
        return entry_id

    async def close_entry(self, entry_id: int, ended_at: datetime, duration_seconds: int) -> TimeEntry:
        if self.fail_close:
            raise PersistenceFailure("disk full")
        entry = self.entries.get(entry_id)
        if entry is None:
            raise EntryNotFound(entry_id)
        if entry.duration_seconds is not None:
            raise EntryAlreadyClosed(entry_id)
        closed = replace(entry, ended_at=ended_at, duration_seconds=duration_seconds)
        self.entries[entry_id] = closed
        return closed

    async def get_entry(self, entry_id: int) -> TimeEntry | None:
        return self.entries.get(entry_id)

    async def delete_open_entry(self, entry_id: int) -> None:
        if self.fail_delete:
            raise PersistenceFailure("delete failed")
        entry = self.entries.get(entry_id)
        if entry is not None and entry.is_open:
            del self.entries[entry_id]


class MemorySlot:
    def __init__(self, state: SessionState | None = None) -> None:
        self.state = state
        self.fail = False

    async def load(self) -> SessionState | None:
        return self.state

    async def save(self, state: SessionState) -> None:
        if self.fail:
            raise PersistenceFailure("slot unavailable")
        self.state = state


def _machine(clock: FakeClock, sink: CollectingSink | None = None) -> tuple[SessionMachine, MemoryEntryStore, MemorySlot]:
    store = MemoryEntryStore()
    slot = MemorySlot()
    return SessionMachine(1, store, slot, clock, sink), store, slot


def test_elapsed_sums_running_intervals_across_pauses() -> None:
    clock = FakeClock(T0)
    machine, store, _ = _machine(clock)

    async def scenario() -> int:
        await machine.start("study")
        clock.advance(minutes=10)
        await machine.pause()
        clock.advance(minutes=30)
        assert machine.elapsed_ms() == 10 * 60_000
        await machine.resume()
        clock.advance(minutes=5)
        await machine.pause()
        clock.advance(minutes=1)
        await machine.resume()
        clock.advance(minutes=5)
        result = await machine.stop()
        return result.duration_seconds

    assert asyncio.run(scenario()) == 20 * 60
    assert store.entries[1].duration_seconds == 20 * 60
    assert machine.state == IDLE_SESSION


def test_stop_while_paused_excludes_open_pause() -> None:
    clock = FakeClock(T0)
    machine, _, _ = _machine(clock)

    async def scenario() -> int:
        await machine.start("build", entry_type="pomodoro")
        clock.advance(minutes=25)
        await machine.pause()
        clock.advance(hours=2)
        return (await machine.stop()).duration_seconds

    assert asyncio.run(scenario()) == 25 * 60


@pytest.mark.parametrize(
    "operation",
    ["pause", "resume", "stop"],
)
def test_guards_reject_transitions_from_idle(operation: str) -> None:
    machine, _, slot = _machine(FakeClock(T0))

    async def scenario() -> None:
        await getattr(machine, operation)()

    with pytest.raises(InvalidTransition) as exc:
        asyncio.run(scenario())
    assert exc.value.operation == operation
    assert exc.value.status == "idle"
    assert machine.state == IDLE_SESSION
    assert slot.state is None


def test_guards_reject_start_and_resume_while_running() -> None:
    machine, store, _ = _machine(FakeClock(T0))

    async def scenario() -> None:
        await machine.start("study")
        with pytest.raises(InvalidTransition):
            await machine.start("build")
        with pytest.raises(InvalidTransition):
            await machine.resume()

    asyncio.run(scenario())
    assert machine.status == "running"
    assert machine.state.category_id == "study"
    assert len(store.entries) == 1


def test_failed_save_rolls_back_pause() -> None:
    clock = FakeClock(T0)
    machine, _, slot = _machine(clock)

    async def scenario() -> None:
        await machine.start("study")
        clock.advance(minutes=3)
        slot.fail = True
        with pytest.raises(PersistenceFailure):
            await machine.pause()

    asyncio.run(scenario())
    assert machine.status == "running"
    assert machine.state.paused_at is None


def test_failed_close_keeps_session_active() -> None:
    clock = FakeClock(T0)
    machine, store, _ = _machine(clock)

    async def scenario() -> None:
        await machine.start("study")
        clock.advance(minutes=3)
        store.fail_close = True
        with pytest.raises(PersistenceFailure):
            await machine.stop()

    asyncio.run(scenario())
    assert machine.status == "running"
    assert store.entries[1].is_open


def test_failed_start_removes_opened_entry() -> None:
    machine, store, slot = _machine(FakeClock(T0))
    slot.fail = True

    with pytest.raises(PersistenceFailure):
        asyncio.run(machine.start("study"))
    assert machine.status == "idle"
    assert store.entries == {}


def test_reset_reports_discarded_time() -> None:
    clock = FakeClock(T0)
    sink = CollectingSink()
    machine, store, slot = _machine(clock, sink)

    async def scenario():
        await machine.start("study")
        clock.advance(minutes=7)
        return await machine.reset()

    discarded = asyncio.run(scenario())
    assert discarded is not None
    assert discarded.reason == "explicit"
    assert discarded.discarded_ms == 7 * 60_000
    assert sink.of_kind("session_discarded") == [discarded]
    assert slot.state == IDLE_SESSION
    assert store.entries == {}


def test_reset_when_idle_is_silent() -> None:
    sink = CollectingSink()
    machine, _, _ = _machine(FakeClock(T0), sink)
    assert asyncio.run(machine.reset()) is None
    assert sink.events == []


def test_start_rejects_manual_entry_type() -> None:
    machine, _, _ = _machine(FakeClock(T0))
    with pytest.raises(ValueError):
        asyncio.run(machine.start("study", entry_type="manual"))


def test_sqlite_backed_session_survives_restart(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    clock = FakeClock(T0)

    async def first_run() -> None:
        machine = await SessionMachine.restore(1, SqliteEntryStore(db), SqliteSessionSlot(db, 1), clock)
        await machine.start("study")
        clock.advance(minutes=20)
        await machine.pause()

    async def second_run() -> int:
        machine = await SessionMachine.restore(1, SqliteEntryStore(db), SqliteSessionSlot(db, 1), clock)
        assert machine.status == "paused"
        assert machine.elapsed_ms() == 20 * 60_000
        await machine.resume()
        clock.advance(minutes=10)
        return (await machine.stop()).duration_seconds

    asyncio.run(first_run())
    clock.advance(hours=1)
    assert asyncio.run(second_run()) == 30 * 60

    entries = db.list_entries(1)
    assert [e.duration_seconds for e in entries] == [30 * 60]
    assert db.load_session_state(1) == IDLE_SESSION


def test_sqlite_store_rejects_double_close(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    entry = db.open_entry(1, "study", T0)
    db.close_entry(entry.id, T0 + timedelta(minutes=5), 300)
    with pytest.raises(EntryAlreadyClosed):
        db.close_entry(entry.id, T0 + timedelta(minutes=9), 540)
    assert db.get_entry(entry.id).duration_seconds == 300


def test_stop_retries_after_idle_save_fails() -> None:
    clock = FakeClock(T0)
    machine, store, slot = _machine(clock)

    async def scenario():
        await machine.start("study")
        clock.advance(minutes=30)
        slot.fail = True
        with pytest.raises(PersistenceFailure):
            await machine.stop()
        assert machine.status == "running"
        assert slot.state.status == "running"
        assert store.entries[1].duration_seconds == 30 * 60

        slot.fail = False
        clock.advance(minutes=5)
        return await machine.stop()

    result = asyncio.run(scenario())
    assert result.entry.id == 1
    assert result.duration_seconds == 30 * 60
    assert store.entries[1].duration_seconds == 30 * 60
    assert machine.state == IDLE_SESSION
    assert slot.state == IDLE_SESSION


def test_restore_clears_slot_pointing_at_closed_entry() -> None:
    clock = FakeClock(T0)
    sink = CollectingSink()
    machine, store, slot = _machine(clock)

    async def first_run() -> None:
        await machine.start("study")
        clock.advance(minutes=30)
        slot.fail = True
        with pytest.raises(PersistenceFailure):
            await machine.stop()
        slot.fail = False

    async def second_run() -> SessionMachine:
        restored = await SessionMachine.restore(1, store, slot, clock, sink)
        assert await restored.reset() is None
        return restored

    asyncio.run(first_run())
    clock.advance(hours=30)
    restored = asyncio.run(second_run())

    assert restored.state == IDLE_SESSION
    assert slot.state == IDLE_SESSION
    assert store.entries[1].duration_seconds == 30 * 60
    assert sink.events == []


def test_stop_discards_session_whose_entry_vanished() -> None:
    clock = FakeClock(T0)
    sink = CollectingSink()
    machine, store, slot = _machine(clock, sink)

    async def scenario() -> None:
        await machine.start("study")
        clock.advance(minutes=12)
        del store.entries[1]
        with pytest.raises(EntryNotFound):
            await machine.stop()
        await machine.start("build")

    asyncio.run(scenario())
    discarded = sink.of_kind("session_discarded")
    assert [(d.reason, d.entry_id, d.discarded_ms) for d in discarded] == [("stale", 1, 12 * 60_000)]
    assert machine.status == "running"
    assert machine.state.category_id == "build"


def test_reset_reports_discard_even_when_delete_fails() -> None:
    clock = FakeClock(T0)
    sink = CollectingSink()
    machine, store, slot = _machine(clock, sink)

    async def scenario() -> None:
        await machine.start("study")
        clock.advance(minutes=4)
        store.fail_delete = True
        with pytest.raises(PersistenceFailure):
            await machine.reset()

    asyncio.run(scenario())
    assert machine.state == IDLE_SESSION
    assert slot.state == IDLE_SESSION
    assert [d.discarded_ms for d in sink.of_kind("session_discarded")] == [4 * 60_000]


def test_restore_discards_stale_session_and_keeps_closed_entries(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    clock = FakeClock(T0)
    sink = CollectingSink()
    done = db.open_entry(1, "study", T0 - timedelta(hours=2))
    db.close_entry(done.id, T0 - timedelta(hours=1), 3600)
    stale = db.open_entry(1, "study", T0 - timedelta(hours=25))
    db.save_session_state(1, SessionState(status="running", category_id="study", entry_id=stale.id, started_at=stale.started_at))

    machine = asyncio.run(SessionMachine.restore(1, SqliteEntryStore(db), SqliteSessionSlot(db, 1), clock, sink))

    assert machine.state == IDLE_SESSION
    assert db.get_entry(stale.id) is None
    assert db.get_entry(done.id).duration_seconds == 3600
    assert [d.reason for d in sink.of_kind("session_discarded")] == ["stale"]
