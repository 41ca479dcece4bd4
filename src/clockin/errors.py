from __future__ import annotations


class ClockinError(Exception):
    pass


class InvalidTransition(ClockinError):
    """A session operation was called from a state that does not allow it."""

    def __init__(self, operation: str, status: str) -> None:
        super().__init__(f"Cannot {operation} while session is {status}")
        self.operation = operation
        self.status = status


class PersistenceFailure(ClockinError):
    """A durable read/write failed; the transition that needed it was rolled back."""


class EntryAlreadyClosed(PersistenceFailure):
    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Entry {entry_id} is already closed")
        self.entry_id = entry_id


class AggregationInputInvalid(ClockinError):
    def __init__(self, entry_id: int, reason: str) -> None:
        super().__init__(f"Entry {entry_id} skipped: {reason}")
        self.entry_id = entry_id
        self.reason = reason


class EntryNotFound(PersistenceFailure):
    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Entry {entry_id} does not exist")
        self.entry_id = entry_id
