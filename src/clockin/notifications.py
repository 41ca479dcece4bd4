from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union


@dataclass(frozen=True)
class SessionDiscarded:
    user_id: int
    reason: str
    discarded_ms: int
    entry_id: int | None = None

    kind = "session_discarded"


@dataclass(frozen=True)
class MilestoneCrossed:
    user_id: int
    dream_goal_id: int
    milestone_index: int
    percentage: int

    kind = "milestone_crossed"


@dataclass(frozen=True)
class LevelUp:
    user_id: int
    new_level: int

    kind = "level_up"


@dataclass(frozen=True)
class ChallengeCompleted:
    user_id: int
    challenge_key: str
    name: str

    kind = "challenge_completed"


@dataclass(frozen=True)
class BadgeEarned:
    user_id: int
    badge_key: str
    name: str

    kind = "badge_earned"


Event = Union[SessionDiscarded, MilestoneCrossed, LevelUp, ChallengeCompleted, BadgeEarned]


class NotificationSink(Protocol):
    async def emit(self, event: Event) -> None: ...


class NullSink:
    async def emit(self, event: Event) -> None:
        return None


class CollectingSink:
    def __init__(self) -> None:
        self.events: list[Event] = []

    async def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_kind(self, kind: str) -> list[Event]:
        return [e for e in self.events if e.kind == kind]
