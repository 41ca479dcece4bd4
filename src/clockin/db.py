from __future__ import annotations

from clockin.db_repo import (
    BaseDatabase,
    EntryMixin,
    GamificationMixin,
    GoalMixin,
    SessionMixin,
    UserMixin,
)


class Database(BaseDatabase, EntryMixin, SessionMixin, UserMixin, GamificationMixin, GoalMixin):
    pass
