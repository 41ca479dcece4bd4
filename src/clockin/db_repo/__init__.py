from .base import BaseDatabase
from .entries import EntryMixin
from .sessions import SessionMixin
from .users import UserMixin
from .gamification import GamificationMixin
from .goals import GoalMixin

__all__ = [
    "BaseDatabase",
    "EntryMixin",
    "SessionMixin",
    "UserMixin",
    "GamificationMixin",
    "GoalMixin",
]
