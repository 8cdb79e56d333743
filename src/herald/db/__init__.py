"""Database layer."""

from herald.db.engine import Database
from herald.db.models import Base, ScheduledTaskRow

__all__ = [
    "Base",
    "Database",
    "ScheduledTaskRow",
]
