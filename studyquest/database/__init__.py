"""Database package."""

from .db import configure_engine, get_session, init_db
from .models import StudySessionLog, UserStatsRecord
from .repository import StatsRepository

__all__ = [
    "configure_engine",
    "get_session",
    "init_db",
    "StudySessionLog",
    "UserStatsRecord",
    "StatsRepository",
]
