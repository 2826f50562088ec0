"""SQLAlchemy ORM models for StudyQuest."""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Float, JSON, Index
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class UserStatsRecord(Base):
    """One row per account: the persisted form of ``UserStats``."""

    __tablename__ = "user_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False, unique=True)

    xp = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    prestige_level = Column(Integer, nullable=False, default=0)
    current_title = Column(String(64), nullable=False, default="Rookie Scholar")

    total_sessions = Column(Integer, nullable=False, default=0)
    total_study_time = Column(Float, nullable=False, default=0)    # minutes
    total_xp_earned = Column(Integer, nullable=False, default=0)
    weekly_xp = Column(Integer, nullable=False, default=0)

    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_study_date = Column(DateTime, nullable=True)
    streak_savers = Column(Integer, nullable=False, default=3)

    jackpot_count = Column(Integer, nullable=False, default=0)
    quests_completed = Column(Integer, nullable=False, default=0)
    last_daily_reset = Column(DateTime, nullable=True)
    last_weekly_reset = Column(DateTime, nullable=True)

    subject_mastery = Column(JSON, nullable=False, default=dict)   # subject -> minutes
    achievements = Column(JSON, nullable=False, default=list)      # [achievement id]
    daily_quests = Column(JSON, nullable=False, default=list)      # [Quest.to_dict()]
    weekly_quests = Column(JSON, nullable=False, default=list)

    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def __repr__(self) -> str:
        return (
            f"<UserStatsRecord account={self.account_id} level={self.level} "
            f"xp={self.xp} streak={self.current_streak}>"
        )


class StudySessionLog(Base):
    """Append-only log of finished study sessions."""

    __tablename__ = "study_sessions"
    __table_args__ = (Index("ix_study_sessions_account_time", "account_id", "timestamp"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False)
    subject_name = Column(String(255), nullable=False)
    duration_minutes = Column(Float, nullable=False)
    timestamp = Column(DateTime, nullable=False)
    difficulty = Column(Float, nullable=False, default=1.0)
    mood = Column(String(32), nullable=False, default="neutral")
    xp_earned = Column(Integer, nullable=False, default=0)
    bonuses = Column(JSON, nullable=False, default=dict)
    logged_at = Column(DateTime, nullable=False, default=datetime.now)

    def __repr__(self) -> str:
        return (
            f"<StudySessionLog id={self.id} subject={self.subject_name} "
            f"minutes={self.duration_minutes} xp={self.xp_earned}>"
        )
