"""Maps ``UserStats`` to and from the database.

The repository is the write-behind side of the engine: ``save`` and
``log_session`` swallow database errors (logging them) and report
``False``, so a failed write never disturbs in-memory state.  ``load``
skips malformed quest, achievement and session records instead of
failing the whole account.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..gamification.formulas import level_from_xp, title_for_level
from ..gamification.ledger import SESSION_HISTORY_LIMIT
from ..gamification.models import Quest, SessionRecord, UserStats
from .db import DEFAULT_ACCOUNT, get_session
from .models import StudySessionLog, UserStatsRecord

logger = logging.getLogger(__name__)


# ── decoding helpers ─────────────────────────────────────────────────────


def _decode_quests(raw: Any, label: str) -> tuple[Quest, ...]:
    quests = []
    for item in raw or ():
        try:
            quests.append(Quest.from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("skipping malformed %s quest %r: %s", label, item, exc)
    return tuple(quests)


def _decode_achievements(raw: Any) -> tuple[str, ...]:
    seen: list[str] = []
    for item in raw or ():
        if isinstance(item, str) and item not in seen:
            seen.append(item)
        elif not isinstance(item, str):
            logger.warning("ignoring malformed achievement id %r", item)
    return tuple(seen)


def _decode_mastery(raw: Any) -> dict[str, float]:
    mastery: dict[str, float] = {}
    for subject, minutes in (raw or {}).items():
        if isinstance(minutes, (int, float)) and math.isfinite(minutes) and minutes >= 0:
            mastery[str(subject)] = minutes
        else:
            logger.warning("ignoring mastery entry %r=%r", subject, minutes)
    return mastery


def _to_record(row: StudySessionLog) -> SessionRecord | None:
    if not row.subject_name or not row.duration_minutes or row.duration_minutes <= 0:
        logger.warning("skipping malformed session log row %s", row.id)
        return None
    return SessionRecord(
        subject_name=row.subject_name,
        duration_minutes=row.duration_minutes,
        timestamp=row.timestamp,
        difficulty=row.difficulty,
        mood=row.mood,
        xp_earned=row.xp_earned,
        bonuses=dict(row.bonuses or {}),
    )


# ── repository ───────────────────────────────────────────────────────────


class StatsRepository:
    """Loads and stores one account."""

    def __init__(
        self,
        account_id: str = DEFAULT_ACCOUNT,
        *,
        history_limit: int = SESSION_HISTORY_LIMIT,
        starting_streak_savers: int = 3,
    ) -> None:
        self.account_id = account_id
        self.history_limit = history_limit
        self.starting_streak_savers = starting_streak_savers

    # ── reads ───────────────────────────────────────────────────────

    def load(self) -> UserStats:
        """Read the account, or fresh stats if it has never been saved."""
        with get_session() as db:
            row = (
                db.query(UserStatsRecord)
                .filter_by(account_id=self.account_id)
                .one_or_none()
            )
            history = self._recent_records(db)
            if row is None:
                return UserStats(
                    streak_savers=self.starting_streak_savers, session_history=history,
                )

            level = level_from_xp(row.xp)
            if level != row.level:
                logger.warning(
                    "stored level %d does not match xp %d; using %d",
                    row.level, row.xp, level,
                )
            return UserStats(
                xp=row.xp,
                level=level,
                prestige_level=row.prestige_level,
                current_title=row.current_title or title_for_level(level),
                total_sessions=row.total_sessions,
                total_study_time_minutes=row.total_study_time,
                total_xp_earned=row.total_xp_earned,
                weekly_xp=row.weekly_xp,
                current_streak=row.current_streak,
                longest_streak=max(row.longest_streak, row.current_streak),
                last_study_date=row.last_study_date,
                streak_savers=row.streak_savers,
                achievements=_decode_achievements(row.achievements),
                daily_quests=_decode_quests(row.daily_quests, "daily"),
                weekly_quests=_decode_quests(row.weekly_quests, "weekly"),
                last_daily_reset=row.last_daily_reset,
                last_weekly_reset=row.last_weekly_reset,
                quests_completed=row.quests_completed,
                subject_mastery=_decode_mastery(row.subject_mastery),
                session_history=history,
                jackpot_count=row.jackpot_count,
            )

    def recent_sessions(self) -> tuple[SessionRecord, ...]:
        with get_session() as db:
            return self._recent_records(db)

    def _recent_records(self, db) -> tuple[SessionRecord, ...]:
        rows = (
            db.query(StudySessionLog)
            .filter_by(account_id=self.account_id)
            .order_by(StudySessionLog.timestamp.desc(), StudySessionLog.id.desc())
            .limit(self.history_limit)
            .all()
        )
        records = [r for r in map(_to_record, reversed(rows)) if r is not None]
        return tuple(records)

    # ── writes ──────────────────────────────────────────────────────

    def save(self, stats: UserStats) -> bool:
        """Write the account row.  Returns ``False`` if the write failed."""
        try:
            with get_session() as db:
                row = (
                    db.query(UserStatsRecord)
                    .filter_by(account_id=self.account_id)
                    .one_or_none()
                )
                if row is None:
                    row = UserStatsRecord(account_id=self.account_id)
                    db.add(row)

                row.xp = stats.xp
                row.level = stats.level
                row.prestige_level = stats.prestige_level
                row.current_title = stats.current_title
                row.total_sessions = stats.total_sessions
                row.total_study_time = stats.total_study_time_minutes
                row.total_xp_earned = stats.total_xp_earned
                row.weekly_xp = stats.weekly_xp
                row.current_streak = stats.current_streak
                row.longest_streak = stats.longest_streak
                row.last_study_date = stats.last_study_date
                row.streak_savers = stats.streak_savers
                row.jackpot_count = stats.jackpot_count
                row.quests_completed = stats.quests_completed
                row.last_daily_reset = stats.last_daily_reset
                row.last_weekly_reset = stats.last_weekly_reset
                row.subject_mastery = dict(stats.subject_mastery)
                row.achievements = list(stats.achievements)
                row.daily_quests = [q.to_dict() for q in stats.daily_quests]
                row.weekly_quests = [q.to_dict() for q in stats.weekly_quests]
        except SQLAlchemyError:
            logger.exception("failed to save stats for %s", self.account_id)
            return False
        return True

    def log_session(self, record: SessionRecord) -> bool:
        """Append one session to the log.  Returns ``False`` on failure."""
        try:
            with get_session() as db:
                db.add(StudySessionLog(
                    account_id=self.account_id,
                    subject_name=record.subject_name,
                    duration_minutes=record.duration_minutes,
                    timestamp=record.timestamp,
                    difficulty=record.difficulty,
                    mood=record.mood,
                    xp_earned=record.xp_earned,
                    bonuses=dict(record.bonuses),
                ))
        except SQLAlchemyError:
            logger.exception("failed to log session for %s", self.account_id)
            return False
        return True
