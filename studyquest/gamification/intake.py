"""Session intake: the presentation-facing entry point of the engine.

One finished study session flows through the engine in a fixed order:

    1. validate                     (nothing changes on failure)
    2. expired quest lists          QuestEngine (replaced, never paid)
    3. XP grant                     ProgressionLedger
    4. streak update                StreakTracker
    5. quest progress               QuestEngine
    6. achievement re-evaluation    AchievementEvaluator
    7. persistence                  StatsRepository (fire-and-forget)

Every step runs against the ledger's latest snapshot, and every event
lands in :attr:`SessionIntake.reward_queue` as soon as its step finishes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping

from PyQt6.QtCore import QObject, pyqtSignal

from .achievements import AchievementEvaluator
from .dispatcher import RewardDispatcher
from .formulas import XPProgress, xp_progress
from .ledger import ProgressionLedger, XPResult, validate_session
from .models import Quest, SessionRecord, StudySession, UserStats
from .quests import QuestEngine
from .streaks import StreakCheck, StreakStatus, StreakTracker
from .variable_reward import RandomSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionOutcome:
    """Everything one recorded session changed."""

    xp: XPResult
    streak: StreakCheck
    quests_completed: tuple[Quest, ...] = ()
    achievements_unlocked: tuple[str, ...] = ()


class SessionIntake(QObject):
    """Wires the engine components around one ledger.

    Signals
    -------
    session_recorded(outcome: SessionOutcome)
        Emitted after a session has gone through the whole pipeline.
    """

    session_recorded = pyqtSignal(object)

    def __init__(
        self,
        stats: UserStats | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        rng: RandomSource | None = None,
        premium_multiplier: float = 1.0,
        repository=None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._dispatcher = RewardDispatcher(self)
        self._ledger = ProgressionLedger(
            stats,
            dispatcher=self._dispatcher,
            clock=clock,
            rng=rng,
            premium_multiplier=premium_multiplier,
            parent=self,
        )
        self._streaks = StreakTracker(self._ledger, self)
        self._quests = QuestEngine(self._ledger)
        self._achievements = AchievementEvaluator(self._ledger)
        self._repository = repository

    @classmethod
    def from_repository(cls, repository, **kwargs: Any) -> "SessionIntake":
        """Build an intake around the account stored in *repository*.

        Quest lists that are due are regenerated straight away.
        """
        intake = cls(repository.load(), repository=repository, **kwargs)
        intake.ensure_quests()
        return intake

    # ── read side ───────────────────────────────────────────────────

    @property
    def user_stats(self) -> UserStats:
        return self._ledger.stats

    @property
    def reward_queue(self) -> RewardDispatcher:
        return self._dispatcher

    @property
    def ledger(self) -> ProgressionLedger:
        return self._ledger

    @property
    def streaks(self) -> StreakTracker:
        return self._streaks

    @property
    def quests(self) -> QuestEngine:
        return self._quests

    @property
    def achievements(self) -> AchievementEvaluator:
        return self._achievements

    def xp_progress(self) -> XPProgress:
        return xp_progress(self.user_stats)

    def streak_overview(self) -> StreakStatus:
        return self._streaks.status()

    # ── the session pipeline ────────────────────────────────────────

    def record_session(self, session: StudySession) -> SessionOutcome:
        """Run *session* through the whole pipeline.

        Raises ``InvalidSessionError`` before touching any state.
        """
        validate_session(session)
        self._quests.ensure_quests(expired_only=True)
        achievements_before = len(self.user_stats.achievements)

        xp = self._ledger.grant_session_xp(session)
        streak = self._streaks.check_streak()
        completed = self._session_quest_progress(session, xp)

        # streak milestones unlock achievements before the evaluator runs
        from_streak = len(self.user_stats.achievements) - achievements_before
        _, achievement_quests = self._evaluate_achievements(from_streak)
        completed += achievement_quests

        outcome = SessionOutcome(
            xp=xp,
            streak=streak,
            quests_completed=completed,
            achievements_unlocked=self.user_stats.achievements[achievements_before:],
        )
        self._persist(self.user_stats.session_history[-1])
        self.session_recorded.emit(outcome)
        return outcome

    def grant_session_xp(self, session: StudySession) -> XPResult:
        """Presentation-level session grant: the full pipeline, XP part returned."""
        return self.record_session(session).xp

    def _session_quest_progress(
        self, session: StudySession, xp: XPResult,
    ) -> tuple[Quest, ...]:
        subject = {"subject": session.subject_name}
        minutes = session.duration_minutes
        updates: list[tuple[str, float, Mapping[str, Any] | None]] = [
            ("time", minutes, None),
            ("sessions", 1, None),
            ("subjects", 1, subject),
            ("xp", xp.total_xp, None),
            ("streak", 1, None),
            ("early_bird", 1, None),
            ("night_owl", 1, None),
            ("personal_best", minutes, None),
            ("new_subject", 1, subject),
            ("week_balance", 1, None),
            ("double_days", 1, None),
        ]
        if xp.levels_crossed:
            updates.append(("level", len(xp.levels_crossed), None))

        completed: tuple[Quest, ...] = ()
        for quest_type, amount, context in updates:
            completed += self._quests.update_progress(quest_type, amount, context)
        return completed

    # ── other commands ──────────────────────────────────────────────

    def use_streak_saver(self) -> bool:
        used = self._streaks.use_streak_saver()
        if used:
            self._persist()
        return used

    def accept_streak_break(self) -> bool:
        accepted = self._streaks.accept_streak_break()
        if accepted:
            self._persist()
        return accepted

    def prestige(self) -> bool:
        done = self._ledger.prestige()
        if done:
            self._persist()
        return done

    def generate_daily_quests(self) -> tuple[Quest, ...]:
        quests = self._quests.generate_daily_quests()
        self._persist()
        return quests

    def generate_weekly_quests(self) -> tuple[Quest, ...]:
        quests = self._quests.generate_weekly_quests()
        self._persist()
        return quests

    def ensure_quests(self) -> tuple[str, ...]:
        regenerated = self._quests.ensure_quests()
        if regenerated:
            self._persist()
        return regenerated

    def update_quest_progress(
        self,
        quest_type: str,
        amount: float = 1,
        context: Mapping[str, Any] | None = None,
    ) -> tuple[Quest, ...]:
        completed = self._quests.update_progress(quest_type, amount, context)
        self._persist()
        return completed

    def complete_task(self) -> tuple[Quest, ...]:
        """Record one finished task for ``tasks`` quests."""
        return self.update_quest_progress("tasks", 1)

    def check_achievements(self) -> tuple[str, ...]:
        unlocked, _ = self._evaluate_achievements()
        if unlocked:
            self._persist()
        return unlocked

    def _evaluate_achievements(
        self, pending: int = 0,
    ) -> tuple[tuple[str, ...], tuple[Quest, ...]]:
        """Unlock achievements and feed ``achievement`` quests until stable.

        Quest XP can satisfy a level achievement, so the two alternate
        until neither produces anything new.
        """
        unlocked: tuple[str, ...] = ()
        completed: tuple[Quest, ...] = ()
        while True:
            newly = self._achievements.check_all()
            unlocked += newly
            pending += len(newly)
            if not pending:
                return unlocked, completed
            finished = self._quests.update_progress("achievement", pending)
            completed += finished
            pending = 0
            if not finished:
                return unlocked, completed

    # ── persistence ─────────────────────────────────────────────────

    def _persist(self, record: SessionRecord | None = None) -> None:
        """Write-behind to the repository; failures never touch memory."""
        if self._repository is None:
            return
        if record is not None and not self._repository.log_session(record):
            logger.warning("session log write failed; continuing in memory")
        if not self._repository.save(self.user_stats):
            logger.warning("stats write failed; in-memory state stays authoritative")
