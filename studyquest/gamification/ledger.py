"""XP grants, leveling and prestige: the single writer of ``UserStats``.

XP Awards
---------
- Base:        10 XP per studied minute
- Focus:       x(1 + minutes / 120), capped at x3.0
- Streak:      +floor(streak * ln(streak + 1) * 5)
- Mastery:     +20% of base once a subject has 1000+ minutes
- Prestige:    x(1 + 0.1 per prestige level)
- Premium:     externally supplied multiplier (1.0 by default)
- Variable:    a random bonus drawn on top (see ``variable_reward``)

Level Ups
---------
Every level crossed emits its own ``LEVEL_UP`` event in ascending order.
Milestone levels (5, 10, 25, 50, 75, 100) add bonus XP and a title; the
bonus goes through the same loop, so chained level-ups stay ordered.

Single Writer
-------------
The pure ``apply_*`` functions take a snapshot and return a
:class:`~studyquest.gamification.models.Transition`.
:class:`ProgressionLedger` applies transitions one at a time against the
latest snapshot and forwards the resulting events to the Reward
Dispatcher.  Quest, streak and achievement code all go through
:meth:`ProgressionLedger.update`.
"""

from __future__ import annotations

import logging
import math
import random
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable

from PyQt6.QtCore import QObject, pyqtSignal

from .errors import InvalidSessionError
from .formulas import (
    LEVEL_MILESTONES,
    PRESTIGE_LEVEL,
    level_from_xp,
    prestige_title,
)
from .models import (
    RewardEvent,
    RewardType,
    SessionRecord,
    StudySession,
    Tier,
    Transition,
    UserStats,
)
from .variable_reward import (
    RECENT_SESSIONS_WINDOW,
    RandomSource,
    VariableReward,
    draw_variable_reward,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# ── award constants (easy to tweak) ──────────────────────────────────────

XP_PER_MINUTE = 10
FOCUS_RAMP_MINUTES = 120
FOCUS_MULTIPLIER_CAP = 3.0
STREAK_BONUS_FACTOR = 5
MASTERY_THRESHOLD_MINUTES = 1000
MASTERY_BONUS_RATE = 0.2
PRESTIGE_BONUS_PER_LEVEL = 0.1
SESSION_HISTORY_LIMIT = 100


# ── results ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class XPResult:
    """What a session grant produced."""

    base_xp: int
    total_xp: int
    old_level: int
    new_level: int
    bonuses: dict[str, int] = field(default_factory=dict)
    reward: VariableReward | None = None
    levels_crossed: tuple[int, ...] = ()

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


# ── validation ───────────────────────────────────────────────────────────


def validate_session(session: StudySession) -> None:
    """Raise :class:`InvalidSessionError` for sessions the engine rejects."""
    subject = session.subject_name
    if not isinstance(subject, str) or not subject.strip():
        raise InvalidSessionError("session has no subject")
    duration = session.duration_minutes
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        raise InvalidSessionError(f"duration must be a number, got {duration!r}")
    if not math.isfinite(duration) or duration <= 0:
        raise InvalidSessionError(f"duration must be positive, got {duration!r}")


# ── XP math ──────────────────────────────────────────────────────────────


def focus_multiplier(duration_minutes: float) -> float:
    return min(FOCUS_MULTIPLIER_CAP, 1 + duration_minutes / FOCUS_RAMP_MINUTES)


def streak_bonus(current_streak: int) -> int:
    if current_streak <= 0:
        return 0
    return math.floor(current_streak * math.log(current_streak + 1) * STREAK_BONUS_FACTOR)


def mastery_bonus(stats: UserStats, subject: str, base_xp: int) -> float:
    if stats.subject_mastery.get(subject, 0) >= MASTERY_THRESHOLD_MINUTES:
        return base_xp * MASTERY_BONUS_RATE
    return 0


def calculate_session_xp(
    stats: UserStats,
    session: StudySession,
    premium_multiplier: float = 1.0,
) -> tuple[int, int, dict[str, int]]:
    """Return ``(base_xp, deterministic_total, bonuses)`` for *session*.

    The variable reward is not included; it is drawn on top of the
    deterministic total by :func:`apply_session`.
    """
    minutes = session.duration_minutes
    base = math.floor(minutes * XP_PER_MINUTE)
    focus = focus_multiplier(minutes)
    streak = streak_bonus(stats.current_streak)
    mastery = mastery_bonus(stats, session.subject_name, base)
    prestige = 1 + stats.prestige_level * PRESTIGE_BONUS_PER_LEVEL

    pre_multiplier = base * focus + streak + mastery
    total = math.floor(pre_multiplier * prestige * premium_multiplier)

    bonuses = {
        "base": base,
        "focus": math.floor(base * (focus - 1)),
        "streak": streak,
        "mastery": math.floor(mastery),
        "prestige": math.floor(pre_multiplier * (prestige - 1)),
        "premium": math.floor(pre_multiplier * prestige * (premium_multiplier - 1)),
    }
    return base, total, bonuses


# ── pure transitions ─────────────────────────────────────────────────────


def _level_up_event(level: int, now: datetime) -> RewardEvent:
    return RewardEvent(
        type=RewardType.LEVEL_UP,
        tier=Tier.EPIC,
        title=f"LEVEL {level}!",
        description="You're getting stronger!",
        payload={"level": level},
        created_at=now,
    )


def apply_xp(
    stats: UserStats, amount: int, source: str, now: datetime,
) -> Transition:
    """Add *amount* XP and resolve every level crossed.

    ``result`` is the tuple of levels reached, ascending.  This is the
    plain grant used for quests, achievements and milestones: it never
    emits ``XP_EARNED`` and never touches quests.
    """
    if amount <= 0:
        return Transition(stats, [], ())

    events: list[RewardEvent] = []
    crossed: list[int] = []
    xp = stats.xp + amount
    earned = amount
    level = stats.level
    title = stats.current_title

    while level < level_from_xp(xp):
        level += 1
        crossed.append(level)
        events.append(_level_up_event(level, now))

        milestone = LEVEL_MILESTONES.get(level)
        if milestone is not None:
            xp += milestone.bonus_xp
            earned += milestone.bonus_xp
            title = milestone.title
            events.append(RewardEvent(
                type=RewardType.MILESTONE,
                tier=Tier(milestone.tier),
                title=milestone.title,
                description=(
                    f"Level {level} milestone! +{milestone.bonus_xp} bonus XP"
                ),
                payload={
                    "level": level,
                    "xp": milestone.bonus_xp,
                    "can_prestige": level >= PRESTIGE_LEVEL,
                },
                created_at=now,
            ))

    if crossed:
        logger.info("%s grant of %d XP reached level %d", source, amount, level)

    new_stats = replace(
        stats,
        xp=xp,
        level=level,
        current_title=title,
        total_xp_earned=stats.total_xp_earned + earned,
        weekly_xp=stats.weekly_xp + earned,
    )
    return Transition(new_stats, events, tuple(crossed))


def apply_session(
    stats: UserStats,
    session: StudySession,
    now: datetime,
    rng: RandomSource,
    premium_multiplier: float = 1.0,
) -> Transition:
    """Grant XP for a finished session; ``result`` is an :class:`XPResult`."""
    validate_session(session)

    base, total, bonuses = calculate_session_xp(stats, session, premium_multiplier)

    recent = [
        record.duration_minutes
        for record in reversed(stats.session_history[-RECENT_SESSIONS_WINDOW:])
    ]
    reward = draw_variable_reward(total, session.duration_minutes, recent, rng)
    bonuses["variable"] = reward.bonus_xp
    total += reward.bonus_xp

    subject = session.subject_name
    mastery = dict(stats.subject_mastery)
    mastery[subject] = mastery.get(subject, 0) + session.duration_minutes

    record = SessionRecord(
        subject_name=subject,
        duration_minutes=session.duration_minutes,
        timestamp=session.timestamp,
        difficulty=session.difficulty,
        mood=session.mood,
        xp_earned=total,
        bonuses=dict(bonuses),
    )
    history = (stats.session_history + (record,))[-SESSION_HISTORY_LIMIT:]

    counted = replace(
        stats,
        total_sessions=stats.total_sessions + 1,
        total_study_time_minutes=(
            stats.total_study_time_minutes + session.duration_minutes
        ),
        subject_mastery=mastery,
        session_history=history,
        jackpot_count=stats.jackpot_count + (1 if reward.tier == "legendary" else 0),
    )
    granted = apply_xp(counted, total, "session", now)

    events = [RewardEvent(
        type=RewardType.XP_EARNED,
        tier=Tier.COMMON,
        title=f"+{total} XP",
        description="Great work!",
        payload={"xp": total, "subject": subject, "bonuses": dict(bonuses)},
        created_at=now,
    )]
    if reward.is_bonus:
        events.append(RewardEvent(
            type=RewardType.VARIABLE_REWARD,
            tier=Tier(reward.tier),
            title=reward.title,
            description=reward.description,
            payload={"xp": reward.bonus_xp},
            created_at=now,
        ))
    events.extend(granted.events)

    result = XPResult(
        base_xp=base,
        total_xp=total,
        old_level=stats.level,
        new_level=granted.stats.level,
        bonuses=bonuses,
        reward=reward,
        levels_crossed=granted.result,
    )
    logger.debug(
        "session %s/%gmin: +%d XP (level %d -> %d)",
        subject, session.duration_minutes, total, result.old_level, result.new_level,
    )
    return Transition(granted.stats, events, result)


def apply_prestige(stats: UserStats, now: datetime) -> Transition:
    """Reset level and XP for a permanent bonus; ``result`` is a bool."""
    if stats.level < PRESTIGE_LEVEL:
        return Transition(stats, [], False)

    new_prestige = stats.prestige_level + 1
    new_stats = replace(
        stats,
        xp=0,
        level=1,
        prestige_level=new_prestige,
        current_title=prestige_title(new_prestige),
    )
    event = RewardEvent(
        type=RewardType.PRESTIGE,
        tier=Tier.LEGENDARY,
        title=f"PRESTIGE {new_prestige}!",
        description="Welcome to the elite! +10% permanent XP bonus",
        payload={"prestige_level": new_prestige},
        created_at=now,
    )
    logger.info("prestige %d reached", new_prestige)
    return Transition(new_stats, [event], True)


# ── ledger ───────────────────────────────────────────────────────────────


class ProgressionLedger(QObject):
    """Owns the current ``UserStats`` snapshot.

    Signals
    -------
    stats_changed(stats: UserStats)
        Emitted after every applied transition.
    xp_awarded(result: XPResult)
        Emitted after every session grant.
    level_up(level: int)
        Emitted once per level crossed, ascending.
    """

    stats_changed = pyqtSignal(object)
    xp_awarded = pyqtSignal(object)
    level_up = pyqtSignal(int)

    def __init__(
        self,
        stats: UserStats | None = None,
        *,
        dispatcher=None,
        clock: Clock | None = None,
        rng: RandomSource | None = None,
        premium_multiplier: float = 1.0,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._stats = stats if stats is not None else UserStats()
        self._dispatcher = dispatcher
        self._clock: Clock = clock or datetime.now
        self._rng: RandomSource = rng or random.Random()
        self._lock = threading.RLock()
        self.premium_multiplier = premium_multiplier

    # ── properties ──────────────────────────────────────────────────

    @property
    def stats(self) -> UserStats:
        return self._stats

    @property
    def rng(self) -> RandomSource:
        return self._rng

    def now(self) -> datetime:
        return self._clock()

    # ── core update API ─────────────────────────────────────────────

    def update(self, transition: Callable[[UserStats], Transition]) -> Transition:
        """Apply *transition* to the latest snapshot and publish its events."""
        # queue order must match transition order
        with self._lock:
            applied = transition(self._stats)
            self._stats = applied.stats
            if self._dispatcher is not None and applied.events:
                self._dispatcher.enqueue_all(applied.events)

        for event in applied.events:
            if event.type is RewardType.LEVEL_UP:
                self.level_up.emit(event.payload["level"])
        self.stats_changed.emit(applied.stats)
        return applied

    def replace_stats(self, stats: UserStats) -> None:
        """Swap in a snapshot loaded from storage."""
        self.update(lambda _old: Transition(stats, []))

    # ── commands ────────────────────────────────────────────────────

    def grant_session_xp(self, session: StudySession) -> XPResult:
        """Award XP for *session*.  Raises ``InvalidSessionError`` first."""
        validate_session(session)
        now = self.now()
        applied = self.update(
            lambda s: apply_session(s, session, now, self._rng, self.premium_multiplier)
        )
        self.xp_awarded.emit(applied.result)
        return applied.result

    def grant_xp(self, amount: int, source: str = "reward") -> tuple[int, ...]:
        """Plain XP grant; returns the levels crossed."""
        now = self.now()
        return self.update(lambda s: apply_xp(s, amount, source, now)).result

    def prestige(self) -> bool:
        now = self.now()
        return self.update(lambda s: apply_prestige(s, now)).result
