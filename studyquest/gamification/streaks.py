"""Daily study streaks.

A streak counts consecutive local calendar days with at least one
session.  Every comparison is between ``now.date()`` and
``last_study_date.date()``; wall-clock hours only matter for the
WARNING / DANGER split of :func:`streak_status`.

    last study      transition on a new session
    ----------      ---------------------------
    never           streak = 1
    today           no change
    yesterday       streak + 1
    2+ days ago     savers left: report ``can_use_saver``, change nothing
                    no savers:   streak = 1

A reported ``can_use_saver`` is resolved by the caller with either
:meth:`StreakTracker.use_streak_saver` or
:meth:`StreakTracker.accept_streak_break`.

Landing exactly on 3, 7, 14, 30, 50, 100 or 365 days emits a
``STREAK_MILESTONE`` event and unlocks achievement ``streak_<N>`` (once).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum

from PyQt6.QtCore import QObject, pyqtSignal

from .achievements import STREAK_MILESTONES, apply_unlock
from .formulas import StreakTier, streak_tier
from .ledger import ProgressionLedger
from .models import RewardEvent, RewardType, Tier, Transition, UserStats

logger = logging.getLogger(__name__)

DANGER_MINUTES = 60


class StreakState(str, Enum):
    ACTIVE = "active"      # studied today
    WARNING = "warning"    # studied yesterday, plenty of day left
    DANGER = "danger"      # studied yesterday, under an hour left
    BROKEN = "broken"      # gap of 2+ days, or never studied


@dataclass(frozen=True)
class StreakCheck:
    """Outcome of one streak transition."""

    streak: int
    is_new_day: bool
    streak_broken: bool = False
    can_use_saver: bool = False


@dataclass(frozen=True)
class StreakStatus:
    state: StreakState
    current_streak: int
    longest_streak: int
    streak_savers: int
    minutes_until_midnight: int
    tier: StreakTier


# ── calendar helpers ─────────────────────────────────────────────────────


def days_since_last_study(stats: UserStats, now: datetime) -> int | None:
    """Whole calendar days between the last session and *now*.

    ``None`` when the player has never studied.  A last-study date in
    the future counts as today.
    """
    if stats.last_study_date is None:
        return None
    return max(0, (now.date() - stats.last_study_date.date()).days)


def minutes_until_midnight(now: datetime) -> int:
    midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    if now.tzinfo is not None:
        midnight = midnight.replace(tzinfo=now.tzinfo)
    return int((midnight - now).total_seconds() // 60)


def streak_status(stats: UserStats, now: datetime) -> StreakStatus:
    gap = days_since_last_study(stats, now)
    remaining = minutes_until_midnight(now)

    if gap == 0:
        state = StreakState.ACTIVE
    elif gap == 1:
        state = StreakState.DANGER if remaining < DANGER_MINUTES else StreakState.WARNING
    else:
        state = StreakState.BROKEN

    return StreakStatus(
        state=state,
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        streak_savers=stats.streak_savers,
        minutes_until_midnight=remaining,
        tier=streak_tier(stats.current_streak),
    )


# ── pure transitions ─────────────────────────────────────────────────────


def _milestone_tier(days: int) -> Tier:
    if days >= 100:
        return Tier.LEGENDARY
    if days >= 30:
        return Tier.EPIC
    return Tier.RARE


def _set_streak(stats: UserStats, streak: int, now: datetime) -> Transition:
    """Write a new streak value and resolve its milestone, if any."""
    updated = replace(
        stats,
        current_streak=streak,
        longest_streak=max(stats.longest_streak, streak),
        last_study_date=now,
    )
    if streak not in STREAK_MILESTONES:
        return Transition(updated, [])

    events = [RewardEvent(
        type=RewardType.STREAK_MILESTONE,
        tier=_milestone_tier(streak),
        title=f"{streak}-DAY STREAK!",
        description=f"Maintained a {streak}-day study streak!",
        payload={"days": streak},
        created_at=now,
    )]
    unlocked = apply_unlock(updated, f"streak_{streak}", now)
    logger.info("streak milestone: %d days", streak)
    return Transition(unlocked.stats, events + unlocked.events)


def apply_streak_update(stats: UserStats, now: datetime) -> Transition:
    """Advance the streak for a session finished at *now*.

    ``result`` is a :class:`StreakCheck`.
    """
    gap = days_since_last_study(stats, now)

    if gap == 0:
        return Transition(stats, [], StreakCheck(stats.current_streak, is_new_day=False))

    if gap == 1:
        streak, broken = stats.current_streak + 1, False
    elif gap is not None and stats.streak_savers > 0:
        logger.debug("streak of %d at risk; saver available", stats.current_streak)
        return Transition(stats, [], StreakCheck(
            stats.current_streak, is_new_day=True,
            streak_broken=True, can_use_saver=True,
        ))
    else:
        streak, broken = 1, gap is not None and stats.current_streak > 0

    applied = _set_streak(stats, streak, now)
    return Transition(
        applied.stats, applied.events,
        StreakCheck(streak, is_new_day=True, streak_broken=broken),
    )


def apply_streak_saver(stats: UserStats, now: datetime) -> Transition:
    """Spend one saver; the streak is kept but not incremented."""
    if stats.streak_savers <= 0:
        return Transition(stats, [], False)

    remaining = stats.streak_savers - 1
    saved = replace(stats, streak_savers=remaining, last_study_date=now)
    event = RewardEvent(
        type=RewardType.STREAK_SAVED,
        tier=Tier.PREMIUM,
        title="Streak Protected!",
        description=f"Used streak saver! {remaining} remaining",
        payload={"streak": stats.current_streak, "savers_left": remaining},
        created_at=now,
    )
    logger.info("streak saver used; %d left", remaining)
    return Transition(saved, [event], True)


def apply_streak_break(stats: UserStats, now: datetime) -> Transition:
    """Accept a broken streak and start over at one day.

    Only applies after a gap of two or more days; ``result`` is a bool.
    """
    gap = days_since_last_study(stats, now)
    if gap is None or gap < 2:
        return Transition(stats, [], False)
    applied = _set_streak(stats, 1, now)
    return Transition(applied.stats, applied.events, True)


# ── tracker ──────────────────────────────────────────────────────────────


class StreakTracker(QObject):
    """Applies streak transitions through the ledger.

    Signals
    -------
    streak_updated(current_streak: int, longest_streak: int)
        Emitted whenever the streak counter changes.
    """

    streak_updated = pyqtSignal(int, int)

    def __init__(self, ledger: ProgressionLedger, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._ledger = ledger

    def check_streak(self) -> StreakCheck:
        now = self._ledger.now()
        before = self._ledger.stats.current_streak
        check = self._ledger.update(lambda s: apply_streak_update(s, now)).result
        self._notify(before)
        return check

    def use_streak_saver(self) -> bool:
        now = self._ledger.now()
        return self._ledger.update(lambda s: apply_streak_saver(s, now)).result

    def accept_streak_break(self) -> bool:
        now = self._ledger.now()
        before = self._ledger.stats.current_streak
        accepted = self._ledger.update(lambda s: apply_streak_break(s, now)).result
        self._notify(before)
        return accepted

    def status(self) -> StreakStatus:
        return streak_status(self._ledger.stats, self._ledger.now())

    def _notify(self, before: int) -> None:
        stats = self._ledger.stats
        if stats.current_streak != before:
            self.streak_updated.emit(stats.current_streak, stats.longest_streak)
