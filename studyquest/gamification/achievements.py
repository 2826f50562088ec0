"""Achievement catalog and evaluator for StudyQuest.

Achievement Catalog
-------------------
One catalog, keyed by id, grouped into categories:

    getting_started   first session, first hour
    sessions          4 pomodoros in a day, 3h / 6h / 12h single sessions
    streaks           3, 7, 14, 30, 50, 100, 365 days
    levels            5, 10, 25, 50, 100
    time              10, 50, 100, 500, 1000 lifetime hours
    special           night owl, early bird, weekend, midnight
    quests            10 completed quests
    mastery           5 / 10 subjects, 50h in one subject
    legendary         prestige, 5 jackpots, 1M lifetime XP

Conditions
----------
Each condition is a pure predicate over ``UserStats`` (including its
``session_history``).  Time-of-day conditions read session timestamps,
never the wall clock.

Unlocking
---------
Unlocking appends the id to ``UserStats.achievements``, grants the XP
through the ledger's plain grant and emits one ``ACHIEVEMENT`` event.
An id already present is a no-op, so ``check_all`` can run after every
mutation.

Registry
--------
``REGISTRY`` is a module-level singleton with look-up helpers
(``get``, ``by_category``, ``by_tier``).
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable

from .ledger import ProgressionLedger, apply_xp
from .models import RewardEvent, RewardType, Tier, Transition, UserStats

logger = logging.getLogger(__name__)


# ── catalog dataclass ────────────────────────────────────────────────────


@dataclass(frozen=True)
class AchievementDef:
    id: str
    name: str
    description: str
    category: str
    tier: str             # common | uncommon | rare | epic | legendary
    xp: int
    condition: Callable[[UserStats], bool] = field(repr=False, compare=False)


# ── condition helpers ────────────────────────────────────────────────────


def _longest_session_at_least(minutes: float) -> Callable[[UserStats], bool]:
    return lambda s: any(r.duration_minutes >= minutes for r in s.session_history)


def _any_session_hour(predicate: Callable[[int], bool]) -> Callable[[UserStats], bool]:
    return lambda s: any(predicate(r.timestamp.hour) for r in s.session_history)


def _pomodoro_day(stats: UserStats) -> bool:
    """Four 25+ minute sessions on one calendar day."""
    per_day = Counter(
        r.timestamp.date() for r in stats.session_history
        if r.duration_minutes >= 25
    )
    return any(count >= 4 for count in per_day.values())


def _weekend_both_days(stats: UserStats) -> bool:
    weekdays = {r.timestamp.weekday() for r in stats.session_history}
    return 5 in weekdays and 6 in weekdays     # Saturday and Sunday


def _streak(days: int) -> Callable[[UserStats], bool]:
    return lambda s: s.longest_streak >= days or s.current_streak >= days


# ── the catalog ──────────────────────────────────────────────────────────

STREAK_MILESTONES: tuple[int, ...] = (3, 7, 14, 30, 50, 100, 365)

ACHIEVEMENTS: list[AchievementDef] = [
    # ── getting started ─────────────────────────────────────────────────
    AchievementDef("first_session", "First Steps",
                   "Complete your first study session",
                   "getting_started", "common", 25,
                   lambda s: s.total_sessions >= 1),
    AchievementDef("first_hour", "Hour Scholar",
                   "Study for 1 total hour",
                   "getting_started", "common", 50,
                   lambda s: s.total_study_time_minutes >= 60),

    # ── sessions ────────────────────────────────────────────────────────
    AchievementDef("pomodoro_master", "Pomodoro Pro",
                   "Complete 4 Pomodoro sessions in one day",
                   "sessions", "uncommon", 75, _pomodoro_day),
    AchievementDef("marathon_session", "Marathon Master",
                   "Study for 3+ hours in one session",
                   "sessions", "rare", 200, _longest_session_at_least(180)),
    AchievementDef("endurance_beast", "Endurance Beast",
                   "Study for 6+ hours in one session",
                   "sessions", "epic", 500, _longest_session_at_least(360)),
    AchievementDef("legendary_focus", "Legendary Focus",
                   "Study for 12+ hours in one session",
                   "sessions", "legendary", 1000, _longest_session_at_least(720)),

    # ── streaks ─────────────────────────────────────────────────────────
    AchievementDef("streak_3", "Getting Warmed Up",
                   "Maintain a 3-day study streak",
                   "streaks", "rare", 50, _streak(3)),
    AchievementDef("streak_7", "Week Warrior",
                   "Maintain a 7-day study streak",
                   "streaks", "rare", 100, _streak(7)),
    AchievementDef("streak_14", "Fortnight Fighter",
                   "Maintain a 14-day study streak",
                   "streaks", "rare", 200, _streak(14)),
    AchievementDef("streak_30", "Month Master",
                   "Maintain a 30-day study streak",
                   "streaks", "epic", 500, _streak(30)),
    AchievementDef("streak_50", "Unstoppable Force",
                   "Maintain a 50-day study streak",
                   "streaks", "epic", 750, _streak(50)),
    AchievementDef("streak_100", "Century Club",
                   "Maintain a 100-day study streak",
                   "streaks", "legendary", 1500, _streak(100)),
    AchievementDef("streak_365", "Year Champion",
                   "Maintain a 365-day study streak",
                   "streaks", "legendary", 5000, _streak(365)),

    # ── levels ──────────────────────────────────────────────────────────
    AchievementDef("level_5", "Rising Scholar", "Reach level 5",
                   "levels", "common", 75, lambda s: s.level >= 5),
    AchievementDef("level_10", "Dedicated Learner", "Reach level 10",
                   "levels", "uncommon", 150, lambda s: s.level >= 10),
    AchievementDef("level_25", "Knowledge Seeker", "Reach level 25",
                   "levels", "rare", 300, lambda s: s.level >= 25),
    AchievementDef("level_50", "Academic Weapon", "Reach level 50",
                   "levels", "epic", 750, lambda s: s.level >= 50),
    AchievementDef("level_100", "Legend Ascended", "Reach level 100",
                   "levels", "legendary", 2000, lambda s: s.level >= 100),

    # ── lifetime hours ──────────────────────────────────────────────────
    AchievementDef("hours_10", "Ten Hour Scholar", "Study for 10 total hours",
                   "time", "common", 100,
                   lambda s: s.total_study_time_minutes >= 600),
    AchievementDef("hours_50", "Fifty Hour Hero", "Study for 50 total hours",
                   "time", "uncommon", 250,
                   lambda s: s.total_study_time_minutes >= 3000),
    AchievementDef("hours_100", "Century Scholar", "Study for 100 total hours",
                   "time", "rare", 500,
                   lambda s: s.total_study_time_minutes >= 6000),
    AchievementDef("hours_500", "Dedication Master", "Study for 500 total hours",
                   "time", "epic", 1500,
                   lambda s: s.total_study_time_minutes >= 30000),
    AchievementDef("hours_1000", "Time Lord", "Study for 1000 total hours",
                   "time", "legendary", 5000,
                   lambda s: s.total_study_time_minutes >= 60000),

    # ── special occasions ───────────────────────────────────────────────
    AchievementDef("night_owl", "Night Owl", "Study after 10 PM",
                   "special", "uncommon", 50, _any_session_hour(lambda h: h >= 22)),
    AchievementDef("early_bird", "Early Bird", "Study before 6 AM",
                   "special", "uncommon", 75, _any_session_hour(lambda h: h < 6)),
    AchievementDef("weekend_warrior", "Weekend Warrior",
                   "Study on both Saturday and Sunday",
                   "special", "rare", 100, _weekend_both_days),
    AchievementDef("midnight_scholar", "Midnight Scholar",
                   "Study during the midnight hour (12-1 AM)",
                   "special", "epic", 150, _any_session_hour(lambda h: h == 0)),

    # ── quests ──────────────────────────────────────────────────────────
    AchievementDef("quest_master", "Quest Master", "Complete 10 quests",
                   "quests", "uncommon", 200, lambda s: s.quests_completed >= 10),

    # ── subject mastery ─────────────────────────────────────────────────
    AchievementDef("subject_explorer", "Subject Explorer",
                   "Study 5 different subjects",
                   "mastery", "common", 100, lambda s: len(s.subject_mastery) >= 5),
    AchievementDef("subject_master", "Subject Master",
                   "Study one subject for 50+ hours",
                   "mastery", "rare", 300,
                   lambda s: any(m >= 3000 for m in s.subject_mastery.values())),
    AchievementDef("polymath", "Polymath", "Study 10+ different subjects",
                   "mastery", "epic", 500, lambda s: len(s.subject_mastery) >= 10),

    # ── legendary feats ─────────────────────────────────────────────────
    AchievementDef("prestige_master", "Prestige Master", "Reach Prestige Level 1",
                   "legendary", "legendary", 2500, lambda s: s.prestige_level >= 1),
    AchievementDef("jackpot_hunter", "Jackpot Hunter", "Hit 5 legendary XP jackpots",
                   "legendary", "epic", 1000, lambda s: s.jackpot_count >= 5),
    AchievementDef("ultimate_scholar", "Ultimate Scholar", "Reach 1 million total XP",
                   "legendary", "legendary", 10000,
                   lambda s: s.total_xp_earned >= 1_000_000),
]


# ── registry ─────────────────────────────────────────────────────────────


class AchievementRegistry:
    """Single source of truth for every achievement, keyed by id."""

    def __init__(self, definitions: list[AchievementDef]) -> None:
        self._items: dict[str, AchievementDef] = {}
        for definition in definitions:
            if definition.id in self._items:
                raise ValueError(f"duplicate achievement id {definition.id!r}")
            self._items[definition.id] = definition

    def __contains__(self, achievement_id: str) -> bool:
        return achievement_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def all_items(self) -> list[AchievementDef]:
        return list(self._items.values())

    def get(self, achievement_id: str) -> AchievementDef | None:
        return self._items.get(achievement_id)

    def by_category(self, category: str) -> list[AchievementDef]:
        return [a for a in self._items.values() if a.category == category]

    def by_tier(self, tier: str) -> list[AchievementDef]:
        return [a for a in self._items.values() if a.tier == tier]


# Module-level singleton
REGISTRY = AchievementRegistry(ACHIEVEMENTS)


# ── pure transitions ─────────────────────────────────────────────────────


def _holds(definition: AchievementDef, stats: UserStats) -> bool:
    """Evaluate a condition, treating a failure as "not yet"."""
    try:
        return bool(definition.condition(stats))
    except Exception as exc:
        logger.warning("skipping achievement %s: %r", definition.id, exc)
        return False


def apply_unlock(
    stats: UserStats,
    achievement_id: str,
    now: datetime,
    registry: AchievementRegistry = REGISTRY,
) -> Transition:
    """Unlock one achievement; ``result`` is True only on a new unlock."""
    definition = registry.get(achievement_id)
    if definition is None or stats.has_achievement(achievement_id):
        return Transition(stats, [], False)

    unlocked = replace(stats, achievements=stats.achievements + (achievement_id,))
    granted = apply_xp(unlocked, definition.xp, "achievement", now)
    event = RewardEvent(
        type=RewardType.ACHIEVEMENT,
        tier=Tier(definition.tier),
        title=definition.name,
        description=definition.description,
        payload={"achievement_id": definition.id, "xp": definition.xp},
        created_at=now,
    )
    logger.info("achievement unlocked: %s", definition.id)
    return Transition(granted.stats, [event, *granted.events], True)


def apply_check_all(
    stats: UserStats,
    now: datetime,
    registry: AchievementRegistry = REGISTRY,
) -> Transition:
    """Unlock everything newly satisfied; ``result`` is the tuple of ids.

    Repeats until nothing new unlocks, since an unlock's XP can satisfy
    a level condition.
    """
    events: list[RewardEvent] = []
    unlocked: list[str] = []

    while True:
        newly = [
            a for a in registry.all_items()
            if not stats.has_achievement(a.id) and _holds(a, stats)
        ]
        if not newly:
            break
        for definition in newly:
            applied = apply_unlock(stats, definition.id, now, registry)
            stats = applied.stats
            events.extend(applied.events)
            if applied.result:
                unlocked.append(definition.id)

    return Transition(stats, events, tuple(unlocked))


# ── evaluator ────────────────────────────────────────────────────────────


class AchievementEvaluator:
    """Checks conditions and records unlocks through the ledger."""

    def __init__(
        self, ledger: ProgressionLedger, registry: AchievementRegistry = REGISTRY,
    ) -> None:
        self._ledger = ledger
        self._registry = registry

    def check_all(self) -> tuple[str, ...]:
        """Unlock everything the player has earned but hasn't received yet.

        Returns the ids unlocked by this call (empty on a repeat call).
        """
        now = self._ledger.now()
        return self._ledger.update(
            lambda s: apply_check_all(s, now, self._registry)
        ).result

    def unlock(self, achievement_id: str) -> bool:
        now = self._ledger.now()
        return self._ledger.update(
            lambda s: apply_unlock(s, achievement_id, now, self._registry)
        ).result

    # ── queries ─────────────────────────────────────────────────────

    def is_unlocked(self, achievement_id: str) -> bool:
        return self._ledger.stats.has_achievement(achievement_id)

    def unlocked(self) -> list[AchievementDef]:
        stats = self._ledger.stats
        return [a for a in self._registry.all_items() if stats.has_achievement(a.id)]

    def locked(self) -> list[AchievementDef]:
        stats = self._ledger.stats
        return [a for a in self._registry.all_items() if not stats.has_achievement(a.id)]
