"""Pure formulas behind StudyQuest progression.

Leveling Curve
--------------
Going from level ``L`` to ``L + 1`` costs ``floor(50 * L ** 1.5)`` XP:

    Lv 1 -> 2      50 XP
    Lv 2 -> 3     141 XP
    Lv 3 -> 4     259 XP
    Lv 4 -> 5     400 XP
    Lv 10 -> 11  1581 XP

:func:`total_xp_for_level` is the cumulative threshold to *reach* a
level (``0`` for level 1), and :func:`level_from_xp` inverts it.  There
is no level cap; prestige opens at level 100.

Streak Tiers
------------
    1-2    Beginner    x1.0
    3-6    Growing     x1.1
    7-13   Strong      x1.2
   14-29   Blazing     x1.3
   30-99   Legendary   x1.5
   100+    God-like    x2.0

Level Milestones
----------------
Levels 5, 10, 25, 50, 75 and 100 grant bonus XP and a new title.

Nothing in this module holds state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import UserStats


# ── leveling constants (easy to adjust) ──────────────────────────────────

LEVEL_BASE_XP = 50         # XP to go from level 1 → 2
LEVEL_EXPONENT = 1.5
PRESTIGE_LEVEL = 100       # minimum level to prestige


# ── level math ───────────────────────────────────────────────────────────


def xp_for_level(level: int) -> int:
    """XP needed to go from *level* to *level + 1*."""
    return math.floor(LEVEL_BASE_XP * level ** LEVEL_EXPONENT)


def total_xp_for_level(level: int) -> int:
    """Total cumulative XP required to *reach* the given level.

    ``total_xp_for_level(1)`` is 0 (you start at level 1 with zero XP).
    """
    if level <= 1:
        return 0
    return sum(xp_for_level(l) for l in range(1, level))


def level_from_xp(xp: int) -> int:
    """Return the level a player is at given their total XP."""
    level = 1
    threshold = xp_for_level(1)
    while threshold <= xp:
        level += 1
        threshold += xp_for_level(level)
    return level


@dataclass(frozen=True)
class XPProgress:
    current: int
    needed: int
    percentage: float


def xp_progress(stats: "UserStats") -> XPProgress:
    """Progress through the current level, for progress bars."""
    floor_xp = total_xp_for_level(stats.level)
    needed = total_xp_for_level(stats.level + 1) - floor_xp
    current = stats.xp - floor_xp
    percentage = min(100.0, max(0.0, current / needed * 100)) if needed > 0 else 0.0
    return XPProgress(current=current, needed=needed, percentage=percentage)


# ── level milestones & titles ────────────────────────────────────────────


@dataclass(frozen=True)
class LevelMilestone:
    level: int
    title: str
    bonus_xp: int
    tier: str


LEVEL_MILESTONES: dict[int, LevelMilestone] = {
    m.level: m for m in (
        LevelMilestone(5,   "Rising Scholar",    100,  "rare"),
        LevelMilestone(10,  "Dedicated Learner", 250,  "rare"),
        LevelMilestone(25,  "Knowledge Seeker",  500,  "rare"),
        LevelMilestone(50,  "Academic Elite",    1000, "epic"),
        LevelMilestone(75,  "Master Scholar",    2000, "epic"),
        LevelMilestone(100, "Academic Legend",   5000, "legendary"),
    )
}

DEFAULT_TITLE = "Rookie Scholar"


def title_for_level(level: int) -> str:
    """Return the title earned by the highest milestone at or below *level*."""
    reached = [m for lvl, m in LEVEL_MILESTONES.items() if lvl <= level]
    if not reached:
        return DEFAULT_TITLE
    return max(reached, key=lambda m: m.level).title


def prestige_title(prestige_level: int) -> str:
    return f"Prestige {prestige_level} Scholar"


# ── streak tiers ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StreakTier:
    key: str
    label: str
    min_days: int
    max_days: int | None    # None = open-ended
    multiplier: float
    description: str

    def contains(self, days: int) -> bool:
        if days < self.min_days:
            return False
        return self.max_days is None or days <= self.max_days


# Ordered ascending; the first tier is the fallback.
STREAK_TIERS: list[StreakTier] = [
    StreakTier("beginner",  "Beginner",  1,   2,    1.0, "Just getting started!"),
    StreakTier("growing",   "Growing",   3,   6,    1.1, "Building momentum!"),
    StreakTier("strong",    "Strong",    7,   13,   1.2, "Getting stronger!"),
    StreakTier("blazing",   "Blazing",   14,  29,   1.3, "On fire!"),
    StreakTier("legendary", "Legendary", 30,  99,   1.5, "Unstoppable force!"),
    StreakTier("godlike",   "God-like",  100, None, 2.0, "Transcended mortal limits!"),
]


def streak_tier(current_streak: int) -> StreakTier:
    """Return the tier whose day range contains *current_streak*."""
    for tier in STREAK_TIERS:
        if tier.contains(current_streak):
            return tier
    return STREAK_TIERS[0]


# ── quest target scaling ─────────────────────────────────────────────────

QUEST_TIME_MIN = 15
QUEST_TIME_MAX = 60
DEFAULT_SESSION_MINUTES = 25


def scaled_time_target(average_session_minutes: float | None) -> tuple[int, int]:
    """Return ``(target_minutes, xp)`` for the adaptive daily time quest.

    The target follows the player's average session length, clamped to
    15-60 minutes; the reward is two XP per target minute.
    """
    if average_session_minutes is None:
        average_session_minutes = DEFAULT_SESSION_MINUTES
    target = int(max(QUEST_TIME_MIN, min(QUEST_TIME_MAX, round(average_session_minutes))))
    return target, target * 2


# ── reward presentation hints ────────────────────────────────────────────

_DISMISS_DELAY_MS: dict[str, int] = {
    "none":      3000,
    "common":    3000,
    "uncommon":  3000,
    "premium":   3500,
    "rare":      3500,
    "epic":      4000,
    "legendary": 5000,
}


def reward_dismiss_delay(tier: str) -> int:
    """Suggested auto-dismiss delay in milliseconds for a reward tier."""
    return _DISMISS_DELAY_MS.get(tier, 3000)
