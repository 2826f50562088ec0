"""Probabilistic bonus XP layered on top of the deterministic award.

A single uniform draw ``r`` walks a cumulative ladder.  Every threshold
is scaled by a performance multiplier (x1.5 when this session beat the
player's recent average), and the first tier whose scaled threshold
exceeds ``r`` wins:

    tier        threshold   bonus (fraction of base XP)
    legendary   0.10        x5.0
    epic        0.20        x2.0
    rare        0.30        x1.5
    uncommon    0.40        x0.5
    none        -           0

The bonus is further scaled by ``min(2, minutes / 60)`` so long sessions
pay out more.  The random source is injected; anything with a
``random()`` method returning a float in ``[0, 1)`` works.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Protocol, Sequence


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True)
class RewardTierDef:
    tier: str
    threshold: float
    multiplier: float
    title: str
    description: str


# Walk order matters: rarest first.
REWARD_LADDER: tuple[RewardTierDef, ...] = (
    RewardTierDef("legendary", 0.10, 5.0, "LEGENDARY JACKPOT!",
                  "+500% bonus XP for a {minutes:g} min session!"),
    RewardTierDef("epic",      0.20, 2.0, "EPIC BONUS!",
                  "+200% bonus XP for great focus!"),
    RewardTierDef("rare",      0.30, 1.5, "RARE BONUS!",
                  "+150% bonus XP for consistency!"),
    RewardTierDef("uncommon",  0.40, 0.5, "Lucky Scholar!",
                  "+50% bonus XP for good work!"),
)

PERFORMANCE_BOOST = 1.5
SESSION_BONUS_CAP = 2.0
RECENT_SESSIONS_WINDOW = 10


@dataclass(frozen=True)
class VariableReward:
    tier: str
    bonus_xp: int
    title: str = ""
    description: str = ""

    @property
    def is_bonus(self) -> bool:
        return self.tier != "none"


NO_REWARD = VariableReward(tier="none", bonus_xp=0)


def performance_multiplier(
    session_minutes: float, recent_durations: Sequence[float],
) -> float:
    """x1.5 when this session is longer than the recent average."""
    recent = list(recent_durations)[:RECENT_SESSIONS_WINDOW]
    average = sum(recent) / len(recent) if recent else session_minutes
    return PERFORMANCE_BOOST if session_minutes > average else 1.0


def draw_variable_reward(
    base_xp: int,
    session_minutes: float,
    recent_durations: Sequence[float] = (),
    rng: RandomSource | None = None,
) -> VariableReward:
    """Draw a bonus tier for a finished session.

    *recent_durations* holds the most recent session lengths (at most
    ten are used).  Returns :data:`NO_REWARD` when no tier wins.
    """
    if rng is None:
        rng = random.Random()

    session_bonus = min(SESSION_BONUS_CAP, session_minutes / 60)
    boost = performance_multiplier(session_minutes, recent_durations)
    roll = rng.random()

    for tier in REWARD_LADDER:
        if roll < tier.threshold * boost:
            return VariableReward(
                tier=tier.tier,
                bonus_xp=math.floor(base_xp * tier.multiplier * session_bonus),
                title=tier.title,
                description=tier.description.format(minutes=session_minutes),
            )
    return NO_REWARD
