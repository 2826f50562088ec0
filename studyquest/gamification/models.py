"""Value types shared by every part of the progression engine.

``UserStats`` is the one aggregate the engine mutates.  It is a frozen
dataclass: every change produces a new snapshot through
:func:`dataclasses.replace`, and only the Progression Ledger swaps the
current snapshot for the next one.

``Quest``, ``SessionRecord`` and ``RewardEvent`` are immutable too.
``StudySession`` is the input handed over by the timer once a session
has finished.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

from .formulas import DEFAULT_TITLE, level_from_xp, reward_dismiss_delay


# ── enums ─────────────────────────────────────────────────────────────────


class RewardType(str, Enum):
    XP_EARNED = "XP_EARNED"
    LEVEL_UP = "LEVEL_UP"
    MILESTONE = "MILESTONE"
    ACHIEVEMENT = "ACHIEVEMENT"
    STREAK_MILESTONE = "STREAK_MILESTONE"
    STREAK_SAVED = "STREAK_SAVED"
    QUEST_COMPLETE = "QUEST_COMPLETE"
    VARIABLE_REWARD = "VARIABLE_REWARD"
    PRESTIGE = "PRESTIGE"


class Tier(str, Enum):
    NONE = "none"
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"
    PREMIUM = "premium"


# ── input ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StudySession:
    """A finished study session, as reported by the timer."""

    subject_name: str
    duration_minutes: float
    timestamp: datetime
    difficulty: float = 1.0
    mood: str = "neutral"


@dataclass(frozen=True)
class SessionRecord:
    """One entry of ``UserStats.session_history``."""

    subject_name: str
    duration_minutes: float
    timestamp: datetime
    difficulty: float = 1.0
    mood: str = "neutral"
    xp_earned: int = 0
    bonuses: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_name": self.subject_name,
            "duration_minutes": self.duration_minutes,
            "timestamp": self.timestamp.isoformat(),
            "difficulty": self.difficulty,
            "mood": self.mood,
            "xp_earned": self.xp_earned,
            "bonuses": dict(self.bonuses),
        }


# ── quests ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Quest:
    """A time-boxed progress target.

    Once ``completed`` is set the quest is never advanced again.
    """

    id: str
    template_id: str
    name: str
    type: str
    target: float
    xp: int
    deadline: datetime
    category: str = "daily"
    description: str = ""
    progress: float = 0
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "category": self.category,
            "target": self.target,
            "progress": self.progress,
            "xp": self.xp,
            "completed": self.completed,
            "deadline": self.deadline.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Quest":
        """Rebuild a quest from its JSON form.

        Raises ``KeyError``/``TypeError``/``ValueError`` on malformed
        input; callers loading persisted lists skip such records.
        """
        target = float(data["target"])
        if not math.isfinite(target) or target <= 0:
            raise ValueError(f"quest target must be positive, got {target!r}")
        progress = min(max(float(data.get("progress", 0)), 0.0), target)
        return cls(
            id=str(data["id"]),
            template_id=str(data.get("template_id", data["id"])),
            name=str(data["name"]),
            description=str(data.get("description", "")),
            type=str(data["type"]),
            category=str(data.get("category", "daily")),
            target=target,
            progress=progress,
            xp=int(data["xp"]),
            completed=bool(data.get("completed", False)),
            deadline=datetime.fromisoformat(data["deadline"]),
        )


# ── the aggregate ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UserStats:
    """Everything the engine knows about one account."""

    # progression
    xp: int = 0
    level: int = 1
    prestige_level: int = 0
    current_title: str = DEFAULT_TITLE

    # lifetime counters
    total_sessions: int = 0
    total_study_time_minutes: float = 0
    total_xp_earned: int = 0
    weekly_xp: int = 0

    # streaks
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: datetime | None = None
    streak_savers: int = 3

    # achievements / quests
    achievements: tuple[str, ...] = ()
    daily_quests: tuple[Quest, ...] = ()
    weekly_quests: tuple[Quest, ...] = ()
    last_daily_reset: datetime | None = None
    last_weekly_reset: datetime | None = None
    quests_completed: int = 0

    # statistics
    subject_mastery: dict[str, float] = field(default_factory=dict)
    session_history: tuple[SessionRecord, ...] = ()
    jackpot_count: int = 0

    def with_xp(self, xp: int) -> "UserStats":
        """Return a copy with ``xp`` set and ``level`` recomputed."""
        return replace(self, xp=xp, level=level_from_xp(xp))

    def has_achievement(self, achievement_id: str) -> bool:
        return achievement_id in self.achievements


# ── events ────────────────────────────────────────────────────────────────


def _new_event_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class RewardEvent:
    """One presentation-facing notification."""

    type: RewardType
    tier: Tier
    title: str
    created_at: datetime
    description: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=_new_event_id)

    @property
    def dismiss_after_ms(self) -> int:
        """Suggested auto-dismiss delay; longer for rarer tiers."""
        return reward_dismiss_delay(self.tier.value)


class Transition(NamedTuple):
    """Result of a pure state transition.

    ``result`` carries the operation-specific return value (an
    ``XPResult``, a ``StreakCheck``, a bool, ...).
    """

    stats: UserStats
    events: list[RewardEvent]
    result: Any = None
