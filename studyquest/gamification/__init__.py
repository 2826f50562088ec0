"""Progression & reward engine."""

from .models import (
    Quest,
    RewardEvent,
    RewardType,
    SessionRecord,
    StudySession,
    Tier,
    Transition,
    UserStats,
)
from .errors import InvalidSessionError, StudyQuestError
from .formulas import (
    XPProgress,
    level_from_xp,
    streak_tier,
    total_xp_for_level,
    xp_for_level,
    xp_progress,
)
from .variable_reward import VariableReward, draw_variable_reward
from .ledger import ProgressionLedger, XPResult
from .dispatcher import RewardDispatcher
from .achievements import REGISTRY, AchievementDef, AchievementEvaluator
from .streaks import StreakCheck, StreakState, StreakStatus, StreakTracker
from .quests import QuestCategory, QuestEngine, should_reset
from .intake import SessionIntake, SessionOutcome

__all__ = [
    "Quest",
    "RewardEvent",
    "RewardType",
    "SessionRecord",
    "StudySession",
    "Tier",
    "Transition",
    "UserStats",
    "InvalidSessionError",
    "StudyQuestError",
    "XPProgress",
    "level_from_xp",
    "streak_tier",
    "total_xp_for_level",
    "xp_for_level",
    "xp_progress",
    "VariableReward",
    "draw_variable_reward",
    "ProgressionLedger",
    "XPResult",
    "RewardDispatcher",
    "REGISTRY",
    "AchievementDef",
    "AchievementEvaluator",
    "StreakCheck",
    "StreakState",
    "StreakStatus",
    "StreakTracker",
    "QuestCategory",
    "QuestEngine",
    "should_reset",
    "SessionIntake",
    "SessionOutcome",
]
