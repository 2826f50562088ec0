"""Daily and weekly quests.

Categories
----------
    daily    3 quests, regenerated every 24 hours
    weekly   5 quests, regenerated every 7 days

A category is regenerated when it has never been reset, when more than
one interval has passed since its last reset, or when its list is
empty.  Regeneration replaces the whole list.

Progress
--------
``apply_quest_progress(type, amount, context)`` touches every incomplete
quest of that type in both lists:

    time            progress += amount (minutes)
    sessions        progress += 1
    subjects        distinct subjects this period, plus context subject
    streak          1 if the streak is alive, else 0
    xp              weekly_xp (absolute)
    early_bird      1 if a session today started before 10:00
    night_owl       1 if a session today started at or after 20:00
    personal_best   1 if today's longest session beats yesterday's
    new_subject     1 if a subject today was not studied yesterday
    week_balance    1 if this period holds a weekday and a weekend session
    double_days     days this period with 120+ minutes studied
    anything else   progress += amount  (tasks, level, achievement)

"This period" starts at the list's last reset.  Lists that were never
reset fall back to the calendar day of ``now`` (daily) or the trailing
7 days (weekly).  Progress is clamped to the target.
The first time a quest reaches its target it is marked completed, its
XP goes through the ledger's plain grant and one ``QUEST_COMPLETE``
event is emitted.  The plain grant never feeds back into quests.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Callable, Mapping

from .formulas import scaled_time_target
from .ledger import ProgressionLedger, apply_xp
from .models import (
    Quest,
    RewardEvent,
    RewardType,
    SessionRecord,
    Tier,
    Transition,
    UserStats,
)
from .variable_reward import RandomSource

logger = logging.getLogger(__name__)

EARLY_BIRD_HOUR = 10
NIGHT_OWL_HOUR = 20
DOUBLE_DAY_MINUTES = 120


# ── categories & templates ───────────────────────────────────────────────


@dataclass(frozen=True)
class QuestCategoryDef:
    key: str
    max_quests: int
    reset_interval: timedelta
    completion_tier: Tier


class QuestCategory(Enum):
    DAILY = QuestCategoryDef("daily", 3, timedelta(days=1), Tier.UNCOMMON)
    WEEKLY = QuestCategoryDef("weekly", 5, timedelta(days=7), Tier.EPIC)


@dataclass(frozen=True)
class QuestTemplate:
    id: str
    name: str
    description: str
    type: str
    target: float
    xp: int


ADAPTIVE_TIME_TEMPLATE = "study_25_min"

DAILY_TEMPLATES: tuple[QuestTemplate, ...] = (
    QuestTemplate("complete_session", "Complete 1 study session today",
                  "Complete 1 study session today", "sessions", 1, 75),
    QuestTemplate(ADAPTIVE_TIME_TEMPLATE, "Study for at least 25 minutes",
                  "Study for at least 25 minutes (Pomodoro length)", "time", 25, 100),
    QuestTemplate("finish_task", "Finish 1 assigned task",
                  "Finish 1 assigned task", "tasks", 1, 80),
    QuestTemplate("maintain_streak", "Maintain your streak",
                  "Maintain your streak (log in + study)", "streak", 1, 125),
    QuestTemplate("earn_50_xp", "Earn at least 50 XP",
                  "Earn at least 50 XP", "xp", 50, 50),
    QuestTemplate("beat_personal_best", "Beat your personal best",
                  "Beat your longest session from yesterday", "personal_best", 1, 100),
    QuestTemplate("early_bird", "Early bird bonus",
                  "Study before 10 AM", "early_bird", 1, 75),
    QuestTemplate("night_owl", "Night owl bonus",
                  "Study after 8 PM", "night_owl", 1, 75),
    QuestTemplate("new_subject", "Explore a new subject",
                  "Study a subject you didn't study yesterday", "new_subject", 1, 90),
    QuestTemplate("two_subjects", "Study two different subjects",
                  "Study two different subjects in one day", "subjects", 2, 100),
    QuestTemplate("three_sessions", "Three separate sessions",
                  "Complete 3 separate study sessions", "sessions", 3, 150),
)

WEEKLY_TEMPLATES: tuple[QuestTemplate, ...] = (
    QuestTemplate("weekly_7_sessions", "Complete 7 study sessions this week",
                  "Complete 7 study sessions this week", "sessions", 7, 600),
    QuestTemplate("weekly_5_hours", "Study for 5+ total hours this week",
                  "Study for 5+ total hours this week", "time", 300, 800),
    QuestTemplate("weekly_1000_xp", "Earn 1,000 XP this week",
                  "Earn 1,000 XP this week", "xp", 1000, 500),
    QuestTemplate("weekly_finish_tasks", "Finish 5 tasks this week",
                  "Finish 5 tasks this week", "tasks", 5, 500),
    QuestTemplate("weekly_new_level", "Reach a new level",
                  "Reach a new level", "level", 1, 1000),
    QuestTemplate("weekly_achievement", "Unlock at least 1 achievement",
                  "Unlock at least 1 achievement", "achievement", 1, 400),
    QuestTemplate("weekly_weekend_study", "Study on weekend and weekday",
                  "Study on both a weekday and a weekend day", "week_balance", 1, 500),
    QuestTemplate("weekly_double_days", "Two double study days",
                  "Do two double study days (2+ hours each)", "double_days", 2, 900),
)

TEMPLATES: dict[QuestCategory, tuple[QuestTemplate, ...]] = {
    QuestCategory.DAILY: DAILY_TEMPLATES,
    QuestCategory.WEEKLY: WEEKLY_TEMPLATES,
}

_COMPLETION_TIERS: dict[str, Tier] = {
    c.value.key: c.value.completion_tier for c in QuestCategory
}


# ── regeneration ─────────────────────────────────────────────────────────


def should_reset(last_reset_at: datetime | None, now: datetime, interval: timedelta) -> bool:
    """True when a category with this reset history is due for new quests."""
    return last_reset_at is None or now - last_reset_at > interval


def _average_session_minutes(stats: UserStats) -> float | None:
    if not stats.session_history:
        return None
    total = sum(r.duration_minutes for r in stats.session_history)
    return total / len(stats.session_history)


def generate_quests(
    stats: UserStats,
    category: QuestCategory,
    now: datetime,
    rng: RandomSource,
) -> tuple[Quest, ...]:
    """Pick ``max_quests`` templates at random and instantiate them."""
    definition = category.value
    templates = list(TEMPLATES[category])
    keys = {t.id: rng.random() for t in templates}
    templates.sort(key=lambda t: keys[t.id])

    stamp = int(now.timestamp() * 1000)
    quests = []
    for template in templates[:definition.max_quests]:
        target, xp = template.target, template.xp
        if template.id == ADAPTIVE_TIME_TEMPLATE:
            target, xp = scaled_time_target(_average_session_minutes(stats))
        quests.append(Quest(
            id=f"{template.id}_{stamp}",
            template_id=template.id,
            name=template.name,
            description=template.description,
            type=template.type,
            category=definition.key,
            target=target,
            xp=xp,
            deadline=now + definition.reset_interval,
        ))
    return tuple(quests)


def apply_generate(
    stats: UserStats, category: QuestCategory, now: datetime, rng: RandomSource,
) -> Transition:
    """Replace one category's list; ``result`` is the new quests."""
    quests = generate_quests(stats, category, now, rng)
    if category is QuestCategory.DAILY:
        updated = replace(stats, daily_quests=quests, last_daily_reset=now)
    else:
        updated = replace(stats, weekly_quests=quests, last_weekly_reset=now)
    logger.debug("generated %d %s quests", len(quests), category.value.key)
    return Transition(updated, [], quests)


def apply_ensure_quests(
    stats: UserStats, now: datetime, rng: RandomSource, *, expired_only: bool = False,
) -> Transition:
    """Regenerate every category that is due; ``result`` lists the keys.

    With *expired_only*, a category that was never generated is left
    alone and only lists past their interval are replaced.
    """
    regenerated = []
    for category, quests, last_reset in (
        (QuestCategory.DAILY, stats.daily_quests, stats.last_daily_reset),
        (QuestCategory.WEEKLY, stats.weekly_quests, stats.last_weekly_reset),
    ):
        if expired_only and last_reset is None and not quests:
            continue
        if not quests or should_reset(last_reset, now, category.value.reset_interval):
            stats = apply_generate(stats, category, now, rng).stats
            regenerated.append(category.value.key)
    return Transition(stats, [], tuple(regenerated))


# ── progress ─────────────────────────────────────────────────────────────


def _sessions_on(history: tuple[SessionRecord, ...], day: date) -> list[SessionRecord]:
    return [r for r in history if r.timestamp.date() == day]


def _sessions_since(history: tuple[SessionRecord, ...], start: datetime) -> list[SessionRecord]:
    return [r for r in history if r.timestamp >= start]


@dataclass(frozen=True)
class _ProgressContext:
    """Everything a progress rule may look at."""

    stats: UserStats
    amount: float
    subject: str | None
    period: list[SessionRecord]
    today: list[SessionRecord]
    yesterday: list[SessionRecord]


def _subjects(ctx: _ProgressContext, quest: Quest) -> float:
    subjects = {r.subject_name for r in ctx.period}
    if ctx.subject:
        subjects.add(ctx.subject)
    return len(subjects)


def _personal_best(ctx: _ProgressContext, quest: Quest) -> float:
    yesterday_best = max((r.duration_minutes for r in ctx.yesterday), default=0)
    today_best = max((r.duration_minutes for r in ctx.today), default=0)
    return 1 if today_best > yesterday_best else 0


def _new_subject(ctx: _ProgressContext, quest: Quest) -> float:
    seen_yesterday = {r.subject_name for r in ctx.yesterday}
    today = {r.subject_name for r in ctx.today}
    if ctx.subject:
        today.add(ctx.subject)
    return 1 if today - seen_yesterday else 0


def _week_balance(ctx: _ProgressContext, quest: Quest) -> float:
    weekdays = {r.timestamp.weekday() for r in ctx.period}
    has_weekday = any(d < 5 for d in weekdays)
    has_weekend = any(d >= 5 for d in weekdays)
    return 1 if has_weekday and has_weekend else 0


def _double_days(ctx: _ProgressContext, quest: Quest) -> float:
    minutes: dict[date, float] = {}
    for record in ctx.period:
        day = record.timestamp.date()
        minutes[day] = minutes.get(day, 0) + record.duration_minutes
    return sum(1 for m in minutes.values() if m >= DOUBLE_DAY_MINUTES)


ProgressRule = Callable[[_ProgressContext, Quest], float]

PROGRESS_RULES: dict[str, ProgressRule] = {
    "time": lambda ctx, q: q.progress + ctx.amount,
    "sessions": lambda ctx, q: q.progress + 1,
    "subjects": _subjects,
    "streak": lambda ctx, q: 1 if ctx.stats.current_streak > 0 else 0,
    "xp": lambda ctx, q: ctx.stats.weekly_xp,
    "early_bird": lambda ctx, q: 1 if any(
        r.timestamp.hour < EARLY_BIRD_HOUR for r in ctx.today) else 0,
    "night_owl": lambda ctx, q: 1 if any(
        r.timestamp.hour >= NIGHT_OWL_HOUR for r in ctx.today) else 0,
    "personal_best": _personal_best,
    "new_subject": _new_subject,
    "week_balance": _week_balance,
    "double_days": _double_days,
}


def _accumulate(ctx: _ProgressContext, quest: Quest) -> float:
    return quest.progress + ctx.amount


def _advance(quest: Quest, ctx: _ProgressContext) -> Quest:
    """The quest with recomputed, clamped progress."""
    if not math.isfinite(quest.target) or quest.target <= 0:
        raise ValueError(f"quest {quest.id} has target {quest.target!r}")
    rule = PROGRESS_RULES.get(quest.type, _accumulate)
    progress = float(rule(ctx, quest))
    if not math.isfinite(progress):
        raise ValueError(f"quest {quest.id} progress is {progress!r}")
    progress = min(max(progress, 0.0), quest.target)
    return replace(quest, progress=progress, completed=progress >= quest.target)


def apply_quest_progress(
    stats: UserStats,
    quest_type: str,
    amount: float,
    context: Mapping[str, Any] | None,
    now: datetime,
) -> Transition:
    """Advance matching quests; ``result`` is the tuple of completed quests."""
    subject = (context or {}).get("subject")
    history = stats.session_history
    today = now.date()

    base = dict(
        stats=stats,
        amount=amount,
        subject=subject,
        today=_sessions_on(history, today),
        yesterday=_sessions_on(history, today - timedelta(days=1)),
    )
    if stats.last_daily_reset is not None:
        daily_period = _sessions_since(history, stats.last_daily_reset)
    else:
        daily_period = base["today"]
    weekly_period = _sessions_since(
        history, stats.last_weekly_reset or now - timedelta(days=7),
    )

    events: list[RewardEvent] = []
    completed: list[Quest] = []
    grants: list[Quest] = []
    new_lists: dict[str, tuple[Quest, ...]] = {}

    for field_name, quests, period in (
        ("daily_quests", stats.daily_quests, daily_period),
        ("weekly_quests", stats.weekly_quests, weekly_period),
    ):
        ctx = _ProgressContext(period=period, **base)
        updated = []
        for quest in quests:
            if quest.completed or quest.type != quest_type:
                updated.append(quest)
                continue
            try:
                advanced = _advance(quest, ctx)
            except (TypeError, ValueError) as exc:
                logger.warning("skipping malformed quest: %s", exc)
                updated.append(quest)
                continue
            updated.append(advanced)
            if advanced.completed:
                grants.append(advanced)
        new_lists[field_name] = tuple(updated)

    stats = replace(stats, **new_lists)

    for quest in grants:
        events.append(RewardEvent(
            type=RewardType.QUEST_COMPLETE,
            tier=_COMPLETION_TIERS.get(quest.category, Tier.UNCOMMON),
            title=quest.name,
            description=quest.description,
            payload={"quest_id": quest.id, "category": quest.category, "xp": quest.xp},
            created_at=now,
        ))
        stats = replace(stats, quests_completed=stats.quests_completed + 1)
        granted = apply_xp(stats, quest.xp, "quest", now)
        stats = granted.stats
        events.extend(granted.events)
        completed.append(quest)
        logger.info("quest completed: %s (+%d XP)", quest.template_id, quest.xp)

    return Transition(stats, events, tuple(completed))


# ── engine ───────────────────────────────────────────────────────────────


class QuestEngine:
    """Generates and advances quests through the ledger."""

    def __init__(self, ledger: ProgressionLedger) -> None:
        self._ledger = ledger

    def generate_daily_quests(self) -> tuple[Quest, ...]:
        return self._generate(QuestCategory.DAILY)

    def generate_weekly_quests(self) -> tuple[Quest, ...]:
        return self._generate(QuestCategory.WEEKLY)

    def ensure_quests(self, *, expired_only: bool = False) -> tuple[str, ...]:
        """Regenerate whatever is due.  Safe to call on every load."""
        now = self._ledger.now()
        rng = self._ledger.rng
        return self._ledger.update(
            lambda s: apply_ensure_quests(s, now, rng, expired_only=expired_only)
        ).result

    def update_progress(
        self,
        quest_type: str,
        amount: float = 1,
        context: Mapping[str, Any] | None = None,
    ) -> tuple[Quest, ...]:
        """Advance quests of *quest_type*; returns the ones just completed."""
        now = self._ledger.now()
        return self._ledger.update(
            lambda s: apply_quest_progress(s, quest_type, amount, context, now)
        ).result

    def active_quests(self) -> list[Quest]:
        stats = self._ledger.stats
        return [q for q in (*stats.daily_quests, *stats.weekly_quests) if not q.completed]

    def _generate(self, category: QuestCategory) -> tuple[Quest, ...]:
        now = self._ledger.now()
        rng = self._ledger.rng
        return self._ledger.update(lambda s: apply_generate(s, category, now, rng)).result
