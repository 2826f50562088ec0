"""End-to-end tests for SessionIntake: the whole session pipeline.

Covers: first-session rewards, level-up bursts, streak savers, prestige,
quest and achievement interplay, persistence and the read side.
"""

from datetime import timedelta

import pytest

from studyquest.database.repository import StatsRepository
from studyquest.gamification.errors import InvalidSessionError
from studyquest.gamification.formulas import total_xp_for_level
from studyquest.gamification.intake import SessionIntake
from studyquest.gamification.models import Quest, RewardType, UserStats
from studyquest.gamification.streaks import StreakState

from helpers import NOW, SignalCollector, make_session


def _types(intake):
    return [e.type for e in intake.reward_queue.pending()]


def _intake(stats, clock, rng, **kwargs):
    return SessionIntake(stats, clock=clock, rng=rng, **kwargs)


class _FlakyRepository:
    """Repository double whose writes always fail."""

    def __init__(self):
        self.saves = 0
        self.logged = 0

    def load(self):
        return UserStats()

    def save(self, stats):
        self.saves += 1
        return False

    def log_session(self, record):
        self.logged += 1
        return False


# ═══════════════════════════════════════════════════════════════════════════
#  SESSION PIPELINE
# ═══════════════════════════════════════════════════════════════════════════


class TestRecordSession:

    def test_first_session(self, intake):
        outcome = intake.record_session(make_session(30))
        assert outcome.xp.total_xp == 375
        assert outcome.streak.streak == 1
        assert outcome.achievements_unlocked == ("first_session",)
        assert _types(intake) == [
            RewardType.XP_EARNED, RewardType.LEVEL_UP,
            RewardType.LEVEL_UP, RewardType.ACHIEVEMENT,
        ]
        stats = intake.user_stats
        assert stats.xp == 400
        assert stats.level == 3
        assert stats.total_sessions == 1
        assert stats.current_streak == 1

    def test_level_up_burst(self, clock, no_bonus):
        intake = _intake(UserStats().with_xp(40), clock, no_bonus)
        levels = SignalCollector()
        intake.ledger.level_up.connect(levels.slot)
        outcome = intake.record_session(make_session(35))
        assert outcome.xp.levels_crossed == (2, 3, 4)
        assert levels.items == [2, 3, 4]
        assert _types(intake).count(RewardType.LEVEL_UP) == 3

    def test_invalid_session_changes_nothing(self, intake):
        recorded = SignalCollector()
        intake.session_recorded.connect(recorded.slot)
        with pytest.raises(InvalidSessionError):
            intake.record_session(make_session(0))
        assert intake.user_stats == UserStats()
        assert len(intake.reward_queue) == 0
        assert len(recorded) == 0

    def test_session_recorded_signal(self, intake):
        recorded = SignalCollector()
        intake.session_recorded.connect(recorded.slot)
        outcome = intake.record_session(make_session(30))
        assert recorded.last is outcome

    def test_grant_session_xp_runs_whole_pipeline(self, intake):
        result = intake.grant_session_xp(make_session(30))
        assert result.total_xp == 375
        assert intake.user_stats.current_streak == 1
        assert intake.user_stats.has_achievement("first_session")

    def test_consecutive_days_build_streak(self, intake, clock):
        intake.record_session(make_session(30))
        clock.advance(days=1)
        intake.record_session(make_session(30, at=clock.now))
        assert intake.user_stats.current_streak == 2
        assert intake.user_stats.total_sessions == 2

    def test_streak_milestone_reported_in_outcome(self, clock, no_bonus):
        stats = UserStats(total_sessions=4, current_streak=2, longest_streak=2,
                          last_study_date=NOW - timedelta(days=1),
                          achievements=("first_session",))
        intake = _intake(stats, clock, no_bonus)
        outcome = intake.record_session(make_session(30))
        assert outcome.streak.streak == 3
        assert outcome.achievements_unlocked == ("streak_3",)
        assert RewardType.STREAK_MILESTONE in _types(intake)


# ═══════════════════════════════════════════════════════════════════════════
#  STREAK SAVERS & PRESTIGE
# ═══════════════════════════════════════════════════════════════════════════


class TestStreakCommands:

    def _at_risk(self, clock, no_bonus):
        stats = UserStats(current_streak=5, longest_streak=5, streak_savers=2,
                          last_study_date=NOW - timedelta(days=3))
        return _intake(stats, clock, no_bonus)

    def test_saver_offered_then_used(self, clock, no_bonus):
        intake = self._at_risk(clock, no_bonus)
        outcome = intake.record_session(make_session(30))
        assert outcome.streak.can_use_saver
        assert intake.user_stats.current_streak == 5

        assert intake.use_streak_saver() is True
        stats = intake.user_stats
        assert stats.streak_savers == 1
        assert stats.current_streak == 5
        assert stats.last_study_date == NOW
        assert _types(intake)[-1] is RewardType.STREAK_SAVED

    def test_break_accepted(self, clock, no_bonus):
        intake = self._at_risk(clock, no_bonus)
        intake.record_session(make_session(30))
        assert intake.accept_streak_break() is True
        assert intake.user_stats.current_streak == 1
        assert intake.user_stats.longest_streak == 5
        assert intake.streak_overview().state is StreakState.ACTIVE


class TestPrestige:

    def test_prestige_then_achievement(self, clock, no_bonus):
        stats = UserStats().with_xp(total_xp_for_level(100))
        intake = _intake(stats, clock, no_bonus)
        assert intake.prestige() is True
        assert (intake.user_stats.level, intake.user_stats.prestige_level) == (1, 1)
        assert _types(intake) == [RewardType.PRESTIGE]

        assert "prestige_master" in intake.check_achievements()
        assert intake.check_achievements() == ()

    def test_prestige_refused(self, intake):
        assert intake.prestige() is False
        assert len(intake.reward_queue) == 0


# ═══════════════════════════════════════════════════════════════════════════
#  QUESTS & ACHIEVEMENTS
# ═══════════════════════════════════════════════════════════════════════════


class TestQuestInterplay:

    def test_session_completes_daily_quests(self, intake):
        intake.generate_daily_quests()
        outcome = intake.record_session(make_session(30))
        assert {q.template_id for q in outcome.quests_completed} == {
            "complete_session", "study_25_min",
        }
        stats = intake.user_stats
        assert stats.quests_completed == 2
        # 375 session, 50 + 75 quests, 25 first_session
        assert stats.xp == 525

    def test_complete_task(self, intake):
        intake.generate_daily_quests()
        completed = intake.complete_task()
        assert [q.template_id for q in completed] == ["finish_task"]

    def test_level_quest_fed_by_session(self, intake):
        intake.generate_weekly_quests()
        outcome = intake.record_session(make_session(30))
        assert "weekly_new_level" in {q.template_id for q in outcome.quests_completed}

    def test_achievement_quest_fed_by_unlocks(self, clock, no_bonus):
        quest = Quest(id="weekly_achievement_1", template_id="weekly_achievement",
                      name="Unlock at least 1 achievement", type="achievement",
                      target=1, xp=400, deadline=NOW + timedelta(days=7),
                      category="weekly")
        stats = UserStats(weekly_quests=(quest,), last_weekly_reset=NOW)
        intake = _intake(stats, clock, no_bonus)
        outcome = intake.record_session(make_session(30))
        assert [q.template_id for q in outcome.quests_completed] == ["weekly_achievement"]
        assert intake.user_stats.xp == 375 + 25 + 400

    def test_expired_quests_replaced_before_progress(self, intake, clock):
        intake.ensure_quests()
        stale = {q.id for q in intake.user_stats.daily_quests}
        clock.advance(days=3)
        outcome = intake.record_session(make_session(30, at=clock.now))

        stats = intake.user_stats
        assert stale.isdisjoint(q.id for q in stats.daily_quests)
        assert stats.last_daily_reset == clock.now
        assert stats.last_weekly_reset == NOW
        assert outcome.quests_completed
        assert all(q.deadline > clock.now for q in outcome.quests_completed
                   if q.category == "daily")

    def test_unexpired_quests_kept(self, intake, clock):
        generated = intake.generate_daily_quests()
        clock.advance(hours=2)
        intake.record_session(make_session(30, at=clock.now))
        assert [q.id for q in intake.user_stats.daily_quests] == [q.id for q in generated]

    def test_ensure_quests_once(self, intake):
        assert intake.ensure_quests() == ("daily", "weekly")
        assert intake.ensure_quests() == ()

    def test_check_achievements_twice(self, clock, no_bonus):
        intake = _intake(UserStats(total_sessions=1), clock, no_bonus)
        assert intake.check_achievements() == ("first_session",)
        assert intake.check_achievements() == ()


# ═══════════════════════════════════════════════════════════════════════════
#  READ SIDE
# ═══════════════════════════════════════════════════════════════════════════


class TestReadSide:

    def test_xp_progress(self, intake):
        intake.record_session(make_session(30))
        progress = intake.xp_progress()
        assert progress.current == 400 - 191
        assert progress.needed == 259

    def test_streak_overview(self, intake):
        assert intake.streak_overview().state is StreakState.BROKEN
        intake.record_session(make_session(30))
        assert intake.streak_overview().state is StreakState.ACTIVE


# ═══════════════════════════════════════════════════════════════════════════
#  PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════════


class TestPersistence:

    def test_fresh_account_gets_quests_on_load(self, clock, no_bonus):
        intake = SessionIntake.from_repository(StatsRepository(), clock=clock, rng=no_bonus)
        stats = intake.user_stats
        assert len(stats.daily_quests) == 3
        assert len(stats.weekly_quests) == 5
        assert StatsRepository().load().daily_quests == stats.daily_quests

    def test_stale_quests_replaced_on_load(self, clock, no_bonus):
        stale = SessionIntake.from_repository(
            StatsRepository(), clock=clock, rng=no_bonus,
        ).user_stats.daily_quests
        clock.advance(days=2)
        reloaded = SessionIntake.from_repository(
            StatsRepository(), clock=clock, rng=no_bonus,
        ).user_stats
        assert all(q.deadline > clock.now for q in reloaded.daily_quests)
        assert {q.id for q in stale}.isdisjoint(q.id for q in reloaded.daily_quests)

    def test_session_saved_and_reloaded(self, clock, no_bonus):
        intake = SessionIntake.from_repository(StatsRepository(), clock=clock, rng=no_bonus)
        intake.record_session(make_session(30))
        live = intake.user_stats

        reloaded = SessionIntake.from_repository(
            StatsRepository(), clock=clock, rng=no_bonus,
        ).user_stats
        assert reloaded.xp == live.xp
        assert reloaded.level == live.level
        assert reloaded.total_sessions == 1
        assert reloaded.achievements == live.achievements
        assert "first_session" in reloaded.achievements
        assert reloaded.daily_quests == live.daily_quests
        assert reloaded.quests_completed == live.quests_completed
        assert len(reloaded.session_history) == 1
        assert reloaded.session_history[0].xp_earned == 375

    def test_write_failures_keep_memory_state(self, clock, no_bonus):
        repository = _FlakyRepository()
        intake = SessionIntake.from_repository(repository, clock=clock, rng=no_bonus)
        intake.record_session(make_session(30))
        assert intake.user_stats.total_sessions == 1
        assert intake.user_stats.xp > 375
        assert repository.logged == 1
        assert repository.saves == 2      # quests on load, then the session

    def test_quests_persisted(self, clock, no_bonus):
        intake = SessionIntake.from_repository(StatsRepository(), clock=clock, rng=no_bonus)
        generated = intake.generate_daily_quests()
        reloaded = StatsRepository().load()
        assert reloaded.daily_quests == generated
        assert reloaded.last_daily_reset == NOW
