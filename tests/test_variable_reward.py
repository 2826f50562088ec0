"""Tests for the probabilistic bonus draw."""

import random

import pytest

from studyquest.gamification.variable_reward import (
    NO_REWARD,
    PERFORMANCE_BOOST,
    draw_variable_reward,
    performance_multiplier,
)

from helpers import FixedRandom


class TestPerformanceMultiplier:

    def test_no_history_uses_session_itself(self):
        assert performance_multiplier(30, []) == 1.0

    def test_longer_than_average(self):
        assert performance_multiplier(45, [30, 30]) == PERFORMANCE_BOOST

    def test_equal_to_average_is_not_a_boost(self):
        assert performance_multiplier(30, [20, 40]) == 1.0

    def test_only_ten_most_recent_count(self):
        recent = [10] * 10 + [1000] * 5
        assert performance_multiplier(20, recent) == PERFORMANCE_BOOST


class TestTierLadder:

    def test_seeded_low_draw_is_legendary(self):
        reward = draw_variable_reward(100, 30, [30], FixedRandom(0.005))
        assert reward.tier == "legendary"
        # 100 * 5 * min(2, 30 / 60)
        assert reward.bonus_xp == 250

    @pytest.mark.parametrize("roll,tier", [
        (0.15, "epic"),
        (0.25, "rare"),
        (0.35, "uncommon"),
    ])
    def test_tier_boundaries(self, roll, tier):
        assert draw_variable_reward(100, 60, [60], FixedRandom(roll)).tier == tier

    def test_high_draw_is_none(self):
        reward = draw_variable_reward(100, 60, [60], FixedRandom(0.5))
        assert reward == NO_REWARD
        assert reward.bonus_xp == 0
        assert not reward.is_bonus

    def test_performance_scales_thresholds(self):
        # 0.5 misses the plain ladder but lands under 0.40 * 1.5
        reward = draw_variable_reward(100, 60, [30], FixedRandom(0.5))
        assert reward.tier == "uncommon"

    def test_session_bonus_capped_at_two(self):
        reward = draw_variable_reward(100, 600, [600], FixedRandom(0.15))
        assert reward.bonus_xp == 100 * 2 * 2

    def test_fractional_bonus_is_floored(self):
        reward = draw_variable_reward(33, 60, [60], FixedRandom(0.35))
        assert reward.bonus_xp == 16     # floor(33 * 0.5)

    def test_none_tier_never_pays(self):
        rng = random.Random(1234)
        for _ in range(500):
            reward = draw_variable_reward(500, 45, [30, 60], rng)
            if reward.tier == "none":
                assert reward.bonus_xp == 0
            else:
                assert reward.bonus_xp > 0

    def test_titles_present_for_bonus_tiers(self):
        reward = draw_variable_reward(100, 30, [], FixedRandom(0.05))
        assert reward.title
        assert "30" in reward.description
