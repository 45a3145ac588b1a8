"""Tests for reward shaping."""
import pytest

from qpolicy.learning.reward import (
    REWARD_SIGNALS,
    Feedback,
    Outcome,
    OutcomeMetrics,
    calculate_reward,
)


class TestRewardSignals:
    """Reward constants."""

    def test_values(self):
        assert REWARD_SIGNALS["SUCCESS"] == 1.0
        assert REWARD_SIGNALS["PARTIAL_SUCCESS"] == 0.5
        assert REWARD_SIGNALS["FAILURE"] == -0.5
        assert REWARD_SIGNALS["TIMEOUT"] == -0.3
        assert REWARD_SIGNALS["USER_POSITIVE"] == 0.8
        assert REWARD_SIGNALS["USER_NEGATIVE"] == -0.8
        assert REWARD_SIGNALS["FAST_COMPLETION"] == 0.2
        assert REWARD_SIGNALS["SLOW_COMPLETION"] == -0.1
        assert REWARD_SIGNALS["QUALITY_BONUS"] == 0.3


class TestCalculateReward:
    """Tests for calculate_reward."""

    def test_base_rewards(self):
        assert calculate_reward({"success": True}) == 1.0
        assert calculate_reward({"success": False, "partial": True}) == 0.5
        assert calculate_reward({"success": False}) == -0.5

    def test_success_outranks_partial(self):
        assert calculate_reward({"success": True, "partial": True}) == 1.0

    def test_all_bonuses_add_up(self):
        """Success + fast + quality + positive feedback = 2.3."""
        reward = calculate_reward({
            "success": True,
            "metrics": {"duration": 500, "quality": 0.9},
            "feedback": {"rating": 5},
        })
        assert reward == pytest.approx(2.3)

    def test_duration_bands(self):
        assert calculate_reward({"success": True, "metrics": {"duration": 999}}) == pytest.approx(1.2)
        assert calculate_reward({"success": True, "metrics": {"duration": 1000}}) == pytest.approx(1.0)
        assert calculate_reward({"success": True, "metrics": {"duration": 10000}}) == pytest.approx(1.0)
        assert calculate_reward({"success": True, "metrics": {"duration": 10001}}) == pytest.approx(0.9)

    def test_quality_threshold_is_exclusive(self):
        assert calculate_reward({"success": True, "metrics": {"quality": 0.8}}) == pytest.approx(1.0)
        assert calculate_reward({"success": True, "metrics": {"quality": 0.81}}) == pytest.approx(1.3)

    def test_feedback_bands(self):
        assert calculate_reward({"success": True, "feedback": {"rating": 4}}) == pytest.approx(1.8)
        assert calculate_reward({"success": True, "feedback": {"rating": 3}}) == pytest.approx(1.0)
        assert calculate_reward({"success": True, "feedback": {"rating": 2}}) == pytest.approx(0.2)

    def test_timeout_penalty_co_occurs(self):
        """Penalties and bonuses are independent, not a cascade."""
        reward = calculate_reward(Outcome(
            success=True,
            timeout=True,
            metrics=OutcomeMetrics(duration=100, quality=0.95),
        ))
        assert reward == pytest.approx(1.0 + 0.2 + 0.3 - 0.3)

    def test_worst_case(self):
        reward = calculate_reward(Outcome(
            success=False,
            timeout=True,
            metrics=OutcomeMetrics(duration=20000),
            feedback=Feedback(rating=1),
        ))
        assert reward == pytest.approx(-0.5 - 0.1 - 0.8 - 0.3)

    def test_missing_metric_values_ignored(self):
        assert calculate_reward({"success": True, "metrics": {}, "feedback": {}}) == 1.0

    def test_pure_function(self):
        outcome = Outcome(success=True, metrics=OutcomeMetrics(duration=200))
        assert calculate_reward(outcome) == calculate_reward(outcome)


class TestOutcome:
    """Outcome parsing."""

    def test_from_dict(self):
        outcome = Outcome.from_dict({
            "success": True,
            "metrics": {"duration": 10, "quality": 0.5},
            "feedback": {"rating": 3},
        })
        assert outcome.success
        assert outcome.metrics == OutcomeMetrics(duration=10, quality=0.5)
        assert outcome.feedback == Feedback(rating=3)

    def test_summary(self):
        summary = Outcome(success=False, partial=True).summary()
        assert summary == {
            "success": False,
            "partial": True,
            "has_metrics": False,
            "has_feedback": False,
        }
