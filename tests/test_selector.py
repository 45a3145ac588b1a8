"""
Tests for epsilon-greedy and Thompson-sampling selection.
"""
import random
from collections import Counter

import pytest

from qpolicy.errors import InvalidInputError
from qpolicy.learning.action_stats import ActionStatsStore
from qpolicy.learning.q_table import QTable
from qpolicy.learning.selector import ActionSelector


@pytest.fixture
def selector():
    return ActionSelector(QTable(), ActionStatsStore(), rng=random.Random(11))


class TestEpsilonGreedy:
    """Tests for epsilon-greedy selection."""

    def test_zero_rate_is_greedy(self, selector):
        """With rate 0 the highest-valued action is always chosen."""
        selector.q_table.set_q("s", "b", 0.7)
        selector.q_table.set_q("s", "a", 0.2)
        for _ in range(200):
            selection = selector.epsilon_greedy("s", ["a", "b", "c"], 0.0)
            assert selection.action == "b"
            assert not selection.is_exploration
            assert selection.state_key == "s"

    def test_zero_rate_unknown_state_picks_first(self, selector):
        for _ in range(50):
            assert selector.epsilon_greedy("new", ["x", "y"], 0.0).action == "x"

    def test_full_rate_is_uniform(self, selector):
        """With rate 1 every candidate is chosen about equally often."""
        actions = ["a", "b", "c", "d"]
        counts = Counter()
        for _ in range(4000):
            selection = selector.epsilon_greedy("s", actions, 1.0)
            assert selection.is_exploration
            counts[selection.action] += 1
        for action in actions:
            assert 850 <= counts[action] <= 1150

    def test_selection_does_not_mutate(self, selector):
        selector.epsilon_greedy("s", ["a", "b"], 0.5)
        assert selector.q_table.state_count == 0
        assert selector.action_stats.action_count == 0

    def test_empty_actions_rejected(self, selector):
        with pytest.raises(InvalidInputError):
            selector.epsilon_greedy("s", [], 0.1)


class TestThompson:
    """Tests for Thompson sampling."""

    def test_concentrates_on_successful_action(self, selector):
        """Beta(100, 1) beats Beta(1, 100) essentially every time."""
        for _ in range(99):
            selector.action_stats.record_outcome("good", True)
            selector.action_stats.record_outcome("bad", False)

        picks = Counter(selector.thompson(["bad", "good"]).action for _ in range(200))
        assert picks["good"] == 200

    def test_samples_sorted_descending(self, selector):
        result = selector.thompson(["a", "b", "c"])
        values = [s.sample for s in result.all_samples]
        assert values == sorted(values, reverse=True)
        assert result.action == result.all_samples[0].action
        assert result.sample == result.all_samples[0].sample
        assert {s.action for s in result.all_samples} == {"a", "b", "c"}

    def test_unseen_actions_use_prior(self, selector):
        result = selector.thompson(["a"])
        assert result.all_samples[0].successes == 1
        assert result.all_samples[0].failures == 1
        assert selector.action_stats.action_count == 0

    def test_empty_actions_rejected(self, selector):
        with pytest.raises(InvalidInputError):
            selector.thompson([])
