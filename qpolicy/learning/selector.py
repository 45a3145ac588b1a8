"""
Action selection strategies.

- Epsilon-greedy over the Q-table
- Thompson sampling over per-action Beta posteriors

Selection is read-only: neither strategy writes Q-values or counters.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..errors import InvalidInputError
from .action_stats import ActionStatsStore
from .q_table import QTable
from .sampling import sample_beta


@dataclass(frozen=True)
class Selection:
    """Epsilon-greedy result."""
    action: str
    is_exploration: bool
    state_key: str


@dataclass(frozen=True)
class ThompsonSample:
    """One candidate's posterior draw."""
    action: str
    sample: float
    successes: int
    failures: int


@dataclass(frozen=True)
class ThompsonSelection:
    """Thompson sampling result; ``all_samples`` is sorted by sample, descending."""
    action: str
    sample: float
    all_samples: List[ThompsonSample] = field(default_factory=list)


def _require_actions(actions: Sequence[str]) -> None:
    if not actions:
        raise InvalidInputError("No available actions provided")


class ActionSelector:
    """
    Chooses actions from a Q-table and action statistics.

    Args:
        q_table: Q-value storage
        action_stats: Beta-prior counters
        rng: Random generator (seed it for reproducible selection)
    """

    def __init__(
        self,
        q_table: QTable,
        action_stats: ActionStatsStore,
        rng: Optional[random.Random] = None,
    ):
        self.q_table = q_table
        self.action_stats = action_stats
        self.rng = rng if rng is not None else random.Random()

    def epsilon_greedy(
        self,
        state_key: str,
        actions: Sequence[str],
        exploration_rate: float,
    ) -> Selection:
        """
        Explore uniformly with probability ``exploration_rate``; otherwise
        take the best known action (ties to the earliest candidate).
        """
        _require_actions(actions)

        if self.rng.random() < exploration_rate:
            action = actions[self.rng.randrange(len(actions))]
            return Selection(action=action, is_exploration=True, state_key=state_key)

        action = self.q_table.best_action(state_key, actions)
        return Selection(action=action, is_exploration=False, state_key=state_key)

    def thompson(self, actions: Sequence[str]) -> ThompsonSelection:
        """
        Draw one Beta(successes, failures) sample per candidate and pick the
        highest. Ties keep candidate order because the sort is stable.
        """
        _require_actions(actions)

        samples = []
        for action in actions:
            stats = self.action_stats.stats_for(action)
            samples.append(ThompsonSample(
                action=action,
                sample=sample_beta(stats.successes, stats.failures, self.rng),
                successes=stats.successes,
                failures=stats.failures,
            ))

        samples.sort(key=lambda s: s.sample, reverse=True)
        best = samples[0]
        return ThompsonSelection(action=best.action, sample=best.sample, all_samples=samples)
