"""
Learning core for the policy engine.

Design:
- Tabular Q-values keyed by canonical state key and opaque action id
- Epsilon-greedy selection with multiplicative exploration decay
- Thompson sampling over per-action Beta(successes, failures) posteriors
- Additive reward shaping from structured outcomes
- Bounded episode history
"""

from .sampling import standard_normal, sample_gamma, sample_beta
from .q_table import QTable, state_to_key, is_terminal_state, NULL_STATE_KEY
from .action_stats import ActionStats, ActionStatsStore
from .reward import (
    REWARD_SIGNALS,
    Outcome,
    OutcomeMetrics,
    Feedback,
    calculate_reward,
)
from .selector import ActionSelector, Selection, ThompsonSample, ThompsonSelection
from .update import UpdateEngine, UpdateResult, ExplorationSchedule, KeyedLock
from .episodes import EpisodeTracker, Episode, ExperienceStep


__all__ = [
    # Sampling
    "standard_normal",
    "sample_gamma",
    "sample_beta",

    # Stores
    "QTable",
    "state_to_key",
    "is_terminal_state",
    "NULL_STATE_KEY",
    "ActionStats",
    "ActionStatsStore",

    # Rewards
    "REWARD_SIGNALS",
    "Outcome",
    "OutcomeMetrics",
    "Feedback",
    "calculate_reward",

    # Selection
    "ActionSelector",
    "Selection",
    "ThompsonSample",
    "ThompsonSelection",

    # Updates
    "UpdateEngine",
    "UpdateResult",
    "ExplorationSchedule",
    "KeyedLock",

    # Episodes
    "EpisodeTracker",
    "Episode",
    "ExperienceStep",
]
