"""
Reward shaping from structured outcomes.

Translates an outcome (success flag, timing, quality, user feedback,
timeout) into one scalar reward. Components are evaluated independently
and summed; the result is neither normalized nor clamped.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

# Reward signal constants
REWARD_SIGNALS: Dict[str, float] = {
    "SUCCESS": 1.0,
    "PARTIAL_SUCCESS": 0.5,
    "FAILURE": -0.5,
    "TIMEOUT": -0.3,
    "USER_POSITIVE": 0.8,
    "USER_NEGATIVE": -0.8,
    "FAST_COMPLETION": 0.2,
    "SLOW_COMPLETION": -0.1,
    "QUALITY_BONUS": 0.3,
}

FAST_DURATION_MS = 1000
SLOW_DURATION_MS = 10000
QUALITY_THRESHOLD = 0.8
POSITIVE_RATING = 4
NEGATIVE_RATING = 2


@dataclass
class OutcomeMetrics:
    """Performance metrics; ``duration`` is in milliseconds, ``quality`` in 0..1."""
    duration: Optional[float] = None
    quality: Optional[float] = None


@dataclass
class Feedback:
    """User feedback on a 1-5 rating scale."""
    rating: Optional[float] = None


@dataclass
class Outcome:
    """
    Observed result of taking an action.

    Attributes:
        success: Whether the action succeeded
        partial: Partial success (only consulted when ``success`` is False)
        timeout: Whether the action timed out
        metrics: Optional performance metrics
        feedback: Optional user feedback
    """
    success: bool = False
    partial: bool = False
    timeout: bool = False
    metrics: Optional[OutcomeMetrics] = None
    feedback: Optional[Feedback] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Outcome":
        """Build from the mapping form ``{"success", "metrics": {...}, "feedback": {...}}``."""
        metrics_data = data.get("metrics")
        feedback_data = data.get("feedback")
        return cls(
            success=bool(data.get("success", False)),
            partial=bool(data.get("partial", False)),
            timeout=bool(data.get("timeout", False)),
            metrics=OutcomeMetrics(
                duration=metrics_data.get("duration"),
                quality=metrics_data.get("quality"),
            ) if metrics_data is not None else None,
            feedback=Feedback(
                rating=feedback_data.get("rating"),
            ) if feedback_data is not None else None,
        )

    def summary(self) -> Dict[str, bool]:
        """Compact description used in RewardCalculated events."""
        return {
            "success": self.success,
            "partial": self.partial,
            "has_metrics": self.metrics is not None,
            "has_feedback": self.feedback is not None,
        }


OutcomeLike = Union[Outcome, Mapping[str, Any]]


def as_outcome(outcome: OutcomeLike) -> Outcome:
    if isinstance(outcome, Outcome):
        return outcome
    return Outcome.from_dict(outcome)


def calculate_reward(outcome: OutcomeLike) -> float:
    """
    Compute the shaped reward for an outcome. Pure function.

    Base: +1.0 success, else +0.5 partial, else -0.5.
    Duration: +0.2 under 1s, -0.1 over 10s.
    Quality: +0.3 above 0.8.
    Feedback: +0.8 for rating >= 4, -0.8 for rating <= 2.
    Timeout: -0.3.
    """
    outcome = as_outcome(outcome)
    reward = 0.0

    if outcome.success:
        reward += REWARD_SIGNALS["SUCCESS"]
    elif outcome.partial:
        reward += REWARD_SIGNALS["PARTIAL_SUCCESS"]
    else:
        reward += REWARD_SIGNALS["FAILURE"]

    metrics = outcome.metrics
    if metrics is not None and metrics.duration is not None:
        if metrics.duration < FAST_DURATION_MS:
            reward += REWARD_SIGNALS["FAST_COMPLETION"]
        elif metrics.duration > SLOW_DURATION_MS:
            reward += REWARD_SIGNALS["SLOW_COMPLETION"]

    if metrics is not None and metrics.quality is not None and metrics.quality > QUALITY_THRESHOLD:
        reward += REWARD_SIGNALS["QUALITY_BONUS"]

    feedback = outcome.feedback
    if feedback is not None and feedback.rating is not None:
        if feedback.rating >= POSITIVE_RATING:
            reward += REWARD_SIGNALS["USER_POSITIVE"]
        elif feedback.rating <= NEGATIVE_RATING:
            reward += REWARD_SIGNALS["USER_NEGATIVE"]

    if outcome.timeout:
        reward += REWARD_SIGNALS["TIMEOUT"]

    return reward
