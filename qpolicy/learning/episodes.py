"""
Episode bookkeeping.

Update steps accumulate in an open buffer until ``end_episode()`` closes
it. Closed episodes are kept in a bounded history; the oldest is evicted
first once the bound is reached.
"""
from __future__ import annotations

import secrets
import threading
import time
from collections import deque
from dataclasses import dataclass, field, asdict, replace
from typing import Deque, Dict, List, Optional

DEFAULT_MAX_EPISODES = 100


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ExperienceStep:
    """One applied update."""
    state_key: str
    action: str
    reward: float
    next_state_key: str
    timestamp: int

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Episode:
    """
    A closed learning trajectory.

    Attributes:
        id: Episode identifier (``ep_<millis>_<hex>``)
        steps: Steps in the order they were applied
        total_reward: Sum of step rewards
        step_count: Number of steps
        start_time: Timestamp of the first step (ms)
        end_time: Time the episode was closed (ms)
    """
    id: str
    steps: List[ExperienceStep] = field(default_factory=list)
    total_reward: float = 0.0
    step_count: int = 0
    start_time: int = 0
    end_time: int = 0

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "steps": [s.to_dict() for s in self.steps],
            "total_reward": self.total_reward,
            "step_count": self.step_count,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


class EpisodeTracker:
    """Open-episode buffer plus bounded FIFO history of closed episodes."""

    def __init__(self, max_episodes: int = DEFAULT_MAX_EPISODES):
        self.max_episodes = max_episodes
        self._current: List[ExperienceStep] = []
        self._history: Deque[Episode] = deque(maxlen=max_episodes)
        self._lock = threading.Lock()

    def record(self, step: ExperienceStep) -> None:
        with self._lock:
            # Wall clock can step backwards; keep step timestamps non-decreasing
            if self._current and step.timestamp < self._current[-1].timestamp:
                step = replace(step, timestamp=self._current[-1].timestamp)
            self._current.append(step)

    def end_episode(self) -> Optional[Episode]:
        """
        Close the open episode.

        Returns:
            The closed Episode, or None if no steps were recorded
        """
        with self._lock:
            if not self._current:
                return None

            end = now_ms()
            steps = list(self._current)
            episode = Episode(
                id=f"ep_{end}_{secrets.token_hex(3)}",
                steps=steps,
                total_reward=sum(s.reward for s in steps),
                step_count=len(steps),
                start_time=steps[0].timestamp,
                end_time=end,
            )
            self._history.append(episode)
            self._current = []
            return episode

    def history(self, limit: Optional[int] = None) -> List[Episode]:
        """Closed episodes, oldest first; ``limit`` keeps only the most recent."""
        with self._lock:
            episodes = list(self._history)
        if limit:
            return episodes[-limit:]
        return episodes

    def current_steps(self) -> List[ExperienceStep]:
        with self._lock:
            return list(self._current)

    @property
    def episode_count(self) -> int:
        return len(self._history)

    @property
    def current_step_count(self) -> int:
        return len(self._current)

    def clear(self) -> None:
        with self._lock:
            self._current = []
            self._history.clear()
