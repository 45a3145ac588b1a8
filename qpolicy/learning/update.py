"""
Q-learning update rule and exploration decay.

    Q(s,a) <- Q(s,a) + alpha * (r + gamma * max_a' Q(s',a') - Q(s,a))

The read-modify-write on Q(s,a) is serialized per (state, action) pair, so
concurrent updates to the same pair are applied one after another and none
is lost. Updates to different pairs proceed independently.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterator, Optional, Tuple

from ..errors import RangeError
from .action_stats import ActionStatsStore
from .q_table import QTable


class KeyedLock:
    """
    One mutex per key, created on demand and dropped when no longer held.

    Example:
        >>> locks = KeyedLock()
        >>> with locks.hold(("s1", "a1")):
        ...     pass
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._refs: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
                self._refs[key] = 0
            self._refs[key] += 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ExplorationSchedule:
    """
    Live epsilon with multiplicative decay toward a floor.

    An explicit ``pin()`` marks the rate as caller-controlled, which stops a
    restored snapshot from overwriting it.
    """

    def __init__(self, initial: float, decay: float, minimum: float):
        self.initial = initial
        self.decay = decay
        self.minimum = minimum
        self._rate = initial
        self._overridden = False
        self._lock = threading.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def overridden(self) -> bool:
        return self._overridden

    def step(self) -> float:
        """Apply one decay step and return the new rate."""
        with self._lock:
            self._rate = max(self.minimum, self._rate * self.decay)
            return self._rate

    def pin(self, rate: float) -> None:
        if not 0.0 <= rate <= 1.0:
            raise RangeError(f"Exploration rate must be between 0 and 1, got {rate}")
        with self._lock:
            self._rate = float(rate)
            self._overridden = True

    def restore(self, rate: float) -> bool:
        """Adopt a persisted rate unless pinned. Returns True if adopted."""
        with self._lock:
            if self._overridden:
                return False
            self._rate = min(1.0, max(0.0, float(rate)))
            return True

    def reset(self) -> None:
        with self._lock:
            self._rate = self.initial
            self._overridden = False


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of one Q-learning step."""
    state_key: str
    action: str
    next_state_key: str
    reward: float
    previous_q: float
    new_q: float
    max_next_q: float
    exploration_rate: float


class UpdateEngine:
    """
    Applies the Q-learning rule to a Q-table and records Thompson counters.

    Args:
        q_table: Q-value storage
        action_stats: Beta-prior counters
        exploration: Epsilon schedule decayed after every update
        learning_rate: Step size alpha in (0, 1]
        discount_factor: Discount gamma in [0, 1]
    """

    def __init__(
        self,
        q_table: QTable,
        action_stats: ActionStatsStore,
        exploration: ExplorationSchedule,
        learning_rate: float,
        discount_factor: float,
    ):
        self.q_table = q_table
        self.action_stats = action_stats
        self.exploration = exploration
        self.learning_rate = learning_rate
        self.discount_factor = discount_factor
        self._pair_locks = KeyedLock()

    def apply(
        self,
        state_key: str,
        action: str,
        reward: float,
        next_state_key: str,
        terminal: bool = False,
        on_applied: Optional[Callable[[UpdateResult], Any]] = None,
    ) -> UpdateResult:
        """
        Run one update.

        Args:
            state_key: Canonical key of the state the action was taken in
            action: Action taken
            reward: Observed reward
            next_state_key: Canonical key of the resulting state
            terminal: If True the bootstrap term is 0
            on_applied: Called with the result while the pair lock is still
                held, so per-pair bookkeeping sees updates in applied order

        Returns:
            UpdateResult describing the transition
        """
        reward = float(reward)
        key: Tuple[str, str] = (state_key, action)

        with self._pair_locks.hold(key):
            current_q = self.q_table.get_q(state_key, action)
            max_next_q = 0.0 if terminal else self.q_table.max_q(next_state_key)
            new_q = current_q + self.learning_rate * (
                reward + self.discount_factor * max_next_q - current_q
            )
            self.q_table.set_q(state_key, action, new_q)

            self.action_stats.record_outcome(action, reward > 0)
            rate = self.exploration.step()

            result = UpdateResult(
                state_key=state_key,
                action=action,
                next_state_key=next_state_key,
                reward=reward,
                previous_q=current_q,
                new_q=new_q,
                max_next_q=max_next_q,
                exploration_rate=rate,
            )
            if on_applied is not None:
                on_applied(result)

        return result
