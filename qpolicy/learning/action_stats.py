"""
Per-action Beta-prior counters for Thompson sampling.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Sequence

PRIOR_SUCCESSES = 1
PRIOR_FAILURES = 1


@dataclass
class ActionStats:
    """
    Success/failure counts for one action.

    Starts at the uniform Beta(1, 1) prior. Counters only ever increase.
    """
    successes: int = PRIOR_SUCCESSES
    failures: int = PRIOR_FAILURES

    @property
    def trials(self) -> int:
        """Observed outcomes, excluding the prior."""
        return self.successes + self.failures - PRIOR_SUCCESSES - PRIOR_FAILURES

    @property
    def mean(self) -> float:
        """Posterior mean success probability."""
        return self.successes / (self.successes + self.failures)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionStats":
        return cls(
            successes=int(data.get("successes", PRIOR_SUCCESSES)),
            failures=int(data.get("failures", PRIOR_FAILURES)),
        )


class ActionStatsStore:
    """Action -> ActionStats mapping, materialized on first recorded outcome."""

    def __init__(self) -> None:
        self._stats: Dict[str, ActionStats] = {}
        self._lock = threading.Lock()

    def stats_for(self, action: str) -> ActionStats:
        """
        Current counters for ``action``.

        Unseen actions report the prior without being added to the store,
        so read-only callers such as the selectors never mutate it.
        """
        with self._lock:
            stats = self._stats.get(action)
            if stats is None:
                return ActionStats()
            return ActionStats(stats.successes, stats.failures)

    def record_outcome(self, action: str, success: bool) -> ActionStats:
        with self._lock:
            stats = self._stats.setdefault(action, ActionStats())
            if success:
                stats.successes += 1
            else:
                stats.failures += 1
            return ActionStats(stats.successes, stats.failures)

    def all_stats(self) -> Dict[str, ActionStats]:
        with self._lock:
            return {a: ActionStats(s.successes, s.failures) for a, s in self._stats.items()}

    @property
    def action_count(self) -> int:
        return len(self._stats)

    def clear(self) -> None:
        with self._lock:
            self._stats = {}

    def to_snapshot(self) -> List[Sequence[Any]]:
        """Encode as ``[[action, {successes, failures}], ...]``."""
        with self._lock:
            return [[action, stats.to_dict()] for action, stats in self._stats.items()]

    @staticmethod
    def decode_snapshot(entries: Iterable[Sequence[Any]]) -> Dict[str, ActionStats]:
        """
        Decode snapshot entries without touching any store.

        Raises:
            KeyError, TypeError, ValueError: If an entry is malformed
        """
        return {str(action): ActionStats.from_dict(data) for action, data in entries}

    def replace_all(self, stats: Dict[str, ActionStats]) -> None:
        with self._lock:
            self._stats = {a: ActionStats(s.successes, s.failures) for a, s in stats.items()}

    def load_snapshot(self, entries: Iterable[Sequence[Any]]) -> None:
        self.replace_all(self.decode_snapshot(entries))
