"""
Reinforcement learner facade.

Combines the Q-table, Thompson counters, selectors, update rule, episode
tracker and persistence behind one object owned by its caller:

    learner = ReinforcementLearner(config, store=FileKnowledgeStore("./state"))
    learner.initialize()
    choice = learner.select_action({"task": "lint"}, ["fast", "thorough"])
    reward = learner.calculate_reward({"success": True, "metrics": {"duration": 400}})
    learner.update({"task": "lint"}, choice.action, reward, None)
    learner.shutdown()
"""
from __future__ import annotations

import logging
import math
import random
import threading
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import PolicyConfig
from .errors import InvalidInputError, PersistenceError
from .learning.action_stats import ActionStats, ActionStatsStore
from .learning.episodes import Episode, EpisodeTracker, ExperienceStep, now_ms
from .learning.q_table import QTable, is_terminal_state, state_to_key
from .learning.reward import Outcome, OutcomeLike, OutcomeMetrics, as_outcome, calculate_reward
from .learning.selector import ActionSelector, Selection, ThompsonSelection
from .learning.update import ExplorationSchedule, UpdateEngine, UpdateResult
from .logging_config import get_logger
from .persistence import KnowledgeStore, PeriodicSaver, PolicyPersistence, SNAPSHOT_VERSION
from .sinks import (
    AuditLog,
    AuditRecord,
    EventSink,
    LearningEvents,
    append_safely,
    publish_safely,
)


AGENT_COMPLETED = "agent:completed"
AGENT_FAILED = "agent:failed"


def _empty_stats() -> Dict[str, Any]:
    return {
        "total_updates": 0,
        "average_reward": 0.0,
        "exploration_actions": 0,
        "exploitation_actions": 0,
        "last_save_time": 0,
    }


def _decode_stats(raw: Any) -> Dict[str, Any]:
    stats = _empty_stats()
    if raw is None:
        return stats
    if not isinstance(raw, Mapping):
        raise TypeError(f"Snapshot stats must be a mapping, got {type(raw).__name__}")
    for key, default in stats.items():
        if key in raw:
            stats[key] = type(default)(raw[key])
    return stats


def _decode_rate(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    rate = float(raw)
    if not math.isfinite(rate):
        raise ValueError(f"Exploration rate must be finite, got {raw!r}")
    return rate


class ReinforcementLearner:
    """
    Tabular Q-learning engine with epsilon-greedy and Thompson selection.

    Features:
    - Q(s,a) updates serialized per state-action pair
    - Exploration rate decay with a floor, or an explicit pinned rate
    - Reward shaping from structured outcomes
    - Bounded episode history
    - Snapshot persistence with periodic auto-save

    Args:
        config: Validated configuration (defaults if omitted)
        store: Knowledge store for snapshots; None disables persistence
        event_sink: Optional receiver of learning events
        audit_log: Optional receiver of update reasoning records
        rng: Random generator; defaults to one seeded from ``config.seed``
    """

    def __init__(
        self,
        config: Optional[PolicyConfig] = None,
        store: Optional[KnowledgeStore] = None,
        event_sink: Optional[EventSink] = None,
        audit_log: Optional[AuditLog] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or PolicyConfig()
        self.logger = get_logger(__name__, policy_key=self.config.policy_key, subsystem="learning")
        self.event_sink = event_sink
        self.audit_log = audit_log
        self.rng = rng if rng is not None else random.Random(self.config.seed)

        self.q_table = QTable()
        self.action_stats = ActionStatsStore()
        self.exploration = ExplorationSchedule(
            initial=self.config.exploration_rate,
            decay=self.config.exploration_decay,
            minimum=self.config.min_exploration,
        )
        self.updater = UpdateEngine(
            self.q_table,
            self.action_stats,
            self.exploration,
            learning_rate=self.config.learning_rate,
            discount_factor=self.config.discount_factor,
        )
        self.selector = ActionSelector(self.q_table, self.action_stats, rng=self.rng)
        self.episodes = EpisodeTracker(max_episodes=self.config.max_episode_history)

        self.persistence = PolicyPersistence(store, self.config.policy_key) if store is not None else None
        self._saver: Optional[PeriodicSaver] = None

        self._stats = _empty_stats()
        self._lock = threading.RLock()
        self._save_lock = threading.Lock()
        self.initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, timeout: Optional[float] = None) -> None:
        """Restore the latest snapshot (if any) and start auto-save."""
        if self.initialized:
            return

        self.load_policy(timeout=timeout)

        if self.persistence is not None and self.config.save_interval_ms > 0:
            self._saver = PeriodicSaver(self._periodic_save, self.config.save_interval_seconds)
            self._saver.start()

        self.initialized = True
        self.logger.info(
            f"ReinforcementLearner initialized (states={self.q_table.state_count}, "
            f"learning_rate={self.config.learning_rate}, "
            f"exploration_rate={self.exploration.rate:.4f})"
        )

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop auto-save and write a final snapshot.

        Raises:
            PersistenceError: If the final save fails
        """
        if self._saver is not None:
            self._saver.stop()
            self._saver = None

        try:
            self.save_policy(timeout=timeout)
        finally:
            self.initialized = False
        self.logger.info("ReinforcementLearner shut down")

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_action(self, state: Any, available_actions: Sequence[str]) -> Selection:
        """
        Epsilon-greedy selection.

        Raises:
            InvalidInputError: If ``available_actions`` is empty
        """
        actions = list(available_actions or [])
        if not actions:
            raise InvalidInputError("No available actions provided")

        state_key = state_to_key(state)
        selection = self.selector.epsilon_greedy(state_key, actions, self.exploration.rate)

        with self._lock:
            if selection.is_exploration:
                self._stats["exploration_actions"] += 1
            else:
                self._stats["exploitation_actions"] += 1

        self.logger.debug(
            f"{'Exploring' if selection.is_exploration else 'Exploiting'} with action {selection.action}",
            extra={"state_key": state_key, "action": selection.action},
        )
        publish_safely(self.event_sink, LearningEvents.ACTION_SELECTED.value, {
            "agent": self.config.agent_name,
            "state_key": state_key,
            "action": selection.action,
            "is_exploration": selection.is_exploration,
            "exploration_rate": self.exploration.rate,
        })
        return selection

    def select_action_thompson(self, state: Any, available_actions: Sequence[str]) -> ThompsonSelection:
        """
        Thompson sampling over per-action Beta posteriors.

        Raises:
            InvalidInputError: If ``available_actions`` is empty or the
                state cannot be keyed
        """
        actions = list(available_actions or [])
        if not actions:
            raise InvalidInputError("No available actions provided")
        state_key = state_to_key(state)

        selection = self.selector.thompson(actions)
        self.logger.debug(
            f"Thompson sampling selected {selection.action} (sample={selection.sample:.4f})",
            extra={"state_key": state_key, "action": selection.action},
        )
        return selection

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def update(self, state: Any, action: str, reward: float, next_state: Any = None) -> float:
        """
        Apply one Q-learning step and return the new Q-value.

        A ``next_state`` of None or an empty container is terminal.
        """
        if not isinstance(action, str) or not action:
            raise InvalidInputError(f"Action must be a non-empty string, got {action!r}")

        state_key = state_to_key(state)
        next_state_key = state_to_key(next_state)

        counts: List[int] = []
        result = self.updater.apply(
            state_key,
            action,
            reward,
            next_state_key,
            terminal=is_terminal_state(next_state),
            on_applied=lambda applied: counts.append(self._record_step(applied)),
        )

        self._emit_update(result, total_updates=counts[0])
        return result.new_q

    def _record_step(self, result: UpdateResult) -> int:
        with self._lock:
            self.episodes.record(ExperienceStep(
                state_key=result.state_key,
                action=result.action,
                reward=result.reward,
                next_state_key=result.next_state_key,
                timestamp=now_ms(),
            ))
            self._stats["total_updates"] += 1
            n = self._stats["total_updates"]
            self._stats["average_reward"] += (result.reward - self._stats["average_reward"]) / n
            return n

    def _emit_update(self, result: UpdateResult, total_updates: int) -> None:
        self.logger.event(
            "policy_updated",
            f"Q-value updated from {result.previous_q:.4f} to {result.new_q:.4f}",
            level=logging.DEBUG,
            state_key=result.state_key,
            action=result.action,
            reward=result.reward,
            total_updates=total_updates,
        )
        append_safely(self.audit_log, AuditRecord(
            agent=self.config.agent_name,
            context={"state": result.state_key, "action": result.action},
            decision={
                "reward": result.reward,
                "new_q": result.new_q,
                "exploration_rate": result.exploration_rate,
            },
            reasoning=f"Q-value updated from {result.previous_q:.4f} to {result.new_q:.4f}",
            metadata={
                "previous_q": result.previous_q,
                "new_q": result.new_q,
                "reward": result.reward,
                "learning_rate": self.config.learning_rate,
                "discount_factor": self.config.discount_factor,
            },
        ))
        publish_safely(self.event_sink, LearningEvents.POLICY_UPDATED.value, {
            "agent": self.config.agent_name,
            "state_key": result.state_key,
            "action": result.action,
            "reward": result.reward,
            "previous_q": result.previous_q,
            "new_q": result.new_q,
            "total_updates": total_updates,
        })

    def calculate_reward(self, outcome: OutcomeLike) -> float:
        """Shaped reward for an outcome (dataclass or mapping form)."""
        outcome = as_outcome(outcome)
        reward = calculate_reward(outcome)
        publish_safely(self.event_sink, LearningEvents.REWARD_CALCULATED.value, {
            "agent": self.config.agent_name,
            "outcome": outcome.summary(),
            "reward": reward,
        })
        return reward

    def end_episode(self) -> Optional[Episode]:
        """Close the open episode; None if it had no steps."""
        episode = self.episodes.end_episode()
        if episode is None:
            return None

        publish_safely(self.event_sink, LearningEvents.EPISODE_ENDED.value, {
            "agent": self.config.agent_name,
            "episode_id": episode.id,
            "total_reward": episode.total_reward,
            "steps": episode.step_count,
            "episode_count": self.episodes.episode_count,
        })
        self.logger.debug(
            f"Episode ended: {episode.id} "
            f"(total_reward={episode.total_reward:.4f}, steps={episode.step_count})"
        )
        return episode

    def observe_agent_event(self, event_name: str, data: Mapping[str, Any]) -> Optional[float]:
        """
        Learn automatically from agent lifecycle events.

        ``agent:completed`` is a success (``execution_time_ms`` becomes the
        duration); ``agent:failed`` is a failure. Events must carry both
        ``state`` and ``action``; anything else is ignored.

        Returns:
            The new Q-value, or None if the event was ignored
        """
        if not self.config.enable_auto_observe:
            return None
        if not data.get("state") or not data.get("action"):
            return None

        if event_name == AGENT_COMPLETED:
            outcome = Outcome(
                success=True,
                metrics=OutcomeMetrics(duration=data.get("execution_time_ms")),
            )
        elif event_name == AGENT_FAILED:
            outcome = Outcome(success=False)
        else:
            return None

        reward = self.calculate_reward(outcome)
        return self.update(data["state"], data["action"], reward, data.get("next_state"))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def exploration_rate(self) -> float:
        return self.exploration.rate

    def get_q_values(self, state: Any) -> Dict[str, float]:
        return self.q_table.values_for(state_to_key(state))

    def get_all_q_values(self) -> Dict[str, Dict[str, float]]:
        return self.q_table.to_dict()

    def get_action_stats(self, action: str) -> ActionStats:
        """Counters for ``action``; the (1, 1) prior if never observed."""
        return self.action_stats.stats_for(action)

    def get_all_action_stats(self) -> Dict[str, ActionStats]:
        return self.action_stats.all_stats()

    def get_episode_history(self, limit: Optional[int] = None) -> List[Episode]:
        return self.episodes.history(limit)

    def get_current_episode(self) -> List[ExperienceStep]:
        return self.episodes.current_steps()

    def get_stats(self) -> Dict[str, Any]:
        """Summary statistics."""
        with self._lock:
            stats = dict(self._stats)
        stats.update({
            "state_count": self.q_table.state_count,
            "action_count": self.action_stats.action_count,
            "exploration_rate": self.exploration.rate,
            "exploration_rate_overridden": self.exploration.overridden,
            "episode_count": self.episodes.episode_count,
            "current_episode_steps": self.episodes.current_step_count,
            "config": {
                "learning_rate": self.config.learning_rate,
                "discount_factor": self.config.discount_factor,
                "min_exploration": self.config.min_exploration,
            },
        })
        return stats

    # ------------------------------------------------------------------
    # Mutation outside the update rule
    # ------------------------------------------------------------------

    def set_exploration_rate(self, rate: float) -> None:
        """
        Pin the exploration rate; a restored snapshot will not override it.

        Raises:
            RangeError: If ``rate`` is outside [0, 1]
        """
        self.exploration.pin(rate)

    def reset(self, keep_config: bool = True) -> None:
        """
        Clear Q-values, counters, episodes and statistics.

        Args:
            keep_config: If False, also restore the configured exploration
                rate and drop any pinned override
        """
        with self._lock:
            self.q_table.clear()
            self.action_stats.clear()
            self.episodes.clear()
            self._stats = _empty_stats()
            if not keep_config:
                self.exploration.reset()
        self.logger.info("ReinforcementLearner reset")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Durable projection of the learned policy."""
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "q_table": self.q_table.to_snapshot(),
                "action_stats": self.action_stats.to_snapshot(),
                "exploration_rate": self.exploration.rate,
                "stats": dict(self._stats),
                "config": {
                    "learning_rate": self.config.learning_rate,
                    "discount_factor": self.config.discount_factor,
                    "min_exploration": self.config.min_exploration,
                },
                "saved_at": now_ms(),
            }

    def save_policy(self, timeout: Optional[float] = None) -> bool:
        """
        Write a snapshot to the knowledge store.

        Waits for an in-flight save to finish first.

        Returns:
            True if a snapshot was written, False without a store

        Raises:
            PersistenceError: If the store write fails or times out
        """
        return self._save(blocking=True, timeout=timeout)

    def _periodic_save(self) -> None:
        try:
            if not self._save(blocking=False):
                self.logger.debug("Skipping auto-save tick; a save is already running")
        except PersistenceError as e:
            self.logger.error(f"Auto-save failed for {self.config.policy_key}: {e}")

    def _save(self, blocking: bool, timeout: Optional[float] = None) -> bool:
        if self.persistence is None:
            return False

        if blocking:
            acquired = self._save_lock.acquire(timeout=timeout) if timeout is not None else self._save_lock.acquire()
            if not acquired:
                raise PersistenceError(
                    f"Timed out waiting for in-flight save ({timeout}s)", key=self.config.policy_key
                )
        elif not self._save_lock.acquire(blocking=False):
            return False

        try:
            start = time.perf_counter()
            document = self.snapshot()
            self.persistence.save(document, timeout=timeout)
            with self._lock:
                self._stats["last_save_time"] = document["saved_at"]
            self.logger.event(
                "policy_saved",
                f"Policy saved (states={len(document['q_table'])}, "
                f"actions={len(document['action_stats'])})",
                subsystem="persistence",
                latency_ms=(time.perf_counter() - start) * 1000,
            )
            return True
        finally:
            self._save_lock.release()

    def load_policy(self, timeout: Optional[float] = None) -> bool:
        """
        Restore the latest snapshot.

        The snapshot is decoded in full before anything is replaced, so a
        missing, unreadable or malformed snapshot is logged and leaves the
        learner untouched (empty on a cold start).

        Returns:
            True if a snapshot was restored
        """
        if self.persistence is None:
            return False

        start = time.perf_counter()
        try:
            data = self.persistence.load(timeout=timeout)
        except PersistenceError as e:
            self.logger.warning(f"Failed to load policy, starting cold: {e}", extra={"subsystem": "persistence"})
            return False

        if data is None:
            self.logger.info(f"No saved policy for {self.config.policy_key}, starting cold")
            return False

        try:
            q_values = QTable.decode_snapshot(data.get("q_table") or [])
            action_stats = ActionStatsStore.decode_snapshot(data.get("action_stats") or [])
            rate = _decode_rate(data.get("exploration_rate"))
            stats = _decode_stats(data.get("stats"))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Malformed policy snapshot, starting cold: {e}", extra={"subsystem": "persistence"})
            return False

        with self._lock:
            self.q_table.replace_all(q_values)
            self.action_stats.replace_all(action_stats)
            if rate is not None and not self.exploration.restore(rate):
                self.logger.debug("Exploration rate pinned by caller; ignoring persisted value")
            self._stats = stats

        self.logger.latency("load_policy", (time.perf_counter() - start) * 1000, subsystem="persistence")
        self.logger.event(
            "policy_loaded",
            f"Policy loaded (states={len(q_values)}, actions={len(action_stats)})",
            subsystem="persistence",
        )
        return True
