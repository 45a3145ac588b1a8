"""
Policy engine configuration.

Configuration is immutable and validated at construction: out-of-range
values raise ConfigError instead of being clamped. Configs can be built
programmatically, from presets, from JSON/YAML files, and adjusted with
environment overrides.
"""
from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "QPOLICY_"


@dataclass(frozen=True)
class PolicyConfig:
    """
    Configuration for the reinforcement learner.

    Attributes:
        learning_rate: Step size alpha, in (0, 1]
        discount_factor: Discount gamma, in [0, 1]
        exploration_rate: Initial epsilon, in [0, 1]
        exploration_decay: Multiplicative epsilon decay per update, in (0, 1]
        min_exploration: Epsilon floor, in [0, exploration_rate]
        batch_size: Experience batch size hint for callers
        save_interval_ms: Auto-save period; 0 disables the timer
        max_episode_history: Closed episodes kept in memory
        policy_key: Knowledge store key for snapshots
        agent_name: Agent name used in events and audit records
        enable_auto_observe: Learn from agent completion/failure events
        seed: Seed for deterministic selection (None = random)
    """
    learning_rate: float = 0.1
    discount_factor: float = 0.95
    exploration_rate: float = 0.2
    exploration_decay: float = 0.995
    min_exploration: float = 0.05
    batch_size: int = 32
    save_interval_ms: int = 60000
    max_episode_history: int = 100
    policy_key: str = "rl-policy"
    agent_name: str = "reinforcement-learner"
    enable_auto_observe: bool = True
    seed: Optional[int] = None

    def __post_init__(self):
        if not 0.0 < self.learning_rate <= 1.0:
            raise ConfigError(f"learning_rate must be in (0, 1], got {self.learning_rate}")
        if not 0.0 <= self.discount_factor <= 1.0:
            raise ConfigError(f"discount_factor must be in [0, 1], got {self.discount_factor}")
        if not 0.0 <= self.exploration_rate <= 1.0:
            raise ConfigError(f"exploration_rate must be in [0, 1], got {self.exploration_rate}")
        if not 0.0 < self.exploration_decay <= 1.0:
            raise ConfigError(f"exploration_decay must be in (0, 1], got {self.exploration_decay}")
        if not 0.0 <= self.min_exploration <= self.exploration_rate:
            raise ConfigError(
                f"min_exploration must be in [0, exploration_rate={self.exploration_rate}], "
                f"got {self.min_exploration}"
            )
        if self.batch_size < 1:
            raise ConfigError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.save_interval_ms < 0:
            raise ConfigError(f"save_interval_ms must be >= 0, got {self.save_interval_ms}")
        if self.max_episode_history < 1:
            raise ConfigError(f"max_episode_history must be >= 1, got {self.max_episode_history}")
        if not self.policy_key:
            raise ConfigError("policy_key must not be empty")

    @property
    def save_interval_seconds(self) -> float:
        return self.save_interval_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PolicyConfig":
        """Create from a mapping, ignoring unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        try:
            return cls(**{k: v for k, v in data.items() if k in known})
        except TypeError as e:
            raise ConfigError(f"Invalid config: {e}") from e

    def replace(self, **changes: Any) -> "PolicyConfig":
        """Copy with some fields changed (validated again)."""
        return dataclasses.replace(self, **changes)

    def save(self, path: str) -> None:
        """Save config to a JSON or YAML file (chosen by extension)."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            if path.endswith((".yaml", ".yml")):
                yaml.safe_dump(self.to_dict(), f, sort_keys=False)
            else:
                json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> Optional["PolicyConfig"]:
        """
        Load config from a JSON or YAML file.

        Settings may sit at the top level or under a ``policy`` section.

        Returns:
            PolicyConfig, or None if the file does not exist

        Raises:
            ConfigError: If the file cannot be parsed or fails validation
        """
        if not os.path.exists(path):
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
            if path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(content) or {}
            else:
                data = json.loads(content)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        if isinstance(data.get("policy"), dict):
            data = data["policy"]
        return cls.from_dict(data)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "PolicyConfig":
        """
        Apply ``QPOLICY_*`` environment overrides.

        Recognized: LEARNING_RATE, DISCOUNT_FACTOR, EXPLORATION_RATE,
        MIN_EXPLORATION, SAVE_INTERVAL_MS, SEED.
        """
        environ = os.environ if environ is None else environ
        parsers = {
            "learning_rate": float,
            "discount_factor": float,
            "exploration_rate": float,
            "min_exploration": float,
            "save_interval_ms": int,
            "seed": int,
        }
        changes: Dict[str, Any] = {}
        for name, parse in parsers.items():
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            try:
                changes[name] = parse(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid {ENV_PREFIX}{name.upper()}={raw!r}: {e}") from e
        return self.replace(**changes) if changes else self


DEFAULT_POLICY_CONFIG = PolicyConfig()


class PolicyPresets:
    """Pre-configured learner settings."""

    @staticmethod
    def default() -> PolicyConfig:
        return PolicyConfig()

    @staticmethod
    def exploratory() -> PolicyConfig:
        """High initial exploration with slow decay."""
        return PolicyConfig(
            exploration_rate=0.5,
            exploration_decay=0.999,
            min_exploration=0.1,
        )

    @staticmethod
    def greedy() -> PolicyConfig:
        """Pure exploitation; useful once a policy has converged."""
        return PolicyConfig(
            exploration_rate=0.0,
            exploration_decay=1.0,
            min_exploration=0.0,
        )

    @staticmethod
    def deterministic_test(seed: int = 42) -> PolicyConfig:
        """Seeded, timer-free configuration for tests."""
        return PolicyConfig(
            save_interval_ms=0,
            enable_auto_observe=False,
            seed=seed,
        )
