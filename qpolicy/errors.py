"""
Error taxonomy for the policy engine.

Correctness-critical errors (invalid input, range violations, bad config)
propagate to the caller. Persistence and side-effect errors are raised by
the collaborators and handled at the engine boundary.
"""
from __future__ import annotations


class PolicyError(Exception):
    """Base class for all policy engine errors."""


class InvalidInputError(PolicyError, ValueError):
    """Caller supplied input the engine cannot act on (e.g. no actions)."""


class RangeError(PolicyError, ValueError):
    """A numeric argument fell outside its permitted interval."""


class ConfigError(PolicyError, ValueError):
    """Configuration failed validation at construction time."""


class PersistenceError(PolicyError):
    """Reading from or writing to the knowledge store failed."""

    def __init__(self, message: str, key: str = ""):
        super().__init__(message)
        self.key = key


class SnapshotNotFound(PersistenceError):
    """No snapshot exists under the requested key."""


class SideEffectError(PolicyError):
    """Publishing an event or appending an audit record failed."""
