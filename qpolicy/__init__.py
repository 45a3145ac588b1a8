"""
qpolicy: tabular reinforcement-learning policy engine.

Learns which action to take in which state from observed outcomes, using
Q-learning with epsilon-greedy and Thompson-sampling selection.
"""
from .config import PolicyConfig, PolicyPresets, DEFAULT_POLICY_CONFIG
from .engine import ReinforcementLearner
from .errors import (
    PolicyError,
    InvalidInputError,
    RangeError,
    ConfigError,
    PersistenceError,
    SnapshotNotFound,
    SideEffectError,
)
from .learning import (
    REWARD_SIGNALS,
    Outcome,
    OutcomeMetrics,
    Feedback,
    calculate_reward,
    state_to_key,
    ActionStats,
    Episode,
    ExperienceStep,
    Selection,
    ThompsonSelection,
)
from .persistence import (
    KnowledgeStore,
    InMemoryKnowledgeStore,
    FileKnowledgeStore,
    PolicyPersistence,
    PeriodicSaver,
)
from .sinks import (
    LearningEvents,
    EventSink,
    AuditLog,
    AuditRecord,
    NullEventSink,
    RecordingEventSink,
    CallbackEventSink,
    JsonlAuditLog,
)

__version__ = "0.1.0"

__all__ = [
    "ReinforcementLearner",
    "PolicyConfig",
    "PolicyPresets",
    "DEFAULT_POLICY_CONFIG",
    "PolicyError",
    "InvalidInputError",
    "RangeError",
    "ConfigError",
    "PersistenceError",
    "SnapshotNotFound",
    "SideEffectError",
    "REWARD_SIGNALS",
    "Outcome",
    "OutcomeMetrics",
    "Feedback",
    "calculate_reward",
    "state_to_key",
    "ActionStats",
    "Episode",
    "ExperienceStep",
    "Selection",
    "ThompsonSelection",
    "KnowledgeStore",
    "InMemoryKnowledgeStore",
    "FileKnowledgeStore",
    "PolicyPersistence",
    "PeriodicSaver",
    "LearningEvents",
    "EventSink",
    "AuditLog",
    "AuditRecord",
    "NullEventSink",
    "RecordingEventSink",
    "CallbackEventSink",
    "JsonlAuditLog",
]
