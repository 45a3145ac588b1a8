"""
Event and audit collaborators.

The engine publishes learning events to an ``EventSink`` and appends
reasoning records to an ``AuditLog``. Both are optional and best-effort:
a failing collaborator is logged and never interrupts learning.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .errors import SideEffectError

logger = logging.getLogger(__name__)


class LearningEvents(str, Enum):
    """Event names published by the engine."""
    ACTION_SELECTED = "ActionSelected"
    POLICY_UPDATED = "PolicyUpdated"
    REWARD_CALCULATED = "RewardCalculated"
    EPISODE_ENDED = "EpisodeEnded"


LEARNING_UPDATE = "LEARNING_UPDATE"


@dataclass
class AuditRecord:
    """Structured reasoning record for one learning decision."""
    agent: str
    context: Dict[str, Any]
    decision: Dict[str, Any]
    reasoning: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    kind: str = LEARNING_UPDATE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EventSink(Protocol):
    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        ...


class AuditLog(Protocol):
    def append(self, record: AuditRecord) -> None:
        ...


class NullEventSink:
    """Discards everything."""

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        return None


class RecordingEventSink:
    """Keeps published events in memory, newest last."""

    def __init__(self, max_events: Optional[int] = None):
        self.max_events = max_events
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self._lock = threading.Lock()

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self.events.append((event_name, dict(payload)))
            if self.max_events and len(self.events) > self.max_events:
                self.events = self.events[-self.max_events:]

    def named(self, event_name: str) -> List[Dict[str, Any]]:
        """Payloads of all events with the given name."""
        with self._lock:
            return [payload for name, payload in self.events if name == event_name]


class CallbackEventSink:
    """
    Fans events out to subscribed callables.

    Subscribers registered under ``"*"`` receive every event. A failing
    subscriber is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callable[[str, Dict[str, Any]], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_name: str, callback: Callable[[str, Dict[str, Any]], None]) -> None:
        with self._lock:
            self._subscribers.setdefault(event_name, []).append(callback)

    def unsubscribe(self, event_name: str, callback: Callable[[str, Dict[str, Any]], None]) -> bool:
        with self._lock:
            callbacks = self._subscribers.get(event_name, [])
            if callback in callbacks:
                callbacks.remove(callback)
                return True
            return False

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            targets = list(self._subscribers.get(event_name, [])) + list(self._subscribers.get("*", []))
        for callback in targets:
            try:
                callback(event_name, payload)
            except Exception as e:
                logger.warning(f"Event subscriber failed for {event_name}: {e}")


class JsonlAuditLog:
    """
    Appends one JSON object per line to a file.

    Each line carries a UTC ``timestamp`` plus the record fields.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def append(self, record: AuditRecord) -> None:
        entry = {"timestamp": datetime.now(timezone.utc).isoformat()}
        entry.update(record.to_dict())
        line = json.dumps(entry, default=str)

        with self._lock:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def read_all(self) -> List[Dict[str, Any]]:
        """Load every record written so far."""
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]


def publish_safely(sink: Optional[EventSink], event_name: str, payload: Dict[str, Any]) -> bool:
    """Publish to ``sink``, logging and swallowing any failure."""
    if sink is None:
        return True
    try:
        sink.publish(event_name, payload)
        return True
    except Exception as e:
        error = SideEffectError(f"Publishing {event_name} failed: {e}")
        logger.warning(str(error))
        return False


def append_safely(audit_log: Optional[AuditLog], record: AuditRecord) -> bool:
    """Append to ``audit_log``, logging and swallowing any failure."""
    if audit_log is None:
        return True
    try:
        audit_log.append(record)
        return True
    except Exception as e:
        error = SideEffectError(f"Audit append failed: {e}")
        logger.warning(str(error))
        return False
