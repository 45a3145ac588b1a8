"""
Tabular Q-value storage.

Maps a canonical state key to the values of the actions recorded for that
state. Entries are created lazily on first write; reads of unknown entries
return 0.0 without materializing anything.
"""
from __future__ import annotations

import dataclasses
import json
import threading
from enum import Enum
from typing import Any, Dict, Iterable, List, Sequence

from ..errors import InvalidInputError

NULL_STATE_KEY = "null"


def _to_jsonable(value: Any) -> Any:
    """Convert a supported state value into plain JSON types."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Enum):
        return _to_jsonable(value.value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _to_jsonable(dataclasses.asdict(value))
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if not isinstance(k, (str, int, float, bool)) and k is not None:
                raise InvalidInputError(f"Unsupported state mapping key type: {type(k).__name__}")
            out[str(k) if not isinstance(k, str) else k] = _to_jsonable(v)
        return out
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    if isinstance(value, (set, frozenset)):
        items = [_to_jsonable(v) for v in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    raise InvalidInputError(f"Unsupported state type: {type(value).__name__}")


def state_to_key(state: Any) -> str:
    """
    Derive the canonical state key for a caller-supplied state.

    Strings are used verbatim and ``None`` maps to ``"null"``. Numbers,
    booleans, mappings, sequences, sets, dataclass instances and enum
    members are encoded as compact JSON with sorted keys, so equal states
    produce equal keys regardless of insertion order.

    Raises:
        InvalidInputError: If the state contains an unsupported type
    """
    if isinstance(state, str):
        return state
    if state is None:
        return NULL_STATE_KEY
    return json.dumps(
        _to_jsonable(state),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def is_terminal_state(state: Any) -> bool:
    """A next-state of None or an empty container marks a terminal step."""
    if state is None:
        return True
    if isinstance(state, (dict, list, tuple, set, frozenset, str)):
        return len(state) == 0
    return False


class QTable:
    """
    State -> action -> value table.

    Structural changes are guarded by an internal lock so readers on other
    threads always observe a consistent per-state mapping.
    """

    def __init__(self) -> None:
        self._table: Dict[str, Dict[str, float]] = {}
        self._lock = threading.Lock()

    def get_q(self, state_key: str, action: str) -> float:
        """Value of ``action`` in ``state_key``; 0.0 if never written."""
        actions = self._table.get(state_key)
        if not actions:
            return 0.0
        return actions.get(action, 0.0)

    def set_q(self, state_key: str, action: str, value: float) -> None:
        with self._lock:
            self._table.setdefault(state_key, {})[action] = float(value)

    def max_q(self, state_key: str) -> float:
        """
        Highest stored value for ``state_key``.

        Returns 0.0 when the state has no recorded actions. This does not
        distinguish an unknown state from one whose values are all zero.
        """
        with self._lock:
            actions = self._table.get(state_key)
            if not actions:
                return 0.0
            return max(actions.values())

    def best_action(self, state_key: str, candidates: Sequence[str]) -> str:
        """
        Candidate with the strictly highest value.

        Ties go to the candidate that appears first, so the result is
        deterministic for a given table and candidate order.
        """
        if not candidates:
            raise InvalidInputError("No candidate actions provided")

        best = candidates[0]
        best_q = float("-inf")
        for action in candidates:
            q = self.get_q(state_key, action)
            if q > best_q:
                best_q = q
                best = action
        return best

    def values_for(self, state_key: str) -> Dict[str, float]:
        """Copy of the recorded action values for one state."""
        with self._lock:
            return dict(self._table.get(state_key, {}))

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        """Copy of the whole table."""
        with self._lock:
            return {state: dict(actions) for state, actions in self._table.items()}

    @property
    def state_count(self) -> int:
        return len(self._table)

    def clear(self) -> None:
        with self._lock:
            self._table = {}

    def to_snapshot(self) -> List[Dict[str, Any]]:
        """Encode as ``[{state, actions: [[action, value], ...]}, ...]``."""
        with self._lock:
            return [
                {"state": state, "actions": [[a, v] for a, v in actions.items()]}
                for state, actions in self._table.items()
            ]

    @staticmethod
    def decode_snapshot(entries: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
        """
        Decode snapshot entries without touching any table.

        Raises:
            KeyError, TypeError, ValueError: If an entry is malformed
        """
        table: Dict[str, Dict[str, float]] = {}
        for entry in entries:
            state = entry["state"]
            if not isinstance(state, str):
                raise TypeError(f"State key must be a string, got {type(state).__name__}")
            table[state] = {str(action): float(value) for action, value in entry.get("actions", [])}
        return table

    def replace_all(self, table: Dict[str, Dict[str, float]]) -> None:
        with self._lock:
            self._table = {state: dict(actions) for state, actions in table.items()}

    def load_snapshot(self, entries: Iterable[Dict[str, Any]]) -> None:
        """Replace the table contents with decoded snapshot entries."""
        self.replace_all(self.decode_snapshot(entries))
