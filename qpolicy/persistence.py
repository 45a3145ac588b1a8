"""
Crash-resilient policy persistence.

Provides:
- Knowledge store interface plus in-memory and file-backed stores
- Whole-document snapshot save/load with version checking
- Cancellable periodic auto-save thread
"""
from __future__ import annotations

import copy
import json
import logging
import shutil
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from .errors import PersistenceError, SnapshotNotFound

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class KnowledgeStore(Protocol):
    """
    Document store holding policy snapshots.

    ``read_snapshot`` raises ``SnapshotNotFound`` when the key is absent.
    Both operations honor ``timeout`` (seconds, None = store default) and
    raise ``PersistenceError`` on failure.
    """

    def read_snapshot(self, key: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        ...

    def write_snapshot(self, key: str, snapshot: Dict[str, Any], timeout: Optional[float] = None) -> None:
        ...


def _acquire(lock: threading.Lock, timeout: Optional[float], key: str) -> None:
    acquired = lock.acquire(timeout=timeout) if timeout is not None else lock.acquire()
    if not acquired:
        raise PersistenceError(f"Timed out waiting for store lock ({timeout}s)", key=key)


class InMemoryKnowledgeStore:
    """Dictionary-backed store. Documents are deep-copied in and out."""

    def __init__(self) -> None:
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.write_count = 0

    def read_snapshot(self, key: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        _acquire(self._lock, timeout, key)
        try:
            if key not in self._documents:
                raise SnapshotNotFound(f"No snapshot stored under {key!r}", key=key)
            return copy.deepcopy(self._documents[key])
        finally:
            self._lock.release()

    def write_snapshot(self, key: str, snapshot: Dict[str, Any], timeout: Optional[float] = None) -> None:
        _acquire(self._lock, timeout, key)
        try:
            self._documents[key] = copy.deepcopy(snapshot)
            self.write_count += 1
        finally:
            self._lock.release()

    def delete(self, key: str) -> None:
        with self._lock:
            self._documents.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._documents)


class FileKnowledgeStore:
    """
    One JSON file per key under ``base_path``.

    Features:
    - Atomic writes (temp file + rename)
    - Rotating backups
    - Recovery from the newest readable backup when the primary is corrupt

    Example:
        >>> store = FileKnowledgeStore("./policy_state")
        >>> store.write_snapshot("rl-policy", {"version": 1})
        >>> store.read_snapshot("rl-policy")["version"]
        1
    """

    def __init__(self, base_path: str, backup_count: int = 3):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.backup_count = max(0, backup_count)
        self._lock = threading.Lock()

    def _get_path(self, key: str) -> Path:
        safe_key = "".join(c if c.isalnum() else "_" for c in key)
        return self.base_path / f"{safe_key}.json"

    def _get_backup_path(self, key: str, n: int) -> Path:
        safe_key = "".join(c if c.isalnum() else "_" for c in key)
        return self.base_path / f"{safe_key}.backup{n}.json"

    def write_snapshot(self, key: str, snapshot: Dict[str, Any], timeout: Optional[float] = None) -> None:
        _acquire(self._lock, timeout, key)
        try:
            path = self._get_path(key)
            temp_path = path.with_suffix(".tmp")
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    json.dump(snapshot, f, indent=2)

                if path.exists() and self.backup_count:
                    self._rotate_backups(key)

                temp_path.replace(path)
                logger.debug(f"Wrote snapshot {key} to {path}")
            except (OSError, TypeError, ValueError) as e:
                if temp_path.exists():
                    temp_path.unlink()
                raise PersistenceError(f"Failed to write snapshot {key}: {e}", key=key) from e
        finally:
            self._lock.release()

    def _rotate_backups(self, key: str) -> None:
        path = self._get_path(key)

        oldest = self._get_backup_path(key, self.backup_count)
        if oldest.exists():
            oldest.unlink()

        for i in range(self.backup_count - 1, 0, -1):
            src = self._get_backup_path(key, i)
            if src.exists():
                shutil.move(str(src), str(self._get_backup_path(key, i + 1)))

        shutil.copy2(str(path), str(self._get_backup_path(key, 1)))

    def read_snapshot(self, key: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        _acquire(self._lock, timeout, key)
        try:
            path = self._get_path(key)
            if not path.exists():
                raise SnapshotNotFound(f"No snapshot stored under {key!r}", key=key)
            try:
                with open(path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to read snapshot {key}: {e}")
                return self._recover_from_backup(key)
        finally:
            self._lock.release()

    def _recover_from_backup(self, key: str) -> Dict[str, Any]:
        for i in range(1, self.backup_count + 1):
            backup_path = self._get_backup_path(key, i)
            if not backup_path.exists():
                continue
            try:
                with open(backup_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                logger.warning(f"Recovered snapshot {key} from backup{i}")
                return data
            except (OSError, ValueError):
                continue
        raise PersistenceError(f"No readable snapshot or backup for {key}", key=key)

    def delete(self, key: str) -> None:
        with self._lock:
            path = self._get_path(key)
            if path.exists():
                path.unlink()
            for i in range(1, self.backup_count + 1):
                backup = self._get_backup_path(key, i)
                if backup.exists():
                    backup.unlink()


class PolicyPersistence:
    """
    Saves and restores policy snapshots under one key of a knowledge store.

    Args:
        store: Backing knowledge store
        key: Document key for this policy
    """

    def __init__(self, store: KnowledgeStore, key: str):
        self.store = store
        self.key = key

    def save(self, snapshot: Dict[str, Any], timeout: Optional[float] = None) -> None:
        """
        Replace the stored document with ``snapshot``.

        Raises:
            PersistenceError: If the store write fails
        """
        document = dict(snapshot)
        document.setdefault("version", SNAPSHOT_VERSION)
        try:
            self.store.write_snapshot(self.key, document, timeout=timeout)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save policy {self.key}: {e}", key=self.key) from e

    def load(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Fetch the stored snapshot.

        Returns:
            The snapshot, or None if nothing has been saved yet

        Raises:
            PersistenceError: If the store fails, the document is not a
                mapping, or its version is unsupported
        """
        try:
            data = self.store.read_snapshot(self.key, timeout=timeout)
        except SnapshotNotFound:
            logger.debug(f"No saved policy found for {self.key}")
            return None
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to load policy {self.key}: {e}", key=self.key) from e

        if not isinstance(data, dict):
            raise PersistenceError(
                f"Policy snapshot {self.key} must be a mapping, got {type(data).__name__}", key=self.key
            )
        version = data.get("version", SNAPSHOT_VERSION)
        if version != SNAPSHOT_VERSION:
            raise PersistenceError(f"Incompatible policy snapshot version: {version}", key=self.key)
        return data


class PeriodicSaver:
    """
    Background thread that calls ``save`` every ``interval`` seconds.

    The thread waits on a stop event, so ``stop()`` returns promptly
    instead of sleeping out the remaining interval. Exceptions from
    ``save`` are logged and the next tick retries.
    """

    def __init__(self, save: Callable[[], Any], interval: float, name: str = "policy-autosave"):
        self._save = save
        self.interval = interval
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name=self.name)
        self._thread.start()
        logger.info(f"Auto-save started (interval: {self.interval}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"Thread {self.name} did not stop in time")
        self._thread = None

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.tick_count += 1
            try:
                self._save()
            except Exception as e:
                logger.error(f"Periodic save failed, retrying next tick: {e}")
