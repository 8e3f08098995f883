"""Key-value settings store backing every piece of persisted state.

Stored keys:
    credential_pool      serialized credentials + round-robin cursors
    provider_preferences mode, thresholds, filters and monthly budget cap
    provider_usage       per-provider usage records and budget state
    selected_models      provider id -> chosen model

Encrypting secrets is the store's concern; the YAML store writes them as-is,
so keep the file private (it is created with 0600 permissions).
"""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

from .exceptions import PersistenceError

logger = logging.getLogger("vision-orchestrator")

# Process-local locks keyed by file path so two stores on the same file
# cannot interleave read-modify-write cycles.
_FILE_LOCKS: dict[str, threading.RLock] = {}
_FILE_LOCKS_GUARD = threading.Lock()


def _lock_for_path(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _FILE_LOCKS_GUARD:
        lock = _FILE_LOCKS.get(key)
        if lock is None:
            lock = threading.RLock()
            _FILE_LOCKS[key] = lock
        return lock


class SettingsStore(ABC):
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any: ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Persist ``value`` under ``key``. Raises PersistenceError on failure."""

    @abstractmethod
    def delete(self, key: str) -> None: ...


class MemorySettingsStore(SettingsStore):
    """In-process store for embedding and tests."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return deepcopy(self._data.get(key, default))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class YAMLSettingsStore(SettingsStore):
    """Whole-document YAML file, rewritten on every ``set``."""

    def __init__(self, path: str | Path = "~/.vision-orchestrator/settings.yaml"):
        self._path = Path(path).expanduser()
        self._lock = _lock_for_path(self._path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = yaml.safe_load(self._path.read_text())
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not read settings %s: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
            os.chmod(tmp, 0o600)
            tmp.replace(self._path)
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"Could not write settings {self._path}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)
