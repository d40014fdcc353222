"""
State store: in-process key/value state with explicit flush points.

The JSON implementation keeps one document on disk (default
``~/.wellwell/state.json``). It is loaded eagerly and rewritten
wholesale on every flush. Writes are atomic (write to temp file, then
rename) so a failed flush never corrupts previously flushed data.
"""

from __future__ import annotations

import copy
import json
import logging
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".wellwell"
DEFAULT_STATE_FILE = "state.json"


def default_state_path(home_dir: Path | None = None) -> Path:
    """Get the default state file path under the user's home directory."""
    return (home_dir or Path.home()) / DEFAULT_STATE_DIR / DEFAULT_STATE_FILE


class StateStore(ABC):
    """Synchronous key/value store shared by every unit in a run.

    Values must be JSON-serializable. Changes are durable only once
    ``flush()`` returns.
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the stored value, or ``default``."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a value under ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def has(self, key: str) -> bool:
        """Whether ``key`` is present."""

    @abstractmethod
    def flush(self) -> None:
        """Persist pending changes."""

    def keys(self) -> list[str]:
        return []


class MemoryStateStore(StateStore):
    """State store that lives only as long as the process."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.flush_count = 0

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def has(self, key: str) -> bool:
        return key in self._data

    def flush(self) -> None:
        self.flush_count += 1

    def keys(self) -> list[str]:
        return sorted(self._data)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileStateStore(MemoryStateStore):
    """State store backed by a single JSON document."""

    def __init__(self, path: Path):
        super().__init__(_load_document(path))
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def flush(self) -> None:
        """Rewrite the whole document atomically.

        Raises:
            OSError / TypeError: if the directory is not writable or a
                value is not JSON-serializable. The previous document is
                left untouched.
        """
        content = json.dumps(self._data, indent=2, ensure_ascii=False, sort_keys=True) + "\n"

        self._path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write: temp file in same directory, then rename
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=self._path.parent,
                prefix=".state_",
                suffix=".tmp",
            )
            tmp = Path(tmp_path)
            try:
                with open(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                tmp.replace(self._path)
                logger.debug("State saved to %s (%d keys)", self._path, len(self._data))
            except Exception:
                tmp.unlink(missing_ok=True)
                raise
        except Exception as e:
            logger.error("Failed to save state to %s: %s", self._path, e)
            raise
        self.flush_count += 1


def _load_document(path: Path) -> dict[str, Any]:
    if not path.is_file():
        logger.info("No state file at %s, starting fresh", path)
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s, starting fresh", path, e)
        return {}
    except OSError as e:
        logger.warning("Cannot load state from %s: %s, starting fresh", path, e)
        return {}

    if not isinstance(data, dict):
        logger.warning(
            "State file %s holds %s instead of an object, starting fresh",
            path, type(data).__name__,
        )
        return {}

    logger.debug("Loaded state from %s (%d keys)", path, len(data))
    return data
