"""Per-user key-value preferences (theme, home assistant history).

Values are JSON-serializable. Everything the client keeps between visits
lives here and is wiped by ``reset_on_sign_out``.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DARK_MODE_KEY = "darkMode"
HOME_CONVERSATION_KEY = "homepageAIConversation"
HOME_HAS_CONVERSATION_KEY = "homepageAIHasConversation"

SIGN_OUT_KEYS = (DARK_MODE_KEY, HOME_CONVERSATION_KEY, HOME_HAS_CONVERSATION_KEY)


class PreferenceStore(ABC):
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def clear(self, key: str) -> None:
        ...


class MemoryPreferenceStore(PreferenceStore):
    def __init__(self):
        self._values: dict[str, Any] = {}

    def get(self, key, default=None):
        return self._values.get(key, default)

    def set(self, key, value):
        self._values[key] = value

    def clear(self, key):
        self._values.pop(key, None)

    def __len__(self) -> int:
        return len(self._values)


class FilePreferenceStore(PreferenceStore):
    """Preferences persisted as a single JSON object on disk."""

    def __init__(self, path: Path, lock: threading.Lock | None = None):
        self.path = Path(path)
        self._lock = lock or threading.Lock()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable preferences file {self.path}: {e}")
            return {}

    def _save(self, values: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(values), encoding="utf-8")

    def get(self, key, default=None):
        with self._lock:
            return self._load().get(key, default)

    def set(self, key, value):
        with self._lock:
            values = self._load()
            values[key] = value
            self._save(values)

    def clear(self, key):
        with self._lock:
            values = self._load()
            if key in values:
                del values[key]
                self._save(values)


class PreferenceDirectory:
    """Hands out per-user preferences, on disk when ``base_dir`` is set.

    File-backed stores are created per call and share one lock, so nothing
    accumulates per user. In-memory stores are the data itself and are kept
    until ``release`` finds them empty.
    """

    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir) if base_dir else None
        self._memory: dict[str, MemoryPreferenceStore] = {}
        self._file_lock = threading.Lock()

    def for_user(self, user_id: str) -> PreferenceStore:
        if self.base_dir is not None:
            return FilePreferenceStore(self.base_dir / f"{user_id}.json", lock=self._file_lock)
        store = self._memory.get(user_id)
        if store is None:
            store = self._memory[user_id] = MemoryPreferenceStore()
        return store

    def release(self, user_id: str) -> None:
        store = self._memory.get(user_id)
        if store is not None and not len(store):
            del self._memory[user_id]

    def __len__(self) -> int:
        return len(self._memory)


def is_dark_mode(prefs: PreferenceStore) -> bool:
    return bool(prefs.get(DARK_MODE_KEY, False))


def toggle_dark_mode(prefs: PreferenceStore) -> bool:
    value = not is_dark_mode(prefs)
    prefs.set(DARK_MODE_KEY, value)
    return value


def reset_on_sign_out(prefs: PreferenceStore) -> None:
    for key in SIGN_OUT_KEYS:
        prefs.clear(key)
