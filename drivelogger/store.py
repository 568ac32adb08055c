"""
Key-value store for credentials and conversation bindings.

Both the host and the tools that configure it get a store injected;
nothing reads persisted state through globals. Only the host writes.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from .constants import FILE_ID_PREFIX, BUFFER_PREFIX

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Minimal get/set/remove interface."""

    def get(self, keys: Iterable[str]) -> dict:
        """Return {key: value} for the keys that are present."""
        raise NotImplementedError

    def set(self, values: dict):
        raise NotImplementedError

    def remove(self, keys: Iterable[str]):
        raise NotImplementedError

    def items(self) -> list[tuple[str, Any]]:
        """All stored (key, value) pairs."""
        raise NotImplementedError

    def get_one(self, key: str, default: Any = None) -> Any:
        return self.get([key]).get(key, default)


class MemoryStore(KeyValueStore):
    """In-process store (tests, dry runs)."""

    def __init__(self, initial: Optional[dict] = None):
        self._data: dict = dict(initial or {})

    def get(self, keys: Iterable[str]) -> dict:
        return {k: self._data[k] for k in keys if k in self._data}

    def set(self, values: dict):
        self._data.update(values)

    def remove(self, keys: Iterable[str]):
        for key in keys:
            self._data.pop(key, None)

    def items(self) -> list[tuple[str, Any]]:
        return list(self._data.items())


class JsonFileStore(KeyValueStore):
    """
    Store persisted as a single JSON object on disk.

    Every write rewrites the whole file through a temp file + rename.
    """

    def __init__(self, path: Path):
        self.path = path
        self._data: dict = {}
        self.load()

    def load(self):
        """Load store contents from file."""
        self._data = {}
        if not self.path.exists():
            return
        try:
            with open(self.path) as f:
                data = json.load(f)
            if isinstance(data, dict):
                self._data = data
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("[Store] Could not load %s: %s", self.path, e)

    def _save(self):
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump(self._data, f, indent=2)
        tmp.replace(self.path)

    def get(self, keys: Iterable[str]) -> dict:
        return {k: self._data[k] for k in keys if k in self._data}

    def set(self, values: dict):
        self._data.update(values)
        self._save()

    def items(self) -> list[tuple[str, Any]]:
        return list(self._data.items())

    def remove(self, keys: Iterable[str]):
        changed = False
        for key in keys:
            if key in self._data:
                del self._data[key]
                changed = True
        if changed:
            self._save()


def file_id_key(conversation_id: str) -> str:
    return f"{FILE_ID_PREFIX}{conversation_id}"


def buffer_key(conversation_id: str) -> str:
    return f"{BUFFER_PREFIX}{conversation_id}"


class ConversationBindings:
    """
    Conversation id -> Drive file id mapping on top of a KeyValueStore.

    A binding is written after the first successful upload and only removed
    by reset().

    Pages without a conversation id all report "no-id" and so share one
    binding: their snapshots overwrite the same Drive file, whatever dated
    name the observer gives it. RESET_CONVO with "no-id" starts a new file.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get(self, conversation_id: str) -> Optional[str]:
        return self.store.get_one(file_id_key(conversation_id))

    def bind(self, conversation_id: str, file_id: str):
        self.store.set({file_id_key(conversation_id): file_id})

    def all(self) -> dict:
        """Every binding, as {conversation_id: file_id}."""
        return {
            key[len(FILE_ID_PREFIX):]: value
            for key, value in self.store.items()
            if key.startswith(FILE_ID_PREFIX)
        }

    def reset(self, conversation_id: str):
        """Drop the binding and any buffered content for a conversation."""
        self.store.remove([file_id_key(conversation_id), buffer_key(conversation_id)])
