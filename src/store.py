"""
Store: Key-value persistence for user state records.

The assistant only needs two operations from a store:
    get(key) -> JSON object | None
    put(key, JSON object) -> None

Two stores are provided:
- InMemoryStateStore: a dict, for tests and throwaway sessions
- FileStateStore: one JSON file per key, replaced atomically

StateRepository sits on top and speaks UserState rather than JSON.
"""

import json
import os
import tempfile
import threading
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

from config import StoreConfig
from logging_utils import get_logger
from state import UserState

logger = get_logger(__name__)


class StoreUnavailableError(Exception):
    """The state store could not be read or written."""


def encode_record(record: Any) -> str:
    """Serialize a record deterministically (same input, same bytes)."""
    return json.dumps(record, ensure_ascii=False)


@runtime_checkable
class StateStore(Protocol):
    """Protocol for persisting JSON records by key."""

    def get(self, key: str) -> Any | None:
        """Load the record for key. Return None if absent."""
        ...

    def put(self, key: str, record: Any) -> None:
        """Persist the record for key."""
        ...


class InMemoryStateStore:
    """
    In-process store. Records are kept encoded, exactly as a real store would see them.

    Usage:
        store = InMemoryStateStore()
        store.put("user:demo", {"sessions": []})
        store.raw("user:demo")   # '{"sessions": []}'
    """

    def __init__(self) -> None:
        self._records: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._records.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, key: str, record: Any) -> None:
        encoded = encode_record(record)
        with self._lock:
            self._records[key] = encoded

    def raw(self, key: str) -> str | None:
        """Encoded record as stored, for inspection."""
        with self._lock:
            return self._records.get(key)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class FileStateStore:
    """
    Directory-backed store: one `<quoted key>.json` file per record.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a reader never sees a half-written record.
    """

    def __init__(self, state_dir: str):
        self.state_dir = state_dir

    def path_for(self, key: str) -> str:
        return os.path.join(self.state_dir, quote(key, safe="") + ".json")

    def get(self, key: str) -> Any | None:
        path = self.path_for(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = f.read()
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read {path}: {e}") from e

        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Record {key} is not valid JSON ({e}); treating as absent")
            return None

    def put(self, key: str, record: Any) -> None:
        path = self.path_for(key)
        encoded = encode_record(record)
        try:
            os.makedirs(self.state_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.state_dir, prefix=".tmp_", suffix=".json")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    f.write(encoded)
                os.replace(tmp_path, path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write {path}: {e}") from e

    def raw(self, key: str) -> str | None:
        path = self.path_for(key)
        if not os.path.exists(path):
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()


def create_store(config: StoreConfig) -> StateStore:
    """Build the store named by config.backend."""
    if config.backend == "memory":
        return InMemoryStateStore()
    if config.backend == "file":
        return FileStateStore(config.state_dir)
    raise ValueError(f"Unknown store backend: {config.backend}")


class StateRepository:
    """
    Loads and saves UserState records for explicit user ids.

    Usage:
        repo = StateRepository(FileStateStore("state"))
        state = repo.load("demo-user")
        repo.save("demo-user", state)
    """

    def __init__(self, store: StateStore, key_prefix: str = "user:"):
        self.store = store
        self.key_prefix = key_prefix

    def key_for(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    def load(self, user_id: str) -> UserState:
        """
        Load and normalize a user's state. Absent records yield defaults.

        Raises:
            StoreUnavailableError: The store could not be read.
        """
        key = self.key_for(user_id)
        record = self._call(self.store.get, key)
        if record is None:
            logger.debug(f"No stored state for {key}; starting fresh")
            return UserState.default()
        return UserState.from_dict(record)

    def save(self, user_id: str, state: UserState) -> None:
        """
        Persist a user's state.

        Raises:
            StoreUnavailableError: The store could not be written.
        """
        key = self.key_for(user_id)
        self._call(self.store.put, key, state.to_dict())
        logger.debug(f"Saved state for {key} ({len(state.sessions)} sessions)")

    def _call(self, fn, *args):
        try:
            return fn(*args)
        except StoreUnavailableError:
            raise
        except OSError as e:
            raise StoreUnavailableError(f"{e.__class__.__name__}: {e}") from e
