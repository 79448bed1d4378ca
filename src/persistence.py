"""
Persistence: Deferred, guaranteed state writes.

The assistant answers first and saves afterwards. Writes are handed to a
single background worker, so they complete in submission order, and every
write stays observable through its Future until someone has waited on it.

Contract:
- wait(user_id) blocks until that user's newest write has landed; loads call
  it first, so a load never sees a record older than the last reply
- a state whose write failed is kept and saved again by the next wait() or
  flush(); StoreUnavailableError is raised only when that retry fails too
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor

from logging_utils import get_logger
from state import UserState
from store import StateRepository, StoreUnavailableError

logger = get_logger(__name__)


class PersistenceQueue:
    """
    Background writer for user state.

    Usage:
        queue = PersistenceQueue(repository)
        queue.submit("demo-user", state)   # returns immediately
        queue.wait("demo-user")            # before the next load
        queue.close()                      # flushes and stops the worker
    """

    def __init__(self, repository: StateRepository):
        self.repository = repository
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="state-writer")
        self._pending: dict[str, Future] = {}
        self._unsaved: dict[str, UserState] = {}
        self._latest: dict[str, int] = {}
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, user_id: str, state: UserState) -> Future:
        """Queue a write of state for user_id."""
        with self._lock:
            if self._closed:
                raise RuntimeError("PersistenceQueue is closed")
            seq = self._latest.get(user_id, 0) + 1
            self._latest[user_id] = seq
            future = self._executor.submit(self._write, user_id, state, seq)
            self._pending[user_id] = future
        return future

    def _write(self, user_id: str, state: UserState, seq: int) -> None:
        try:
            self.repository.save(user_id, state)
        except StoreUnavailableError as e:
            logger.error(f"Deferred save for {user_id} failed, will retry: {e}")
            with self._lock:
                # A newer submission supersedes this state
                if self._latest.get(user_id) == seq:
                    self._unsaved[user_id] = state
            raise
        with self._lock:
            if self._latest.get(user_id) == seq:
                self._unsaved.pop(user_id, None)

    def pending_users(self) -> list[str]:
        """Users with a queued write or a state still waiting to be saved."""
        with self._lock:
            return list(dict.fromkeys([*self._pending, *self._unsaved]))

    def unsaved(self, user_id: str) -> UserState | None:
        """The state whose save failed for user_id, if any."""
        with self._lock:
            return self._unsaved.get(user_id)

    def wait(self, user_id: str, timeout: float | None = None) -> None:
        """
        Block until the newest state for user_id is in the store.

        A write that failed in the background is retried here, synchronously.

        Raises:
            StoreUnavailableError: The retry failed as well; the state is kept
                for the next attempt.
        """
        with self._lock:
            future = self._pending.get(user_id)

        if future is not None:
            try:
                future.result(timeout=timeout)
            except StoreUnavailableError:
                pass  # already logged; the state sits in _unsaved
            finally:
                if future.done():
                    with self._lock:
                        if self._pending.get(user_id) is future:
                            del self._pending[user_id]

        with self._lock:
            state = self._unsaved.get(user_id)
            seq = self._latest.get(user_id)
        if state is None:
            return

        self.repository.save(user_id, state)
        with self._lock:
            if self._latest.get(user_id) == seq:
                self._unsaved.pop(user_id, None)
        logger.info(f"Deferred save for {user_id} recovered")

    def flush(self, timeout: float | None = None) -> None:
        """
        Wait for every queued write.

        Raises:
            StoreUnavailableError: At least one state could not be saved (all are still attempted).
        """
        failures = []
        for user_id in self.pending_users():
            try:
                self.wait(user_id, timeout=timeout)
            except StoreUnavailableError as e:
                failures.append((user_id, e))

        if failures:
            users = ", ".join(user_id for user_id, _ in failures)
            raise StoreUnavailableError(f"Deferred saves failed for: {users}") from failures[0][1]

    def close(self) -> None:
        """Flush outstanding writes and stop the worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.flush()
        finally:
            self._executor.shutdown(wait=True)
