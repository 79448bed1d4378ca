"""
Workflow: The per-request conversation loop.

One request runs:
    load state -> classify -> run step -> record exchange -> persist -> reply

Design principles:
- The step registry is data: Action -> step function
- Routing lives in router.py; steps don't know about each other
- The user id is an explicit argument everywhere, no "current user" global
- Requests for the same user are serialized with a per-user lock
"""

import threading
import weakref
from dataclasses import dataclass
from typing import Callable

from logging_utils import get_logger
from persistence import PersistenceQueue
from router import classify
from state import Action, UserState
from steps import (
    Dependencies,
    create_plan,
    revise_plan,
    log_outcome,
    analyze_pattern,
    direct_answer,
    general_chat,
)
from store import StateRepository

logger = get_logger(__name__)


# Type alias for step functions
StepFunction = Callable[[UserState, str, Dependencies], tuple[str, UserState]]


# =============================================================================
# Step Registry
# =============================================================================

STEPS: dict[Action, StepFunction] = {
    Action.CREATE_PLAN: create_plan,
    Action.REVISE_PLAN: revise_plan,
    Action.LOG_OUTCOME: log_outcome,
    Action.ANALYZE_PATTERN: analyze_pattern,
    Action.DIRECT_ANSWER: direct_answer,
    Action.GENERAL_CHAT: general_chat,
}


@dataclass(frozen=True)
class ChatResult:
    """What the caller gets back for one message."""
    reply: str
    action: Action

    def to_dict(self) -> dict:
        return {"reply": self.reply, "action": self.action.value}


def run_step(action: Action, state: UserState, message: str, deps: Dependencies) -> tuple[str, UserState]:
    """Run the step registered for action."""
    step_fn = STEPS.get(action)
    if step_fn is None:
        raise KeyError(f"No implementation for action {action}")
    return step_fn(state, message, deps)


# =============================================================================
# Assistant
# =============================================================================

class StudyAssistant:
    """
    Ties routing, steps and persistence together.

    Usage:
        deps = Dependencies(config=config, llm=llm)
        repository = StateRepository(create_store(config.store))

        with StudyAssistant(deps, repository) as assistant:
            result = assistant.handle_message("demo-user", "I have 60 minutes to study graphs.")
            print(result.action, result.reply)
    """

    def __init__(
        self,
        deps: Dependencies,
        repository: StateRepository,
        writer: PersistenceQueue | None = None,
    ):
        """
        Initialize the assistant.

        Args:
            deps: External dependencies (config, LLM, clock).
            repository: Where user state is loaded from and saved to.
            writer: Background writer. Created automatically when
                config.assistant.defer_persistence is set; None means
                every save happens before the reply is returned.
        """
        self.deps = deps
        self.repository = repository
        if writer is None and deps.config.assistant.defer_persistence:
            writer = PersistenceQueue(repository)
        self.writer = writer
        # Entries disappear once no request holds the lock
        self._user_locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._user_locks[user_id] = lock
            return lock

    def _load(self, user_id: str) -> UserState:
        if self.writer is not None:
            self.writer.wait(user_id)
        return self.repository.load(user_id)

    def _persist(self, user_id: str, state: UserState) -> None:
        if self.writer is not None:
            self.writer.submit(user_id, state)
        else:
            self.repository.save(user_id, state)

    def handle_message(self, user_id: str, message: str) -> ChatResult:
        """
        Process one user message.

        Args:
            user_id: Whose state to use.
            message: Raw message text; empty strings are valid.

        Returns:
            ChatResult with the reply and the action that produced it.

        Raises:
            StoreUnavailableError: State could not be loaded or saved.
        """
        with self._lock_for(user_id):
            state = self._load(user_id)

            action = classify(state, message)
            logger.info(f"[{user_id}] routed to {action.value}")

            reply, new_state = run_step(action, state, message, self.deps)

            new_state = new_state.with_exchange(
                message,
                reply,
                limit=self.deps.config.assistant.history_limit,
            )
            self._persist(user_id, new_state)

        return ChatResult(reply=reply, action=action)

    def get_state(self, user_id: str) -> UserState:
        """Current normalized state for user_id, after any pending write."""
        with self._lock_for(user_id):
            return self._load(user_id)

    def reset(self, user_id: str) -> UserState:
        """Replace user_id's state with defaults and save it immediately."""
        with self._lock_for(user_id):
            if self.writer is not None:
                self.writer.wait(user_id)
            state = UserState.default()
            self.repository.save(user_id, state)
            logger.info(f"[{user_id}] state reset")
            return state

    def close(self) -> None:
        """Finish outstanding writes."""
        if self.writer is not None:
            self.writer.close()

    def __enter__(self) -> "StudyAssistant":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
