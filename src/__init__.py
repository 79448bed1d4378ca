"""
Study Buddy: a conversational study planner.

Structured after the TaskState / Solver pattern from UK AISI's Inspect AI,
with routing done by an explicit rule table instead of the model.

Key design principles:
1. No global mutable state - everything about a user lives in UserState
2. Explicit dependencies via Dependencies container
3. Routing as an ordered, deterministic rule table
4. Steps return the reply and a new state, they don't mutate

Modules:
- state.py: UserState, Session, Turn, Profile, Action enum
- config.py: Immutable AppConfig, PathConfig, LLMConfig, StoreConfig, AssistantConfig
- llm.py: LLMClient, GenerationError
- store.py: StateStore implementations and StateRepository
- history.py: Recent-history formatting for prompts
- router.py: classify() and the rule table
- steps/: Step functions, one per Action
- persistence.py: PersistenceQueue for deferred saves
- workflow.py: StudyAssistant, the per-request loop
- main.py: CLI and programmatic entry points
"""

from state import UserState, Session, Turn, Profile, Action, Role
from config import AppConfig, load_config
from llm import LLMClient, GenerationError
from store import StateRepository, InMemoryStateStore, FileStateStore, StoreUnavailableError
from router import classify, is_direct_question
from steps import Dependencies
from workflow import StudyAssistant, ChatResult
from main import create_assistant

__all__ = [
    # State
    "UserState",
    "Session",
    "Turn",
    "Profile",
    "Action",
    "Role",
    # Config
    "AppConfig",
    "load_config",
    # LLM
    "LLMClient",
    "GenerationError",
    # Store
    "StateRepository",
    "InMemoryStateStore",
    "FileStateStore",
    "StoreUnavailableError",
    # Routing
    "classify",
    "is_direct_question",
    # Steps
    "Dependencies",
    # Workflow
    "StudyAssistant",
    "ChatResult",
    # Main
    "create_assistant",
]
