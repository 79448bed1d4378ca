"""
Shared test fixtures and utilities for Study Buddy tests.

This module provides:
- Config fixtures (no environment or files needed)
- A scripted mock generation engine
- A deterministic clock
- Prebuilt UserState fixtures
"""

import itertools
import os
import sys
import pytest
from unittest.mock import Mock

# Add src to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


START_MS = 1_700_000_000_000


# =============================================================================
# Fixtures: Config
# =============================================================================

@pytest.fixture
def path_config(tmp_path):
    """PathConfig rooted in a temporary directory."""
    from config import PathConfig
    return PathConfig(
        root_dir=str(tmp_path),
        src_dir=str(tmp_path / "src"),
        state_dir=str(tmp_path / "state"),
        logs_dir=str(tmp_path / "logs"),
        inputs_dir=str(tmp_path / "inputs"),
    )


@pytest.fixture
def llm_config():
    """LLMConfig pointing at a fake endpoint."""
    from config import LLMConfig
    return LLMConfig(
        base_url="https://test.api.com",
        model="test-model",
        temperature=0.5,
        timeout=5.0,
        max_retries=2,
    )


@pytest.fixture
def app_config(path_config, llm_config):
    """AppConfig with synchronous persistence and an in-memory store."""
    from config import AppConfig, AssistantConfig, StoreConfig
    return AppConfig(
        paths=path_config,
        llm=llm_config,
        store=StoreConfig(backend="memory", state_dir=path_config.state_dir),
        assistant=AssistantConfig(defer_persistence=False),
    )


# =============================================================================
# Fixtures: Dependencies
# =============================================================================

@pytest.fixture
def clock():
    """Clock that advances one second per call."""
    counter = itertools.count(START_MS, 1000)
    return lambda: next(counter)


@pytest.fixture
def mock_llm():
    """Generation engine that always answers "Generated text"."""
    llm = Mock()
    llm.generate.return_value = "Generated text"
    return llm


@pytest.fixture
def deps(app_config, mock_llm, clock):
    """Dependencies wired to the mock engine and clock."""
    from steps import Dependencies
    return Dependencies(config=app_config, llm=mock_llm, clock=clock)


@pytest.fixture
def memory_store():
    from store import InMemoryStateStore
    return InMemoryStateStore()


@pytest.fixture
def repository(memory_store):
    from store import StateRepository
    return StateRepository(memory_store)


# =============================================================================
# Fixtures: State
# =============================================================================

def make_session(session_id="1000", goal="binary search", plan="- read\n- practice", **kwargs):
    """Build a Session with sensible defaults."""
    from state import Action, Session
    return Session(
        id=session_id,
        timestamp=kwargs.pop("timestamp", int(session_id)),
        goal=goal,
        action=kwargs.pop("action", Action.CREATE_PLAN),
        plan=plan,
        outcome_note=kwargs.pop("outcome_note", None),
    )


@pytest.fixture
def empty_state():
    """A user the assistant has never seen."""
    from state import UserState
    return UserState.default()


@pytest.fixture
def planned_state():
    """A user with one plan in progress."""
    from state import UserState
    session = make_session()
    return UserState(sessions=[session], last_session_id=session.id)


@pytest.fixture
def revised_state():
    """A user whose plan was created and then revised once."""
    from state import Action, UserState
    first = make_session("1000", plan="- 60 min reading")
    second = make_session("2000", plan="- 30 min drills", action=Action.REVISE_PLAN)
    return UserState(sessions=[first, second], last_session_id=second.id)
