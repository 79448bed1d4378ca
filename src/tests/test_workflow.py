"""
Tests for workflow.py module.

Tests:
- STEPS registry
- run_step
- StudyAssistant request loop (sync and deferred persistence)
- End-to-end conversation with a scripted engine
"""

import gc
import os
import sys
import threading
import pytest
from dataclasses import replace
from unittest.mock import Mock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import AssistantConfig
from llm import GenerationError, LLMClient
from persistence import PersistenceQueue
from state import Action, Role, UserState
from steps import Dependencies
from store import StateRepository, StoreUnavailableError
from workflow import STEPS, ChatResult, StudyAssistant, run_step


@pytest.fixture
def assistant(deps, repository):
    """Assistant that saves before replying."""
    with StudyAssistant(deps, repository) as assistant:
        yield assistant


@pytest.fixture
def deferred_deps(app_config, mock_llm, clock):
    config = replace(app_config, assistant=AssistantConfig(defer_persistence=True))
    return Dependencies(config=config, llm=mock_llm, clock=clock)


@pytest.fixture
def deferred_assistant(deferred_deps, repository):
    """Assistant that saves in the background."""
    with StudyAssistant(deferred_deps, repository) as assistant:
        yield assistant


# =============================================================================
# Test STEPS Registry
# =============================================================================

class TestStepsRegistry:
    """Tests for STEPS registry."""

    def test_every_action_has_a_step(self):
        for action in Action:
            assert action in STEPS, f"No implementation for {action}"

    def test_steps_are_callable(self):
        for action, step_fn in STEPS.items():
            assert callable(step_fn), f"{action} step is not callable"

    def test_run_step_dispatches(self, deps, empty_state):
        reply, state = run_step(Action.CREATE_PLAN, empty_state, "m", deps)
        assert len(state.sessions) == 1


# =============================================================================
# Test StudyAssistant
# =============================================================================

class TestHandleMessage:
    """Tests for StudyAssistant.handle_message."""

    def test_returns_reply_and_action(self, assistant):
        result = assistant.handle_message("u", "I want to study graphs")

        assert isinstance(result, ChatResult)
        assert result.action is Action.CREATE_PLAN
        assert result.reply == "Generated text"
        assert result.to_dict() == {"reply": "Generated text", "action": "create_plan"}

    def test_persists_state_with_exchange(self, assistant, repository):
        assistant.handle_message("u", "I want to study graphs")
        state = repository.load("u")

        assert len(state.sessions) == 1
        assert [t.role for t in state.recent_history] == [Role.USER, Role.ASSISTANT]
        assert state.recent_history[0].content == "I want to study graphs"
        assert state.recent_history[1].content == "Generated text"

    def test_history_bounded(self, assistant, repository):
        for i in range(7):
            assistant.handle_message("u", f"message {i}")
            assert len(repository.load("u").recent_history) <= 8

        history = repository.load("u").recent_history
        assert len(history) == 8
        assert history[0].content == "message 3"
        assert history[-2].content == "message 6"

    def test_users_are_separate(self, assistant, repository):
        assistant.handle_message("alice", "study rust")
        assistant.handle_message("bob", "hello")

        assert len(repository.load("alice").sessions) == 1
        assert repository.load("bob").sessions == []

    def test_engine_failure_is_not_raised(self, assistant, mock_llm, repository):
        mock_llm.generate.side_effect = GenerationError("timeout")
        result = assistant.handle_message("u", "study rust")

        assert result.reply == "Could not generate plan."
        assert repository.load("u").last_session.plan == "Could not generate plan."

    def test_empty_message(self, assistant):
        assert assistant.handle_message("u", "").action is Action.GENERAL_CHAT

    def test_store_read_failure_raises(self, deps):
        store = Mock()
        store.get.side_effect = OSError("unreachable")
        assistant = StudyAssistant(deps, StateRepository(store))

        with pytest.raises(StoreUnavailableError):
            assistant.handle_message("u", "hello")

    def test_store_write_failure_raises(self, deps, mock_llm):
        store = Mock()
        store.get.return_value = None
        store.put.side_effect = OSError("read-only")
        assistant = StudyAssistant(deps, StateRepository(store))

        with pytest.raises(StoreUnavailableError):
            assistant.handle_message("u", "hello")

    def test_sync_mode_has_no_writer(self, assistant):
        assert assistant.writer is None


class TestStateAccess:
    """Tests for get_state and reset."""

    def test_get_state(self, assistant):
        assistant.handle_message("u", "study rust")
        assert len(assistant.get_state("u").sessions) == 1

    def test_reset(self, assistant, repository):
        assistant.handle_message("u", "study rust")
        state = assistant.reset("u")

        assert state == UserState.default()
        assert repository.load("u") == UserState.default()


class TestDeferredPersistence:
    """Tests for background saves."""

    def test_writer_created(self, deferred_assistant):
        assert isinstance(deferred_assistant.writer, PersistenceQueue)

    def test_next_request_sees_previous_write(self, deferred_assistant, repository):
        deferred_assistant.handle_message("u", "study rust")
        result = deferred_assistant.handle_message("u", "make the plan shorter")

        assert result.action is Action.REVISE_PLAN
        deferred_assistant.close()
        assert len(repository.load("u").sessions) == 2

    def test_close_flushes(self, deferred_deps, repository):
        assistant = StudyAssistant(deferred_deps, repository)
        assistant.handle_message("u", "study rust")
        assistant.close()

        assert len(repository.load("u").sessions) == 1

    def test_failed_write_surfaces_on_next_request(self, deferred_deps):
        store = Mock()
        store.get.return_value = None
        store.put.side_effect = OSError("disk full")
        assistant = StudyAssistant(deferred_deps, StateRepository(store))

        result = assistant.handle_message("u", "hello")
        assert result.action is Action.GENERAL_CHAT

        with pytest.raises(StoreUnavailableError):
            assistant.handle_message("u", "hello again")
        with pytest.raises(StoreUnavailableError):
            assistant.close()

    def test_transient_write_failure_keeps_plan(self, deferred_deps, memory_store):
        """The plan from a reply whose save failed once is saved before the next load."""
        store = Mock(wraps=memory_store)
        failures = [OSError("transient")]

        def flaky_put(key, record):
            if failures:
                raise failures.pop()
            memory_store.put(key, record)

        store.put.side_effect = flaky_put
        repository = StateRepository(store)

        with StudyAssistant(deferred_deps, repository) as assistant:
            assert assistant.handle_message("u", "study rust").action is Action.CREATE_PLAN
            result = assistant.handle_message("u", "hello")

        assert result.action is Action.GENERAL_CHAT
        state = repository.load("u")
        assert len(state.sessions) == 1
        assert state.sessions[0].goal == "study rust"
        assert len(state.recent_history) == 4


class TestConcurrency:
    """Requests for one user run one at a time."""

    def test_same_user_requests_are_serialized(self, app_config, clock, repository):
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def generate(messages, max_output_tokens):
            calls.append(messages[-1]["content"])
            if len(calls) == 1:
                entered.set()
                release.wait(5)
            return f"plan {len(calls)}"

        llm = Mock()
        llm.generate.side_effect = generate
        deps = Dependencies(config=app_config, llm=llm, clock=clock)
        assistant = StudyAssistant(deps, repository)

        first = threading.Thread(target=assistant.handle_message, args=("u", "study rust"))
        second = threading.Thread(target=assistant.handle_message, args=("u", "study graphs"))
        first.start()
        assert entered.wait(5)
        second.start()

        # The second request cannot reach the engine while the first holds the user
        second.join(timeout=0.2)
        assert second.is_alive()
        assert len(calls) == 1

        release.set()
        first.join(5)
        second.join(5)

        state = repository.load("u")
        assert [s.goal for s in state.sessions] == ["study rust", "study graphs"]
        assert len(state.recent_history) == 4

    def test_different_users_do_not_block(self, app_config, clock, repository):
        release = threading.Event()

        def generate(messages, max_output_tokens):
            if messages[-1]["content"] == "study rust":
                release.wait(5)
            return "ok"

        llm = Mock()
        llm.generate.side_effect = generate
        assistant = StudyAssistant(Dependencies(config=app_config, llm=llm, clock=clock), repository)

        blocked = threading.Thread(target=assistant.handle_message, args=("alice", "study rust"))
        blocked.start()
        try:
            assert assistant.handle_message("bob", "hello").reply == "ok"
        finally:
            release.set()
            blocked.join(5)

    def test_idle_user_locks_are_released(self, assistant):
        assistant.handle_message("u", "hello")
        gc.collect()

        assert "u" not in assistant._user_locks


class TestCallLogFailure:
    """A reply the engine produced is returned even if its call log cannot be written."""

    def test_unwritable_call_log(self, app_config, clock, repository, tmp_path):
        completion = Mock()
        completion.choices = [Mock(message=Mock(content="- 30 min: drills"), finish_reason="stop")]
        completion.usage = Mock(prompt_tokens=10, completion_tokens=5)
        client = Mock()
        client.chat.completions.create.return_value = completion

        with patch("llm.OpenAI", return_value=client):
            llm = LLMClient(app_config.llm, log_path=str(tmp_path))
        deps = Dependencies(config=app_config, llm=llm, clock=clock)

        with StudyAssistant(deps, repository) as assistant:
            result = assistant.handle_message("u", "study rust")

        assert result.action is Action.CREATE_PLAN
        assert result.reply == "- 30 min: drills"
        assert repository.load("u").last_session.plan == "- 30 min: drills"


# =============================================================================
# End-to-end
# =============================================================================

class TestConversationScenario:
    """The four-step study loop: create, revise, report, analyze."""

    MESSAGES = [
        "I have 60 minutes to study binary search.",
        "Make the plan faster and more practical.",
        "I got most of it done but slowed down at the end.",
        "Analyze my study habits so far.",
    ]

    @pytest.fixture
    def scripted_llm(self):
        llm = Mock()
        llm.generate.side_effect = [
            "- 10 min: review the invariant\n- 40 min: 6 problems\n- 10 min: recap",
            "- 5 min: invariant\n- 25 min: 4 timed problems",
            "Good progress. Next time, stop at 20 minutes for a short break.",
            "- You plan well but fade late\n- Try shorter blocks",
        ]
        return llm

    def _run(self, assistant):
        return [assistant.handle_message("demo-user", m) for m in self.MESSAGES]

    def test_actions(self, app_config, scripted_llm, clock, repository):
        deps = Dependencies(config=app_config, llm=scripted_llm, clock=clock)
        with StudyAssistant(deps, repository) as assistant:
            results = self._run(assistant)

        assert [r.action for r in results] == [
            Action.CREATE_PLAN,
            Action.REVISE_PLAN,
            Action.LOG_OUTCOME,
            Action.ANALYZE_PATTERN,
        ]
        assert scripted_llm.generate.call_count == 4

    def test_final_state(self, app_config, scripted_llm, clock, repository):
        deps = Dependencies(config=app_config, llm=scripted_llm, clock=clock)
        with StudyAssistant(deps, repository) as assistant:
            self._run(assistant)

        state = repository.load("demo-user")
        assert len(state.sessions) == 2
        assert state.sessions[0].outcome_note is None
        assert state.sessions[1].outcome_note == self.MESSAGES[2]
        assert state.sessions[1].goal == self.MESSAGES[0]
        assert state.last_session == state.sessions[1]
        assert state.last_analysis == "- You plan well but fade late\n- Try shorter blocks"
        assert len(state.recent_history) == 8

    def test_deferred_matches_sync(self, app_config, scripted_llm, clock, repository):
        config = replace(app_config, assistant=AssistantConfig(defer_persistence=True))
        deps = Dependencies(config=config, llm=scripted_llm, clock=clock)
        with StudyAssistant(deps, repository) as assistant:
            results = self._run(assistant)

        assert results[-1].action is Action.ANALYZE_PATTERN
        state = repository.load("demo-user")
        assert len(state.sessions) == 2
        assert state.last_analysis is not None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
