"""
Steps: Per-action state transitions for the study assistant.

Each step function follows the pattern:
    def step_name(state: UserState, message: str, deps: Dependencies) -> tuple[str, UserState]

and returns the reply together with the new state. Steps call the generation
engine at most once and never raise for engine failures.

This package is organized into modules by concern:
- prompts: LLM prompt templates
- common: Shared dependencies and the fail-soft generation helper
- planning: create_plan, revise_plan
- review: log_outcome, analyze_pattern
- conversation: direct_answer, general_chat
"""

from steps.common import Dependencies, generate_reply, now_ms
from steps.planning import create_plan, revise_plan
from steps.review import log_outcome, analyze_pattern
from steps.conversation import direct_answer, general_chat

__all__ = [
    # Types
    "Dependencies",
    # Helpers
    "generate_reply",
    "now_ms",
    # Planning
    "create_plan",
    "revise_plan",
    # Review
    "log_outcome",
    "analyze_pattern",
    # Conversation
    "direct_answer",
    "general_chat",
]
