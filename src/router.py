"""
Router: Deterministic intent classification.

Every message is mapped to exactly one Action by a fixed rule table. No model
call is involved, so routing costs nothing and always gives the same answer
for the same (state, message).

Design principles:
- The rule table is data: an ordered list of (name, predicate, action)
- First matching rule wins; the last rule always matches
- Keywords match whole words, case-insensitively (plural "s" allowed)
"""

import re
from dataclasses import dataclass
from typing import Callable

from state import Action, UserState


def keyword_pattern(keywords: list[str]) -> re.Pattern:
    """Compile a whole-word, case-insensitive matcher for any of the keywords."""
    alternatives = "|".join(
        r"\s+".join(re.escape(part) for part in keyword.split())
        for keyword in keywords
    )
    return re.compile(rf"\b(?:{alternatives})s?\b", re.IGNORECASE)


# =============================================================================
# Keyword Tables
# =============================================================================

ANALYSIS_WORDS = keyword_pattern(["analyze", "analyse", "pattern", "habit", "trend", "history"])
OUTCOME_WORDS = keyword_pattern(["finished", "completed", "done", "did it", "failed", "stuck", "fell behind"])
PLAN_WORDS = keyword_pattern(["plan", "schedule", "agenda", "block", "timetable", "routine"])
ADJUST_WORDS = keyword_pattern(["change", "adjust", "revise", "modify", "tweak", "shorter", "longer"])
STUDY_WORDS = keyword_pattern(["study", "learn", "review", "prep", "prepare"])

# Used only by is_direct_question
QUESTION_PLAN_WORDS = keyword_pattern(["plan", "schedule", "session", "block"])
SELF_REFERENCE = re.compile(r"\b(?:we|i|me|my)\b", re.IGNORECASE)

AFFIRMATIONS = frozenset({"ok", "okay", "sure", "fine", "yes", "go ahead", "do it"})

# ASCII, full-width, and interrobang-style question endings
QUESTION_MARKS = ("?", "？", "‽", "⁇", "⁈", "⁉")


def is_affirmation(message: str) -> bool:
    """True only if the whole message is a short agreement ("ok", "do it", ...)."""
    return message.strip().lower() in AFFIRMATIONS


def is_direct_question(message: str) -> bool:
    """
    True for impersonal factual questions ("What is a pointer?").

    A question that mentions planning or refers to the speaker ("Can I get a
    plan?") is a personal request, not a fact lookup.
    """
    text = message.strip()
    if not text.endswith(QUESTION_MARKS):
        return False
    if QUESTION_PLAN_WORDS.search(text):
        return False
    if SELF_REFERENCE.search(text):
        return False
    return True


# =============================================================================
# Rule Table
# =============================================================================

Predicate = Callable[[UserState, str], bool]


@dataclass(frozen=True)
class Rule:
    """One row of the routing table."""
    name: str
    matches: Predicate
    action: Callable[[UserState], Action]


def _has_plan(state: UserState) -> bool:
    return state.last_session is not None


RULES: list[Rule] = [
    Rule(
        name="analysis_request",
        matches=lambda state, text: bool(ANALYSIS_WORDS.search(text)),
        action=lambda state: Action.ANALYZE_PATTERN,
    ),
    Rule(
        name="outcome_report",
        matches=lambda state, text: _has_plan(state) and bool(OUTCOME_WORDS.search(text)),
        action=lambda state: Action.LOG_OUTCOME,
    ),
    Rule(
        name="plan_request",
        matches=lambda state, text: bool(PLAN_WORDS.search(text)),
        action=lambda state: Action.REVISE_PLAN if _has_plan(state) else Action.CREATE_PLAN,
    ),
    Rule(
        name="adjustment",
        matches=lambda state, text: _has_plan(state) and bool(ADJUST_WORDS.search(text)),
        action=lambda state: Action.REVISE_PLAN,
    ),
    Rule(
        name="affirmation",
        matches=lambda state, text: is_affirmation(text),
        action=lambda state: Action.GENERAL_CHAT,
    ),
    Rule(
        name="study_request",
        matches=lambda state, text: bool(STUDY_WORDS.search(text)),
        action=lambda state: Action.CREATE_PLAN,
    ),
    Rule(
        name="direct_question",
        matches=lambda state, text: is_direct_question(text),
        action=lambda state: Action.DIRECT_ANSWER,
    ),
    Rule(
        name="fallback",
        matches=lambda state, text: True,
        action=lambda state: Action.GENERAL_CHAT,
    ),
]


def match_rule(state: UserState, message: str) -> Rule:
    """Return the first rule in RULES that matches."""
    for rule in RULES:
        if rule.matches(state, message):
            return rule
    # Unreachable while RULES ends with the fallback rule
    raise LookupError("No routing rule matched")


def classify(state: UserState, message: str) -> Action:
    """
    Decide what to do with a message.

    Pure function: no I/O, no side effects.

    Args:
        state: Current user state (only the presence of a plan is consulted).
        message: Raw user message; may be empty.

    Returns:
        The Action to run.
    """
    return match_rule(state, message).action(state)
