"""
Review steps: recording how a session went and analyzing the session log.
"""

from state import UserState
from steps.common import Dependencies, generate_reply, to_prompt_json
from steps.prompts import PROMPT_LOG_OUTCOME, PROMPT_ANALYZE_PATTERN, PROMPT_ANALYZE_USER

FALLBACK_OUTCOME = "Thanks for the update."
FALLBACK_ANALYSIS = "No clear patterns found yet."
NO_PLAN = "(none)"
NO_COMMENT = "(no additional comment)"


def log_outcome(state: UserState, message: str, deps: Dependencies) -> tuple[str, UserState]:
    """
    Record the user's report as the outcome of the current plan.

    The note lands on the current plan and on the newest logged session
    (normally the same session). An empty log is left alone; the user still
    gets feedback.

    Returns:
        (feedback text, state with the outcome attached).
    """
    current = state.last_session
    prompt = PROMPT_LOG_OUTCOME.format(plan=current.plan if current else NO_PLAN)

    reply = generate_reply(
        deps,
        prompt,
        message,
        max_output_tokens=deps.config.assistant.budgets.outcome,
        fallback=FALLBACK_OUTCOME,
    )

    if not state.sessions:
        return reply, state

    targets = {state.sessions[-1].id}
    if current is not None:
        targets.add(current.id)

    sessions = [
        session.with_outcome(message) if session.id in targets else session
        for session in state.sessions
    ]
    return reply, state.apply_update({"sessions": sessions})


def analyze_pattern(state: UserState, message: str, deps: Dependencies) -> tuple[str, UserState]:
    """
    Summarize trends across recent sessions and suggest adjustments.

    Only the newest `analysis_window` sessions are shown to the engine.

    Returns:
        (analysis text, state with lastAnalysis set).
    """
    window = deps.config.assistant.analysis_window
    recent = state.sessions[-window:] if window > 0 else []

    prompt = PROMPT_ANALYZE_PATTERN.format(
        window=window,
        sessions=to_prompt_json([session.to_dict() for session in recent]),
        comment=message.strip() or NO_COMMENT,
    )

    summary = generate_reply(
        deps,
        prompt,
        PROMPT_ANALYZE_USER,
        max_output_tokens=deps.config.assistant.budgets.analysis,
        fallback=FALLBACK_ANALYSIS,
    )

    return summary, state.apply_update({"last_analysis": summary})
