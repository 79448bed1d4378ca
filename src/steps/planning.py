"""
Planning steps: creating and revising study plans.

Both steps append a new Session to the log and make it the current plan.
"""

from history import format_history
from state import Action, Session, UserState
from steps.common import Dependencies, generate_reply, session_json, to_prompt_json
from steps.prompts import PROMPT_CREATE_PLAN, PROMPT_REVISE_PLAN

FALLBACK_CREATE = "Could not generate plan."
FALLBACK_REVISE = "Could not revise plan."
NO_PLAN = "(none)"


def _new_session(state: UserState, deps: Dependencies, action: Action, goal: str, plan: str) -> Session:
    session_id, timestamp = state.next_session_stamp(deps.clock())
    return Session(
        id=session_id,
        timestamp=timestamp,
        goal=goal,
        action=action,
        plan=plan,
        outcome_note=None,
    )


def create_plan(state: UserState, message: str, deps: Dependencies) -> tuple[str, UserState]:
    """
    Generate a new study plan from the message and recent context.

    Returns:
        (plan text, state with the new session appended and current).
    """
    prompt = PROMPT_CREATE_PLAN.format(
        profile=to_prompt_json(state.profile.to_dict()),
        last_session=session_json(state.last_session),
        history=format_history(state.recent_history),
    )

    plan = generate_reply(
        deps,
        prompt,
        message,
        max_output_tokens=deps.config.assistant.budgets.plan,
        fallback=FALLBACK_CREATE,
    )

    session = _new_session(state, deps, Action.CREATE_PLAN, goal=message, plan=plan)
    return plan, state.with_session(session)


def revise_plan(state: UserState, message: str, deps: Dependencies) -> tuple[str, UserState]:
    """
    Rework the current plan according to the user's feedback.

    The revised session keeps the original goal; with no current plan the
    message itself becomes the goal.

    Returns:
        (revised plan text, state with the revision appended and current).
    """
    previous = state.last_session
    prompt = PROMPT_REVISE_PLAN.format(plan=previous.plan if previous else NO_PLAN)

    plan = generate_reply(
        deps,
        prompt,
        message,
        max_output_tokens=deps.config.assistant.budgets.plan,
        fallback=FALLBACK_REVISE,
    )

    goal = previous.goal if previous and previous.goal else message
    session = _new_session(state, deps, Action.REVISE_PLAN, goal=goal, plan=plan)
    return plan, state.with_session(session)
