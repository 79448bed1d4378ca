"""
Conversation steps: factual answers and open dialogue.

Neither step changes the stored state; the orchestrator still records the
exchange in recent history.
"""

from history import format_history
from state import UserState
from steps.common import Dependencies, generate_reply, session_json
from steps.prompts import PROMPT_DIRECT_ANSWER, PROMPT_GENERAL_CHAT

FALLBACK_ANSWER = "Sorry, I couldn't answer that right now."
FALLBACK_CHAT = "Want to set up a study block? Tell me the topic and how much time you have."


def direct_answer(state: UserState, message: str, deps: Dependencies) -> tuple[str, UserState]:
    """Answer a factual question briefly, without offering a plan."""
    reply = generate_reply(
        deps,
        PROMPT_DIRECT_ANSWER,
        message,
        max_output_tokens=deps.config.assistant.budgets.answer,
        fallback=FALLBACK_ANSWER,
    )
    return reply, state


def general_chat(state: UserState, message: str, deps: Dependencies) -> tuple[str, UserState]:
    """Keep the conversation going and steer it toward a next study step."""
    prompt = PROMPT_GENERAL_CHAT.format(
        history=format_history(state.recent_history),
        last_session=session_json(state.last_session),
    )
    reply = generate_reply(
        deps,
        prompt,
        message,
        max_output_tokens=deps.config.assistant.budgets.chat,
        fallback=FALLBACK_CHAT,
    )
    return reply, state
