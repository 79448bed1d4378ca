"""
History formatting: render recent turns as a plain-text block for prompts.
"""

from state import Role, Turn

EMPTY_HISTORY = "(no previous conversation)"

ROLE_LABELS = {
    Role.USER: "User",
    Role.ASSISTANT: "Assistant",
}


def format_history(turns: list[Turn]) -> str:
    """
    Render turns oldest first, one "Label: content" entry per turn.

    Multi-line content is kept as-is under its label.

    Returns:
        The formatted block, or EMPTY_HISTORY when there are no turns.
    """
    if not turns:
        return EMPTY_HISTORY

    lines = []
    for turn in turns:
        lines.append(f"{ROLE_LABELS[turn.role]}: {turn.content.strip()}")
    return "\n".join(lines)
