"""
Common utilities shared across step modules.

Contains:
- Dependencies dataclass for dependency injection
- generate_reply: the single, fail-soft path to the generation engine
- JSON helpers for embedding state in prompts
"""

import json
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

from config import AppConfig
from llm import GenerationError
from logging_utils import get_logger
from state import Session

logger = get_logger(__name__)


class TextGenerator(Protocol):
    """Anything that can turn chat messages into text (LLMClient in production)."""

    def generate(self, messages: list[dict[str, str]], max_output_tokens: int) -> str:
        ...


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Dependencies:
    """
    All external dependencies for step functions.

    Injected once at startup, passed to all steps.
    Makes testing easy - just mock these.
    """
    config: AppConfig
    llm: TextGenerator
    clock: Callable[[], int] = field(default=now_ms)


def generate_reply(
    deps: Dependencies,
    system_prompt: str,
    user_message: str,
    max_output_tokens: int,
    fallback: str,
) -> str:
    """
    Ask the engine for a reply, never raising for engine trouble.

    Errors, timeouts and empty completions all produce `fallback`.
    """
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_message or "(empty message)"},
    ]

    try:
        text = deps.llm.generate(messages, max_output_tokens)
    except GenerationError as e:
        logger.warning(f"Generation failed, using fallback: {e}")
        return fallback

    if not text or not text.strip():
        logger.warning("Generation returned no text, using fallback")
        return fallback

    return text.strip()


def to_prompt_json(value) -> str:
    """Pretty JSON for prompt embedding."""
    return json.dumps(value, ensure_ascii=False, indent=2)


def session_json(session: Session | None) -> str:
    return to_prompt_json(session.to_dict() if session else None)
