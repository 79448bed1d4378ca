"""
LLM Client: Clean interface to the text generation engine.

This module provides a dependency-injectable LLM client that doesn't rely on globals.
All configuration is passed explicitly.

Design principles:
- No global state
- Configuration passed via constructor
- One call shape: a system message plus a user message, with an output budget
- Transient API errors are retried, everything else surfaces as GenerationError
- Optional logging to file
"""

import functools
import json
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, TypeVar

import openai
import tiktoken
from openai import OpenAI

from config import LLMConfig
from logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class GenerationError(Exception):
    """The generation engine could not produce a completion."""


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retryable_exceptions: tuple = RETRYABLE_ERRORS,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of attempts.
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay between retries.
        exponential_base: Base for exponential backoff calculation.
        retryable_exceptions: Tuple of exception types to retry on.

    Usage:
        @retry_with_backoff(max_retries=3)
        def my_api_call():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e

                    if attempt < max_retries - 1:
                        delay = min(
                            base_delay * (exponential_base ** attempt),
                            max_delay
                        )
                        logger.warning(
                            f"retry {attempt + 1}/{max_retries - 1} in {delay:.1f}s: "
                            f"{e.__class__.__name__}"
                        )
                        time.sleep(delay)

            # All retries exhausted
            raise last_exception

        return wrapper
    return decorator


@dataclass
class LLMResponse:
    """Structured response from LLM call."""
    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str = ""


@dataclass
class LLMStats:
    """Statistics for LLM usage tracking."""
    calls: int = 0
    failures: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def record(self, prompt_tokens: int, completion_tokens: int) -> None:
        self.calls += 1
        self.prompt_tokens += prompt_tokens
        self.completion_tokens += completion_tokens

    def record_failure(self) -> None:
        self.failures += 1


def estimate_tokens(text: str) -> int:
    """Estimate token count using tiktoken cl100k_base encoding."""
    encoding = tiktoken.get_encoding("cl100k_base")
    return len(encoding.encode(text))


def _safe_estimate(text: str) -> int:
    """estimate_tokens(), or 0 when the encoding cannot be loaded."""
    try:
        return estimate_tokens(text)
    except Exception as e:  # tiktoken may fail fetching its encoding file
        logger.warning(f"Token estimate unavailable: {e.__class__.__name__}: {e}")
        return 0


class LLMClient:
    """
    Generation engine client with explicit configuration.

    Usage:
        config = LLMConfig.from_env()
        client = LLMClient(config)

        text = client.generate(
            [
                {"role": "system", "content": "You are a study planner."},
                {"role": "user", "content": "I have 60 minutes for graphs."},
            ],
            max_output_tokens=2048,
        )
    """

    def __init__(
        self,
        config: LLMConfig,
        log_path: str | None = None,
    ):
        """
        Initialize LLM client.

        Args:
            config: LLM configuration (model, temperature, timeout, retries).
            log_path: Optional path to write JSONL call logs. If None, no logging.
        """
        self.config = config
        self.log_path = log_path
        self.stats = LLMStats()
        self._client = OpenAI(
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=0,  # retries are handled by retry_with_backoff
        )

    def generate(self, messages: list[dict[str, str]], max_output_tokens: int) -> str:
        """
        Send messages to the model and return the completion text.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            max_output_tokens: Upper bound on completion length.

        Returns:
            The completion text, possibly empty.

        Raises:
            GenerationError: The API failed after retries or timed out.
        """
        return self.generate_messages(messages, max_output_tokens).content

    def generate_messages(self, messages: list[dict[str, str]], max_output_tokens: int) -> LLMResponse:
        """Like generate(), but returns the full LLMResponse."""
        call = retry_with_backoff(max_retries=max(1, self.config.max_retries))(self._call_api)
        try:
            completion = call(messages, max_output_tokens)
        except openai.OpenAIError as e:
            self.stats.record_failure()
            logger.warning(f"Generation failed: {e.__class__.__name__}: {e}")
            raise GenerationError(str(e)) from e

        choice = completion.choices[0] if completion.choices else None
        content = (choice.message.content if choice else None) or ""

        if completion.usage:
            prompt_tokens = completion.usage.prompt_tokens
            completion_tokens = completion.usage.completion_tokens
        else:
            # Some OpenAI-compatible endpoints omit usage
            prompt_tokens = _safe_estimate(json.dumps(messages, ensure_ascii=False))
            completion_tokens = _safe_estimate(content)

        response = LLMResponse(
            content=content,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            finish_reason=(choice.finish_reason if choice else "") or "",
        )

        if response.finish_reason == "length":
            logger.warning(f"Completion truncated at {max_output_tokens} tokens")

        self.stats.record(response.prompt_tokens, response.completion_tokens)
        self._log(messages, max_output_tokens, response)

        return response

    def _call_api(self, messages: list[dict[str, str]], max_output_tokens: int):
        """Make the actual API call."""
        return self._client.chat.completions.create(
            messages=messages,
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=max_output_tokens,
            stream=False,
        )

    def _log(
        self,
        messages: list[dict[str, str]],
        max_output_tokens: int,
        response: LLMResponse,
    ) -> None:
        """Write log entry to file if log_path is set."""
        if not self.log_path:
            return

        log_entry = {
            "model": self.config.model,
            "messages": messages,
            "max_output_tokens": max_output_tokens,
            "response": response.content,
            "finish_reason": response.finish_reason,
            "prompt_tokens": response.prompt_tokens,
            "completion_tokens": response.completion_tokens,
            "timestamp": datetime.now().isoformat(),
        }

        try:
            log_dir = os.path.dirname(self.log_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            with open(self.log_path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(log_entry, ensure_ascii=False) + '\n')
        except OSError as e:
            logger.warning(f"Could not write LLM call log {self.log_path}: {e}")
