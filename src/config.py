"""
AppConfig: Immutable application configuration.

This module contains ONLY static configuration that doesn't change during execution.
All per-user runtime state belongs in UserState (see state.py).

Design principles:
- Frozen dataclasses prevent accidental mutation
- Configuration loaded once at startup
- Environment variables can override config file values
- No global mutable state
"""

import os
import json
from dataclasses import dataclass, field

from logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PathConfig:
    """Immutable path configuration."""
    root_dir: str
    src_dir: str
    state_dir: str
    logs_dir: str
    inputs_dir: str

    @classmethod
    def from_defaults(cls, root_dir: str | None = None) -> "PathConfig":
        """Create PathConfig with default paths based on root directory."""
        src_dir = os.path.dirname(os.path.abspath(__file__))
        if root_dir is None:
            root_dir = os.path.dirname(src_dir)

        return cls(
            root_dir=root_dir,
            src_dir=src_dir,
            state_dir=os.path.join(root_dir, "state"),
            logs_dir=os.path.join(root_dir, "logs"),
            inputs_dir=os.path.join(root_dir, "inputs"),
        )


@dataclass(frozen=True)
class LLMConfig:
    """Immutable generation engine configuration."""
    base_url: str
    model: str
    temperature: float = 0.7
    timeout: float = 60.0  # seconds
    max_retries: int = 3

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Create LLMConfig from environment variables."""
        return cls(
            base_url=os.environ.get("OPENAI_BASE_URL", "https://openrouter.ai/api/v1"),
            model=os.environ.get("STUDY_MODEL_NAME", "meta-llama/llama-3.1-8b-instruct"),
            temperature=float(os.environ.get("STUDY_TEMPERATURE", "0.7")),
            timeout=float(os.environ.get("STUDY_LLM_TIMEOUT", "60")),
            max_retries=int(os.environ.get("STUDY_LLM_MAX_RETRIES", "3")),
        )


@dataclass(frozen=True)
class StoreConfig:
    """Where and how user state records are kept."""
    backend: str = "file"  # "file" or "memory"
    state_dir: str = "state"
    key_prefix: str = "user:"


@dataclass(frozen=True)
class TokenBudgets:
    """Output token budgets per action."""
    # Multi-item bulleted plans get truncated below ~2k tokens.
    plan: int = 2048
    outcome: int = 256
    analysis: int = 384
    answer: int = 256
    chat: int = 512


@dataclass(frozen=True)
class AssistantConfig:
    """Behavioral limits of the conversation core."""
    history_limit: int = 8
    analysis_window: int = 10
    budgets: TokenBudgets = field(default_factory=TokenBudgets)
    defer_persistence: bool = True
    default_user_id: str = "demo-user"


@dataclass(frozen=True)
class AppConfig:
    """
    Complete immutable application configuration.

    This is the single source of truth for all static configuration.
    Create once at startup and pass to functions that need it.
    """
    paths: PathConfig
    llm: LLMConfig
    store: StoreConfig = StoreConfig()
    assistant: AssistantConfig = AssistantConfig()


def load_config(config_path: str | None = None) -> AppConfig:
    """
    Load configuration from JSON file and environment variables.

    Priority: Environment variables > Config file > Defaults

    Args:
        config_path: Path to JSON config file. If None, uses default location.

    Returns:
        Immutable AppConfig instance.
    """
    paths = PathConfig.from_defaults()

    if config_path is None:
        config_path = os.path.join(paths.inputs_dir, "studybuddy_config.json")

    config_data = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")

    # Set environment variables from config (env vars take priority)
    _set_env_if_not_exists("OPENAI_API_KEY", config_data.get("OPENAI_API_KEY", ""))
    _set_env_if_not_exists("OPENAI_BASE_URL", config_data.get("OPENAI_BASE_URL", ""))
    _set_env_if_not_exists("STUDY_MODEL_NAME", config_data.get("STUDY_MODEL_NAME", ""))

    state_dir = os.environ.get("STUDY_STATE_DIR") or config_data.get("state_dir", paths.state_dir)
    paths = PathConfig(
        root_dir=paths.root_dir,
        src_dir=paths.src_dir,
        state_dir=state_dir,
        logs_dir=config_data.get("logs_dir", paths.logs_dir),
        inputs_dir=paths.inputs_dir,
    )

    store = StoreConfig(
        backend=os.environ.get("STUDY_STORE_BACKEND") or config_data.get("store_backend", "file"),
        state_dir=state_dir,
        key_prefix=config_data.get("store_key_prefix", "user:"),
    )

    budgets_data = config_data.get("token_budgets", {})
    budgets = TokenBudgets(**{
        k: int(v) for k, v in budgets_data.items() if k in TokenBudgets.__dataclass_fields__
    })

    assistant = AssistantConfig(
        history_limit=config_data.get("history_limit", 8),
        analysis_window=config_data.get("analysis_window", 10),
        budgets=budgets,
        defer_persistence=config_data.get("defer_persistence", True),
        default_user_id=config_data.get("default_user_id", "demo-user"),
    )

    return AppConfig(
        paths=paths,
        llm=LLMConfig.from_env(),
        store=store,
        assistant=assistant,
    )


def _set_env_if_not_exists(key: str, value: str) -> None:
    """Set environment variable only if not already set and value is non-empty."""
    if key not in os.environ or not os.environ[key]:
        if value:
            os.environ[key] = value


def ensure_directories(config: AppConfig) -> None:
    """Ensure all required directories exist."""
    directories = [
        config.paths.state_dir,
        config.paths.logs_dir,
    ]
    for directory in directories:
        if not os.path.exists(directory):
            os.makedirs(directory)
            logger.info(f"Created directory: {directory}")
