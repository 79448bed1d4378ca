"""
Logging setup for Study Buddy.

All loggers hang off a single "studybuddy" logger, so one call decides where
routing decisions, engine retries and store problems end up.

Usage:
    from logging_utils import get_logger

    logger = get_logger(__name__)
    logger.info("[alice] routed to create_plan")
"""

import logging
import os
import sys
from typing import Optional, TextIO

ROOT_LOGGER_NAME = "studybuddy"
LEVEL_ENV_VAR = "STUDY_LOG_LEVEL"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def level_from_env(default: int = logging.INFO) -> int:
    """Level named by STUDY_LOG_LEVEL ("DEBUG", "warning", ...), else default."""
    name = os.environ.get(LEVEL_ENV_VAR, "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, DATE_FORMAT)


def configure_logging(level: Optional[int] = None, stream: Optional[TextIO] = None) -> None:
    """
    Attach a stream handler to the studybuddy logger.

    Only the first call has an effect; get_logger() makes it with defaults, so
    call this explicitly before anything else to choose level or stream.

    Args:
        level: Logger level (default: STUDY_LOG_LEVEL, else INFO)
        stream: Output stream (default: sys.stderr)
    """
    global _configured
    if _configured:
        return

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level if level is not None else level_from_env())

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(_formatter())
    root.addHandler(handler)
    _configured = True


def add_file_handler(path: str) -> logging.Handler:
    """
    Also write studybuddy logs to a file (appending).

    Returns:
        The new handler, so callers can remove it again.
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(_formatter())
    logging.getLogger(ROOT_LOGGER_NAME).addHandler(handler)
    return handler


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, named studybuddy.<module>."""
    configure_logging()

    # Imported as a package ("src.router") or from src/ ("router")
    if name.startswith("src."):
        name = name[len("src."):]

    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_verbose(verbose: bool) -> None:
    """DEBUG when verbose, otherwise WARNING (routing lines are hidden)."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)
