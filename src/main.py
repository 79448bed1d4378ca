"""
Main entry point for Study Buddy.

This module wires together all components and provides both CLI and programmatic interfaces.

Usage:
    # Interactive chat
    python main.py --user alice

    # One message
    python main.py --message "I have 60 minutes to study binary search."

    # Programmatic
    from main import create_assistant
    with create_assistant() as assistant:
        result = assistant.handle_message("alice", "Analyze my study habits so far.")
"""

import argparse
import json
import logging
import os
import sys

from config import AppConfig, load_config, ensure_directories
from llm import LLMClient
from logging_utils import ROOT_LOGGER_NAME, add_file_handler, get_logger, set_verbose
from steps import Dependencies
from store import StateRepository, StoreUnavailableError, create_store
from workflow import StudyAssistant

logger = get_logger(__name__)

EXIT_COMMANDS = {"exit", "quit", ":q"}


def create_dependencies(config: AppConfig, log_dir: str | None = None) -> Dependencies:
    """
    Create the dependencies container.

    Args:
        config: Application configuration.
        log_dir: Optional directory for LLM call logs.

    Returns:
        Dependencies instance with all external dependencies.
    """
    log_path = os.path.join(log_dir, "llm_logs.jsonl") if log_dir else None
    llm = LLMClient(config.llm, log_path=log_path)
    return Dependencies(config=config, llm=llm)


def create_assistant(config: AppConfig | None = None, log_dir: str | None = None) -> StudyAssistant:
    """
    Build a ready-to-use StudyAssistant.

    Args:
        config: Application configuration (loads default if None).
        log_dir: Optional directory for LLM call logs.

    Returns:
        StudyAssistant; close it (or use it as a context manager) to flush saves.
    """
    if config is None:
        config = load_config()

    ensure_directories(config)

    deps = create_dependencies(config, log_dir=log_dir)
    repository = StateRepository(create_store(config.store), key_prefix=config.store.key_prefix)
    return StudyAssistant(deps, repository)


def print_result(result, show_action: bool = True) -> None:
    if show_action:
        print(f"[{result.action.value}]")
    print(result.reply)


def chat_loop(assistant: StudyAssistant, user_id: str, show_action: bool = True) -> None:
    """Read messages from stdin until EOF or an exit command."""
    print("Study Buddy - type 'exit' to quit.")
    while True:
        try:
            message = input("\nyou> ")
        except EOFError:
            print()
            break

        if message.strip().lower() in EXIT_COMMANDS:
            break

        result = assistant.handle_message(user_id, message)
        print()
        print_result(result, show_action=show_action)


def main():
    """Command-line interface."""
    parser = argparse.ArgumentParser(
        description="Study Buddy: a conversational study planner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python main.py
    python main.py --user alice --message "Make the plan shorter."
    python main.py --user alice --show-state
    python main.py --user alice --reset
        """
    )

    parser.add_argument(
        "--user",
        type=str,
        default=None,
        help="User id whose state to use (default from config: demo-user)"
    )
    parser.add_argument(
        "--message",
        type=str,
        default=None,
        help="Send a single message and exit"
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Reset the user's state to defaults and exit"
    )
    parser.add_argument(
        "--show-state",
        action="store_true",
        help="Print the user's stored state as JSON and exit"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config JSON file"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Hide routing decisions and log output"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    if args.verbose or args.quiet:
        set_verbose(args.verbose)

    config = load_config(args.config) if args.config else load_config()
    user_id = args.user or config.assistant.default_user_id
    log_handler = add_file_handler(os.path.join(config.paths.logs_dir, "studybuddy.log"))

    try:
        with create_assistant(config, log_dir=config.paths.logs_dir) as assistant:
            if args.reset:
                assistant.reset(user_id)
                print(json.dumps({"reset": True}))
            elif args.show_state:
                state = assistant.get_state(user_id)
                print(json.dumps(state.to_dict(), ensure_ascii=False, indent=2))
            elif args.message is not None:
                print_result(assistant.handle_message(user_id, args.message), show_action=not args.quiet)
            else:
                chat_loop(assistant, user_id, show_action=not args.quiet)
        sys.exit(0)

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except StoreUnavailableError as e:
        logger.error(f"State store unavailable: {e}")
        print(f"\nError: state store unavailable: {e}")
        sys.exit(1)
    finally:
        logging.getLogger(ROOT_LOGGER_NAME).removeHandler(log_handler)
        log_handler.close()


if __name__ == "__main__":
    main()
