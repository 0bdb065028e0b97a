"""
``miniclaw`` console entry point: arguments, config, provider, tools and
sessions are wired here before the interactive CLI takes over.
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config.settings import load_config
from .core.errors import AgentError
from .core.prompt_builder import PromptBuilder
from .core.providers import ProviderFactory
from .core.session_manager import SessionManager
from .core.session_store import DEFAULT_SESSIONS_DIR, SessionStore, SessionStoreError
from .core.structured_logger import setup_structured_logging
from .core.tool_registry import ToolRegistry
from .interfaces.cli import CLI, Colors
from .tools import register_tools

# -v count -> root log level
VERBOSITY_LEVELS = ("WARNING", "INFO", "DEBUG")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="miniclaw",
        description="miniclaw — terminal AI agent",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to config YAML file (default: ~/.miniclaw/config.yaml)",
        default=None,
    )
    parser.add_argument(
        "-p", "--provider",
        help=f"LLM provider ({', '.join(ProviderFactory.available())})",
        default=None,
    )
    parser.add_argument(
        "-m", "--model",
        help="Model name to use",
        default=None,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    )
    parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Request whole responses instead of streaming",
    )
    parser.add_argument(
        "--resume",
        metavar="ID",
        default=None,
        help="Resume a saved session",
    )
    return parser.parse_args(argv)


def build_cli(args: argparse.Namespace) -> CLI:
    """Wire config, provider, tools and sessions together."""
    config = load_config(args.config)

    # Command-line flags win over file and env
    if args.provider:
        config.set("llm.provider", args.provider)
    if args.model:
        config.set("llm.model", args.model)
    if args.no_stream:
        config.set("llm.stream", False)

    provider = ProviderFactory.create(config)

    registry = ToolRegistry()
    register_tools(registry, config)

    system_prompt = PromptBuilder(config).build()
    manager = SessionManager.from_config(config, provider, registry, system_prompt=system_prompt)
    store = SessionStore(config.get("sessions.dir", DEFAULT_SESSIONS_DIR))

    session = None
    if args.resume:
        session = store.load_session(args.resume).restore(manager)

    return CLI(manager, store, session=session)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)

    setup_structured_logging(level=VERBOSITY_LEVELS[min(args.verbose, 2)])

    logger = logging.getLogger(__name__)

    try:
        cli = build_cli(args)
    except (AgentError, SessionStoreError) as e:
        print(f"{Colors.RED}Error: {e}{Colors.RESET}", file=sys.stderr)
        sys.exit(1)

    logger.info(f"Starting session {cli.session.id} with {cli.manager.provider!r}")
    try:
        asyncio.run(cli.run())
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
