"""Command-line interface for Lurch."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import List, Optional

from rich.console import Console

from .bot import LurchBot
from .chat import ConsoleConversation, IncomingMessage, SlackAPIError
from .config import AppConfig, load_config
from .orchestrator import CatalogueStore, CommandRouter, DeploymentExecutor, ImageSynchronizer
from .orchestrator.listing import version_reply
from .runtime import DockerRuntime
from .utils.logging import get_logger

logger = get_logger(__name__)

# Commands typed in the terminal count as coming from the deployment channel.
CONSOLE_CHANNEL = "console"


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lurch",
        description="Deploy ansible playbooks from a Docker image on command from Slack.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("run", help="Connect to Slack and wait for commands")

    say_parser = subparsers.add_parser(
        "say", help="Run a single chat command locally, e.g. `lurch say list myproject`"
    )
    say_parser.add_argument("words", nargs="*", help="The command as it would be typed in Slack")

    subparsers.add_parser("version", help="Show the version and commit Lurch was built from")
    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    return CLIContext(config=load_config(args.config))


def handle_run_command(context: CLIContext) -> int:
    try:
        context.config.validate()
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    bot = LurchBot(context.config)
    try:
        bot.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    except SlackAPIError as exc:
        logger.error("Could not talk to Slack: %s", exc)
        return 1
    return 0


def handle_say_command(context: CLIContext, words: List[str], console: Optional[Console] = None) -> int:
    config = context.config
    try:
        config.validate(require_token=False)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    runtime = DockerRuntime(config.docker.base_url)
    catalogue = CatalogueStore()
    synchronizer = ImageSynchronizer(config, runtime, catalogue)
    router = CommandRouter(
        config,
        synchronizer,
        DeploymentExecutor(config, runtime, catalogue),
        deploy_channel_id=CONSOLE_CHANNEL,
    )
    conversation = ConsoleConversation(console, max_message_length=config.slack.max_message_length)
    message = IncomingMessage(channel=CONSOLE_CHANNEL, user="console", text=" ".join(words))
    try:
        router.handle(message, conversation)
    finally:
        synchronizer.close()
    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    context = _build_context(args)

    if args.command == "run":
        return handle_run_command(context)
    if args.command == "say":
        return handle_say_command(context, args.words)
    if args.command == "version":
        Console().print(version_reply(context.config.version, context.config.commit))
        return 0

    parser.error(f"Unknown command: {args.command}")
    return 2
