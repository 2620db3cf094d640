"""Chat abstractions shared by Slack and the terminal."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from rich.console import Console
from rich.markup import escape

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_LENGTH = 4000

_MENTION = re.compile(r"^\s*<@[A-Z0-9]+(?:\|[^>]*)?>:?\s*")


def parse_command(text: str) -> List[str]:
    """Split a chat line into command words.

    A leading mention of the bot is dropped and the first word is
    lower-cased so that ``@lurch Deploy web api`` reads as a deploy.
    """
    words = _MENTION.sub("", text or "", count=1).split()
    if words:
        words[0] = words[0].lower()
    return words


@dataclass
class IncomingMessage:
    """A message addressed to the bot."""

    channel: str            # channel ID the message was posted in
    user: str               # sender ID
    text: str
    timestamp: str = ""

    @property
    def command(self) -> List[str]:
        return parse_command(self.text)


class Conversation(ABC):
    """Somewhere the bot can post messages."""

    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH

    @abstractmethod
    def send(self, text: str) -> None:
        """
        Post a channel-level message.

        Args:
            text: The message to post, at most ``max_message_length`` characters
        """
        pass

    def reply(self, text: str) -> None:
        """Answer whoever started the conversation. Defaults to ``send``."""
        self.send(text)


class ConsoleConversation(Conversation):
    """Renders messages in the terminal, for running commands locally."""

    def __init__(
        self,
        console: Optional[Console] = None,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    ) -> None:
        self.console = console or Console()
        self.max_message_length = max_message_length

    def send(self, text: str) -> None:
        self.console.print(f"[bold cyan]lurch[/bold cyan] {escape(text)}")

    def reply(self, text: str) -> None:
        self.console.print(f"[bold cyan]lurch[/bold cyan] [dim]→ you:[/dim] {escape(text)}")
