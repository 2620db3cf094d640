"""Chat collaborators: Slack and the local terminal."""

from .base import (
    ConsoleConversation,
    Conversation,
    IncomingMessage,
    parse_command,
)
from .slack import SlackAPIError, SlackClient, SlackConversation, SlackListener

__all__ = [
    "ConsoleConversation",
    "Conversation",
    "IncomingMessage",
    "parse_command",
    "SlackAPIError",
    "SlackClient",
    "SlackConversation",
    "SlackListener",
]
