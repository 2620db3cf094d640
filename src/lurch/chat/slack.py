"""Slack Web API client and message listener built on requests.

Messages are collected by polling ``conversations.history``, which Slack
rate limits per method (Tier 3, roughly 50 calls a minute). The listener
therefore only polls the channels it is told to watch plus the bot's direct
messages, spaces its polls to stay within a per-minute call budget, and the
client pauses every call for as long as Slack asks after a 429.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Iterator, List, Optional

import requests

from .base import DEFAULT_MAX_MESSAGE_LENGTH, Conversation, IncomingMessage

logger = logging.getLogger(__name__)


class SlackAPIError(RuntimeError):
    """Raised when a Slack Web API call fails."""

    def __init__(self, method: str, error: str) -> None:
        self.method = method
        self.error = error
        super().__init__(f"Slack API call {method} failed: {error}")


class SlackClient:
    """Thin wrapper over the handful of Web API methods the bot needs."""

    BASE_URL = "https://slack.com/api"

    def __init__(
        self,
        token: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: int = 10,
        max_retries: int = 3,
    ) -> None:
        if not token:
            raise ValueError("A Slack token is required")
        self.session = session or requests.Session()
        self.session.headers["Authorization"] = f"Bearer {token}"
        self.timeout = timeout
        self.max_retries = max_retries
        self._blocked_until = 0.0
        self._backoff_lock = threading.Lock()

    def call(self, method: str, **params: Any) -> Dict[str, Any]:
        url = f"{self.BASE_URL}/{method}"
        data = {k: v for k, v in params.items() if v is not None}

        for attempt in range(self.max_retries):
            self._wait_for_backoff()
            try:
                response = self.session.post(url, data=data, timeout=self.timeout)
            except requests.exceptions.RequestException as exc:
                raise SlackAPIError(method, str(exc)) from exc

            # Handle rate limiting
            if response.status_code == 429 and attempt < self.max_retries - 1:
                wait_time = int(response.headers.get("Retry-After", 1 + attempt))
                logger.warning("Rate limited by Slack on %s. Pausing all calls for %ss...", method, wait_time)
                self._back_off(wait_time)
                continue

            try:
                response.raise_for_status()
                payload = response.json()
            except (requests.exceptions.HTTPError, ValueError) as exc:
                raise SlackAPIError(method, str(exc)) from exc

            if not payload.get("ok"):
                raise SlackAPIError(method, payload.get("error", "unknown_error"))
            return payload

        raise SlackAPIError(method, "rate limited after max retries")

    def _back_off(self, seconds: float) -> None:
        with self._backoff_lock:
            self._blocked_until = max(self._blocked_until, time.monotonic() + seconds)

    def _wait_for_backoff(self) -> None:
        # Shared by every thread using this client: a 429 on one method pauses them all.
        with self._backoff_lock:
            delay = self._blocked_until - time.monotonic()
        if delay > 0:
            time.sleep(delay)

    def _paginate(self, method: str, key: str, **params: Any) -> Iterator[Dict[str, Any]]:
        cursor = None
        while True:
            payload = self.call(method, cursor=cursor, limit=200, **params)
            yield from payload.get(key, [])
            cursor = (payload.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return

    def auth_test(self) -> Dict[str, Any]:
        return self.call("auth.test")

    def post_message(self, channel: str, text: str) -> Dict[str, Any]:
        return self.call("chat.postMessage", channel=channel, text=text)

    def find_channel_id(self, name: str) -> Optional[str]:
        name = name.lstrip("#")
        for channel in self._paginate(
            "conversations.list", "channels", types="public_channel,private_channel"
        ):
            if channel.get("name") == name:
                return channel["id"]
        return None

    def direct_message_channels(self) -> List[str]:
        return [channel["id"] for channel in self._paginate("users.conversations", "channels", types="im")]

    def history(self, channel: str, oldest: str) -> List[Dict[str, Any]]:
        """Messages newer than ``oldest``, oldest first."""
        messages = list(self._paginate("conversations.history", "messages", channel=channel, oldest=oldest))
        return sorted(messages, key=lambda m: float(m.get("ts", 0)))


class SlackConversation(Conversation):
    """A Slack channel, optionally addressing the user who sent a command."""

    def __init__(
        self,
        client: SlackClient,
        channel: str,
        user: Optional[str] = None,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    ) -> None:
        self.client = client
        self.channel = channel
        self.user = user
        self.max_message_length = max_message_length - len(self._prefix())

    def _prefix(self) -> str:
        return f"<@{self.user}> " if self.user else ""

    def send(self, text: str) -> None:
        self.client.post_message(self.channel, text)

    def reply(self, text: str) -> None:
        self.client.post_message(self.channel, self._prefix() + text)


class SlackListener:
    """Polls watched channels and the bot's direct messages for commands addressed to it."""

    def __init__(
        self,
        client: SlackClient,
        *,
        history_calls_per_minute: int = 40,
        dm_refresh_interval: float = 60.0,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    ) -> None:
        self.client = client
        self.history_calls_per_minute = history_calls_per_minute
        self.dm_refresh_interval = dm_refresh_interval
        self.max_message_length = max_message_length
        self.bot_id: Optional[str] = None
        self._watched: List[str] = []
        self._direct: List[str] = []
        self._direct_fetched_at = 0.0
        self._cursors: Dict[str, str] = {}

    @property
    def channels(self) -> List[str]:
        return self._watched + [channel for channel in self._direct if channel not in self._watched]

    def connect(self) -> Dict[str, Any]:
        identity = self.client.auth_test()
        self.bot_id = identity["user_id"]
        logger.info("Connected to Slack team %s as %s", identity.get("team"), identity.get("user"))
        self._refresh_direct_messages(force=True)
        return identity

    def watch(self, channel: str) -> None:
        if channel not in self._watched:
            self._watched.append(channel)
            self._cursors.setdefault(channel, _now_ts())

    def conversation(self, channel: str, user: Optional[str] = None) -> SlackConversation:
        return SlackConversation(
            self.client, channel, user=user, max_message_length=self.max_message_length
        )

    def poll_delay(self, minimum: float) -> float:
        """Seconds to wait between polls so history calls stay within budget."""
        per_poll = 60.0 * len(self.channels) / max(self.history_calls_per_minute, 1)
        return max(minimum, per_poll)

    def poll(self) -> List[IncomingMessage]:
        self._refresh_direct_messages()
        incoming = []
        for channel in self.channels:
            oldest = self._cursors[channel]
            for message in self.client.history(channel, oldest):
                self._cursors[channel] = message.get("ts", oldest)
                if self._is_addressed(channel, message):
                    incoming.append(
                        IncomingMessage(
                            channel=channel,
                            user=message["user"],
                            text=message.get("text", ""),
                            timestamp=message.get("ts", ""),
                        )
                    )
        return incoming

    def _refresh_direct_messages(self, force: bool = False) -> None:
        now = time.monotonic()
        if force or now - self._direct_fetched_at >= self.dm_refresh_interval:
            self._direct = self.client.direct_message_channels()
            self._direct_fetched_at = now
            # Only react to messages posted after the bot first saw a channel.
            for channel in self._direct:
                self._cursors.setdefault(channel, _now_ts())

    def _is_addressed(self, channel: str, message: Dict[str, Any]) -> bool:
        if message.get("subtype") or message.get("bot_id") or "user" not in message:
            return False
        if message["user"] == self.bot_id:
            return False
        if channel.startswith("D"):
            return True
        return message.get("text", "").lstrip().startswith(f"<@{self.bot_id}>")


def _now_ts() -> str:
    return f"{time.time():.6f}"
