"""The Slack bot: wires the listener to the orchestration engine."""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .chat import IncomingMessage, SlackAPIError, SlackClient, SlackListener
from .config import AppConfig
from .errors import LurchError
from .orchestrator import (
    CatalogueStore,
    CommandRouter,
    DeploymentExecutor,
    ImageSynchronizer,
)
from .runtime import ContainerRuntime, DockerRuntime
from .utils.logging import get_logger

logger = get_logger(__name__)


class LurchBot:
    """Polls Slack and handles each command on its own worker thread."""

    def __init__(
        self,
        config: AppConfig,
        *,
        slack_client: Optional[SlackClient] = None,
        runtime: Optional[ContainerRuntime] = None,
        catalogue: Optional[CatalogueStore] = None,
    ) -> None:
        self.config = config
        self.runtime = runtime or DockerRuntime(config.docker.base_url)
        self.catalogue = catalogue or CatalogueStore()
        self.synchronizer = ImageSynchronizer(config, self.runtime, self.catalogue)
        self.executor = DeploymentExecutor(config, self.runtime, self.catalogue)
        self.router = CommandRouter(config, self.synchronizer, self.executor)

        client = slack_client or SlackClient(config.slack.token or "", timeout=config.slack.request_timeout)
        self.listener = SlackListener(
            client,
            history_calls_per_minute=config.slack.history_calls_per_minute,
            max_message_length=config.slack.max_message_length,
        )
        self._workers = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="lurch-message"
        )

    def connect(self) -> None:
        """Connect to Slack, load the catalogue and say hello in the deployment channel."""
        self.listener.connect()

        channel_name = self.config.slack.command_channel
        channel_id = self.listener.client.find_channel_id(channel_name)
        if channel_id is None:
            raise ValueError(f"The deployment channel #{channel_name} does not exist or is not visible to the bot")
        self.listener.watch(channel_id)
        self.router.deploy_channel_id = channel_id
        logger.info("Deployments are restricted to #%s (%s)", channel_name, channel_id)

        conversation = self.listener.conversation(channel_id)
        try:
            self.synchronizer.ensure_fresh(conversation)
        except LurchError as exc:
            logger.warning("Initial image check failed: %s", exc)
            return
        conversation.send("You rang...?")

    def dispatch(self, message: IncomingMessage) -> Future:
        return self._workers.submit(self._handle, message)

    def _handle(self, message: IncomingMessage) -> None:
        conversation = self.listener.conversation(message.channel, message.user)
        try:
            self.router.handle(message, conversation)
        except Exception:
            logger.exception("Unhandled error processing %r from %s", message.text, message.user)
            try:
                conversation.reply("Oh dear, something went wrong on my side. The details are in my logs.")
            except SlackAPIError as exc:
                logger.error("Could not report the error to Slack: %s", exc)

    def serve_forever(self) -> None:
        self.connect()
        logger.info("Listening for commands")
        try:
            while True:
                try:
                    messages = self.listener.poll()
                except SlackAPIError as exc:
                    logger.warning("Polling Slack failed: %s", exc)
                    messages = []
                for message in messages:
                    self.dispatch(message)
                time.sleep(self.listener.poll_delay(self.config.slack.poll_interval))
        finally:
            self.close()

    def close(self) -> None:
        self._workers.shutdown(wait=True)
        self.synchronizer.close()
