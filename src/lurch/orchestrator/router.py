"""Dispatching chat commands."""

from __future__ import annotations

from typing import List, Optional

from ..chat.base import Conversation, IncomingMessage
from ..config import AppConfig
from ..errors import LurchError, ProjectNotFound, ServiceNotFound
from ..utils.logging import get_logger
from . import listing
from .catalogue import Catalogue
from .executor import DeploymentExecutor
from .images import ImageSynchronizer

logger = get_logger(__name__)


class CommandRouter:
    """Maps a command to help, list, version or a deployment.

    Deployments (``deploy`` and any custom action) are only accepted from the
    deployment channel so that everyone watching it sees every attempt.
    """

    def __init__(
        self,
        config: AppConfig,
        synchronizer: ImageSynchronizer,
        executor: DeploymentExecutor,
        deploy_channel_id: Optional[str] = None,
    ) -> None:
        self.config = config
        self.synchronizer = synchronizer
        self.executor = executor
        self.deploy_channel_id = deploy_channel_id

    @property
    def catalogue(self) -> Catalogue:
        return self.synchronizer.catalogue.current

    def handle(self, message: IncomingMessage, conversation: Conversation) -> None:
        command = message.command
        if not command:
            conversation.reply("You rang?")
            return

        verb, args = command[0], command[1:]
        logger.info("Command from %s in %s: %s", message.user, message.channel, " ".join(command))
        if verb == "help":
            conversation.reply(listing.topic_help(args[0] if args else None))
        elif verb == "list":
            self.list(conversation, args)
        elif verb == "version":
            conversation.reply(listing.version_reply(self.config.version, self.config.commit))
        elif message.channel != self.deploy_channel_id:
            conversation.reply(
                f"I'm sorry, you can only run playbook commands on the *{self.config.slack.command_channel}* "
                "channel. This way everyone is notified."
            )
        else:
            self.deploy(conversation, command)

    def _prepare(self, conversation: Conversation) -> bool:
        try:
            self.synchronizer.ensure_fresh(conversation)
        except LurchError as exc:
            # Already explained in the conversation.
            logger.info("Not continuing after image check: %s", exc)
            return False

        if not len(self.catalogue):
            conversation.reply("I'm sorry; there aren't any projects listed.")
            return False
        return True

    def list(self, conversation: Conversation, args: List[str]) -> None:
        if not self._prepare(conversation):
            return

        catalogue = self.catalogue
        try:
            if not args:
                conversation.reply(listing.describe_projects(catalogue))
            elif len(args) == 1:
                conversation.reply(listing.describe_project(args[0], catalogue.get_stack(args[0])))
            elif len(args) == 2:
                playbook = catalogue.get_stack(args[0]).get_playbook(args[1], args[0])
                conversation.reply(listing.describe_playbook(args[1], playbook))
            else:
                conversation.reply(listing.list_help("I'm sorry, I have no idea what you're asking"))
        except ProjectNotFound as exc:
            conversation.reply(listing.unknown_project(exc.name))
        except ServiceNotFound:
            conversation.reply("I'm afraid that playbook doesn't exist.")

    def deploy(self, conversation: Conversation, command: List[str]) -> None:
        if not self._prepare(conversation):
            return

        if len(command) <= 1:
            conversation.reply("I'm not sure what you mean. Try *`help`* instead.")
        elif len(command) == 2:
            action, project = command
            self.executor.prompt_for_service(conversation, action, project)
        elif len(command) == 3:
            action, project, service = command
            self.executor.deploy(conversation, action, project, service)
        else:
            conversation.reply(
                "That sounds way too complicated for a simpleton like me to understand! Try *`help`* instead."
            )
