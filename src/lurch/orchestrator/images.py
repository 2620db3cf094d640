"""Keeping the devops image, and the catalogue read from it, up to date."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import Optional

from ..chat.base import Conversation
from ..config import AppConfig
from ..errors import BusyError, ConfigFailure, RuntimeFailure
from ..runtime.container import ContainerRuntime
from ..utils.logging import get_logger
from .catalogue import Catalogue, CatalogueStore
from .locks import PullToggle

logger = get_logger(__name__)

# How long a pull may run before the user is told we are still checking.
PROGRESS_TIMEOUT = 3.0


class PullStatus(str, Enum):
    """What a pull did to the local copy of the image."""
    DOWNLOADED = "downloaded"
    UP_TO_DATE = "up_to_date"
    UNKNOWN = "unknown"


def classify_pull_status(status: str) -> PullStatus:
    """Map the Docker daemon's final human-readable pull status to a PullStatus.

    The daemon does not expose this as structured data, so this is the one
    place that knows its wording.
    """
    if status.startswith("Status: Downloaded newer"):
        return PullStatus.DOWNLOADED
    if status.startswith("Status: Image is up to date"):
        return PullStatus.UP_TO_DATE
    return PullStatus.UNKNOWN


class ImageSynchronizer:
    """Pulls the devops image and rebuilds the catalogue when it changes."""

    def __init__(
        self,
        config: AppConfig,
        runtime: ContainerRuntime,
        catalogue: CatalogueStore,
        *,
        toggle: Optional[PullToggle] = None,
        progress_timeout: float = PROGRESS_TIMEOUT,
    ) -> None:
        self.config = config
        self.runtime = runtime
        self.catalogue = catalogue
        self.toggle = toggle or PullToggle()
        self.progress_timeout = progress_timeout
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lurch-pull")

    def ensure_fresh(self, conversation: Conversation) -> bool:
        """Make sure the image and catalogue are current before serving a command.

        Returns:
            True if a newer image was downloaded

        Raises:
            BusyError: Another pull is in flight
            RuntimeFailure: The pull failed
            ConfigFailure: The catalogue could not be read from the image
        """
        updated = False
        if self.config.update_image:
            updated = self.pull(conversation)

        if updated or not self.catalogue.loaded:
            self.refresh_catalogue(conversation)
        return updated

    def pull(self, conversation: Conversation) -> bool:
        try:
            with self.toggle.held():
                return self._race_pull(conversation)
        except BusyError:
            logger.info("Refusing pull: another pull is in flight")
            conversation.send("Try again in a sec: I'm busy pulling the latest devops Docker image.")
            raise

    def _race_pull(self, conversation: Conversation) -> bool:
        docker_config = self.config.docker
        future = self._pool.submit(
            self.runtime.pull, docker_config.image, docker_config.tag, docker_config.auth()
        )

        progress_sent = False
        done, _ = wait([future], timeout=self.progress_timeout)
        if not done:
            # We're holding things up: the pull carries on regardless.
            conversation.send("Just a sec: I'm checking to see if there's an updated devops Docker image...")
            progress_sent = True

        try:
            status = future.result()
        except RuntimeFailure as exc:
            logger.error("Pulling %s failed: %s", docker_config.reference, exc)
            if progress_sent:
                conversation.send(
                    f"Oops! I've just received this error whilst checking for the image:\n```{exc}``` "
                    "You'll need to dig into it I'm afraid :disappointed:."
                )
            else:
                conversation.send(
                    "I tried and failed to check for an updated devops Docker image.  "
                    f"This is the message I received:\n```{exc}``` "
                    "You'll need to dig into it I'm afraid :disappointed:."
                )
            raise

        return self._report_status(conversation, status, progress_sent)

    def _report_status(self, conversation: Conversation, status: str, progress_sent: bool) -> bool:
        kind = classify_pull_status(status)
        logger.info("Image %s: %s", self.config.docker.reference, kind.value)

        if kind is PullStatus.DOWNLOADED:
            if progress_sent:
                conversation.send("Great - I've just received a newer image that I'm now using.")
            else:
                conversation.send("Ah!  I've just retrieved the latest devops Docker image. :triumph:")
            return True

        if kind is PullStatus.UP_TO_DATE:
            if progress_sent:
                # The user was told to wait, so they are owed the outcome.
                conversation.send("I've just finished checking: no new image is available so I'll continue using the existing one...")
            return False

        if progress_sent:
            conversation.send(
                f"I've just received this message whilst checking for the image.  Not sure what it means...\n```{status}```"
            )
        else:
            conversation.send(
                "I'm passing on this message I received when checking for an updated devops Docker image.  "
                f"Not sure what it means...\n```{status}```"
            )
        return False

    def refresh_catalogue(self, conversation: Conversation) -> Catalogue:
        """Read the catalogue file out of the image and publish it."""
        docker_config = self.config.docker
        catalogue_file = self.config.ansible.catalogue_file

        try:
            result = self.runtime.run(docker_config.image, docker_config.tag, ["cat", catalogue_file])
        except RuntimeFailure as exc:
            logger.error("Reading %s from %s failed: %s", catalogue_file, docker_config.reference, exc)
            conversation.send(
                "I'm sorry, I couldn't update my configuration from the new image.  "
                f"The message I got is:\n```{exc}```"
            )
            raise ConfigFailure(str(exc)) from exc

        if not result.ok:
            logger.error("Reading %s exited with %d: %s", catalogue_file, result.exit_code, result.output)
            conversation.send(
                "I'm sorry, I couldn't update my configuration from the new image.  "
                f"This is the output I got:\n```{result.output}```"
            )
            raise ConfigFailure(f"cat {catalogue_file} exited with code {result.exit_code}")

        try:
            catalogue = Catalogue.from_yaml(result.stdout)
        except ConfigFailure as exc:
            logger.error("Parsing %s failed: %s", catalogue_file, exc)
            conversation.send(f"Oh dear! I couldn't read the {catalogue_file} file from the docker image:\n```{exc}```")
            raise

        self.catalogue.replace(catalogue)
        logger.info("Catalogue replaced: %d projects", len(catalogue))
        return catalogue

    def close(self) -> None:
        self._pool.shutdown(wait=False)
