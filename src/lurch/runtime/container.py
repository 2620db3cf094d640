"""Pulling the devops image and running commands in throwaway containers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import docker
import requests

from ..errors import RuntimeFailure

logger = logging.getLogger(__name__)


@dataclass
class ExecResult:
    """Result of running a command inside a container."""
    argv: List[str]
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Everything the command printed, for humans."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


class ContainerRuntime(ABC):
    """The operations the deployment engine needs from a container runtime."""

    @abstractmethod
    def pull(self, image: str, tag: str, auth: Optional[Dict[str, str]] = None) -> str:
        """
        Pull ``image:tag`` from its registry.

        Returns:
            The final status line, e.g. ``Status: Image is up to date for ...``

        Raises:
            RuntimeFailure: If the pull could not be completed
        """

    @abstractmethod
    def run(
        self,
        image: str,
        tag: str,
        argv: Sequence[str],
        env: Optional[Dict[str, str]] = None,
    ) -> ExecResult:
        """
        Run ``argv`` in a fresh container of ``image:tag`` and wait for it to exit.

        Raises:
            RuntimeFailure: If the container could not be created, started or waited on
        """


class DockerRuntime(ContainerRuntime):
    """ContainerRuntime backed by the Docker SDK."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client_factory: Optional[Callable[[], docker.DockerClient]] = None,
    ) -> None:
        if client_factory is None:
            if base_url:
                client_factory = lambda: docker.DockerClient(base_url=base_url)  # noqa: E731
            else:
                client_factory = docker.from_env
        self._client_factory = client_factory
        self._client: Optional[docker.DockerClient] = None

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = self._client_factory()
            except docker.errors.DockerException as exc:
                raise RuntimeFailure(f"could not create the Docker client: {exc}") from exc
        return self._client

    def pull(self, image: str, tag: str, auth: Optional[Dict[str, str]] = None) -> str:
        logger.info("Pulling %s:%s", image, tag)
        status = ""
        try:
            stream = self.client.api.pull(
                image, tag=tag, auth_config=auth, stream=True, decode=True
            )
            for chunk in stream:
                if "error" in chunk:
                    raise RuntimeFailure(str(chunk["error"]))
                if "status" in chunk:
                    status = chunk["status"]
        except (docker.errors.DockerException, requests.exceptions.RequestException) as exc:
            raise RuntimeFailure(str(exc)) from exc
        logger.info("Pull of %s:%s finished: %s", image, tag, status)
        return status

    def run(
        self,
        image: str,
        tag: str,
        argv: Sequence[str],
        env: Optional[Dict[str, str]] = None,
    ) -> ExecResult:
        argv = list(argv)
        logger.info("Running %s in %s:%s", argv, image, tag)
        try:
            container = self.client.containers.create(
                f"{image}:{tag}", command=argv, environment=env or {}, detach=True
            )
        except (docker.errors.DockerException, requests.exceptions.RequestException) as exc:
            raise RuntimeFailure(f"could not create the container: {exc}") from exc

        try:
            container.start()
            status = container.wait()
            exit_code = int(status.get("StatusCode", -1))
            stdout = container.logs(stdout=True, stderr=False)
            stderr = container.logs(stdout=False, stderr=True)
        except (docker.errors.DockerException, requests.exceptions.RequestException) as exc:
            raise RuntimeFailure(str(exc)) from exc
        finally:
            try:
                container.remove(force=True)
            except docker.errors.DockerException as exc:
                logger.warning("Could not remove container %s: %s", container.short_id, exc)

        if status.get("Error"):
            raise RuntimeFailure(
                str(status["Error"]),
                exit_code=exit_code,
                output=stdout.decode("utf-8", errors="replace"),
            )

        return ExecResult(
            argv=argv,
            stdout=stdout.decode("utf-8", errors="replace").strip(),
            stderr=stderr.decode("utf-8", errors="replace").strip(),
            exit_code=exit_code,
        )
