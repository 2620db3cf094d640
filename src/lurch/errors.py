"""Error types raised by the deployment engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .orchestrator.models import DeploymentResult


class LurchError(RuntimeError):
    """Base class for errors that end the current chat request."""


class BusyError(LurchError):
    """Raised when a pull or a deployment for the same key is already running."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"{key} is already in progress")


class NotFoundError(LurchError):
    """Raised when a catalogue lookup fails."""

    kind = "entry"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown {self.kind}: {name}")


class ProjectNotFound(NotFoundError):
    kind = "project"


class ServiceNotFound(NotFoundError):
    kind = "service"

    def __init__(self, name: str, project: str) -> None:
        self.project = project
        super().__init__(name)


class ActionNotFound(NotFoundError):
    kind = "action"

    def __init__(self, name: str, service: str) -> None:
        self.service = service
        super().__init__(name)


class RuntimeFailure(LurchError):
    """Raised when the container runtime cannot complete a call."""

    def __init__(self, message: str, *, exit_code: Optional[int] = None, output: str = "") -> None:
        self.exit_code = exit_code
        self.output = output
        super().__init__(message)


class MalformedOutputError(LurchError):
    """Raised when ansible output does not match the JSON callback schema."""


class ToolFailure(LurchError):
    """Raised when ansible ran but exited with a non-zero status."""

    def __init__(self, exit_code: int, result: "DeploymentResult") -> None:
        self.exit_code = exit_code
        self.result = result
        hosts = ", ".join(result.failed_hosts()) or "no failed hosts reported"
        super().__init__(f"ansible-playbook exited with code {exit_code} ({hosts})")


class ConfigFailure(LurchError):
    """Raised when the catalogue cannot be fetched from the image or parsed."""
