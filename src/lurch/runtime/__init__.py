"""Container runtime access for running the devops image."""

from .container import ContainerRuntime, DockerRuntime, ExecResult

__all__ = ["ContainerRuntime", "DockerRuntime", "ExecResult"]
