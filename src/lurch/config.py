"""Configuration loading utilities for Lurch."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/lurch.json")

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class DockerConfig:
    """The devops image that carries ansible, the playbooks and lurch.yml."""

    image: str = ""
    tag: str = "latest"
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None
    server_address: Optional[str] = None
    base_url: Optional[str] = None  # Docker daemon URL, None means DOCKER_HOST/defaults

    @property
    def reference(self) -> str:
        return f"{self.image}:{self.tag}"

    def auth(self) -> Optional[Dict[str, str]]:
        """Registry credentials in the shape the Docker API expects."""
        if not self.username:
            return None
        payload = {"username": self.username, "password": self.password or ""}
        if self.email:
            payload["email"] = self.email
        if self.server_address:
            payload["serveraddress"] = self.server_address
        return payload


@dataclass
class SlackConfig:
    """Settings for the Slack connection."""

    token: Optional[str] = None
    command_channel: str = "devops"        # the only channel deployments may be run from
    poll_interval: float = 2.0             # minimum seconds between polls
    history_calls_per_minute: int = 40     # conversations.history budget, Slack allows ~50 (Tier 3)
    max_message_length: int = 4000         # Slack truncates longer message texts
    request_timeout: int = 10


@dataclass
class AnsibleConfig:
    """How the configuration tool is invoked inside the image."""

    command: List[str] = field(default_factory=lambda: ["ansible-playbook"])
    environment: Dict[str, str] = field(
        default_factory=lambda: {
            "ANSIBLE_STDOUT_CALLBACK": "json",
            "ANSIBLE_RETRY_FILES_ENABLED": "0",
        }
    )
    catalogue_file: str = "lurch.yml"


@dataclass
class AppConfig:
    """Top-level configuration."""

    update_image: bool = True
    version: Optional[str] = None
    commit: Optional[str] = None
    max_workers: int = 8
    docker: DockerConfig = field(default_factory=DockerConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    ansible: AnsibleConfig = field(default_factory=AnsibleConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        # Keys starting with an underscore are comments
        payload = {k: v for k, v in payload.items() if not k.startswith("_")}
        docker_payload = _strip_comments(payload.pop("docker", {}) or {})
        slack_payload = _strip_comments(payload.pop("slack", {}) or {})
        ansible_payload = _strip_comments(payload.pop("ansible", {}) or {})

        top_defaults = {
            k: v
            for k, v in cls().__dict__.items()
            if k not in ("docker", "slack", "ansible")
        }
        return cls(
            **{**top_defaults, **payload},
            docker=DockerConfig(**{**DockerConfig().__dict__, **docker_payload}),
            slack=SlackConfig(**{**SlackConfig().__dict__, **slack_payload}),
            ansible=AnsibleConfig(**{**AnsibleConfig().__dict__, **ansible_payload}),
        )

    def validate(self, *, require_token: bool = True) -> None:
        if not self.docker.image:
            raise ValueError("No devops Docker image configured (docker.image or LURCH_DOCKER_IMAGE)")
        if require_token and not self.slack.token:
            raise ValueError("No Slack token configured (slack.token or LURCH_SLACK_TOKEN)")
        if not self.slack.command_channel:
            raise ValueError("No deployment channel configured (slack.command_channel)")


def _strip_comments(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if not k.startswith("_")}


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    env_token = os.getenv("LURCH_SLACK_TOKEN")
    if env_token:
        config.slack.token = env_token

    env_channel = os.getenv("LURCH_COMMAND_CHANNEL")
    if env_channel:
        config.slack.command_channel = env_channel.lstrip("#")

    env_image = os.getenv("LURCH_DOCKER_IMAGE")
    if env_image:
        config.docker.image = env_image

    env_tag = os.getenv("LURCH_DOCKER_TAG")
    if env_tag:
        config.docker.tag = env_tag

    env_username = os.getenv("LURCH_DOCKER_USERNAME")
    if env_username:
        config.docker.username = env_username

    env_password = os.getenv("LURCH_DOCKER_PASSWORD")
    if env_password:
        config.docker.password = env_password

    env_server = os.getenv("LURCH_DOCKER_SERVER")
    if env_server:
        config.docker.server_address = env_server

    env_update = os.getenv("LURCH_UPDATE_IMAGE")
    if env_update:
        config.update_image = env_update.strip().lower() in _TRUE_VALUES

    env_version = os.getenv("LURCH_VERSION")
    if env_version:
        config.version = env_version

    env_commit = os.getenv("LURCH_COMMIT")
    if env_commit:
        config.commit = env_commit

    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than config file):
    - LURCH_SLACK_TOKEN: Slack bot token
    - LURCH_COMMAND_CHANNEL: Name of the deployment channel
    - LURCH_DOCKER_IMAGE / LURCH_DOCKER_TAG: The devops image
    - LURCH_DOCKER_USERNAME / LURCH_DOCKER_PASSWORD / LURCH_DOCKER_SERVER: Registry credentials
    - LURCH_UPDATE_IMAGE: Whether to pull the image before list/deploy commands
    - LURCH_VERSION / LURCH_COMMIT: Build information reported by `version`
    """

    if path:
        candidate = Path(path)
        if not candidate.is_file():
            raise FileNotFoundError(f"Could not find configuration file: {candidate}")
    else:
        candidate = _DEFAULT_CONFIG_PATH

    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        config = AppConfig.from_dict(data)
    else:
        config = AppConfig()

    return _apply_env_overrides(config)
