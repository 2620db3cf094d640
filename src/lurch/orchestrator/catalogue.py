"""The catalogue of deployable projects read from lurch.yml."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from ..errors import ActionNotFound, ConfigFailure, ProjectNotFound, ServiceNotFound

# The base action every playbook supports without declaring it.
DEFAULT_ACTION = "deploy"


@dataclass(frozen=True)
class Action:
    """A named variant of running a playbook."""

    about: str = ""
    vars: Dict[str, str] = field(default_factory=dict)  # definition order is kept


@dataclass(frozen=True)
class Playbook:
    """A deployable service: an ansible playbook location plus custom actions."""

    location: str
    about: str = ""
    actions: Dict[str, Action] = field(default_factory=dict)

    def action_names(self) -> List[str]:
        return sorted(self.actions)

    def get_action(self, name: str, service: str = "") -> Action:
        try:
            return self.actions[name]
        except KeyError:
            raise ActionNotFound(name, service) from None


@dataclass(frozen=True)
class Stack:
    """A project: a named group of playbooks."""

    playbooks: Dict[str, Playbook] = field(default_factory=dict)

    def playbook_names(self) -> List[str]:
        return sorted(self.playbooks)

    def get_playbook(self, name: str, project: str = "") -> Playbook:
        try:
            return self.playbooks[name]
        except KeyError:
            raise ServiceNotFound(name, project) from None


@dataclass(frozen=True)
class Catalogue:
    stacks: Dict[str, Stack] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.stacks)

    def stack_names(self) -> List[str]:
        return sorted(self.stacks)

    def get_stack(self, name: str) -> Stack:
        try:
            return self.stacks[name]
        except KeyError:
            raise ProjectNotFound(name) from None

    @classmethod
    def from_yaml(cls, text: str) -> "Catalogue":
        """Parse the lurch.yml format, raising ConfigFailure on bad input."""
        try:
            payload = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigFailure(f"invalid YAML: {exc}") from exc
        return cls.from_dict(payload or {})

    @classmethod
    def from_dict(cls, payload: Any) -> "Catalogue":
        if not isinstance(payload, dict):
            raise ConfigFailure("the catalogue must map project names to stacks")

        stacks = {}
        for project, stack_payload in payload.items():
            stack_payload = stack_payload or {}
            _expect_mapping(stack_payload, f"project {project}")
            playbooks_payload = stack_payload.get("playbooks") or {}
            _expect_mapping(playbooks_payload, f"playbooks of {project}")

            playbooks = {}
            for service, pb in playbooks_payload.items():
                _expect_mapping(pb, f"service {project}/{service}")
                location = pb.get("location")
                if not location:
                    raise ConfigFailure(f"service {project}/{service} has no location")
                actions_payload = pb.get("actions") or {}
                _expect_mapping(actions_payload, f"actions of {project}/{service}")
                actions = {}
                for name, action in actions_payload.items():
                    action = action or {}
                    _expect_mapping(action, f"action {project}/{service}/{name}")
                    variables = action.get("vars") or {}
                    _expect_mapping(variables, f"vars of {project}/{service}/{name}")
                    actions[str(name)] = Action(
                        about=str(action.get("about") or ""),
                        vars={str(k): _var_string(v) for k, v in variables.items()},
                    )
                playbooks[str(service)] = Playbook(
                    location=str(location),
                    about=str(pb.get("about") or ""),
                    actions=actions,
                )
            stacks[str(project)] = Stack(playbooks=playbooks)

        return cls(stacks=stacks)


def _expect_mapping(value: Any, what: str) -> None:
    if not isinstance(value, dict):
        raise ConfigFailure(f"{what} must be a mapping, got {type(value).__name__}")


def _var_string(value: Any) -> str:
    # YAML turns `true` into a bool; ansible wants it back as written.
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


class CatalogueStore:
    """Holds the current catalogue and swaps it as a whole on refresh."""

    def __init__(self, catalogue: Optional[Catalogue] = None) -> None:
        self._catalogue = catalogue
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._catalogue is not None

    @property
    def current(self) -> Catalogue:
        catalogue = self._catalogue
        return catalogue if catalogue is not None else Catalogue()

    def replace(self, catalogue: Catalogue) -> None:
        with self._lock:
            self._catalogue = catalogue
