"""Shared fakes for the chat and container runtime collaborators."""

import json
import threading
from typing import Dict, List, Optional

import pytest
import requests

from lurch.chat.base import Conversation
from lurch.config import AppConfig, DockerConfig
from lurch.errors import RuntimeFailure
from lurch.orchestrator.catalogue import Catalogue, CatalogueStore
from lurch.runtime.container import ContainerRuntime, ExecResult

CATALOGUE_YAML = """
web:
  playbooks:
    api:
      about: Deploys the public API.
      location: playbooks/web/api.yml
      actions:
        restart:
          about: Restart the API workers.
          vars:
            state: restarted
            graceful: true
        migrate:
          vars:
            step: "1"
    frontend:
      location: playbooks/web/frontend.yml
solo:
  playbooks:
    db:
      about: Run the database.
      location: playbooks/solo/db.yml
      actions:
        backup:
          about: Snapshot the database.
          vars:
            target: s3
empty:
  playbooks: {}
"""

UP_TO_DATE = "Status: Image is up to date for example/devops:latest"
DOWNLOADED = "Status: Downloaded newer image for example/devops:latest"


class RecordingConversation(Conversation):
    def __init__(self, max_message_length: int = 4000) -> None:
        self.max_message_length = max_message_length
        self.messages: List[tuple] = []

    def send(self, text: str) -> None:
        self.messages.append(("send", text))

    def reply(self, text: str) -> None:
        self.messages.append(("reply", text))

    @property
    def texts(self) -> List[str]:
        return [text for _, text in self.messages]

    def joined(self) -> str:
        return "\n".join(self.texts)


class FakeRuntime(ContainerRuntime):
    """Answers pulls with a fixed status and runs from a queue of results."""

    def __init__(self, catalogue_yaml: str = CATALOGUE_YAML, pull_status: str = UP_TO_DATE) -> None:
        self.catalogue_yaml = catalogue_yaml
        self.pull_status = pull_status
        self.pull_error: Optional[str] = None
        self.pull_gate: Optional[threading.Event] = None
        self.pull_started = threading.Event()
        self.pulls: List[tuple] = []
        self.runs: List[tuple] = []
        self.results: List[ExecResult] = []
        self.run_error: Optional[RuntimeFailure] = None
        self.cat_result: Optional[ExecResult] = None

    def pull(self, image, tag, auth=None):
        self.pulls.append((image, tag, auth))
        self.pull_started.set()
        if self.pull_gate is not None:
            self.pull_gate.wait(5)
        if self.pull_error:
            raise RuntimeFailure(self.pull_error)
        return self.pull_status

    def run(self, image, tag, argv, env=None):
        argv = list(argv)
        self.runs.append((image, tag, argv, env))
        if argv[:1] == ["cat"]:
            if self.cat_result is not None:
                return self.cat_result
            return ExecResult(argv=argv, stdout=self.catalogue_yaml, stderr="", exit_code=0)
        if self.run_error is not None:
            raise self.run_error
        return self.results.pop(0)

    def queue_ansible(self, payload, exit_code: int = 0) -> None:
        stdout = payload if isinstance(payload, str) else json.dumps(payload)
        self.results.append(ExecResult(argv=[], stdout=stdout, stderr="", exit_code=exit_code))

    @property
    def ansible_runs(self) -> List[tuple]:
        return [run for run in self.runs if run[2][:1] != ["cat"]]


class FakeResponse:
    def __init__(self, payload=None, status_code=200, headers=None):
        self.payload = payload if payload is not None else {"ok": True}
        self.status_code = status_code
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    """Replays canned responses per Web API method and records requests."""

    def __init__(self, responses=None):
        self.headers = {}
        self.responses = responses or {}
        self.calls = []

    def post(self, url, data=None, timeout=None):
        method = url.rsplit("/", 1)[-1]
        self.calls.append((method, dict(data or {})))
        queue = self.responses.get(method)
        if not queue:
            return FakeResponse()
        return queue.pop(0) if len(queue) > 1 else queue[0]


def ansible_output(stats: Dict[str, dict], failures: Optional[Dict[str, List[tuple]]] = None) -> dict:
    """Build JSON callback output; ``failures`` maps host -> [(task, msg), ...]."""
    tasks = [
        {
            "task": {"name": "gathering facts"},
            "hosts": {host: {"failed": False, "msg": ""} for host in stats},
        }
    ]
    for host, failed in (failures or {}).items():
        for name, msg in failed:
            tasks.append({"task": {"name": name}, "hosts": {host: {"failed": True, "msg": msg}}})
    return {
        "plays": [{"play": {"name": "site"}, "tasks": tasks}],
        "stats": {
            host: {"ok": 0, "changed": 0, "skipped": 0, "failures": 0, "unreachable": 0, **values}
            for host, values in stats.items()
        },
    }


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(docker=DockerConfig(image="example/devops", tag="latest"))


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def store() -> CatalogueStore:
    return CatalogueStore(Catalogue.from_yaml(CATALOGUE_YAML))


@pytest.fixture
def conversation() -> RecordingConversation:
    return RecordingConversation()
