"""Data models for ansible results and deployment outcomes."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from ..errors import MalformedOutputError, ToolFailure


class DeploymentOutcome(Enum):
    """Terminal state of a single deployment attempt."""
    REJECTED = "rejected"                     # project lock already held
    RESOLUTION_FAILED = "resolution_failed"   # unknown project, service or action
    RUNTIME_FAILED = "runtime_failed"         # container could not run, nothing to parse
    PARSE_FAILED = "parse_failed"             # output was not ansible JSON
    SUCCEEDED = "succeeded"
    FAILED = "failed"                         # ansible reported failing tasks


@dataclass
class HostOutcome:
    failed: bool = False
    message: str = ""


@dataclass
class TaskResult:
    name: str
    hosts: Dict[str, HostOutcome] = field(default_factory=dict)


@dataclass
class PlayResult:
    name: str
    tasks: List[TaskResult] = field(default_factory=list)


@dataclass
class HostStats:
    ok: int = 0
    changed: int = 0
    skipped: int = 0
    failed: int = 0

    def __add__(self, other: "HostStats") -> "HostStats":
        return HostStats(
            ok=self.ok + other.ok,
            changed=self.changed + other.changed,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
        )


@dataclass
class FailedTask:
    name: str
    message: str


@dataclass
class DeploymentResult:
    """Parsed output of ansible's JSON stdout callback."""

    plays: List[PlayResult] = field(default_factory=list)
    stats: Dict[str, HostStats] = field(default_factory=dict)

    def host_names(self) -> List[str]:
        return sorted(self.stats)

    def totals(self) -> HostStats:
        total = HostStats()
        for stats in self.stats.values():
            total = total + stats
        return total

    def failures(self) -> Dict[str, Dict[str, List[FailedTask]]]:
        """Failed tasks grouped by play name then host, both sorted by name."""
        grouped: Dict[str, Dict[str, List[FailedTask]]] = {}
        for play in self.plays:
            for task in play.tasks:
                for host, outcome in task.hosts.items():
                    if outcome.failed:
                        hosts = grouped.setdefault(play.name, {})
                        hosts.setdefault(host, []).append(FailedTask(task.name, outcome.message))
        return {
            play: {host: hosts[host] for host in sorted(hosts)}
            for play, hosts in sorted(grouped.items())
        }

    def failed_hosts(self) -> List[str]:
        return sorted({host for hosts in self.failures().values() for host in hosts})

    def raise_for_status(self, exit_code: int) -> None:
        if exit_code != 0:
            raise ToolFailure(exit_code, self)


def parse_results(raw: str) -> DeploymentResult:
    """Parse ansible JSON callback output, raising MalformedOutputError."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedOutputError(str(exc)) from exc

    if not isinstance(payload, dict):
        raise MalformedOutputError("expected a JSON object at the top level")

    plays_payload = payload.get("plays") or []
    stats_payload = payload.get("stats") or {}
    if not isinstance(plays_payload, list) or not isinstance(stats_payload, dict):
        raise MalformedOutputError("expected a 'plays' list and a 'stats' object")

    try:
        plays = [_parse_play(play) for play in plays_payload]
        stats = {str(host): _parse_stats(values) for host, values in stats_payload.items()}
    except (AttributeError, TypeError, ValueError) as exc:
        raise MalformedOutputError(f"unexpected result structure: {exc}") from exc

    return DeploymentResult(plays=plays, stats=stats)


def _parse_play(payload: Dict[str, Any]) -> PlayResult:
    tasks = []
    for task in payload.get("tasks") or []:
        hosts = {}
        for host, outcome in (task.get("hosts") or {}).items():
            # Unreachable hosts carry a msg but no failed flag.
            failed = bool(outcome.get("failed")) or bool(outcome.get("unreachable"))
            hosts[str(host)] = HostOutcome(failed=failed, message=_message(outcome.get("msg")))
        tasks.append(TaskResult(name=_name(task.get("task")), hosts=hosts))
    return PlayResult(name=_name(payload.get("play")), tasks=tasks)


def _parse_stats(payload: Dict[str, Any]) -> HostStats:
    return HostStats(
        ok=int(payload.get("ok", 0)),
        changed=int(payload.get("changed", 0)),
        skipped=int(payload.get("skipped", 0)),
        failed=int(payload.get("failures", payload.get("failed", 0))),
    )


def _name(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(payload.get("name") or "")
    return ""


def _message(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2)
