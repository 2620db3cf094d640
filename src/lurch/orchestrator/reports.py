"""Render deployment results as Slack messages."""

from __future__ import annotations

import shlex
from typing import Iterable, List, Sequence

from ..utils.text import plural, sentence
from .models import DeploymentResult, HostStats

_TRUNCATED = "\n>… (truncated)"
_BLOCK_QUOTE = ">>>"


def describe_stats(stats: HostStats) -> str:
    if stats.changed == 0:
        return "no changes reported"
    return f"{stats.changed} changed, {stats.ok} unchanged and {stats.skipped} skipped"


def success_report(project: str, service: str, result: DeploymentResult) -> str:
    reply = f"All *{project} {service}* tasks ran ok"
    hosts = result.host_names()
    if not hosts:
        return reply + " but no hosts were reported."
    if len(hosts) == 1:
        name = hosts[0]
        stats = result.stats[name]
        if stats.changed == 0:
            return reply + f" on the *{name}* host with no changes reported."
        return reply + f" on the *{name}* host with {describe_stats(stats)}."

    reply += f" on the following {len(hosts)} hosts:"
    for name in hosts:
        reply += f"\n  • *{name}*: {describe_stats(result.stats[name])}."
    reply += f"\nAcross all hosts: {describe_stats(result.totals())}."
    return reply


def failure_header(action: str, project: str, service: str) -> str:
    return f"I'm sorry, *{action}* failed on *{project} {service}*:"


def failure_entries(result: DeploymentResult) -> List[str]:
    """One entry per failed task, the first of each host carrying the host heading.

    Entries are the units ``chunk_messages`` never splits.
    """
    entries = []
    for hosts in result.failures().values():
        for host, tasks in hosts.items():
            heading = f"The *{host}* host has {plural(len(tasks), 'task')} failing:"
            for i, task in enumerate(tasks, 1):
                quoted = task.message.replace("\n", "\n>")
                entry = f"*{i}. {sentence(task.name)}* returned this error:\n>{quoted}"
                entries.append(f"{heading}\n{entry}" if i == 1 else entry)
    return entries


def chunk_messages(header: str, entries: Iterable[str], limit: int) -> List[str]:
    """Join ``header`` and ``entries`` with newlines into messages of at most ``limit`` characters.

    A message is flushed whenever appending the next entry would take it past
    the limit. An entry that cannot fit in a message of its own is truncated.
    """
    messages = []
    reply = _fit(header, limit)
    for entry in entries:
        entry = _fit(entry, limit)
        if not reply:
            reply = entry
        elif len(reply) + len(entry) + 1 > limit:
            messages.append(reply)
            reply = entry
        else:
            reply += "\n" + entry
    if reply:
        messages.append(reply)
    return messages


def output_messages(header: str, output: str, limit: int) -> List[str]:
    """Block-quote raw ``output`` under ``header``, a line at a time, across as many messages as needed.

    Only a single line too long for a message is truncated, so an error
    printed after a long stdout still arrives.
    """
    bodies = chunk_messages("", output.splitlines(), limit - len(_BLOCK_QUOTE)) or [""]
    messages = [_BLOCK_QUOTE + body for body in bodies]
    if len(header) + 1 + len(messages[0]) <= limit:
        messages[0] = f"{header}\n{messages[0]}"
    else:
        messages.insert(0, _fit(header, limit))
    return messages


def _fit(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return (text[: max(limit - len(_TRUNCATED), 0)] + _TRUNCATED)[:limit]


def reproduction_command(image: str, argv: Sequence[str]) -> str:
    command = (
        f"docker pull {image} && \\\n"
        f"docker run -t --rm {image} {shlex.join(argv)}"
    )
    return f"You can replicate this problem from a terminal with:\n```{command}```"
