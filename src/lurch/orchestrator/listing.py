"""Replies describing the catalogue and the commands the bot understands."""

from __future__ import annotations

from typing import Optional

from ..utils.text import bullets, desentence
from .catalogue import Catalogue, Playbook, Stack

REPOSITORY_URL = "https://github.com/geo-data/lurch"


def command_overview(intro: str) -> str:
    return (
        f"{intro}. I can help with the following commands:\n"
        "• *`deploy`* - deploy an application.\n"
        "• *`list`* - list applications I can deploy.\n"
        "• *`version`* - give an idea of how advanced I am.\n"
        "Use *`help <command>`* for further details."
    )


def list_help(intro: str = "") -> str:
    reply = f"{intro}. " if intro else ""
    return reply + (
        "Use *`list`* as follows:\n"
        "  • Simply *`list`* to find the projects I can deal with;\n"
        "  • *`list <project>`* to find playbooks associated with a project;\n"
        "  • and *`list <project> <playbook>`* to describe any custom actions available for a playbook."
    )


def topic_help(topic: Optional[str]) -> str:
    if topic is None:
        return command_overview("Sure")
    if topic == "deploy":
        return (
            "Use *`deploy <project> <service>`* to deploy a service related to a project. "
            "If a project has custom actions associated with it then just replace `deploy` "
            "with the name of the action."
        )
    if topic == "list":
        return list_help()
    if topic == "version":
        return "This provides the version number I'm tagged with and the commit ID I was built from."
    return "How about giving me a chance and using a command I understand?!"


def version_reply(version: Optional[str], commit: Optional[str]) -> str:
    if not version or not commit:
        return "It looks like I'm running as a development version."
    return (
        f"I'm tagged as version <{REPOSITORY_URL}/releases/tag/{version}|{version}> "
        f"built from commit <{REPOSITORY_URL}/commit/{commit}|{commit}>."
    )


def describe_projects(catalogue: Catalogue) -> str:
    projects = catalogue.stack_names()
    if not projects:
        return "Sorry, there don't seem to be any projects at the moment."
    if len(projects) == 1:
        return f"I only know about the *{projects[0]}* project."
    return f"I know about the following {len(projects)} projects:" + bullets(projects)


def _action_count(playbook: Playbook) -> str:
    count = len(playbook.actions)
    if count == 0:
        return ""
    if count == 1:
        return " (with 1 action)"
    return f" (with {count} actions)"


def describe_project(project: str, stack: Stack) -> str:
    services = stack.playbook_names()
    if not services:
        return f"It doesn't look like there are any services associated with *{project}*."

    if len(services) == 1:
        service = services[0]
        playbook = stack.playbooks[service]
        reply = f"The *{project}* project only has the *{service}* service"
        if playbook.about:
            reply += f" designed to {desentence(playbook.about)}."
        else:
            reply += " associated with it."
        count = len(playbook.actions)
        if count == 1:
            reply += "  This has 1 additional action you can invoke."
        elif count > 1:
            reply += f"  This has {count} additional actions you can invoke."
        return reply

    reply = f"The *{project}* project has {len(services)} services associated with it:"
    for name in services:
        playbook = stack.playbooks[name]
        reply += f"\n  • *{name}*{_action_count(playbook)}"
        if playbook.about:
            reply += f": {desentence(playbook.about)}"
    return reply


def describe_playbook(service: str, playbook: Playbook) -> str:
    actions = playbook.action_names()
    if not actions:
        return f"There aren't any additional actions associated with *{service}*."

    if len(actions) == 1:
        name = actions[0]
        action = playbook.actions[name]
        reply = f"In addition to `deploy`, the *{service}* playbook has the *{name}* action"
        if action.about:
            return reply + f" designed to {desentence(action.about)}."
        return reply + " associated with it."

    reply = f"The *{service}* playbook has {len(actions)} actions associated with it:"
    for name in actions:
        reply += f"\n  • *{name}*"
        about = playbook.actions[name].about
        if about:
            reply += f": {desentence(about)}"
    return reply


def unknown_project(project: str) -> str:
    return (
        f"Oh dear.  I'm afraid I don't know anything about the *{project}* stack.  "
        "Perhaps it's a typo or perhaps you need to configure it?"
    )


def service_prompt(project: str, stack: Stack) -> str:
    """Reply to `<action> <project>` when the service was left out."""
    services = stack.playbook_names()
    if not services:
        return f"It doesn't look like there are any services associated with *{project}*."
    if len(services) == 1:
        return (
            f"The *{project}* project only has the *{services[0]}* service associated with it "
            "but you need to explicitly type it."
        )
    return f"Please specify a service from the *{project}* project:" + bullets(services)
