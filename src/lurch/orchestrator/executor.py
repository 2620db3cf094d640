"""Running ansible playbooks from the catalogue inside the devops image."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from ..chat.base import Conversation
from ..config import AppConfig
from ..errors import (
    ActionNotFound,
    BusyError,
    MalformedOutputError,
    ProjectNotFound,
    RuntimeFailure,
    ServiceNotFound,
    ToolFailure,
)
from ..runtime.container import ContainerRuntime, ExecResult
from ..utils.logging import get_logger
from ..utils.text import bullets
from . import reports
from .catalogue import DEFAULT_ACTION, Action, CatalogueStore, Playbook, Stack
from .listing import service_prompt, unknown_project
from .locks import KeyLockSet
from .models import DeploymentOutcome, DeploymentResult, parse_results

logger = get_logger(__name__)


@dataclass
class Invocation:
    """A fully resolved ansible-playbook run."""

    action: str
    project: str
    service: str
    argv: List[str]

    @property
    def title(self) -> str:
        return f"{self.action} {self.project}/{self.service}"


class DeploymentExecutor:
    """Resolves deploy commands against the catalogue and runs them."""

    def __init__(
        self,
        config: AppConfig,
        runtime: ContainerRuntime,
        catalogue: CatalogueStore,
        *,
        locks: Optional[KeyLockSet] = None,
    ) -> None:
        self.config = config
        self.runtime = runtime
        self.catalogue = catalogue
        self.locks = locks or KeyLockSet()

    def prompt_for_service(self, conversation: Conversation, action: str, project: str) -> None:
        """Handle `<action> <project>`: say which services could have been meant."""
        try:
            stack = self.catalogue.current.get_stack(project)
        except ProjectNotFound:
            conversation.reply(unknown_project(project))
            return
        conversation.reply(service_prompt(project, stack))

    def deploy(
        self,
        conversation: Conversation,
        action: str,
        project: str,
        service: str,
    ) -> DeploymentOutcome:
        try:
            stack = self.catalogue.current.get_stack(project)
        except ProjectNotFound:
            conversation.reply(unknown_project(project))
            return DeploymentOutcome.RESOLUTION_FAILED

        try:
            with self.locks.held(project):
                return self._deploy_locked(conversation, action, project, service, stack)
        except BusyError:
            logger.info("Rejected %s %s/%s: project is already deploying", action, project, service)
            conversation.reply(
                f"Patience! I'm already busy deploying services from *{project}* - please wait until I'm done."
            )
            return DeploymentOutcome.REJECTED

    def _deploy_locked(
        self,
        conversation: Conversation,
        action: str,
        project: str,
        service: str,
        stack: Stack,
    ) -> DeploymentOutcome:
        invocation = self._resolve(conversation, action, project, service, stack)
        if invocation is None:
            return DeploymentOutcome.RESOLUTION_FAILED

        if action == DEFAULT_ACTION:
            conversation.reply(f"OK, I'm running the *{project} {service}* service...")
        else:
            conversation.reply(f"OK, I'm running the {action} action on the *{project} {service}* service...")

        logger.info("Starting %s: %s", invocation.title, " ".join(invocation.argv))
        outcome = self._run(conversation, invocation)
        logger.info("Finished %s: %s", invocation.title, outcome.value)
        return outcome

    def _resolve(
        self,
        conversation: Conversation,
        action: str,
        project: str,
        service: str,
        stack: Stack,
    ) -> Optional[Invocation]:
        try:
            playbook = stack.get_playbook(service, project)
        except ServiceNotFound:
            reply = f"Hmmm.  I'm not aware of the *{service}* service being part of the *{project}* project."
            services = stack.playbook_names()
            if len(services) > 1:
                reply += "  These are the services I know about:" + bullets(services)
            conversation.reply(reply)
            return None

        extra: Optional[Action] = None
        if action != DEFAULT_ACTION:
            try:
                extra = playbook.get_action(action, service)
            except ActionNotFound:
                conversation.reply(self._unknown_action(service, playbook))
                return None

        return Invocation(
            action=action,
            project=project,
            service=service,
            argv=self.build_argv(playbook, extra),
        )

    @staticmethod
    def _unknown_action(service: str, playbook: Playbook) -> str:
        actions = playbook.action_names()
        if not actions:
            return f"I'm afraid the *{service}* service doesn't have any custom actions."
        if len(actions) == 1:
            return (
                "Hmmm.  I don't know that action: the only custom action associated with "
                f"*{service}* is *{actions[0]}*."
            )
        return (
            f"Hmmm.  I don't know that action: these are the custom actions for *{service}* that I'm aware of:"
            + bullets(actions)
        )

    def build_argv(self, playbook: Playbook, action: Optional[Action] = None) -> List[str]:
        argv = list(self.config.ansible.command)
        if action is not None:
            for key, value in action.vars.items():
                argv.extend(["--extra-vars", f"{key}={value}"])
        argv.append(playbook.location)
        return argv

    def _run(self, conversation: Conversation, invocation: Invocation) -> DeploymentOutcome:
        docker_config = self.config.docker
        try:
            execution = self.runtime.run(
                docker_config.image,
                docker_config.tag,
                invocation.argv,
                dict(self.config.ansible.environment),
            )
        except RuntimeFailure as exc:
            logger.error("Running %s failed: %s", invocation.title, exc)
            conversation.reply(
                f"I'm sorry, *{invocation.action}* failed on *{invocation.project} {invocation.service}*: {exc}"
            )
            if not exc.output:
                return DeploymentOutcome.RUNTIME_FAILED
            # The tool may have got far enough to explain itself.
            execution = ExecResult(
                argv=invocation.argv,
                stdout=exc.output,
                stderr="",
                exit_code=exc.exit_code if exc.exit_code is not None else -1,
            )

        try:
            result = parse_results(execution.stdout)
            result.raise_for_status(execution.exit_code)
        except MalformedOutputError as exc:
            return self._report_unreadable(conversation, invocation, execution, exc)
        except ToolFailure as exc:
            logger.warning("%s: %s", invocation.title, exc)
            self._report_failures(conversation, invocation, exc.result)
            return DeploymentOutcome.FAILED

        conversation.reply(reports.success_report(invocation.project, invocation.service, result))
        return DeploymentOutcome.SUCCEEDED

    def _report_unreadable(
        self,
        conversation: Conversation,
        invocation: Invocation,
        execution: ExecResult,
        error: MalformedOutputError,
    ) -> DeploymentOutcome:
        if execution.ok:
            logger.error("%s succeeded but its output was unreadable: %s", invocation.title, error)
            conversation.send(f"Oh dear! I couldn't read the JSON returned by Ansible:```{error}```")
            return DeploymentOutcome.PARSE_FAILED

        logger.warning("%s exited with %d and unreadable output", invocation.title, execution.exit_code)
        header = reports.failure_header(invocation.action, invocation.project, invocation.service)
        for message in reports.output_messages(header, execution.output, conversation.max_message_length):
            conversation.send(message)
        conversation.send(self._reproduction(invocation))
        return DeploymentOutcome.FAILED

    def _report_failures(
        self,
        conversation: Conversation,
        invocation: Invocation,
        result: DeploymentResult,
    ) -> None:
        header = reports.failure_header(invocation.action, invocation.project, invocation.service)
        messages = reports.chunk_messages(
            header, reports.failure_entries(result), conversation.max_message_length
        )
        for message in messages:
            conversation.reply(message)
        # Slack mangles the command when it shares a message with the failures.
        conversation.reply(self._reproduction(invocation))

    def _reproduction(self, invocation: Invocation) -> str:
        return reports.reproduction_command(self.config.docker.reference, invocation.argv)
