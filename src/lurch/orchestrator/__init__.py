"""Deployment orchestration engine.

This module ties the catalogue to the devops image and to ansible:
- KeyLockSet/PullToggle: Non-blocking exclusion for deployments and pulls
- CatalogueStore: The project -> service -> action catalogue, swapped whole
- ImageSynchronizer: Pulls the image and rebuilds the catalogue from it
- DeploymentExecutor: Runs playbooks and reports their results
- CommandRouter: Dispatches chat commands
"""

from .catalogue import Action, Catalogue, CatalogueStore, Playbook, Stack
from .executor import DeploymentExecutor
from .images import ImageSynchronizer, PullStatus, classify_pull_status
from .locks import KeyLockSet, PullToggle
from .models import DeploymentOutcome, DeploymentResult, HostStats, parse_results
from .router import CommandRouter

__all__ = [
    "Action",
    "Catalogue",
    "CatalogueStore",
    "Playbook",
    "Stack",
    "DeploymentExecutor",
    "ImageSynchronizer",
    "PullStatus",
    "classify_pull_status",
    "KeyLockSet",
    "PullToggle",
    "DeploymentOutcome",
    "DeploymentResult",
    "HostStats",
    "parse_results",
    "CommandRouter",
]
