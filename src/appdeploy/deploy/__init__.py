"""Deployment execution against a target environment."""

from .environment import Environment, InMemoryEnvironment
from .executor import DeploymentExecutor
from .orchestrator import DeploymentOrchestrator
from .remote import RemoteEnvironment

__all__ = [
    "Environment",
    "InMemoryEnvironment",
    "RemoteEnvironment",
    "DeploymentExecutor",
    "DeploymentOrchestrator",
]
