"""appdeploy - Dependency-ordered deployment of app package batches."""

__version__ = "0.1.0"

from appdeploy.core.config import RunConfig, Settings, SyncMode
from appdeploy.core.models import PackageIdentity, PackageRef, RunReport
from appdeploy.deploy.orchestrator import DeploymentOrchestrator

__all__ = [
    "DeploymentOrchestrator",
    "PackageIdentity",
    "PackageRef",
    "RunConfig",
    "RunReport",
    "Settings",
    "SyncMode",
    "__version__",
]
