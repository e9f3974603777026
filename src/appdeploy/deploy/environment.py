"""Environment handle contract and an in-process implementation."""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, Tuple, runtime_checkable

import structlog

from appdeploy.core.exceptions import UninstallError
from appdeploy.core.models import InstalledPackage, InstalledSet, PackageIdentity, PackageRef

logger = structlog.get_logger()


@runtime_checkable
class Environment(Protocol):
    """Target environment the executor deploys into.

    Implementations own timeouts and transient retries. Failures are reported
    as EnvironmentQueryError, InstallError or UninstallError.
    """

    def list_installed(self) -> InstalledSet:
        ...

    def install(self, package: PackageRef) -> PackageIdentity:
        ...

    def uninstall(self, identity: PackageIdentity) -> None:
        ...


class InMemoryEnvironment:
    """Environment held in process memory.

    Useful for rehearsing a deployment locally against a known starting state.
    """

    def __init__(self, installed: Optional[Iterable[InstalledPackage]] = None):
        self._installed = InstalledSet(installed or ())
        self.history: List[Tuple[str, str]] = []

    def list_installed(self) -> InstalledSet:
        return self._installed

    def install(self, package: PackageRef) -> PackageIdentity:
        self._installed = self._installed.with_package(
            InstalledPackage(identity=package.identity, dependencies=package.dependencies)
        )
        self.history.append(("install", str(package.identity)))
        logger.debug("Installed package in memory", package=str(package.identity))
        return package.identity

    def uninstall(self, identity: PackageIdentity) -> None:
        if identity not in self._installed:
            raise UninstallError(f"Package {identity.publisher}/{identity.name} is not installed")
        self._installed = self._installed.without(identity)
        self.history.append(("uninstall", str(identity)))
        logger.debug("Uninstalled package in memory", package=str(identity))
