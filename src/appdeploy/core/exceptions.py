"""Custom exceptions for appdeploy."""

from typing import Iterable, List, Optional, Sequence


class AppDeployError(Exception):
    """Base exception for all deployment errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class PackageError(AppDeployError):
    """Package-related errors."""
    pass


class ManifestError(PackageError):
    """Package manifest is missing, unreadable or malformed."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, code="manifest_error")
        self.path = path


class PlanningError(AppDeployError):
    """The candidate batch cannot be turned into a deployment plan."""
    pass


class DuplicatePackageError(PlanningError):
    """The same package appears more than once in one batch."""

    def __init__(self, name: str, publisher: str, paths: Sequence[str]):
        super().__init__(
            f"Package {publisher}/{name} appears more than once in the batch: {', '.join(paths)}",
            code="duplicate_package",
        )
        self.name = name
        self.publisher = publisher
        self.paths = list(paths)


class CycleError(PlanningError):
    """Dependency cycle among candidate packages."""

    def __init__(self, cycles: Iterable[Sequence[str]]):
        self.cycles: List[List[str]] = [list(c) for c in cycles]
        self.members: List[str] = self.cycles[0] if self.cycles else []
        super().__init__(
            f"Dependency cycle detected among: {', '.join(self.members)}",
            code="dependency_cycle",
        )


class UnresolvedInternalDependencyError(PlanningError):
    """A dependency names a batch package whose version is too old."""

    def __init__(self, package: str, dependency: str, required: str, available: str):
        super().__init__(
            f"{package} requires {dependency} >= {required}, but the batch provides {available}",
            code="unresolved_dependency",
        )
        self.package = package
        self.dependency = dependency
        self.required = required
        self.available = available


class DeploymentError(AppDeployError):
    """Environment operation failed."""
    pass


class EnvironmentQueryError(DeploymentError):
    """Installed packages could not be listed."""
    pass


class InstallError(DeploymentError):
    """Package install failed."""
    pass


class UninstallError(DeploymentError):
    """Package uninstall failed."""
    pass


class ConfigurationError(AppDeployError):
    """Configuration error."""
    pass
