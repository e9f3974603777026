"""Core data models for appdeploy."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from packaging.version import InvalidVersion, Version
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from appdeploy.core.config import SyncMode


def parse_version(value: str) -> Version:
    """Parse a package version string.

    Raises:
        ValueError: If the version is not a valid version string
    """
    try:
        return Version(value)
    except InvalidVersion:
        raise ValueError(f"Invalid version: {value!r}")


class Action(str, Enum):
    """Kind of environment operation a run step performs."""

    INSTALL = "install"
    UNINSTALL = "uninstall"


class OutcomeStatus(str, Enum):
    """Per-step result recorded in the run report."""

    INSTALLED = "installed"
    UNINSTALLED = "uninstalled"
    SKIPPED = "skipped"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


class RunState(str, Enum):
    """Deployment run state."""

    PLANNING = "planning"
    SYNC_RESOLVED = "sync_resolved"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ABORTED = "aborted"


class PackageIdentity(BaseModel):
    """Package identity. Two identities are equal when name and publisher match."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Package name")
    publisher: str = Field(..., min_length=1, description="Package publisher")
    version: str = Field(..., description="Package version")

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        parse_version(v)
        return v

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.publisher)

    @property
    def parsed_version(self) -> Version:
        return parse_version(self.version)

    def same_version(self, other: "PackageIdentity") -> bool:
        return self.parsed_version == other.parsed_version

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PackageIdentity):
            return self.key == other.key
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return f"{self.publisher}/{self.name}@{self.version}"


class Dependency(BaseModel):
    """A declared requirement on another package."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    publisher: str = Field(..., min_length=1)
    min_version: str = Field(
        "0.0.0",
        validation_alias=AliasChoices("min_version", "minVersion", "version"),
        description="Minimum acceptable version",
    )

    @field_validator("min_version")
    @classmethod
    def validate_min_version(cls, v: str) -> str:
        parse_version(v)
        return v

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.publisher)

    def matches(self, identity: PackageIdentity) -> bool:
        return self.key == identity.key

    def satisfied_by(self, version: str) -> bool:
        return parse_version(version) >= parse_version(self.min_version)

    def __str__(self) -> str:
        return f"{self.publisher}/{self.name}>={self.min_version}"


class PackageRef(BaseModel):
    """A candidate package read from a package file."""

    model_config = ConfigDict(frozen=True)

    identity: PackageIdentity
    file_path: str = Field(..., description="Path the package was read from")
    dependencies: Tuple[Dependency, ...] = Field(default_factory=tuple)
    sha256: str = Field("", description="Package file SHA256 (empty for directories)")

    @property
    def key(self) -> Tuple[str, str]:
        return self.identity.key

    @property
    def name(self) -> str:
        return self.identity.name


# Ordered, dependency-safe install sequence.
DeploymentPlan = Tuple[PackageRef, ...]


class InstalledPackage(BaseModel):
    """A package present in the target environment."""

    model_config = ConfigDict(frozen=True)

    identity: PackageIdentity
    dependencies: Tuple[Dependency, ...] = Field(default_factory=tuple)


class InstalledSet:
    """Immutable snapshot of the packages installed in an environment.

    Keyed by (name, publisher). Updates return a new snapshot.
    """

    __slots__ = ("_packages",)

    def __init__(self, packages: Iterable[InstalledPackage] = ()):
        self._packages: Dict[Tuple[str, str], InstalledPackage] = {}
        for package in packages:
            self._packages[package.identity.key] = package

    def get(self, identity: PackageIdentity) -> Optional[InstalledPackage]:
        return self._packages.get(identity.key)

    def version_of(self, identity: PackageIdentity) -> Optional[str]:
        package = self._packages.get(identity.key)
        return package.identity.version if package else None

    def with_package(self, package: InstalledPackage) -> "InstalledSet":
        packages = dict(self._packages)
        packages[package.identity.key] = package
        return InstalledSet(packages.values())

    def without(self, identity: PackageIdentity) -> "InstalledSet":
        return InstalledSet(p for k, p in self._packages.items() if k != identity.key)

    def identities(self) -> List[PackageIdentity]:
        return [p.identity for p in self._packages.values()]

    def to_dict(self) -> Dict[str, str]:
        return {f"{p.identity.publisher}/{p.identity.name}": p.identity.version for p in self}

    def __contains__(self, identity: object) -> bool:
        return isinstance(identity, PackageIdentity) and identity.key in self._packages

    def __iter__(self) -> Iterator[InstalledPackage]:
        return iter(self._packages.values())

    def __len__(self) -> int:
        return len(self._packages)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, InstalledSet):
            return self.to_dict() == other.to_dict()
        return NotImplemented

    def __repr__(self) -> str:
        return f"InstalledSet({self.to_dict()!r})"


class SyncDecision(BaseModel):
    """Removals and installs for one run."""

    model_config = ConfigDict(frozen=True)

    to_uninstall: Tuple[PackageIdentity, ...] = Field(default_factory=tuple)
    to_install: DeploymentPlan = Field(default_factory=tuple)


class DeploymentOutcome(BaseModel):
    """Result of a single install or uninstall step."""

    model_config = ConfigDict(frozen=True)

    identity: PackageIdentity
    action: Action
    status: OutcomeStatus
    reason: Optional[str] = Field(None, description="Why the step was skipped")
    error: Optional[str] = Field(None, description="Error detail if the step failed")
    dry_run: bool = Field(False, description="Simulated outcome")

    @classmethod
    def installed(cls, identity: PackageIdentity, dry_run: bool = False) -> "DeploymentOutcome":
        return cls(identity=identity, action=Action.INSTALL, status=OutcomeStatus.INSTALLED, dry_run=dry_run)

    @classmethod
    def uninstalled(cls, identity: PackageIdentity, dry_run: bool = False) -> "DeploymentOutcome":
        return cls(identity=identity, action=Action.UNINSTALL, status=OutcomeStatus.UNINSTALLED, dry_run=dry_run)

    @classmethod
    def skipped(
        cls, identity: PackageIdentity, action: Action, reason: str, dry_run: bool = False
    ) -> "DeploymentOutcome":
        return cls(identity=identity, action=action, status=OutcomeStatus.SKIPPED, reason=reason, dry_run=dry_run)

    @classmethod
    def failed(cls, identity: PackageIdentity, action: Action, error: str) -> "DeploymentOutcome":
        return cls(identity=identity, action=action, status=OutcomeStatus.FAILED, error=error)

    @classmethod
    def not_attempted(cls, identity: PackageIdentity, action: Action, dry_run: bool = False) -> "DeploymentOutcome":
        return cls(identity=identity, action=action, status=OutcomeStatus.NOT_ATTEMPTED, dry_run=dry_run)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunReport(BaseModel):
    """Terminal artifact of a deployment run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    sync_mode: SyncMode
    dry_run: bool = False
    state: RunState
    entries: Tuple[DeploymentOutcome, ...] = Field(default_factory=tuple)
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: datetime = Field(default_factory=_utcnow)

    @property
    def failed(self) -> bool:
        if self.state == RunState.ABORTED:
            return True
        return any(e.status == OutcomeStatus.FAILED for e in self.entries)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    @property
    def attempted(self) -> List[DeploymentOutcome]:
        return [e for e in self.entries if e.status != OutcomeStatus.NOT_ATTEMPTED]

    @property
    def not_attempted(self) -> List[DeploymentOutcome]:
        return [e for e in self.entries if e.status == OutcomeStatus.NOT_ATTEMPTED]

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)
