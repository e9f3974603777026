"""Package inspector for deployable app packages."""

import hashlib
import json
import zipfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import structlog
import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from appdeploy.core.exceptions import ManifestError
from appdeploy.core.models import Dependency, PackageIdentity, PackageRef, parse_version

logger = structlog.get_logger()

MANIFEST_NAMES = ("app.json", "app.yaml", "app.yml")


class ManifestDependency(BaseModel):
    """Dependency entry as written in a manifest."""

    name: str = Field(..., min_length=1)
    publisher: str = Field(..., min_length=1)
    version: str = Field("0.0.0", validation_alias=AliasChoices("version", "minVersion", "min_version"))


class AppManifest(BaseModel):
    """Package manifest (app.json / app.yaml)."""

    id: Optional[str] = Field(None, description="Package GUID")
    name: str = Field(..., min_length=1, description="Package name")
    publisher: str = Field(..., min_length=1, description="Package publisher")
    version: str = Field(..., description="Package version")
    description: Optional[str] = Field(None, description="Package description")
    dependencies: List[ManifestDependency] = Field(default_factory=list, description="Required packages")

    @field_validator("name", "publisher")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        parse_version(v)
        return v


class PackageInspector:
    """Reads package identity and declared dependencies from package files.

    Inspection has no side effects: the same file bytes always produce the
    same PackageRef.
    """

    def inspect(self, file_path: Union[str, Path]) -> PackageRef:
        """Inspect a package.

        Args:
            file_path: Package archive, manifest file or package directory

        Returns:
            PackageRef describing the package

        Raises:
            ManifestError: If the package cannot be read or its manifest is invalid
        """
        path = Path(file_path)
        logger.debug("Inspecting package", path=str(path))

        if not path.exists():
            raise ManifestError(f"Package path not found: {path}", path=str(path))

        sha256 = ""
        if path.is_dir():
            data = self._read_from_directory(path)
        elif path.name.lower() in MANIFEST_NAMES:
            data = self._parse(path.name, self._read_bytes(path), path)
            sha256 = self._calculate_sha256(path)
        else:
            data = self._read_from_archive(path)
            sha256 = self._calculate_sha256(path)

        manifest = self._validate(data, path)
        package = PackageRef(
            identity=PackageIdentity(name=manifest.name, publisher=manifest.publisher, version=manifest.version),
            file_path=str(path),
            dependencies=tuple(
                Dependency(name=d.name, publisher=d.publisher, min_version=d.version)
                for d in manifest.dependencies
            ),
            sha256=sha256,
        )
        logger.info(
            "Package inspected",
            package=str(package.identity),
            dependencies=len(package.dependencies),
        )
        return package

    def inspect_all(self, paths: Iterable[Union[str, Path]]) -> List[PackageRef]:
        """Inspect packages in input order, stopping at the first invalid one."""
        return [self.inspect(p) for p in paths]

    def _read_from_directory(self, package_dir: Path) -> Any:
        for name in MANIFEST_NAMES:
            manifest_path = package_dir / name
            if manifest_path.is_file():
                return self._parse(name, self._read_bytes(manifest_path), package_dir)
        raise ManifestError(f"Missing app.json manifest in {package_dir}", path=str(package_dir))

    def _read_from_archive(self, archive_path: Path) -> Any:
        try:
            with zipfile.ZipFile(archive_path, "r") as zf:
                members = set(zf.namelist())
                for name in MANIFEST_NAMES:
                    if name in members:
                        return self._parse(name, zf.read(name), archive_path)
        except (zipfile.BadZipFile, OSError) as e:
            raise ManifestError(f"Unreadable package archive {archive_path}: {e}", path=str(archive_path))
        raise ManifestError(f"Missing app.json manifest in {archive_path}", path=str(archive_path))

    def _read_bytes(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise ManifestError(f"Cannot read manifest {path}: {e}", path=str(path))

    def _parse(self, name: str, raw: bytes, source: Path) -> Any:
        try:
            text = raw.decode("utf-8-sig")
            if name.endswith(".json"):
                return json.loads(text)
            return yaml.safe_load(text)
        except (UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ManifestError(f"Malformed manifest {name} in {source}: {e}", path=str(source))

    def _validate(self, data: Any, source: Path) -> AppManifest:
        if not isinstance(data, dict):
            raise ManifestError(f"Manifest in {source} must be a mapping", path=str(source))
        try:
            return AppManifest(**self._normalise_keys(data))
        except ValidationError as e:
            raise ManifestError(f"Invalid manifest in {source}: {e}", path=str(source))

    @staticmethod
    def _normalise_keys(data: Dict[str, Any]) -> Dict[str, Any]:
        # Manifests in the wild use both "name" and "Name"
        normalised = {str(k)[:1].lower() + str(k)[1:]: v for k, v in data.items()}
        dependencies = normalised.get("dependencies")
        if isinstance(dependencies, list):
            normalised["dependencies"] = [
                PackageInspector._normalise_keys(d) if isinstance(d, dict) else d for d in dependencies
            ]
        return normalised

    @staticmethod
    def _calculate_sha256(file_path: Path) -> str:
        sha256_hash = hashlib.sha256()
        with open(file_path, "rb") as f:
            for byte_block in iter(lambda: f.read(4096), b""):
                sha256_hash.update(byte_block)
        return sha256_hash.hexdigest()
