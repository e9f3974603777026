"""
Pytest configuration and fixtures for appdeploy tests.
"""

import json
import os
import zipfile
from pathlib import Path
from typing import Iterable, Optional

import pytest

from appdeploy.core.exceptions import InstallError, UninstallError
from appdeploy.core.models import Dependency, InstalledPackage, PackageIdentity, PackageRef
from appdeploy.deploy.environment import InMemoryEnvironment

PUBLISHER = "Contoso"


@pytest.fixture(autouse=True)
def clear_appdeploy_env(monkeypatch):
    """
    Remove APPDEPLOY_* variables so settings start from defaults in every test.
    """
    for key in list(os.environ):
        if key.startswith("APPDEPLOY_"):
            monkeypatch.delenv(key)


def _dependencies(deps: Iterable) -> tuple:
    result = []
    for dep in deps:
        if isinstance(dep, str):
            result.append(Dependency(name=dep, publisher=PUBLISHER, min_version="1.0.0"))
        else:
            name, min_version = dep
            result.append(Dependency(name=name, publisher=PUBLISHER, min_version=min_version))
    return tuple(result)


@pytest.fixture
def make_ref():
    """Factory for candidate packages. deps are names or (name, min_version) pairs."""

    def _make(name: str, version: str = "1.0.0", deps: Iterable = (), path: Optional[str] = None) -> PackageRef:
        return PackageRef(
            identity=PackageIdentity(name=name, publisher=PUBLISHER, version=version),
            file_path=path or f"/packages/{name}.app",
            dependencies=_dependencies(deps),
        )

    return _make


@pytest.fixture
def make_installed():
    """Factory for installed packages."""

    def _make(name: str, version: str = "1.0.0", deps: Iterable = ()) -> InstalledPackage:
        return InstalledPackage(
            identity=PackageIdentity(name=name, publisher=PUBLISHER, version=version),
            dependencies=_dependencies(deps),
        )

    return _make


@pytest.fixture
def write_app(tmp_path: Path):
    """Write a package archive (.app zip with app.json at its root)."""

    def _write(manifest: dict, filename: Optional[str] = None) -> Path:
        path = tmp_path / (filename or f"{manifest.get('name', 'pkg')}.app")
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("app.json", json.dumps(manifest))
            zf.writestr("src/code.txt", b"payload")
        return path

    return _write


class FlakyEnvironment(InMemoryEnvironment):
    """In-memory environment whose install/uninstall fails for selected package names."""

    def __init__(self, installed=None, fail_install=(), fail_uninstall=()):
        super().__init__(installed)
        self.fail_install = set(fail_install)
        self.fail_uninstall = set(fail_uninstall)

    def install(self, package: PackageRef) -> PackageIdentity:
        if package.identity.name in self.fail_install:
            raise InstallError(f"Install of {package.identity.name} rejected")
        return super().install(package)

    def uninstall(self, identity: PackageIdentity) -> None:
        if identity.name in self.fail_uninstall:
            raise UninstallError(f"Uninstall of {identity.name} rejected")
        super().uninstall(identity)


@pytest.fixture
def flaky_environment():
    return FlakyEnvironment
