"""Environment handle backed by a remote package administration endpoint."""

from __future__ import annotations

import io
import time
import zipfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from appdeploy.core.config import Settings
from appdeploy.core.exceptions import (
    ConfigurationError,
    DeploymentError,
    EnvironmentQueryError,
    InstallError,
    UninstallError,
)
from appdeploy.core.models import (
    Dependency,
    InstalledPackage,
    InstalledSet,
    PackageIdentity,
    PackageRef,
)
from appdeploy.packages.inspector import MANIFEST_NAMES

logger = structlog.get_logger()


class RemoteEnvironment:
    """Talks to `{base_url}/packages` over HTTP.

    Transport errors, timeouts and 5xx responses are retried with bounded
    exponential backoff. 4xx responses fail immediately.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_token: Optional[str] = None,
        timeout_sec: float = 30.0,
        max_retries: int = 3,
        backoff_base: float = 0.3,
    ):
        if not base_url:
            raise ConfigurationError("Environment URL is required")
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout_sec = timeout_sec
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base

    @classmethod
    def from_settings(cls, settings: Settings) -> "RemoteEnvironment":
        if not settings.environment_url:
            raise ConfigurationError("APPDEPLOY_ENVIRONMENT_URL (or --environment-url) is required")
        return cls(
            settings.environment_url,
            api_token=settings.api_token,
            timeout_sec=settings.request_timeout_seconds,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base,
        )

    def list_installed(self) -> InstalledSet:
        resp = self._request("GET", "/packages", EnvironmentQueryError)
        try:
            items = resp.json()
            if not isinstance(items, list):
                raise ValueError("expected a JSON list")
            return InstalledSet(self._installed_package(item) for item in items)
        except (ValueError, TypeError, ValidationError) as e:
            raise EnvironmentQueryError(f"Invalid installed package listing: {e}")

    def install(self, package: PackageRef) -> PackageIdentity:
        path = Path(package.file_path)
        if not path.exists():
            raise InstallError(f"Package path not found: {path}")
        try:
            filename, content = _package_payload(path)
        except OSError as e:
            raise InstallError(f"Cannot read package {path}: {e}")

        identity = package.identity
        resp = self._request(
            "POST",
            "/packages",
            InstallError,
            files={"file": (filename, content, "application/octet-stream")},
            data={"name": identity.name, "publisher": identity.publisher, "version": identity.version},
        )
        try:
            return PackageIdentity(**resp.json())
        except (ValueError, TypeError, ValidationError) as e:
            raise InstallError(f"Invalid install response for {identity}: {e}")

    def uninstall(self, identity: PackageIdentity) -> None:
        path = f"/packages/{quote(identity.publisher, safe='')}/{quote(identity.name, safe='')}"
        self._request("DELETE", path, UninstallError, params={"version": identity.version})

    @staticmethod
    def _installed_package(item: Any) -> InstalledPackage:
        if not isinstance(item, dict):
            raise ValueError(f"expected a package object, got {type(item).__name__}")
        return InstalledPackage(
            identity=PackageIdentity(
                name=item.get("name"), publisher=item.get("publisher"), version=item.get("version")
            ),
            dependencies=tuple(Dependency(**d) for d in item.get("dependencies") or ()),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _request(self, method: str, path: str, error_cls: Type[DeploymentError], **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        attempt = 0
        last_error: Optional[Exception] = None

        while attempt < self.max_retries:
            attempt += 1
            try:
                logger.debug("Environment request", method=method, url=url, attempt=attempt)
                with httpx.Client(timeout=httpx.Timeout(self.timeout_sec), headers=self._headers()) as client:
                    resp = client.request(method, url, **kwargs)
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status < 500:
                    raise error_cls(f"{method} {url} rejected with {status}: {_error_detail(e.response)}")
                last_error = e
            except httpx.TransportError as e:
                last_error = e

            logger.warning("Environment request failed", method=method, url=url, attempt=attempt, error=str(last_error))
            if attempt >= self.max_retries:
                break
            time.sleep(self.backoff_base * (2 ** (attempt - 1)))

        raise error_cls(f"{method} {url} failed after {attempt} attempts: {last_error}")


def _package_payload(path: Path) -> Tuple[str, bytes]:
    """Return the upload filename and archive bytes for a package.

    Archives are sent as they are. A package directory, or the directory
    holding a bare manifest, is zipped in memory relative to its root.
    """
    if path.is_file() and path.name.lower() not in MANIFEST_NAMES:
        return path.name, path.read_bytes()

    root = path if path.is_dir() else path.parent
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as z:
        for file in sorted(p for p in root.rglob("*") if p.is_file()):
            z.write(file, file.relative_to(root).as_posix())
    return f"{root.name}.app", buf.getvalue()


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)
