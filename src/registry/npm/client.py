"""NPM registry client: per-version manifests and dist-tags."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests

from constants import Constants
from common.errors import FetchError, ResolutionError
from common.http_client import safe_get
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from registry.models import PackageManifest
from versioning.models import PackageRef

logger = logging.getLogger(__name__)

_MANIFEST_HEADERS = {"Accept": "application/json"}


class NpmRegistryClient:
    """HTTP client for the npm registry JSON API.

    Args:
        base_url: Registry root, e.g. ``https://registry.npmjs.org/``.
        timeout: Default per-request timeout in seconds.
    """

    def __init__(self, base_url: str = Constants.REGISTRY_URL_NPM,
                 timeout: float = Constants.REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout

    def manifest_url(self, ref: PackageRef) -> str:
        return f"{self.base_url}{ref.name}/{ref.version}"

    def package_url(self, name: str) -> str:
        return f"{self.base_url}{name}"

    def _get_json(self, url: str, timeout: Optional[float]) -> Any:
        """GET ``url`` and decode its JSON body; any failure raises FetchError."""
        effective = self.timeout if timeout is None else max(0.1, min(self.timeout, timeout))
        with Timer() as timer:
            try:
                res = safe_get(url, context="npm", fatal=False,
                               timeout=effective, headers=_MANIFEST_HEADERS)
            except requests.RequestException as exc:
                raise FetchError(f"request to {safe_url(url)} failed: {exc}") from exc

        if res.status_code != 200:
            logger.debug(
                "HTTP non-200 from registry",
                extra=extra_context(
                    event="http_response",
                    outcome="handled_non_200",
                    status_code=res.status_code,
                    duration_ms=timer.duration_ms(),
                    target=safe_url(url),
                    package_manager="npm"
                )
            )
            raise FetchError(f"registry returned status {res.status_code} for {safe_url(url)}")

        try:
            return json.loads(res.text)
        except json.JSONDecodeError as exc:
            raise FetchError(f"malformed JSON from {safe_url(url)}: {exc}") from exc

    def fetch_manifest(self, ref: PackageRef, timeout: Optional[float] = None) -> PackageManifest:
        """Fetch the declared dependencies of one package version.

        Raises:
            FetchError: On transport errors, non-200 status or a malformed body.
        """
        data = self._get_json(self.manifest_url(ref), timeout)
        if not isinstance(data, dict):
            raise FetchError(f"unexpected manifest shape for {ref.key}")

        dependencies: Dict[str, str] = data.get("dependencies") or {}
        if not isinstance(dependencies, dict):
            raise FetchError(f"malformed dependencies for {ref.key}")

        if is_debug_enabled(logger):
            logger.debug(
                "Fetched manifest",
                extra=extra_context(
                    event="manifest",
                    component="npm_client",
                    target=ref.key,
                    dependency_count=len(dependencies),
                    package_manager="npm"
                )
            )
        return PackageManifest(
            name=data.get("name") or ref.name,
            version=data.get("version") or ref.version,
            dependencies={str(k): str(v) for k, v in dependencies.items()},
        )

    def get_latest_version(self, name: str, timeout: Optional[float] = None) -> str:
        """Return the ``latest`` dist-tag of ``name``.

        Raises:
            ResolutionError: If the lookup fails or the tag is missing.
        """
        try:
            data = self._get_json(self.package_url(name), timeout)
        except FetchError as exc:
            raise ResolutionError(f"failed to get latest version for {name}: {exc}") from exc

        latest = ""
        if isinstance(data, dict):
            latest = (data.get("dist-tags") or {}).get("latest") or ""
        if not latest:
            raise ResolutionError(f"no latest version found for package {name}")
        return latest
