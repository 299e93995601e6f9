"""Creates dependency fetchers for the supported registry types."""

from __future__ import annotations

from typing import Optional

from constants import Constants, RegistryType
from common.errors import UnsupportedRegistryError
from common.progress import ProgressCounter
from registry.fetcher import DependencyFetcher
from registry.npm.client import NpmRegistryClient


def create_fetcher(
    registry_type: str,
    *,
    registry_url: Optional[str] = None,
    request_timeout: float = Constants.REQUEST_TIMEOUT,
    max_in_flight: int = Constants.FETCH_MAX_IN_FLIGHT,
    progress: Optional[ProgressCounter] = None,
) -> DependencyFetcher:
    """Return a fetcher for ``registry_type``.

    npm, pnpm, yarn and bun all resolve against the npm registry.

    Raises:
        UnsupportedRegistryError: For any other registry type.
    """
    if registry_type in {r.value for r in RegistryType}:
        client = NpmRegistryClient(
            base_url=registry_url or Constants.REGISTRY_URL_NPM,
            timeout=request_timeout,
        )
        return DependencyFetcher(client, max_in_flight=max_in_flight, progress=progress)
    raise UnsupportedRegistryError(f"unsupported registry type: {registry_type}")
