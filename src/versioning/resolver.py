"""Version resolution for root packages named on the command line."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from common.errors import ResolutionError
from .parser import normalize_version

logger = logging.getLogger(__name__)


class LatestVersionSource(Protocol):
    """Anything able to look up a package's ``latest`` dist-tag."""

    def get_latest_version(self, name: str, timeout: Optional[float] = None) -> str:
        ...


def resolve_version(
    client: LatestVersionSource,
    name: str,
    raw_spec: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Turn an optional version spec into the version sent to the registry.

    An empty spec is resolved through the registry's ``latest`` dist-tag;
    anything else is only prefix-normalized.

    Raises:
        ResolutionError: If the ``latest`` lookup fails or returns nothing.
    """
    if raw_spec and raw_spec.strip():
        return normalize_version(raw_spec)

    logger.info("No version specified for %s, fetching latest version...", name)
    version = client.get_latest_version(name, timeout=timeout)
    if not version:
        raise ResolutionError(f"no latest version found for package {name}")
    logger.info("Latest version of %s is %s", name, version)
    return version
