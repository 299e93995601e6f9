"""Project manifest readers for bare installs (``npm install`` with no packages).

Lockfiles pin every transitive package, so their ``name@version`` entries are
analysed directly. Without a lockfile the direct dependencies declared in
package.json are returned as specs to be scanned like command-line roots.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import yaml

from constants import Constants, RegistryType
from common.errors import ManifestError

logger = logging.getLogger(__name__)

_DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "optionalDependencies")


@dataclass
class InstallManifest:
    """What a bare install would put on disk.

    Exactly one of ``resolved`` (pinned ``name@version`` entries from a
    lockfile) or ``specs`` (``name@range`` from package.json) is filled.
    """

    source: str
    resolved: List[str] = field(default_factory=list)
    specs: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.resolved and not self.specs


def _load_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ManifestError(f"failed to read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"{path} does not contain a JSON object")
    return data


def _pinned(version: Any) -> bool:
    # file:, link:, git+ssh:, github: and tarball URLs are not registry versions
    return isinstance(version, str) and bool(version) and ":" not in version and "/" not in version


def _name_from_path(pkg_path: str) -> str:
    """``node_modules/a/node_modules/@s/b`` -> ``@s/b``."""
    return pkg_path.rsplit("node_modules/", 1)[-1]


def parse_package_lock(lockfile_path: str) -> List[str]:
    """Extract ``name@version`` for every package in package-lock.json.

    Supports lockfileVersion 1 (nested ``dependencies``) and 2/3 (flat
    ``packages`` keyed by install path). Linked and non-registry entries are
    skipped.

    Raises:
        ManifestError: If the file cannot be read or decoded.
    """
    data = _load_json(lockfile_path)
    packages: Set[str] = set()

    def _extract_from_deps(deps: Any) -> None:
        if not isinstance(deps, dict):
            return
        for pkg_name, pkg_info in deps.items():
            if not isinstance(pkg_info, dict):
                continue
            if _pinned(pkg_info.get("version")):
                packages.add(f"{pkg_name}@{pkg_info['version']}")
            _extract_from_deps(pkg_info.get("dependencies"))

    entries = data.get("packages")
    if isinstance(entries, dict):
        for pkg_path, pkg_info in entries.items():
            # The root project and workspace folders are not under node_modules
            if "node_modules/" not in pkg_path or not isinstance(pkg_info, dict):
                continue
            if pkg_info.get("link") or not _pinned(pkg_info.get("version")):
                continue
            name = pkg_info.get("name") or _name_from_path(pkg_path)
            packages.add(f"{name}@{pkg_info['version']}")
    else:
        _extract_from_deps(data.get("dependencies"))

    return sorted(packages)


def _pnpm_key_to_ref(key: str, legacy: bool) -> Optional[str]:
    """Turn a pnpm-lock ``packages`` key into ``name@version``.

    ``legacy`` keys (lockfile v5) look like ``/name/1.0.0_peer@1.0.0``; newer
    ones like ``/name@1.0.0(peer@1.0.0)`` (v6) or ``name@1.0.0`` (v9).
    """
    key = key.lstrip("/")
    if legacy:
        name, _, version = key.rpartition("/")
        version = version.split("_", 1)[0]
    else:
        key = key.split("(", 1)[0]
        at = key.rfind("@")
        if at <= 0:
            return None
        name, version = key[:at], key[at + 1:]
    if not name or not _pinned(version):
        return None
    return f"{name}@{version}"


def parse_pnpm_lock(lockfile_path: str) -> List[str]:
    """Extract ``name@version`` for every package in pnpm-lock.yaml.

    Raises:
        ManifestError: If the file cannot be read or is not valid YAML.
    """
    try:
        with open(lockfile_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ManifestError(f"failed to read {lockfile_path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"{lockfile_path} does not contain a mapping")

    try:
        legacy = float(str(data.get("lockfileVersion", "6"))) < 6
    except ValueError as e:
        raise ManifestError(f"unknown lockfileVersion in {lockfile_path}") from e

    packages: Set[str] = set()
    for key in (data.get("packages") or {}):
        ref = _pnpm_key_to_ref(str(key), legacy)
        if ref is None:
            logger.debug("Skipping non-registry pnpm entry %s", key)
            continue
        packages.add(ref)
    return sorted(packages)


def parse_package_json(path: str) -> List[str]:
    """Return ``name@range`` specs for the direct dependencies in package.json.

    Aliases, git, file and URL specs cannot be resolved against the registry
    and are skipped with a warning.

    Raises:
        ManifestError: If the file cannot be read or decoded.
    """
    data = _load_json(path)
    specs: Dict[str, str] = {}
    for dep_field in _DEPENDENCY_FIELDS:
        deps = data.get(dep_field) or {}
        if not isinstance(deps, dict):
            raise ManifestError(f"{dep_field} in {path} is not an object")
        for name, spec in deps.items():
            spec = str(spec).strip()
            if ":" in spec or "/" in spec:
                logger.warning("Skipping %s: unsupported dependency spec '%s'", name, spec)
                continue
            specs.setdefault(name, spec)
    return [f"{name}@{spec}" if spec else name for name, spec in specs.items()]


def load_install_manifest(manager: str, directory: Optional[str] = None) -> InstallManifest:
    """Read what a bare ``<manager> install`` in ``directory`` would install.

    npm prefers npm-shrinkwrap.json over package-lock.json and pnpm reads
    pnpm-lock.yaml. Every manager falls back to package.json.

    Raises:
        ManifestError: If no manifest exists or one cannot be parsed.
    """
    directory = directory or os.getcwd()
    lockfiles = {
        RegistryType.NPM.value: [
            (Constants.NPM_SHRINKWRAP_FILE, parse_package_lock),
            (Constants.NPM_LOCK_FILE, parse_package_lock),
        ],
        RegistryType.PNPM.value: [(Constants.PNPM_LOCK_FILE, parse_pnpm_lock)],
    }
    for filename, parser in lockfiles.get(manager, []):
        path = os.path.join(directory, filename)
        if os.path.isfile(path):
            logger.info("Reading installed packages from %s", path)
            return InstallManifest(source=path, resolved=parser(path))

    path = os.path.join(directory, Constants.PACKAGE_JSON_FILE)
    if not os.path.isfile(path):
        raise ManifestError(f"no {Constants.PACKAGE_JSON_FILE} found in {directory}")
    logger.info("No lockfile found, scanning direct dependencies from %s", path)
    return InstallManifest(source=path, specs=parse_package_json(path))
