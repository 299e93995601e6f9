"""Token parsing utilities for package specs and version qualifiers."""

from typing import Tuple

from common.errors import PackageSpecError
from .models import PackageRef


def normalize_version(spec: str) -> str:
    """Strip simple range prefixes so the registry can be asked directly.

    ``^`` and ``~`` are dropped and a bare ``*`` becomes the ``latest``
    dist-tag. Anything else, compound ranges included, is returned unchanged
    and left for the registry to interpret.
    """
    if spec is None:
        return ""
    version = spec.strip()
    if version.startswith("^"):
        version = version[1:]
    if version.startswith("~"):
        version = version[1:]
    if version == "*":
        return "latest"
    return version


def parse_package_spec(token: str) -> Tuple[str, str]:
    """Split ``name@version`` into ``(name, version)``.

    Scoped npm names keep their leading ``@`` and must have the
    ``@scope/name`` shape. After the name, at most one ``@`` may follow.

    Raises:
        PackageSpecError: On empty input, a malformed scope or more than one
            version separator.
    """
    if token is None or not token.strip():
        raise PackageSpecError("package spec cannot be empty")
    token = token.strip()

    if token.startswith("@"):
        scope, _, rest = token[1:].partition("/")
        if not scope or not rest or rest.startswith("@"):
            raise PackageSpecError(f"invalid scoped package name in '{token}'")
        parts = rest.split("@")
        if len(parts) > 2:
            raise PackageSpecError(
                f"invalid format: expected '@scope/package' or '@scope/package@version', got '{token}'"
            )
        name = f"@{scope}/{parts[0].strip()}"
        return name, parts[1].strip() if len(parts) == 2 else ""

    parts = token.split("@")
    if len(parts) == 1:
        return parts[0].strip(), ""
    if len(parts) == 2:
        return parts[0].strip(), parts[1].strip()
    raise PackageSpecError(
        f"invalid format: expected 'package' or 'package@version', got '{token}'"
    )


def parse_package_ref(token: str) -> PackageRef:
    """Parse a spec token into a PackageRef without normalizing the version."""
    name, version = parse_package_spec(token)
    if not name:
        raise PackageSpecError(f"missing package name in '{token}'")
    return PackageRef(name=name, version=version)
