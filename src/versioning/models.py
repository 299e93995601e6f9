"""Data models for package references."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PackageRef:
    """A package name paired with a (possibly unresolved) version."""
    name: str
    version: str = ""

    @property
    def key(self) -> str:
        """Stable ``name@version`` key used for dedupe and verdict lookups."""
        return f"{self.name}@{self.version}"

    def __str__(self) -> str:
        return self.key
