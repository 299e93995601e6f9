"""Dependency graph data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator


@dataclass
class PackageManifest:
    """The part of a per-version registry manifest the fetcher needs."""
    name: str
    version: str
    dependencies: Dict[str, str] = field(default_factory=dict)


@dataclass
class DependencyNode:
    """One package version in a dependency tree.

    A node created for an already-visited key is a stub: it carries no
    children because the full subtree is represented elsewhere in the tree.
    """
    name: str
    version: str
    children: Dict[str, "DependencyNode"] = field(default_factory=dict)
    stub: bool = False

    @property
    def key(self) -> str:
        return f"{self.name}@{self.version}"

    def walk(self) -> Iterator["DependencyNode"]:
        """Yield this node and every descendant, depth first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(list(node.children.values())))


def flatten_dependency_tree(root: DependencyNode) -> list:
    """Serialize a tree into ``name@version`` strings with duplicates removed."""
    return list(dict.fromkeys(node.key for node in root.walk()))
