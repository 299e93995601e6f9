"""Recognizes install commands and splits them into flags and packages."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Sequence

from constants import Constants


@dataclass
class InstallCommand:
    """A wrapped package manager invocation.

    ``argv`` is the original command line, starting with the manager name, and
    is what gets executed once the gate allows it.
    """

    manager: str
    action: str
    flags: List[str] = field(default_factory=list)
    packages: List[str] = field(default_factory=list)
    argv: List[str] = field(default_factory=list)

    @property
    def is_install(self) -> bool:
        """True when named packages are being added."""
        if self.action in Constants.MANIFEST_ONLY_ACTIONS.get(self.manager, []):
            return False
        return is_install_command(self.manager, self.action) and bool(self.packages)

    @property
    def is_manifest_install(self) -> bool:
        """True for a bare install that restores the project manifest."""
        return is_install_command(self.manager, self.action) and not self.packages


def is_install_command(manager: str, action: str) -> bool:
    """Return True if ``action`` installs packages for ``manager``."""
    return action in Constants.INSTALL_ACTIONS.get(manager, [])


def split_args(args: Sequence[str]):
    """Split arguments into flags (leading ``-``) and package specs."""
    flags = [a for a in args if a.startswith("-")]
    packages = [a for a in args if not a.startswith("-")]
    return flags, packages


def parse_command(argv: Sequence[str]) -> InstallCommand:
    """Parse ``[manager, action, args...]`` into an InstallCommand.

    The action is the first argument not starting with ``-``; flags given
    before it are kept with the other flags. A command with no such
    argument (``yarn --frozen-lockfile``) has an empty action.

    Raises:
        ValueError: If ``argv`` is empty.
    """
    if not argv:
        raise ValueError("no command provided")
    manager = os.path.basename(argv[0]).lower()
    leading = 1
    while leading < len(argv) and argv[leading].startswith("-"):
        leading += 1
    action = argv[leading] if leading < len(argv) else ""
    flags, packages = split_args(argv[leading + 1:])
    flags = list(argv[1:leading]) + flags
    return InstallCommand(
        manager=manager,
        action=action,
        flags=flags,
        packages=packages,
        argv=list(argv),
    )
