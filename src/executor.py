"""Runs the real package manager binary with the user's arguments."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import List, Optional, Sequence

from common.errors import ExecutorError

logger = logging.getLogger(__name__)


def shell_exit_code(returncode: int) -> int:
    """Map a subprocess return code to the status a shell would report."""
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


class CommandExecutor:
    """Executes a package manager command with inherited standard I/O."""

    def __init__(self, env: Optional[dict] = None):
        self._env = env

    def resolve_executable(self, name: str) -> str:
        """Locate ``name`` on PATH.

        Raises:
            ExecutorError: If the binary cannot be found.
        """
        path = shutil.which(name)
        if path is None:
            raise ExecutorError(f"{name} not found in PATH", returncode=127)
        return path

    def run(self, argv: Sequence[str]) -> int:
        """Run ``argv`` and return 0.

        Raises:
            ExecutorError: If the binary is missing, cannot be started, or
                exits non-zero. ``returncode`` holds the shell exit status.
        """
        if not argv:
            raise ExecutorError("no command to execute", returncode=2)
        executable = self.resolve_executable(argv[0])
        final_cmd: List[str] = [executable] + list(argv[1:])

        env = os.environ.copy()
        if self._env:
            env.update(self._env)

        logger.info("Running: %s", " ".join(argv))
        try:
            result = subprocess.run(final_cmd, env=env)  # noqa: S603
        except OSError as exc:
            raise ExecutorError(f"failed to execute {argv[0]}: {exc}", returncode=126) from exc

        code = shell_exit_code(result.returncode)
        if code != 0:
            raise ExecutorError(f"{argv[0]} exited with status {code}", returncode=code)
        return code
