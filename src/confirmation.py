"""Interactive confirmation before installing flagged packages."""

from __future__ import annotations

import logging
import sys
from typing import Mapping, Optional, TextIO

logger = logging.getLogger(__name__)

AFFIRMATIVE = ("y", "yes")


def confirm_installation(
    malicious: Mapping[str, str],
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> bool:
    """Print every flagged package and ask whether to install anyway.

    Only ``y`` or ``yes`` (case-insensitive, surrounding whitespace ignored)
    confirms. End of input or a read error counts as a refusal.
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    stdout.write(f"\nWARNING: {len(malicious)} potentially malicious packages detected!\n")
    stdout.write("The following packages have been flagged:\n")
    for key in sorted(malicious):
        stdout.write(f"- {key}: {malicious[key]}\n")
    stdout.write("\nDo you want to continue with installation? (y/N): ")
    stdout.flush()

    try:
        response = stdin.readline()
    except (OSError, ValueError) as exc:
        logger.error("Failed to read user input: %s", exc)
        return False
    if not response:
        logger.error("Failed to read user input: end of input")
        return False

    return response.strip().lower() in AFFIRMATIVE
