"""Append-only audit log of install decisions.

Each event is one JSON object per line, written through a dedicated logger
that does not propagate to the console handlers.
"""
from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

EVENT_LOGGER_NAME = "installgate.events"

MALWARE_BLOCKED = "malware_blocked"
MALWARE_CONFIRMED = "malware_confirmed"
INSTALL_ALLOWED = "install_allowed"

_event_logger = logging.getLogger(EVENT_LOGGER_NAME)
_event_logger.propagate = False
_event_logger.setLevel(logging.INFO)


def configure_event_log(path: str) -> None:
    """Send events to ``path``, replacing any previously configured file."""
    close_event_log()
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    _event_logger.addHandler(file_handler)


def close_event_log() -> None:
    for handler in list(_event_logger.handlers):
        _event_logger.removeHandler(handler)
        handler.close()


def log_event(
    event_type: str,
    message: str,
    package: Optional[str] = None,
    version: Optional[str] = None,
    ecosystem: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Write one event record; a no-op until an event log is configured."""
    if not _event_logger.handlers:
        return
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "message": message,
    }
    if package:
        record["package_name"] = package
    if version:
        record["version"] = version
    if ecosystem:
        record["ecosystem"] = ecosystem
    if details:
        record["details"] = details
    _event_logger.info(json.dumps(record, sort_keys=True))


def log_malware_blocked(package: str, version: str, summary: str, ecosystem: str) -> None:
    log_event(MALWARE_BLOCKED, f"Blocked installation of {package}@{version}",
              package=package, version=version, ecosystem=ecosystem,
              details={"summary": summary})


def log_malware_confirmed(package: str, version: str, summary: str, ecosystem: str,
                          reason: str = "user_confirmed") -> None:
    log_event(MALWARE_CONFIRMED, f"Installing flagged package {package}@{version}",
              package=package, version=version, ecosystem=ecosystem,
              details={"summary": summary, "reason": reason})


def log_install_allowed(command: str, scanned: int, ecosystem: str) -> None:
    log_event(INSTALL_ALLOWED, f"Running {command}", ecosystem=ecosystem,
              details={"scanned": scanned})
