"""Logging helpers: configuration, structured context and timing.

Modules log through ``logging.getLogger(__name__)``; DEBUG traces attach
structured fields via ``extra=extra_context(...)`` so a file handler or a
JSON formatter can pick them up without changing call sites.
"""
from __future__ import annotations

import logging
import os
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from constants import Constants

_SENSITIVE_KEYS = re.compile(r"(token|key|secret|password|auth)", re.IGNORECASE)
_REDACTED = "[REDACTED]"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once.

    The level comes from ``level``, then ``INSTALLGATE_LOG_LEVEL``, then INFO.
    Calling again only adjusts the level.
    """
    level_name = (level or os.environ.get(Constants.LOG_LEVEL_ENV) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level_value)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when ``logger`` would emit DEBUG records."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra=`` mapping, dropping fields whose value is None."""
    return {k: v for k, v in fields.items() if v is not None}


def redact(value: str) -> str:
    """Mask all but the last four characters of a secret."""
    if not value:
        return value
    if len(value) <= 4:
        return _REDACTED
    return _REDACTED + value[-4:]


def safe_url(url: str) -> str:
    """Strip credentials and sensitive query parameters from a URL for logs."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc
    if "@" in netloc:
        netloc = _REDACTED + "@" + netloc.split("@", 1)[1]
    query = urlencode([
        (k, _REDACTED if _SENSITIVE_KEYS.search(k) else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ])
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring wall time in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.monotonic()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.monotonic()

    def duration_ms(self) -> int:
        end = self._end if self._end is not None else time.monotonic()
        return int((end - self._start) * 1000)
