"""Shared HTTP helpers used by the registry and analysis clients.

Encapsulates common request/timeout error handling so modules avoid
duplicating try/except blocks. With ``fatal=True`` a transport failure ends
the process with ``ExitCodes.CONNECTION_ERROR``; with ``fatal=False`` the
``requests`` exception is re-raised for the caller to map onto its own error.
"""
from __future__ import annotations

import logging
import sys
from typing import Any, Optional

import requests

from constants import Constants, ExitCodes
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def _request(
    method: str,
    url: str,
    *,
    context: str,
    fatal: bool,
    timeout: Optional[float],
    **kwargs: Any,
) -> requests.Response:
    safe_target = safe_url(url)
    effective_timeout = timeout if timeout is not None else Constants.REQUEST_TIMEOUT
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action=method,
                    target=safe_target,
                    context=context
                )
            )
        try:
            res = requests.request(method, url, timeout=effective_timeout, **kwargs)
        except requests.Timeout:
            if fatal:
                logger.error(
                    "%s request timed out after %s seconds",
                    context,
                    effective_timeout,
                )
                sys.exit(ExitCodes.CONNECTION_ERROR.value)
            raise
        except requests.RequestException as exc:  # includes ConnectionError
            if fatal:
                logger.error("%s connection error: %s", context, exc)
                sys.exit(ExitCodes.CONNECTION_ERROR.value)
            raise
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action=method,
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context
                )
            )
        return res


def safe_get(
    url: str,
    *,
    context: str,
    fatal: bool = True,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> requests.Response:
    """Perform a GET request with consistent error handling and DEBUG traces.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "npm").
        fatal: Exit the process on transport errors instead of raising.
        timeout: Seconds before giving up; defaults to Constants.REQUEST_TIMEOUT.
        **kwargs: Passed through to requests.

    Returns:
        requests.Response: The HTTP response object.
    """
    return _request("GET", url, context=context, fatal=fatal, timeout=timeout, **kwargs)


def safe_post(
    url: str,
    *,
    context: str,
    data: Optional[str] = None,
    fatal: bool = True,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> requests.Response:
    """Perform a POST request with consistent error handling and DEBUG traces.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "malysis").
        data: Optional payload for the POST body.
        fatal: Exit the process on transport errors instead of raising.
        timeout: Seconds before giving up; defaults to Constants.REQUEST_TIMEOUT.
        **kwargs: Passed through to requests.

    Returns:
        requests.Response: The HTTP response object.
    """
    return _request("POST", url, context=context, fatal=fatal, timeout=timeout, data=data, **kwargs)
