"""Client for the SafeDep Malysis malware analysis service.

Talks the Connect protocol's JSON encoding: every RPC is a POST of a JSON
message to ``{base}/{service}/{method}``. Credentials are an API key and a
tenant id, sent as headers on every request.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Optional

import requests

from constants import Constants
from common.errors import AnalysisError
from common.http_client import safe_post
from common.logging_utils import extra_context, is_debug_enabled, redact
from analysis.models import AnalysisReport

logger = logging.getLogger(__name__)


class MalysisClient:
    """Submits package versions for analysis and fetches their reports.

    Args:
        api_key: SafeDep API key.
        tenant_id: SafeDep tenant identifier.
        base_url: API root.
        timeout: Per-request timeout in seconds.
        poll_interval: Seconds between report polls while analysis runs.
        report_timeout: Give up polling after this many seconds.
    """

    def __init__(
        self,
        api_key: str,
        tenant_id: str,
        base_url: str = Constants.MALYSIS_API_URL,
        timeout: float = Constants.MALYSIS_REQUEST_TIMEOUT,
        poll_interval: float = Constants.MALYSIS_POLL_INTERVAL_SEC,
        report_timeout: float = Constants.MALYSIS_REPORT_TIMEOUT_SEC,
    ):
        if not api_key or not tenant_id:
            raise AnalysisError(
                f"{Constants.ENV_SAFEDEP_API_KEY} and {Constants.ENV_SAFEDEP_TENANT_ID} must be set"
            )
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.report_timeout = report_timeout
        self._headers = {
            "Authorization": api_key,
            "x-tenant-id": tenant_id,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        logger.debug("Malysis client for tenant %s using key %s", tenant_id, redact(api_key))

    @classmethod
    def from_config(cls, config: Any) -> "MalysisClient":
        """Create a client from a GateConfig, falling back to the environment."""
        return cls(
            api_key=getattr(config, "api_key", None) or os.environ.get(Constants.ENV_SAFEDEP_API_KEY, ""),
            tenant_id=getattr(config, "tenant_id", None) or os.environ.get(Constants.ENV_SAFEDEP_TENANT_ID, ""),
            base_url=getattr(config, "analysis_url", None) or Constants.MALYSIS_API_URL,
        )

    def _call(self, method: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """POST one RPC; ``timeout`` can only shorten the per-request timeout."""
        effective = self.timeout if timeout is None else min(self.timeout, timeout)
        if effective <= 0:
            raise AnalysisError(f"{method} skipped: no time left")
        url = f"{self.base_url}/{Constants.MALYSIS_SERVICE}/{method}"
        try:
            res = safe_post(url, context="malysis", data=json.dumps(payload),
                            fatal=False, timeout=effective, headers=self._headers)
        except requests.RequestException as exc:
            raise AnalysisError(f"{method} request failed: {exc}") from exc

        if res.status_code != 200:
            raise AnalysisError(f"{method} returned status {res.status_code}: {res.text[:200]}")
        try:
            body = json.loads(res.text) if res.text else {}
        except json.JSONDecodeError as exc:
            raise AnalysisError(f"{method} returned malformed JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise AnalysisError(f"{method} returned unexpected payload")
        return body

    def submit(self, ecosystem: str, name: str, version: str,
               timeout: Optional[float] = None) -> str:
        """Submit a package version for analysis and return the analysis id."""
        body = self._call("AnalyzePackage", {
            "target": {
                "packageVersion": {
                    "package": {"ecosystem": ecosystem, "name": name},
                    "version": version,
                }
            }
        }, timeout=timeout)
        analysis_id = body.get("analysisId")
        if not analysis_id:
            raise AnalysisError(f"no analysis id returned for {name}@{version}")
        return str(analysis_id)

    def get_report(self, analysis_id: str, timeout: Optional[float] = None) -> Optional[AnalysisReport]:
        """Poll for the report of ``analysis_id``.

        Returns None when the service has no report, or when the analysis has
        not completed before ``report_timeout`` or ``timeout``, whichever is
        shorter.
        """
        budget = self.report_timeout if timeout is None else min(self.report_timeout, timeout)
        give_up_at = time.monotonic() + budget
        while True:
            left = None if timeout is None else give_up_at - time.monotonic()
            if left is not None and left <= 0:
                logger.debug("No time left to poll analysis %s", analysis_id)
                return None
            body = self._call("GetAnalysisReport", {"analysisId": analysis_id}, timeout=left)
            status = body.get("status")
            if status in (None, Constants.MALYSIS_STATUS_COMPLETED):
                break
            if time.monotonic() + self.poll_interval > give_up_at:
                logger.debug("Analysis %s still %s after %ss", analysis_id, status, budget)
                return None
            if is_debug_enabled(logger):
                logger.debug(
                    "Analysis pending",
                    extra=extra_context(event="poll", component="malysis",
                                        target=analysis_id, status=status)
                )
            time.sleep(self.poll_interval)

        report = body.get("report")
        if not isinstance(report, dict):
            return None
        return AnalysisReport.from_dict(analysis_id, report)
