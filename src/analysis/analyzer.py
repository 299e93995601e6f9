"""Per-package malware analysis and verdict aggregation."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from constants import Constants
from common.deadline import Deadline
from common.errors import AnalysisError, PackageSpecError
from common.progress import ProgressCounter
from analysis.models import AnalysisReport, AnalysisVerdict
from versioning.parser import parse_package_ref

logger = logging.getLogger(__name__)


class AnalysisService(Protocol):
    """The remote malware analysis capability."""

    def submit(self, ecosystem: str, name: str, version: str,
               timeout: Optional[float] = None) -> str:
        ...

    def get_report(self, analysis_id: str, timeout: Optional[float] = None) -> Optional[AnalysisReport]:
        ...


class MaliciousRegistry:
    """``name@version`` -> summary for every package flagged in one invocation.

    Shared by all roots of a command. Entries are never overwritten.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, str] = {}

    def record(self, key: str, summary: str) -> bool:
        """Store ``summary`` for ``key``; return False if it was already present."""
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = summary
            return True

    def items(self) -> List[Tuple[str, str]]:
        with self._lock:
            return list(self._entries.items())

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def as_dict(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PackageAnalyser:
    """Work-queue handler submitting each ``name@version`` for analysis.

    Service failures leave the item unverified; they are logged at DEBUG
    and never abort the scan.
    """

    def __init__(
        self,
        client: AnalysisService,
        registry: Optional[MaliciousRegistry] = None,
        ecosystem: str = Constants.MALYSIS_ECOSYSTEM_NPM,
        progress: Optional[ProgressCounter] = None,
        trusted: Iterable[str] = (),
    ):
        self.client = client
        self.registry = registry if registry is not None else MaliciousRegistry()
        self.ecosystem = ecosystem
        self.progress = progress
        self.trusted = frozenset(trusted)
        self.verdicts: List[AnalysisVerdict] = []
        self._verdicts_lock = threading.Lock()
        self._cancelled = threading.Event()
        self._deadline: Optional[Deadline] = None

    def cancel(self) -> None:
        """Drain remaining items without calling the service."""
        self._cancelled.set()

    def resume(self, deadline: Optional[Deadline] = None) -> None:
        """Accept work again; service calls are capped by ``deadline`` if given."""
        self._deadline = deadline
        self._cancelled.clear()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def handle(self, item: str) -> Optional[AnalysisVerdict]:
        """Analyse one ``name@version`` string."""
        try:
            return self._analyse(item)
        finally:
            if self.progress is not None:
                self.progress.increment()

    def _analyse(self, item: str) -> Optional[AnalysisVerdict]:
        deadline = self._deadline
        if self._cancelled.is_set() or (deadline is not None and deadline.expired()):
            return None
        try:
            ref = parse_package_ref(item)
        except PackageSpecError as exc:
            logger.error("Error while parsing package %s: %s", item, exc)
            return None

        if ref.key in self.trusted:
            logger.debug("Skipping trusted package %s", ref.key)
            return None

        try:
            analysis_id = self.client.submit(self.ecosystem, ref.name, ref.version,
                                             timeout=_remaining(deadline))
            report = self.client.get_report(analysis_id, timeout=_remaining(deadline))
        except AnalysisError as exc:
            logger.debug("Failed to analyze %s: %s", ref.key, exc)
            return None

        if report is None:
            logger.debug("Empty report received for %s", ref.key)
            return None
        if report.inference is None:
            logger.debug("No inference data for %s", ref.key)
            return None

        logger.info("Inference for %s: isMalware=%s", ref.key, report.inference.is_malicious)
        verdict = AnalysisVerdict(
            ref=ref,
            is_malicious=report.inference.is_malicious,
            summary=report.inference.summary,
        )
        if verdict.is_malicious:
            self.registry.record(ref.key, verdict.summary)
        with self._verdicts_lock:
            self.verdicts.append(verdict)
        return verdict


def _remaining(deadline: Optional[Deadline]) -> Optional[float]:
    return None if deadline is None else deadline.remaining()
