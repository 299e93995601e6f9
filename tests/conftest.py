"""Shared fakes for registry and analysis collaborators."""

import threading
import time
from collections import Counter
from typing import Dict, Iterable, Optional

import pytest

from analysis.models import AnalysisReport, Inference
from common.eventlog import close_event_log
from common.errors import AnalysisError, FetchError, ResolutionError
from registry.models import PackageManifest


class FakeRegistryClient:
    """In-memory registry keyed by ``name@version``.

    ``resolved`` maps a requested key such as ``foo@latest`` to the concrete
    version its manifest reports.
    """

    def __init__(self, graph: Dict[str, Dict[str, str]], latest: Optional[Dict[str, str]] = None,
                 failing: Iterable[str] = (), blocking: Iterable[str] = (),
                 resolved: Optional[Dict[str, str]] = None):
        self.graph = graph
        self.latest = latest or {}
        self.failing = set(failing)
        self.blocking = set(blocking)
        self.resolved = resolved or {}
        self.release = threading.Event()
        self.calls = Counter()
        self._lock = threading.Lock()

    def fetch_manifest(self, ref, timeout=None):
        with self._lock:
            self.calls[ref.key] += 1
        if ref.key in self.blocking:
            self.release.wait(timeout=5)
        if ref.key in self.failing or ref.key not in self.graph:
            raise FetchError(f"no manifest for {ref.key}")
        return PackageManifest(name=ref.name, version=self.resolved.get(ref.key, ref.version),
                               dependencies=dict(self.graph[ref.key]))

    def get_latest_version(self, name, timeout=None):
        if name not in self.latest:
            raise ResolutionError(f"no latest version found for package {name}")
        return self.latest[name]


class FakeAnalysisService:
    """Analysis service flagging a fixed set of keys.

    ``delay`` makes every submission take that many seconds.
    """

    def __init__(self, malicious: Optional[Dict[str, str]] = None,
                 failing: Iterable[str] = (), no_inference: Iterable[str] = (),
                 no_report: Iterable[str] = (), delay: float = 0.0):
        self.malicious = malicious or {}
        self.failing = set(failing)
        self.no_inference = set(no_inference)
        self.no_report = set(no_report)
        self.delay = delay
        self.submitted = []
        self.timeouts = []
        self._lock = threading.Lock()

    def submit(self, ecosystem, name, version, timeout=None):
        key = f"{name}@{version}"
        with self._lock:
            self.submitted.append(key)
            self.timeouts.append(timeout)
        if self.delay:
            time.sleep(self.delay)
        if key in self.failing:
            raise AnalysisError(f"submit failed for {key}")
        return key

    def get_report(self, analysis_id, timeout=None):
        if analysis_id in self.no_report:
            return None
        if analysis_id in self.no_inference:
            return AnalysisReport(analysis_id=analysis_id)
        if analysis_id in self.malicious:
            return AnalysisReport(analysis_id, Inference(True, self.malicious[analysis_id]))
        return AnalysisReport(analysis_id, Inference(False, "benign"))


@pytest.fixture(autouse=True)
def _detach_event_log():
    yield
    close_event_log()


@pytest.fixture
def diamond_graph():
    """app -> (left, right) -> shared."""
    return {
        "app@1.0.0": {"left": "^1.0.0", "right": "~2.0.0"},
        "left@1.0.0": {"shared": "3.0.0"},
        "right@2.0.0": {"shared": "3.0.0"},
        "shared@3.0.0": {},
    }
