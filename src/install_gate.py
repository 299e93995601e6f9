"""Install gate: scan every requested package, then allow or block the install.

For each root package on the command line the gate resolves its version,
fetches the transitive dependency graph, and pushes every ``name@version``
through the analysis queue. Once all roots are done it either runs the
original command (nothing flagged, or the user confirmed) or blocks it.
A bare install with no package names scans the project manifest instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from constants import Constants, ExitCodes, RegistryType
from common import eventlog
from common.deadline import Deadline
from common.errors import (
    CancellationError,
    ManifestError,
    PackageSpecError,
    ResolutionError,
    UserDeclined,
)
from common.progress import ProgressCounter
from analysis.analyzer import AnalysisService, MaliciousRegistry, PackageAnalyser
from analysis.work_queue import WorkQueue
from confirmation import confirm_installation
from executor import CommandExecutor
from package_managers import InstallCommand
from registry.factory import create_fetcher
from registry.fetcher import DependencyFetcher
from registry.npm.lockfile_parser import InstallManifest, load_install_manifest
from versioning.models import PackageRef
from versioning.parser import parse_package_spec
from versioning.resolver import resolve_version

logger = logging.getLogger(__name__)

_ROOT_FAILURES = (PackageSpecError, ResolutionError, CancellationError)


class GateState(Enum):
    """States of the install gate."""

    IDLE = "idle"
    SCANNING = "scanning"
    AGGREGATING = "aggregating"
    FLAGGED = "flagged"
    CLEAN = "clean"
    BLOCKED = "blocked"
    ERROR = "error"


@dataclass
class GateConfig:
    """Tunables for one gate run."""

    fail_fast: bool = True
    scan_timeout: float = float(Constants.SCAN_TIMEOUT_SEC)
    request_timeout: float = float(Constants.REQUEST_TIMEOUT)
    max_in_flight: int = Constants.FETCH_MAX_IN_FLIGHT
    queue_capacity: int = Constants.ANALYSIS_QUEUE_CAPACITY
    workers: int = Constants.ANALYSIS_WORKERS
    registry_url: Optional[str] = None
    dry_run: bool = False
    insecure_installation: bool = False
    trusted_packages: List[str] = field(default_factory=list)
    api_key: Optional[str] = None
    tenant_id: Optional[str] = None
    analysis_url: Optional[str] = None
    project_dir: Optional[str] = None
    event_log: Optional[str] = None


@dataclass
class ScanSession:
    """Bookkeeping for one root package."""

    spec: str
    ref: Optional[PackageRef] = None
    dependencies: List[str] = field(default_factory=list)
    flagged: List[str] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def state(self) -> GateState:
        if self.error is not None:
            return GateState.ERROR
        return GateState.FLAGGED if self.flagged else GateState.CLEAN


@dataclass
class GateOutcome:
    """Result of a gate run."""

    state: GateState
    exit_code: int
    malicious: Dict[str, str] = field(default_factory=dict)
    sessions: List[ScanSession] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)
    executed: bool = False


FetcherFactory = Callable[..., DependencyFetcher]
ConfirmFn = Callable[[Mapping[str, str]], bool]
ManifestLoader = Callable[[str, Optional[str]], InstallManifest]


class InstallGate:
    """Sequences resolution, fetch, analysis, confirmation and execution.

    Args:
        command: The parsed install command.
        analysis_client: Remote malware analysis service.
        config: Gate tunables; defaults apply when omitted.
        fetcher_factory: Builds the dependency fetcher for the manager.
        executor: Runs the real package manager.
        confirm: Asks the user whether to proceed with flagged packages.
        fetch_progress: Counter for fetched manifests.
        analysis_progress: Counter for analysed packages.
        manifest_loader: Reads the project manifest for a bare install.
    """

    def __init__(
        self,
        command: InstallCommand,
        analysis_client: AnalysisService,
        *,
        config: Optional[GateConfig] = None,
        fetcher_factory: FetcherFactory = create_fetcher,
        executor: Optional[CommandExecutor] = None,
        confirm: ConfirmFn = confirm_installation,
        fetch_progress: Optional[ProgressCounter] = None,
        analysis_progress: Optional[ProgressCounter] = None,
        manifest_loader: ManifestLoader = load_install_manifest,
    ):
        self.command = command
        self.config = config or GateConfig()
        self.analysis_client = analysis_client
        self.fetcher_factory = fetcher_factory
        self.executor = executor or CommandExecutor()
        self.confirm = confirm
        self.fetch_progress = fetch_progress or ProgressCounter("fetched")
        self.analysis_progress = analysis_progress or ProgressCounter("analyzed")
        self.manifest_loader = manifest_loader
        self.registry = MaliciousRegistry()
        self.sessions: List[ScanSession] = []
        self.state = GateState.IDLE
        self.history: List[GateState] = [GateState.IDLE]

    def _transition(self, state: GateState) -> None:
        logger.debug("Gate %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def run(self) -> GateOutcome:
        """Scan every root package and act on the aggregated verdicts.

        A bare install scans the project manifest instead: lockfile entries
        are analysed as they are, package.json dependencies are scanned like
        command-line roots.

        Raises:
            ExecutorError: If the package manager is missing or fails.
        """
        fetcher = self.fetcher_factory(
            self.command.manager,
            registry_url=self.config.registry_url,
            request_timeout=self.config.request_timeout,
            max_in_flight=self.config.max_in_flight,
            progress=self.fetch_progress,
        )
        analyser = PackageAnalyser(
            self.analysis_client,
            registry=self.registry,
            progress=self.analysis_progress,
            trusted=self.config.trusted_packages,
        )
        queue: WorkQueue[str] = WorkQueue(
            analyser.handle,
            capacity=self.config.queue_capacity,
            workers=self.config.workers,
            name="analysis",
        )

        errors: List[Exception] = []
        roots = list(self.command.packages)
        queue.start()
        try:
            if self.command.is_manifest_install:
                manifest = self._load_manifest(errors)
                roots = manifest.specs if manifest is not None else []
                if manifest is not None and manifest.resolved:
                    self._guarded(manifest.source, errors, self._scan_locked,
                                  manifest.resolved, analyser, queue)
            for spec in roots:
                if errors and self.config.fail_fast:
                    break
                self._guarded(spec, errors, self._scan_root, fetcher, analyser, queue)
        finally:
            queue.stop()

        if errors:
            self._transition(GateState.ERROR)
            return self._outcome(ExitCodes.GENERAL_ERROR.value, errors=errors)
        return self._decide()

    def _guarded(self, spec: str, errors: List[Exception], scan: Callable[..., None], *args: Any) -> None:
        """Run one scan in its own session, recording a root failure instead of raising it."""
        session = ScanSession(spec=spec)
        self.sessions.append(session)
        try:
            scan(session, *args)
        except _ROOT_FAILURES as exc:
            session.error = exc
            errors.append(exc)
            logger.error("Scan of %s failed: %s", spec, exc)

    def _load_manifest(self, errors: List[Exception]) -> Optional[InstallManifest]:
        try:
            manifest = self.manifest_loader(self.command.manager, self.config.project_dir)
        except ManifestError as exc:
            errors.append(exc)
            logger.error("Cannot scan project dependencies: %s", exc)
            return None
        if manifest.empty:
            logger.info("No dependencies declared in %s", manifest.source)
        return manifest

    def _scan_root(
        self,
        session: ScanSession,
        fetcher: DependencyFetcher,
        analyser: PackageAnalyser,
        queue: "WorkQueue[str]",
    ) -> None:
        self._transition(GateState.SCANNING)
        deadline = Deadline(self.config.scan_timeout, label=session.spec)
        self.fetch_progress.reset(label=f"Scanning {session.spec}")

        name, raw_version = parse_package_spec(session.spec)
        version = resolve_version(fetcher.client, name, raw_version, timeout=deadline.remaining())
        session.ref = PackageRef(name, version)

        deps = fetcher.get_flattened_dependencies(name, version, deadline)
        logger.info("Resolved %d packages for %s", len(deps), session.ref.key)
        self._analyse(session, deps, analyser, queue, deadline)

    def _scan_locked(
        self,
        session: ScanSession,
        deps: List[str],
        analyser: PackageAnalyser,
        queue: "WorkQueue[str]",
    ) -> None:
        self._transition(GateState.SCANNING)
        deadline = Deadline(self.config.scan_timeout, label=session.spec)
        logger.info("Scanning %d locked packages from %s", len(deps), session.spec)
        self._analyse(session, deps, analyser, queue, deadline)

    def _analyse(
        self,
        session: ScanSession,
        deps: List[str],
        analyser: PackageAnalyser,
        queue: "WorkQueue[str]",
        deadline: Deadline,
    ) -> None:
        """Push ``deps`` through the analysis queue; the whole drain shares ``deadline``.

        Raises:
            CancellationError: If queuing or draining outlives the deadline.
        """
        session.dependencies = deps
        self.analysis_progress.add_total(len(deps))
        analyser.resume(deadline)
        for dep in deps:
            if not queue.add(dep, timeout=deadline.remaining()):
                self._abort(analyser, queue)
                raise CancellationError(f"analysis of {session.spec} exceeded the scan deadline")
        if not queue.wait(timeout=deadline.remaining()):
            self._abort(analyser, queue)
            raise CancellationError(f"analysis of {session.spec} exceeded the scan deadline")

        session.flagged = [dep for dep in deps if dep in self.registry]
        self._transition(GateState.AGGREGATING)

    @staticmethod
    def _abort(analyser: PackageAnalyser, queue: "WorkQueue[str]") -> None:
        # Queued items drain without service calls; in-flight calls are capped by the deadline.
        analyser.cancel()
        queue.wait()

    def _decide(self) -> GateOutcome:
        malicious = self.registry.as_dict()
        if malicious:
            self._transition(GateState.FLAGGED)
            if self.config.insecure_installation:
                logger.warning("Insecure installation enabled, skipping confirmation for %d flagged packages",
                               len(malicious))
                self._log_flagged(eventlog.log_malware_confirmed, malicious, reason="insecure_installation")
            elif self.confirm(malicious):
                logger.warning("Continuing installation despite security warnings...")
                self._log_flagged(eventlog.log_malware_confirmed, malicious)
            else:
                self._transition(GateState.BLOCKED)
                logger.info("Installation canceled due to security concerns")
                self._log_flagged(eventlog.log_malware_blocked, malicious)
                return self._outcome(
                    ExitCodes.INSTALL_BLOCKED.value,
                    errors=[UserDeclined("installation canceled due to security concerns")],
                )

        self._transition(GateState.CLEAN)
        if self.config.dry_run:
            logger.info("Dry run, not executing: %s", " ".join(self.command.argv))
            return self._outcome(ExitCodes.SUCCESS.value)

        scanned = sum(len(session.dependencies) for session in self.sessions)
        eventlog.log_install_allowed(" ".join(self.command.argv), scanned, RegistryType.NPM.value)
        code = self.executor.run(self.command.argv)
        return self._outcome(code, executed=True)

    @staticmethod
    def _log_flagged(log_fn: Callable[..., None], malicious: Mapping[str, str], **kwargs: Any) -> None:
        for key, summary in malicious.items():
            name, version = _split_key(key)
            log_fn(name, version, summary, RegistryType.NPM.value, **kwargs)

    def _outcome(self, exit_code: int, errors: Optional[List[Exception]] = None,
                 executed: bool = False) -> GateOutcome:
        return GateOutcome(
            state=self.state,
            exit_code=exit_code,
            malicious=self.registry.as_dict(),
            sessions=list(self.sessions),
            errors=list(errors or []),
            executed=executed,
        )


def _split_key(key: str) -> Tuple[str, str]:
    """``@scope/name@1.0.0`` -> ``("@scope/name", "1.0.0")``."""
    name, _, version = key.rpartition("@")
    return name, version
