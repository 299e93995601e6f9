"""Concurrent transitive dependency fetcher.

Each dependency edge is fetched by its own thread. A VisitedSet created per
root guarantees a ``name@version`` is fetched at most once, which also makes
cyclic graphs terminate. A bounded semaphore caps the number of registry
calls in flight regardless of graph width.
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol, Set

from constants import Constants
from common.deadline import Deadline
from common.errors import CancellationError, FetchError, ResolutionError
from common.logging_utils import extra_context, is_debug_enabled
from common.progress import ProgressCounter
from registry.models import DependencyNode, PackageManifest, flatten_dependency_tree
from versioning.models import PackageRef
from versioning.parser import normalize_version

logger = logging.getLogger(__name__)


class ManifestSource(Protocol):
    """Registry operations the fetcher depends on."""

    def fetch_manifest(self, ref: PackageRef, timeout: Optional[float] = None) -> PackageManifest:
        ...

    def get_latest_version(self, name: str, timeout: Optional[float] = None) -> str:
        ...


class VisitedSet:
    """Requested ``name@version`` keys seen while building one root's tree.

    Also remembers the concrete version each fetched key resolved to, and
    which keys failed to fetch, so stubs can be settled once the tree is built.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: Set[str] = set()
        self._resolved: Dict[str, str] = {}
        self._failed: Set[str] = set()

    def check_and_mark(self, key: str) -> bool:
        """Mark ``key`` visited; return True only for the first caller."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def resolve(self, key: str, version: str) -> None:
        with self._lock:
            self._resolved[key] = version

    def fail(self, key: str) -> None:
        with self._lock:
            self._failed.add(key)

    def resolved_version(self, key: str) -> Optional[str]:
        with self._lock:
            return self._resolved.get(key)

    def failed(self, key: str) -> bool:
        with self._lock:
            return key in self._failed

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


class _FetchTask(threading.Thread):
    """Runs one fetch in a daemon thread and keeps its result or error."""

    def __init__(self, target: Callable[[PackageRef, Deadline], DependencyNode],
                 ref: PackageRef, deadline: Deadline):
        super().__init__(daemon=True, name=f"fetch-{ref.key}")
        self._target = target
        self.ref = ref
        self._deadline = deadline
        self.result: Optional[DependencyNode] = None
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self.result = self._target(self.ref, self._deadline)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Handed to the joining parent, which decides what is recoverable.
            self.error = exc


class DependencyFetcher:
    """Builds the dependency tree of a root package and flattens it.

    Args:
        client: Registry client providing manifests and dist-tags.
        max_in_flight: Upper bound on concurrent registry calls.
        progress: Counter bumped once per manifest actually fetched.
    """

    def __init__(
        self,
        client: ManifestSource,
        max_in_flight: int = Constants.FETCH_MAX_IN_FLIGHT,
        progress: Optional[ProgressCounter] = None,
    ):
        self.client = client
        self.progress = progress
        self._in_flight = threading.BoundedSemaphore(max(1, max_in_flight))

    def get_dependency_tree(self, ref: PackageRef, deadline: Deadline) -> DependencyNode:
        """Fetch the full tree under ``ref`` within ``deadline``.

        The traversal runs in a background task so the caller can stop
        waiting as soon as the deadline passes. Every call starts from a
        fresh VisitedSet, so tasks left over from an abandoned root never
        touch the next one.

        Raises:
            ResolutionError: If the root's own manifest cannot be fetched.
            CancellationError: If the deadline expires before the tree is built.
        """
        visited = VisitedSet()
        task = _FetchTask(functools.partial(self._fetch_root, visited=visited), ref, deadline)
        task.start()
        task.join(timeout=deadline.remaining())
        if task.is_alive():
            deadline.cancel()
            raise CancellationError(f"dependency fetch for {ref.key} timed out")
        if task.error is not None:
            raise task.error
        return self._settle(task.result, visited)

    def get_flattened_dependencies(self, name: str, version: str, deadline: Deadline) -> List[str]:
        """Return ``name@version`` strings for the root and every transitive dependency."""
        tree = self.get_dependency_tree(PackageRef(name, version), deadline)
        return flatten_dependency_tree(tree)

    @staticmethod
    def _settle(root: DependencyNode, visited: VisitedSet) -> DependencyNode:
        """Give stubs the version their fetched twin resolved to; drop stubs of failed fetches."""
        for node in root.walk():
            children: Dict[str, DependencyNode] = {}
            for dep_name, child in node.children.items():
                if child.stub:
                    if visited.failed(child.key):
                        continue
                    child.version = visited.resolved_version(child.key) or child.version
                children[dep_name] = child
            node.children = children
        return root

    def _fetch_root(self, ref: PackageRef, deadline: Deadline, visited: VisitedSet) -> DependencyNode:
        try:
            return self._fetch(ref, deadline, visited)
        except FetchError as exc:
            raise ResolutionError(f"failed to fetch manifest of {ref.key}: {exc}") from exc

    def _fetch(self, ref: PackageRef, deadline: Deadline, visited: VisitedSet) -> DependencyNode:
        deadline.check()
        if not visited.check_and_mark(ref.key):
            return DependencyNode(name=ref.name, version=ref.version, stub=True)

        try:
            manifest = self._fetch_manifest(ref, deadline)
        except FetchError:
            visited.fail(ref.key)
            raise
        if self.progress is not None and not deadline.expired():
            self.progress.increment()

        version = manifest.version or ref.version
        visited.resolve(ref.key, version)
        node = DependencyNode(name=ref.name, version=version)
        if not manifest.dependencies:
            return node

        fetch_child = functools.partial(self._fetch, visited=visited)
        tasks: Dict[str, _FetchTask] = {}
        for dep_name, dep_spec in manifest.dependencies.items():
            deadline.check()
            child = PackageRef(dep_name, normalize_version(dep_spec))
            task = _FetchTask(fetch_child, child, deadline)
            task.start()
            tasks[dep_name] = task

        for task in tasks.values():
            task.join()

        for dep_name, task in tasks.items():
            if task.error is None:
                node.children[dep_name] = task.result
            elif isinstance(task.error, FetchError):
                logger.warning("Failed to fetch dependency %s: %s", task.ref.key, task.error)
            else:
                raise task.error
        return node

    def _fetch_manifest(self, ref: PackageRef, deadline: Deadline) -> PackageManifest:
        if not self._in_flight.acquire(timeout=deadline.remaining()):
            deadline.check()
            raise CancellationError(f"timed out waiting to fetch {ref.key}")
        try:
            deadline.check()
            if is_debug_enabled(logger):
                logger.debug(
                    "Fetching manifest",
                    extra=extra_context(event="fetch", component="fetcher", target=ref.key)
                )
            return self.client.fetch_manifest(ref, timeout=deadline.remaining())
        except FetchError:
            # A request cut short by the deadline is a cancellation, not a bad node.
            deadline.check()
            raise
        finally:
            self._in_flight.release()
