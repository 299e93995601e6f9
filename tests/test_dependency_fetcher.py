"""Tests for the concurrent dependency fetcher."""

import threading

import pytest

from common.deadline import Deadline
from common.errors import CancellationError, ResolutionError
from common.progress import ProgressCounter
from registry.fetcher import DependencyFetcher, VisitedSet
from registry.models import DependencyNode, flatten_dependency_tree
from versioning.models import PackageRef
from conftest import FakeRegistryClient


def _deadline(timeout=5.0):
    return Deadline(timeout, label="test")


class TestVisitedSet:

    def test_first_caller_wins(self):
        visited = VisitedSet()
        assert visited.check_and_mark("a@1.0.0") is True
        assert visited.check_and_mark("a@1.0.0") is False
        assert "a@1.0.0" in visited
        assert len(visited) == 1

    def test_concurrent_marking_admits_one_caller(self):
        visited = VisitedSet()
        winners = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            if visited.check_and_mark("same@1.0.0"):
                with lock:
                    winners.append(threading.current_thread().name)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(winners) == 1

    def test_tracks_resolution_and_failures(self):
        visited = VisitedSet()
        visited.resolve("foo@latest", "2.0.0")
        visited.fail("gone@1.0.0")
        assert visited.resolved_version("foo@latest") == "2.0.0"
        assert visited.resolved_version("bar@1.0.0") is None
        assert visited.failed("gone@1.0.0") is True
        assert visited.failed("foo@latest") is False


def test_flatten_dedupes_and_keeps_root_first():
    shared = DependencyNode("shared", "3.0.0")
    root = DependencyNode("app", "1.0.0", children={
        "left": DependencyNode("left", "1.0.0", children={"shared": shared}),
        "right": DependencyNode("right", "2.0.0", children={"shared": DependencyNode("shared", "3.0.0")}),
    })
    flat = flatten_dependency_tree(root)
    assert flat[0] == "app@1.0.0"
    assert sorted(flat) == ["app@1.0.0", "left@1.0.0", "right@2.0.0", "shared@3.0.0"]


def test_diamond_graph_fetches_shared_node_once(diamond_graph):
    client = FakeRegistryClient(diamond_graph)
    progress = ProgressCounter("fetched")
    fetcher = DependencyFetcher(client, max_in_flight=4, progress=progress)

    flat = fetcher.get_flattened_dependencies("app", "1.0.0", _deadline())

    assert set(flat) == {"app@1.0.0", "left@1.0.0", "right@2.0.0", "shared@3.0.0"}
    assert len(flat) == len(set(flat))
    assert client.calls["shared@3.0.0"] == 1
    assert progress.value == 4


def test_cycle_terminates():
    graph = {
        "a@1.0.0": {"b": "1.0.0"},
        "b@1.0.0": {"a": "^1.0.0"},
    }
    client = FakeRegistryClient(graph)
    fetcher = DependencyFetcher(client)

    flat = fetcher.get_flattened_dependencies("a", "1.0.0", _deadline())

    assert sorted(flat) == ["a@1.0.0", "b@1.0.0"]
    assert client.calls["a@1.0.0"] == 1
    assert client.calls["b@1.0.0"] == 1


def test_failing_child_is_omitted():
    graph = {
        "app@1.0.0": {"ok": "1.0.0", "broken": "1.0.0"},
        "ok@1.0.0": {},
    }
    client = FakeRegistryClient(graph, failing=["broken@1.0.0"])
    fetcher = DependencyFetcher(client)

    tree = fetcher.get_dependency_tree(PackageRef("app", "1.0.0"), _deadline())

    assert list(tree.children) == ["ok"]
    assert flatten_dependency_tree(tree) == ["app@1.0.0", "ok@1.0.0"]


def test_failing_root_is_fatal():
    client = FakeRegistryClient({}, failing=["lonely@1.0.0"])
    fetcher = DependencyFetcher(client)

    with pytest.raises(ResolutionError, match="lonely@1.0.0"):
        fetcher.get_flattened_dependencies("lonely", "1.0.0", _deadline())


def test_tag_dependency_appears_once_under_resolved_version():
    graph = {
        "app@1.0.0": {"foo": "*", "bar": "1.0.0"},
        "bar@1.0.0": {"foo": "*"},
        "foo@latest": {},
    }
    client = FakeRegistryClient(graph, resolved={"foo@latest": "2.0.0"})
    fetcher = DependencyFetcher(client)

    flat = fetcher.get_flattened_dependencies("app", "1.0.0", _deadline())

    assert sorted(flat) == ["app@1.0.0", "bar@1.0.0", "foo@2.0.0"]
    assert client.calls["foo@latest"] == 1


def test_stub_of_failed_dependency_is_dropped():
    graph = {
        "app@1.0.0": {"broken": "1.0.0", "mid": "1.0.0"},
        "mid@1.0.0": {"broken": "1.0.0"},
    }
    client = FakeRegistryClient(graph, failing=["broken@1.0.0"])
    fetcher = DependencyFetcher(client)

    flat = fetcher.get_flattened_dependencies("app", "1.0.0", _deadline())

    assert sorted(flat) == ["app@1.0.0", "mid@1.0.0"]


def test_each_root_gets_a_fresh_visited_set(diamond_graph):
    client = FakeRegistryClient(diamond_graph)
    progress = ProgressCounter("fetched")
    fetcher = DependencyFetcher(client, progress=progress)

    fetcher.get_flattened_dependencies("left", "1.0.0", _deadline())
    flat = fetcher.get_flattened_dependencies("app", "1.0.0", _deadline())

    # shared@3.0.0 was fetched for the first root and again for the second.
    assert client.calls["shared@3.0.0"] == 2
    assert "shared@3.0.0" in flat
    assert not hasattr(fetcher, "visited")


def test_repeat_runs_are_idempotent(diamond_graph):
    client = FakeRegistryClient(diamond_graph)
    fetcher = DependencyFetcher(client)

    first = fetcher.get_flattened_dependencies("app", "1.0.0", _deadline())
    second = fetcher.get_flattened_dependencies("app", "1.0.0", _deadline())

    assert set(first) == set(second)
    assert client.calls["app@1.0.0"] == 2


def test_dependency_specs_are_normalized():
    graph = {
        "app@1.0.0": {"star": "*", "caret": "^2.1.0"},
        "star@latest": {},
        "caret@2.1.0": {},
    }
    client = FakeRegistryClient(graph)
    fetcher = DependencyFetcher(client)

    flat = fetcher.get_flattened_dependencies("app", "1.0.0", _deadline())

    assert set(flat) == {"app@1.0.0", "star@latest", "caret@2.1.0"}


def test_deadline_expiry_cancels_fetch():
    graph = {"slow@1.0.0": {}}
    client = FakeRegistryClient(graph, blocking=["slow@1.0.0"])
    fetcher = DependencyFetcher(client)
    deadline = Deadline(0.2, label="slow")
    try:
        with pytest.raises(CancellationError):
            fetcher.get_flattened_dependencies("slow", "1.0.0", deadline)
        assert deadline.expired()
    finally:
        client.release.set()


def test_expired_deadline_raises_before_fetching():
    client = FakeRegistryClient({"app@1.0.0": {}})
    fetcher = DependencyFetcher(client)
    deadline = _deadline()
    deadline.cancel()

    with pytest.raises(CancellationError):
        fetcher.get_dependency_tree(PackageRef("app", "1.0.0"), deadline)
    assert client.calls["app@1.0.0"] == 0
