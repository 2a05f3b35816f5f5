"""Tests for the kernel launch task graph."""

import threading
import time

import pytest

from Ocean import TaskGraph


def test_dependencies_run_first():
    order = []
    lock = threading.Lock()

    def record(name, delay=0.0):
        time.sleep(delay)
        with lock:
            order.append(name)

    with TaskGraph(max_workers=4) as graph:
        first = graph.launch(record, "first", delay=0.05)
        second = graph.launch(record, "second", dependencies=[first])
        graph.join([first, second])

    assert order == ["first", "second"]


def test_join_returns_results():
    with TaskGraph(max_workers=2) as graph:
        events = [graph.launch(pow, 2, n) for n in range(4)]
        assert graph.join(events) == [1, 2, 4, 8]


def test_join_reraises_after_all_finish():
    done = threading.Event()

    def fail():
        raise ValueError("boom")

    def slow():
        time.sleep(0.05)
        done.set()

    with TaskGraph(max_workers=2) as graph:
        events = [graph.launch(fail), graph.launch(slow)]
        with pytest.raises(ValueError, match="boom"):
            graph.join(events)
        assert done.is_set()


def test_failed_dependency_propagates():
    def fail():
        raise KeyError("missing")

    with TaskGraph(max_workers=2) as graph:
        bad = graph.launch(fail)
        dependent = graph.launch(lambda: "never", dependencies=[bad])
        with pytest.raises(KeyError):
            graph.join([dependent])


def test_wait_blocks_without_raising():
    def fail():
        time.sleep(0.05)
        raise ValueError("boom")

    with TaskGraph(max_workers=2) as graph:
        events = [graph.launch(fail), graph.launch(pow, 2, 3)]
        graph.wait(events)
        assert all(event.done() for event in events)
        with pytest.raises(ValueError, match="boom"):
            graph.join(events)
