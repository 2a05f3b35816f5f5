"""Kernel launches as futures with explicit dependencies.

A launched task first waits on the futures it depends on, then runs. The
executor queue is FIFO and dependencies are always launched before their
dependents, so waiting inside a worker cannot starve.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_all
from typing import Iterable


class TaskGraph:
    """Acyclic graph of kernel launches on a thread pool.

    Parameters
    ----------
    max_workers : int, optional
        Worker threads; defaults to the executor's choice.
    """

    def __init__(self, max_workers: int = None):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="ocean-task"
        )

    def launch(self, fn, *args, dependencies: Iterable[Future] = (), **kwargs) -> Future:
        """Submit ``fn(*args, **kwargs)`` to run after ``dependencies``."""
        deps = tuple(dependencies)

        def body():
            for dep in deps:
                dep.result()
            return fn(*args, **kwargs)

        return self._executor.submit(body)

    @staticmethod
    def join(events: Iterable[Future]) -> list:
        """Wait for every event; re-raise the first failure after all finish."""
        results, first_error = [], None
        for event in events:
            try:
                results.append(event.result())
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
        return results

    @staticmethod
    def wait(events: Iterable[Future]):
        """Block until every event has finished, without raising."""
        wait_all(list(events))

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
        return False
