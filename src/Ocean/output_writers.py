"""Output writers and diagnostics fed with scoped snapshots."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

log = logging.getLogger(__name__)


class IterationInterval:
    """Actuate every ``interval`` iterations (including iteration 0)."""

    def __init__(self, interval: int):
        if interval < 1:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval

    def __call__(self, model) -> bool:
        return model.clock.iteration % self.interval == 0


class TimeInterval:
    """Actuate each time model time crosses a multiple of ``interval``."""

    def __init__(self, interval: float):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self._next = 0.0

    def __call__(self, model) -> bool:
        # Tolerance absorbs round-off of accumulated dt
        if model.clock.time >= self._next - 1e-10 * self.interval:
            while self._next <= model.clock.time + 1e-10 * self.interval:
                self._next += self.interval
            return True
        return False


def _selected(snapshot, names):
    return names if names is not None else snapshot.names()


class NumpyArchiveWriter:
    """Write one ``.npz`` per rank per actuation.

    Files are named ``{prefix}_rank{rank}_iteration{iteration}.npz`` and
    hold interior copies plus ``time`` and ``iteration``.
    """

    def __init__(self, prefix, schedule, fields=None):
        self.prefix = Path(prefix)
        self.schedule = schedule
        self.fields = fields
        self.written = []

    def write(self, snapshot):
        self.prefix.parent.mkdir(parents=True, exist_ok=True)
        path = self.prefix.parent / (
            f"{self.prefix.name}_rank{snapshot.rank}_iteration{snapshot.iteration}.npz"
        )
        arrays = {name: np.array(snapshot[name]) for name in _selected(snapshot, self.fields)}
        np.savez(path, time=snapshot.time, iteration=snapshot.iteration, **arrays)
        self.written.append(path)
        log.debug(f"Wrote {path}")


class InMemoryWriter:
    """Keep interior copies in ``records`` (one dict per actuation)."""

    def __init__(self, schedule, fields=None):
        self.schedule = schedule
        self.fields = fields
        self.records = []

    def write(self, snapshot):
        record = {name: np.array(snapshot[name]) for name in _selected(snapshot, self.fields)}
        record["iteration"] = snapshot.iteration
        record["time"] = snapshot.time
        self.records.append(record)


class NaNChecker:
    """Raise ``FloatingPointError`` if any rank holds NaN or Inf.

    The check is a global reduction so that every rank raises together.
    """

    def __init__(self, schedule, fields=None):
        self.schedule = schedule
        self.fields = fields

    def run(self, model, snapshot):
        bad = [
            name
            for name in _selected(snapshot, self.fields)
            if not np.all(np.isfinite(snapshot[name]))
        ]
        if model.dgrid.allreduce_max(1.0 if bad else 0.0) > 0:
            where = f" (rank {snapshot.rank}: {bad})" if bad else ""
            raise FloatingPointError(
                f"NaN or Inf found at iteration {snapshot.iteration}, "
                f"time {snapshot.time}{where}"
            )
