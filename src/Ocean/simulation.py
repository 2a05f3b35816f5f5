"""Simulation loop driving a model with output and diagnostics."""

from __future__ import annotations

import logging

from mpi4py import MPI

from .errors import ConfigurationError

log = logging.getLogger(__name__)


class Simulation:
    """Step a model until ``stop_iteration`` or ``stop_time``.

    Writers (``schedule``, ``write(snapshot)``) and diagnostics
    (``schedule``, ``run(model, snapshot)``) are actuated at iteration 0 and
    after every step, once the step's trailing halo exchange is done. Each
    actuation gets a snapshot that is released right after.
    """

    def __init__(self, model, dt: float, stop_iteration: int = None, stop_time: float = None,
                 output_writers=None, diagnostics=None):
        if stop_iteration is None and stop_time is None:
            raise ConfigurationError("Simulation needs stop_iteration or stop_time")
        self.model = model
        self.dt = dt
        self.stop_iteration = stop_iteration
        self.stop_time = stop_time
        self.output_writers = dict(output_writers or {})
        self.diagnostics = dict(diagnostics or {})
        self.wall_time = 0.0

    def _done(self) -> bool:
        clock = self.model.clock
        if self.stop_iteration is not None and clock.iteration >= self.stop_iteration:
            return True
        if self.stop_time is not None and clock.time >= self.stop_time - 1e-10 * self.dt:
            return True
        return False

    def _actuate(self):
        model = self.model
        due_diagnostics = [d for d in self.diagnostics.values() if d.schedule(model)]
        due_writers = [w for w in self.output_writers.values() if w.schedule(model)]
        if not due_diagnostics and not due_writers:
            return
        with model.snapshot() as snapshot:
            for diagnostic in due_diagnostics:
                diagnostic.run(model, snapshot)
            for writer in due_writers:
                writer.write(snapshot)

    def run(self):
        model = self.model
        t0 = MPI.Wtime()
        if model.clock.iteration == 0:
            model.timeseries.eta_volume.append(model.eta_volume())
            self._actuate()

        while not self._done():
            dt = self.dt
            if self.stop_time is not None:
                dt = min(dt, self.stop_time - model.clock.time)
            model.time_step(dt)
            model.timeseries.eta_volume.append(model.eta_volume())
            self._actuate()

        self.wall_time = MPI.Wtime() - t0
        if model.dgrid.rank == 0:
            log.info(
                f"Simulation done: iteration {model.clock.iteration}, "
                f"time {model.clock.time:.3g}, wall {self.wall_time:.3f}s"
            )
