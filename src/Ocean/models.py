"""Hydrostatic free-surface model and its time step."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

import numpy as np
from mpi4py import MPI

from .datastructures import LocalMetrics
from .errors import ConfigurationError
from .fields import Field, FieldSnapshot
from .free_surface import ExplicitFreeSurface, wall_conditions
from .grid import Center, Face
from .kernels import create_kernel
from .tasks import TaskGraph
from .timesteppers import QuasiAdamsBashforth2TimeStepper

log = logging.getLogger(__name__)

RESERVED_NAMES = ("u", "v", "eta")


@dataclass
class Clock:
    """Model time and iteration count."""

    time: float = 0.0
    iteration: int = 0

    def tick(self, dt: float):
        self.time += dt
        self.iteration += 1


class HydrostaticFreeSurfaceModel:
    """Horizontal velocities, tracers and a free surface on a distributed grid.

    Parameters
    ----------
    dgrid : DistributedGrid
        Distributed 3-D grid; the z axis must not be split.
    tracers : tuple of str
        Tracer names.
    free_surface : ExplicitFreeSurface or ImplicitFreeSurface, optional
        Defaults to ``ExplicitFreeSurface()``.
    closure : object, optional
        Exposes ``diffusive_tendency(name, field, grid)``.
    forcing : dict, optional
        Name to constant or ``f(model) -> array`` added to the tendency.
    tendencies : callable, optional
        ``f(model) -> {name: array}``; the advection/physics tendencies.
    chi : float
        AB2 off-centering after the first step.
    use_numba : bool
        Use the Numba kernels.
    """

    def __init__(
        self,
        dgrid,
        tracers=("c",),
        free_surface=None,
        closure=None,
        forcing: Optional[Mapping] = None,
        tendencies: Optional[Callable] = None,
        chi: float = 0.1,
        use_numba: bool = False,
        numba_threads: int = 1,
        max_workers: int = None,
    ):
        tracers = tuple(tracers)
        clashes = [name for name in tracers if name in RESERVED_NAMES]
        if clashes:
            raise ConfigurationError(f"Tracer names {clashes} clash with {RESERVED_NAMES}")

        self.dgrid = dgrid
        self.grid = dgrid.local_grid
        self.surface_dgrid = dgrid.surface()
        self.surface_grid = self.surface_dgrid.local_grid

        self.free_surface = free_surface if free_surface is not None else ExplicitFreeSurface()
        self.closure = closure
        self.forcing = dict(forcing or {})
        self.tendency_source = tendencies
        self.kernel = create_kernel(use_numba, numba_threads)
        self.clock = Clock()
        self.timeseries = LocalMetrics()

        self.velocities: Dict[str, Field] = {
            "u": dgrid.field((Face, Center, Center), name="u", **wall_conditions(self.grid, 0)),
            "v": dgrid.field((Center, Face, Center), name="v", **wall_conditions(self.grid, 1)),
        }
        self.tracers: Dict[str, Field] = {name: dgrid.field(name=name) for name in tracers}
        self.free_surface_state = self.free_surface.materialize(self)

        shapes = {name: self.grid.size for name in (*self.velocities, *self.tracers)}
        shapes.update({name: self.surface_grid.size for name in self.free_surface.prognostic_names})
        self.timestepper = QuasiAdamsBashforth2TimeStepper(shapes, chi=chi, kernel=self.kernel)

        self.task_graph = TaskGraph(max_workers=max_workers)

        if dgrid.rank == 0:
            log.info(f"{type(self).__name__}: {dgrid}, {self.free_surface}, tracers={tracers}")

    # =========================================================================
    # State
    # =========================================================================

    @property
    def fields(self) -> Dict[str, Field]:
        return {**self.velocities, **self.tracers, "eta": self.free_surface_state.eta}

    def set(self, **values):
        """Set interiors by name, then refresh every halo."""
        fields = self.fields
        for name, value in values.items():
            if name not in fields:
                raise ValueError(f"Unknown field {name!r}; expected one of {list(fields)}")
            fields[name].set(value)
        self.sync_halos()

    def sync_halos(self) -> float:
        elapsed = self.dgrid.sync_halos(*self.velocities.values(), *self.tracers.values())
        elapsed += self.surface_dgrid.sync_halos(self.free_surface_state.eta)
        return elapsed

    def snapshot(self) -> FieldSnapshot:
        return FieldSnapshot(
            self.fields, iteration=self.clock.iteration, time=self.clock.time, rank=self.dgrid.rank
        )

    def eta_volume(self) -> float:
        """Domain-integrated ``η`` (volume displaced by the free surface)."""
        eta = self.free_surface_state.eta
        return self.dgrid.allreduce_sum(float(np.sum(eta.interior)) * eta.grid.cell_area)

    # =========================================================================
    # Time stepping
    # =========================================================================

    def compute_tendencies(self):
        """Accumulate ``Gⁿ`` from external, forcing, closure and free-surface terms."""
        G = self.timestepper.tendencies.current

        if self.tendency_source is not None:
            for name, contribution in self.tendency_source(self).items():
                if name not in G:
                    raise ValueError(f"Tendency given for non-prognostic field {name!r}")
                G[name] += contribution

        for name, forcing in self.forcing.items():
            if name not in G:
                raise ValueError(f"Forcing given for non-prognostic field {name!r}")
            G[name] += forcing(self) if callable(forcing) else forcing

        if self.closure is not None:
            for name, field in (*self.velocities.items(), *self.tracers.items()):
                G[name] += self.closure.diffusive_tendency(name, field, self.grid)

        self.free_surface.compute_tendencies(self)

    def time_step(self, dt: float, euler: bool = None):
        """Advance the model by ``dt``.

        The first step is forward Euler unless ``euler`` says otherwise.
        If any stage fails (e.g. ``SolverConvergenceError`` from the implicit
        free surface) every prognostic field, both tendency sets and the
        clock are restored before the error propagates, so the caller may
        retry with a smaller ``dt``.
        """
        t0 = MPI.Wtime()
        if euler is None:
            euler = self.clock.iteration == 0
        chi = self.timestepper.chi_for(euler)

        saved_fields = {name: field.data.copy() for name, field in self.fields.items()}
        saved_tendencies = self.timestepper.tendencies.checkpoint()
        try:
            self._advance(dt, chi)
        except Exception:
            for name, field in self.fields.items():
                field.data[...] = saved_fields[name]
            self.timestepper.tendencies.restore(saved_tendencies)
            log.warning(
                f"rank {self.dgrid.rank}: step {self.clock.iteration + 1} failed, state restored"
            )
            raise

        self.clock.tick(dt)
        self.timeseries.step_times.append(MPI.Wtime() - t0)

    def _advance(self, dt: float, chi: float):
        self.timestepper.rotate()
        self.compute_tendencies()

        graph, stepper = self.task_graph, self.timestepper
        velocity_events = [
            graph.launch(stepper.step_field, field, name, dt, chi)
            for name, field in self.velocities.items()
        ]
        tracer_events = [
            graph.launch(stepper.step_field, field, name, dt, chi)
            for name, field in self.tracers.items()
        ]

        # Free surface needs fully updated velocities; tracers keep running
        try:
            graph.join(velocity_events)
            self.free_surface.step(self, dt, chi)
        finally:
            graph.wait(tracer_events)
        graph.join(tracer_events)

        self.free_surface.correct_velocities(self, dt)
        self.timeseries.halo_times.append(self.sync_halos())

    def close(self):
        self.task_graph.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
