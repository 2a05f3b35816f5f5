"""Explicit and implicit free-surface variants.

Each variant exposes the same capabilities, dispatched once per time step
by the model:

- ``materialize(model)`` builds the ``FreeSurfaceState``
- ``compute_tendencies(model)`` adds free-surface terms to ``Gⁿ``
- ``step(model, dt, chi)`` advances ``η`` once velocities are updated
- ``correct_velocities(model, dt)`` applies the pressure-gradient correction
"""

from __future__ import annotations

import logging

from . import operators
from .boundary_conditions import Value
from .datastructures import SOLVER_METHODS
from .errors import ConfigurationError
from .fields import FreeSurfaceState
from .grid import Bounded, Center, Face
from .solvers import (
    DistributedFFTPoissonSolver,
    ImplicitFreeSurfaceOperator,
    PreconditionedConjugateGradientSolver,
)

log = logging.getLogger(__name__)

SIDES_BY_AXIS = {0: ("west", "east"), 1: ("south", "north")}


def wall_conditions(grid, axis: int) -> dict:
    """Zero normal flow on bounded faces of a face-located field."""
    if grid.topology[axis] is not Bounded:
        return {}
    return {side: Value(0.0) for side in SIDES_BY_AXIS[axis]}


def _materialize_state(model) -> FreeSurfaceState:
    sgrid = model.surface_dgrid
    grid = sgrid.local_grid
    return FreeSurfaceState(
        eta=sgrid.field(name="eta"),
        U=sgrid.field((Face, Center, Center), name="U", **wall_conditions(grid, 0)),
        V=sgrid.field((Center, Face, Center), name="V", **wall_conditions(grid, 1)),
    )


def compute_transport(model):
    """Fill ``U``, ``V`` with the depth-integrated transport and sync halos."""
    state = model.free_surface_state
    u, v = model.velocities["u"], model.velocities["v"]
    U, V = operators.barotropic_transport(u.interior, v.interior, model.grid)
    state.U.interior[...] = U
    state.V.interior[...] = V
    model.surface_dgrid.sync_halos(state.U, state.V)


def _pressure_gradient(model):
    """``(g ∂η/∂x, g ∂η/∂y)`` at the u and v faces, broadcast over depth."""
    eta = model.free_surface_state.eta
    grid = eta.grid
    dx, dy = grid.spacing[0], grid.spacing[1]
    g = model.free_surface.gravitational_acceleration
    gx = g * operators.delta(eta.data, grid, 0, forward=False) / dx
    gy = g * operators.delta(eta.data, grid, 1, forward=False) / dy
    return gx, gy


class ExplicitFreeSurface:
    """Free surface advanced by AB2 with its own tendency pair."""

    prognostic_names = ("eta",)

    def __init__(self, gravitational_acceleration: float = 9.81):
        self.gravitational_acceleration = gravitational_acceleration

    def materialize(self, model) -> FreeSurfaceState:
        return _materialize_state(model)

    def compute_tendencies(self, model):
        state = model.free_surface_state
        G = model.timestepper.tendencies.current
        area = state.eta.grid.cell_area

        compute_transport(model)
        G["eta"] -= operators.volume_flux_divergence(state.U.data, state.V.data, state.U.grid) / area

        gx, gy = _pressure_gradient(model)
        G["u"] -= gx
        G["v"] -= gy

    def step(self, model, dt: float, chi: float):
        model.timestepper.step_field(model.free_surface_state.eta, "eta", dt, chi)

    def correct_velocities(self, model, dt: float):
        pass

    def __repr__(self):
        return f"ExplicitFreeSurface(g={self.gravitational_acceleration})"


class ImplicitFreeSurface:
    """Free surface from an elliptic solve each step.

    Parameters
    ----------
    gravitational_acceleration : float
    solver_method : str
        ``"PreconditionedConjugateGradient"`` or ``"FFTBased"``.
    tolerance, max_iter :
        Passed to the conjugate-gradient solver.
    """

    prognostic_names = ()

    def __init__(
        self,
        gravitational_acceleration: float = 9.81,
        solver_method: str = "PreconditionedConjugateGradient",
        tolerance: float = 1e-10,
        max_iter: int = 500,
    ):
        if solver_method not in SOLVER_METHODS:
            raise ConfigurationError(
                f"Unknown solver method: {solver_method}. Use one of {SOLVER_METHODS}."
            )
        self.gravitational_acceleration = gravitational_acceleration
        self.solver_method = solver_method
        self.tolerance = tolerance
        self.max_iter = max_iter
        self.solver = None
        self._solver_dt = None

    def materialize(self, model) -> FreeSurfaceState:
        state = _materialize_state(model)
        state.x = model.surface_dgrid.field(name="eta_solution")
        return state

    def _get_solver(self, model, dt: float):
        """Build (or rebuild after a change of ``dt``) the elliptic solver."""
        if self.solver is not None and self._solver_dt == dt:
            return self.solver

        sgrid = model.surface_dgrid
        g, H = self.gravitational_acceleration, sgrid.full_grid.depth
        if self.solver_method == "FFTBased":
            self.solver = DistributedFFTPoissonSolver(sgrid, shift=1.0 / (g * H * dt**2))
        else:
            operator = ImplicitFreeSurfaceOperator(sgrid, g, dt, H, kernel=model.kernel)
            self.solver = PreconditionedConjugateGradientSolver(
                sgrid, operator, tolerance=self.tolerance, max_iter=self.max_iter
            )
        self._solver_dt = dt
        log.debug(f"Built {type(self.solver).__name__} for dt={dt}")
        return self.solver

    def compute_tendencies(self, model):
        pass

    def step(self, model, dt: float, chi: float):
        state = model.free_surface_state
        solver = self._get_solver(model, dt)
        area = state.eta.grid.cell_area

        model.dgrid.sync_halos(model.velocities["u"], model.velocities["v"])
        compute_transport(model)

        state.rhs = -operators.volume_flux_divergence(state.U.data, state.V.data, state.U.grid)
        state.rhs += area * state.eta.interior / dt

        state.x.interior[...] = 0.0
        if self.solver_method == "FFTBased":
            g, H = self.gravitational_acceleration, model.surface_dgrid.full_grid.depth
            solver.solve(-state.rhs / (g * H * dt * area), state.x)
        else:
            solver.solve(state.rhs, state.x)

        state.eta.interior[...] = state.x.interior
        model.timeseries.solver_iterations.append(solver.iterations)

    def correct_velocities(self, model, dt: float):
        eta = model.free_surface_state.eta
        model.surface_dgrid.sync_halos(eta)
        gx, gy = _pressure_gradient(model)
        model.velocities["u"].interior[...] -= dt * gx
        model.velocities["v"].interior[...] -= dt * gy

    def __repr__(self):
        return (
            f"ImplicitFreeSurface(g={self.gravitational_acceleration}, "
            f"solver_method={self.solver_method!r})"
        )
