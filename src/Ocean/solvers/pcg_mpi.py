"""Matrix-free preconditioned conjugate gradient over distributed fields.

The operator exchanges halos of its argument before every application and
inner products are global ``Allreduce`` sums, so every rank runs the same
number of iterations.
"""

from __future__ import annotations

import logging
import threading

import numpy as np

from ..errors import SolverConvergenceError
from ..fields import Field
from ..grid import Flat
from ..kernels import NumPyKernel
from .base import BaseSolver

log = logging.getLogger(__name__)


class ImplicitFreeSurfaceOperator:
    """Volume-scaled implicit free-surface operator.

    ``M η = (A/Δt) η − g Δt H A ∇²η`` with ``A = Δx Δy`` the cell area and
    ``H`` the water-column depth. Symmetric positive definite for ``Δt > 0``.

    Parameters
    ----------
    dgrid : DistributedGrid
        Distributed surface grid.
    gravitational_acceleration : float
    dt : float
    depth : float
    kernel : NumPyKernel or NumbaKernel, optional
    """

    def __init__(self, dgrid, gravitational_acceleration: float, dt: float, depth: float, kernel=None):
        self.dgrid = dgrid
        self.grid = dgrid.local_grid
        self.g = gravitational_acceleration
        self.dt = dt
        self.depth = depth
        self.kernel = kernel or NumPyKernel()
        self.area = self.grid.cell_area

    @property
    def mass(self) -> float:
        return self.area / self.dt

    @property
    def stiffness(self) -> float:
        return self.g * self.dt * self.depth * self.area

    def apply(self, field: Field) -> np.ndarray:
        self.dgrid.sync_halos(field)
        lap = self.kernel.laplacian(field.data, field.grid)
        return self.mass * field.interior - self.stiffness * lap

    def diagonal(self) -> np.ndarray:
        coupling = sum(
            2.0 / d**2
            for d, t in zip(self.grid.spacing, self.grid.topology)
            if t is not Flat
        )
        return np.full(self.grid.size, self.mass + self.stiffness * coupling)


class DiagonalPreconditioner:
    """Jacobi preconditioner ``z = r / diag(M)``."""

    def __init__(self, diagonal: np.ndarray):
        self.inverse_diagonal = 1.0 / diagonal

    def precondition(self, r: np.ndarray) -> np.ndarray:
        return self.inverse_diagonal * r


class PreconditionedConjugateGradientSolver(BaseSolver):
    """Preconditioned CG for symmetric positive-definite operators.

    Parameters
    ----------
    dgrid : DistributedGrid
        Grid of the unknown.
    operator : object
        Exposes ``apply(field) -> ndarray`` and ``diagonal()``.
    preconditioner : object, optional
        Exposes ``precondition(r) -> ndarray``; defaults to Jacobi.
    tolerance : float
        Relative tolerance on ``||b − M x|| / ||b||``.
    max_iter : int
        Iteration cap; exceeding it raises ``SolverConvergenceError``.
    """

    def __init__(self, dgrid, operator, preconditioner=None, tolerance: float = 1e-10, max_iter: int = 500):
        super().__init__(dgrid, tolerance=tolerance, max_iter=max_iter)
        self.operator = operator
        self.preconditioner = preconditioner or DiagonalPreconditioner(operator.diagonal())
        self._p = None
        self._lock = threading.Lock()

    def _search_direction(self, x: Field) -> Field:
        if self._p is None or self._p.grid is not x.grid:
            self._p = Field(x.grid, x.location, x.boundary_conditions, name="pcg_p")
        return self._p

    def solve(self, rhs: np.ndarray, x: Field) -> Field:
        """Solve ``M x = rhs`` in place, starting from the current ``x``."""
        if not self._lock.acquire(blocking=False):
            raise RuntimeError("PreconditionedConjugateGradientSolver.solve is not reentrant")
        try:
            return self._solve(rhs, x)
        finally:
            self._lock.release()

    def _solve(self, rhs: np.ndarray, x: Field) -> Field:
        t0 = self._get_time()
        p = self._search_direction(x)
        dot = self.dgrid.dot

        b_norm = self._norm(rhs)
        if b_norm == 0.0:
            x.interior[...] = 0.0
            self.iterations = 0
            self.final_residual = 0.0
            self._record(t0)
            return x

        r = rhs - self.operator.apply(x)
        z = self.preconditioner.precondition(r)
        p.interior[...] = z
        rz = dot(r, z)
        residual = self._norm(r) / b_norm

        iteration = 0
        while residual > self.tolerance:
            if iteration >= self.max_iter:
                self.iterations = iteration
                self.final_residual = residual
                raise SolverConvergenceError(iteration, residual, self.tolerance)

            q = self.operator.apply(p)
            alpha = rz / dot(p.interior, q)
            x.interior[...] += alpha * p.interior
            r -= alpha * q
            residual = self._norm(r) / b_norm
            iteration += 1

            z = self.preconditioner.precondition(r)
            rz_new = dot(r, z)
            p.interior[...] = z + (rz_new / rz) * p.interior
            rz = rz_new

        self.iterations = iteration
        self.final_residual = residual
        self._record(t0)
        log.debug(f"PCG converged in {iteration} iterations (residual={residual:.2e})")
        return x
