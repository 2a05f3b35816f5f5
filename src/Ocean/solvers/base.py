"""Base class for distributed elliptic solvers."""

from abc import ABC, abstractmethod

import numpy as np
from mpi4py import MPI


class BaseSolver(ABC):
    """Abstract base for all elliptic solvers.

    Parameters
    ----------
    dgrid : DistributedGrid
        Grid the right-hand side and solution live on.
    tolerance : float
        Relative residual tolerance (iterative solvers only).
    max_iter : int
        Iteration cap (iterative solvers only).
    """

    def __init__(self, dgrid, tolerance: float = 1e-10, max_iter: int = 500):
        self.dgrid = dgrid
        self.comm = dgrid.comm
        self.rank = dgrid.rank
        self.tolerance = tolerance
        self.max_iter = max_iter

        # Results of the most recent solve
        self.iterations = 0
        self.final_residual = None

        # Timeseries across solves
        self.solve_times = []
        self.iteration_history = []

    @abstractmethod
    def solve(self, rhs: np.ndarray, x):
        """Solve into ``x`` (a Field) for the interior-shaped ``rhs``."""
        pass

    def _get_time(self) -> float:
        """Get current time using MPI.Wtime()."""
        return MPI.Wtime()

    def _reduce_sum(self, local_sum: float) -> float:
        """Reduce sum via MPI Allreduce."""
        return self.dgrid.allreduce_sum(local_sum)

    def _norm(self, a: np.ndarray) -> float:
        return float(np.sqrt(self._reduce_sum(float(np.sum(a * a)))))

    def _is_root(self) -> bool:
        """Only rank 0 logs."""
        return self.rank == 0

    def _record(self, t0: float):
        self.solve_times.append(self._get_time() - t0)
        self.iteration_history.append(self.iterations)
