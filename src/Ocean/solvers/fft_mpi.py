"""Distributed spectral Poisson solver.

Solves ``(∇² − shift) x = rhs`` for the second-order Laplacian. Periodic
axes are diagonalized by the FFT, bounded (no-flux) axes by the type-II
DCT; flat axes are skipped. An axis split over ``R`` ranks is transformed
after an ``Alltoall`` transpose on its line communicator that makes the
axis whole on every rank while splitting a partner axis ``R`` ways, and the
data is transposed back afterwards. The spectral array therefore keeps the
original decomposition.
"""

from __future__ import annotations

import logging
import threading

import numpy as np
from mpi4py import MPI
from scipy.fft import dct, fft, idct, ifft

from .. import operators
from ..errors import CommunicationError, ConfigurationError
from ..grid import AXES, Bounded, Periodic
from .base import BaseSolver

log = logging.getLogger(__name__)


def laplacian_eigenvalues(N: int, spacing: float, topology) -> np.ndarray:
    """Eigenvalues of the 1-D second difference for every wavenumber."""
    k = np.arange(N)
    if topology is Periodic:
        return -((2.0 * np.sin(np.pi * k / N) / spacing) ** 2)
    if topology is Bounded:
        return -((2.0 * np.sin(np.pi * k / (2 * N)) / spacing) ** 2)
    return np.zeros(N)


class DistributedFFTPoissonSolver(BaseSolver):
    """Direct solver for periodic and no-flux bounded axes.

    Parameters
    ----------
    dgrid : DistributedGrid
        Decomposed grid; each split axis needs another axis whose local size
        is divisible by the split axis' rank count.
    shift : float
        Non-negative diagonal shift. With ``shift == 0`` the zero wavenumber
        is set to zero, giving the zero-mean solution.
    """

    def __init__(self, dgrid, shift: float = 0.0):
        super().__init__(dgrid)
        if shift < 0:
            raise ConfigurationError(f"shift must be non-negative, got {shift}")
        self.shift = float(shift)
        grid = dgrid.full_grid

        # Bounded axes first, periodic last; inverse runs in reverse
        self._axes = [a for a in range(3) if grid.topology[a] is Bounded]
        self._axes += [a for a in range(3) if grid.topology[a] is Periodic]

        self._partners = {}
        for axis in self._axes:
            if dgrid.ranks[axis] > 1:
                self._partners[axis] = self._transpose_partner(axis)
                dgrid.line_comm(axis)

        self._inverse_eigenvalues = self._build_inverse_eigenvalues()
        self._lock = threading.Lock()

        if self._is_root():
            log.info(
                f"FFT solver: transforms along {[AXES[a] for a in self._axes]}, "
                f"transposes {({AXES[a]: AXES[b] for a, b in self._partners.items()})}"
            )

    def _transpose_partner(self, axis: int) -> int:
        R = self.dgrid.ranks[axis]
        for other in range(3):
            n = self.dgrid.local_shape[other]
            if other != axis and n >= R and n % R == 0:
                return other
        raise ConfigurationError(
            f"Cannot transpose {AXES[axis]} over {R} ranks: no other axis has a local "
            f"size divisible by {R} (local shape {self.dgrid.local_shape})"
        )

    def _build_inverse_eigenvalues(self) -> np.ndarray:
        grid = self.dgrid.full_grid
        lam = []
        for axis in range(3):
            full = laplacian_eigenvalues(grid.size[axis], grid.spacing[axis], grid.topology[axis])
            start = self.dgrid.global_start[axis]
            lam.append(full[start : start + self.dgrid.local_shape[axis]])

        eigenvalues = (
            lam[0][:, None, None] + lam[1][None, :, None] + lam[2][None, None, :] - self.shift
        )
        zero = eigenvalues == 0.0
        inverse = np.zeros_like(eigenvalues)
        inverse[~zero] = 1.0 / eigenvalues[~zero]
        return inverse

    # =========================================================================
    # Transforms
    # =========================================================================

    def _transform_local(self, X: np.ndarray, axis: int, inverse: bool) -> np.ndarray:
        if self.dgrid.full_grid.topology[axis] is Periodic:
            return ifft(X, axis=axis) if inverse else fft(X, axis=axis)
        f = idct if inverse else dct
        if np.iscomplexobj(X):
            return f(X.real, type=2, axis=axis, norm="ortho") + 1j * f(
                X.imag, type=2, axis=axis, norm="ortho"
            )
        return f(X, type=2, axis=axis, norm="ortho")

    def _transpose(self, X: np.ndarray, axis: int, split_axis: int, join_axis: int) -> np.ndarray:
        comm = self.dgrid.line_comm(axis)
        R = self.dgrid.ranks[axis]
        sendbuf = np.ascontiguousarray(np.stack(np.split(X, R, axis=split_axis)))
        recvbuf = np.empty_like(sendbuf)
        try:
            comm.Alltoall(sendbuf, recvbuf)
        except MPI.Exception as e:
            raise CommunicationError(
                f"Transpose along {AXES[axis]} failed on rank {self.rank}: {e}"
            ) from e
        return np.concatenate(list(recvbuf), axis=join_axis)

    def _transform(self, X: np.ndarray, axis: int, inverse: bool) -> np.ndarray:
        if axis not in self._partners:
            return self._transform_local(X, axis, inverse)
        partner = self._partners[axis]
        X = self._transpose(X, axis, split_axis=partner, join_axis=axis)
        X = self._transform_local(X, axis, inverse)
        return self._transpose(X, axis, split_axis=axis, join_axis=partner)

    # =========================================================================
    # Solve
    # =========================================================================

    def solve(self, rhs: np.ndarray, x=None) -> np.ndarray:
        """Return the interior solution; also written into ``x`` if given."""
        if not self._lock.acquire(blocking=False):
            raise RuntimeError("DistributedFFTPoissonSolver.solve is not reentrant")
        try:
            t0 = self._get_time()
            X = np.asarray(rhs, dtype=np.float64)
            for axis in self._axes:
                X = self._transform(X, axis, inverse=False)
            X = X * self._inverse_eigenvalues
            for axis in reversed(self._axes):
                X = self._transform(X, axis, inverse=True)
            solution = np.ascontiguousarray(np.real(X))

            if x is not None:
                x.interior[...] = solution
            self.iterations = 0
            self._record(t0)
            return solution
        finally:
            self._lock.release()

    def compute_residual(self, x, rhs: np.ndarray, kernel=None) -> float:
        """RMS of ``(∇² − shift) x − rhs`` after a halo exchange of ``x``."""
        self.dgrid.sync_halos(x)
        lap = kernel.laplacian(x.data, x.grid) if kernel else operators.laplacian(x.data, x.grid)
        r = lap - self.shift * x.interior - rhs
        n = self._reduce_sum(float(r.size))
        self.final_residual = self._norm(r) / np.sqrt(n)
        return self.final_residual
