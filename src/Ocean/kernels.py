"""Time-stepping and stencil kernels.

Simple kernel implementations - scheduling is handled by the model.
"""

import threading

import numpy as np
import numba
from numba import njit, prange

from . import operators
from .grid import Flat


@njit(parallel=True)
def _ab2_step_numba(phi, Gn, Gm, dt, chi):
    """Numba JIT implementation of the quasi-AB2 update."""
    a = 1.5 + chi
    b = 0.5 + chi
    for i in prange(phi.shape[0]):
        for j in range(phi.shape[1]):
            for k in range(phi.shape[2]):
                phi[i, j, k] += dt * (a * Gn[i, j, k] - b * Gm[i, j, k])


@njit(parallel=True)
def _laplacian_numba(p, out, hx, hy, hz, ox, oy, oz, cx, cy, cz):
    """Numba JIT 7-point Laplacian; ``o*`` is 0 on flat axes."""
    for i in prange(out.shape[0]):
        for j in range(out.shape[1]):
            for k in range(out.shape[2]):
                I = i + hx
                J = j + hy
                K = k + hz
                c = 2.0 * p[I, J, K]
                out[i, j, k] = (
                    cx * (p[I + ox, J, K] - c + p[I - ox, J, K])
                    + cy * (p[I, J + oy, K] - c + p[I, J - oy, K])
                    + cz * (p[I, J, K + oz] - c + p[I, J, K - oz])
                )


class NumPyKernel:
    """NumPy-based kernels."""

    def __init__(self, specified_numba_threads: int = 1):
        self.observed_numba_threads = None  # Not applicable for NumPy

    def ab2_step(self, phi: np.ndarray, Gn: np.ndarray, Gm: np.ndarray, dt: float, chi: float):
        """Advance ``phi`` in place: ``φ += Δt((3/2+χ)Gⁿ − (1/2+χ)G⁻)``."""
        phi += dt * ((1.5 + chi) * Gn - (0.5 + chi) * Gm)

    def laplacian(self, data: np.ndarray, grid) -> np.ndarray:
        return operators.laplacian(data, grid)

    def warmup(self, warmup_size: int = 10):
        """No-op for NumPy kernel."""
        pass


class NumbaKernel:
    """Numba JIT-compiled kernels."""

    # The default workqueue threading layer rejects concurrent launches
    _launch_lock = threading.Lock()

    def __init__(self, specified_numba_threads: int = 1):
        # Set requested threads (may be clamped by NUMBA_NUM_THREADS env var)
        if specified_numba_threads is not None:
            numba.set_num_threads(specified_numba_threads)

        # Record what Numba actually reports
        self.observed_numba_threads = numba.get_num_threads()

    def ab2_step(self, phi: np.ndarray, Gn: np.ndarray, Gm: np.ndarray, dt: float, chi: float):
        """Advance ``phi`` in place: ``φ += Δt((3/2+χ)Gⁿ − (1/2+χ)G⁻)``."""
        with self._launch_lock:
            _ab2_step_numba(phi, Gn, Gm, float(dt), float(chi))

    def laplacian(self, data: np.ndarray, grid) -> np.ndarray:
        out = np.empty(grid.size, dtype=np.float64)
        offsets = [0 if t is Flat else 1 for t in grid.topology]
        coeffs = [
            0.0 if t is Flat else 1.0 / d**2 for t, d in zip(grid.topology, grid.spacing)
        ]
        with self._launch_lock:
            _laplacian_numba(data, out, *grid.halo, *offsets, *coeffs)
        return out

    def warmup(self, warmup_size: int = 10):
        """Trigger JIT compilation with a small problem."""
        n = warmup_size
        phi = np.zeros((n, n, n))
        G = np.random.randn(n, n, n)
        p = np.random.randn(n + 2, n + 2, n + 2)
        out = np.empty((n, n, n))
        with self._launch_lock:
            _ab2_step_numba(phi, G, G, 0.1, 0.1)
            _laplacian_numba(p, out, 1, 1, 1, 1, 1, 1, 1.0, 1.0, 1.0)


def create_kernel(use_numba: bool = False, numba_threads: int = 1):
    """Factory: NumbaKernel when ``use_numba`` else NumPyKernel."""
    if use_numba:
        return NumbaKernel(specified_numba_threads=numba_threads)
    return NumPyKernel(specified_numba_threads=numba_threads)
