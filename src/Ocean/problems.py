"""Synthetic initial conditions and source terms."""

from __future__ import annotations

import numpy as np

from . import operators
from .free_surface import wall_conditions
from .grid import Center, Face


def random_divergent_source_term(dgrid, seed: int = 0) -> np.ndarray:
    """Divergence ``∇·U`` of a random face-located vector field ``U``.

    The vector field is drawn per rank (seeded by ``seed + rank``) and halo
    exchanged before differencing. Bounded axes get zero normal flow on the
    walls, so the result sums to zero and is a valid Poisson right-hand side
    for any mix of periodic and bounded axes.
    """
    rng = np.random.default_rng(seed + dgrid.rank)
    grid = dgrid.local_grid
    u = dgrid.field((Face, Center, Center), name="U", **wall_conditions(grid, 0))
    v = dgrid.field((Center, Face, Center), name="V", **wall_conditions(grid, 1))
    u.interior[...] = rng.standard_normal(dgrid.local_shape)
    v.interior[...] = rng.standard_normal(dgrid.local_shape)
    dgrid.sync_halos(u, v)
    return operators.divergence(u.data, v.data, grid)


def uniform_tracer_gradient(axis: int = 1, gradient: float = 1.0, offset: float = 0.0):
    """``f(x, y, z)`` increasing linearly along ``axis``."""

    def profile(x, y, z):
        return offset + gradient * (x, y, z)[axis]

    return profile


def gaussian_bump(full_grid, amplitude: float = 1.0, width: float = None):
    """``f(x, y, z)`` Gaussian centered in the horizontal domain."""
    Lx, Ly = full_grid.extent[0], full_grid.extent[1]
    x0 = full_grid.origin[0] + Lx / 2
    y0 = full_grid.origin[1] + Ly / 2
    w = width if width is not None else min(Lx, Ly) / 10

    def profile(x, y, z):
        return amplitude * np.exp(-((x - x0) ** 2 + (y - y0) ** 2) / (2 * w**2))

    return profile
