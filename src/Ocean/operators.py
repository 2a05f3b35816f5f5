"""Second-order finite-volume operators on padded arrays.

All operators read a padded array and return an interior-shaped result.
Staggering follows the C-grid: ``u[i]`` sits on the west face of cell ``i``
and ``v[j]`` on the south face of cell ``j``. Flat axes are skipped.
"""

from __future__ import annotations

import numpy as np

from .grid import Flat


def shifted(data: np.ndarray, grid, axis: int, offset: int) -> np.ndarray:
    """Interior window of ``data`` shifted by ``offset`` cells along ``axis``."""
    sl = list(grid.interior_slices)
    s = sl[axis]
    sl[axis] = slice(s.start + offset, s.stop + offset)
    return data[tuple(sl)]


def delta(data: np.ndarray, grid, axis: int, forward: bool = True) -> np.ndarray:
    """Difference along ``axis``: ``d[i+1] - d[i]`` or ``d[i] - d[i-1]``."""
    c = data[grid.interior_slices]
    if grid.topology[axis] is Flat:
        return np.zeros_like(c)
    if forward:
        return shifted(data, grid, axis, 1) - c
    return c - shifted(data, grid, axis, -1)


def laplacian(data: np.ndarray, grid) -> np.ndarray:
    c = data[grid.interior_slices]
    out = np.zeros(c.shape, dtype=data.dtype)
    for axis in range(3):
        if grid.topology[axis] is Flat:
            continue
        d2 = grid.spacing[axis] ** 2
        out += (shifted(data, grid, axis, 1) - 2.0 * c + shifted(data, grid, axis, -1)) / d2
    return out


def divergence(u: np.ndarray, v: np.ndarray, grid) -> np.ndarray:
    """Horizontal divergence of face-located ``(u, v)`` at cell centers."""
    dx, dy = grid.spacing[0], grid.spacing[1]
    return delta(u, grid, 0) / dx + delta(v, grid, 1) / dy


def volume_flux_divergence(U: np.ndarray, V: np.ndarray, grid) -> np.ndarray:
    """Net volume flux ``δx U + δy V`` out of each column."""
    return delta(U, grid, 0) + delta(V, grid, 1)


def vertical_integral(interior: np.ndarray, dz: float) -> np.ndarray:
    """Sum over the full water column, keeping a length-one vertical axis."""
    return np.sum(interior, axis=2, keepdims=True) * dz


def barotropic_transport(u_interior: np.ndarray, v_interior: np.ndarray, grid):
    """Depth-integrated transports ``U = Σ u Δy Δz`` and ``V = Σ v Δx Δz``."""
    dx, dy, dz = grid.spacing
    U = vertical_integral(u_interior, dz) * dy
    V = vertical_integral(v_interior, dz) * dx
    return U, V
