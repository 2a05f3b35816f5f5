"""Fields, tendency pairs and scoped read-only snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

import numpy as np

from .boundary_conditions import FieldBoundaryConditions, HaloCommunication
from .grid import SIDE_AXIS, Center


class Field:
    """Array over a (local) grid padded with halo cells.

    Parameters
    ----------
    grid : RegularGrid
        Grid the field lives on.
    location : tuple of str
        ``Center`` or ``Face`` per axis.
    boundary_conditions : FieldBoundaryConditions, optional
        Defaults to the grid topology defaults.
    data : np.ndarray, optional
        Padded array to wrap instead of allocating zeros.
    name : str
        Label used in logs and output.
    """

    def __init__(
        self,
        grid,
        location=(Center, Center, Center),
        boundary_conditions: Optional[FieldBoundaryConditions] = None,
        data: Optional[np.ndarray] = None,
        name: str = "",
    ):
        self.grid = grid
        self.location = tuple(location)
        self.boundary_conditions = (
            boundary_conditions
            if boundary_conditions is not None
            else FieldBoundaryConditions.defaults(grid)
        )
        if data is None:
            data = np.zeros(grid.padded_shape, dtype=np.float64)
        elif data.shape != grid.padded_shape:
            raise ValueError(
                f"Field data shape {data.shape} does not match padded grid shape "
                f"{grid.padded_shape}"
            )
        self.data = data
        self.name = name

    @property
    def interior(self) -> np.ndarray:
        return self.data[self.grid.interior_slices]

    def _slab(self, side: str, halo: bool) -> np.ndarray:
        axis, direction = SIDE_AXIS[side]
        H, N = self.grid.halo[axis], self.grid.size[axis]
        if direction < 0:
            sl = slice(0, H) if halo else slice(H, 2 * H)
        else:
            sl = slice(H + N, 2 * H + N) if halo else slice(N, N + H)
        idx = [slice(None)] * 3
        idx[axis] = sl
        return self.data[tuple(idx)]

    def boundary_slab(self, side: str) -> np.ndarray:
        """Innermost ``H`` interior layers next to ``side``."""
        return self._slab(side, halo=False)

    def halo_slab(self, side: str) -> np.ndarray:
        """Halo padding on ``side``."""
        return self._slab(side, halo=True)

    def fill_local_halos(self):
        """Fill halos of every face that does not talk to another rank."""
        for side, bc in self.boundary_conditions.items():
            if bc is None or isinstance(bc, HaloCommunication):
                continue
            axis = SIDE_AXIS[side][0]
            bc.fill(self.data, side, self.grid, self.location[axis])

    def set(self, value):
        """Set the interior from a scalar, an interior-shaped array or ``f(x, y, z)``."""
        if callable(value):
            x, y, z = (self.grid.coordinates(a, self.location[a]) for a in range(3))
            X, Y, Z = np.meshgrid(x, y, z, indexing="ij")
            value = value(X, Y, Z)
        self.interior[...] = value

    def __repr__(self):
        return f"Field({self.name!r}, location={self.location}, size={self.grid.size})"


class TendencyState:
    """Current and previous tendencies ``(Gⁿ, G⁻)`` per prognostic field.

    Parameters
    ----------
    shapes : mapping of str to tuple
        Interior shape of every prognostic field.
    """

    def __init__(self, shapes: Mapping[str, Tuple[int, int, int]]):
        self.current: Dict[str, np.ndarray] = {
            name: np.zeros(shape) for name, shape in shapes.items()
        }
        self.previous: Dict[str, np.ndarray] = {
            name: np.zeros(shape) for name, shape in shapes.items()
        }

    @property
    def names(self):
        return list(self.current)

    def rotate(self):
        """Make ``Gⁿ`` the new ``G⁻`` and clear ``Gⁿ`` for accumulation."""
        for name in self.current:
            self.previous[name], self.current[name] = self.current[name], self.previous[name]
            self.current[name].fill(0.0)

    def checkpoint(self):
        """Copies of both tendency sets, for ``restore``."""
        return (
            {name: G.copy() for name, G in self.current.items()},
            {name: G.copy() for name, G in self.previous.items()},
        )

    def restore(self, checkpoint):
        current, previous = checkpoint
        for name in self.current:
            self.current[name][...] = current[name]
            self.previous[name][...] = previous[name]

    def __getitem__(self, name):
        return self.current[name], self.previous[name]


@dataclass
class FreeSurfaceState:
    """Free-surface height plus per-step scratch.

    ``eta`` persists; the barotropic transports and the solver workspace are
    recomputed every step.
    """

    eta: Field
    U: Field
    V: Field
    rhs: Optional[np.ndarray] = None
    x: Optional[Field] = None


class FieldSnapshot:
    """Scoped read-only view of named fields.

    Views are only valid between ``acquire()`` and ``release()``; reading
    outside that window raises ``RuntimeError``.

    Example
    -------
    >>> with model.snapshot() as snap:
    ...     c = snap["c"].copy()
    """

    def __init__(self, fields: Mapping[str, Field], iteration: int = 0, time: float = 0.0, rank: int = 0):
        self._fields = dict(fields)
        self.iteration = iteration
        self.time = time
        self.rank = rank
        self._views = None
        self._released = False

    def acquire(self) -> "FieldSnapshot":
        if self._released:
            raise RuntimeError("Snapshot was released and cannot be acquired again")
        if self._views is None:
            views = {}
            for name, field in self._fields.items():
                view = field.interior.view()
                view.flags.writeable = False
                views[name] = view
            self._views = views
        return self

    def release(self):
        self._views = None
        self._released = True

    @property
    def active(self) -> bool:
        return self._views is not None

    def _check(self):
        if self._views is None:
            state = "released" if self._released else "not acquired"
            raise RuntimeError(f"Snapshot at iteration {self.iteration} is {state}")

    def __getitem__(self, name: str) -> np.ndarray:
        self._check()
        return self._views[name]

    def names(self):
        return list(self._fields)

    def items(self):
        self._check()
        return list(self._views.items())

    def __enter__(self):
        return self.acquire()

    def __exit__(self, *exc):
        self.release()
        return False
