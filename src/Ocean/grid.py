"""Structured rectilinear grids with per-axis topology.

A grid describes either the full domain or one rank's subdomain. Arrays
living on a grid are indexed ``[i, j, k]`` in ``(x, y, z)`` order and are
padded with ``halo`` cells on both sides of every non-flat axis.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple

import numpy as np

from .errors import ConfigurationError


class Topology(str, Enum):
    """Per-axis topology tag."""

    PERIODIC = "Periodic"
    BOUNDED = "Bounded"
    FLAT = "Flat"


Periodic = Topology.PERIODIC
Bounded = Topology.BOUNDED
Flat = Topology.FLAT

AXES = ("x", "y", "z")

# Staggered locations along one axis
Center = "Center"
Face = "Face"

SIDES = ("east", "west", "north", "south", "top", "bottom")

# side -> (axis, direction)
SIDE_AXIS = {
    "west": (0, -1),
    "east": (0, +1),
    "south": (1, -1),
    "north": (1, +1),
    "bottom": (2, -1),
    "top": (2, +1),
}

OPPOSITE_SIDE = {
    "east": "west",
    "west": "east",
    "north": "south",
    "south": "north",
    "top": "bottom",
    "bottom": "top",
}


def _as_topology(value) -> Topology:
    if isinstance(value, Topology):
        return value
    try:
        return Topology(str(value).capitalize())
    except ValueError as e:
        raise ConfigurationError(f"Unknown topology: {value!r}") from e


@dataclass(frozen=True)
class RegularGrid:
    """Regular rectilinear grid.

    Parameters
    ----------
    size : tuple of int
        Number of cells ``(Nx, Ny, Nz)``.
    extent : tuple of float
        Physical lengths ``(Lx, Ly, Lz)``.
    halo : tuple of int
        Halo width per axis. Forced to 0 on flat axes.
    topology : tuple
        ``Periodic``, ``Bounded`` or ``Flat`` per axis.
    origin : tuple of float
        Coordinates of the west/south/bottom corner.
    """

    size: Tuple[int, int, int]
    extent: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    halo: Tuple[int, int, int] = (1, 1, 1)
    topology: Tuple[Topology, Topology, Topology] = (Periodic, Periodic, Bounded)
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    spacing: Tuple[float, float, float] = field(init=False, default=(1.0, 1.0, 1.0))

    def __post_init__(self):
        size = tuple(int(n) for n in self.size)
        extent = tuple(float(L) for L in self.extent)
        topology = tuple(_as_topology(t) for t in self.topology)
        halo = list(int(h) for h in self.halo)

        if len(size) != 3 or len(extent) != 3 or len(topology) != 3 or len(halo) != 3:
            raise ConfigurationError("size, extent, halo and topology must have length 3")

        for axis, (n, L, topo) in enumerate(zip(size, extent, topology)):
            name = AXES[axis]
            if n < 1:
                raise ConfigurationError(f"Grid size along {name} must be positive, got {n}")
            if L <= 0:
                raise ConfigurationError(f"Grid extent along {name} must be positive, got {L}")
            if topo is Flat:
                if n != 1:
                    raise ConfigurationError(f"Flat axis {name} must have size 1, got {n}")
                halo[axis] = 0
            elif halo[axis] < 1 or halo[axis] > n:
                raise ConfigurationError(
                    f"Halo along {name} must be in [1, {n}], got {halo[axis]}"
                )

        object.__setattr__(self, "size", size)
        object.__setattr__(self, "extent", extent)
        object.__setattr__(self, "topology", topology)
        object.__setattr__(self, "halo", tuple(halo))
        object.__setattr__(self, "origin", tuple(float(o) for o in self.origin))
        object.__setattr__(self, "spacing", tuple(L / n for L, n in zip(extent, size)))

    # =========================================================================
    # Shapes and views
    # =========================================================================

    @property
    def Nx(self) -> int:
        return self.size[0]

    @property
    def Ny(self) -> int:
        return self.size[1]

    @property
    def Nz(self) -> int:
        return self.size[2]

    @property
    def Hx(self) -> int:
        return self.halo[0]

    @property
    def Hy(self) -> int:
        return self.halo[1]

    @property
    def Hz(self) -> int:
        return self.halo[2]

    @property
    def padded_shape(self) -> Tuple[int, int, int]:
        return tuple(n + 2 * h for n, h in zip(self.size, self.halo))

    @property
    def interior_slices(self) -> Tuple[slice, slice, slice]:
        return tuple(slice(h, h + n) for n, h in zip(self.size, self.halo))

    @property
    def cell_area(self) -> float:
        """Horizontal cell area ``Δx Δy``."""
        return self.spacing[0] * self.spacing[1]

    @property
    def depth(self) -> float:
        """Water-column depth (flat bottom)."""
        return self.extent[2]

    def is_periodic(self, axis: int) -> bool:
        return self.topology[axis] is Periodic

    def coordinates(self, axis: int, location: str = Center) -> np.ndarray:
        """Cell-center or face coordinates of the interior along ``axis``."""
        n, d, o = self.size[axis], self.spacing[axis], self.origin[axis]
        offset = 0.5 if location == Center else 0.0
        return o + (np.arange(n) + offset) * d

    # =========================================================================
    # Decomposition
    # =========================================================================

    def partition(self, ranks, index) -> "RegularGrid":
        """Return the subdomain owned by the rank at 1-based ``index``.

        Every axis must divide evenly by its rank count so that the local
        extents times ``ranks`` reproduce the full domain.
        """
        local_size = []
        local_extent = []
        local_origin = []
        for axis in range(3):
            n, R, i = self.size[axis], ranks[axis], index[axis]
            if n % R != 0:
                raise ConfigurationError(
                    f"Grid size {n} along {AXES[axis]} is not divisible by {R} ranks"
                )
            nl = n // R
            local_size.append(nl)
            local_extent.append(self.extent[axis] / R)
            local_origin.append(self.origin[axis] + (i - 1) * nl * self.spacing[axis])

        return RegularGrid(
            size=tuple(local_size),
            extent=tuple(local_extent),
            halo=self.halo,
            topology=self.topology,
            origin=tuple(local_origin),
        )

    def surface(self) -> "RegularGrid":
        """Horizontal grid of the free surface.

        The vertical axis is collapsed to a flat axis whose extent keeps the
        water-column depth.
        """
        return RegularGrid(
            size=(self.Nx, self.Ny, 1),
            extent=self.extent,
            halo=(self.Hx, self.Hy, 0),
            topology=(self.topology[0], self.topology[1], Flat),
            origin=self.origin,
        )

    def __str__(self):
        topo = ", ".join(t.value for t in self.topology)
        return (
            f"RegularGrid {self.Nx}×{self.Ny}×{self.Nz} ({topo}) "
            f"halo={self.halo} extent={self.extent}"
        )
