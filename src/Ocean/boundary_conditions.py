"""Boundary-condition variants and halo filling for non-communicating faces.

Each variant is a small frozen dataclass with a ``fill`` capability; there
is no abstract base class. ``HaloCommunication`` marks faces shared with a
neighbouring rank and is filled by the halo exchanger instead.

Halo layers are counted outward from the face: layer ``m = 0`` touches the
boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Optional, Union

import numpy as np

from .grid import SIDE_AXIS, SIDES, Bounded, Center, Face, Flat, Periodic as PeriodicTopology


def _at(axis: int, index):
    """Index tuple selecting ``index`` along ``axis`` and everything elsewhere."""
    idx = [slice(None)] * 3
    idx[axis] = index
    return tuple(idx)


def _layers(data: np.ndarray, side: str, grid):
    """Yield ``(halo_index, axis, H, N)`` for every halo layer of ``side``."""
    axis, direction = SIDE_AXIS[side]
    H, N = grid.halo[axis], grid.size[axis]
    for m in range(H):
        halo_index = H - 1 - m if direction < 0 else H + N + m
        yield m, halo_index, axis, H, N


@dataclass(frozen=True)
class Periodic:
    """Wrap-around copy within a single rank."""

    def fill(self, data, side, grid, location=Center):
        axis, direction = SIDE_AXIS[side]
        H, N = grid.halo[axis], grid.size[axis]
        if direction < 0:
            data[_at(axis, slice(0, H))] = data[_at(axis, slice(N, N + H))]
        else:
            data[_at(axis, slice(H + N, 2 * H + N))] = data[_at(axis, slice(H, 2 * H))]


@dataclass(frozen=True)
class NoFlux:
    """Zero normal gradient: halos mirror the interior about the face."""

    def fill(self, data, side, grid, location=Center):
        _, direction = SIDE_AXIS[side]
        for m, h, axis, H, N in _layers(data, side, grid):
            if location == Face:
                if direction < 0:
                    src = H + 1 + m
                else:
                    src = H + N - 1 if m == 0 else H + N - m
            else:
                src = H + m if direction < 0 else H + N - 1 - m
            data[_at(axis, h)] = data[_at(axis, src)]


@dataclass(frozen=True)
class Flux:
    """Prescribed boundary flux.

    The flux itself enters through the tendency; halos are filled with zero
    gradient so that stencils do not add a second contribution.
    """

    value: float = 0.0

    def fill(self, data, side, grid, location=Center):
        NoFlux().fill(data, side, grid, location)


@dataclass(frozen=True)
class Value:
    """Prescribed value on the boundary face.

    Centered fields reflect oddly about the face. Face-located fields own
    the boundary point and have it pinned to ``value``.
    """

    value: Union[float, np.ndarray] = 0.0

    def fill(self, data, side, grid, location=Center):
        axis, direction = SIDE_AXIS[side]
        H, N = grid.halo[axis], grid.size[axis]
        v = self.value

        if location == Face:
            boundary = H if direction < 0 else H + N
            data[_at(axis, boundary)] = v
            for m in range(1, H + 1 if direction < 0 else H):
                if direction < 0:
                    data[_at(axis, H - m)] = 2 * v - data[_at(axis, H + m)]
                else:
                    data[_at(axis, H + N + m)] = 2 * v - data[_at(axis, H + N - m)]
            return

        for m, h, axis, H, N in _layers(data, side, grid):
            src = H + m if direction < 0 else H + N - 1 - m
            data[_at(axis, h)] = 2 * v - data[_at(axis, src)]


@dataclass(frozen=True)
class HaloCommunication:
    """Face shared with another rank."""

    from_rank: int
    to_rank: int

    def fill(self, data, side, grid, location=Center):
        raise RuntimeError(
            f"{side} halo communicates with rank {self.to_rank}; "
            "fill it through the halo exchanger"
        )


BoundaryCondition = Union[Periodic, NoFlux, Flux, Value, HaloCommunication]


@dataclass(frozen=True)
class FieldBoundaryConditions:
    """Boundary conditions on the six faces of a field."""

    east: Optional[BoundaryCondition] = None
    west: Optional[BoundaryCondition] = None
    north: Optional[BoundaryCondition] = None
    south: Optional[BoundaryCondition] = None
    top: Optional[BoundaryCondition] = None
    bottom: Optional[BoundaryCondition] = None

    @classmethod
    def defaults(cls, grid, **overrides) -> "FieldBoundaryConditions":
        """Periodic on periodic axes, no-flux on bounded axes, none on flat axes."""
        bcs = {}
        for side in SIDES:
            topo = grid.topology[SIDE_AXIS[side][0]]
            if topo is PeriodicTopology:
                bcs[side] = Periodic()
            elif topo is Bounded:
                bcs[side] = NoFlux()
            elif topo is Flat:
                bcs[side] = None
        bcs.update(overrides)
        return cls(**bcs)

    def items(self):
        return [(f.name, getattr(self, f.name)) for f in fields(self)]

    def communicating_sides(self):
        return [side for side, bc in self.items() if isinstance(bc, HaloCommunication)]


def inject_halo_communication(bcs: FieldBoundaryConditions, my_rank: int, connectivity):
    """Replace physical conditions by ``HaloCommunication`` on inter-rank faces."""
    updates = {
        side: HaloCommunication(from_rank=my_rank, to_rank=neighbor)
        for side, neighbor in connectivity.neighbors().items()
        if neighbor is not None
    }
    return replace(bcs, **updates)
