"""Distributed grid abstraction for parallel computation.

This module provides a unified DistributedGrid class that encapsulates:
- Domain decomposition over an ``Rx × Ry × Rz`` process grid
- Halo exchange communication with tagged non-blocking sends
- Field allocation with inter-rank boundary conditions injected

Models and solvers interact with this single interface rather than
managing MPI details directly.
"""

from __future__ import annotations

import logging
import os

import numpy as np
from mpi4py import MPI

from ..boundary_conditions import FieldBoundaryConditions, inject_halo_communication
from ..datastructures import LocalParams
from ..errors import ConfigurationError
from ..fields import Field
from ..grid import Center, Flat, RegularGrid
from .decomposition import RankDecomposition
from .halo import HaloExchanger
from .tags import MessageTags

log = logging.getLogger(__name__)


def _tag_upper_bound(comm):
    try:
        return comm.Get_attr(MPI.TAG_UB)
    except (AttributeError, MPI.Exception):
        return None


class DistributedGrid:
    """Unified distributed grid for the parallel model.

    Parameters
    ----------
    full_grid : RegularGrid
        Global grid.
    ranks : tuple of int
        Rank counts ``(Rx, Ry, Rz)``.
    comm : MPI.Comm
        MPI communicator.

    Example
    -------
    >>> dgrid = DistributedGrid(RegularGrid((64, 64, 8)), ranks=(1, 4, 1))
    >>> c = dgrid.field(name="c")   # Allocate field with halos
    >>> dgrid.sync_halos(c)         # Exchange halo data
    """

    def __init__(self, full_grid: RegularGrid, ranks=(1, 1, 1), comm: MPI.Comm = MPI.COMM_WORLD):
        self.full_grid = full_grid
        self.comm = comm
        self.rank = comm.Get_rank()
        self.size = comm.Get_size()

        # Domain decomposition
        self._decomp = RankDecomposition(full_grid, ranks, comm)

        # Copy decomposition attributes for direct access
        self.ranks = self._decomp.ranks
        self.topology = self._decomp.topology
        self.my_index = self._decomp.my_index
        self.connectivity = self._decomp.connectivity
        self.local_grid = self._decomp.local_grid
        self.local_shape = self._decomp.local_shape
        self.global_start = self._decomp.global_start
        self.global_end = self._decomp.global_end
        self.is_boundary = self._decomp.is_boundary

        # Halo exchange
        self.tags = MessageTags(self.size, tag_ub=_tag_upper_bound(comm))
        self._halo_exchanger = HaloExchanger(comm, self.tags)
        self.halo_times = []

        self._line_comms = {}

        log.debug(f"rank {self.rank} at {self.my_index}: {self.connectivity}")

    # =========================================================================
    # Fields and halos
    # =========================================================================

    def field(self, location=(Center, Center, Center), boundary_conditions=None, name="", **overrides) -> Field:
        """Allocate a field on the local grid.

        Physical boundary conditions default to the grid topology; faces with
        a rank neighbour are replaced by ``HaloCommunication``.
        """
        if boundary_conditions is None:
            boundary_conditions = FieldBoundaryConditions.defaults(self.local_grid, **overrides)
        bcs = inject_halo_communication(boundary_conditions, self.rank, self.connectivity)
        return Field(self.local_grid, location=location, boundary_conditions=bcs, name=name)

    def sync_halos(self, *fields) -> float:
        """Exchange halo data of every field with all neighbours."""
        elapsed = self._halo_exchanger.exchange_many(fields)
        self.halo_times.append(elapsed)
        return elapsed

    def get_halo_size_bytes(self, field) -> int:
        return self._halo_exchanger.halo_size_bytes(field)

    # =========================================================================
    # Collectives
    # =========================================================================

    def allreduce_sum(self, value) -> float:
        result = np.zeros(1)
        self.comm.Allreduce(np.array([value], dtype=np.float64), result, op=MPI.SUM)
        return float(result[0])

    def allreduce_max(self, value) -> float:
        result = np.zeros(1)
        self.comm.Allreduce(np.array([value], dtype=np.float64), result, op=MPI.MAX)
        return float(result[0])

    def dot(self, a: np.ndarray, b: np.ndarray) -> float:
        """Global inner product of interior arrays."""
        return self.allreduce_sum(float(np.vdot(a, b).real))

    def line_comm(self, axis: int):
        """Communicator of the ranks sharing every process index but ``axis``.

        Collective over ``comm``: all ranks must request the same axes in the
        same order. Ranks are ordered by their index along ``axis``.
        """
        if axis not in self._line_comms:
            i, j, k = self.my_index
            Rx, Ry, Rz = self.ranks
            others = [idx for a, idx in enumerate((i, j, k)) if a != axis]
            counts = [R for a, R in enumerate((Rx, Ry, Rz)) if a != axis]
            color = (others[0] - 1) * counts[1] + (others[1] - 1)
            self._line_comms[axis] = self.comm.Split(color=color, key=self.my_index[axis])
        return self._line_comms[axis]

    # =========================================================================
    # Derived grids and diagnostics
    # =========================================================================

    def surface(self) -> "DistributedGrid":
        """Distributed free-surface grid (vertical axis flattened)."""
        if self.ranks[2] != 1 and self.full_grid.topology[2] is not Flat:
            raise ConfigurationError(
                f"Free-surface models need a single rank along z, got Rz={self.ranks[2]}"
            )
        return DistributedGrid(self.full_grid.surface(), self.ranks, self.comm)

    def gather_interior(self, field: Field, root: int = 0):
        """Assemble the global interior of ``field`` on ``root`` (``None`` elsewhere)."""
        blocks = self.comm.gather((self.global_start, field.interior.copy()), root=root)
        if self.rank != root:
            return None
        out = np.empty(self.full_grid.size, dtype=field.data.dtype)
        for start, block in blocks:
            sl = tuple(slice(s, s + n) for s, n in zip(start, block.shape))
            out[sl] = block
        return out

    def get_rank_info(self) -> LocalParams:
        """Get topology info for this rank (for MLflow artifact)."""
        # Get CPU affinity (cores this rank can run on)
        try:
            cpu_ids = sorted(os.sched_getaffinity(0))
        except (AttributeError, OSError):
            cpu_ids = None  # Not available on all platforms (e.g., macOS)

        return LocalParams(
            rank=self.rank,
            hostname=MPI.Get_processor_name(),
            index=self.my_index,
            neighbors=self.connectivity.neighbors(),
            local_shape=self.local_shape,
            global_start=self.global_start,
            global_end=self.global_end,
            cpu_ids=cpu_ids,
        )

    def __str__(self):
        Rx, Ry, Rz = self.ranks
        return f"DistributedGrid {self.full_grid} on {Rx}×{Ry}×{Rz} ranks"
