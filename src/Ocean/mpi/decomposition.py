"""Domain decomposition over a 3-D process grid."""

from __future__ import annotations

from mpi4py import MPI

from ..grid import RegularGrid
from .topology import RankConnectivity, RankTopology, validate_ranks


class RankDecomposition:
    """Handles rank topology and domain splitting.

    Computes where this rank sits on the ``Rx × Ry × Rz`` process grid, who
    its neighbours are, and which block of the global domain it owns.

    Parameters
    ----------
    full_grid : RegularGrid
        Global grid.
    ranks : tuple of int
        Rank counts per axis; their product must equal the communicator size.
    comm : MPI.Comm
        MPI communicator.
    """

    def __init__(self, full_grid: RegularGrid, ranks, comm: MPI.Comm):
        self.full_grid = full_grid
        self.comm = comm
        self.rank = comm.Get_rank()
        self.size = comm.Get_size()

        self.ranks = validate_ranks(ranks, self.size)
        self.Rx, self.Ry, self.Rz = self.ranks

        self.topology = RankTopology(self.ranks, self.rank)
        self.my_index = self.topology.my_index

        self.connectivity = RankConnectivity.from_topology(
            self.my_index, self.ranks, full_grid.topology
        )

        # Local domain
        self.local_grid = full_grid.partition(self.ranks, self.my_index)
        self.local_shape = self.local_grid.size
        self.global_start = tuple(
            (i - 1) * n for i, n in zip(self.my_index, self.local_shape)
        )
        self.global_end = tuple(s + n for s, n in zip(self.global_start, self.local_shape))

        # Track physical boundaries
        self.is_boundary = self._find_boundaries()

    def _find_boundaries(self) -> dict:
        """Faces lying on the global domain boundary."""
        N = self.full_grid.size
        return {
            "west": self.global_start[0] == 0,
            "east": self.global_end[0] == N[0],
            "south": self.global_start[1] == 0,
            "north": self.global_end[1] == N[1],
            "bottom": self.global_start[2] == 0,
            "top": self.global_end[2] == N[2],
        }
