"""Rank topology and connectivity.

Ranks are laid out on an ``Rx × Ry × Rz`` process grid with ``z`` as the
fastest-varying axis. Indices are 1-based, rank ids are 0-based.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..errors import ConfigurationError
from ..grid import SIDES, Periodic, Topology


def index2rank(i: int, j: int, k: int, ranks) -> int:
    """Linear rank id of the 1-based process-grid index ``(i, j, k)``."""
    _, Ry, Rz = ranks
    return (i - 1) * Ry * Rz + (j - 1) * Rz + (k - 1)


def rank2index(r: int, ranks) -> Tuple[int, int, int]:
    """1-based process-grid index of rank ``r`` (mixed-radix decoding)."""
    _, Ry, Rz = ranks
    i = r // (Ry * Rz)
    r -= i * Ry * Rz
    j = r // Rz
    k = r % Rz
    return i + 1, j + 1, k + 1


def increment_index(i: int, R: int, topology: Topology) -> Optional[int]:
    if R == 1:
        return None
    if i + 1 > R:
        return 1 if topology is Periodic else None
    return i + 1


def decrement_index(i: int, R: int, topology: Topology) -> Optional[int]:
    if R == 1:
        return None
    if i - 1 < 1:
        return R if topology is Periodic else None
    return i - 1


def validate_ranks(ranks, comm_size: int) -> Tuple[int, int, int]:
    """Check ``ranks`` against the process-group size."""
    try:
        ranks = tuple(int(r) for r in ranks)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"ranks must be a tuple of 3 integers, got {ranks!r}") from e

    if len(ranks) != 3 or any(r < 1 for r in ranks):
        raise ConfigurationError(f"ranks must be 3 positive integers, got {ranks}")

    Rx, Ry, Rz = ranks
    total = Rx * Ry * Rz
    if total != comm_size:
        raise ConfigurationError(
            f"ranks=({Rx}, {Ry}, {Rz}) [{total} total] inconsistent "
            f"with number of MPI ranks: {comm_size}."
        )
    return ranks


@dataclass(frozen=True)
class RankTopology:
    """Position of this rank on the process grid."""

    ranks: Tuple[int, int, int]
    my_rank: int

    @property
    def my_index(self) -> Tuple[int, int, int]:
        return rank2index(self.my_rank, self.ranks)

    @property
    def size(self) -> int:
        Rx, Ry, Rz = self.ranks
        return Rx * Ry * Rz


@dataclass(frozen=True)
class RankConnectivity:
    """Neighbour rank ids per side; ``None`` means no rank neighbour."""

    east: Optional[int] = None
    west: Optional[int] = None
    north: Optional[int] = None
    south: Optional[int] = None
    top: Optional[int] = None
    bottom: Optional[int] = None

    @classmethod
    def from_topology(cls, index, ranks, topology) -> "RankConnectivity":
        i, j, k = index
        Rx, Ry, Rz = ranks
        TX, TY, TZ = topology

        i_east = increment_index(i, Rx, TX)
        i_west = decrement_index(i, Rx, TX)
        j_north = increment_index(j, Ry, TY)
        j_south = decrement_index(j, Ry, TY)
        k_top = increment_index(k, Rz, TZ)
        k_bot = decrement_index(k, Rz, TZ)

        def rank_or_none(ii, jj, kk):
            if ii is None or jj is None or kk is None:
                return None
            return index2rank(ii, jj, kk, ranks)

        return cls(
            east=rank_or_none(i_east, j, k),
            west=rank_or_none(i_west, j, k),
            north=rank_or_none(i, j_north, k),
            south=rank_or_none(i, j_south, k),
            top=rank_or_none(i, j, k_top),
            bottom=rank_or_none(i, j, k_bot),
        )

    def neighbors(self) -> Dict[str, Optional[int]]:
        return {side: getattr(self, side) for side in SIDES}

    @property
    def n_neighbors(self) -> int:
        return sum(1 for r in self.neighbors().values() if r is not None)

    def __str__(self):
        parts = [f"{side}={rank}" for side, rank in self.neighbors().items() if rank is not None]
        return "connectivity: " + (" ".join(parts) if parts else "none")
