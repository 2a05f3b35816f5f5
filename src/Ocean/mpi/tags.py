"""Message tags for halo communication.

A tag is the decimal concatenation of the sender rank, the receiver rank
(both zero-padded to a fixed width) and a one-digit side id. Sender and
receiver compute the same integer, so concurrently outstanding messages on
different faces never alias.
"""

from __future__ import annotations

from ..errors import ConfigurationError
from ..grid import OPPOSITE_SIDE

SIDE_ID = {
    "east": 1,
    "west": 2,
    "north": 3,
    "south": 4,
    "top": 5,
    "bottom": 6,
}

# Guaranteed lower bound on MPI_TAG_UB
MIN_TAG_UB = 32767


class MessageTags:
    """Tag generator for a process group of ``n_ranks``.

    Parameters
    ----------
    n_ranks : int
        Size of the process group; fixes the rank digit width.
    tag_ub : int, optional
        Largest tag the MPI library accepts. Defaults to the standard's
        guaranteed minimum.
    """

    def __init__(self, n_ranks: int, tag_ub: int = None):
        if n_ranks < 1:
            raise ConfigurationError(f"n_ranks must be positive, got {n_ranks}")
        self.n_ranks = n_ranks
        self.width = len(str(n_ranks - 1))
        self.tag_ub = MIN_TAG_UB if tag_ub is None else int(tag_ub)

        largest = self._encode(n_ranks - 1, n_ranks - 1, max(SIDE_ID.values()))
        if largest > self.tag_ub:
            raise ConfigurationError(
                f"{n_ranks} ranks need tags up to {largest}, "
                f"but the MPI tag upper bound is {self.tag_ub}"
            )

    def _encode(self, from_rank: int, to_rank: int, side_id: int) -> int:
        if not (0 <= from_rank < self.n_ranks and 0 <= to_rank < self.n_ranks):
            raise ValueError(
                f"Rank ids ({from_rank}, {to_rank}) outside [0, {self.n_ranks})"
            )
        w = self.width
        return int(f"{from_rank:0{w}d}{to_rank:0{w}d}{side_id}")

    def send_tag(self, side: str, my_rank: int, to_rank: int) -> int:
        """Tag for sending this rank's ``side`` boundary slab to ``to_rank``."""
        return self._encode(my_rank, to_rank, SIDE_ID[side])

    def recv_tag(self, side: str, my_rank: int, from_rank: int) -> int:
        """Tag for receiving into this rank's ``side`` halo from ``from_rank``.

        The peer sent its opposite-side boundary slab.
        """
        return self._encode(from_rank, my_rank, SIDE_ID[OPPOSITE_SIDE[side]])

    def decode(self, tag: int):
        """Inverse of the encoding: ``(from_rank, to_rank, side_id)``."""
        w = self.width
        digits = f"{tag:0{2 * w + 1}d}"
        return int(digits[:w]), int(digits[w : 2 * w]), int(digits[-1])
