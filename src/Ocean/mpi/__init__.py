"""MPI domain decomposition and communication.

This package provides:
- DistributedGrid: Unified interface for parallel grids
- RankDecomposition: Domain splitting over the process grid
- RankTopology, RankConnectivity: Rank placement and neighbours
- HaloExchanger: Tagged non-blocking halo exchange
- MessageTags: Tag encoding of (source, destination, side)
"""

from .topology import (
    RankConnectivity,
    RankTopology,
    decrement_index,
    increment_index,
    index2rank,
    rank2index,
    validate_ranks,
)
from .tags import MessageTags
from .halo import HaloExchanger
from .decomposition import RankDecomposition
from .grid import DistributedGrid

__all__ = [
    "DistributedGrid",
    "RankDecomposition",
    "RankTopology",
    "RankConnectivity",
    "HaloExchanger",
    "MessageTags",
    "index2rank",
    "rank2index",
    "increment_index",
    "decrement_index",
    "validate_ranks",
]
