"""Tests for rank topology, connectivity and domain decomposition."""

import numpy as np
import pytest

from Ocean import ConfigurationError, RegularGrid, Periodic, Bounded, Flat
from Ocean.mpi import (
    RankConnectivity,
    RankDecomposition,
    decrement_index,
    increment_index,
    index2rank,
    rank2index,
    validate_ranks,
)


@pytest.mark.parametrize("ranks", [(1, 1, 1), (2, 3, 1), (2, 2, 2), (1, 4, 3)])
def test_rank_index_roundtrip(ranks):
    """Every rank id maps to a unique index and back."""
    n = int(np.prod(ranks))
    indices = {rank2index(r, ranks) for r in range(n)}
    assert len(indices) == n
    for r in range(n):
        assert index2rank(*rank2index(r, ranks), ranks) == r


def test_z_is_fastest_axis():
    assert rank2index(0, (2, 2, 2)) == (1, 1, 1)
    assert rank2index(1, (2, 2, 2)) == (1, 1, 2)
    assert rank2index(2, (2, 2, 2)) == (1, 2, 1)
    assert rank2index(4, (2, 2, 2)) == (2, 1, 1)


def test_increment_decrement():
    assert increment_index(1, 1, Periodic) is None
    assert increment_index(3, 3, Periodic) == 1
    assert increment_index(3, 3, Bounded) is None
    assert decrement_index(1, 3, Periodic) == 3
    assert decrement_index(1, 3, Bounded) is None
    assert decrement_index(2, 3, Bounded) == 1


def test_validate_ranks():
    assert validate_ranks([1, 2, 1], 2) == (1, 2, 1)
    with pytest.raises(ConfigurationError, match="inconsistent"):
        validate_ranks((2, 2, 1), 3)
    with pytest.raises(ConfigurationError):
        validate_ranks((0, 1, 1), 0)


def test_periodic_connectivity_with_two_ranks():
    """Both neighbours along a periodic two-rank axis are the same rank."""
    conn = RankConnectivity.from_topology((1, 1, 1), (1, 2, 1), (Periodic, Periodic, Bounded))
    assert conn.north == 1
    assert conn.south == 1
    assert conn.east is None and conn.west is None
    assert conn.n_neighbors == 2


def test_bounded_connectivity_edges():
    topo = (Bounded, Bounded, Flat)
    first = RankConnectivity.from_topology((1, 1, 1), (3, 1, 1), topo)
    middle = RankConnectivity.from_topology((2, 1, 1), (3, 1, 1), topo)
    last = RankConnectivity.from_topology((3, 1, 1), (3, 1, 1), topo)

    assert first.west is None and first.east == 1
    assert middle.west == 0 and middle.east == 2
    assert last.west == 1 and last.east is None


class _FakeComm:
    def __init__(self, rank, size):
        self._rank, self._size = rank, size

    def Get_rank(self):
        return self._rank

    def Get_size(self):
        return self._size


def test_decomposition_covers_domain():
    """Each global cell is owned by exactly one rank."""
    full = RegularGrid((8, 12, 4), topology=(Periodic, Bounded, Bounded))
    ranks = (2, 3, 1)
    covered = np.zeros(full.size, dtype=int)
    for r in range(6):
        d = RankDecomposition(full, ranks, _FakeComm(r, 6))
        sl = tuple(slice(s, e) for s, e in zip(d.global_start, d.global_end))
        covered[sl] += 1
        assert d.local_shape == (4, 4, 4)
    assert np.all(covered == 1)


def test_decomposition_boundaries_and_origin():
    full = RegularGrid((8, 8, 2), extent=(2.0, 4.0, 1.0), topology=(Bounded, Bounded, Bounded))
    d = RankDecomposition(full, (2, 1, 1), _FakeComm(1, 2))
    assert d.my_index == (2, 1, 1)
    assert d.is_boundary["east"] and not d.is_boundary["west"]
    assert d.local_grid.origin[0] == pytest.approx(1.0)
    assert d.local_grid.extent == (1.0, 4.0, 1.0)


def test_indivisible_grid_raises():
    full = RegularGrid((10, 8, 2))
    with pytest.raises(ConfigurationError, match="not divisible"):
        RankDecomposition(full, (3, 1, 1), _FakeComm(0, 3))


def test_periodic_wraparound_with_four_ranks():
    conn = RankConnectivity.from_topology((1, 1, 1), (4, 1, 1), (Periodic, Bounded, Bounded))
    assert conn.west == index2rank(4, 1, 1, (4, 1, 1)) == 3
    assert conn.east == 1
    last = RankConnectivity.from_topology((1, 4, 1), (1, 4, 1), (Periodic, Bounded, Bounded))
    assert last.north is None and last.south == 2
