"""Tests for fields, tendency pairs and snapshots."""

import numpy as np
import pytest

from Ocean import Center, Face, Field, FieldSnapshot, RegularGrid, TendencyState


@pytest.fixture
def grid():
    return RegularGrid((4, 6, 3), extent=(4.0, 6.0, 3.0), halo=(1, 2, 1))


def test_field_shapes(grid):
    f = Field(grid, name="c")
    assert f.data.shape == (6, 10, 5)
    assert f.interior.shape == (4, 6, 3)
    assert f.halo_slab("north").shape == (6, 2, 5)
    assert f.boundary_slab("west").shape == (1, 10, 5)


def test_field_rejects_wrong_shape(grid):
    with pytest.raises(ValueError, match="padded grid shape"):
        Field(grid, data=np.zeros(grid.size))


def test_set_from_function_uses_location(grid):
    f = Field(grid, location=(Face, Center, Center))
    f.set(lambda x, y, z: x)
    np.testing.assert_allclose(f.interior[:, 0, 0], [0.0, 1.0, 2.0, 3.0])

    c = Field(grid)
    c.set(lambda x, y, z: y)
    np.testing.assert_allclose(c.interior[0, :, 0], np.arange(6) + 0.5)


def test_fill_local_halos_periodic(grid):
    f = Field(grid)
    f.set(lambda x, y, z: x + 10 * y)
    f.fill_local_halos()
    np.testing.assert_array_equal(f.halo_slab("east")[:, 2:-2, 1:-1], f.interior[:1])
    np.testing.assert_array_equal(f.halo_slab("south")[1:-1, :, 1:-1], f.interior[:, -2:])


def test_tendency_rotation():
    state = TendencyState({"c": (2, 2, 2)})
    Gn, Gm = state["c"]
    Gn[...] = 3.0
    state.rotate()
    Gn2, Gm2 = state["c"]
    assert np.all(Gm2 == 3.0)
    assert np.all(Gn2 == 0.0)
    assert Gm2 is Gn


def test_snapshot_scope(grid):
    f = Field(grid, name="c")
    f.set(1.0)
    snap = FieldSnapshot({"c": f}, iteration=3, time=1.5)

    with pytest.raises(RuntimeError, match="not acquired"):
        snap["c"]

    with snap:
        view = snap["c"]
        assert np.all(view == 1.0)
        with pytest.raises(ValueError):
            view[0, 0, 0] = 2.0

    with pytest.raises(RuntimeError, match="released"):
        snap["c"]
    with pytest.raises(RuntimeError):
        snap.acquire()
