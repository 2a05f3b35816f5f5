"""Tests for AB2 and Laplacian kernels."""

import numpy as np
import pytest

from Ocean import Bounded, Field, Flat, NumbaKernel, NumPyKernel, Periodic, RegularGrid
from Ocean import operators
from Ocean.kernels import create_kernel


@pytest.fixture(scope="module")
def numba_kernel():
    kernel = NumbaKernel(specified_numba_threads=1)
    kernel.warmup()
    return kernel


def test_kernels_produce_identical_ab2(numba_kernel):
    """NumPy and Numba AB2 updates should agree."""
    rng = np.random.default_rng(0)
    phi = rng.standard_normal((6, 5, 4))
    Gn, Gm = rng.standard_normal((2, 6, 5, 4))

    a, b = phi.copy(), phi.copy()
    NumPyKernel().ab2_step(a, Gn, Gm, 0.3, 0.1)
    numba_kernel.ab2_step(b, Gn, Gm, 0.3, 0.1)

    np.testing.assert_allclose(a, b, atol=1e-14)
    np.testing.assert_allclose(a, phi + 0.3 * (1.6 * Gn - 0.6 * Gm))


@pytest.mark.parametrize(
    "topology", [(Periodic, Periodic, Bounded), (Bounded, Periodic, Flat)]
)
def test_kernels_produce_identical_laplacian(numba_kernel, topology):
    nz = 1 if topology[2] is Flat else 4
    grid = RegularGrid((8, 6, nz), extent=(2.0, 3.0, 1.0), topology=topology)
    f = Field(grid)
    f.data[...] = np.random.default_rng(1).standard_normal(grid.padded_shape)

    np.testing.assert_allclose(
        NumPyKernel().laplacian(f.data, grid),
        numba_kernel.laplacian(f.data, grid),
        rtol=1e-12,
        atol=1e-12,
    )


def test_laplacian_of_quadratic():
    """The 7-point stencil is exact for quadratics away from boundaries."""
    grid = RegularGrid((8, 8, 8), extent=(1.0, 2.0, 4.0), topology=(Bounded, Bounded, Bounded))
    f = Field(grid)
    x, y, z = (grid.coordinates(a) for a in range(3))
    dx, dy, dz = grid.spacing
    xp = np.concatenate([[x[0] - dx], x, [x[-1] + dx]])
    yp = np.concatenate([[y[0] - dy], y, [y[-1] + dy]])
    zp = np.concatenate([[z[0] - dz], z, [z[-1] + dz]])
    X, Y, Z = np.meshgrid(xp, yp, zp, indexing="ij")
    f.data[...] = X**2 + 2 * Y**2 + 3 * Z**2

    np.testing.assert_allclose(operators.laplacian(f.data, grid), 12.0, rtol=1e-9)


def test_create_kernel():
    assert isinstance(create_kernel(False), NumPyKernel)
    assert create_kernel(False).observed_numba_threads is None
