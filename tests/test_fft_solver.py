"""Tests for the distributed FFT/DCT Poisson solver."""

import numpy as np
import pytest

from Ocean import (
    Bounded,
    ConfigurationError,
    DistributedFFTPoissonSolver,
    DistributedGrid,
    Flat,
    Periodic,
    RegularGrid,
    random_divergent_source_term,
)
from Ocean.solvers import laplacian_eigenvalues


def _surface(n, topology):
    return RegularGrid((n, n, 1), extent=(1.0, 1.0, 1.0), topology=(*topology, Flat))


def _relative_residual(dgrid, rhs, shift=0.0):
    solver = DistributedFFTPoissonSolver(dgrid, shift=shift)
    x = dgrid.field(name="x")
    solver.solve(rhs, x)
    residual = solver.compute_residual(x, rhs)
    rms = np.sqrt(dgrid.allreduce_sum(float(np.sum(rhs**2))) / np.prod(dgrid.full_grid.size))
    return residual / rms


@pytest.mark.parametrize("n,ranks", [(16, (1, 1, 1)), (16, (1, 4, 1)), (64, (1, 4, 1)), (16, (2, 2, 1))])
def test_periodic_solve_residual(ranks_runner, n, ranks):
    full = _surface(n, (Periodic, Periodic))

    def body(comm):
        dgrid = DistributedGrid(full, ranks, comm)
        return _relative_residual(dgrid, random_divergent_source_term(dgrid, seed=3))

    for rel in ranks_runner(int(np.prod(ranks)), body):
        assert rel < 1e-10


@pytest.mark.parametrize("shift", [0.0, 2.5])
def test_bounded_solve_residual(ranks_runner, shift):
    full = _surface(16, (Bounded, Bounded))

    def body(comm):
        dgrid = DistributedGrid(full, (1, 4, 1), comm)
        rhs = random_divergent_source_term(dgrid, seed=5)
        return _relative_residual(dgrid, rhs, shift=shift)

    for rel in ranks_runner(4, body):
        assert rel < 1e-10


@pytest.mark.parametrize("topology", [(Bounded, Bounded), (Bounded, Periodic), (Periodic, Periodic)])
def test_divergent_source_sums_to_zero(ranks_runner, topology):
    full = _surface(16, topology)

    def body(comm):
        dgrid = DistributedGrid(full, (1, 4, 1), comm)
        rhs = random_divergent_source_term(dgrid, seed=5)
        return dgrid.allreduce_sum(float(np.sum(rhs))), float(np.max(np.abs(rhs)))

    for total, scale in ranks_runner(4, body):
        assert abs(total) < 1e-12 * 16 * 16 * scale


def test_mixed_topology_matches_single_rank(ranks_runner):
    """Decomposed and undecomposed solves agree point by point."""
    full = _surface(16, (Periodic, Bounded))

    def source(x, y, z):
        return np.cos(2 * np.pi * x) * np.cos(3 * np.pi * y) + 0.3 * np.sin(4 * np.pi * x)

    def make_body(ranks):
        def body(comm):
            dgrid = DistributedGrid(full, ranks, comm)
            rhs = dgrid.field()
            rhs.set(source)
            x = dgrid.field()
            DistributedFFTPoissonSolver(dgrid, shift=0.0).solve(rhs.interior.copy(), x)
            return dgrid.gather_interior(x)
        return body

    serial = ranks_runner(1, make_body((1, 1, 1)))[0]
    parallel = ranks_runner(4, make_body((2, 2, 1)))[0]
    np.testing.assert_allclose(parallel, serial, rtol=1e-10, atol=1e-12)


def test_zero_mode_removed(ranks_runner):
    full = _surface(8, (Periodic, Periodic))

    def body(comm):
        dgrid = DistributedGrid(full, (1, 1, 1), comm)
        return DistributedFFTPoissonSolver(dgrid).solve(np.ones(dgrid.local_shape))

    np.testing.assert_allclose(ranks_runner(1, body)[0], 0.0, atol=1e-12)


def test_solve_is_not_reentrant(ranks_runner):
    full = _surface(8, (Periodic, Periodic))

    def body(comm):
        solver = DistributedFFTPoissonSolver(DistributedGrid(full, (1, 1, 1), comm))
        solver._lock.acquire()
        try:
            solver.solve(np.zeros((8, 8, 1)))
        finally:
            solver._lock.release()

    with pytest.raises(RuntimeError, match="not reentrant"):
        ranks_runner(1, body)


def test_missing_transpose_partner_raises(ranks_runner):
    full = RegularGrid((2, 8, 1), topology=(Periodic, Periodic, Flat))

    def body(comm):
        DistributedFFTPoissonSolver(DistributedGrid(full, (1, 4, 1), comm))

    with pytest.raises(ConfigurationError, match="Cannot transpose y"):
        ranks_runner(4, body)


def test_negative_shift_rejected(ranks_runner):
    full = _surface(8, (Periodic, Periodic))

    def body(comm):
        DistributedFFTPoissonSolver(DistributedGrid(full, (1, 1, 1), comm), shift=-1.0)

    with pytest.raises(ConfigurationError):
        ranks_runner(1, body)


def test_laplacian_eigenvalues():
    lam = laplacian_eigenvalues(8, 0.5, Periodic)
    assert lam[0] == 0.0
    assert lam[4] == pytest.approx(-16.0)
    assert np.all(laplacian_eigenvalues(1, 1.0, Flat) == 0.0)
    assert np.all(laplacian_eigenvalues(8, 1.0, Bounded)[1:] < 0.0)
