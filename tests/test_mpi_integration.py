"""MPI integration tests - spawn actual MPI processes via run_model."""

import shutil

import pytest

from Ocean import run_model

pytestmark = pytest.mark.skipif(shutil.which("mpiexec") is None, reason="mpiexec not available")

CONFIG = dict(size=[16, 16, 4], extent=[1e5, 1e5, 100.0], dt=20.0, n_steps=5)


# Run each configuration once, reuse results
@pytest.fixture(scope="module")
def mpi_results():
    return {
        "explicit": run_model(n_ranks=2, ranks=[1, 2, 1], **CONFIG),
        "pcg": run_model(
            n_ranks=2, ranks=[1, 2, 1], free_surface="implicit",
            solver_method="PreconditionedConjugateGradient", tolerance=1e-12, **CONFIG
        ),
        "fft": run_model(
            n_ranks=4, ranks=[2, 2, 1], free_surface="implicit", solver_method="FFTBased", **CONFIG
        ),
    }


@pytest.mark.parametrize("config", ["explicit", "pcg", "fft"])
def test_mpi_runs_and_conserves(mpi_results, config):
    r = mpi_results[config]
    assert "error" not in r, f"Failed: {r.get('error')}"
    assert r["steps"] == 5
    assert r["eta_volume_drift"] < 1e-9


def test_implicit_reports_solver_iterations(mpi_results):
    assert mpi_results["pcg"]["mean_solver_iterations"] > 0
    assert mpi_results["fft"]["mean_solver_iterations"] == 0
