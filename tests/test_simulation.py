"""Tests for the simulation loop, schedules, writers and diagnostics."""

import numpy as np
import pytest

from Ocean import (
    ConfigurationError,
    DistributedGrid,
    HydrostaticFreeSurfaceModel,
    InMemoryWriter,
    IterationInterval,
    NaNChecker,
    NumpyArchiveWriter,
    RegularGrid,
    Simulation,
    TimeInterval,
)

FULL = RegularGrid((8, 8, 2), extent=(1e4, 1e4, 10.0))


def _run(comm, ranks=(1, 1, 1), **kwargs):
    setup = kwargs.pop("setup", None)
    model = HydrostaticFreeSurfaceModel(DistributedGrid(FULL, ranks, comm), forcing={"c": 1.0})
    if setup:
        setup(model)
    with model:
        simulation = Simulation(model, **kwargs)
        simulation.run()
    return model, simulation


def test_writer_schedule(ranks_runner):
    writer = InMemoryWriter(IterationInterval(2), fields=["c"])

    def body(comm):
        return _run(comm, dt=1.0, stop_iteration=4, output_writers={"mem": writer})

    model, _ = ranks_runner(1, body)[0]
    assert [r["iteration"] for r in writer.records] == [0, 2, 4]
    np.testing.assert_allclose(writer.records[-1]["c"], 4.0)
    assert set(writer.records[0]) == {"c", "iteration", "time"}
    assert len(model.timeseries.eta_volume) == 5


def test_stop_time_shortens_last_step(ranks_runner):
    def body(comm):
        return _run(comm, dt=0.4, stop_time=1.0)

    model, _ = ranks_runner(1, body)[0]
    assert model.clock.iteration == 3
    assert model.clock.time == pytest.approx(1.0)


def test_time_interval(ranks_runner):
    writer = InMemoryWriter(TimeInterval(1.0))

    def body(comm):
        return _run(comm, dt=0.5, stop_time=3.0, output_writers={"mem": writer})

    ranks_runner(1, body)
    assert [r["time"] for r in writer.records] == pytest.approx([0.0, 1.0, 2.0, 3.0])


def test_nan_checker_raises_on_all_ranks(ranks_runner):
    def poison(model):
        if model.dgrid.rank == 1:
            model.tracers["c"].interior[0, 0, 0] = np.nan

    def body(comm):
        try:
            _run(
                comm,
                ranks=(1, 2, 1),
                setup=poison,
                dt=1.0,
                stop_iteration=2,
                diagnostics={"nan": NaNChecker(IterationInterval(1))},
            )
        except FloatingPointError as e:
            return str(e)
        return None

    messages = ranks_runner(2, body)
    assert all(m is not None and "iteration 0" in m for m in messages)
    assert "rank 1" in messages[1]


def test_archive_writer(ranks_runner, tmp_path):
    def body(comm):
        writer = NumpyArchiveWriter(tmp_path / "out" / "run", IterationInterval(1), fields=["c", "eta"])
        _run(comm, ranks=(1, 2, 1), dt=1.0, stop_iteration=1, output_writers={"npz": writer})
        return writer.written

    written = ranks_runner(2, body)
    assert [p.name for p in written[0]] == ["run_rank0_iteration0.npz", "run_rank0_iteration1.npz"]
    with np.load(written[1][-1]) as archive:
        assert archive["c"].shape == (8, 4, 2)
        assert archive["eta"].shape == (8, 4, 1)
        assert int(archive["iteration"]) == 1


def test_simulation_needs_stop_criterion(ranks_runner):
    def body(comm):
        with HydrostaticFreeSurfaceModel(DistributedGrid(FULL, (1, 1, 1), comm)) as model:
            Simulation(model, dt=1.0)

    with pytest.raises(ConfigurationError, match="stop_iteration or stop_time"):
        ranks_runner(1, body)


def test_interval_validation():
    with pytest.raises(ValueError):
        IterationInterval(0)
    with pytest.raises(ValueError):
        TimeInterval(-1.0)
