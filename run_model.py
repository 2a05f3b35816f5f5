"""
Model Runner - runs in-process or under mpiexec based on n_ranks.

Usage:
    python run_model.py
    python run_model.py n_ranks=2 ranks=[1,2,1] free_surface=implicit
    python run_model.py --multirun dt=10,20,40
"""

import dataclasses
import json
import logging
import os
import subprocess
import sys

import hydra
from omegaconf import DictConfig, OmegaConf

log = logging.getLogger(__name__)


def _params_from_cfg(cfg: DictConfig):
    """Build GlobalParams from the config keys it declares."""
    from Ocean import GlobalParams

    data = OmegaConf.to_container(cfg, resolve=True)
    names = {f.name for f in dataclasses.fields(GlobalParams) if f.init}
    return GlobalParams(**{k: v for k, v in data.items() if k in names})


def _log_results(cfg, params, metrics, timeseries, rank_infos=None):
    """Log model results to MLflow."""
    from utils.mlflow.io import (
        log_metrics_dict,
        log_parameters,
        log_rank_table,
        log_timeseries_metrics,
        start_mlflow_run_context,
    )
    from utils.hydra.callbacks import upload_job_artifacts

    Nx, Ny, Nz = params.size
    run_name = f"{params.free_surface}_{Nx}x{Ny}x{Nz}_p{params.n_ranks}"
    if params.free_surface == "implicit":
        run_name += f"_{params.solver_method}"

    with start_mlflow_run_context(
        experiment_name=params.experiment_name,
        parent_run_name=f"{Nx}x{Ny}x{Nz}",
        child_run_name=run_name,
    ):
        log_parameters(params.to_mlflow())
        log_metrics_dict(metrics.to_mlflow())
        log_timeseries_metrics(timeseries)
        if rank_infos:
            log_rank_table(rank_infos)
        upload_job_artifacts()

    log.info(
        f"Done: {metrics.steps} steps, t={metrics.model_time:.3g}s, "
        f"wall={metrics.wall_time:.3f}s"
        + (f", eta drift={metrics.eta_volume_drift:.2e}" if metrics.eta_volume_drift is not None else "")
    )


@hydra.main(config_path="Experiments/hydra-conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Entry point - runs in-process or spawns MPI based on n_ranks."""
    n_ranks = cfg.get("n_ranks", 1)
    log.info(f"{cfg.free_surface} free surface, size={list(cfg.size)}, n_ranks={n_ranks}")

    if n_ranks == 1:
        _run_inprocess(cfg)
    else:
        _spawn_mpi(cfg, n_ranks)


def _run_inprocess(cfg: DictConfig):
    """Run on a single rank."""
    from mpi4py import MPI
    from Ocean import run_simulation
    from utils.mlflow.io import setup_mlflow_tracking

    setup_mlflow_tracking(mode=cfg.mlflow.mode)
    params = _params_from_cfg(cfg)
    model, metrics = run_simulation(params, MPI.COMM_WORLD)
    _log_results(cfg, params, metrics, model.timeseries, [model.dgrid.get_rank_info()])


def _spawn_mpi(cfg: DictConfig, n_ranks: int):
    """Spawn MPI subprocess running this file with the resolved config."""
    env = os.environ.copy()
    env["MPI_SUBPROCESS"] = "1"

    payload = json.dumps(OmegaConf.to_container(cfg, resolve=True))
    cmd = ["mpiexec", "-n", str(n_ranks), sys.executable, os.path.abspath(__file__), payload]

    timeout = cfg.get("mpi", {}).get("timeout", 600)
    result = subprocess.run(cmd, capture_output=True, text=True, env=env, timeout=timeout)
    for line in (result.stdout or "").strip().split("\n"):
        if line:
            log.info(line)
    for line in (result.stderr or "").strip().split("\n"):
        if line:
            log.warning(line) if "error" in line.lower() else log.info(line)
    if result.returncode != 0:
        raise RuntimeError(f"mpiexec exited with status {result.returncode}")


def _run_mpi_model(cfg: DictConfig, comm):
    """Run the model (called within mpiexec subprocess)."""
    from Ocean import run_simulation
    from utils.mlflow.io import setup_mlflow_tracking

    rank = comm.Get_rank()
    params = _params_from_cfg(cfg)
    model, metrics = run_simulation(params, comm)
    rank_infos = comm.gather(model.dgrid.get_rank_info(), root=0)

    if rank == 0:
        setup_mlflow_tracking(mode=cfg.mlflow.mode)
        _log_results(cfg, params, metrics, model.timeseries, rank_infos)


if __name__ == "__main__":
    if os.environ.get("MPI_SUBPROCESS"):
        from mpi4py import MPI

        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
        _run_mpi_model(OmegaConf.create(json.loads(sys.argv[1])), MPI.COMM_WORLD)
    else:
        main()
