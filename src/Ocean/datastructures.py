"""Data structures for model configuration and results.

Architecture: 2x2 matrix of Params vs Metrics × Global vs Local

                 Params (input/config)         Metrics (output/results)
                 ─────────────────────         ────────────────────────
Global           GlobalParams                  GlobalMetrics
(same across     size, ranks, dt, chi,         wall_time, steps,
ranks / agg)     free_surface, solver...       eta_volume_drift...

Local            LocalParams                   LocalMetrics
(per-rank)       rank, hostname,               step_times[],
                 neighbors, local_shape...     halo_times[]...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError

FREE_SURFACES = ("explicit", "implicit")
SOLVER_METHODS = ("PreconditionedConjugateGradient", "FFTBased")


# ============================================================================
# Global (identical across ranks, or aggregated on rank 0)
# ============================================================================


@dataclass
class GlobalParams:
    """Run configuration - validated here, logged to MLflow as params.

    Immutable configuration set before the run. Identical across all MPI ranks.
    """

    # Grid
    size: Tuple[int, int, int] = (32, 32, 8)
    extent: Tuple[float, float, float] = (1.0e5, 1.0e5, 100.0)
    halo: Tuple[int, int, int] = (1, 1, 1)
    topology: Tuple[str, str, str] = ("Periodic", "Periodic", "Bounded")

    # Parallelization
    ranks: Tuple[int, int, int] = (1, 1, 1)

    # Time stepping
    dt: float = 20.0
    chi: float = 0.1
    n_steps: int = 10

    # Free surface
    free_surface: str = "explicit"  # "explicit" | "implicit"
    solver_method: str = "PreconditionedConjugateGradient"  # | "FFTBased"
    gravitational_acceleration: float = 9.81
    tolerance: float = 1e-10
    max_iter: int = 500

    # Physics
    tracers: Tuple[str, ...] = ("c",)
    nu: float = 0.0
    kappa: float = 0.0

    # Numba
    use_numba: bool = False
    numba_threads: int = 1

    # Experiment tracking
    experiment_name: str = "default"

    # Auto-detected at runtime (not from config)
    environment: str = field(init=False)
    n_ranks: int = field(init=False)

    def __post_init__(self):
        """Normalize sequences and compute derived values."""
        self.size = tuple(int(n) for n in self.size)
        self.extent = tuple(float(L) for L in self.extent)
        self.halo = tuple(int(h) for h in self.halo)
        self.topology = tuple(str(t) for t in self.topology)
        self.ranks = tuple(int(r) for r in self.ranks)
        self.tracers = tuple(self.tracers)

        if self.free_surface not in FREE_SURFACES:
            raise ConfigurationError(
                f"Unknown free surface: {self.free_surface}. Use one of {FREE_SURFACES}."
            )
        if self.solver_method not in SOLVER_METHODS:
            raise ConfigurationError(
                f"Unknown solver method: {self.solver_method}. Use one of {SOLVER_METHODS}."
            )
        if self.dt <= 0:
            raise ConfigurationError(f"dt must be positive, got {self.dt}")

        self.n_ranks = self.ranks[0] * self.ranks[1] * self.ranks[2]
        self.environment = (
            "hpc"
            if os.environ.get("LSB_JOBID") or os.environ.get("SLURM_JOB_ID")
            else "local"
        )

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible params dict (bools as int, tuples as str)."""
        out = {}
        for k, v in self.__dict__.items():
            if isinstance(v, bool):
                v = int(v)
            elif isinstance(v, tuple):
                v = "x".join(str(x) for x in v)
            out[k] = v
        return out


@dataclass
class GlobalMetrics:
    """Aggregated results - logged to MLflow as metrics.

    Final results computed/aggregated on rank 0.
    """

    steps: int = 0
    model_time: Optional[float] = None
    wall_time: Optional[float] = None

    # Timing breakdown (sum across all steps)
    total_step_time: Optional[float] = None
    total_halo_time: Optional[float] = None

    # Free surface
    eta_volume_initial: Optional[float] = None
    eta_volume_final: Optional[float] = None
    eta_volume_drift: Optional[float] = None
    mean_solver_iterations: Optional[float] = None

    # Performance
    mcups: Optional[float] = None  # Million cell updates per second

    # Numba runtime info (what was actually available)
    observed_numba_threads: Optional[int] = None

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible dict (no None, bools as int)."""
        return {
            k: (int(v) if isinstance(v, bool) else v)
            for k, v in self.__dict__.items()
            if v is not None
        }


# ============================================================================
# Local (per-rank)
# ============================================================================


@dataclass
class LocalParams:
    """Per-rank geometry - gathered to rank 0, logged as artifact."""

    rank: int
    hostname: str = ""
    index: Optional[Tuple[int, int, int]] = None
    neighbors: Dict[str, Optional[int]] = field(default_factory=dict)
    local_shape: Optional[Tuple[int, int, int]] = None
    global_start: Optional[Tuple[int, int, int]] = None
    global_end: Optional[Tuple[int, int, int]] = None
    # CPU binding info
    cpu_ids: Optional[List[int]] = None  # Cores this rank can run on


@dataclass
class LocalMetrics:
    """Per-rank timeseries, accumulated while stepping.

    ``eta_volume`` and ``solver_iterations`` are global quantities recorded
    identically on every rank.
    """

    step_times: List[float] = field(default_factory=list)
    halo_times: List[float] = field(default_factory=list)
    solver_iterations: List[int] = field(default_factory=list)
    eta_volume: List[float] = field(default_factory=list)

    def clear(self):
        """Clear all timeseries data."""
        self.step_times.clear()
        self.halo_times.clear()
        self.solver_iterations.clear()
        self.eta_volume.clear()

    def to_mlflow_batch(self) -> list:
        """Convert timeseries to MLflow Metric objects for batch logging."""
        from mlflow.entities import Metric

        return [
            Metric(key=name, value=float(value), timestamp=0, step=step)
            for name, values in self.__dict__.items()
            for step, value in enumerate(values)
        ]
