"""Distributed hydrostatic free-surface ocean core.

A modular framework for stepping velocities, tracers and a free surface on
an MPI-decomposed structured grid. Supports pluggable free-surface variants
(explicit, implicit with FFT or conjugate-gradient solves) and NumPy or
Numba kernels.

Building blocks
---------------
- RegularGrid, DistributedGrid: Global grid and its rank decomposition
- Field, FieldBoundaryConditions: Halo-padded arrays and their boundaries
- DistributedFFTPoissonSolver, PreconditionedConjugateGradientSolver

Time stepping
-------------
- HydrostaticFreeSurfaceModel: AB2 model with Explicit/ImplicitFreeSurface
- Simulation: Stop criteria, output writers and diagnostics
"""

from pathlib import Path

from .errors import CommunicationError, ConfigurationError, SolverConvergenceError
from .grid import RegularGrid, Periodic, Bounded, Flat, Center, Face
from .boundary_conditions import (
    FieldBoundaryConditions,
    Periodic as PeriodicBoundaryCondition,
    NoFlux,
    Flux,
    Value,
    HaloCommunication,
)
from .fields import Field, FieldSnapshot, FreeSurfaceState, TendencyState
from .datastructures import GlobalParams, GlobalMetrics, LocalParams, LocalMetrics
from .kernels import NumPyKernel, NumbaKernel
from .mpi import DistributedGrid
from .solvers import (
    DistributedFFTPoissonSolver,
    PreconditionedConjugateGradientSolver,
    ImplicitFreeSurfaceOperator,
)
from .tasks import TaskGraph
from .timesteppers import QuasiAdamsBashforth2TimeStepper, ab2_step_field
from .free_surface import ExplicitFreeSurface, ImplicitFreeSurface
from .closures import ScalarDiffusivity
from .models import Clock, HydrostaticFreeSurfaceModel
from .output_writers import (
    IterationInterval,
    TimeInterval,
    NaNChecker,
    NumpyArchiveWriter,
    InMemoryWriter,
)
from .simulation import Simulation
from .problems import random_divergent_source_term, uniform_tracer_gradient, gaussian_bump
from .runner import create_model, run_simulation, run_model

__all__ = [
    # Errors
    "ConfigurationError",
    "CommunicationError",
    "SolverConvergenceError",
    # Grid
    "RegularGrid",
    "Periodic",
    "Bounded",
    "Flat",
    "Center",
    "Face",
    "DistributedGrid",
    # Boundary conditions and fields
    "FieldBoundaryConditions",
    "PeriodicBoundaryCondition",
    "NoFlux",
    "Flux",
    "Value",
    "HaloCommunication",
    "Field",
    "FieldSnapshot",
    "FreeSurfaceState",
    "TendencyState",
    # Data structures
    "GlobalParams",
    "GlobalMetrics",
    "LocalParams",
    "LocalMetrics",
    # Kernels
    "NumPyKernel",
    "NumbaKernel",
    # Solvers
    "DistributedFFTPoissonSolver",
    "PreconditionedConjugateGradientSolver",
    "ImplicitFreeSurfaceOperator",
    # Time stepping
    "TaskGraph",
    "QuasiAdamsBashforth2TimeStepper",
    "ab2_step_field",
    "ExplicitFreeSurface",
    "ImplicitFreeSurface",
    "ScalarDiffusivity",
    "Clock",
    "HydrostaticFreeSurfaceModel",
    # Simulation and output
    "Simulation",
    "IterationInterval",
    "TimeInterval",
    "NaNChecker",
    "NumpyArchiveWriter",
    "InMemoryWriter",
    # Problem setup
    "random_divergent_source_term",
    "uniform_tracer_gradient",
    "gaussian_bump",
    # Runners
    "create_model",
    "run_simulation",
    "run_model",
    # Utilities
    "get_project_root",
]


def get_project_root() -> Path:
    """Get project root directory.

    Returns
    -------
    Path
        Project root directory (contains pyproject.toml).
    """
    current = Path(__file__).resolve().parent
    while current != current.parent:
        if (current / "pyproject.toml").exists():
            return current
        current = current.parent

    # Fallback: assume standard src layout
    return Path(__file__).resolve().parent.parent.parent
