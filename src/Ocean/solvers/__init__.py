"""Distributed elliptic solvers.

- DistributedFFTPoissonSolver: Direct spectral solve with Alltoall transposes
- PreconditionedConjugateGradientSolver: Matrix-free Jacobi-preconditioned CG
- ImplicitFreeSurfaceOperator: SPD operator of the implicit free surface
"""

from .base import BaseSolver
from .fft_mpi import DistributedFFTPoissonSolver, laplacian_eigenvalues
from .pcg_mpi import (
    DiagonalPreconditioner,
    ImplicitFreeSurfaceOperator,
    PreconditionedConjugateGradientSolver,
)

__all__ = [
    "BaseSolver",
    "DistributedFFTPoissonSolver",
    "PreconditionedConjugateGradientSolver",
    "ImplicitFreeSurfaceOperator",
    "DiagonalPreconditioner",
    "laplacian_eigenvalues",
]
