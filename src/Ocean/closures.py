"""Turbulence closures contributing diffusive tendencies."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from . import operators

VELOCITY_NAMES = ("u", "v")


@dataclass(frozen=True)
class ScalarDiffusivity:
    """Constant Laplacian viscosity ``nu`` and diffusivity ``kappa``."""

    nu: float = 0.0
    kappa: float = 0.0

    def diffusive_tendency(self, name: str, field, grid) -> np.ndarray:
        coefficient = self.nu if name in VELOCITY_NAMES else self.kappa
        if coefficient == 0.0:
            return np.zeros(grid.size)
        return coefficient * operators.laplacian(field.data, grid)
