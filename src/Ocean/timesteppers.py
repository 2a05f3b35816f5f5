"""Quasi-second-order Adams-Bashforth time stepping."""

from __future__ import annotations

from typing import Mapping, Tuple

import numpy as np

from .fields import Field, TendencyState
from .kernels import NumPyKernel

# Off-centering that turns the AB2 combination into forward Euler
EULER_CHI = -0.5


def ab2_step_field(field: Field, dt: float, chi: float, Gn: np.ndarray, Gm: np.ndarray, kernel=None):
    """Advance the interior of ``field`` by ``Δt((3/2+χ)Gⁿ − (1/2+χ)G⁻)``.

    Halos are left untouched.
    """
    (kernel or NumPyKernel()).ab2_step(field.interior, Gn, Gm, dt, chi)


class QuasiAdamsBashforth2TimeStepper:
    """Holds the tendency pairs of every prognostic field.

    Parameters
    ----------
    shapes : mapping of str to tuple
        Interior shape per prognostic field name.
    chi : float
        Off-centering parameter used after the first step.
    kernel : NumPyKernel or NumbaKernel, optional
    """

    def __init__(self, shapes: Mapping[str, Tuple[int, int, int]], chi: float = 0.1, kernel=None):
        self.chi = chi
        self.kernel = kernel or NumPyKernel()
        self.tendencies = TendencyState(shapes)

    def chi_for(self, euler: bool) -> float:
        return EULER_CHI if euler else self.chi

    def rotate(self):
        self.tendencies.rotate()

    def step_field(self, field: Field, name: str, dt: float, chi: float):
        Gn, Gm = self.tendencies[name]
        ab2_step_field(field, dt, chi, Gn, Gm, kernel=self.kernel)
