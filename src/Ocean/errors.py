"""Exception types raised by the distributed core.

Configuration and communication errors are fatal: they are raised at setup
or mid-exchange and are not recovered. Convergence errors are surfaced to
the caller of ``time_step`` who may shrink ``dt`` and try again.
"""


class ConfigurationError(ValueError):
    """Rank counts, grid extents or topology are inconsistent."""


class CommunicationError(RuntimeError):
    """A send/receive failed or delivered a buffer of the wrong shape."""

    def __init__(self, message: str, side: str = None, peer: int = None):
        super().__init__(message)
        self.side = side
        self.peer = peer


class SolverConvergenceError(RuntimeError):
    """An iterative elliptic solve did not reach its tolerance."""

    def __init__(self, iterations: int, residual: float, tolerance: float):
        super().__init__(
            f"Elliptic solve did not converge after {iterations} iterations "
            f"(residual={residual:.3e}, tolerance={tolerance:.1e})"
        )
        self.iterations = iterations
        self.residual = residual
        self.tolerance = tolerance
