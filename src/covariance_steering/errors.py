"""
Exceptions raised by the covariance steering pipeline.

Solver outcomes (infeasibility, numerical failure, timeout) are not
exceptions; they are carried as tags on ``SolveResult`` / ``ScenarioResult``.
"""


class CovarianceSteeringError(Exception):
    """Base class for covariance steering failures."""
    pass


class DimensionError(CovarianceSteeringError, ValueError):
    """Raised when system matrices, covariances or indices have incompatible shapes."""
    pass


class GainExtractionError(CovarianceSteeringError):
    """Raised when a solved covariance is too ill-conditioned to invert."""

    def __init__(self, step: int, condition_number: float, max_condition: float):
        self.step = step
        self.condition_number = condition_number
        self.max_condition = max_condition
        super().__init__(
            f"Sigma_{step} is near-singular: condition number {condition_number:.3e} "
            f"exceeds {max_condition:.3e}"
        )
