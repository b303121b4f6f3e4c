"""
Run configuration for covariance steering scenarios.

Everything a scenario run needs beyond the system description is passed
explicitly through ``SteeringConfig``.
"""

import equinox as eqx


class PathBound(eqx.Module):
    """
    Upper bound on a single entry of an intermediate covariance:

        (Sigma_step)[row, col] <= upper
    """

    step: int = 5
    row: int = 1
    col: int = 1
    upper: float = 0.5


class SteeringConfig(eqx.Module):
    """
    Configuration for building, solving and simulating a scenario.

    Attributes:
        solver: cvxpy solver name (an SDP-capable solver, e.g. "CLARABEL" or "SCS")
        time_limit: Optional solver deadline in seconds
        num_trajectories: Number of Monte Carlo sample paths
        seed: Seed for the PRNG key used by the simulator
        regularization: Diagonal jitter added to covariances before sampling
        max_condition: Largest condition number of Sigma_k accepted when inverting
        ellipse_points: Number of boundary points per covariance ellipse
        ellipse_scale: Multiplier on sqrt(eigenvalues) for ellipse semi-axes
        path_bound: Intermediate bound used by the "b" scenario
        verbose: Print progress and forward verbosity to the solver
    """

    solver: str = "CLARABEL"
    time_limit: float | None = None
    num_trajectories: int = 20
    seed: int = 0
    regularization: float = 1e-9
    max_condition: float = 1e12
    ellipse_points: int = 100
    ellipse_scale: float = 2.0
    path_bound: PathBound = eqx.field(default_factory=PathBound)
    verbose: bool = False
