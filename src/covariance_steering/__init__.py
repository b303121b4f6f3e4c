"""
Minimum-energy covariance steering for discrete-time linear stochastic systems.

Steers the state covariance of x_{k+1} = A x_k + B u_k + w_k from Sigma_0 to
Sigma_N over a finite horizon by solving a semidefinite program, recovers the
time-varying feedback gains, and simulates the closed loop.

Key modules:
- linear_system: Linear stochastic system and its covariance recursion
- optimization: SDP formulation with the Schur complement LMI
- solver: cvxpy solver boundary with tri-state results
- control_policy: Gain extraction and Monte Carlo simulation
- ellipse: Covariance ellipse boundaries for plotting
- experiment: Scenario orchestration

Example usage:
    >>> from covariance_steering import SteeringConfig, run_scenario
    >>> result = run_scenario("a", SteeringConfig(num_trajectories=20))
    >>> result.solution.objective_value
"""

__version__ = "0.1.0"

# Import main classes and functions
from .config import PathBound, SteeringConfig
from .control_policy import (
    LinearFeedbackPolicy,
    empirical_covariances,
    extract_feedback_gains,
    simulate_monte_carlo_trajectories,
)
from .ellipse import CovarianceEllipse
from .errors import CovarianceSteeringError, DimensionError, GainExtractionError
from .experiment import (
    ScenarioResult,
    ScenarioStatus,
    create_example_problem,
    run_scenario,
    run_scenarios,
)
from .linear_system import LinearStochasticSystem, create_example_system
from .optimization import CovarianceSteeringProblem, SteeringSolution, expected_control_energy
from .solver import CvxpySolver, SolveResult, SolveStatus, SolverAdapter

__all__ = [
    # System modeling
    "LinearStochasticSystem",
    "create_example_system",

    # Optimization
    "CovarianceSteeringProblem",
    "SteeringSolution",
    "expected_control_energy",

    # Solver boundary
    "CvxpySolver",
    "SolveResult",
    "SolveStatus",
    "SolverAdapter",

    # Control policies
    "LinearFeedbackPolicy",
    "extract_feedback_gains",
    "simulate_monte_carlo_trajectories",
    "empirical_covariances",

    # Visualization data
    "CovarianceEllipse",

    # Scenarios
    "PathBound",
    "SteeringConfig",
    "ScenarioResult",
    "ScenarioStatus",
    "create_example_problem",
    "run_scenario",
    "run_scenarios",

    # Errors
    "CovarianceSteeringError",
    "DimensionError",
    "GainExtractionError",
]
