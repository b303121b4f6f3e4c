"""
End-to-end covariance steering scenarios.

A scenario builds the SDP, solves it, recovers the feedback gains, simulates
closed-loop sample paths and produces covariance ellipses for rendering.
Scenario "a" is unconstrained; scenario "b" adds the intermediate path bound.
"""

import enum
from typing import Iterable, Optional

import equinox as eqx
import jax
import jax.numpy as jnp
from jaxtyping import Array, Float

from .config import SteeringConfig
from .control_policy import (
    LinearFeedbackPolicy,
    empirical_covariances,
    extract_feedback_gains,
    simulate_monte_carlo_trajectories,
)
from .ellipse import CovarianceEllipse
from .errors import CovarianceSteeringError, GainExtractionError
from .linear_system import LinearStochasticSystem, create_example_system
from .optimization import CovarianceSteeringProblem, SteeringSolution
from .solver import CvxpySolver, SolveStatus, SolverAdapter

SCENARIO_LABELS = ("a", "b")


class ScenarioStatus(enum.Enum):
    COMPLETED = "completed"
    INFEASIBLE = "infeasible"
    SOLVER_ERROR = "solver_error"
    GAIN_EXTRACTION_FAILED = "gain_extraction_failed"
    INVALID_PROBLEM = "invalid_problem"


class ScenarioResult(eqx.Module):
    """
    Terminal result of one scenario run.

    Only ``status`` and ``label`` are always set. The remaining fields are
    filled in as far as the pipeline got; for a COMPLETED run all are present.
    """

    label: str
    status: ScenarioStatus
    reason: Optional[str] = None
    solution: Optional[SteeringSolution] = None
    policy: Optional[LinearFeedbackPolicy] = None
    states: Optional[Float[Array, "num_trajectories steps state_dim"]] = None
    controls: Optional[Float[Array, "num_trajectories horizon control_dim"]] = None
    ellipses: Optional[dict] = None  # time step -> CovarianceEllipse

    @property
    def succeeded(self) -> bool:
        return self.status is ScenarioStatus.COMPLETED


def create_example_problem() -> tuple[LinearStochasticSystem, Float[Array, "2 2"], Float[Array, "2 2"], int]:
    """
    System and boundary covariances of the example: Sigma_0 = 3 I, Sigma_10 = diag(2, 0.5), N = 10.

    Returns:
        (system, initial_covariance, terminal_covariance, horizon)
    """
    system = create_example_system()
    initial_covariance = 3.0 * jnp.eye(2)
    terminal_covariance = jnp.array([
        [2.0, 0.0],
        [0.0, 0.5]
    ])
    return system, initial_covariance, terminal_covariance, 10


def run_scenario(
    label: str,
    config: Optional[SteeringConfig] = None,
    system: Optional[LinearStochasticSystem] = None,
    initial_covariance=None,
    terminal_covariance=None,
    horizon: Optional[int] = None,
    solver: Optional[SolverAdapter] = None,
) -> ScenarioResult:
    """
    Run one scenario: build -> solve -> extract gains -> simulate -> ellipses.

    Any problem piece left as None falls back to the example problem.

    Args:
        label: "a" (unconstrained) or "b" (with ``config.path_bound``)
        config: Run configuration
        system: Linear stochastic system
        initial_covariance: Sigma_0
        terminal_covariance: Sigma_N
        horizon: N
        solver: Solver adapter; defaults to a CvxpySolver built from ``config``

    Returns:
        ScenarioResult; infeasibility, solver failures and ill-conditioned
        covariances are reported through its status

    Raises:
        ValueError: Unknown scenario label
        DimensionError: Malformed system or boundary data (before solving)
    """
    if label not in SCENARIO_LABELS:
        raise ValueError(f"Unknown scenario label {label!r}; expected one of {SCENARIO_LABELS}")

    config = SteeringConfig() if config is None else config
    example_system, example_initial, example_terminal, example_horizon = create_example_problem()
    system = example_system if system is None else system
    initial_covariance = example_initial if initial_covariance is None else initial_covariance
    terminal_covariance = example_terminal if terminal_covariance is None else terminal_covariance
    horizon = example_horizon if horizon is None else horizon

    if solver is None:
        solver = CvxpySolver(config.solver, time_limit=config.time_limit, verbose=config.verbose)

    path_bound = config.path_bound if label == "b" else None
    problem = CovarianceSteeringProblem(
        system, initial_covariance, terminal_covariance, horizon, path_bound=path_bound
    )
    constraints, objective = problem.build()

    if config.verbose:
        print(f"[{label}] Solving covariance steering SDP (N={horizon}, "
              f"n={system.dimension}, m={system.control_dimension}, "
              f"path bound={'on' if path_bound is not None else 'off'})...")

    result = solver.solve(constraints, objective)

    if result.status is SolveStatus.INFEASIBLE:
        if config.verbose:
            print(f"[{label}] The optimization problem is infeasible.")
        return ScenarioResult(label=label, status=ScenarioStatus.INFEASIBLE, reason=result.reason)

    if result.status is SolveStatus.SOLVER_ERROR:
        if config.verbose:
            print(f"[{label}] Solver failed: {result.reason}")
        return ScenarioResult(label=label, status=ScenarioStatus.SOLVER_ERROR, reason=result.reason)

    solution = problem.unpack(result.values, result.objective_value)
    if config.verbose:
        print(f"[{label}] Optimal control energy sum_k tr(M_k) = {solution.objective_value:.4f}")

    try:
        gains = extract_feedback_gains(
            solution.covariances[:-1], solution.cross_terms, float(config.max_condition)
        )
    except GainExtractionError as e:
        return ScenarioResult(
            label=label,
            status=ScenarioStatus.GAIN_EXTRACTION_FAILED,
            reason=str(e),
            solution=solution,
        )
    policy = LinearFeedbackPolicy(gains)

    key = jax.random.PRNGKey(config.seed)
    states, controls = simulate_monte_carlo_trajectories(
        policy,
        system,
        jnp.asarray(initial_covariance, dtype=float),
        key,
        num_trajectories=config.num_trajectories,
        regularization=float(config.regularization),
    )

    if config.verbose and config.num_trajectories > 1:
        final_covariance = empirical_covariances(states)[-1]
        print(f"[{label}] Simulated {config.num_trajectories} trajectories")
        print(f"  Final sample mean: {jnp.mean(states[:, -1], axis=0)}")
        print(f"  Final sample covariance:\n{final_covariance}")

    ellipses = {}
    if system.dimension == 2:
        # Sigma_0..Sigma_{N-1}
        ellipses = {
            k: CovarianceEllipse(
                solution.covariances[k],
                scale=config.ellipse_scale,
                num_points=config.ellipse_points,
            )
            for k in range(horizon)
        }

    return ScenarioResult(
        label=label,
        status=ScenarioStatus.COMPLETED,
        solution=solution,
        policy=policy,
        states=states,
        controls=controls,
        ellipses=ellipses,
    )


def run_scenarios(
    labels: Iterable[str] = SCENARIO_LABELS,
    config: Optional[SteeringConfig] = None,
    **problem_kwargs,
) -> dict:
    """
    Run several scenarios independently.

    A label whose problem data is rejected before solving gets an
    INVALID_PROBLEM result; the remaining labels still run.

    Args:
        labels: Scenario labels to run
        config: Run configuration shared by all scenarios
        **problem_kwargs: Forwarded to ``run_scenario``

    Returns:
        Mapping label -> ScenarioResult
    """
    results = {}
    for label in labels:
        try:
            results[label] = run_scenario(label, config, **problem_kwargs)
        except (CovarianceSteeringError, ValueError) as e:
            if config is not None and config.verbose:
                print(f"[{label}] Invalid problem: {e}")
            results[label] = ScenarioResult(
                label=label, status=ScenarioStatus.INVALID_PROBLEM, reason=str(e)
            )
    return results
