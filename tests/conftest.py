"""
Shared fixtures for covariance steering tests.
"""

import jax

jax.config.update("jax_enable_x64", True)

import jax.numpy as jnp
import pytest

from covariance_steering import (
    CovarianceSteeringProblem,
    CvxpySolver,
    create_example_problem,
)


@pytest.fixture(scope="session")
def example_problem():
    """Example system, Sigma_0 = 3 I, Sigma_10 = diag(2, 0.5), N = 10."""
    return create_example_problem()


@pytest.fixture(scope="session")
def solved_example(example_problem):
    """The unconstrained example problem together with its optimal solution."""
    system, initial_covariance, terminal_covariance, horizon = example_problem
    problem = CovarianceSteeringProblem(
        system, initial_covariance, terminal_covariance, horizon
    )
    constraints, objective = problem.build()
    result = CvxpySolver().solve(constraints, objective)
    assert result.is_optimal, result.reason
    return problem, problem.unpack(result.values, result.objective_value)


@pytest.fixture
def isotropic_covariance():
    return 0.25 * jnp.eye(2)
