"""
Unit tests for gain extraction and Monte Carlo simulation

Tests cover:
- K_k = (Sigma_k^{-1} P_k)^T and the conditioning guard
- Fixed-seed determinism and per-seed variation
- Law-of-large-numbers convergence to the steered covariance
"""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from covariance_steering import (
    GainExtractionError,
    LinearFeedbackPolicy,
    empirical_covariances,
    extract_feedback_gains,
    simulate_monte_carlo_trajectories,
)


@pytest.fixture(scope="module")
def example_policy(solved_example):
    _, solution = solved_example
    gains = extract_feedback_gains(solution.covariances[:-1], solution.cross_terms)
    return LinearFeedbackPolicy(gains)


# ============================================================================
# Gain extraction
# ============================================================================


class TestGainExtraction:

    def test_gain_shapes(self, example_policy):
        assert example_policy.feedback_gains.shape == (10, 1, 2)
        assert example_policy.horizon == 10
        assert example_policy.control_dim == 1
        assert example_policy.state_dim == 2

    def test_gains_reproduce_cross_terms(self, solved_example, example_policy):
        """Sigma_k K_k^T == P_k for every k."""
        _, solution = solved_example
        Sigma = solution.covariances[:-1]
        K_T = jnp.swapaxes(example_policy.feedback_gains, 1, 2)
        np.testing.assert_allclose(Sigma @ K_T, solution.cross_terms, atol=1e-8)

    def test_known_gain(self):
        Sigma = jnp.array([[[2.0, 0.0], [0.0, 4.0]]])
        K = jnp.array([[[0.5, -1.0]]])
        P = Sigma @ jnp.swapaxes(K, 1, 2)

        np.testing.assert_allclose(extract_feedback_gains(Sigma, P), K, atol=1e-12)

    def test_singular_covariance_rejected(self):
        Sigma = jnp.stack([jnp.eye(2), jnp.array([[1.0, 1.0], [1.0, 1.0]])])
        P = jnp.ones((2, 2, 1))

        with pytest.raises(GainExtractionError) as excinfo:
            extract_feedback_gains(Sigma, P)
        assert excinfo.value.step == 1

    def test_condition_threshold(self):
        Sigma = jnp.array([[[1.0, 0.0], [0.0, 1e-4]]])
        P = jnp.ones((1, 2, 1))

        extract_feedback_gains(Sigma, P, max_condition=1e5)
        with pytest.raises(GainExtractionError, match="Sigma_0"):
            extract_feedback_gains(Sigma, P, max_condition=1e3)

    def test_integer_threshold_accepted(self):
        Sigma = jnp.array([[[1.0, 0.0], [0.0, 1e-4]]])
        P = jnp.ones((1, 2, 1))

        extract_feedback_gains(Sigma, P, max_condition=10**5)
        with pytest.raises(GainExtractionError):
            extract_feedback_gains(Sigma, P, max_condition=10**3)

    def test_compute_control(self, example_policy):
        x = jnp.array([1.0, -1.0])
        np.testing.assert_allclose(
            example_policy.compute_control(x, 3), example_policy.feedback_gains[3] @ x
        )


# ============================================================================
# Simulation
# ============================================================================


class TestSimulation:

    def test_trajectory_shapes(self, example_problem, example_policy):
        system, Sigma_0, _, _ = example_problem
        states, controls = simulate_monte_carlo_trajectories(
            example_policy, system, Sigma_0, jax.random.PRNGKey(0), num_trajectories=7
        )
        assert states.shape == (7, 11, 2)
        assert controls.shape == (7, 10, 1)

    def test_integer_regularization_accepted(self, example_problem, example_policy):
        system, Sigma_0, _, _ = example_problem
        states, _ = simulate_monte_carlo_trajectories(
            example_policy, system, Sigma_0, jax.random.PRNGKey(0), num_trajectories=4, regularization=0
        )
        assert states.shape == (4, 11, 2)

    def test_controls_follow_feedback(self, example_problem, example_policy):
        system, Sigma_0, _, _ = example_problem
        states, controls = simulate_monte_carlo_trajectories(
            example_policy, system, Sigma_0, jax.random.PRNGKey(3), num_trajectories=5
        )
        expected = jnp.einsum("kmn,skn->skm", example_policy.feedback_gains, states[:, :-1])
        np.testing.assert_allclose(controls, expected, atol=1e-12)

    def test_fixed_seed_is_deterministic(self, example_problem, example_policy):
        system, Sigma_0, _, _ = example_problem
        first = simulate_monte_carlo_trajectories(
            example_policy, system, Sigma_0, jax.random.PRNGKey(42), num_trajectories=20
        )
        second = simulate_monte_carlo_trajectories(
            example_policy, system, Sigma_0, jax.random.PRNGKey(42), num_trajectories=20
        )
        np.testing.assert_array_equal(first[0], second[0])
        np.testing.assert_array_equal(first[1], second[1])

    def test_different_seeds_differ(self, example_problem, example_policy):
        system, Sigma_0, _, _ = example_problem
        states_a, _ = simulate_monte_carlo_trajectories(
            example_policy, system, Sigma_0, jax.random.PRNGKey(0), num_trajectories=20
        )
        states_b, _ = simulate_monte_carlo_trajectories(
            example_policy, system, Sigma_0, jax.random.PRNGKey(1), num_trajectories=20
        )
        assert not np.allclose(states_a, states_b)

    def test_samples_are_distinct(self, example_problem, example_policy):
        system, Sigma_0, _, _ = example_problem
        states, _ = simulate_monte_carlo_trajectories(
            example_policy, system, Sigma_0, jax.random.PRNGKey(0), num_trajectories=2
        )
        assert not np.allclose(states[0], states[1])

    def test_law_of_large_numbers(self, example_problem, example_policy):
        system, Sigma_0, Sigma_N, _ = example_problem
        states, _ = simulate_monte_carlo_trajectories(
            example_policy,
            system,
            Sigma_0,
            jax.random.PRNGKey(2024),
            num_trajectories=20_000,
            regularization=1e-9,
        )
        final_states = states[:, -1]

        np.testing.assert_allclose(jnp.mean(final_states, axis=0), jnp.zeros(2), atol=0.05)
        np.testing.assert_allclose(empirical_covariances(states)[-1], Sigma_N, atol=0.1)
        np.testing.assert_allclose(empirical_covariances(states)[0], Sigma_0, atol=0.15)


# ============================================================================
# Empirical covariance
# ============================================================================


class TestEmpiricalCovariance:

    def test_matches_numpy(self):
        states = jax.random.normal(jax.random.PRNGKey(0), (50, 3, 2))
        result = empirical_covariances(states)

        assert result.shape == (3, 2, 2)
        for t in range(3):
            np.testing.assert_allclose(
                result[t], np.cov(np.asarray(states[:, t]), rowvar=False), atol=1e-12
            )
