"""
Linear state-feedback policy recovered from the covariance steering SDP.

The policy is u_k = K_k x_k with K_k = (Sigma_k^{-1} P_k)^T, i.e. the unique
gain satisfying P_k = Sigma_k K_k^T for an invertible Sigma_k.
"""

import equinox as eqx
import jax
import jax.numpy as jnp
from beartype import beartype as typechecker
from jaxtyping import Array, Float, jaxtyped

from .errors import GainExtractionError
from .linear_system import LinearStochasticSystem


class LinearFeedbackPolicy(eqx.Module, strict=True):
    """
    Time-varying linear feedback policy u_k = K_k x_k.
    """

    feedback_gains: Float[Array, "horizon control_dim state_dim"] = eqx.field(
        converter=jnp.asarray
    )  # K_0..K_{N-1}

    @property
    def horizon(self) -> int:
        """Time horizon."""
        return self.feedback_gains.shape[0]

    @property
    def control_dim(self) -> int:
        """Control dimension."""
        return self.feedback_gains.shape[1]

    @property
    def state_dim(self) -> int:
        """State dimension."""
        return self.feedback_gains.shape[2]

    @jaxtyped(typechecker=typechecker)
    def compute_control(
        self,
        x: Float[Array, "state_dim"],
        time_step: int,
    ) -> Float[Array, "control_dim"]:
        """
        Compute control input at given time step.

        Args:
            x: Current state
            time_step: Current time step (0 to horizon-1)

        Returns:
            Control input
        """
        return self.feedback_gains[time_step] @ x


@jaxtyped(typechecker=typechecker)
def extract_feedback_gains(
    covariances: Float[Array, "horizon state_dim state_dim"],
    cross_terms: Float[Array, "horizon state_dim control_dim"],
    max_condition: float | int = 1e12,
) -> Float[Array, "horizon control_dim state_dim"]:
    """
    Recover K_k = (Sigma_k^{-1} P_k)^T for k = 0..N-1.

    Args:
        covariances: Solved Sigma_0, ..., Sigma_{N-1}
        cross_terms: Solved P_0, ..., P_{N-1}
        max_condition: Largest acceptable condition number of Sigma_k

    Returns:
        Gain sequence K_0, ..., K_{N-1}

    Raises:
        GainExtractionError: If some Sigma_k is near-singular
    """
    gains = []
    for k in range(covariances.shape[0]):
        Sigma_k = covariances[k]
        condition_number = float(jnp.linalg.cond(Sigma_k))
        if not condition_number <= max_condition:
            raise GainExtractionError(k, condition_number, max_condition)
        gains.append(jnp.linalg.solve(Sigma_k, cross_terms[k]).T)

    return jnp.stack(gains)


def _regularize(covariance, regularization: float):
    covariance = 0.5 * (covariance + covariance.T)
    return covariance + regularization * jnp.eye(covariance.shape[0])


@jaxtyped(typechecker=typechecker)
def simulate_monte_carlo_trajectories(
    policy: LinearFeedbackPolicy,
    system: LinearStochasticSystem,
    initial_covariance: Float[Array, "state_dim state_dim"],
    key: Array,
    num_trajectories: int = 20,
    regularization: float | int = 0.0,
) -> tuple[Float[Array, "num_trajectories steps state_dim"], Float[Array, "num_trajectories horizon control_dim"]]:
    """
    Simulate closed-loop Monte Carlo trajectories.

    Each sample draws x_0 ~ N(0, Sigma_0) and w_k ~ N(0, W) from its own key,
    so samples are independent and the result only depends on ``key``.

    Args:
        policy: Feedback policy
        system: Linear stochastic system
        initial_covariance: Sigma_0 of the zero-mean initial distribution
        key: Random key
        num_trajectories: Number of trajectories to simulate
        regularization: Jitter added to the covariances before sampling

    Returns:
        (state_trajectories, control_trajectories)
    """
    n = system.dimension
    horizon = policy.horizon
    mean = jnp.zeros(n)
    Sigma_0 = _regularize(initial_covariance, regularization)
    W = _regularize(system.W, regularization)

    def generate_trajectory(sample_key):
        init_key, noise_key = jax.random.split(sample_key)
        x0 = jax.random.multivariate_normal(init_key, mean, Sigma_0, method="eigh")
        noise = jax.random.multivariate_normal(
            noise_key, mean, W, shape=(horizon,), method="eigh"
        )
        return system.trajectory(x0, policy.feedback_gains, noise)

    # Vectorized trajectory generation
    sample_keys = jax.random.split(key, num_trajectories)
    all_states, all_controls = jax.vmap(generate_trajectory)(sample_keys)

    return all_states, all_controls


@jaxtyped(typechecker=typechecker)
def empirical_covariances(
    states: Float[Array, "num_trajectories steps state_dim"],
) -> Float[Array, "steps state_dim state_dim"]:
    """
    Sample covariance of the states at each time step (about the sample mean).
    """
    centered = states - jnp.mean(states, axis=0, keepdims=True)
    return jnp.einsum("sti,stj->tij", centered, centered) / (states.shape[0] - 1)
