"""
Linear time-invariant discrete stochastic system for covariance steering.

Implements the discrete-time linear system:
    x_{k+1} = A * x_k + B * u_k + w_k,    w_k ~ N(0, W)

and the second-moment recursion it induces under linear state feedback.
"""

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np
from beartype import beartype as typechecker
from jaxtyping import Array, Float, jaxtyped

from .errors import DimensionError


class LinearStochasticSystem(eqx.Module, strict=True):
    """
    Discrete-time linear system with additive Gaussian process noise.

    x_{k+1} = A x_k + B u_k + w_k, with w_k ~ N(0, W) independent across k.
    """

    A: Float[Array, "state_dim state_dim"]
    B: Float[Array, "state_dim control_dim"]
    W: Float[Array, "state_dim state_dim"]

    def __init__(self, A, B, W, symmetry_tolerance: float = 1e-9):
        """
        Initialize the system and validate its dimensions.

        Args:
            A: State transition matrix (n x n)
            B: Control input matrix (n x m)
            W: Process noise covariance (n x n, symmetric PSD)
            symmetry_tolerance: Tolerance for the symmetry / PSD check on W

        Raises:
            DimensionError: If the matrices are malformed or W is not symmetric PSD
        """
        A = jnp.atleast_2d(jnp.asarray(A, dtype=float))
        B = jnp.asarray(B, dtype=float)
        W = jnp.atleast_2d(jnp.asarray(W, dtype=float))
        if B.ndim == 1:
            B = B[:, None]

        if A.ndim != 2 or A.shape[0] != A.shape[1]:
            raise DimensionError(f"A must be square, got shape {A.shape}")
        n = A.shape[0]
        if B.ndim != 2 or B.shape[0] != n:
            raise DimensionError(f"B must have {n} rows to match A, got shape {B.shape}")
        if W.shape != (n, n):
            raise DimensionError(f"W must be {n}x{n} to match A, got shape {W.shape}")

        W_np = np.asarray(W)
        if not np.allclose(W_np, W_np.T, atol=symmetry_tolerance):
            raise DimensionError("W must be symmetric")
        if np.min(np.linalg.eigvalsh(W_np)) < -symmetry_tolerance:
            raise DimensionError("W must be positive semidefinite")

        self.A = A
        self.B = B
        self.W = W

    @property
    def dimension(self) -> int:
        """Return the dimension of the state space."""
        return self.A.shape[0]

    @property
    def control_dimension(self) -> int:
        """Return the dimension of the control space."""
        return self.B.shape[1]

    def step(
        self,
        state: Float[Array, "state_dim"],
        control: Float[Array, "control_dim"],
        noise: Float[Array, "state_dim"],
    ) -> Float[Array, "state_dim"]:
        """Single time step of the stochastic system."""
        return self.A @ state + self.B @ control + noise

    def trajectory(
        self,
        state: Float[Array, "state_dim"],
        feedback_gains: Float[Array, "horizon control_dim state_dim"],
        noise_sequence: Float[Array, "horizon state_dim"],
    ) -> tuple[Float[Array, "horizon_plus_one state_dim"], Float[Array, "horizon control_dim"]]:
        """
        Closed-loop rollout under u_k = K_k x_k.

        Args:
            state: Initial state x_0
            feedback_gains: Gain sequence K_0, ..., K_{N-1}
            noise_sequence: Process noise realisations w_0, ..., w_{N-1}

        Returns:
            (states, controls) with states x_0, ..., x_N and controls u_0, ..., u_{N-1}
        """

        def scan_fn(carry_state, inputs):
            K_k, w_k = inputs
            u_k = K_k @ carry_state
            next_state = self.step(carry_state, u_k, w_k)
            return next_state, (carry_state, u_k)

        final_state, (states, controls) = jax.lax.scan(
            scan_fn, state, (feedback_gains, noise_sequence)
        )

        all_states = jnp.concatenate([states, final_state[None, :]], axis=0)

        return all_states, controls

    @jaxtyped(typechecker=typechecker)
    def propagate_covariance(
        self,
        covariance: Float[Array, "state_dim state_dim"],
        cross_term: Float[Array, "state_dim control_dim"],
        input_moment: Float[Array, "control_dim control_dim"],
    ) -> Float[Array, "state_dim state_dim"]:
        """
        Second-moment recursion in the (Sigma, P, M) parameterisation.

        Sigma_{k+1} = A Sigma_k A^T + A P_k B^T + B P_k^T A^T + B M_k B^T + W

        where P_k = E[x_k u_k^T] and M_k = E[u_k u_k^T].
        """
        A, B = self.A, self.B
        return (
            A @ covariance @ A.T
            + A @ cross_term @ B.T
            + B @ cross_term.T @ A.T
            + B @ input_moment @ B.T
            + self.W
        )


def create_example_system() -> LinearStochasticSystem:
    """
    Create the two-state, single-input example system.

    A = [[1, 0.1], [-0.3, 1]], B = [[0.7], [0.4]], W = 0.1 * I

    Returns:
        LinearStochasticSystem for the example
    """
    A = jnp.array([
        [1.0, 0.1],
        [-0.3, 1.0]
    ])

    B = jnp.array([
        [0.7],
        [0.4]
    ])

    W = 0.1 * jnp.eye(2)

    return LinearStochasticSystem(A, B, W)
