"""
Semidefinite program for minimum-energy covariance steering.

Decision variables over the horizon k = 0, ..., N:
- Sigma_k = E[x_k x_k^T]          (n x n symmetric, k = 0..N)
- P_k     = E[x_k u_k^T]          (n x m, k = 0..N-1)
- M_k     = E[u_k u_k^T]          (m x m symmetric, k = 0..N-1)

Under u_k = K_k x_k the covariance recursion is bilinear in (K_k, Sigma_k).
Substituting P_k = Sigma_k K_k^T and relaxing M_k = K_k Sigma_k K_k^T to the
Schur complement condition

    [[Sigma_k, P_k], [P_k^T, M_k]] >= 0

makes the recursion linear and the whole problem an SDP. Minimising
sum_k tr(M_k) makes the relaxation tight at the optimum.
"""

import cvxpy as cp
import equinox as eqx
import jax.numpy as jnp
import numpy as np
from beartype import beartype as typechecker
from jaxtyping import Array, Float, jaxtyped
from typing import Mapping, Optional, Tuple

from .config import PathBound
from .errors import DimensionError
from .linear_system import LinearStochasticSystem


class SteeringSolution(eqx.Module, strict=True):
    """
    Solved covariance, cross-term and input second-moment sequences.
    """

    covariances: Float[Array, "horizon_plus_one state_dim state_dim"]  # Sigma_0..Sigma_N
    cross_terms: Float[Array, "horizon state_dim control_dim"]  # P_0..P_{N-1}
    input_moments: Float[Array, "horizon control_dim control_dim"]  # M_0..M_{N-1}
    objective_value: float

    @property
    def horizon(self) -> int:
        return self.cross_terms.shape[0]

    def lmi_blocks(self) -> Float[Array, "horizon joint_dim joint_dim"]:
        """Stack of [[Sigma_k, P_k], [P_k^T, M_k]] for k = 0..N-1."""
        top = jnp.concatenate([self.covariances[:-1], self.cross_terms], axis=2)
        bottom = jnp.concatenate(
            [jnp.swapaxes(self.cross_terms, 1, 2), self.input_moments], axis=2
        )
        return jnp.concatenate([top, bottom], axis=1)

    def lmi_min_eigenvalues(self) -> Float[Array, "horizon"]:
        """Smallest eigenvalue of each joint LMI block (>= -eps at a feasible point)."""
        blocks = self.lmi_blocks()
        symmetric = 0.5 * (blocks + jnp.swapaxes(blocks, 1, 2))
        return jnp.linalg.eigvalsh(symmetric)[:, 0]

    def recursion_residuals(self, system: LinearStochasticSystem) -> Float[Array, "horizon"]:
        """
        Max-abs residual of Sigma_{k+1} - (A Sigma_k A^T + A P_k B^T + B P_k^T A^T + B M_k B^T + W).
        """
        residuals = []
        for k in range(self.horizon):
            propagated = system.propagate_covariance(
                self.covariances[k], self.cross_terms[k], self.input_moments[k]
            )
            residuals.append(jnp.max(jnp.abs(self.covariances[k + 1] - propagated)))
        return jnp.stack(residuals)


class CovarianceSteeringProblem:
    """
    Convex formulation of the covariance steering problem.

    minimize    sum_k tr(M_k)
    subject to  Sigma_0 = initial covariance, Sigma_N = terminal covariance
                Sigma_{k+1} = A Sigma_k A^T + A P_k B^T + B P_k^T A^T + B M_k B^T + W
                [[Sigma_k, P_k], [P_k^T, M_k]] >= 0
                (Sigma_s)[i, j] <= bound          (optional path bound)
    """

    def __init__(
        self,
        system: LinearStochasticSystem,
        initial_covariance,
        terminal_covariance,
        horizon: int,
        path_bound: Optional[PathBound] = None,
    ):
        """
        Initialize the optimization problem.

        Args:
            system: Linear stochastic system (A, B, W)
            initial_covariance: Sigma_0
            terminal_covariance: Target Sigma_N
            horizon: Time horizon N
            path_bound: Optional bound on one entry of an intermediate Sigma_k

        Raises:
            DimensionError: If covariances, horizon or path bound don't fit the system
        """
        self.system = system
        self.state_dim = system.dimension
        self.control_dim = system.control_dimension

        if not isinstance(horizon, (int, np.integer)) or horizon < 1:
            raise DimensionError(f"Horizon must be a positive integer, got {horizon!r}")
        self.horizon = int(horizon)

        # Convert to numpy for CVXPy
        self.initial_covariance = self._check_covariance(initial_covariance, "initial")
        self.terminal_covariance = self._check_covariance(terminal_covariance, "terminal")
        self.A = np.array(system.A, dtype=float)
        self.B = np.array(system.B, dtype=float)
        self.W = np.array(system.W, dtype=float)

        if path_bound is not None:
            if not 0 <= path_bound.step <= self.horizon:
                raise DimensionError(
                    f"Path bound step {path_bound.step} outside 0..{self.horizon}"
                )
            for index in (path_bound.row, path_bound.col):
                if not 0 <= index < self.state_dim:
                    raise DimensionError(
                        f"Path bound entry ({path_bound.row}, {path_bound.col}) "
                        f"outside a {self.state_dim}x{self.state_dim} covariance"
                    )
        self.path_bound = path_bound

        self._create_variables()

    def _check_covariance(self, covariance, which: str) -> np.ndarray:
        covariance = np.atleast_2d(np.array(covariance, dtype=float))
        expected = (self.state_dim, self.state_dim)
        if covariance.shape != expected:
            raise DimensionError(
                f"{which.capitalize()} covariance must have shape {expected}, "
                f"got {covariance.shape}"
            )
        return covariance

    def _create_variables(self):
        """Create CVXPy optimization variables."""
        n, m = self.state_dim, self.control_dim
        self.Sigma = [
            cp.Variable((n, n), symmetric=True, name=f"Sigma_{k}")
            for k in range(self.horizon + 1)
        ]
        self.P = [cp.Variable((n, m), name=f"P_{k}") for k in range(self.horizon)]
        self.M = [
            cp.Variable((m, m), symmetric=True, name=f"M_{k}")
            for k in range(self.horizon)
        ]

    def add_boundary_constraints(self, constraints: list):
        """
        Fix the endpoints of the covariance sequence: Sigma_0 and Sigma_N.

        Args:
            constraints: List to append constraints to
        """
        constraints.append(self.Sigma[0] == self.initial_covariance)
        constraints.append(self.Sigma[self.horizon] == self.terminal_covariance)

    def add_path_constraint(self, constraints: list):
        """
        Add (Sigma_s)[i, j] <= bound if a path bound was requested.

        Args:
            constraints: List to append constraints to
        """
        if self.path_bound is None:
            return
        bound = self.path_bound
        constraints.append(self.Sigma[bound.step][bound.row, bound.col] <= bound.upper)

    def add_recursion_constraints(self, constraints: list):
        """
        Add the second-moment dynamics for k = 0..N-1:

        Sigma_{k+1} = A Sigma_k A^T + A P_k B^T + B P_k^T A^T + B M_k B^T + W

        Args:
            constraints: List to append constraints to
        """
        A, B, W = self.A, self.B, self.W
        for k in range(self.horizon):
            Sigma_next = (
                A @ self.Sigma[k] @ A.T
                + A @ self.P[k] @ B.T
                + B @ self.P[k].T @ A.T
                + B @ self.M[k] @ B.T
                + W
            )
            constraints.append(self.Sigma[k + 1] == Sigma_next)

    def add_lmi_constraints(self, constraints: list):
        """
        Add the joint PSD condition [[Sigma_k, P_k], [P_k^T, M_k]] >= 0 for k = 0..N-1.

        This is equivalent to M_k >= P_k^T Sigma_k^{-1} P_k (Schur complement), i.e.
        the existence of a gain K_k with P_k = Sigma_k K_k^T and M_k >= K_k Sigma_k K_k^T.

        Args:
            constraints: List to append constraints to
        """
        for k in range(self.horizon):
            LMI = cp.bmat([
                [self.Sigma[k], self.P[k]],
                [self.P[k].T, self.M[k]],
            ])
            constraints.append(LMI >> 0)

    def create_energy_cost(self) -> cp.Expression:
        """
        Total expected control energy sum_k tr(M_k) = sum_k E[u_k^T u_k].

        Returns:
            CVXPy expression for the cost
        """
        return sum(cp.trace(M_k) for M_k in self.M)

    def build(self) -> Tuple[list, cp.Expression]:
        """
        Assemble constraints and objective.

        Returns:
            (constraints, objective)
        """
        constraints = []
        self.add_boundary_constraints(constraints)
        self.add_path_constraint(constraints)
        self.add_recursion_constraints(constraints)
        self.add_lmi_constraints(constraints)

        return constraints, self.create_energy_cost()

    def unpack(self, values: Mapping[str, np.ndarray], objective_value: float) -> SteeringSolution:
        """
        Collect solved variable values into a SteeringSolution.

        Args:
            values: Variable name -> solved value, as returned by the solver adapter
            objective_value: Optimal objective

        Returns:
            SteeringSolution with stacked sequences
        """
        def stack(variables):
            return jnp.stack([jnp.asarray(values[v.name()]) for v in variables])

        return SteeringSolution(
            covariances=stack(self.Sigma),
            cross_terms=stack(self.P),
            input_moments=stack(self.M),
            objective_value=float(objective_value),
        )

    def warm_start(self, solution: SteeringSolution):
        """
        Seed the variables with a previous solution.

        Args:
            solution: Solution whose values become the starting point
        """
        for k, Sigma_k in enumerate(self.Sigma):
            Sigma_k.value = _symmetrize(np.array(solution.covariances[k]))
        for k in range(self.horizon):
            self.P[k].value = np.array(solution.cross_terms[k])
            self.M[k].value = _symmetrize(np.array(solution.input_moments[k]))


def _symmetrize(matrix: np.ndarray) -> np.ndarray:
    return 0.5 * (matrix + matrix.T)


@jaxtyped(typechecker=typechecker)
def expected_control_energy(
    covariances: Float[Array, "horizon state_dim state_dim"],
    feedback_gains: Float[Array, "horizon control_dim state_dim"],
) -> Float[Array, ""]:
    """
    Expected control energy sum_k tr(K_k Sigma_k K_k^T) of a gain sequence.

    At the SDP optimum this equals sum_k tr(M_k).
    """
    return jnp.sum(
        jnp.trace(feedback_gains @ covariances @ jnp.swapaxes(feedback_gains, 1, 2), axis1=1, axis2=2)
    )
