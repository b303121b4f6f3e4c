"""
Solver boundary for the covariance steering SDP.

The core only consumes a tri-state ``SolveResult``: OPTIMAL (with variable
values), INFEASIBLE, or SOLVER_ERROR (numerical failure, unbounded, timeout).
Infeasibility is not transient, so nothing here retries.
"""

import enum
import warnings
from typing import Optional, Protocol

import cvxpy as cp
import equinox as eqx
import numpy as np


class SolveStatus(enum.Enum):
    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"
    SOLVER_ERROR = "solver_error"


class SolveResult(eqx.Module):
    """
    Outcome of a solver call.

    ``values`` maps variable names to solved arrays and is only populated
    when ``status`` is ``SolveStatus.OPTIMAL``.
    """

    status: SolveStatus
    values: Optional[dict[str, np.ndarray]] = None
    objective_value: Optional[float] = None
    reason: Optional[str] = None
    solve_time: Optional[float] = None

    @property
    def is_optimal(self) -> bool:
        return self.status is SolveStatus.OPTIMAL


class SolverAdapter(Protocol):
    """Anything that can minimise a linear objective over LMI / equality constraints."""

    def solve(self, constraints: list, objective: cp.Expression) -> SolveResult:
        ...


# Native deadline option for each solver we know how to time-limit
_TIME_LIMIT_OPTIONS = {
    "CLARABEL": "time_limit",
    "SCS": "time_limit_secs",
}

_INFEASIBLE_STATUSES = (cp.INFEASIBLE, cp.INFEASIBLE_INACCURATE)


class CvxpySolver:
    """
    ``SolverAdapter`` backed by cvxpy and one of its conic solvers.

    Example:
        >>> solver = CvxpySolver(solver="CLARABEL")
        >>> result = solver.solve(constraints, objective)
        >>> if result.is_optimal:
        ...     sigma_0 = result.values["Sigma_0"]
    """

    def __init__(
        self,
        solver: str = "CLARABEL",
        time_limit: Optional[float] = None,
        warm_start: bool = False,
        verbose: bool = False,
    ):
        """
        Args:
            solver: cvxpy solver name
            time_limit: Deadline in seconds forwarded to the solver, if any
            warm_start: Start from the variables' current values where supported
            verbose: Print solver output
        """
        self.solver = solver.upper()
        self.time_limit = time_limit
        self.warm_start = warm_start
        self.verbose = verbose

        if time_limit is not None and self.solver not in _TIME_LIMIT_OPTIONS:
            raise ValueError(
                f"Solver {self.solver} has no supported time limit option; "
                f"use one of {sorted(_TIME_LIMIT_OPTIONS)}"
            )

    def _solver_options(self) -> dict:
        options = {}
        if self.time_limit is not None:
            options[_TIME_LIMIT_OPTIONS[self.solver]] = self.time_limit
        return options

    def solve(self, constraints: list, objective: cp.Expression) -> SolveResult:
        """
        Minimise ``objective`` subject to ``constraints``.

        Args:
            constraints: cvxpy constraints
            objective: Scalar affine cvxpy expression to minimise

        Returns:
            SolveResult tagged OPTIMAL, INFEASIBLE or SOLVER_ERROR
        """
        problem = cp.Problem(cp.Minimize(objective), constraints)

        try:
            problem.solve(
                solver=self.solver,
                warm_start=self.warm_start,
                verbose=self.verbose,
                **self._solver_options(),
            )
        except cp.error.SolverError as e:
            return SolveResult(status=SolveStatus.SOLVER_ERROR, reason=str(e))

        solve_time = getattr(problem.solver_stats, "solve_time", None)

        if problem.status in (cp.OPTIMAL, cp.OPTIMAL_INACCURATE):
            if problem.status == cp.OPTIMAL_INACCURATE:
                warnings.warn(
                    f"{self.solver} returned an inaccurate optimum; "
                    "constraint residuals may exceed the usual tolerance",
                    RuntimeWarning,
                )
            values = {
                variable.name(): np.array(variable.value)
                for variable in problem.variables()
            }
            return SolveResult(
                status=SolveStatus.OPTIMAL,
                values=values,
                objective_value=float(problem.value),
                solve_time=solve_time,
            )

        if problem.status in _INFEASIBLE_STATUSES:
            return SolveResult(
                status=SolveStatus.INFEASIBLE,
                reason=problem.status,
                solve_time=solve_time,
            )

        return SolveResult(
            status=SolveStatus.SOLVER_ERROR,
            reason=problem.status,
            solve_time=solve_time,
        )
