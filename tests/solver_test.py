"""
Unit tests for the cvxpy solver boundary

Tests cover:
- OPTIMAL / INFEASIBLE / SOLVER_ERROR tagging on small SDPs
- Time limit option handling
"""

import cvxpy as cp
import numpy as np
import pytest

from covariance_steering import CvxpySolver, SolveResult, SolveStatus


def small_sdp(lower: float):
    """min tr(X) s.t. X >> 0, X[0, 0] >= lower, X[1, 1] <= 1."""
    X = cp.Variable((2, 2), symmetric=True, name="X")
    constraints = [X >> 0, X[0, 0] >= lower, X[1, 1] <= 1.0]
    return constraints, cp.trace(X)


class TestStatusTagging:

    def test_optimal(self):
        constraints, objective = small_sdp(lower=2.0)
        result = CvxpySolver().solve(constraints, objective)

        assert isinstance(result, SolveResult)
        assert result.status is SolveStatus.OPTIMAL
        assert result.is_optimal
        assert result.objective_value == pytest.approx(2.0, abs=1e-6)
        assert set(result.values) == {"X"}
        assert isinstance(result.values["X"], np.ndarray)
        np.testing.assert_allclose(result.values["X"], np.diag([2.0, 0.0]), atol=1e-5)

    def test_infeasible(self):
        X = cp.Variable((2, 2), symmetric=True, name="X")
        constraints = [X >> 0, X[0, 0] <= -1.0]
        result = CvxpySolver().solve(constraints, cp.trace(X))

        assert result.status is SolveStatus.INFEASIBLE
        assert not result.is_optimal
        assert result.values is None
        assert result.objective_value is None

    def test_unbounded_reported_as_solver_error(self):
        x = cp.Variable(name="x")
        result = CvxpySolver().solve([x <= 1.0], x)

        assert result.status is SolveStatus.SOLVER_ERROR
        assert "unbounded" in result.reason

    def test_unavailable_solver_reported_as_solver_error(self):
        constraints, objective = small_sdp(lower=1.0)
        result = CvxpySolver(solver="NOT_A_SOLVER").solve(constraints, objective)

        assert result.status is SolveStatus.SOLVER_ERROR
        assert result.reason


class TestOptions:

    def test_solver_name_normalised(self):
        assert CvxpySolver(solver="clarabel").solver == "CLARABEL"

    def test_time_limit_forwarded(self):
        assert CvxpySolver(solver="CLARABEL", time_limit=5.0)._solver_options() == {"time_limit": 5.0}
        assert CvxpySolver(solver="SCS", time_limit=5.0)._solver_options() == {"time_limit_secs": 5.0}
        assert CvxpySolver()._solver_options() == {}

    def test_time_limit_unsupported_solver(self):
        with pytest.raises(ValueError, match="time limit"):
            CvxpySolver(solver="CVXOPT", time_limit=1.0)

    def test_generous_time_limit_still_optimal(self):
        constraints, objective = small_sdp(lower=1.0)
        result = CvxpySolver(time_limit=60.0).solve(constraints, objective)
        assert result.is_optimal
