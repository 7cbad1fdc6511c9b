# Copyright (C) 2025 Gil Benezer
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Unit Tests for Nonlinear Solve Helpers
======================================

Tests cover:
1. Finite-difference Jacobians
2. LU factorization and singular matrices
3. Simplified Newton iteration
"""

import numpy as np
import pytest

from desolve.numerical_integration.nonlinear_solve import (
    factorize,
    fd_jacobian,
    fd_time_derivative,
    newton_solve,
    solve_factored,
)


# ============================================================================
# Test Class 1: Finite Differences
# ============================================================================


class TestFiniteDifferences:
    """Test fd_jacobian() and fd_time_derivative()."""

    def test_jacobian_of_nonlinear_map(self):
        func = lambda x: np.array([x[0] ** 2, x[0] * x[1]])
        jac = fd_jacobian(func, np.array([1.0, 2.0]))
        np.testing.assert_allclose(jac, [[2.0, 0.0], [2.0, 1.0]], atol=1e-6)

    def test_jacobian_of_linear_map(self):
        A = np.array([[1.0, 2.0], [-3.0, 4.0]])
        jac = fd_jacobian(lambda x: A @ x, np.array([0.5, -0.5]))
        np.testing.assert_allclose(jac, A, atol=1e-7)

    def test_time_derivative(self):
        func = lambda u, t: u * t ** 2
        u = np.array([2.0])
        dfdt = fd_time_derivative(func, u, 3.0, func(u, 3.0))
        np.testing.assert_allclose(dfdt, [12.0], rtol=1e-6)


# ============================================================================
# Test Class 2: Factorization
# ============================================================================


class TestFactorize:
    """Test factorize() and solve_factored()."""

    def test_solves_system(self):
        A = np.array([[4.0, 1.0], [1.0, 3.0]])
        b = np.array([1.0, 2.0])
        x = solve_factored(factorize(A), b)
        np.testing.assert_allclose(A @ x, b)

    def test_singular_matrix(self):
        assert factorize(np.array([[1.0, 2.0], [2.0, 4.0]])) is None

    def test_non_finite_matrix(self):
        assert factorize(np.array([[np.nan, 0.0], [0.0, 1.0]])) is None


# ============================================================================
# Test Class 3: Newton Iteration
# ============================================================================


class TestNewtonSolve:
    """Test newton_solve()."""

    def test_converges_on_scalar_root(self):
        residual = lambda x: x ** 2 - 2.0
        x0 = np.array([1.5])
        lu = factorize(fd_jacobian(residual, x0))
        result = newton_solve(residual, x0, lu, weights=np.array([1e-8]), max_iters=50)

        assert result.converged
        np.testing.assert_allclose(result.x, [np.sqrt(2.0)], atol=1e-9)

    def test_linear_system_one_iteration(self):
        A = np.array([[2.0, 0.0], [0.0, 3.0]])
        b = np.array([2.0, 3.0])
        residual = lambda x: A @ x - b
        result = newton_solve(residual, np.zeros(2), factorize(A), weights=np.ones(2))

        assert result.converged
        assert result.iterations == 1
        np.testing.assert_allclose(result.x, [1.0, 1.0])

    def test_already_converged(self):
        residual = lambda x: x - 1.0
        result = newton_solve(residual, np.ones(1), factorize(np.eye(1)), np.ones(1))
        assert result.converged
        assert result.iterations == 0

    def test_non_finite_residual_fails(self):
        residual = lambda x: np.array([np.nan])
        result = newton_solve(residual, np.ones(1), factorize(np.eye(1)), np.ones(1))
        assert not result.converged

    def test_divergence_detected(self):
        """A wrong frozen Jacobian that expands the correction fails."""
        residual = lambda x: 10.0 * x ** 3 - 1.0
        result = newton_solve(
            residual, np.array([2.0]), factorize(np.array([[1.0]])),
            weights=np.array([1e-8]), max_iters=10,
        )
        assert not result.converged


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
