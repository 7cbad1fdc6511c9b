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
Nonlinear Solve - Finite-Difference Jacobians and Newton Iteration

Shared by the implicit steppers (Rosenbrock23, DImplicitEuler, DBDF2) and
by DAE consistent initialization.

- ``fd_jacobian``: forward-difference Jacobian of a vector function
- ``fd_time_derivative``: forward-difference df/dt
- ``factorize``: LU factorization (``scipy.linalg.lu_factor``) returning
  None for singular or non-finite matrices
- ``newton_solve``: simplified Newton iteration with a frozen Jacobian

Newton Convergence
------------------
The iteration stops successfully when either

    ||dx||_w <= kappa          (weighted RMS of the correction)
    max |F(x)| <= tol          (absolute residual)

and fails on non-finite values, a contraction rate >= 1 after the first
iteration, or after ``max_iters`` corrections.
"""

import warnings
from typing import Callable, NamedTuple, Optional, Tuple

import numpy as np
from scipy.linalg import LinAlgWarning, lu_factor, lu_solve

from desolve.types.core import JacobianMatrix

_SQRT_EPS = np.sqrt(np.finfo(float).eps)


def fd_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    f0: Optional[np.ndarray] = None,
) -> JacobianMatrix:
    """
    Forward-difference Jacobian d func / d x.

    Parameters
    ----------
    func : Callable
        Vector function of x
    x : np.ndarray
        Linearization point, shape (n,)
    f0 : Optional[np.ndarray]
        func(x) if already known (saves one evaluation)

    Returns
    -------
    np.ndarray
        Jacobian, shape (m, n)

    Examples
    --------
    >>> fd_jacobian(lambda x: np.array([x[0] ** 2, x[0] * x[1]]), np.array([1.0, 2.0]))
    array([[2., 0.],
           [2., 1.]])  # approximately
    """
    x = np.asarray(x, dtype=float)
    if f0 is None:
        f0 = func(x)
    jac = np.empty((f0.shape[0], x.shape[0]), dtype=float)
    for j in range(x.shape[0]):
        delta = _SQRT_EPS * max(abs(x[j]), 1.0)
        x_pert = x.copy()
        x_pert[j] += delta
        # Exactly representable step
        delta = x_pert[j] - x[j]
        jac[:, j] = (func(x_pert) - f0) / delta
    return jac


def fd_time_derivative(
    func: Callable[[np.ndarray, float], np.ndarray],
    u: np.ndarray,
    t: float,
    f0: np.ndarray,
) -> np.ndarray:
    """Forward-difference partial derivative of func(u, t) with respect to t."""
    dt = _SQRT_EPS * max(abs(t), 1.0)
    t_pert = t + dt
    dt = t_pert - t
    return (func(u, t_pert) - f0) / dt


def factorize(matrix: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    LU-factorize a square matrix.

    Returns
    -------
    Optional[Tuple]
        ``lu_factor`` output, or None if the matrix is singular or contains
        non-finite entries
    """
    if not np.all(np.isfinite(matrix)):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", LinAlgWarning)
        lu, piv = lu_factor(matrix, check_finite=False)
    if np.any(np.diag(lu) == 0.0):
        return None
    return lu, piv


def solve_factored(lu_piv: Tuple[np.ndarray, np.ndarray], rhs: np.ndarray) -> np.ndarray:
    return lu_solve(lu_piv, rhs, check_finite=False)


class NewtonResult(NamedTuple):
    """
    Outcome of a Newton iteration.

    Attributes
    ----------
    converged : bool
    x : np.ndarray
        Last iterate
    iterations : int
        Number of linear solves performed
    residual_norm : float
        max |F(x)| at the last evaluation
    """

    converged: bool
    x: np.ndarray
    iterations: int
    residual_norm: float


def newton_solve(
    residual: Callable[[np.ndarray], np.ndarray],
    x0: np.ndarray,
    lu_piv: Tuple[np.ndarray, np.ndarray],
    weights: np.ndarray,
    tol: float = 1e-10,
    max_iters: int = 10,
    kappa: float = 1e-2,
) -> NewtonResult:
    """
    Simplified Newton iteration x <- x - J^{-1} F(x) with a frozen factorization.

    Parameters
    ----------
    residual : Callable
        F(x)
    x0 : np.ndarray
        Starting guess (predictor)
    lu_piv : Tuple
        ``factorize`` output of the iteration matrix dF/dx
    weights : np.ndarray
        Positive per-component weights for the correction norm
    tol : float
        Absolute residual tolerance
    max_iters : int
        Maximum number of corrections
    kappa : float
        Weighted correction threshold

    Returns
    -------
    NewtonResult
    """
    x = np.array(x0, dtype=float)
    prev_norm = None
    fx = residual(x)
    res_norm = float(np.max(np.abs(fx))) if fx.size else 0.0

    for iteration in range(1, max_iters + 1):
        if not np.isfinite(res_norm):
            return NewtonResult(False, x, iteration - 1, res_norm)
        if res_norm <= tol:
            return NewtonResult(True, x, iteration - 1, res_norm)

        dx = solve_factored(lu_piv, fx)
        x = x - dx
        dx_norm = float(np.sqrt(np.mean((dx / weights) ** 2)))

        fx = residual(x)
        res_norm = float(np.max(np.abs(fx))) if fx.size else 0.0
        if not (np.isfinite(dx_norm) and np.isfinite(res_norm)):
            return NewtonResult(False, x, iteration, res_norm)
        if dx_norm <= kappa or res_norm <= tol:
            return NewtonResult(True, x, iteration, res_norm)
        if prev_norm is not None and dx_norm >= prev_norm:
            return NewtonResult(False, x, iteration, res_norm)
        prev_norm = dx_norm

    return NewtonResult(False, x, max_iters, res_norm)


__all__ = [
    "fd_jacobian",
    "fd_time_derivative",
    "factorize",
    "solve_factored",
    "NewtonResult",
    "newton_solve",
]
