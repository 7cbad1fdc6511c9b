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
DAE Steppers - Fully Implicit Residual-Form Integration

Steppers for index-1 DAEs written as 0 = F(du, u, p, t):

- DImplicitEuler: backward Euler in residual form (order 1)
- DBDF2: variable-step BDF2 in residual form (order 2)

Both solve for u_{n+1} with Newton's method. The derivative is eliminated
with the method's difference formula du = alpha * u_{n+1} + beta, so the
Newton unknown is the state and the iteration matrix is

    dG/du = alpha * dF/d(du) + dF/du

formed by forward differences of the residual.

Error Control
-------------
Only differential components (``differential_vars`` True) enter the error
norm; algebraic components are fixed by the constraint and carry no
truncation error of their own.

- DImplicitEuler: err = h/2 (du_{n+1} - du_n)
- DBDF2 (Milne device): err = 2/5 (u_corrector - u_predictor)

Consistent Initialization
-------------------------
If max |F(du0, u0, p, t0)| exceeds sqrt(eps), Newton's method is run on
the derivatives of the differential components and the values of the
algebraic components (u of differential components and du of algebraic
components are held fixed). The repair emits a RuntimeWarning; failure to
converge raises InvalidProblemSpecError.
"""

import warnings

import numpy as np

from desolve.errors import InvalidProblemSpecError
from desolve.numerical_integration.dense_output import HermiteSegment
from desolve.numerical_integration.integrator_base import StepMode, StepOutcome, StepperBase
from desolve.numerical_integration.nonlinear_solve import (
    factorize,
    fd_jacobian,
    newton_solve,
    solve_factored,
)

CONSISTENCY_TOL = np.sqrt(np.finfo(float).eps)

# Defaults when a stepper is driven without a SolverConfig
_DEFAULT_NEWTON = {"abstol": 1e-8, "reltol": 1e-6, "newton_tol": 1e-10, "newton_max_iters": 10}


def consistent_initialization(bridge, u0, du0, t0, differential_vars, max_iters=50):
    """
    Repair (u0, du0) so that F(du0, u0, p, t0) = 0.

    Parameters
    ----------
    bridge : FunctionBridge
        Residual channel
    u0, du0 : np.ndarray
        Initial guesses
    t0 : float
        Initial time
    differential_vars : np.ndarray
        Boolean mask of differential components
    max_iters : int
        Full-Newton iteration cap

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        Consistent (u0, du0)

    Raises
    ------
    InvalidProblemSpecError
        If no consistent point is found
    """
    diff = np.asarray(differential_vars, dtype=bool)
    u = np.array(u0, dtype=float)
    du = np.array(du0, dtype=float)

    def unpack(z):
        du_z = du.copy()
        u_z = u.copy()
        du_z[diff] = z[diff]
        u_z[~diff] = z[~diff]
        return du_z, u_z

    def residual(z):
        du_z, u_z = unpack(z)
        return bridge.residual(du_z, u_z, t0)

    z = np.where(diff, du, u)
    for _ in range(max_iters):
        r = residual(z)
        if not np.all(np.isfinite(r)):
            break
        if np.max(np.abs(r)) <= CONSISTENCY_TOL:
            du_z, u_z = unpack(z)
            return u_z, du_z
        lu_piv = factorize(fd_jacobian(residual, z, r))
        if lu_piv is None:
            break
        z = z - solve_factored(lu_piv, r)

    r = residual(z)
    if np.all(np.isfinite(r)) and np.max(np.abs(r)) <= CONSISTENCY_TOL:
        du_z, u_z = unpack(z)
        return u_z, du_z
    raise InvalidProblemSpecError(
        f"Could not find consistent DAE initial conditions at t0={t0} "
        f"(residual norm {np.max(np.abs(r)):.3e})"
    )


class DAEStepperBase(StepperBase):
    """
    Shared machinery of the residual-form steppers.

    Subclasses implement ``step`` using ``_implicit_solve``.
    """

    step_mode = StepMode.ADAPTIVE

    def _setting(self, key):
        if self.config is None:
            return _DEFAULT_NEWTON[key]
        return getattr(self.config, key)

    def initialize(self, state, problem, bridge, config=None):
        self.config = config
        du0 = problem.du0 if state.du is None else state.du
        state.u, state.du = self._make_consistent(state.u, du0, state.t, problem, bridge)

    def refresh_derivative(self, state, problem, bridge):
        state.u, state.du = self._make_consistent(state.u, state.du, state.t, problem, bridge)

    def _make_consistent(self, u, du, t, problem, bridge):
        u = np.array(u, dtype=float)
        du = np.array(du, dtype=float)
        r = bridge.residual(du, u, t)
        if np.all(np.isfinite(r)) and np.max(np.abs(r)) <= CONSISTENCY_TOL:
            return u, du
        warnings.warn(
            f"Inconsistent DAE state at t={t} (max |F| = {np.max(np.abs(r)):.3e}); "
            f"recomputing consistent initial conditions",
            RuntimeWarning,
            stacklevel=2,
        )
        return consistent_initialization(bridge, u, du, t, problem.differential_vars)

    def _weights(self, u):
        return self._setting("abstol") + self._setting("reltol") * np.abs(u)

    def _implicit_solve(self, bridge, t1, alpha, beta, u_guess):
        """
        Solve F(alpha * u + beta, u, t1) = 0 for u.

        Returns
        -------
        Optional[np.ndarray]
            Converged state, or None on Newton failure
        """

        def residual(x):
            return bridge.residual(alpha * x + beta, x, t1)

        r0 = residual(u_guess)
        if not np.all(np.isfinite(r0)):
            self._stats["nnonlinear_fail"] += 1
            return None
        lu_piv = factorize(fd_jacobian(residual, u_guess, r0))
        self._stats["njac"] += 1
        if lu_piv is None:
            self._stats["nnonlinear_fail"] += 1
            return None

        result = newton_solve(
            residual,
            u_guess,
            lu_piv,
            self._weights(u_guess),
            tol=self._setting("newton_tol"),
            max_iters=self._setting("newton_max_iters"),
        )
        self._stats["nnewton"] += result.iterations
        self._stats["nsolve"] += result.iterations
        if not result.converged:
            self._stats["nnonlinear_fail"] += 1
            return None
        return result.x

    def _euler_step(self, state, h, bridge):
        t, u0, du0 = state.t, state.u, state.du
        t1 = t + h
        u1 = self._implicit_solve(bridge, t1, 1.0 / h, -u0 / h, u0 + h * du0)
        if u1 is None:
            return StepOutcome.failure()
        du1 = (u1 - u0) / h
        err = 0.5 * h * (du1 - du0)
        seg = HermiteSegment(t, t1, u0, u1, du0, du1)
        return StepOutcome(True, u1, err, du1, seg)


class DImplicitEulerStepper(DAEStepperBase):
    """
    Backward Euler for fully implicit DAEs.

    Algorithm:
        0 = F((u_{n+1} - u_n) / h, u_{n+1}, p, t_{n+1})

    Characteristics:
    - Order: 1, L-stable
    - One Jacobian and a few Newton iterations per step

    Examples
    --------
    >>> sol = solve(dae_prob, {"algorithm": "DImplicitEuler"})
    """

    name = "DImplicitEuler"
    order = 1

    def step(self, state, h, problem, bridge):
        return self._euler_step(state, h, bridge)


class DBDF2Stepper(DAEStepperBase):
    """
    Variable-step BDF2 for fully implicit DAEs.

    With omega = h_n / h_{n-1}:

        du_{n+1} = [ (1 + 2 omega)/(1 + omega) u_{n+1}
                     - (1 + omega) u_n
                     + omega^2/(1 + omega) u_{n-1} ] / h_n

    The predictor is the quadratic through u_{n-1}, u_n with slope du_n at
    t_n. The first step after a start or restart (event, forced
    discontinuity) is a backward Euler step.

    Characteristics:
    - Order: 2, A-stable
    - Step growth capped at 2 per step (zero-stability of variable BDF2)

    Examples
    --------
    >>> sol = solve(robertson_dae, {"reltol": 1e-4, "abstol": 1e-8})  # default for DAEs
    """

    name = "DBDF2"
    order = 2
    max_growth = 2.0

    def step(self, state, h, problem, bridge):
        usable = state.usable_history
        if len(usable) < 2:
            return self._euler_step(state, h, bridge)

        t, u_n, du_n = state.t, state.u, state.du
        prev = usable[-2]
        h_prev = t - prev.t
        if h_prev <= 0.0:
            return self._euler_step(state, h, bridge)
        omega = h / h_prev
        t1 = t + h

        alpha = (1.0 + 2.0 * omega) / ((1.0 + omega) * h)
        beta = (-(1.0 + omega) * u_n + (omega * omega / (1.0 + omega)) * prev.u) / h

        a = (prev.u - u_n + du_n * h_prev) / (h_prev * h_prev)
        u_pred = u_n + du_n * h + a * h * h

        u1 = self._implicit_solve(bridge, t1, alpha, beta, u_pred)
        if u1 is None:
            return StepOutcome.failure()
        du1 = alpha * u1 + beta
        err = 0.4 * (u1 - u_pred)
        seg = HermiteSegment(t, t1, u_n, u1, du_n, du1)
        return StepOutcome(True, u1, err, du1, seg)


__all__ = [
    "CONSISTENCY_TOL",
    "consistent_initialization",
    "DAEStepperBase",
    "DImplicitEulerStepper",
    "DBDF2Stepper",
]
