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
Rosenbrock23 - Linearly Implicit Stiff ODE Stepper

Modified Rosenbrock pair of order 2(3) (Shampine & Reichelt, "The MATLAB
ODE Suite", 1997; the scheme behind ode23s). Each step needs one Jacobian,
one LU factorization and three linear solves; there is no Newton
iteration, so the method cannot diverge the way fully implicit ones can.

Algorithm (d = 1 / (2 + sqrt(2)), e32 = 6 + sqrt(2)):

    W  = I - h d J,       J = df/du,  T = df/dt
    k1 = W^{-1} (F0 + h d T)
    F1 = f(u + h/2 k1, t + h/2)
    k2 = W^{-1} (F1 - k1) + k1
    u_new = u + h k2
    F2 = f(u_new, t + h)
    k3 = W^{-1} (F2 - e32 (k2 - F1) - 2 (k1 - F0) + h d T)
    err = h/6 (k1 - 2 k2 + k3)

J and T are formed by forward differences through the FunctionBridge.
"""

import numpy as np

from desolve.numerical_integration.dense_output import RosenbrockSegment
from desolve.numerical_integration.integrator_base import StepMode, StepOutcome, StepperBase
from desolve.numerical_integration.nonlinear_solve import (
    factorize,
    fd_jacobian,
    fd_time_derivative,
    solve_factored,
)


class Rosenbrock23Stepper(StepperBase):
    """
    Stiff ODE stepper (Rosenbrock 2(3), L-stable).

    Best for:
    - Moderately stiff problems at loose tolerances
    - Problems with fast transients (chemical kinetics, circuits)

    Examples
    --------
    >>> sol = solve(van_der_pol_stiff, {"algorithm": "Rosenbrock23", "reltol": 1e-4})
    """

    name = "Rosenbrock23"
    order = 2
    step_mode = StepMode.ADAPTIVE

    D = 1.0 / (2.0 + np.sqrt(2.0))
    E32 = 6.0 + np.sqrt(2.0)

    def step(self, state, h, problem, bridge):
        t, u, f0 = state.t, state.u, state.du
        d, e32 = self.D, self.E32
        n = u.shape[0]

        jac = fd_jacobian(lambda x: bridge.f(x, t), u, f0)
        dfdt = fd_time_derivative(bridge.f, u, t, f0)
        self._stats["njac"] += 1

        lu_piv = factorize(np.eye(n) - h * d * jac)
        if lu_piv is None:
            self._stats["nnonlinear_fail"] += 1
            return StepOutcome.failure()

        k1 = solve_factored(lu_piv, f0 + h * d * dfdt)
        f1 = bridge.f(u + 0.5 * h * k1, t + 0.5 * h)
        k2 = solve_factored(lu_piv, f1 - k1) + k1
        u_new = u + h * k2
        f2 = bridge.f(u_new, t + h)
        k3 = solve_factored(lu_piv, f2 - e32 * (k2 - f1) - 2.0 * (k1 - f0) + h * d * dfdt)
        self._stats["nsolve"] += 3

        if not np.all(np.isfinite(u_new)):
            self._stats["nnonlinear_fail"] += 1
            return StepOutcome.failure()

        err = (h / 6.0) * (k1 - 2.0 * k2 + k3)
        seg = RosenbrockSegment(t, t + h, u, u_new, k1, k2, d)
        return StepOutcome(True, u_new, err, f2, seg)


__all__ = ["Rosenbrock23Stepper"]
