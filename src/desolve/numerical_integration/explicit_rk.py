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
Embedded Explicit Runge-Kutta Steppers

Adaptive explicit methods for non-stiff ODEs and DDEs:

- BS3: Bogacki-Shampine 3(2), 4 stages, FSAL
- DP5: Dormand-Prince 5(4), 7 stages, FSAL

Both propagate the higher-order solution (local extrapolation) and use the
difference to the embedded lower-order solution as error estimate:

    err = h * sum_i (b_i - b_hat_i) k_i

FSAL (first same as last): the final stage is f(t + h, u_new), which is
returned as ``du_new`` and reused by the Integrator as the first stage of
the next step. A DP5 step therefore costs 6 evaluations, BS3 costs 3.

Dense output: DP5 ships its free 4th-order continuous extension, BS3 uses
cubic Hermite interpolation (3rd order, matching the method).
"""

import numpy as np

from desolve.numerical_integration.dense_output import DormandPrinceSegment, HermiteSegment
from desolve.numerical_integration.integrator_base import StepMode, StepOutcome, StepperBase


class EmbeddedRKStepper(StepperBase):
    """
    Generic FSAL embedded explicit Runge-Kutta step.

    Subclasses supply the Butcher tableau as class attributes:

    A : (s, s) strictly lower-triangular stage matrix
    B : (s,) propagated weights (last row of A for FSAL pairs)
    B_HAT : (s,) embedded weights
    C : (s,) stage nodes, C[-1] == 1
    """

    A: np.ndarray
    B: np.ndarray
    B_HAT: np.ndarray
    C: np.ndarray
    step_mode = StepMode.ADAPTIVE

    def _stages(self, state, h, bridge):
        t, u = state.t, state.u
        s = len(self.C)
        k = np.empty((s, u.shape[0]), dtype=float)
        k[0] = state.du
        for i in range(1, s - 1):
            k[i] = bridge.f(u + h * (self.A[i, :i] @ k[:i]), t + self.C[i] * h)
        # FSAL: B[-1] == 0, the last stage is the derivative at u_new
        u_new = u + h * (self.B[: s - 1] @ k[: s - 1])
        k[s - 1] = bridge.f(u_new, t + h)
        return k, u_new

    def step(self, state, h, problem, bridge):
        k, u_new = self._stages(state, h, bridge)
        err = h * ((self.B - self.B_HAT) @ k)
        return StepOutcome(True, u_new, err, k[-1].copy(), self._segment(state, h, u_new, k))

    def _segment(self, state, h, u_new, k):
        return HermiteSegment(state.t, state.t + h, state.u, u_new, k[0], k[-1])


class BS3Stepper(EmbeddedRKStepper):
    """
    Bogacki-Shampine 3(2) pair.

    Cheap low-order method, efficient at loose tolerances.

    Examples
    --------
    >>> sol = solve(prob, {"algorithm": "BS3", "reltol": 1e-3})
    """

    name = "BS3"
    order = 3
    adaptive_order = 2

    C = np.array([0.0, 1 / 2, 3 / 4, 1.0])
    A = np.array(
        [
            [0.0, 0.0, 0.0, 0.0],
            [1 / 2, 0.0, 0.0, 0.0],
            [0.0, 3 / 4, 0.0, 0.0],
            [2 / 9, 1 / 3, 4 / 9, 0.0],
        ]
    )
    B = np.array([2 / 9, 1 / 3, 4 / 9, 0.0])
    B_HAT = np.array([7 / 24, 1 / 4, 1 / 3, 1 / 8])


class DP5Stepper(EmbeddedRKStepper):
    """
    Dormand-Prince 5(4) pair (the scheme behind MATLAB's ode45).

    Default method for non-stiff ODEs and DDEs.

    Characteristics:
    - Order: 5, error estimator order 4
    - Function evaluations: 6 per step (FSAL)
    - Dense output: 4th-order continuous extension at no extra cost

    Examples
    --------
    >>> sol = solve(prob)  # DP5 is the ODE default
    >>> sol(0.5)
    """

    name = "DP5"
    order = 5
    adaptive_order = 4

    C = np.array([0.0, 1 / 5, 3 / 10, 4 / 5, 8 / 9, 1.0, 1.0])
    A = np.array(
        [
            [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
            [1 / 5, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
            [3 / 40, 9 / 40, 0.0, 0.0, 0.0, 0.0, 0.0],
            [44 / 45, -56 / 15, 32 / 9, 0.0, 0.0, 0.0, 0.0],
            [19372 / 6561, -25360 / 2187, 64448 / 6561, -212 / 729, 0.0, 0.0, 0.0],
            [9017 / 3168, -355 / 33, 46732 / 5247, 49 / 176, -5103 / 18656, 0.0, 0.0],
            [35 / 384, 0.0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84, 0.0],
        ]
    )
    B = np.array([35 / 384, 0.0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84, 0.0])
    B_HAT = np.array(
        [5179 / 57600, 0.0, 7571 / 16695, 393 / 640, -92097 / 339200, 187 / 2100, 1 / 40]
    )

    def _segment(self, state, h, u_new, k):
        return DormandPrinceSegment(state.t, state.t + h, state.u, u_new, k)


__all__ = ["EmbeddedRKStepper", "BS3Stepper", "DP5Stepper"]
