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
Fixed-Step Steppers

Classic constant-step methods for ODEs and DDEs:
- Explicit Euler (1st order)
- RK4 (4th order)

The Integrator drives them with the constant step ``dt_initial`` (clamped
only at forced boundaries and the end of the span). They produce no error
estimate, so every step is accepted unless it yields non-finite values.

Dense output is a cubic Hermite segment built from the endpoint states and
derivatives; the end derivative is reused as the first stage of the next
step.
"""

from typing import Dict, Type

from desolve.numerical_integration.dense_output import HermiteSegment
from desolve.numerical_integration.integrator_base import StepMode, StepOutcome, StepperBase


class ExplicitEulerStepper(StepperBase):
    """
    Explicit (forward) Euler.

    Algorithm:
        u_{k+1} = u_k + h * f(u_k, t_k)

    Characteristics:
    - Order: 1 (global error ∝ h)
    - Function evaluations: 1 per step (derivative reuse)
    - Stability: small region, unsuitable for stiff problems

    Examples
    --------
    >>> sol = solve(prob, {"algorithm": "Euler", "dt_initial": 1e-3})
    """

    name = "Euler"
    order = 1
    step_mode = StepMode.FIXED

    def step(self, state, h, problem, bridge):
        t, u, du = state.t, state.u, state.du
        u_new = u + h * du
        du_new = bridge.f(u_new, t + h)
        seg = HermiteSegment(t, t + h, u, u_new, du, du_new)
        return StepOutcome(True, u_new, None, du_new, seg)


class RK4Stepper(StepperBase):
    """
    Classic 4th-order Runge-Kutta.

    Algorithm:
        k1 = f(u_k, t_k)
        k2 = f(u_k + h/2 k1, t_k + h/2)
        k3 = f(u_k + h/2 k2, t_k + h/2)
        k4 = f(u_k + h k3, t_k + h)
        u_{k+1} = u_k + (h/6) (k1 + 2 k2 + 2 k3 + k4)

    Characteristics:
    - Order: 4
    - Function evaluations: 4 per step (k1 reused from the previous step)
    - Best for smooth non-stiff problems at a known resolution

    Examples
    --------
    >>> sol = solve(prob, {"algorithm": "RK4", "dt_initial": 0.01})
    """

    name = "RK4"
    order = 4
    step_mode = StepMode.FIXED

    def step(self, state, h, problem, bridge):
        t, u = state.t, state.u
        k1 = state.du
        k2 = bridge.f(u + 0.5 * h * k1, t + 0.5 * h)
        k3 = bridge.f(u + 0.5 * h * k2, t + 0.5 * h)
        k4 = bridge.f(u + h * k3, t + h)

        u_new = u + (h / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)
        du_new = bridge.f(u_new, t + h)
        seg = HermiteSegment(t, t + h, u, u_new, k1, du_new)
        return StepOutcome(True, u_new, None, du_new, seg)


# ============================================================================
# Utility: Quick Stepper Creation
# ============================================================================

FIXED_STEP_METHODS: Dict[str, Type[StepperBase]] = {
    "euler": ExplicitEulerStepper,
    "rk4": RK4Stepper,
}


def create_fixed_step_stepper(method: str) -> StepperBase:
    """
    Quick factory for fixed-step steppers.

    Parameters
    ----------
    method : str
        'euler' or 'rk4' (case-insensitive)

    Returns
    -------
    StepperBase

    Examples
    --------
    >>> create_fixed_step_stepper('rk4').order
    4
    """
    key = method.lower()
    if key not in FIXED_STEP_METHODS:
        raise ValueError(
            f"Unknown method '{method}'. Choose from: {list(FIXED_STEP_METHODS.keys())}"
        )
    return FIXED_STEP_METHODS[key]()


__all__ = [
    "ExplicitEulerStepper",
    "RK4Stepper",
    "FIXED_STEP_METHODS",
    "create_fixed_step_stepper",
]
