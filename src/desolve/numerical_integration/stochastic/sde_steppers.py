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
SDE Steppers - Euler-Maruyama Family

Itô SDE steppers for du = f(u, p, t) dt + g(u, p, t) dW:

- EM: Euler-Maruyama, fixed step (strong order 0.5)
- LambaEM: Euler-Maruyama with an embedded error estimate (adaptive)

Noise Application
-----------------
Diagonal noise (``noise_rate_shape`` None): g returns a vector and each
component is driven by its own Wiener process, du += g * dW.

General noise: g returns a (state_dim, noise_cols) matrix, du += G @ dW.
Every row referencing column j receives the same scalar increment dW_j.

Increments come from the run's NoiseProcess; a rejected LambaEM step is
retried on the same Brownian path.
"""

import numpy as np

from desolve.numerical_integration.dense_output import LinearSegment
from desolve.numerical_integration.integrator_base import StepMode, StepOutcome, StepperBase


def apply_noise(G: np.ndarray, dW: np.ndarray) -> np.ndarray:
    """Map a noise rate and Wiener increment to a state increment."""
    if G.ndim == 1:
        return G * dW
    return G @ dW


class SDEStepperBase(StepperBase):
    """Shared Euler-Maruyama update."""

    order = 0.5

    def _em_update(self, state, h, bridge):
        if state.noise is None:
            raise RuntimeError(f"{self.name} requires a NoiseProcess")
        t, u, f0 = state.t, state.u, state.du
        dW = state.noise.increment(h)
        G0 = bridge.noise(u, t)
        u_new = u + h * f0 + apply_noise(G0, dW)
        return u_new, dW, G0


class EMStepper(SDEStepperBase):
    """
    Euler-Maruyama.

    Algorithm:
        u_{n+1} = u_n + f(u_n, t_n) h + g(u_n, t_n) dW_n

    Characteristics:
    - Strong order 0.5, weak order 1
    - Fixed step: requires ``dt_initial``

    Examples
    --------
    >>> sol = solve(sde_prob, {"algorithm": "EM", "dt_initial": 1e-3, "seed": 42})
    """

    name = "EM"
    step_mode = StepMode.FIXED

    def step(self, state, h, problem, bridge):
        u_new, _, _ = self._em_update(state, h, bridge)
        du_new = bridge.f(u_new, state.t + h)
        seg = LinearSegment(state.t, state.t + h, state.u, u_new)
        return StepOutcome(True, u_new, None, du_new, seg)


class LambaEMStepper(SDEStepperBase):
    """
    Adaptive Euler-Maruyama (Lamba, 2003).

    The error estimate compares drift and noise at both ends of the step:

        err = h/2 (f(u_{n+1}) - f(u_n)) + 1/2 (g(u_{n+1}) - g(u_n)) dW

    Examples
    --------
    >>> sol = solve(sde_prob, {"seed": 1})  # default for SDEs
    """

    name = "LambaEM"
    step_mode = StepMode.ADAPTIVE

    def step(self, state, h, problem, bridge):
        t, f0 = state.t, state.du
        u_new, dW, G0 = self._em_update(state, h, bridge)
        f1 = bridge.f(u_new, t + h)
        G1 = bridge.noise(u_new, t + h)
        err = 0.5 * h * (f1 - f0) + 0.5 * apply_noise(G1 - G0, dW)
        seg = LinearSegment(t, t + h, state.u, u_new)
        return StepOutcome(True, u_new, err, f1, seg)


__all__ = ["apply_noise", "SDEStepperBase", "EMStepper", "LambaEMStepper"]
