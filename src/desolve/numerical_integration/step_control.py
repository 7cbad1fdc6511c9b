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
Step Control - Error Norms and Adaptive Step-Size Selection

Building blocks used by the Integrator loop:

- ``error_norm``: weighted RMS norm of a local error estimate
- ``StepSizeController``: growth/shrink factors from the error norm
- ``initial_step``: Hairer-Wanner starting step heuristic
- ``dt_floor``: smallest step representable at time t

Error Norm
----------
    sc_i = abstol + reltol * max(|u_i|, |u_new_i|)
    err  = sqrt(mean((e_i / sc_i)^2))

A step is accepted iff err <= 1. Components excluded by ``mask`` (the
algebraic variables of a DAE) do not enter the mean.

Step Update
-----------
    factor = safety * (1 / err)^(1 / (q + 1))
    h_new  = h * clamp(factor, min_growth, max_growth)    (accepted)
    h_new  = h * clamp(factor, min_growth, 1)             (rejected)

where q is the error-estimator order of the algorithm.
"""

from typing import Callable, Optional

import numpy as np

from desolve.types.core import BooleanMask, StateVector

# Relative spacing used to floor step sizes
_FLOOR_ULPS = 16.0


def dt_floor(t: float) -> float:
    """Smallest meaningful step at time t (16 ulps of max(1, |t|))."""
    return _FLOOR_ULPS * np.finfo(float).eps * max(1.0, abs(t))


def error_norm(
    err: np.ndarray,
    u_old: StateVector,
    u_new: StateVector,
    abstol: float,
    reltol: float,
    mask: Optional[BooleanMask] = None,
) -> float:
    """
    Weighted RMS norm of a local error estimate.

    Parameters
    ----------
    err : np.ndarray
        Local error estimate (u_new - u_hat)
    u_old, u_new : np.ndarray
        State at the start and end of the step
    abstol, reltol : float
        Tolerances
    mask : Optional[np.ndarray]
        Boolean mask of components to include (None = all)

    Returns
    -------
    float
        Scaled error; NaN/Inf propagate so callers can reject them

    Examples
    --------
    >>> error_norm(np.array([1e-9]), np.array([1.0]), np.array([1.0]), 1e-8, 1e-6)
    0.00099...
    """
    scale = abstol + reltol * np.maximum(np.abs(u_old), np.abs(u_new))
    ratio = np.asarray(err, dtype=float) / scale
    if mask is not None:
        ratio = ratio[mask]
    if ratio.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(ratio * ratio)))


class StepSizeController:
    """
    Elementary (integral) step-size controller.

    Parameters
    ----------
    safety : float
        Safety factor applied to the optimal factor
    min_growth : float
        Lower bound on the step ratio
    max_growth : float
        Upper bound on the step ratio after an accepted step

    Examples
    --------
    >>> ctrl = StepSizeController(safety=0.9, min_growth=0.2, max_growth=10.0)
    >>> ctrl.accept(0.1, err=0.5, order=4)  # grows
    0.10...
    >>> ctrl.reject(0.1, err=32.0, order=4)  # shrinks
    0.04...
    """

    def __init__(self, safety: float = 0.9, min_growth: float = 0.2, max_growth: float = 10.0):
        self.safety = safety
        self.min_growth = min_growth
        self.max_growth = max_growth

    def _factor(self, err: float, order: float) -> float:
        if not np.isfinite(err):
            return 0.0
        if err == 0.0:
            return np.inf
        return self.safety * (1.0 / err) ** (1.0 / (order + 1.0))

    def accept(self, h: float, err: float, order: float, max_growth: Optional[float] = None) -> float:
        """Next step after an accepted step of size h."""
        upper = self.max_growth if max_growth is None else min(self.max_growth, max_growth)
        factor = min(max(self._factor(err, order), self.min_growth), upper)
        return h * factor

    def reject(self, h: float, err: float, order: float) -> float:
        """Retry step after a rejected step of size h."""
        factor = min(max(self._factor(err, order), self.min_growth), 1.0)
        return h * factor

    def __repr__(self) -> str:
        return (
            f"StepSizeController(safety={self.safety}, min_growth={self.min_growth}, "
            f"max_growth={self.max_growth})"
        )


def initial_step(
    f: Optional[Callable[[StateVector, float], np.ndarray]],
    t0: float,
    u0: StateVector,
    f0: np.ndarray,
    order: float,
    abstol: float,
    reltol: float,
    mask: Optional[BooleanMask] = None,
) -> float:
    """
    Starting step size (Hairer, Norsett & Wanner, Solving ODEs I, II.4).

    Parameters
    ----------
    f : Optional[Callable]
        ``f(u, t)`` used for one extra derivative evaluation; when None
        (implicit problems) only the first-derivative estimate is used
    t0 : float
        Initial time
    u0, f0 : np.ndarray
        Initial state and derivative
    order : float
        Order of the method
    abstol, reltol : float
        Tolerances
    mask : Optional[np.ndarray]
        Components entering the norms

    Returns
    -------
    float
        Proposed first step (not yet clamped to the span)
    """
    scale = abstol + reltol * np.abs(u0)

    def _norm(x):
        r = x / scale
        if mask is not None:
            r = r[mask]
        return float(np.sqrt(np.mean(r * r))) if r.size else 0.0

    d0 = _norm(u0)
    d1 = _norm(f0)
    if d0 < 1e-5 or d1 < 1e-5:
        h0 = 1e-6
    else:
        h0 = 0.01 * d0 / d1

    if f is None:
        return h0

    f1 = f(u0 + h0 * f0, t0 + h0)
    d2 = _norm(f1 - f0) / h0
    max_d = max(d1, d2)
    if not np.isfinite(max_d):
        return h0
    if max_d <= 1e-15:
        h1 = max(1e-6, h0 * 1e-3)
    else:
        h1 = (0.01 / max_d) ** (1.0 / (order + 1.0))
    return min(100.0 * h0, h1)


__all__ = ["dt_floor", "error_norm", "StepSizeController", "initial_step"]
