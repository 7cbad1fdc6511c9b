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
Dense Output - Continuous Extension of Accepted Steps

Every accepted step stores a local segment that can be evaluated anywhere
on [t_start, t_end]. The ``Interpolant`` stitches the segments together
into a piecewise continuous solution.

Segments
--------
DormandPrinceSegment : 4th-order continuous extension of DP5 (FSAL stages)
RosenbrockSegment    : 2nd-order extension of Rosenbrock23
HermiteSegment       : cubic Hermite from endpoint states and derivatives
LinearSegment        : linear interpolation (SDE paths)

All segments return their stored endpoint states exactly at theta = 0 and
theta = 1, so the interpolant is continuous through accepted points and
reproduces every sample bit-for-bit.

Examples
--------
>>> seg = HermiteSegment(0.0, 0.1, u0, u1, f0, f1)
>>> seg(0.05)
array([...])
>>> interp = Interpolant.from_history(history)
>>> interp(np.linspace(0.0, 1.0, 11)).shape
(11, 2)
"""

from abc import ABC, abstractmethod
from typing import List, Sequence

import numpy as np

from desolve.errors import OutOfRangeError
from desolve.types.core import ScalarLike, StateVector
from desolve.types.trajectories import StateTrajectory, TimePoints

# ============================================================================
# Segments
# ============================================================================


class Segment(ABC):
    """
    Local continuous extension over one accepted step.

    Parameters
    ----------
    t_start, t_end : float
        Step interval
    u_start, u_end : np.ndarray
        States at the interval ends
    """

    def __init__(self, t_start: float, t_end: float, u_start: StateVector, u_end: StateVector):
        self.t_start = float(t_start)
        self.t_end = float(t_end)
        self.u_start = np.array(u_start, dtype=float)
        self.u_end = np.array(u_end, dtype=float)
        self.h = self.t_end - self.t_start

    def __call__(self, t: ScalarLike) -> StateVector:
        """State at time t (may lie slightly outside for extrapolation)."""
        if t == self.t_start:
            return self.u_start.copy()
        if t == self.t_end:
            return self.u_end.copy()
        theta = (t - self.t_start) / self.h
        return self._evaluate(theta)

    @abstractmethod
    def _evaluate(self, theta: float) -> StateVector:
        """Evaluate at normalized time theta in (0, 1)."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}([{self.t_start}, {self.t_end}])"


class LinearSegment(Segment):
    """Straight line between the endpoints."""

    def _evaluate(self, theta):
        return self.u_start + theta * (self.u_end - self.u_start)


class HermiteSegment(Segment):
    """
    Cubic Hermite interpolation from endpoint values and derivatives.

    Third-order accurate; used by Euler, RK4, BS3 and the DAE steppers.
    """

    def __init__(self, t_start, t_end, u_start, u_end, du_start, du_end):
        super().__init__(t_start, t_end, u_start, u_end)
        delta = self.u_end - self.u_start
        hf0 = self.h * np.asarray(du_start, dtype=float)
        hf1 = self.h * np.asarray(du_end, dtype=float)
        self._c1 = hf0
        self._c2 = 3.0 * delta - 2.0 * hf0 - hf1
        self._c3 = hf0 + hf1 - 2.0 * delta

    def _evaluate(self, theta):
        return self.u_start + theta * (self._c1 + theta * (self._c2 + theta * self._c3))


class DormandPrinceSegment(Segment):
    """
    Free 4th-order interpolant of the Dormand-Prince 5(4) pair.

    Parameters
    ----------
    k : np.ndarray
        The seven stage derivatives, shape (7, n); k[6] is f(t_end, u_end)
    """

    _B = np.array([35 / 384, 0.0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84, 0.0])

    def __init__(self, t_start, t_end, u_start, u_end, k):
        super().__init__(t_start, t_end, u_start, u_end)
        self.k = np.array(k, dtype=float)

    def _weights(self, theta: float) -> np.ndarray:
        b = self._B
        a = theta * theta * (3.0 - 2.0 * theta)
        bb = theta * theta * (theta - 1.0)
        c = theta * theta * (theta - 1.0) ** 2
        d = theta * (theta - 1.0) ** 2

        x1 = 5.0 * (2558722523.0 - 31403016.0 * theta) / 11282082432.0
        x3 = 100.0 * (882725551.0 - 15701508.0 * theta) / 32700410799.0
        x4 = 25.0 * (443332067.0 - 31403016.0 * theta) / 1880347072.0
        x5 = 32805.0 * (23143187.0 - 3489224.0 * theta) / 199316789632.0
        x6 = 55.0 * (29972135.0 - 7076736.0 * theta) / 822651844.0
        x7 = 10.0 * (7414447.0 - 829305.0 * theta) / 29380423.0

        return np.array(
            [
                a * b[0] - c * x1 + d,
                0.0,
                a * b[2] + c * x3,
                a * b[3] - c * x4,
                a * b[4] + c * x5,
                a * b[5] - c * x6,
                bb + c * x7,
            ]
        )

    def _evaluate(self, theta):
        return self.u_start + self.h * (self._weights(theta) @ self.k)


class RosenbrockSegment(Segment):
    """
    Second-order continuous extension of Rosenbrock23 (Shampine & Reichelt).

    Parameters
    ----------
    k1, k2 : np.ndarray
        First two stage vectors of the step
    d : float
        Method constant 1 / (2 + sqrt(2))
    """

    def __init__(self, t_start, t_end, u_start, u_end, k1, k2, d):
        super().__init__(t_start, t_end, u_start, u_end)
        self.k1 = np.array(k1, dtype=float)
        self.k2 = np.array(k2, dtype=float)
        self.d = d

    def _evaluate(self, theta):
        denom = 1.0 - 2.0 * self.d
        w1 = theta * (1.0 - theta) / denom
        w2 = theta * (theta - 2.0 * self.d) / denom
        return self.u_start + self.h * (w1 * self.k1 + w2 * self.k2)


# ============================================================================
# Interpolant
# ============================================================================


class Interpolant:
    """
    Piecewise dense output over the accepted steps of a run.

    Parameters
    ----------
    times : np.ndarray
        Accepted sample times, shape (T,), non-decreasing
    states : np.ndarray
        Accepted sample states, shape (T, n)
    segments : Sequence[Segment]
        Segment i covers [times[i], times[i+1]]; len == T - 1

    Notes
    -----
    - At a sample time the stored sample is returned exactly, so
      ``interp(t_i) == u_i`` even across event discontinuities where the
      segment ending at t_i holds the pre-event state.
    - Queries are pure: the interpolant holds no query-dependent state.

    Examples
    --------
    >>> interp = solution.interpolant
    >>> interp(0.5).shape
    (n,)
    >>> interp([0.1, 0.2]).shape
    (2, n)
    """

    def __init__(self, times: TimePoints, states: StateTrajectory, segments: Sequence[Segment]):
        self.times = np.asarray(times, dtype=float)
        self.states = np.asarray(states, dtype=float)
        self.segments: List[Segment] = list(segments)
        if len(self.segments) != max(len(self.times) - 1, 0):
            raise ValueError(
                f"Need {len(self.times) - 1} segments for {len(self.times)} samples, "
                f"got {len(self.segments)}"
            )
        self._starts = np.array([seg.t_start for seg in self.segments], dtype=float)

    @classmethod
    def from_history(cls, history) -> "Interpolant":
        """Build from a list of HistoryEntry (first entry has no segment)."""
        times = np.array([entry.t for entry in history], dtype=float)
        states = np.array([entry.u for entry in history], dtype=float)
        segments = [entry.segment for entry in history[1:]]
        return cls(times, states, segments)

    @property
    def t_start(self) -> float:
        return float(self.times[0])

    @property
    def t_end(self) -> float:
        return float(self.times[-1])

    def __call__(self, t):
        """
        Evaluate at scalar t (returns (n,)) or an array of times (returns (len, n)).

        Raises
        ------
        OutOfRangeError
            If any query lies outside [t_start, t_end]
        """
        t_arr = np.asarray(t, dtype=float)
        if t_arr.ndim == 0:
            return self._evaluate_scalar(float(t_arr))
        flat = t_arr.reshape(-1)
        out = np.empty((flat.size, self.states.shape[1]), dtype=float)
        for i, ti in enumerate(flat):
            out[i] = self._evaluate_scalar(float(ti))
        return out

    def _evaluate_scalar(self, t: float) -> StateVector:
        if not (self.times[0] <= t <= self.times[-1]):
            raise OutOfRangeError(
                f"t={t} outside solved interval [{self.times[0]}, {self.times[-1]}]"
            )
        k = int(np.searchsorted(self.times, t, side="right")) - 1
        if self.times[k] == t:
            return self.states[k].copy()
        # k indexes the sample at or before t; segment k starts there
        k = min(k, len(self.segments) - 1)
        return self.segments[k](t)

    def segment_at(self, t: float) -> Segment:
        """Segment used for time t (clipped to the first/last segment)."""
        if not self.segments:
            raise OutOfRangeError("Interpolant has no segments")
        k = int(np.searchsorted(self._starts, t, side="right")) - 1
        return self.segments[min(max(k, 0), len(self.segments) - 1)]

    def __len__(self) -> int:
        return len(self.segments)

    def __repr__(self) -> str:
        return (
            f"Interpolant(t=[{self.times[0]}, {self.times[-1]}], "
            f"segments={len(self.segments)})"
        )


__all__ = [
    "Segment",
    "LinearSegment",
    "HermiteSegment",
    "DormandPrinceSegment",
    "RosenbrockSegment",
    "Interpolant",
]
