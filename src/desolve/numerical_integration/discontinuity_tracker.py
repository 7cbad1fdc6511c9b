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
Discontinuity Tracker - Forced Step Boundaries and Delayed States

Delay differential equations with constant lags L_1..L_k have derivative
discontinuities propagated from t0 to every

    t0 + n_1 L_1 + ... + n_k L_k,    n_i >= 0 integers

Low-order derivatives jump there, so the Integrator must step onto these
times exactly instead of stepping across them. User ``tstops`` are merged
into the same boundary set.

The tracker also supplies the delayed-state accessor h(p, t_lag) handed to
DDE right-hand sides.

Examples
--------
>>> tracker = DiscontinuityTracker(0.0, 100.0, lags=[20.0])
>>> tracker.boundaries
array([ 20.,  40.,  60.,  80., 100.])
>>> tracker.next_boundary(25.0)
40.0
"""

import heapq
import warnings
from typing import List, Sequence

import numpy as np

from desolve.types.core import ScalarLike, StateVector

# Relative tolerance used to merge coincident boundaries
_MERGE_RTOL = 1e-12


def _merge_tolerance(t: float) -> float:
    return _MERGE_RTOL * max(1.0, abs(t))


def propagated_discontinuities(
    t0: float,
    tf: float,
    lags: Sequence[float],
    max_discontinuities: int = 1000,
) -> List[float]:
    """
    All sums of non-negative multiples of the positive lags in (t0, tf].

    Parameters
    ----------
    t0, tf : float
        Integration interval
    lags : Sequence[float]
        Constant lags (zero lags are ignored)
    max_discontinuities : int
        Cap on the number of generated points (earliest are kept)

    Returns
    -------
    List[float]
        Sorted, deduplicated discontinuity times

    Warns
    -----
    RuntimeWarning
        If the cap truncated the set
    """
    positive = sorted({float(lag) for lag in lags if lag > 0})
    if not positive:
        return []

    result: List[float] = []
    heap = [t0 + lag for lag in positive]
    heapq.heapify(heap)
    limit = tf + _merge_tolerance(tf)

    while heap:
        t = heapq.heappop(heap)
        if t > limit:
            break
        if result and t - result[-1] <= _merge_tolerance(t):
            continue
        if len(result) >= max_discontinuities:
            warnings.warn(
                f"Propagated discontinuities truncated at {max_discontinuities} "
                f"(t={result[-1]:.6g}); later ones are not stepped onto exactly",
                RuntimeWarning,
                stacklevel=2,
            )
            break
        result.append(min(t, tf))
        for lag in positive:
            heapq.heappush(heap, t + lag)
    return result


class DiscontinuityTracker:
    """
    Ordered set of times the Integrator must land on.

    Parameters
    ----------
    t0, tf : float
        Integration interval
    lags : Sequence[float]
        DDE constant lags (empty for other problem kinds)
    tstops : Sequence[float]
        Additional user stop times (outside (t0, tf] are ignored)
    max_discontinuities : int
        Cap on propagated lag discontinuities

    Attributes
    ----------
    boundaries : np.ndarray
        Sorted forced boundaries in (t0, tf], always ending with tf
    max_step : float
        Step cap; the smallest positive lag for DDEs, else inf
    """

    def __init__(
        self,
        t0: float,
        tf: float,
        lags: Sequence[float] = (),
        tstops: Sequence[float] = (),
        max_discontinuities: int = 1000,
    ):
        self.t0 = float(t0)
        self.tf = float(tf)
        self.lags = tuple(float(lag) for lag in lags)

        points = propagated_discontinuities(self.t0, self.tf, self.lags, max_discontinuities)
        points.extend(float(s) for s in tstops if self.t0 < s <= self.tf)
        points.append(self.tf)

        merged: List[float] = []
        for t in sorted(points):
            if merged and t - merged[-1] <= _merge_tolerance(t):
                # Keep tf exact when a boundary rounds onto it
                if t == self.tf:
                    merged[-1] = t
                continue
            merged.append(t)
        self.boundaries = np.array(merged, dtype=float)

        positive = [lag for lag in self.lags if lag > 0]
        self.max_step = min(positive) if positive else np.inf

    def next_boundary(self, t: ScalarLike) -> float:
        """Nearest forced boundary strictly after t (tf if none remain)."""
        idx = int(np.searchsorted(self.boundaries, t + _merge_tolerance(t), side="right"))
        if idx >= len(self.boundaries):
            return self.tf
        return float(self.boundaries[idx])

    def is_boundary(self, t: ScalarLike) -> bool:
        if len(self.boundaries) == 0:
            return False
        idx = int(np.argmin(np.abs(self.boundaries - t)))
        return abs(self.boundaries[idx] - t) <= _merge_tolerance(t)

    def __repr__(self) -> str:
        return (
            f"DiscontinuityTracker([{self.t0}, {self.tf}], lags={self.lags}, "
            f"boundaries={len(self.boundaries)})"
        )


class DelayedStateAccessor:
    """
    h(p, t_lag) for DDE right-hand sides.

    Resolution order:
    - t_lag <= t0: the problem's history function
    - t0 < t_lag <= last accepted time: dense segment of the accepted step
    - beyond: extrapolation of the last accepted segment (reachable only
      with lags shorter than the current step)

    Parameters
    ----------
    bridge : FunctionBridge
        Channel to the history function
    history : List[HistoryEntry]
        The run's append-only history (read live)
    """

    def __init__(self, bridge, history):
        self.bridge = bridge
        self.history = history
        self.t0 = history[0].t
        self._starts: List[float] = []

    def _sync(self):
        while len(self._starts) < len(self.history) - 1:
            self._starts.append(self.history[len(self._starts) + 1].segment.t_start)

    def __call__(self, p, t_lag: ScalarLike) -> StateVector:
        t_lag = float(t_lag)
        if t_lag <= self.t0:
            return self.bridge.history(t_lag)

        self._sync()
        last = self.history[-1]
        if not self._starts:
            return np.array(last.u, dtype=float)
        if t_lag == last.t:
            return np.array(last.u, dtype=float)

        k = int(np.searchsorted(self._starts, t_lag, side="right"))
        segment = self.history[min(max(k, 1), len(self.history) - 1)].segment
        return segment(t_lag)


__all__ = [
    "propagated_discontinuities",
    "DiscontinuityTracker",
    "DelayedStateAccessor",
]
