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
Events - Root-Found State Events

An ``Event`` watches a scalar condition g(u, t, p), sampled at the step
endpoints and at interior points of the dense segment. When g changes sign
across a tentative step (in the requested direction), the crossing time is
located with ``scipy.optimize.brentq`` on the step's dense segment, the
Integrator re-steps to land exactly on it and the event's ``affect`` is
applied there.

Direction
---------
 0 : any sign change
+1 : upward crossings only (g goes from negative to non-negative)
-1 : downward crossings only (g goes from positive to non-positive)

Examples
--------
>>> # Bouncing ball: u = [height, velocity]
>>> def hit_ground(u, t, p):
...     return u[0]
>>> def bounce(u, t, p):
...     u[1] = -0.9 * u[1]
>>> ev = Event(hit_ground, bounce, direction=-1, name="bounce")
>>> sol = solve(prob, {"events": [ev]})
>>> [rec["t"] for rec in sol.events()]
[1.42..., 2.70..., ...]
"""

from dataclasses import dataclass
from typing import Any, Callable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import brentq

from desolve.errors import UserFunctionError
from desolve.types.core import StateVector
from desolve.types.trajectories import EventRecord

VALID_DIRECTIONS = (-1, 0, 1)

# Sub-intervals of a step on which each condition is sampled
ROOT_SAMPLES = 8


@dataclass(frozen=True, eq=False)
class Event:
    """
    Root-found event.

    Attributes
    ----------
    condition : Callable
        g(u, t, p) -> float; the event fires where g crosses zero
    affect : Optional[Callable]
        affect(u, t, p); mutates ``u`` in place or returns a new state.
        None only records the event.
    direction : int
        -1, 0 or +1 (see module docstring)
    tolerance : float
        Absolute time tolerance of the root finder
    terminate : bool
        Stop the run with Success after the event
    one_shot : bool
        Deactivate after the first firing
    name : Optional[str]
        Label in the event log (defaults to the condition's name)
    """

    condition: Callable[[StateVector, float, Any], float]
    affect: Optional[Callable[[StateVector, float, Any], Optional[StateVector]]] = None
    direction: int = 0
    tolerance: float = 1e-12
    terminate: bool = False
    one_shot: bool = False
    name: Optional[str] = None

    def __post_init__(self):
        if not callable(self.condition):
            raise TypeError(f"condition must be callable, got {type(self.condition).__name__}")
        if self.affect is not None and not callable(self.affect):
            raise TypeError(f"affect must be callable, got {type(self.affect).__name__}")
        if self.direction not in VALID_DIRECTIONS:
            raise ValueError(
                f"Invalid direction {self.direction!r}. Must be one of {list(VALID_DIRECTIONS)}"
            )
        if not self.tolerance > 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if self.name is None:
            object.__setattr__(
                self, "name", getattr(self.condition, "__name__", "event")
            )


class EventHit(NamedTuple):
    """Earliest crossing found in a step."""

    index: int
    t: float


class EventManager:
    """
    Tracks condition values of the registered events during one run.

    Parameters
    ----------
    events : Sequence[Event]
        Registered events (fixed for the run)
    parameters : Any
        Problem parameters passed to conditions and affects
    """

    def __init__(self, events: Sequence[Event], parameters: Any = None):
        self.events: Tuple[Event, ...] = tuple(events)
        self.parameters = parameters
        self.active: List[bool] = [True] * len(self.events)
        self.log: List[EventRecord] = []
        self.nevents = 0
        self._values = np.zeros(len(self.events))

    def __bool__(self) -> bool:
        return any(self.active)

    # ========================================================================
    # User Callbacks
    # ========================================================================

    def _condition(self, i: int, u: StateVector, t: float) -> float:
        try:
            return float(self.events[i].condition(np.array(u, dtype=float), t, self.parameters))
        except Exception as e:
            raise UserFunctionError("event condition", t, e) from e

    def _affect(self, i: int, u: StateVector, t: float) -> StateVector:
        affect = self.events[i].affect
        if affect is None:
            return np.array(u, dtype=float)
        work = np.array(u, dtype=float)
        try:
            result = affect(work, t, self.parameters)
            u_new = work if result is None else np.array(result, dtype=float).reshape(-1)
        except Exception as e:
            raise UserFunctionError("event affect", t, e) from e
        if u_new.shape != work.shape:
            raise UserFunctionError(
                "event affect",
                t,
                ValueError(f"affect returned shape {u_new.shape}, expected {work.shape}"),
            )
        return u_new

    # ========================================================================
    # Detection
    # ========================================================================

    def initialize(self, t: float, u: StateVector) -> None:
        """Evaluate every active condition at the initial point."""
        for i in range(len(self.events)):
            if self.active[i]:
                self._values[i] = self._condition(i, u, t)

    def _crosses(self, i: int, g0: float, g1: float) -> bool:
        direction = self.events[i].direction
        up = g0 < 0.0 <= g1
        down = g0 > 0.0 >= g1
        if direction > 0:
            return up
        if direction < 0:
            return down
        return up or down

    def _locate(self, i: int, segment, ta: float, tb: float, gb: float) -> float:
        if gb == 0.0:
            return tb

        def g(s):
            return self._condition(i, segment(s), s)

        # The bracket start may be the stored value at an accepted point
        side = np.sign(g(ta))
        if side * np.sign(gb) >= 0.0:
            return ta
        tolerance = self.events[i].tolerance
        root = brentq(g, ta, tb, xtol=tolerance)
        # Land past the crossing so the fired condition does not re-cross
        if np.sign(g(root)) == side:
            root = min(root + tolerance, tb)
        return root

    def detect(self, segment, t0: float, t1: float, u1: StateVector) -> Optional[EventHit]:
        """
        Find the earliest crossing inside [t0, t1].

        The condition is sampled at ``ROOT_SAMPLES - 1`` interior points of
        the segment, so a condition that leaves zero and comes back within
        one step is still seen. A root located at (or rounded onto) t0 is
        reported at t0.

        Parameters
        ----------
        segment : Segment
            Dense segment of the tentative step
        t0, t1 : float
            Step interval
        u1 : np.ndarray
            Tentative state at t1

        Returns
        -------
        Optional[EventHit]
            None if no active event crosses
        """
        best: Optional[EventHit] = None
        interior = np.linspace(t0, t1, ROOT_SAMPLES + 1)[1:-1]
        for i in range(len(self.events)):
            if not self.active[i]:
                continue
            times = [t0]
            values = [self._values[i]]
            for s in interior:
                times.append(float(s))
                values.append(self._condition(i, segment(s), s))
            times.append(t1)
            values.append(self._condition(i, u1, t1))

            for k in range(1, len(times)):
                if not self._crosses(i, values[k - 1], values[k]):
                    continue
                t_root = self._locate(i, segment, times[k - 1], times[k], values[k])
                t_root = max(t_root, t0)
                if best is None or t_root < best.t:
                    best = EventHit(i, t_root)
                break
        return best

    # ========================================================================
    # Commit
    # ========================================================================

    def accept(self, t: float, u: StateVector) -> None:
        """Store condition values at a newly accepted point."""
        for i in range(len(self.events)):
            if self.active[i]:
                self._values[i] = self._condition(i, u, t)

    def fire(self, index: int, t: float, u: StateVector) -> Tuple[StateVector, bool]:
        """
        Apply an event at its landing point.

        Returns
        -------
        Tuple[np.ndarray, bool]
            Post-affect state and whether the run must terminate
        """
        event = self.events[index]
        u_new = self._affect(index, u, t)
        self.log.append(EventRecord(name=event.name, t=float(t), u=u_new.copy()))
        self.nevents += 1

        if event.one_shot:
            self.active[index] = False

        self.accept(t, u_new)
        # Fired condition sits on its root; the next crossing starts from a strict sign
        self._values[index] = 0.0
        return u_new, event.terminate

    def records(self) -> List[EventRecord]:
        return list(self.log)


__all__ = ["Event", "EventHit", "EventManager", "VALID_DIRECTIONS", "ROOT_SAMPLES"]
