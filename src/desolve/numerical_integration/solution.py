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
Solution - Result of a solve() Run

A ``Solution`` holds the accepted samples, owns the dense-output
interpolant (built on first query), and reports how the run ended.

Query Surface
-------------
sol(t)            : dense output at scalar t -> (n,), or array -> (len, n)
sol.t, sol.u      : accepted sample times (T,) and states (T, n), read-only
sol.samples()     : list of (t, u) pairs
sol.saved()       : (t_grid, U) on the ``save_at`` grid, or None
sol.events()      : fired events [{name, t, u}]
sol.stats()       : SolutionStats dictionary
sol.return_code() : ReturnCode
sol.success       : True iff the return code is Success

Examples
--------
>>> sol = solve(ODEProblem(decay, [1.0], (0.0, 1.0)))
>>> sol.success
True
>>> sol(1.0)
array([0.36787944])
>>> sol.stats()["naccept"]
9
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

import numpy as np

from desolve.numerical_integration.dense_output import Interpolant, Segment
from desolve.types.trajectories import EventRecord, Sample, SolutionStats

if TYPE_CHECKING:
    from desolve.problems.problem_spec import ProblemSpec


class ReturnCode(Enum):
    """
    How a run ended.

    Attributes
    ----------
    Success : str
        Reached tf, or a terminating event fired
    MaxIters : str
        ``max_steps`` accepted steps were taken before tf
    DtLessThanMin : str
        The step size fell below ``dt_min`` (or the floating-point floor)
    Unstable : str
        Too many consecutive stepper failures (Newton divergence,
        non-finite values)
    Terminated : str
        Cancelled through the CancellationToken, or stopped by a user
        function error
    """

    Success = "Success"
    MaxIters = "MaxIters"
    DtLessThanMin = "DtLessThanMin"
    Unstable = "Unstable"
    Terminated = "Terminated"


def _frozen(array) -> np.ndarray:
    out = np.array(array, dtype=float)
    out.setflags(write=False)
    return out


class Solution:
    """
    Immutable result of one integration run.

    Parameters
    ----------
    problem : ProblemSpec
        Solved problem
    algorithm : str
        Canonical name of the algorithm used
    t : array-like
        Accepted times (T,)
    u : array-like
        Accepted states (T, n)
    segments : Sequence[Segment]
        Dense segments between consecutive samples (T - 1)
    return_code : ReturnCode
        Outcome
    stats : SolutionStats
        Counters
    message : str
        Human-readable outcome
    step_errors : array-like
        Scaled error norm of every accepted step (T,; 0 for the first point
        and for fixed steps)
    events : Sequence[EventRecord]
        Event log
    save_at : Optional[array-like]
        Requested sampling grid
    """

    def __init__(
        self,
        problem: "ProblemSpec",
        algorithm: str,
        t,
        u,
        segments: Sequence[Segment],
        return_code: ReturnCode,
        stats: SolutionStats,
        message: str = "",
        step_errors=None,
        events: Sequence[EventRecord] = (),
        save_at=None,
    ):
        self.problem = problem
        self.algorithm = algorithm
        self._t = _frozen(t)
        self._u = _frozen(u)
        if self._u.ndim == 1:
            self._u = _frozen(self._u.reshape(len(self._t), -1))
        self._segments: Tuple[Segment, ...] = tuple(segments)
        self._return_code = return_code
        self._stats: SolutionStats = dict(stats)
        self.message = message
        self._step_errors = _frozen(
            np.zeros(len(self._t)) if step_errors is None else step_errors
        )
        self._events: Tuple[EventRecord, ...] = tuple(events)
        self._interpolant: Optional[Interpolant] = None

        self._saved: Optional[Tuple[np.ndarray, np.ndarray]] = None
        if save_at is not None:
            grid = np.asarray(save_at, dtype=float)
            grid = grid[(grid >= self._t[0]) & (grid <= self._t[-1])]
            self._saved = (_frozen(grid), _frozen(self.interpolant(grid).reshape(len(grid), -1)))

    # ========================================================================
    # Samples
    # ========================================================================

    @property
    def t(self) -> np.ndarray:
        return self._t

    @property
    def u(self) -> np.ndarray:
        return self._u

    @property
    def step_errors(self) -> np.ndarray:
        """Scaled error norm recorded for each accepted step."""
        return self._step_errors

    def samples(self) -> List[Sample]:
        """Accepted (t, u) pairs in order."""
        return [(float(ti), ui) for ti, ui in zip(self._t, self._u)]

    def saved(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """
        Solution on the ``save_at`` grid.

        Returns
        -------
        Optional[Tuple[np.ndarray, np.ndarray]]
            (times, states) restricted to the solved interval, or None if
            no grid was requested
        """
        return self._saved

    def events(self) -> List[EventRecord]:
        return list(self._events)

    # ========================================================================
    # Dense Output
    # ========================================================================

    @property
    def interpolant(self) -> Interpolant:
        """Dense output, built on first access."""
        if self._interpolant is None:
            self._interpolant = Interpolant(self._t, self._u, self._segments)
        return self._interpolant

    def __call__(self, t):
        """
        Evaluate the solution at time(s) t.

        Raises
        ------
        OutOfRangeError
            Outside [t[0], t[-1]]
        """
        return self.interpolant(t)

    # ========================================================================
    # Status
    # ========================================================================

    def return_code(self) -> ReturnCode:
        return self._return_code

    @property
    def retcode(self) -> ReturnCode:
        return self._return_code

    @property
    def success(self) -> bool:
        return self._return_code is ReturnCode.Success

    def stats(self) -> SolutionStats:
        """Copy of the run statistics."""
        return dict(self._stats)

    def __len__(self) -> int:
        return len(self._t)

    def __repr__(self) -> str:
        return (
            f"Solution(algorithm={self.algorithm}, retcode={self._return_code.value}, "
            f"t=[{self._t[0]}, {self._t[-1]}], samples={len(self._t)})"
        )


__all__ = ["ReturnCode", "Solution"]
