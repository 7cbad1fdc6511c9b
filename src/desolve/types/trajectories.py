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
Trajectory, Configuration and Result Types

Defines types for:
- Time arrays and spans
- Solver configuration dictionaries (SolverOptions)
- Run statistics (SolutionStats)
- Event log records
- Ensemble statistics

Following the project design principle "Result types are TypedDict",
option and statistics dictionaries are TypedDicts so that IDEs and type
checkers see the available keys, while callers keep plain dict ergonomics.

Shape Conventions
-----------------
Time-major ordering everywhere:
- t: (T,)
- u: (T, state_dim)
- ensemble u: (trajectories, T, state_dim)

Usage
-----
>>> from desolve.types.trajectories import SolverOptions, TimeSpan
>>>
>>> tspan: TimeSpan = (0.0, 10.0)
>>> options: SolverOptions = {"algorithm": "DP5", "reltol": 1e-8}
"""

from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
from typing_extensions import TypedDict

from .core import ArrayLike, StateVector

# ============================================================================
# Time Types
# ============================================================================

TimeSpan = Tuple[float, float]
"""
Integration interval (t0, tf) with t0 < tf.

Examples
--------
>>> tspan: TimeSpan = (0.0, 1e5)
"""

TimePoints = Union[np.ndarray, Sequence[float]]
"""
Array of time points, shape (T,).

Used for ``save_at`` grids, ``tstops`` and dense-output queries.
"""

StateTrajectory = np.ndarray
"""
State trajectory, shape (T, state_dim).

Row k is the state at the k-th time point.
"""

Sample = Tuple[float, StateVector]
"""One accepted (t, u) sample."""


# ============================================================================
# Configuration
# ============================================================================


class SolverOptions(TypedDict, total=False):
    """
    Per-run configuration accepted by ``solve``.

    All keys are optional; missing keys take the defaults listed in
    ``desolve.numerical_integration.options.DEFAULT_OPTIONS``.

    Keys
    ----
    algorithm : str
        Registered algorithm name or ``"default"``.
    abstol, reltol : float
        Absolute / relative tolerances of the local error norm.
    dt_initial : float or "auto"
        First step size. Required for fixed-step algorithms.
    dt_min, dt_max : float
        Step size bounds.
    max_steps : int
        Maximum number of accepted steps.
    save_at : array-like
        Extra sampling grid evaluated from dense output.
    tstops : array-like
        Times the integrator must step onto exactly.
    events : list of Event
        Root-found events.
    safety_factor, min_growth, max_growth : float
        Step size controller constants.
    max_nonlinear_failures : int
        Consecutive stepper failures tolerated before ``Unstable``.
    newton_max_iters : int
        Newton iteration cap for implicit steppers.
    newton_tol : float
        Newton absolute residual tolerance.
    max_discontinuities : int
        Cap on propagated DDE discontinuities.
    seed : int
        Seed for the noise process of stochastic problems.
    cancel_token : CancellationToken
        Cooperative cancellation flag.
    verbose : bool
        Emit RuntimeWarnings for non-successful return codes.
    """

    algorithm: str
    abstol: float
    reltol: float
    dt_initial: Union[float, str]
    dt_min: float
    dt_max: float
    max_steps: int
    save_at: Optional[TimePoints]
    tstops: Optional[TimePoints]
    events: Optional[List[Any]]
    safety_factor: float
    min_growth: float
    max_growth: float
    max_nonlinear_failures: int
    newton_max_iters: int
    newton_tol: float
    max_discontinuities: int
    seed: Optional[int]
    cancel_token: Any
    verbose: bool


# ============================================================================
# Results
# ============================================================================


class SolutionStats(TypedDict):
    """
    Statistics of one integration run.

    Keys
    ----
    naccept : int
        Accepted steps.
    nreject : int
        Steps rejected by the error test.
    nf : int
        Dynamics / drift evaluations.
    ng : int
        Noise function evaluations (SDE).
    nresid : int
        Residual evaluations (DAE).
    njac : int
        Jacobian evaluations (finite-difference builds).
    nsolve : int
        Linear solves.
    nnewton : int
        Newton iterations.
    nnonlinear_fail : int
        Stepper failures (Newton divergence, non-finite values).
    nevents : int
        Events fired.
    integration_time : float
        Wall-clock seconds spent in the run (reporting only).
    """

    naccept: int
    nreject: int
    nf: int
    ng: int
    nresid: int
    njac: int
    nsolve: int
    nnewton: int
    nnonlinear_fail: int
    nevents: int
    integration_time: float


class EventRecord(TypedDict):
    """
    One fired event.

    Keys
    ----
    name : str
        Event name.
    t : float
        Event time.
    u : StateVector
        State after the event's affect was applied.
    """

    name: str
    t: float
    u: StateVector


class EnsembleStatistics(TypedDict, total=False):
    """
    Monte Carlo statistics of an ensemble on a common time grid.

    All arrays have shape (T, state_dim) except ``t`` (T,).
    """

    t: np.ndarray
    mean: np.ndarray
    std: np.ndarray
    min: np.ndarray
    max: np.ndarray
    median: np.ndarray
    q25: np.ndarray
    q75: np.ndarray
    n_paths: int


__all__ = [
    "TimeSpan",
    "TimePoints",
    "StateTrajectory",
    "Sample",
    "SolverOptions",
    "SolutionStats",
    "EventRecord",
    "EnsembleStatistics",
]
