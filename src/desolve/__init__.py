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
desolve - Unified Differential-Equation Solving

One entry point, ``solve(problem, options)``, for ordinary (ODE),
differential-algebraic (DAE), stochastic (SDE) and delay (DDE) initial
value problems, with adaptive step control, dense output, events and
pluggable algorithms.

Usage
-----
>>> import numpy as np
>>> from desolve import ODEProblem, solve
>>>
>>> def decay(du, u, p, t):
...     du[0] = -p * u[0]
>>>
>>> sol = solve(ODEProblem(decay, [1.0], (0.0, 1.0), p=1.0))
>>> sol.success
True
>>> sol(0.5)
array([0.60653066])
"""

from desolve.errors import (
    DESolveError,
    InvalidProblemSpecError,
    OutOfRangeError,
    UnsupportedAlgorithmError,
    UserFunctionError,
)
from desolve.numerical_integration import (
    AlgorithmRegistry,
    CancellationToken,
    EnsembleSolution,
    Event,
    ReturnCode,
    Solution,
    SolverConfig,
    StepperBase,
    cancel_after,
    default_registry,
    resolve_options,
    solve,
    solve_ensemble,
)
from desolve.problems import (
    DAEProblem,
    DDEProblem,
    ODEProblem,
    ProblemKind,
    ProblemSpec,
    SDEProblem,
)

__version__ = "0.1.0"

__all__ = [
    "solve",
    "solve_ensemble",
    "ProblemKind",
    "ProblemSpec",
    "ODEProblem",
    "DAEProblem",
    "SDEProblem",
    "DDEProblem",
    "Solution",
    "EnsembleSolution",
    "ReturnCode",
    "Event",
    "SolverConfig",
    "resolve_options",
    "CancellationToken",
    "cancel_after",
    "AlgorithmRegistry",
    "default_registry",
    "StepperBase",
    "DESolveError",
    "InvalidProblemSpecError",
    "UnsupportedAlgorithmError",
    "OutOfRangeError",
    "UserFunctionError",
]
