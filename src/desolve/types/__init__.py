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
Types Module - Type Definitions for desolve

Central import point for all type definitions. Organized into
domain-specific modules but re-exported here for convenience.

Module Organization
-------------------
- core: arrays, semantic vectors and matrices, user function aliases
- trajectories: time spans, options, statistics and result dictionaries

Usage
-----
>>> from desolve.types import StateVector, SolverOptions, TimeSpan
"""

from .core import (
    ArrayLike,
    BooleanMask,
    DerivativeVector,
    HistoryFunction,
    IntegerLike,
    JacobianMatrix,
    NoiseMatrix,
    NoiseVector,
    NumpyArray,
    ParameterVector,
    ResidualVector,
    ScalarLike,
    StateVector,
    UserFunction,
)
from .trajectories import (
    EnsembleStatistics,
    EventRecord,
    Sample,
    SolutionStats,
    SolverOptions,
    StateTrajectory,
    TimePoints,
    TimeSpan,
)

__all__ = [
    # Core
    "ArrayLike",
    "BooleanMask",
    "DerivativeVector",
    "HistoryFunction",
    "IntegerLike",
    "JacobianMatrix",
    "NoiseMatrix",
    "NoiseVector",
    "NumpyArray",
    "ParameterVector",
    "ResidualVector",
    "ScalarLike",
    "StateVector",
    "UserFunction",
    # Trajectories
    "EnsembleStatistics",
    "EventRecord",
    "Sample",
    "SolutionStats",
    "SolverOptions",
    "StateTrajectory",
    "TimePoints",
    "TimeSpan",
]
