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
Problem definitions: immutable specifications and their validation.
"""

from desolve.problems.problem_spec import (
    DAEProblem,
    DDEProblem,
    ODEProblem,
    ProblemKind,
    ProblemSpec,
    SDEProblem,
)
from desolve.problems.problem_validator import ProblemValidator, ValidationResult

__all__ = [
    "ProblemKind",
    "ProblemSpec",
    "ODEProblem",
    "DAEProblem",
    "SDEProblem",
    "DDEProblem",
    "ProblemValidator",
    "ValidationResult",
]
