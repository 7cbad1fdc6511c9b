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
Exception hierarchy.

Structural and configuration problems fail fast as exceptions. Numerical
failures (step size underflow, max_steps exhausted, divergence) are NOT
exceptions: they are reported through ``ReturnCode`` on the returned
solution, because partial results remain useful.

Each exception also derives from the closest built-in so that callers
catching ``ValueError`` / ``RuntimeError`` keep working.
"""

from typing import Any, Optional


class DESolveError(Exception):
    """Base class for all desolve errors."""

    pass


class InvalidProblemSpecError(DESolveError, ValueError):
    """
    Raised when a problem definition is structurally invalid.

    Dimension or shape mismatches, missing callables, non-finite or
    negative lags, ``t0 >= tf``. Raised before any computation.
    """

    pass


class UnsupportedAlgorithmError(DESolveError, ValueError):
    """
    Raised when an algorithm name is unknown or does not support the
    problem kind. Raised before any step is attempted.
    """

    pass


class OutOfRangeError(DESolveError, ValueError):
    """Raised when a dense-output query lies outside the solved interval."""

    pass


class UserFunctionError(DESolveError, RuntimeError):
    """
    Raised when a user-supplied callable raises.

    The original exception is chained as ``__cause__``. When the error
    escapes a run, ``partial_solution`` holds the solution accumulated up
    to the last accepted step.

    Attributes
    ----------
    role : str
        Which callable failed ('dynamics', 'residual', 'noise', 'history', ...)
    t : Optional[float]
        Time at which it was called
    original : BaseException
        The exception raised by the user code
    partial_solution : Optional[Solution]
        Attached by the integrator before propagating
    """

    def __init__(self, role: str, t: Optional[float], original: BaseException):
        self.role = role
        self.t = t
        self.original = original
        self.partial_solution: Optional[Any] = None
        where = f" at t={t!r}" if t is not None else ""
        super().__init__(
            f"User {role} function raised {type(original).__name__}{where}: {original}"
        )


__all__ = [
    "DESolveError",
    "InvalidProblemSpecError",
    "UnsupportedAlgorithmError",
    "OutOfRangeError",
    "UserFunctionError",
]
