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
Problem Validator - Invariant Checks for ProblemSpec

Collects every violated invariant of a problem specification before any
integration work starts, then reports them together.

Validation Checks:
- Time span: finite, t0 < tf
- Initial data: finite, consistent with state_dim
- Callables: f (all kinds), g (SDE), history (DDE)
- DAE: du0 present, differential_vars mask length
- SDE: noise_rate_shape rows match state_dim
- DDE: lags finite and non-negative
- Layout: 'C' or 'F'

Fields that belong to another problem kind (e.g. a noise function on an
ODE) are reported as warnings, not errors.
"""

from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np

from desolve.errors import InvalidProblemSpecError
from desolve.problems.problem_spec import ProblemKind, ProblemSpec

VALID_LAYOUTS = ("C", "F")


@dataclass
class ValidationResult:
    """
    Container for problem validation results.

    Attributes
    ----------
    is_valid : bool
        True if the problem passed all checks
    errors : List[str]
        Violated invariants (empty if valid)
    warnings : List[str]
        Non-fatal issues
    info : Dict
        Summary of the validated problem
    """

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    info: Dict = field(default_factory=dict)


class ProblemValidator:
    """
    Validates a ProblemSpec against the invariants of its kind.

    Examples
    --------
    >>> result = ProblemValidator(prob).validate(raise_on_error=False)
    >>> if not result.is_valid:
    ...     print(result.errors)
    >>>
    >>> # Default: raise on the first invalid problem
    >>> ProblemValidator(prob).validate()
    """

    def __init__(self, problem: ProblemSpec):
        if not isinstance(problem, ProblemSpec):
            raise TypeError(f"problem must be ProblemSpec, got {type(problem).__name__}")
        self.problem = problem
        self._errors: List[str] = []
        self._warnings: List[str] = []

    def validate(self, raise_on_error: bool = True) -> ValidationResult:
        """
        Run all checks.

        Parameters
        ----------
        raise_on_error : bool
            If True, raise InvalidProblemSpecError listing every error

        Returns
        -------
        ValidationResult

        Raises
        ------
        InvalidProblemSpecError
            If validation fails and raise_on_error=True
        """
        self._errors = []
        self._warnings = []

        self._validate_tspan()
        self._validate_initial_state()
        self._validate_callables()
        self._validate_layout()

        kind = self.problem.kind
        if kind is ProblemKind.DAE:
            self._validate_dae()
        elif kind is ProblemKind.SDE:
            self._validate_sde()
        elif kind is ProblemKind.DDE:
            self._validate_dde()
        self._validate_foreign_fields()

        result = ValidationResult(
            is_valid=len(self._errors) == 0,
            errors=self._errors.copy(),
            warnings=self._warnings.copy(),
            info=self._build_info(),
        )

        if not result.is_valid and raise_on_error:
            raise InvalidProblemSpecError(self._format_error_message())

        return result

    # ========================================================================
    # Common Checks
    # ========================================================================

    def _validate_tspan(self):
        t0, tf = self.problem.tspan
        if not (np.isfinite(t0) and np.isfinite(tf)):
            self._errors.append(f"tspan must be finite, got ({t0}, {tf})")
        elif not t0 < tf:
            self._errors.append(f"tspan must satisfy t0 < tf, got ({t0}, {tf})")

    def _validate_initial_state(self):
        p = self.problem
        if p.state_dim < 1:
            self._errors.append(f"state_dim must be >= 1, got {p.state_dim}")
        if p.u0.shape[0] != p.state_dim:
            self._errors.append(
                f"u0 has length {p.u0.shape[0]} but state_dim is {p.state_dim}"
            )
        if not np.all(np.isfinite(p.u0)):
            self._errors.append("u0 contains NaN or Inf")

    def _validate_callables(self):
        if not callable(self.problem.f):
            self._errors.append(
                f"f must be callable, got {type(self.problem.f).__name__}"
            )

    def _validate_layout(self):
        if self.problem.layout not in VALID_LAYOUTS:
            self._errors.append(
                f"layout must be one of {VALID_LAYOUTS}, got {self.problem.layout!r}"
            )

    # ========================================================================
    # Kind-specific Checks
    # ========================================================================

    def _validate_dae(self):
        p = self.problem
        if p.du0 is None:
            self._errors.append("DAE requires du0")
        else:
            if p.du0.shape[0] != p.state_dim:
                self._errors.append(
                    f"du0 has length {p.du0.shape[0]} but state_dim is {p.state_dim}"
                )
            if not np.all(np.isfinite(p.du0)):
                self._errors.append("du0 contains NaN or Inf")

        if p.differential_vars is None:
            self._errors.append("DAE requires differential_vars")
        elif p.differential_vars.shape[0] != p.state_dim:
            self._errors.append(
                f"differential_vars has length {p.differential_vars.shape[0]} "
                f"but state_dim is {p.state_dim}"
            )
        elif not np.any(p.differential_vars):
            self._warnings.append(
                "No differential components - the system is purely algebraic"
            )

    def _validate_sde(self):
        p = self.problem
        if p.g is None:
            self._errors.append("SDE requires a noise function g")
        elif not callable(p.g):
            self._errors.append(f"g must be callable, got {type(p.g).__name__}")

        if p.noise_rate_shape is not None:
            rows, cols = p.noise_rate_shape
            if rows != p.state_dim:
                self._errors.append(
                    f"noise_rate_shape rows ({rows}) must match state_dim ({p.state_dim})"
                )
            if cols < 1:
                self._errors.append(
                    f"noise_rate_shape must have at least 1 column, got {cols}"
                )

    def _validate_dde(self):
        p = self.problem
        if p.history_function is None:
            self._errors.append("DDE requires a history function")
        elif not callable(p.history_function):
            self._errors.append(
                f"history_function must be callable, got {type(p.history_function).__name__}"
            )

        for i, lag in enumerate(p.constant_lags):
            if not np.isfinite(lag):
                self._errors.append(f"constant_lags[{i}] must be finite, got {lag}")
            elif lag < 0:
                self._errors.append(f"constant_lags[{i}] must be non-negative, got {lag}")

    def _validate_foreign_fields(self):
        p = self.problem
        if p.kind is not ProblemKind.SDE and (p.g is not None or p.noise_rate_shape is not None):
            self._warnings.append(f"Noise fields are ignored for {p.kind.value.upper()} problems")
        if p.kind is not ProblemKind.DDE and (p.constant_lags or p.history_function is not None):
            self._warnings.append(f"Delay fields are ignored for {p.kind.value.upper()} problems")
        if p.kind is not ProblemKind.DAE and p.du0 is not None:
            self._warnings.append(f"du0 is ignored for {p.kind.value.upper()} problems")

    # ========================================================================
    # Reporting
    # ========================================================================

    def _build_info(self) -> Dict:
        p = self.problem
        return {
            "kind": p.kind.value,
            "state_dim": p.state_dim,
            "tspan": p.tspan,
            "noise_cols": p.noise_cols,
            "num_lags": len(p.constant_lags),
        }

    def _format_error_message(self) -> str:
        lines = [f"Invalid {self.problem.kind.value.upper()} problem:"]
        lines.extend(f"  - {err}" for err in self._errors)
        return "\n".join(lines)


__all__ = ["ProblemValidator", "ValidationResult", "VALID_LAYOUTS"]
