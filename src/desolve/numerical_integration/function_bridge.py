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
Function Bridge - Uniform Invocation of User Callables

The bridge is the single channel through which steppers reach user code.
It hides the calling convention (mutating or returning), owns the output
buffers, converts whatever the user hands back into float64 NumPy arrays,
and turns exceptions into ``UserFunctionError``.

Roles
-----
dynamics : ODE right-hand side, SDE drift, DDE right-hand side (counted in nf)
residual : DAE residual (counted in nresid)
noise    : SDE noise rate (counted in ng)
history  : DDE history function (not counted)

Fast Path
---------
Callables flagged as pre-compiled (``ProblemSpec.compiled=True`` or a truthy
``__desolve_compiled__`` attribute on the function) are validated on their
first call only. Afterwards the state is passed without copies and
the output shape is trusted.

Examples
--------
>>> bridge = FunctionBridge(prob)
>>> du = bridge.f(prob.u0, 0.0)
>>> bridge.nf
1
"""

import inspect
from typing import Callable, Optional, Tuple

import numpy as np

from desolve.errors import InvalidProblemSpecError, UserFunctionError
from desolve.problems.problem_spec import ProblemKind, ProblemSpec
from desolve.types.core import (
    DerivativeVector,
    NoiseMatrix,
    ResidualVector,
    ScalarLike,
    StateVector,
)

# Number of positional arguments of the mutating form, per (kind, role)
_MUTATING_ARITY = {
    (ProblemKind.ODE, "dynamics"): 4,  # f(du, u, p, t)
    (ProblemKind.SDE, "dynamics"): 4,  # f(du, u, p, t)
    (ProblemKind.DDE, "dynamics"): 5,  # f(du, u, h, p, t)
    (ProblemKind.DAE, "residual"): 5,  # f(resid, du, u, p, t)
    (ProblemKind.SDE, "noise"): 4,  # g(out, u, p, t)
}


def _positional_arity(func: Callable) -> Optional[int]:
    """Number of positional parameters, or None if it cannot be determined."""
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return None
    count = 0
    for param in sig.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return None
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            count += 1
    return count


def infer_inplace(func: Callable, mutating_arity: int, explicit: Optional[bool] = None) -> bool:
    """
    Decide whether a user callable uses the mutating convention.

    Parameters
    ----------
    func : Callable
        User function
    mutating_arity : int
        Positional argument count of the mutating form
    explicit : Optional[bool]
        User override; returned as-is when not None

    Returns
    -------
    bool
        True for the mutating form, False for the returning form

    Raises
    ------
    InvalidProblemSpecError
        If the signature matches neither form and no override was given

    Examples
    --------
    >>> infer_inplace(lambda du, u, p, t: None, 4)
    True
    >>> infer_inplace(lambda u, p, t: -u, 4)
    False
    """
    if explicit is not None:
        return bool(explicit)
    arity = _positional_arity(func)
    if arity == mutating_arity:
        return True
    if arity == mutating_arity - 1:
        return False
    name = getattr(func, "__name__", type(func).__name__)
    raise InvalidProblemSpecError(
        f"Cannot infer calling convention of {name!r}: expected {mutating_arity} "
        f"(mutating) or {mutating_arity - 1} (returning) positional arguments, "
        f"got {arity if arity is not None else 'an uninspectable signature'}. "
        f"Pass inplace=True/False explicitly."
    )


class _Channel:
    """One user callable plus its buffer, convention and validation state."""

    __slots__ = ("func", "role", "inplace", "compiled", "shape", "buffer", "validated")

    def __init__(self, func, role, inplace, compiled, shape, layout):
        self.func = func
        self.role = role
        self.inplace = inplace
        self.compiled = compiled
        self.shape = shape
        self.buffer = np.zeros(shape, dtype=float, order=layout)
        self.validated = False


class FunctionBridge:
    """
    Uniform, counted, error-wrapped access to the callables of a problem.

    Parameters
    ----------
    problem : ProblemSpec
        Problem whose callables are bridged

    Attributes
    ----------
    nf : int
        Dynamics / drift evaluations
    ng : int
        Noise evaluations
    nresid : int
        Residual evaluations
    """

    def __init__(self, problem: ProblemSpec):
        self.problem = problem
        self.layout = problem.layout
        self.nf = 0
        self.ng = 0
        self.nresid = 0
        self._delay_accessor: Optional[Callable] = None

        n = problem.state_dim
        main_role = "residual" if problem.kind is ProblemKind.DAE else "dynamics"
        self._main = self._make_channel(problem.f, main_role, (n,))

        self._noise: Optional[_Channel] = None
        if problem.kind is ProblemKind.SDE:
            shape = (n,) if problem.noise_rate_shape is None else problem.noise_rate_shape
            self._noise = self._make_channel(problem.g, "noise", shape)

    def _make_channel(self, func, role: str, shape: Tuple[int, ...]) -> _Channel:
        arity = _MUTATING_ARITY[(self.problem.kind, role)]
        inplace = infer_inplace(func, arity, self.problem.inplace)
        compiled = bool(self.problem.compiled or getattr(func, "__desolve_compiled__", False))
        return _Channel(func, role, inplace, compiled, shape, self.layout)

    # ========================================================================
    # Configuration
    # ========================================================================

    def set_delay_accessor(self, accessor: Callable) -> None:
        """Install the ``h(p, t_lag)`` object handed to DDE right-hand sides."""
        self._delay_accessor = accessor

    @property
    def inplace(self) -> bool:
        """Calling convention of the main function."""
        return self._main.inplace

    # ========================================================================
    # Public Evaluation API
    # ========================================================================

    def f(self, u: StateVector, t: ScalarLike) -> DerivativeVector:
        """
        Evaluate the dynamics (ODE, SDE drift, DDE).

        Returns a fresh array of shape (state_dim,).
        """
        if self._main.role != "dynamics":
            raise TypeError(f"{self.problem.kind.value.upper()} problems have no dynamics function")
        self.nf += 1
        p = self.problem.parameters
        if self.problem.kind is ProblemKind.DDE:
            if self._delay_accessor is None:
                raise RuntimeError("DDE evaluated before a delay accessor was installed")
            return self._call(self._main, t, (self._input(self._main, u), self._delay_accessor, p, t))
        return self._call(self._main, t, (self._input(self._main, u), p, t))

    def residual(self, du: DerivativeVector, u: StateVector, t: ScalarLike) -> ResidualVector:
        """Evaluate the DAE residual F(du, u, p, t)."""
        if self._main.role != "residual":
            raise TypeError(f"{self.problem.kind.value.upper()} problems have no residual function")
        self.nresid += 1
        ch = self._main
        return self._call(ch, t, (self._input(ch, du), self._input(ch, u), self.problem.parameters, t))

    def noise(self, u: StateVector, t: ScalarLike) -> NoiseMatrix:
        """
        Evaluate the SDE noise rate.

        Returns shape (state_dim,) for diagonal noise and
        ``noise_rate_shape`` otherwise.
        """
        if self._noise is None:
            raise TypeError(f"{self.problem.kind.value.upper()} problems have no noise function")
        self.ng += 1
        ch = self._noise
        return self._call(ch, t, (self._input(ch, u), self.problem.parameters, t))

    def history(self, t_lag: ScalarLike) -> StateVector:
        """Evaluate the DDE history function at ``t_lag <= t0``."""
        try:
            value = self.problem.history_function(self.problem.parameters, t_lag)
            out = np.array(value, dtype=float).reshape(-1)
        except UserFunctionError:
            raise
        except Exception as e:
            raise UserFunctionError("history", t_lag, e) from e
        if out.shape != (self.problem.state_dim,):
            raise InvalidProblemSpecError(
                f"history function returned shape {out.shape}, "
                f"expected ({self.problem.state_dim},)"
            )
        return out

    # ========================================================================
    # Internals
    # ========================================================================

    def _input(self, ch: _Channel, x: np.ndarray) -> np.ndarray:
        if ch.compiled and ch.validated:
            return x
        return np.array(x, dtype=float)

    def _call(self, ch: _Channel, t: ScalarLike, args: tuple) -> np.ndarray:
        try:
            if ch.inplace:
                ch.func(ch.buffer, *args)
                result = ch.buffer
            else:
                result = ch.func(*args)
        except UserFunctionError:
            raise
        except Exception as e:
            raise UserFunctionError(ch.role, t, e) from e

        if ch.compiled and ch.validated:
            if ch.inplace:
                return result.copy()
            return np.asarray(result, dtype=float)

        try:
            out = np.array(result, dtype=float)
        except (TypeError, ValueError) as e:
            raise UserFunctionError(ch.role, t, e) from e
        if out.shape != ch.shape:
            raise InvalidProblemSpecError(
                f"{ch.role} function returned shape {out.shape}, expected {ch.shape}"
            )
        ch.validated = True
        return out

    def counts(self) -> dict:
        return {"nf": self.nf, "ng": self.ng, "nresid": self.nresid}


__all__ = ["FunctionBridge", "infer_inplace"]
