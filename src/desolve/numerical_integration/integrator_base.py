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
Integrator Base - Plug-in Interface for Stepping Algorithms

Defines the contract between the Integrator loop and the algorithms it
drives, plus the mutable per-run state the loop owns.

A stepper computes ONE tentative step. Acceptance, history and the
advance of time belong to the Integrator, which applies the same error
control and event handling to every algorithm.

Contents
--------
StepMode        : FIXED / ADAPTIVE
IntegratorPhase : lifecycle of a run
HistoryEntry    : one accepted point (t, u, du, segment, error)
StepState       : loop state owned by the Integrator
StepOutcome     : result of one tentative step
StepperBase     : abstract base class of all algorithms

Examples
--------
>>> class MyEuler(StepperBase):
...     name = "MyEuler"
...     order = 1
...     step_mode = StepMode.FIXED
...
...     def step(self, state, h, problem, bridge):
...         u_new = state.u + h * state.du
...         du_new = bridge.f(u_new, state.t + h)
...         seg = HermiteSegment(state.t, state.t + h, state.u, u_new, state.du, du_new)
...         return StepOutcome(True, u_new, None, du_new, seg)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, NamedTuple, Optional

import numpy as np

from desolve.types.core import DerivativeVector, StateVector

if TYPE_CHECKING:
    from desolve.numerical_integration.dense_output import Segment
    from desolve.numerical_integration.function_bridge import FunctionBridge
    from desolve.numerical_integration.options import SolverConfig
    from desolve.numerical_integration.stochastic.noise_process import NoiseProcess
    from desolve.problems.problem_spec import ProblemSpec


class StepMode(Enum):
    """
    Integration step mode.

    Attributes
    ----------
    FIXED : str
        Constant step dt_initial; no error estimate
    ADAPTIVE : str
        Step adjusted from the local error estimate
    """

    FIXED = "fixed"
    ADAPTIVE = "adaptive"


class IntegratorPhase(Enum):
    """Lifecycle of one solve() run."""

    INITIALIZING = "initializing"
    STEPPING = "stepping"
    EVENT_HANDLING = "event_handling"
    FINALIZING = "finalizing"
    TERMINATED = "terminated"


@dataclass
class HistoryEntry:
    """
    One accepted solution point.

    Attributes
    ----------
    t : float
        Time
    u : np.ndarray
        State at t
    du : Optional[np.ndarray]
        Derivative at t (None for SDE steps)
    segment : Optional[Segment]
        Dense segment covering the step that ENDS at t (None for the first entry)
    error : float
        Scaled error norm of the step that ended at t (0.0 for fixed steps)
    """

    t: float
    u: StateVector
    du: Optional[DerivativeVector]
    segment: Optional["Segment"] = None
    error: float = 0.0


@dataclass
class StepState:
    """
    Mutable loop state. Owned by the Integrator; steppers read it.

    Attributes
    ----------
    t, u, du : current accepted time, state, derivative
    h : proposed next step
    history : append-only accepted points
    noise : NoiseProcess for SDEs, else None
    restart_index : first history index multistep methods may use
        (moved forward after events and forced discontinuities)
    """

    t: float
    u: StateVector
    du: Optional[DerivativeVector]
    h: float
    history: List[HistoryEntry] = field(default_factory=list)
    noise: Optional["NoiseProcess"] = None
    restart_index: int = 0

    @property
    def usable_history(self) -> List[HistoryEntry]:
        """History entries since the last restart."""
        return self.history[self.restart_index :]

    def restart(self) -> None:
        """Forbid multistep methods from looking behind the current point."""
        self.restart_index = len(self.history) - 1


class StepOutcome(NamedTuple):
    """
    Result of one tentative step.

    Attributes
    ----------
    accepted : bool
        False when the stepper itself failed (Newton divergence, singular
        matrix). The Integrator then shrinks h and retries.
    u_new : Optional[np.ndarray]
        Tentative state at t + h
    error_estimate : Optional[np.ndarray]
        Local error vector (None for fixed-step algorithms)
    du_new : Optional[np.ndarray]
        Derivative at t + h (FSAL / DAE derivative); None to let the
        Integrator evaluate it when needed
    segment : Optional[Segment]
        Dense segment over [t, t + h]
    """

    accepted: bool
    u_new: Optional[StateVector]
    error_estimate: Optional[np.ndarray]
    du_new: Optional[DerivativeVector]
    segment: Optional["Segment"]

    @classmethod
    def failure(cls) -> "StepOutcome":
        return cls(False, None, None, None, None)


class StepperBase(ABC):
    """
    Abstract base class for stepping algorithms.

    Subclasses set the class attributes and implement ``step``.

    Class Attributes
    ----------------
    name : str
        Registry name
    order : float
        Convergence order
    adaptive_order : Optional[float]
        Order of the error estimator used by step-size control
        (defaults to ``order``)
    step_mode : StepMode
        FIXED or ADAPTIVE
    max_growth : Optional[float]
        Cap on step growth after acceptance (None = controller default)
    """

    name: str = "base"
    order: float = 1
    adaptive_order: Optional[float] = None
    step_mode: StepMode = StepMode.ADAPTIVE
    max_growth: Optional[float] = None

    def __init__(self):
        self.config: Optional["SolverConfig"] = None
        self._stats = {
            "njac": 0,
            "nsolve": 0,
            "nnewton": 0,
            "nnonlinear_fail": 0,
        }

    @property
    def controller_order(self) -> float:
        return self.order if self.adaptive_order is None else self.adaptive_order

    @property
    def is_adaptive(self) -> bool:
        return self.step_mode is StepMode.ADAPTIVE

    def initialize(
        self,
        state: StepState,
        problem: "ProblemSpec",
        bridge: "FunctionBridge",
        config: Optional["SolverConfig"] = None,
    ) -> None:
        """
        Prepare for a run. The default fills ``state.du`` from the dynamics.

        Implicit (DAE) steppers override this for consistent initialization.
        """
        self.config = config
        if state.du is None:
            state.du = bridge.f(state.u, state.t)

    def refresh_derivative(
        self,
        state: StepState,
        problem: "ProblemSpec",
        bridge: "FunctionBridge",
    ) -> None:
        """Recompute ``state.du`` after the state jumped (event affect)."""
        state.du = bridge.f(state.u, state.t)

    @abstractmethod
    def step(
        self,
        state: StepState,
        h: float,
        problem: "ProblemSpec",
        bridge: "FunctionBridge",
    ) -> StepOutcome:
        """
        Compute one tentative step from ``(state.t, state.u)`` of size h.

        Parameters
        ----------
        state : StepState
            Current accepted state (read-only for the stepper)
        h : float
            Step size
        problem : ProblemSpec
            Problem being solved
        bridge : FunctionBridge
            Channel to user functions

        Returns
        -------
        StepOutcome
        """
        pass

    # ========================================================================
    # Statistics
    # ========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """
        Stepper-specific counters.

        Returns
        -------
        dict
            'njac', 'nsolve', 'nnewton', 'nnonlinear_fail'
        """
        return dict(self._stats)

    def reset_stats(self):
        for key in self._stats:
            self._stats[key] = 0

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(order={self.order}, mode={self.step_mode.value})"


__all__ = [
    "StepMode",
    "IntegratorPhase",
    "HistoryEntry",
    "StepState",
    "StepOutcome",
    "StepperBase",
]
