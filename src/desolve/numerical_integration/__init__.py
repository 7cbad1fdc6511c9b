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
Numerical Integration - Step Loop, Algorithms and Results

Module Organization
-------------------
- integrator: ``solve`` and the shared step loop
- integrator_base: StepperBase plug-in interface and loop state
- method_registry: AlgorithmRegistry and the built-in algorithms
- fixed_step_steppers, explicit_rk, rosenbrock: ODE/DDE algorithms
- dae_steppers: residual-form DAE algorithms
- stochastic: NoiseProcess and SDE algorithms
- step_control, nonlinear_solve: error norms, step control, Newton
- dense_output, solution: interpolant and Solution
- events, discontinuity_tracker: events and forced boundaries
- options, cancellation, ensemble: configuration and run control
"""

from desolve.numerical_integration.cancellation import CancellationToken, cancel_after
from desolve.numerical_integration.dense_output import (
    DormandPrinceSegment,
    HermiteSegment,
    Interpolant,
    LinearSegment,
    RosenbrockSegment,
    Segment,
)
from desolve.numerical_integration.ensemble import EnsembleSolution, solve_ensemble
from desolve.numerical_integration.events import Event, EventManager
from desolve.numerical_integration.function_bridge import FunctionBridge
from desolve.numerical_integration.integrator import Integrator, solve
from desolve.numerical_integration.integrator_base import (
    HistoryEntry,
    IntegratorPhase,
    StepMode,
    StepOutcome,
    StepperBase,
    StepState,
)
from desolve.numerical_integration.method_registry import (
    AlgorithmDescriptor,
    AlgorithmRegistry,
    default_registry,
    describe,
)
from desolve.numerical_integration.options import (
    DEFAULT_OPTIONS,
    SolverConfig,
    resolve_options,
)
from desolve.numerical_integration.solution import ReturnCode, Solution

__all__ = [
    # Entry points
    "solve",
    "solve_ensemble",
    "Integrator",
    # Results
    "Solution",
    "ReturnCode",
    "EnsembleSolution",
    "Interpolant",
    # Configuration
    "DEFAULT_OPTIONS",
    "SolverConfig",
    "resolve_options",
    "Event",
    "EventManager",
    "CancellationToken",
    "cancel_after",
    # Plug-in interface
    "AlgorithmDescriptor",
    "AlgorithmRegistry",
    "default_registry",
    "describe",
    "StepperBase",
    "StepMode",
    "StepOutcome",
    "StepState",
    "HistoryEntry",
    "IntegratorPhase",
    "FunctionBridge",
    "Segment",
    "LinearSegment",
    "HermiteSegment",
    "DormandPrinceSegment",
    "RosenbrockSegment",
]
