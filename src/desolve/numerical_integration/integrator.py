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
Integrator - The Step Loop Shared by Every Algorithm

``solve(problem, options)`` validates the problem, resolves the algorithm
through the registry and runs one ``Integrator``. The Integrator owns the
accepted history and drives the selected stepper one tentative step at a
time:

1. Stop on tf, cancellation or max_steps
2. Cap the step (dt_max, smallest DDE lag) and land exactly on the next
   forced boundary (DDE discontinuity, tstop, tf)
3. Ask the stepper for a tentative step
4. Reject on stepper failure, non-finite values or scaled error > 1
5. Locate event roots on the step's dense segment and re-step onto the
   earliest one
6. Accept: append to history, commit the noise increment, fire events
7. Propose the next step size

Numerical failures end the run with a ``ReturnCode`` and the partial
solution. Exceptions from user callables propagate as ``UserFunctionError``
carrying the partial solution.

Examples
--------
>>> def decay(du, u, p, t):
...     du[0] = -u[0]
>>> sol = solve(ODEProblem(decay, [1.0], (0.0, 1.0)), reltol=1e-8)
>>> sol.return_code()
<ReturnCode.Success: 'Success'>
>>> float(sol(1.0)[0])
0.3678794...
"""

import time
import warnings
from typing import Optional, Union

import numpy as np

from desolve.errors import UserFunctionError
from desolve.numerical_integration.discontinuity_tracker import (
    DelayedStateAccessor,
    DiscontinuityTracker,
)
from desolve.numerical_integration.events import EventManager
from desolve.numerical_integration.function_bridge import FunctionBridge
from desolve.numerical_integration.integrator_base import (
    HistoryEntry,
    IntegratorPhase,
    StepState,
)
from desolve.numerical_integration.method_registry import AlgorithmRegistry, default_registry
from desolve.numerical_integration.options import SolverConfig, resolve_options
from desolve.numerical_integration.solution import ReturnCode, Solution
from desolve.numerical_integration.step_control import (
    StepSizeController,
    dt_floor,
    error_norm,
    initial_step,
)
from desolve.numerical_integration.stochastic.noise_process import NoiseProcess
from desolve.problems.problem_spec import ProblemKind, ProblemSpec
from desolve.types.trajectories import SolutionStats, SolverOptions

# Relative slack for stretching a step onto a nearby boundary
LANDING_SLACK = 1e-2

# Step shrink factor after a stepper failure
FAILURE_SHRINK = 0.25


class Integrator:
    """
    One integration run.

    Parameters
    ----------
    problem : ProblemSpec
        Problem to solve (validated on construction)
    config : SolverConfig
        Resolved options
    registry : Optional[AlgorithmRegistry]
        Algorithm registry (defaults to a fresh ``default_registry()``)

    Raises
    ------
    InvalidProblemSpecError
        Malformed problem
    UnsupportedAlgorithmError
        Unknown algorithm or kind mismatch
    ValueError
        Fixed-step algorithm without ``dt_initial``

    Examples
    --------
    >>> integrator = Integrator(prob, resolve_options(algorithm="RK4", dt=0.01))
    >>> sol = integrator.run()
    >>> integrator.phase
    <IntegratorPhase.TERMINATED: 'terminated'>
    """

    def __init__(
        self,
        problem: ProblemSpec,
        config: SolverConfig,
        registry: Optional[AlgorithmRegistry] = None,
    ):
        problem.validate()
        self.problem = problem
        self.config = config
        self.registry = default_registry() if registry is None else registry
        self.descriptor, self.stepper = self.registry.resolve(problem.kind, config.algorithm)

        if not self.descriptor.adaptive and config.dt_initial is None:
            raise ValueError(
                f"Algorithm {self.descriptor.name!r} uses a fixed step: "
                f"dt_initial must be provided"
            )

        self.phase = IntegratorPhase.INITIALIZING
        self.bridge = FunctionBridge(problem)
        self.controller = StepSizeController(
            config.safety_factor, config.min_growth, config.max_growth
        )
        self.tracker = DiscontinuityTracker(
            problem.t0,
            problem.tf,
            problem.constant_lags if problem.kind is ProblemKind.DDE else (),
            config.tstops,
            config.max_discontinuities,
        )
        self.events = EventManager(config.events, problem.parameters)
        self.mask = problem.differential_vars if problem.kind is ProblemKind.DAE else None

        self.state: Optional[StepState] = None
        self.nreject = 0
        self.nfail = 0
        self._initialized = False
        self._start_time = 0.0

    # ========================================================================
    # Setup
    # ========================================================================

    def _initialize(self) -> None:
        problem, config = self.problem, self.config
        noise = None
        if problem.kind is ProblemKind.SDE:
            noise = NoiseProcess(problem.noise_cols, config.seed, problem.t0)

        state = StepState(problem.t0, np.array(problem.u0, dtype=float), None, 0.0, noise=noise)
        state.history.append(HistoryEntry(state.t, state.u.copy(), None))
        self.state = state

        if problem.kind is ProblemKind.DDE:
            self.bridge.set_delay_accessor(DelayedStateAccessor(self.bridge, state.history))

        self.stepper.initialize(state, problem, self.bridge, config)
        state.history[0].u = state.u.copy()
        state.history[0].du = None if state.du is None else state.du.copy()

        self.events.initialize(state.t, state.u)

        if config.dt_initial is not None:
            h = config.dt_initial
        else:
            f = None if problem.kind is ProblemKind.DAE else self.bridge.f
            h = initial_step(
                f,
                state.t,
                state.u,
                state.du,
                self.stepper.order,
                config.abstol,
                config.reltol,
                self.mask,
            )
        state.h = min(h, config.dt_max, problem.tf - problem.t0)
        self._initialized = True

    # ========================================================================
    # Main Loop
    # ========================================================================

    def run(self) -> Solution:
        """
        Integrate from t0 to tf.

        Returns
        -------
        Solution
            Always returned for numerical outcomes; check ``return_code()``

        Raises
        ------
        UserFunctionError
            A user callable raised; ``partial_solution`` is attached
        """
        self._start_time = time.perf_counter()
        try:
            self._initialize()
            self.phase = IntegratorPhase.STEPPING
            code, message = self._loop()
        except UserFunctionError as e:
            if self._initialized and e.partial_solution is None:
                e.partial_solution = self._finalize(ReturnCode.Terminated, str(e))
            self.phase = IntegratorPhase.TERMINATED
            raise
        return self._finalize(code, message)

    def _attempt(self, h: float):
        """
        One tentative step of size h.

        Returns
        -------
        Tuple[Optional[StepOutcome], float]
            Outcome (None on failure) and its scaled error
        """
        state = self.state
        outcome = self.stepper.step(state, h, self.problem, self.bridge)
        if not outcome.accepted:
            return None, np.inf
        if not np.all(np.isfinite(outcome.u_new)):
            self.nfail += 1
            return None, np.inf
        if not self.descriptor.adaptive or outcome.error_estimate is None:
            return outcome, 0.0
        err = error_norm(
            outcome.error_estimate,
            state.u,
            outcome.u_new,
            self.config.abstol,
            self.config.reltol,
            self.mask,
        )
        return outcome, err

    def _fire(self, index: int) -> Optional[str]:
        """Apply event ``index`` at the current point. Returns a stop message if it terminates."""
        state = self.state
        self.phase = IntegratorPhase.EVENT_HANDLING
        state.u, terminate = self.events.fire(index, state.t, state.u)
        self.stepper.refresh_derivative(state, self.problem, self.bridge)
        state.history[-1].u = state.u.copy()
        state.history[-1].du = None if state.du is None else state.du.copy()
        state.restart()
        self.phase = IntegratorPhase.STEPPING
        if terminate:
            name = self.events.events[index].name
            return f"Terminated by event {name!r} at t={state.t}"
        return None

    def _loop(self):
        problem, config, state = self.problem, self.config, self.state
        stepper = self.stepper
        token = config.cancel_token
        q = self.descriptor.adaptive_order
        failures = 0
        naccept = 0

        while True:
            if state.t >= problem.tf:
                return ReturnCode.Success, "Integration reached tf"
            if token is not None and token.is_set():
                return ReturnCode.Terminated, f"Cancelled at t={state.t}"
            if naccept >= config.max_steps:
                return ReturnCode.MaxIters, f"Reached max_steps={config.max_steps} at t={state.t}"

            t = state.t
            boundary = self.tracker.next_boundary(t)
            cap = min(config.dt_max, self.tracker.max_step)
            proposal = min(state.h, cap)
            h = proposal
            landing = boundary - t <= min(h * (1.0 + LANDING_SLACK), cap)
            if landing:
                h = boundary - t

            floor = max(config.dt_min, dt_floor(t))
            if h < floor and not landing:
                return ReturnCode.DtLessThanMin, f"Step size {h:.3e} below minimum at t={t}"

            outcome, err = self._attempt(h)
            if outcome is None:
                failures += 1
                if failures > config.max_nonlinear_failures:
                    return (
                        ReturnCode.Unstable,
                        f"{failures} consecutive step failures at t={t}",
                    )
                state.h = h * FAILURE_SHRINK
                continue

            if not err <= 1.0:
                self.nreject += 1
                state.h = self.controller.reject(h, err, q)
                if state.h < floor:
                    return ReturnCode.DtLessThanMin, f"Step size {state.h:.3e} below minimum at t={t}"
                continue

            t_new = boundary if landing else t + h
            h_step = h

            hit = None
            if self.events:
                self.phase = IntegratorPhase.EVENT_HANDLING
                hit = self.events.detect(outcome.segment, t, t_new, outcome.u_new)
                if hit is not None and hit.t <= t:
                    # Root sits on the current point (e.g. a forced boundary)
                    stop = self._fire(hit.index)
                    if stop is not None:
                        return ReturnCode.Success, stop
                    continue
                if hit is not None and hit.t < t_new:
                    h_step = max(hit.t - t, floor)
                    landing = False
                    outcome, err = self._attempt(h_step)
                    if outcome is None:
                        failures += 1
                        if failures > config.max_nonlinear_failures:
                            return (
                                ReturnCode.Unstable,
                                f"{failures} consecutive step failures at t={t}",
                            )
                        state.h = h_step * FAILURE_SHRINK
                        self.phase = IntegratorPhase.STEPPING
                        continue
                    if not err <= 1.0:
                        self.nreject += 1
                        state.h = self.controller.reject(h_step, err, q)
                        self.phase = IntegratorPhase.STEPPING
                        continue
                    t_new = hit.t if hit.t - t >= floor else t + h_step
                self.phase = IntegratorPhase.STEPPING

            # Accept
            naccept += 1
            failures = 0
            if state.noise is not None:
                state.noise.accept(t, h_step)
            u_new = outcome.u_new
            du_new = outcome.du_new
            if du_new is None and problem.kind is not ProblemKind.DAE:
                du_new = self.bridge.f(u_new, t_new)
            state.history.append(HistoryEntry(t_new, u_new.copy(), du_new, outcome.segment, err))
            state.t, state.u, state.du = t_new, u_new, du_new

            if hit is not None:
                stop = self._fire(hit.index)
                if stop is not None:
                    return ReturnCode.Success, stop
            else:
                if self.events:
                    self.events.accept(t_new, state.u)
                if landing and t_new < problem.tf:
                    state.restart()

            if self.descriptor.adaptive:
                proposed = self.controller.accept(h_step, err, q, stepper.max_growth)
                state.h = max(proposed, proposal) if landing else proposed
            else:
                state.h = config.dt_initial

    # ========================================================================
    # Results
    # ========================================================================

    def _stats(self) -> SolutionStats:
        counts = self.bridge.counts()
        stepper_stats = self.stepper.get_stats()
        history = self.state.history if self.state is not None else []
        return SolutionStats(
            naccept=max(len(history) - 1, 0),
            nreject=self.nreject,
            nf=counts["nf"],
            ng=counts["ng"],
            nresid=counts["nresid"],
            njac=stepper_stats["njac"],
            nsolve=stepper_stats["nsolve"],
            nnewton=stepper_stats["nnewton"],
            nnonlinear_fail=stepper_stats["nnonlinear_fail"] + self.nfail,
            nevents=self.events.nevents,
            integration_time=time.perf_counter() - self._start_time,
        )

    def _finalize(self, code: ReturnCode, message: str) -> Solution:
        self.phase = IntegratorPhase.FINALIZING
        history = self.state.history
        if code is not ReturnCode.Success and self.config.verbose:
            warnings.warn(
                f"{self.descriptor.name}: {code.value}: {message}",
                RuntimeWarning,
                stacklevel=3,
            )
        solution = Solution(
            problem=self.problem,
            algorithm=self.descriptor.name,
            t=[entry.t for entry in history],
            u=np.array([entry.u for entry in history], dtype=float),
            segments=[entry.segment for entry in history[1:]],
            return_code=code,
            stats=self._stats(),
            message=message,
            step_errors=[entry.error for entry in history],
            events=self.events.records(),
            save_at=self.config.save_at,
        )
        self.phase = IntegratorPhase.TERMINATED
        return solution


def solve(
    problem: ProblemSpec,
    options: Optional[Union[SolverOptions, SolverConfig]] = None,
    registry: Optional[AlgorithmRegistry] = None,
    **overrides,
) -> Solution:
    """
    Solve a differential-equation problem.

    Parameters
    ----------
    problem : ProblemSpec
        ODE, DAE, SDE or DDE problem
    options : Optional[Union[SolverOptions, SolverConfig]]
        Option dictionary, or an already resolved SolverConfig
    registry : Optional[AlgorithmRegistry]
        Registry to resolve the algorithm from
    **overrides
        Options as keywords (``reltol=1e-8``, ``algorithm="RK4"``, ...)

    Returns
    -------
    Solution

    Raises
    ------
    InvalidProblemSpecError
        Malformed problem
    UnsupportedAlgorithmError
        Unknown algorithm or kind mismatch
    ValueError
        Invalid options
    UserFunctionError
        A user callable raised (``partial_solution`` attached)

    Examples
    --------
    >>> sol = solve(prob, {"algorithm": "BS3", "reltol": 1e-4})
    >>> sol = solve(prob, algorithm="RK4", dt=0.01)
    >>> sol = solve(dae_prob)  # DBDF2
    """
    if isinstance(options, SolverConfig):
        config = options.replace(**overrides) if overrides else options
    else:
        config = resolve_options(options, **overrides)
    return Integrator(problem, config, registry).run()


__all__ = ["Integrator", "solve", "LANDING_SLACK", "FAILURE_SHRINK"]
