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
Ensemble Solving - Many Independent Runs of One Problem

Monte Carlo simulation of SDEs, parameter sweeps and initial-condition
studies. Every trajectory is an independent ``solve`` with its own
problem (optionally rewritten by ``prob_func``) and its own noise seed
``seed + i`` (the ``seed`` option is the base when no seed is passed),
so results do not depend on the execution backend.

Backends
--------
"serial"    : in-process loop
"threads"   : concurrent.futures.ThreadPoolExecutor
"processes" : concurrent.futures.ProcessPoolExecutor (user functions,
              prob_func and options must be picklable; a cancel_token
              cannot be shared with worker processes)

Examples
--------
>>> ens = solve_ensemble(sde_prob, 1000, options={"save_at": np.linspace(0, 1, 11)}, seed=42)
>>> stats = ens.get_statistics()
>>> stats["mean"][-1], stats["std"][-1]
"""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from desolve.numerical_integration.integrator import solve
from desolve.numerical_integration.options import SolverConfig, resolve_options
from desolve.numerical_integration.solution import ReturnCode, Solution
from desolve.problems.problem_spec import ProblemSpec
from desolve.types.trajectories import EnsembleStatistics, SolverOptions, TimePoints

PARALLEL_MODES = ("serial", "threads", "processes")


def _solve_one(problem, prob_func, config, registry, index, seed) -> Solution:
    if prob_func is not None:
        problem = prob_func(problem, index)
    base = config.seed if seed is None else seed
    if base is not None:
        config = config.replace(seed=base + index)
    return solve(problem, config, registry)


class EnsembleSolution:
    """
    Results of an ensemble run, in trajectory order.

    Parameters
    ----------
    solutions : Sequence[Solution]
        One solution per trajectory
    """

    def __init__(self, solutions: Sequence[Solution]):
        self.solutions: List[Solution] = list(solutions)

    def __len__(self) -> int:
        return len(self.solutions)

    def __getitem__(self, index: int) -> Solution:
        return self.solutions[index]

    def __iter__(self):
        return iter(self.solutions)

    @property
    def success(self) -> bool:
        """True iff every trajectory succeeded."""
        return all(sol.success for sol in self.solutions)

    def return_codes(self) -> List[ReturnCode]:
        return [sol.return_code() for sol in self.solutions]

    def get_statistics(self, t: Optional[TimePoints] = None) -> EnsembleStatistics:
        """
        Statistics across trajectories on a common time grid.

        Parameters
        ----------
        t : Optional[array-like]
            Evaluation grid; defaults to the ``save_at`` grid of the run

        Returns
        -------
        EnsembleStatistics
            mean, std, min, max, median, q25, q75 with shape (T, state_dim),
            plus ``t`` and ``n_paths``

        Raises
        ------
        ValueError
            Empty ensemble, or no grid given and none was saved

        Examples
        --------
        >>> stats = ens.get_statistics()
        >>> print(f"Mean at final time: {stats['mean'][-1]}")
        """
        if not self.solutions:
            raise ValueError("Ensemble is empty")

        if t is None:
            saved = self.solutions[0].saved()
            if saved is None:
                raise ValueError("No save_at grid was requested; pass t explicitly")
            grid = saved[0]
            if any(len(sol.saved()[0]) != len(grid) for sol in self.solutions):
                raise ValueError(
                    "Trajectories saved different grids (some runs stopped early); "
                    "pass t inside the common solved interval"
                )
            x = np.stack([sol.saved()[1] for sol in self.solutions])
        else:
            grid = np.atleast_1d(np.asarray(t, dtype=float))
            x = np.stack([np.reshape(sol(grid), (len(grid), -1)) for sol in self.solutions])

        # x has shape (n_paths, T, nx)
        return EnsembleStatistics(
            t=grid,
            mean=np.mean(x, axis=0),
            std=np.std(x, axis=0),
            min=np.min(x, axis=0),
            max=np.max(x, axis=0),
            median=np.median(x, axis=0),
            q25=np.quantile(x, 0.25, axis=0),
            q75=np.quantile(x, 0.75, axis=0),
            n_paths=len(self.solutions),
        )

    def __repr__(self) -> str:
        n_ok = sum(sol.success for sol in self.solutions)
        return f"EnsembleSolution(n_paths={len(self.solutions)}, successful={n_ok})"


def solve_ensemble(
    problem: ProblemSpec,
    trajectories: int,
    prob_func: Optional[Callable[[ProblemSpec, int], ProblemSpec]] = None,
    options: Optional[Union[SolverOptions, SolverConfig]] = None,
    parallel: str = "serial",
    max_workers: Optional[int] = None,
    seed: Optional[int] = None,
    registry=None,
) -> EnsembleSolution:
    """
    Solve ``trajectories`` independent copies of a problem.

    Parameters
    ----------
    problem : ProblemSpec
        Base problem
    trajectories : int
        Number of runs (>= 1)
    prob_func : Optional[Callable]
        ``prob_func(problem, i) -> ProblemSpec`` rewriting the problem of
        trajectory i (e.g. ``problem.remake(u0=...)``)
    options : Optional[Union[SolverOptions, SolverConfig]]
        Options shared by all runs
    parallel : str
        'serial', 'threads' or 'processes'
    max_workers : Optional[int]
        Pool size for the parallel backends
    seed : Optional[int]
        Base seed; trajectory i uses ``seed + i``. None falls back to the
        ``seed`` option as the base (unseeded runs stay unseeded).
    registry : Optional[AlgorithmRegistry]
        Registry passed to every run

    Returns
    -------
    EnsembleSolution
    """
    if isinstance(trajectories, bool) or not isinstance(trajectories, (int, np.integer)):
        raise ValueError(f"trajectories must be an integer, got {trajectories!r}")
    if trajectories < 1:
        raise ValueError(f"trajectories must be >= 1, got {trajectories}")
    if parallel not in PARALLEL_MODES:
        raise ValueError(f"Unknown parallel mode {parallel!r}. Choose from: {list(PARALLEL_MODES)}")
    if seed is not None and (isinstance(seed, bool) or seed < 0):
        raise ValueError(f"seed must be a non-negative integer or None, got {seed!r}")

    config = options if isinstance(options, SolverConfig) else resolve_options(options)
    indices = range(int(trajectories))

    if parallel == "serial":
        solutions = [
            _solve_one(problem, prob_func, config, registry, i, seed) for i in indices
        ]
        return EnsembleSolution(solutions)

    executor_class = ThreadPoolExecutor if parallel == "threads" else ProcessPoolExecutor
    with executor_class(max_workers=max_workers) as executor:
        futures = [
            executor.submit(_solve_one, problem, prob_func, config, registry, i, seed)
            for i in indices
        ]
        solutions = [future.result() for future in futures]
    return EnsembleSolution(solutions)


__all__ = ["EnsembleSolution", "solve_ensemble", "PARALLEL_MODES"]
