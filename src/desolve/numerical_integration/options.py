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
Solver Options - Defaults, Validation and the Immutable SolverConfig

Options are supplied as a plain dictionary (typed as ``SolverOptions``)
and/or keyword overrides. ``resolve_options`` merges them over
``DEFAULT_OPTIONS``, validates every value and returns a frozen
``SolverConfig`` that the Integrator reads for the whole run.

Aliases
-------
The short names used by scipy-style APIs are accepted:

    rtol -> reltol, atol -> abstol, dt -> dt_initial, method -> algorithm

Examples
--------
>>> cfg = resolve_options({"reltol": 1e-8}, algorithm="DP5")
>>> cfg.abstol
1e-08
>>> resolve_options({"tolerance": 1e-3})
Traceback (most recent call last):
    ...
ValueError: Unknown option(s) ['tolerance']. Valid options: [...]
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np

from desolve.numerical_integration.events import Event
from desolve.types.trajectories import SolverOptions

DEFAULT_OPTIONS: Dict[str, Any] = {
    "algorithm": "default",
    "abstol": 1e-8,
    "reltol": 1e-6,
    "dt_initial": "auto",
    "dt_min": 0.0,
    "dt_max": np.inf,
    "max_steps": 100000,
    "save_at": None,
    "tstops": (),
    "events": (),
    "safety_factor": 0.9,
    "min_growth": 0.2,
    "max_growth": 10.0,
    "max_nonlinear_failures": 10,
    "newton_max_iters": 10,
    "newton_tol": 1e-10,
    "max_discontinuities": 1000,
    "seed": None,
    "cancel_token": None,
    "verbose": True,
}

OPTION_ALIASES: Dict[str, str] = {
    "rtol": "reltol",
    "atol": "abstol",
    "dt": "dt_initial",
    "method": "algorithm",
}


@dataclass(frozen=True, eq=False)
class SolverConfig:
    """
    Validated, immutable solver configuration.

    See ``DEFAULT_OPTIONS`` for defaults. ``dt_initial`` is None when the
    step is chosen automatically; ``save_at`` is a sorted float array or None.
    """

    algorithm: str = "default"
    abstol: float = 1e-8
    reltol: float = 1e-6
    dt_initial: Optional[float] = None
    dt_min: float = 0.0
    dt_max: float = np.inf
    max_steps: int = 100000
    save_at: Optional[np.ndarray] = None
    tstops: Tuple[float, ...] = ()
    events: Tuple[Event, ...] = ()
    safety_factor: float = 0.9
    min_growth: float = 0.2
    max_growth: float = 10.0
    max_nonlinear_failures: int = 10
    newton_max_iters: int = 10
    newton_tol: float = 1e-10
    max_discontinuities: int = 1000
    seed: Optional[int] = None
    cancel_token: Any = field(default=None, compare=False)
    verbose: bool = True

    def replace(self, **changes) -> "SolverConfig":
        """Return a re-validated copy with some options changed."""
        current = {name: getattr(self, name) for name in DEFAULT_OPTIONS}
        current.update(changes)
        return resolve_options(current)


def _positive(name: str, value, allow_inf: bool = False) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if not value > 0 or (not allow_inf and not np.isfinite(value)):
        raise ValueError(f"{name} must be positive and finite, got {value}")
    return value


def _positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def _time_grid(name: str, value) -> np.ndarray:
    grid = np.atleast_1d(np.asarray(value, dtype=float))
    if grid.ndim != 1:
        raise ValueError(f"{name} must be 1-D, got shape {grid.shape}")
    if not np.all(np.isfinite(grid)):
        raise ValueError(f"{name} must contain finite times")
    return np.unique(grid)


def resolve_options(options: Optional[SolverOptions] = None, **overrides) -> SolverConfig:
    """
    Merge options over the defaults and validate them.

    Parameters
    ----------
    options : Optional[SolverOptions]
        Option dictionary (may be None)
    **overrides
        Options given as keywords; they win over ``options``

    Returns
    -------
    SolverConfig

    Raises
    ------
    ValueError
        Unknown option names, non-positive tolerances, inconsistent step
        bounds or malformed grids

    Examples
    --------
    >>> resolve_options(rtol=1e-3).reltol
    0.001
    """
    given: Dict[str, Any] = {}
    for source in (options or {}), overrides:
        for key, value in source.items():
            given[OPTION_ALIASES.get(key, key)] = value

    unknown = sorted(set(given) - set(DEFAULT_OPTIONS))
    if unknown:
        raise ValueError(f"Unknown option(s) {unknown}. Valid options: {sorted(DEFAULT_OPTIONS)}")

    merged = dict(DEFAULT_OPTIONS)
    merged.update(given)

    algorithm = merged["algorithm"]
    if algorithm is None:
        algorithm = "default"
    if not isinstance(algorithm, str):
        raise ValueError(f"algorithm must be a string, got {type(algorithm).__name__}")

    abstol = _positive("abstol", merged["abstol"])
    reltol = _positive("reltol", merged["reltol"])

    dt_initial = merged["dt_initial"]
    if dt_initial is None or (isinstance(dt_initial, str) and dt_initial.lower() == "auto"):
        dt_initial = None
    else:
        dt_initial = _positive("dt_initial", dt_initial)

    try:
        dt_min = float(merged["dt_min"])
    except (TypeError, ValueError):
        raise ValueError(f"dt_min must be a number, got {merged['dt_min']!r}")
    if not (np.isfinite(dt_min) and dt_min >= 0):
        raise ValueError(f"dt_min must be finite and non-negative, got {dt_min}")
    dt_max = _positive("dt_max", merged["dt_max"], allow_inf=True)
    if dt_min > dt_max:
        raise ValueError(f"dt_min ({dt_min}) must not exceed dt_max ({dt_max})")

    safety = _positive("safety_factor", merged["safety_factor"])
    if safety > 1:
        raise ValueError(f"safety_factor must be in (0, 1], got {safety}")
    min_growth = _positive("min_growth", merged["min_growth"])
    if min_growth > 1:
        raise ValueError(f"min_growth must be in (0, 1], got {min_growth}")
    max_growth = _positive("max_growth", merged["max_growth"])
    if max_growth < 1:
        raise ValueError(f"max_growth must be >= 1, got {max_growth}")

    save_at = merged["save_at"]
    if save_at is not None:
        save_at = _time_grid("save_at", save_at)
        save_at.setflags(write=False)

    tstops = merged["tstops"]
    if tstops is None or np.size(tstops) == 0:
        tstops = ()
    else:
        tstops = tuple(float(t) for t in _time_grid("tstops", tstops))

    events = merged["events"]
    if events is None:
        events = ()
    elif isinstance(events, Event):
        events = (events,)
    else:
        events = tuple(events)
    for i, ev in enumerate(events):
        if not isinstance(ev, Event):
            raise ValueError(f"events[{i}] must be an Event, got {type(ev).__name__}")

    seed = merged["seed"]
    if seed is not None:
        if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)) or seed < 0:
            raise ValueError(f"seed must be a non-negative integer or None, got {seed!r}")
        seed = int(seed)

    token = merged["cancel_token"]
    if token is not None and not callable(getattr(token, "is_set", None)):
        raise ValueError("cancel_token must provide is_set() (use CancellationToken)")

    return SolverConfig(
        algorithm=algorithm,
        abstol=abstol,
        reltol=reltol,
        dt_initial=dt_initial,
        dt_min=dt_min,
        dt_max=dt_max,
        max_steps=_positive_int("max_steps", merged["max_steps"]),
        save_at=save_at,
        tstops=tstops,
        events=events,
        safety_factor=safety,
        min_growth=min_growth,
        max_growth=max_growth,
        max_nonlinear_failures=_positive_int(
            "max_nonlinear_failures", merged["max_nonlinear_failures"]
        ),
        newton_max_iters=_positive_int("newton_max_iters", merged["newton_max_iters"]),
        newton_tol=_positive("newton_tol", merged["newton_tol"]),
        max_discontinuities=_positive_int("max_discontinuities", merged["max_discontinuities"]),
        seed=seed,
        cancel_token=token,
        verbose=bool(merged["verbose"]),
    )


__all__ = ["DEFAULT_OPTIONS", "OPTION_ALIASES", "SolverConfig", "resolve_options"]
