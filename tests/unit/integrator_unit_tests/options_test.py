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
Unit Tests for Solver Options
=============================

Tests cover:
- Defaults and aliases
- Validation of every option group
- SolverConfig immutability and replace()
"""

import dataclasses

import numpy as np
import pytest

from desolve.numerical_integration.cancellation import CancellationToken
from desolve.numerical_integration.events import Event
from desolve.numerical_integration.options import (
    DEFAULT_OPTIONS,
    SolverConfig,
    resolve_options,
)


def crossing(u, t, p):
    return u[0]


# ============================================================================
# Test Class 1: Defaults and Aliases
# ============================================================================


class TestDefaults:
    """Test the merged defaults."""

    def test_defaults(self):
        cfg = resolve_options()
        assert cfg.algorithm == "default"
        assert cfg.abstol == DEFAULT_OPTIONS["abstol"]
        assert cfg.reltol == DEFAULT_OPTIONS["reltol"]
        assert cfg.dt_initial is None
        assert cfg.dt_max == np.inf
        assert cfg.save_at is None
        assert cfg.tstops == ()
        assert cfg.events == ()
        assert cfg.verbose

    def test_dict_and_overrides(self):
        cfg = resolve_options({"reltol": 1e-3, "abstol": 1e-4}, reltol=1e-5)
        assert cfg.reltol == 1e-5
        assert cfg.abstol == 1e-4

    def test_aliases(self):
        cfg = resolve_options(rtol=1e-3, atol=1e-9, dt=0.1, method="RK4")
        assert cfg.reltol == 1e-3
        assert cfg.abstol == 1e-9
        assert cfg.dt_initial == 0.1
        assert cfg.algorithm == "RK4"

    def test_auto_step(self):
        assert resolve_options(dt_initial="auto").dt_initial is None
        assert resolve_options(dt_initial="AUTO").dt_initial is None

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="Unknown option"):
            resolve_options({"tolerance": 1e-3})


# ============================================================================
# Test Class 2: Validation
# ============================================================================


class TestValidation:
    """Test rejection of invalid values."""

    @pytest.mark.parametrize(
        "options",
        [
            {"reltol": 0.0},
            {"abstol": -1.0},
            {"reltol": np.inf},
            {"dt_initial": 0.0},
            {"dt_initial": "fast"},
            {"dt_min": -1.0},
            {"dt_min": 1.0, "dt_max": 0.5},
            {"dt_max": 0.0},
            {"safety_factor": 1.5},
            {"min_growth": 2.0},
            {"max_growth": 0.5},
            {"max_steps": 0},
            {"max_steps": 10.5},
            {"max_steps": True},
            {"newton_max_iters": 0},
            {"newton_tol": 0.0},
            {"max_nonlinear_failures": -1},
            {"max_discontinuities": 0},
            {"seed": -1},
            {"seed": 1.5},
            {"algorithm": 5},
            {"save_at": [[0.0, 1.0]]},
            {"save_at": [0.0, np.nan]},
            {"tstops": [np.inf]},
            {"events": [crossing]},
            {"cancel_token": object()},
        ],
    )
    def test_invalid(self, options):
        with pytest.raises(ValueError):
            resolve_options(options)

    def test_grids_sorted_and_unique(self):
        cfg = resolve_options(save_at=[0.5, 0.1, 0.5], tstops=[0.3, 0.2])
        np.testing.assert_array_equal(cfg.save_at, [0.1, 0.5])
        assert cfg.tstops == (0.2, 0.3)

    def test_save_at_read_only(self):
        cfg = resolve_options(save_at=[0.0, 1.0])
        with pytest.raises(ValueError):
            cfg.save_at[0] = 2.0

    def test_single_event(self):
        ev = Event(crossing)
        assert resolve_options(events=ev).events == (ev,)

    def test_cancel_token(self):
        token = CancellationToken()
        assert resolve_options(cancel_token=token).cancel_token is token

    def test_algorithm_none_is_default(self):
        assert resolve_options(algorithm=None).algorithm == "default"


# ============================================================================
# Test Class 3: SolverConfig
# ============================================================================


class TestSolverConfig:
    """Test the frozen configuration."""

    def test_frozen(self):
        cfg = resolve_options()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.reltol = 1.0

    def test_replace_revalidates(self):
        cfg = resolve_options(reltol=1e-3, seed=1)
        new = cfg.replace(seed=2)
        assert new.seed == 2
        assert new.reltol == 1e-3
        assert cfg.seed == 1
        with pytest.raises(ValueError):
            cfg.replace(reltol=-1.0)

    def test_replace_keeps_auto_step(self):
        assert resolve_options().replace(reltol=1e-4).dt_initial is None

    def test_is_solver_config(self):
        assert isinstance(resolve_options(), SolverConfig)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
