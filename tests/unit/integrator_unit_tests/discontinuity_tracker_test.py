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
Unit Tests for the Discontinuity Tracker
========================================

Tests cover:
- Propagated lag discontinuities (single and multiple lags)
- tstops merged into the boundary set
- next_boundary / is_boundary queries
- DelayedStateAccessor resolution (history, dense output)
- DDE solves landing on every discontinuity
"""

import warnings

import numpy as np
import pytest

from desolve.numerical_integration.dense_output import LinearSegment
from desolve.numerical_integration.discontinuity_tracker import (
    DelayedStateAccessor,
    DiscontinuityTracker,
    propagated_discontinuities,
)
from desolve.numerical_integration.function_bridge import FunctionBridge
from desolve.numerical_integration.integrator import solve
from desolve.numerical_integration.integrator_base import HistoryEntry
from desolve.problems import DDEProblem


def delayed_decay(du, u, h, p, t):
    du[0] = -h(p, t - 1.0)[0]


def constant_history(p, t):
    return np.ones(1)


@pytest.fixture
def dde():
    return DDEProblem(delayed_decay, None, constant_history, (0.0, 2.0), constant_lags=[1.0])


# ============================================================================
# Test Class 1: Propagated Discontinuities
# ============================================================================


class TestPropagation:
    """Test propagated_discontinuities()."""

    def test_single_lag(self):
        assert propagated_discontinuities(0.0, 100.0, [20.0]) == [20.0, 40.0, 60.0, 80.0, 100.0]

    def test_two_lags(self):
        points = propagated_discontinuities(0.0, 3.0, [1.0, 1.5])
        np.testing.assert_allclose(points, [1.0, 1.5, 2.0, 2.5, 3.0])

    def test_zero_lag_ignored(self):
        assert propagated_discontinuities(0.0, 1.0, [0.0]) == []

    def test_offset_start(self):
        assert propagated_discontinuities(5.0, 8.0, [1.0]) == [6.0, 7.0, 8.0]

    def test_cap_warns(self):
        with pytest.warns(RuntimeWarning, match="truncated"):
            points = propagated_discontinuities(0.0, 100.0, [1.0], max_discontinuities=10)
        assert len(points) == 10
        assert points[-1] == 10.0


# ============================================================================
# Test Class 2: Tracker Queries
# ============================================================================


class TestTracker:
    """Test DiscontinuityTracker."""

    def test_boundaries_end_with_tf(self):
        tracker = DiscontinuityTracker(0.0, 100.0, lags=[20.0])
        np.testing.assert_array_equal(tracker.boundaries, [20.0, 40.0, 60.0, 80.0, 100.0])
        assert tracker.max_step == 20.0

    def test_no_lags(self):
        tracker = DiscontinuityTracker(0.0, 1.0)
        np.testing.assert_array_equal(tracker.boundaries, [1.0])
        assert tracker.max_step == np.inf

    def test_tstops_merged(self):
        tracker = DiscontinuityTracker(0.0, 10.0, lags=[4.0], tstops=[2.0, 4.0, 12.0, -1.0])
        np.testing.assert_array_equal(tracker.boundaries, [2.0, 4.0, 8.0, 10.0])

    def test_next_boundary(self):
        tracker = DiscontinuityTracker(0.0, 100.0, lags=[20.0])
        assert tracker.next_boundary(0.0) == 20.0
        assert tracker.next_boundary(25.0) == 40.0
        assert tracker.next_boundary(40.0) == 60.0
        assert tracker.next_boundary(100.0) == 100.0

    def test_is_boundary(self):
        tracker = DiscontinuityTracker(0.0, 100.0, lags=[20.0])
        assert tracker.is_boundary(60.0)
        assert not tracker.is_boundary(61.0)


# ============================================================================
# Test Class 3: Delayed State Accessor
# ============================================================================


class TestDelayedStateAccessor:
    """Test h(p, t_lag) resolution."""

    def _accessor(self, dde):
        bridge = FunctionBridge(dde)
        history = [HistoryEntry(0.0, np.array([1.0]), None)]
        seg = LinearSegment(0.0, 0.5, np.array([1.0]), np.array([0.5]))
        history.append(HistoryEntry(0.5, np.array([0.5]), None, seg))
        return DelayedStateAccessor(bridge, history), history

    def test_before_t0_uses_history_function(self, dde):
        accessor, _ = self._accessor(dde)
        np.testing.assert_array_equal(accessor(None, -0.7), [1.0])

    def test_inside_uses_dense_output(self, dde):
        accessor, _ = self._accessor(dde)
        np.testing.assert_allclose(accessor(None, 0.25), [0.75])

    def test_last_point(self, dde):
        accessor, _ = self._accessor(dde)
        np.testing.assert_array_equal(accessor(None, 0.5), [0.5])

    def test_reads_history_live(self, dde):
        accessor, history = self._accessor(dde)
        seg = LinearSegment(0.5, 1.0, np.array([0.5]), np.array([0.5]))
        history.append(HistoryEntry(1.0, np.array([0.5]), None, seg))
        np.testing.assert_allclose(accessor(None, 0.75), [0.5])
        np.testing.assert_allclose(accessor(None, 0.25), [0.75])


# ============================================================================
# Test Class 4: DDE Solves
# ============================================================================


class TestDDESolve:
    """du/dt = -u(t - 1), history 1."""

    def test_method_of_steps_solution(self, dde):
        sol = solve(dde, reltol=1e-10, abstol=1e-12)

        assert sol.success
        # u = 1 - t on [0, 1]; u = t^2/2 - 2t + 3/2 on [1, 2]
        np.testing.assert_allclose(sol(0.5), [0.5], atol=1e-8)
        np.testing.assert_allclose(sol(1.5), [1.125 - 3.0 + 1.5], atol=1e-8)
        np.testing.assert_allclose(sol.u[-1], [-0.5], atol=1e-8)

    def test_lands_on_discontinuities(self, dde):
        sol = solve(dde)
        assert 1.0 in sol.t
        assert sol.t[-1] == 2.0

    def test_step_capped_by_lag(self):
        prob = DDEProblem(
            delayed_decay, None, constant_history, (0.0, 5.0), constant_lags=[1.0]
        )
        sol = solve(prob, algorithm="RK4", dt_initial=0.25)
        assert np.all(np.diff(sol.t) <= 1.0 + 1e-12)
        for t in (1.0, 2.0, 3.0, 4.0, 5.0):
            assert np.any(np.isclose(sol.t, t, rtol=0.0, atol=1e-12))

    def test_tstops(self):
        prob = DDEProblem(
            delayed_decay, None, constant_history, (0.0, 2.0), constant_lags=[1.0]
        )
        sol = solve(prob, tstops=[0.3, 1.7])
        for t in (0.3, 1.0, 1.7):
            assert t in sol.t

    def test_no_warnings_for_normal_run(self, dde):
        with warnings.catch_warnings():
            warnings.simplefilter("error", RuntimeWarning)
            solve(dde)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
