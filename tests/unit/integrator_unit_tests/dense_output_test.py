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
Unit Tests for Dense Output
===========================

Tests cover:
1. Segment endpoint exactness
2. Linear / Hermite / Dormand-Prince / Rosenbrock segment accuracy
3. Interpolant sample exactness, vector queries, range checks
4. Query purity (idempotence, order independence)
"""

import numpy as np
import pytest

from desolve.errors import OutOfRangeError
from desolve.numerical_integration.dense_output import (
    DormandPrinceSegment,
    HermiteSegment,
    Interpolant,
    LinearSegment,
    RosenbrockSegment,
)
from desolve.numerical_integration.explicit_rk import DP5Stepper
from desolve.numerical_integration.function_bridge import FunctionBridge
from desolve.numerical_integration.integrator_base import StepState
from desolve.problems import ODEProblem


def decay(du, u, p, t):
    du[:] = -u


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def cubic_segment():
    """Hermite segment of u(t) = t**3 on [0, 1] (reproduced exactly)."""
    return HermiteSegment(0.0, 1.0, [0.0], [1.0], [0.0], [3.0])


@pytest.fixture
def three_point_interpolant():
    times = np.array([0.0, 1.0, 2.0])
    states = np.array([[0.0, 0.0], [1.0, 2.0], [2.0, 4.0]])
    segments = [
        LinearSegment(0.0, 1.0, states[0], states[1]),
        LinearSegment(1.0, 2.0, states[1], states[2]),
    ]
    return Interpolant(times, states, segments)


# ============================================================================
# Test Class 1: Segments
# ============================================================================


class TestSegments:
    """Test the local continuous extensions."""

    def test_endpoints_exact(self, cubic_segment):
        np.testing.assert_array_equal(cubic_segment(0.0), [0.0])
        np.testing.assert_array_equal(cubic_segment(1.0), [1.0])

    def test_endpoint_returns_copy(self, cubic_segment):
        value = cubic_segment(1.0)
        value[0] = 42.0
        np.testing.assert_array_equal(cubic_segment(1.0), [1.0])

    def test_hermite_reproduces_cubic(self, cubic_segment):
        for t in [0.1, 0.25, 0.5, 0.9]:
            np.testing.assert_allclose(cubic_segment(t), [t ** 3], atol=1e-14)

    def test_linear_midpoint(self):
        seg = LinearSegment(2.0, 4.0, [0.0, 10.0], [2.0, 20.0])
        np.testing.assert_allclose(seg(3.0), [1.0, 15.0])

    def test_dormand_prince_segment_accuracy(self):
        """The DP5 continuous extension tracks exp(-t) inside one step."""
        prob = ODEProblem(decay, [1.0], (0.0, 1.0))
        bridge = FunctionBridge(prob)
        u0 = np.array([1.0])
        state = StepState(0.0, u0, bridge.f(u0, 0.0), 0.1)

        outcome = DP5Stepper().step(state, 0.1, prob, bridge)
        seg = outcome.segment

        assert isinstance(seg, DormandPrinceSegment)
        for t in [0.02, 0.05, 0.08]:
            np.testing.assert_allclose(seg(t), [np.exp(-t)], atol=1e-7)

    def test_dormand_prince_segment_end_matches_step(self):
        k = np.random.default_rng(0).standard_normal((7, 2))
        b = DormandPrinceSegment._B
        u0 = np.array([1.0, -1.0])
        u1 = u0 + 0.5 * (b @ k)
        seg = DormandPrinceSegment(0.0, 0.5, u0, u1, k)
        np.testing.assert_allclose(seg._evaluate(1.0), u1, atol=1e-14)
        np.testing.assert_allclose(seg._evaluate(0.0), u0, atol=1e-14)

    def test_rosenbrock_segment_endpoints(self):
        d = 1.0 / (2.0 + np.sqrt(2.0))
        k1, k2 = np.array([1.0]), np.array([2.0])
        u0 = np.array([0.0])
        u1 = u0 + 0.1 * k2
        seg = RosenbrockSegment(0.0, 0.1, u0, u1, k1, k2, d)
        np.testing.assert_allclose(seg._evaluate(1.0), u1, atol=1e-14)
        np.testing.assert_allclose(seg._evaluate(0.0), u0, atol=1e-14)


# ============================================================================
# Test Class 2: Interpolant
# ============================================================================


class TestInterpolant:
    """Test the piecewise Interpolant."""

    def test_samples_returned_exactly(self, three_point_interpolant):
        interp = three_point_interpolant
        for ti, ui in zip(interp.times, interp.states):
            np.testing.assert_array_equal(interp(ti), ui)

    def test_sample_wins_over_segment_end(self):
        """A jump at a sample (event) is visible at the sample time."""
        times = np.array([0.0, 1.0, 2.0])
        states = np.array([[0.0], [5.0], [6.0]])
        segments = [
            LinearSegment(0.0, 1.0, [0.0], [1.0]),  # pre-jump end value
            LinearSegment(1.0, 2.0, [5.0], [6.0]),
        ]
        interp = Interpolant(times, states, segments)

        np.testing.assert_array_equal(interp(1.0), [5.0])
        np.testing.assert_allclose(interp(0.5), [0.5])
        np.testing.assert_allclose(interp(1.5), [5.5])

    def test_vector_query(self, three_point_interpolant):
        out = three_point_interpolant([0.5, 1.5])
        assert out.shape == (2, 2)
        np.testing.assert_allclose(out, [[0.5, 1.0], [1.5, 3.0]])

    def test_scalar_query_shape(self, three_point_interpolant):
        assert three_point_interpolant(0.3).shape == (2,)

    def test_out_of_range(self, three_point_interpolant):
        with pytest.raises(OutOfRangeError):
            three_point_interpolant(2.5)
        with pytest.raises(OutOfRangeError):
            three_point_interpolant([-0.1, 1.0])

    def test_out_of_range_is_value_error(self, three_point_interpolant):
        with pytest.raises(ValueError):
            three_point_interpolant(-1.0)

    def test_idempotent(self, three_point_interpolant):
        a = three_point_interpolant(1.234)
        b = three_point_interpolant(1.234)
        np.testing.assert_array_equal(a, b)

    def test_order_independent(self, three_point_interpolant):
        queries = np.array([1.7, 0.2, 1.1, 0.9])
        forward = three_point_interpolant(queries)
        backward = three_point_interpolant(queries[::-1])[::-1]
        np.testing.assert_array_equal(forward, backward)

    def test_segment_count_checked(self):
        with pytest.raises(ValueError, match="segments"):
            Interpolant([0.0, 1.0, 2.0], np.zeros((3, 1)), [])

    def test_segment_at(self, three_point_interpolant):
        assert three_point_interpolant.segment_at(1.5).t_start == 1.0
        assert three_point_interpolant.segment_at(0.0).t_start == 0.0
        assert len(three_point_interpolant) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
