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
Unit Tests for FunctionBridge
=============================

Tests cover:
1. Calling convention inference (mutating vs returning)
2. Evaluation counters per role
3. Output shape checks
4. Exception wrapping into UserFunctionError
5. Isolation of the caller's state from user mutation
6. Pre-compiled fast path
"""

import numpy as np
import pytest

from desolve.errors import InvalidProblemSpecError, UserFunctionError
from desolve.numerical_integration.function_bridge import FunctionBridge, infer_inplace
from desolve.problems import DAEProblem, DDEProblem, ODEProblem, SDEProblem


# ============================================================================
# User Functions
# ============================================================================


def rotation(du, u, p, t):
    du[0] = -u[1]
    du[1] = u[0]


def rotation_oop(u, p, t):
    return np.array([-u[1], u[0]])


def mixing_noise(out, u, p, t):
    out[:, 0] = 1.0
    out[:, 1] = u


# ============================================================================
# Test Class 1: Convention Inference
# ============================================================================


class TestInferInplace:
    """Test infer_inplace()."""

    def test_mutating_form(self):
        assert infer_inplace(rotation, 4) is True

    def test_returning_form(self):
        assert infer_inplace(rotation_oop, 4) is False

    def test_explicit_override(self):
        assert infer_inplace(rotation_oop, 4, explicit=True) is True

    def test_ambiguous_signature(self):
        with pytest.raises(InvalidProblemSpecError, match="calling convention"):
            infer_inplace(lambda u: u, 4)

    def test_varargs_is_ambiguous(self):
        with pytest.raises(InvalidProblemSpecError):
            infer_inplace(lambda *args: None, 4)


# ============================================================================
# Test Class 2: Evaluation
# ============================================================================


class TestEvaluation:
    """Test f(), residual(), noise() and history()."""

    def test_mutating_and_returning_agree(self):
        u = np.array([1.0, 2.0])
        b1 = FunctionBridge(ODEProblem(rotation, u, (0.0, 1.0)))
        b2 = FunctionBridge(ODEProblem(rotation_oop, u, (0.0, 1.0)))

        np.testing.assert_array_equal(b1.f(u, 0.0), [-2.0, 1.0])
        np.testing.assert_array_equal(b2.f(u, 0.0), [-2.0, 1.0])
        assert b1.inplace and not b2.inplace

    def test_returns_fresh_arrays(self):
        """Results from consecutive calls do not alias the bridge buffer."""
        bridge = FunctionBridge(ODEProblem(rotation, [1.0, 0.0], (0.0, 1.0)))
        a = bridge.f(np.array([1.0, 0.0]), 0.0)
        b = bridge.f(np.array([0.0, 1.0]), 0.0)
        np.testing.assert_array_equal(a, [0.0, 1.0])
        np.testing.assert_array_equal(b, [-1.0, 0.0])

    def test_counters(self):
        prob = SDEProblem(rotation, mixing_noise, [1.0, 2.0], (0.0, 1.0), noise_rate_shape=(2, 2))
        bridge = FunctionBridge(prob)
        u = np.array([1.0, 2.0])
        bridge.f(u, 0.0)
        bridge.f(u, 0.1)
        bridge.noise(u, 0.0)

        assert bridge.counts() == {"nf": 2, "ng": 1, "nresid": 0}

    def test_non_diagonal_noise_shape(self):
        prob = SDEProblem(rotation, mixing_noise, [1.0, 2.0], (0.0, 1.0), noise_rate_shape=(2, 2))
        G = FunctionBridge(prob).noise(np.array([3.0, 4.0]), 0.0)
        np.testing.assert_array_equal(G, [[1.0, 3.0], [1.0, 4.0]])

    def test_residual(self):
        def resid(r, du, u, p, t):
            r[:] = du - p * u

        prob = DAEProblem(resid, [2.0], [1.0], (0.0, 1.0), p=2.0)
        bridge = FunctionBridge(prob)
        np.testing.assert_allclose(bridge.residual(np.array([3.0]), np.array([1.0]), 0.0), [1.0])
        assert bridge.nresid == 1

    def test_residual_not_available_for_ode(self):
        bridge = FunctionBridge(ODEProblem(rotation, [1.0, 0.0], (0.0, 1.0)))
        with pytest.raises(TypeError):
            bridge.residual(np.zeros(2), np.zeros(2), 0.0)

    def test_dde_receives_accessor(self):
        seen = {}

        def delayed(du, u, h, p, t):
            seen["lagged"] = h(p, t - 1.0)
            du[:] = -seen["lagged"]

        prob = DDEProblem(delayed, [1.0], lambda p, t: np.array([5.0]), (0.0, 2.0),
                          constant_lags=[1.0])
        bridge = FunctionBridge(prob)
        bridge.set_delay_accessor(lambda p, t: bridge.history(t))

        np.testing.assert_array_equal(bridge.f(np.array([1.0]), 0.0), [-5.0])
        np.testing.assert_array_equal(seen["lagged"], [5.0])

    def test_dde_without_accessor(self):
        prob = DDEProblem(lambda du, u, h, p, t: None, [1.0], lambda p, t: np.ones(1),
                          (0.0, 1.0), constant_lags=[1.0])
        with pytest.raises(RuntimeError, match="delay accessor"):
            FunctionBridge(prob).f(np.ones(1), 0.0)


# ============================================================================
# Test Class 3: Error Channel
# ============================================================================


class TestErrorChannel:
    """Test shape checks and exception wrapping."""

    def test_wrong_output_shape(self):
        prob = ODEProblem(lambda u, p, t: np.zeros(3), [1.0, 2.0], (0.0, 1.0))
        with pytest.raises(InvalidProblemSpecError, match="shape"):
            FunctionBridge(prob).f(np.ones(2), 0.0)

    def test_user_exception_wrapped(self):
        def explode(du, u, p, t):
            raise ZeroDivisionError("boom")

        bridge = FunctionBridge(ODEProblem(explode, [1.0], (0.0, 1.0)))
        with pytest.raises(UserFunctionError) as exc_info:
            bridge.f(np.ones(1), 0.25)

        err = exc_info.value
        assert err.role == "dynamics"
        assert err.t == 0.25
        assert isinstance(err.__cause__, ZeroDivisionError)
        assert err.partial_solution is None

    def test_history_shape_checked(self):
        prob = DDEProblem(lambda du, u, h, p, t: None, [1.0, 1.0],
                          lambda p, t: np.ones(3), (0.0, 1.0), constant_lags=[1.0])
        with pytest.raises(InvalidProblemSpecError, match="history"):
            FunctionBridge(prob).history(-1.0)


# ============================================================================
# Test Class 4: State Isolation and Fast Path
# ============================================================================


class TestIsolation:
    """Test that user functions cannot corrupt integrator state."""

    def test_mutating_u_does_not_leak(self):
        def vandal(du, u, p, t):
            du[:] = 1.0
            u[:] = 1e9

        bridge = FunctionBridge(ODEProblem(vandal, [1.0, 2.0], (0.0, 1.0)))
        u = np.array([1.0, 2.0])
        bridge.f(u, 0.0)
        np.testing.assert_array_equal(u, [1.0, 2.0])

    def test_compiled_flag_on_function(self):
        def fast(du, u, p, t):
            du[:] = 2.0 * u

        fast.__desolve_compiled__ = True
        bridge = FunctionBridge(ODEProblem(fast, [1.0], (0.0, 1.0)))
        first = bridge.f(np.array([1.0]), 0.0)
        second = bridge.f(np.array([3.0]), 0.0)

        np.testing.assert_array_equal(first, [2.0])
        np.testing.assert_array_equal(second, [6.0])

    def test_compiled_problem_still_checks_first_call(self):
        prob = ODEProblem(lambda u, p, t: np.zeros(2), [1.0], (0.0, 1.0), compiled=True)
        with pytest.raises(InvalidProblemSpecError):
            FunctionBridge(prob).f(np.ones(1), 0.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
