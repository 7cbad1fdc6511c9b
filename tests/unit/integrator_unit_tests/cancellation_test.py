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
Unit Tests for Cooperative Cancellation
=======================================

Tests cover:
- CancellationToken state
- cancel_after timers
- Runs stopped by a token keep their partial history
"""

import numpy as np
import pytest

from desolve.numerical_integration.cancellation import CancellationToken, cancel_after
from desolve.numerical_integration.integrator import solve
from desolve.numerical_integration.solution import ReturnCode
from desolve.problems import ODEProblem


def decay(du, u, p, t):
    du[0] = -u[0]


# ============================================================================
# Test Class 1: Token
# ============================================================================


class TestToken:
    """Test CancellationToken and cancel_after."""

    def test_initial_state(self):
        token = CancellationToken()
        assert not token.is_set()
        assert not token.cancelled
        assert "cancelled=False" in repr(token)

    def test_cancel_idempotent(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.is_set()
        assert token.cancelled

    def test_cancel_after(self):
        token = CancellationToken()
        timer = cancel_after(token, 0.0)
        timer.join(timeout=5.0)
        assert token.cancelled

    def test_cancel_after_disarmed(self):
        token = CancellationToken()
        timer = cancel_after(token, 60.0)
        timer.cancel()
        timer.join(timeout=5.0)
        assert not token.cancelled

    def test_negative_delay(self):
        with pytest.raises(ValueError):
            cancel_after(CancellationToken(), -1.0)


# ============================================================================
# Test Class 2: Cancelled Runs
# ============================================================================


class TestCancelledRuns:
    """Test solve() with a cancel_token."""

    def test_pre_cancelled(self):
        token = CancellationToken()
        token.cancel()
        prob = ODEProblem(decay, [1.0], (0.0, 1.0))

        with pytest.warns(RuntimeWarning, match="Terminated"):
            sol = solve(prob, cancel_token=token)

        assert sol.return_code() is ReturnCode.Terminated
        assert len(sol) == 1
        np.testing.assert_array_equal(sol.u[0], [1.0])

    def test_cancelled_mid_run(self):
        token = CancellationToken()

        def cancelling(du, u, p, t):
            if t > 0.5:
                token.cancel()
            du[0] = -u[0]

        prob = ODEProblem(cancelling, [1.0], (0.0, 1.0))
        sol = solve(prob, algorithm="RK4", dt=0.01, cancel_token=token, verbose=False)

        assert sol.return_code() is ReturnCode.Terminated
        assert 0.49 < sol.t[-1] < 0.52
        np.testing.assert_allclose(sol.u[-1], np.exp(-sol.t[-1]), rtol=1e-8)
        # Dense output still works on the partial run
        np.testing.assert_allclose(sol(0.25), [np.exp(-0.25)], rtol=1e-6)

    def test_unset_token_runs_to_completion(self):
        prob = ODEProblem(decay, [1.0], (0.0, 1.0))
        sol = solve(prob, cancel_token=CancellationToken())
        assert sol.success


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
