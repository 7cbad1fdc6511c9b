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
Cooperative cancellation.

The Integrator checks the token at the top of every stepping iteration;
once set, the run ends with ``ReturnCode.Terminated`` and returns the
history accumulated so far. Timeouts live outside the core:
``cancel_after`` arms a timer thread that sets the token.

Examples
--------
>>> token = CancellationToken()
>>> timer = cancel_after(token, 5.0)
>>> sol = solve(prob, cancel_token=token)
>>> timer.cancel()
"""

import threading


class CancellationToken:
    """Thread-safe cancellation flag."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_set()})"


def cancel_after(token: CancellationToken, seconds: float) -> threading.Timer:
    """
    Set ``token`` after ``seconds`` of wall-clock time.

    Parameters
    ----------
    token : CancellationToken
        Token passed to ``solve``
    seconds : float
        Delay (>= 0)

    Returns
    -------
    threading.Timer
        Started daemon timer; call ``cancel()`` on it to disarm
    """
    if seconds < 0:
        raise ValueError(f"seconds must be non-negative, got {seconds}")
    timer = threading.Timer(seconds, token.cancel)
    timer.daemon = True
    timer.start()
    return timer


__all__ = ["CancellationToken", "cancel_after"]
