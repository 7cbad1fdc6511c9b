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
Noise Process - Wiener Increments with Fixed Realizations

Generates Brownian increments dW ~ N(0, h I_m) for stochastic problems,
where m is the number of independent Wiener processes (``noise_cols``).

The realization is fixed once drawn. Increments that have been generated
but not yet accepted are kept in a queue of (dt, dW) pieces covering the
future. A step asks for the increment over [t, t + h]:

- pieces fully inside the interval are reused as-is
- a piece straddling t + h is split with a Brownian bridge:

      dW_1 ~ N(dW * h'/s, h' (s - h') / s),    dW_2 = dW - dW_1

  and both halves replace it in the queue
- fresh draws cover only the part beyond the stored pieces

Rejected steps therefore see the same path when retried with a smaller
step, which preserves the strong convergence of adaptive SDE schemes.

Examples
--------
>>> noise = NoiseProcess(noise_cols=2, seed=42)
>>> dW = noise.increment(0.1)          # draws a (2,) increment
>>> dW_half = noise.increment(0.05)    # bridge split of the same path
>>> noise.accept(0.0, 0.05)            # commits the first half
>>> len(noise.accepted_increments)
1
"""

from collections import deque
from typing import Deque, List, Optional, Tuple

import numpy as np

from desolve.types.core import NoiseVector

# Relative tolerance when matching piece boundaries to step ends
_BOUNDARY_RTOL = 1e-12


class NoiseProcess:
    """
    Wiener process with a persistent, lazily generated realization.

    Parameters
    ----------
    noise_cols : int
        Number of independent Wiener processes
    seed : Optional[int]
        Seed for ``numpy.random.default_rng`` (None = fresh entropy)
    t0 : float
        Start time of the path

    Attributes
    ----------
    accepted_increments : List[Tuple[float, float, np.ndarray]]
        (t, h, dW) of every committed step, in order
    ndraws : int
        Number of fresh increment vectors drawn from the generator
    """

    def __init__(self, noise_cols: int, seed: Optional[int] = None, t0: float = 0.0):
        if noise_cols < 1:
            raise ValueError(f"noise_cols must be >= 1, got {noise_cols}")
        self.noise_cols = int(noise_cols)
        self.seed = seed
        self._rng = np.random.default_rng(seed)
        self.t = float(t0)
        self._pending: Deque[Tuple[float, np.ndarray]] = deque()
        self.accepted_increments: List[Tuple[float, float, NoiseVector]] = []
        self.ndraws = 0

    # ========================================================================
    # Generation
    # ========================================================================

    def _draw(self, dt: float) -> NoiseVector:
        self.ndraws += 1
        return self._rng.standard_normal(self.noise_cols) * np.sqrt(dt)

    def _bridge_split(self, s: float, dW: NoiseVector, h: float) -> Tuple[NoiseVector, NoiseVector]:
        mean = dW * (h / s)
        std = np.sqrt(h * (s - h) / s)
        first = mean + std * self._rng.standard_normal(self.noise_cols)
        return first, dW - first

    def _cover(self, h: float) -> int:
        """
        Restructure the queue so that a piece boundary falls at t + h.

        Returns
        -------
        int
            Number of leading pieces that make up [t, t + h]
        """
        tol = _BOUNDARY_RTOL * max(h, 1.0)
        remaining = h
        count = 0
        while count < len(self._pending):
            s, dW = self._pending[count]
            if s <= remaining + tol:
                remaining -= s
                count += 1
                if remaining <= tol:
                    return count
                continue
            first, second = self._bridge_split(s, dW, remaining)
            self._pending[count] = (remaining, first)
            self._pending.insert(count + 1, (s - remaining, second))
            return count + 1

        if remaining > tol:
            self._pending.append((remaining, self._draw(remaining)))
            count += 1
        return count

    def increment(self, h: float) -> NoiseVector:
        """
        Increment W(t + h) - W(t) for the current accepted time t.

        Repeated calls with the same or different h are consistent with one
        underlying Brownian path.
        """
        if not h > 0:
            raise ValueError(f"Step must be positive, got {h}")
        count = self._cover(h)
        total = np.zeros(self.noise_cols)
        for i in range(count):
            total += self._pending[i][1]
        return total

    # ========================================================================
    # Commit
    # ========================================================================

    def accept(self, t: float, h: float) -> NoiseVector:
        """
        Commit the increment over [t, t + h] and advance the path.

        Returns
        -------
        np.ndarray
            The committed increment (identical to ``increment(h)``)
        """
        count = self._cover(h)
        total = np.zeros(self.noise_cols)
        for _ in range(count):
            total += self._pending.popleft()[1]
        self.accepted_increments.append((float(t), float(h), total))
        self.t = float(t) + float(h)
        return total

    @property
    def W(self) -> NoiseVector:
        """Accumulated value of the committed path, W(t) - W(t0)."""
        total = np.zeros(self.noise_cols)
        for _, _, dW in self.accepted_increments:
            total += dW
        return total

    def __repr__(self) -> str:
        return (
            f"NoiseProcess(noise_cols={self.noise_cols}, t={self.t}, "
            f"accepted={len(self.accepted_increments)}, pending={len(self._pending)})"
        )


__all__ = ["NoiseProcess"]
