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
Core Types - Fundamental Building Blocks

Defines the most basic types used throughout the solver core:
- Array-likes accepted from user code
- Semantic vector and matrix aliases (state, derivative, residual, noise)
- Scalars and integers

These are the foundation upon which all other type modules build.

Design Philosophy
-----------------
Aliases carry *meaning*, not enforcement. ``StateVector`` and
``DerivativeVector`` are both NumPy arrays at runtime, but naming them by
role makes stepper signatures self-documenting.

Usage
-----
>>> from desolve.types.core import StateVector, ParameterVector
>>>
>>> def rhs(du: StateVector, u: StateVector, p: ParameterVector, t: float):
...     du[0] = -p[0] * u[0]
"""

from typing import Any, Callable, Sequence, Union

import numpy as np

# ============================================================================
# Basic Array Types
# ============================================================================

ArrayLike = Union[np.ndarray, Sequence[float], Any]
"""
Array-like input accepted from user code.

Anything ``np.asarray`` can convert: NumPy arrays, lists, and objects from
other runtimes that implement ``__array__`` (e.g. tensors). The core always
works on float64 NumPy arrays internally.

Examples
--------
>>> u0: ArrayLike = [1.0, 0.0]
>>> u0: ArrayLike = np.array([1.0, 0.0])
"""

NumpyArray = np.ndarray
"""Pure NumPy array (used for everything stored by the core)."""

ScalarLike = Union[float, int, np.number]
"""
Scalar value.

Examples
--------
>>> dt: ScalarLike = 0.01
"""

IntegerLike = Union[int, np.integer]
"""Integer value (for dimensions, indices, counters)."""


# ============================================================================
# Vector Types - Semantic Naming by Role
# ============================================================================

StateVector = np.ndarray
"""
State vector u ∈ ℝⁿ, shape (state_dim,).

Examples
--------
>>> u: StateVector = np.array([1.0, 0.0, 0.0])
"""

DerivativeVector = np.ndarray
"""
Time derivative du/dt, shape (state_dim,).

For ODE/SDE/DDE problems this is the value written by the dynamics
function; for DAE problems it is the derivative approximation of the
implicit method.
"""

ResidualVector = np.ndarray
"""
DAE residual F(du, u, p, t), shape (state_dim,).

Integration drives every component to zero.
"""

NoiseVector = np.ndarray
"""
Brownian increment dW, shape (noise_cols,).

Each entry is an independent draw from N(0, h).
"""

ParameterVector = Any
"""
Opaque problem parameters.

Passed through to user callables unmodified; the core never inspects it.
Can be a NumPy array, tuple, dict or any user object.
"""

BooleanMask = np.ndarray
"""Boolean mask, shape (state_dim,). Used for DAE differential variables."""


# ============================================================================
# Matrix Types
# ============================================================================

JacobianMatrix = np.ndarray
"""
Jacobian matrix, shape (state_dim, state_dim).

Built by finite differences for implicit and linearly implicit steppers.
"""

NoiseMatrix = np.ndarray
"""
Noise rate matrix G(u, p, t), shape (state_dim, noise_cols).

Column j multiplies the j-th Wiener increment; all rows referencing column
j share the same draw.
"""


# ============================================================================
# Function Types
# ============================================================================

UserFunction = Callable[..., Any]
"""
User-supplied dynamics, residual, noise or history callable.

See ``desolve.numerical_integration.function_bridge`` for the calling
conventions per problem kind.
"""

HistoryFunction = Callable[[Any, float], ArrayLike]
"""
DDE history h(p, t) -> state, defined for every t <= t0.
"""


__all__ = [
    "ArrayLike",
    "NumpyArray",
    "ScalarLike",
    "IntegerLike",
    "StateVector",
    "DerivativeVector",
    "ResidualVector",
    "NoiseVector",
    "ParameterVector",
    "BooleanMask",
    "JacobianMatrix",
    "NoiseMatrix",
    "UserFunction",
    "HistoryFunction",
]
