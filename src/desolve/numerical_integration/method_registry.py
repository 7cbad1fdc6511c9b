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
Algorithm Registry and Name Normalization
=========================================

Maps ``(problem kind, algorithm name)`` to an algorithm descriptor and a
fresh stepper instance.

- Registries are explicit objects: ``default_registry()`` returns a NEW
  registry pre-populated with the built-in algorithms, and ``solve`` takes
  a registry argument. There is no process-wide mutable registry.
- Names are matched case-insensitively and through aliases
  (e.g. 'dopri5' -> 'DP5', 'euler_maruyama' -> 'EM').
- Kind compatibility is checked when resolving, before any stepping.

Built-in Algorithms
-------------------
=============== ======== ======== ============ ===========================
name            kinds    adaptive order (err)  notes
=============== ======== ======== ============ ===========================
Euler           ODE, DDE no       1            fixed step
RK4             ODE, DDE no       4            fixed step
BS3             ODE, DDE yes      3 (2)        Bogacki-Shampine, FSAL
DP5             ODE, DDE yes      5 (4)        Dormand-Prince, FSAL
Rosenbrock23    ODE      yes      2            stiff, FD Jacobian
DImplicitEuler  DAE      yes      1            residual form, Newton
DBDF2           DAE      yes      2            residual form, Newton
EM              SDE      no       0.5          Euler-Maruyama
LambaEM         SDE      yes      0.5          adaptive Euler-Maruyama
=============== ======== ======== ============ ===========================

Defaults (highest-order adaptive algorithm per kind, ties broken by
registration order): ODE -> DP5, DDE -> DP5, DAE -> DBDF2, SDE -> LambaEM.

Usage Examples
--------------
>>> registry = default_registry()
>>> desc, stepper = registry.resolve(ProblemKind.ODE)
>>> desc.name
'DP5'
>>> registry.resolve(ProblemKind.SDE, "euler_maruyama")[0].name
'EM'
>>> registry.resolve(ProblemKind.DAE, "DP5")
Traceback (most recent call last):
    ...
UnsupportedAlgorithmError: Algorithm 'DP5' does not support DAE problems ...

**Registering a custom algorithm:**

>>> registry.register(describe(MyStepper, {ProblemKind.ODE}, description="..."))
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple, Type

from desolve.errors import UnsupportedAlgorithmError
from desolve.numerical_integration.dae_steppers import DBDF2Stepper, DImplicitEulerStepper
from desolve.numerical_integration.explicit_rk import BS3Stepper, DP5Stepper
from desolve.numerical_integration.fixed_step_steppers import ExplicitEulerStepper, RK4Stepper
from desolve.numerical_integration.integrator_base import StepMode, StepperBase
from desolve.numerical_integration.rosenbrock import Rosenbrock23Stepper
from desolve.numerical_integration.stochastic.sde_steppers import EMStepper, LambaEMStepper
from desolve.problems.problem_spec import ProblemKind

DEFAULT_NAMES = ("default", "auto")


@dataclass(frozen=True)
class AlgorithmDescriptor:
    """
    Static description of a registered algorithm.

    Attributes
    ----------
    name : str
        Canonical name
    kinds : FrozenSet[ProblemKind]
        Problem kinds the algorithm can solve
    stepper_class : Type[StepperBase]
        Instantiated once per resolve
    adaptive : bool
        Whether the step size is error-controlled
    order : float
        Convergence order
    adaptive_order : Optional[float]
        Order used by the step-size controller (defaults to the stepper's
        ``adaptive_order``, then ``order``)
    requires_jacobian : bool
        Needs df/du (finite differences are used)
    stiff : bool
        Suitable for stiff problems
    description : str
        One-line summary
    aliases : Tuple[str, ...]
        Alternative names
    """

    name: str
    kinds: FrozenSet[ProblemKind]
    stepper_class: Type[StepperBase]
    adaptive: bool
    order: float
    adaptive_order: Optional[float] = None
    requires_jacobian: bool = False
    stiff: bool = False
    description: str = ""
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "kinds", frozenset(self.kinds))
        if not self.kinds:
            raise ValueError(f"Algorithm {self.name!r} must support at least one problem kind")
        class_adaptive = self.stepper_class.step_mode is StepMode.ADAPTIVE
        if self.adaptive != class_adaptive:
            raise ValueError(
                f"Algorithm {self.name!r}: adaptive={self.adaptive} disagrees with "
                f"{self.stepper_class.__name__}.step_mode={self.stepper_class.step_mode.value!r}"
            )
        if self.adaptive_order is None:
            default = self.stepper_class.adaptive_order
            object.__setattr__(self, "adaptive_order", self.order if default is None else default)

    def supports(self, kind: ProblemKind) -> bool:
        return kind in self.kinds

    def create_stepper(self) -> StepperBase:
        return self.stepper_class()


def describe(
    stepper_class: Type[StepperBase],
    kinds: Iterable[ProblemKind],
    requires_jacobian: bool = False,
    stiff: bool = False,
    description: str = "",
    aliases: Iterable[str] = (),
) -> AlgorithmDescriptor:
    """
    Build a descriptor from a stepper's class attributes.

    Examples
    --------
    >>> describe(DP5Stepper, {ProblemKind.ODE, ProblemKind.DDE}).order
    5
    """
    return AlgorithmDescriptor(
        name=stepper_class.name,
        kinds=frozenset(kinds),
        stepper_class=stepper_class,
        adaptive=stepper_class.step_mode is StepMode.ADAPTIVE,
        order=stepper_class.order,
        adaptive_order=stepper_class.adaptive_order,
        requires_jacobian=requires_jacobian,
        stiff=stiff,
        description=description or (stepper_class.__doc__ or "").strip().split("\n")[0],
        aliases=tuple(aliases),
    )


class AlgorithmRegistry:
    """
    Injectable mapping from algorithm names to descriptors.

    Examples
    --------
    >>> registry = AlgorithmRegistry()
    >>> registry.register(describe(DP5Stepper, {ProblemKind.ODE}))
    >>> "dp5" in registry
    True
    >>> registry.list_algorithms(ProblemKind.ODE)
    ['DP5']
    """

    def __init__(self, descriptors: Iterable[AlgorithmDescriptor] = ()):
        self._descriptors: "OrderedDict[str, AlgorithmDescriptor]" = OrderedDict()
        self._lookup: Dict[str, str] = {}
        for desc in descriptors:
            self.register(desc)

    # ========================================================================
    # Registration
    # ========================================================================

    def register(self, descriptor: AlgorithmDescriptor, replace: bool = False) -> None:
        """
        Add an algorithm.

        Raises
        ------
        ValueError
            If the name or an alias is already taken and replace=False
        """
        if not isinstance(descriptor, AlgorithmDescriptor):
            raise TypeError(
                f"descriptor must be AlgorithmDescriptor, got {type(descriptor).__name__}"
            )
        keys = [descriptor.name.lower()] + [alias.lower() for alias in descriptor.aliases]
        if not replace:
            taken = [key for key in keys if key in self._lookup]
            if taken:
                raise ValueError(
                    f"Algorithm name(s) {taken} already registered. Use replace=True to override."
                )
        else:
            self.unregister(descriptor.name, missing_ok=True)

        self._descriptors[descriptor.name] = descriptor
        for key in keys:
            self._lookup[key] = descriptor.name

    def unregister(self, name: str, missing_ok: bool = False) -> None:
        canonical = self._lookup.get(name.lower())
        if canonical is None:
            if missing_ok:
                return
            raise UnsupportedAlgorithmError(f"Unknown algorithm {name!r}")
        del self._descriptors[canonical]
        self._lookup = {k: v for k, v in self._lookup.items() if v != canonical}

    # ========================================================================
    # Lookup
    # ========================================================================

    def normalize_name(self, name: str) -> str:
        """
        Canonical name for a name or alias (case-insensitive).

        Raises
        ------
        UnsupportedAlgorithmError
            Unknown name
        """
        canonical = self._lookup.get(str(name).lower())
        if canonical is None:
            raise UnsupportedAlgorithmError(
                f"Unknown algorithm {name!r}. Choose from: {list(self._descriptors.keys())}"
            )
        return canonical

    def get_descriptor(self, name: str) -> AlgorithmDescriptor:
        return self._descriptors[self.normalize_name(name)]

    def default_for(self, kind: ProblemKind) -> AlgorithmDescriptor:
        """
        Highest-order adaptive algorithm supporting ``kind``.

        Falls back to the highest-order non-adaptive one; ties are broken by
        registration order.
        """
        candidates = [d for d in self._descriptors.values() if d.supports(kind)]
        if not candidates:
            raise UnsupportedAlgorithmError(
                f"No registered algorithm supports {kind.value.upper()} problems"
            )
        adaptive = [d for d in candidates if d.adaptive]
        pool = adaptive or candidates
        best = pool[0]
        for desc in pool[1:]:
            if desc.order > best.order:
                best = desc
        return best

    def resolve(
        self, kind: ProblemKind, name: Optional[str] = None
    ) -> Tuple[AlgorithmDescriptor, StepperBase]:
        """
        Select an algorithm for a problem kind.

        Parameters
        ----------
        kind : ProblemKind
            Kind of the problem being solved
        name : Optional[str]
            Algorithm name, alias, or None/'default'

        Returns
        -------
        Tuple[AlgorithmDescriptor, StepperBase]
            Descriptor and a fresh stepper instance

        Raises
        ------
        UnsupportedAlgorithmError
            Unknown name or kind mismatch
        """
        if name is None or str(name).lower() in DEFAULT_NAMES:
            desc = self.default_for(kind)
        else:
            desc = self.get_descriptor(name)
            if not desc.supports(kind):
                supported = sorted(k.value.upper() for k in desc.kinds)
                raise UnsupportedAlgorithmError(
                    f"Algorithm {desc.name!r} does not support {kind.value.upper()} problems "
                    f"(supports {supported}). Algorithms for {kind.value.upper()}: "
                    f"{self.list_algorithms(kind)}"
                )
        return desc, desc.create_stepper()

    def list_algorithms(self, kind: Optional[ProblemKind] = None) -> List[str]:
        """Registered names, optionally filtered by problem kind."""
        return [
            name
            for name, desc in self._descriptors.items()
            if kind is None or desc.supports(kind)
        ]

    def __contains__(self, name) -> bool:
        return str(name).lower() in self._lookup

    def __iter__(self) -> Iterator[AlgorithmDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    def __repr__(self) -> str:
        return f"AlgorithmRegistry({list(self._descriptors.keys())})"


# ============================================================================
# Built-in Algorithms
# ============================================================================

_ODE_DDE = frozenset({ProblemKind.ODE, ProblemKind.DDE})


def builtin_descriptors() -> List[AlgorithmDescriptor]:
    """Descriptors of the algorithms shipped with desolve, in registration order."""
    return [
        describe(ExplicitEulerStepper, _ODE_DDE, aliases=("explicit_euler", "forward_euler")),
        describe(RK4Stepper, _ODE_DDE, aliases=("classic_rk4",)),
        describe(BS3Stepper, _ODE_DDE, aliases=("rk23", "bosh3")),
        describe(DP5Stepper, _ODE_DDE, aliases=("rk45", "dopri5", "dormand_prince")),
        describe(
            Rosenbrock23Stepper,
            {ProblemKind.ODE},
            requires_jacobian=True,
            stiff=True,
            aliases=("ode23s", "rosenbrock"),
        ),
        describe(
            DImplicitEulerStepper,
            {ProblemKind.DAE},
            requires_jacobian=True,
            stiff=True,
            aliases=("implicit_euler", "dae_implicit_euler"),
        ),
        describe(
            DBDF2Stepper,
            {ProblemKind.DAE},
            requires_jacobian=True,
            stiff=True,
            aliases=("bdf2", "dae_bdf2"),
        ),
        describe(EMStepper, {ProblemKind.SDE}, aliases=("euler_maruyama",)),
        describe(LambaEMStepper, {ProblemKind.SDE}, aliases=("lamba_em", "adaptive_em")),
    ]


def default_registry() -> AlgorithmRegistry:
    """
    Fresh registry with the built-in algorithms.

    Each call returns an independent object; registering into it does not
    affect other registries.
    """
    return AlgorithmRegistry(builtin_descriptors())


__all__ = [
    "AlgorithmDescriptor",
    "AlgorithmRegistry",
    "describe",
    "builtin_descriptors",
    "default_registry",
    "DEFAULT_NAMES",
]
