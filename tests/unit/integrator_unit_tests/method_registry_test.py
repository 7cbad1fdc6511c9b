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
Unit Tests for the Algorithm Registry
=====================================

Tests cover:
- Built-in algorithms and their descriptors
- Name normalization (case, aliases)
- Default algorithm per problem kind
- Kind compatibility checking
- Registering custom algorithms into isolated registries
"""

import pytest

from desolve.errors import UnsupportedAlgorithmError
from desolve.numerical_integration.explicit_rk import DP5Stepper
from desolve.numerical_integration.fixed_step_steppers import ExplicitEulerStepper
from desolve.numerical_integration.method_registry import (
    AlgorithmDescriptor,
    AlgorithmRegistry,
    default_registry,
    describe,
)
from desolve.problems.problem_spec import ProblemKind


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def registry():
    return default_registry()


class HalfStepEuler(ExplicitEulerStepper):
    """Euler variant registered under a custom name."""

    name = "HalfStepEuler"


# ============================================================================
# Test Class 1: Built-in Algorithms
# ============================================================================


class TestBuiltins:
    """Test the contents of default_registry()."""

    def test_all_registered(self, registry):
        assert registry.list_algorithms() == [
            "Euler",
            "RK4",
            "BS3",
            "DP5",
            "Rosenbrock23",
            "DImplicitEuler",
            "DBDF2",
            "EM",
            "LambaEM",
        ]

    def test_list_by_kind(self, registry):
        assert registry.list_algorithms(ProblemKind.DAE) == ["DImplicitEuler", "DBDF2"]
        assert registry.list_algorithms(ProblemKind.SDE) == ["EM", "LambaEM"]
        assert "Rosenbrock23" not in registry.list_algorithms(ProblemKind.DDE)

    def test_descriptor_fields(self, registry):
        desc = registry.get_descriptor("DP5")
        assert desc.adaptive
        assert desc.order == 5
        assert desc.adaptive_order == 4
        assert not desc.stiff

        rosen = registry.get_descriptor("Rosenbrock23")
        assert rosen.stiff and rosen.requires_jacobian

        assert not registry.get_descriptor("EM").adaptive

    def test_registries_are_independent(self, registry):
        other = default_registry()
        registry.unregister("Euler")
        assert "Euler" not in registry
        assert "Euler" in other
        assert len(other) == len(registry) + 1


# ============================================================================
# Test Class 2: Name Normalization
# ============================================================================


class TestNormalization:
    """Test case-insensitive names and aliases."""

    @pytest.mark.parametrize(
        "name,canonical",
        [
            ("dp5", "DP5"),
            ("DOPRI5", "DP5"),
            ("rk45", "DP5"),
            ("euler_maruyama", "EM"),
            ("ode23s", "Rosenbrock23"),
            ("bdf2", "DBDF2"),
            ("forward_euler", "Euler"),
        ],
    )
    def test_aliases(self, registry, name, canonical):
        assert registry.normalize_name(name) == canonical

    def test_unknown_name(self, registry):
        with pytest.raises(UnsupportedAlgorithmError, match="Unknown algorithm"):
            registry.normalize_name("Tsit5")

    def test_contains(self, registry):
        assert "lambaem" in registry
        assert "nope" not in registry


# ============================================================================
# Test Class 3: Resolution
# ============================================================================


class TestResolve:
    """Test resolve() defaults and compatibility checks."""

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (ProblemKind.ODE, "DP5"),
            (ProblemKind.DDE, "DP5"),
            (ProblemKind.DAE, "DBDF2"),
            (ProblemKind.SDE, "LambaEM"),
        ],
    )
    def test_defaults(self, registry, kind, expected):
        for name in (None, "default", "AUTO"):
            desc, _ = registry.resolve(kind, name)
            assert desc.name == expected

    def test_fresh_stepper_each_time(self, registry):
        _, a = registry.resolve(ProblemKind.ODE, "DP5")
        _, b = registry.resolve(ProblemKind.ODE, "DP5")
        assert isinstance(a, DP5Stepper)
        assert a is not b

    @pytest.mark.parametrize(
        "kind,name",
        [
            (ProblemKind.DAE, "DP5"),
            (ProblemKind.SDE, "RK4"),
            (ProblemKind.ODE, "EM"),
            (ProblemKind.DDE, "Rosenbrock23"),
            (ProblemKind.ODE, "DBDF2"),
        ],
    )
    def test_kind_mismatch(self, registry, kind, name):
        with pytest.raises(UnsupportedAlgorithmError, match="does not support"):
            registry.resolve(kind, name)

    def test_mismatch_message_lists_alternatives(self, registry):
        with pytest.raises(UnsupportedAlgorithmError) as exc_info:
            registry.resolve(ProblemKind.DAE, "BS3")
        assert "DBDF2" in str(exc_info.value)

    def test_empty_registry(self):
        with pytest.raises(UnsupportedAlgorithmError, match="No registered algorithm"):
            AlgorithmRegistry().resolve(ProblemKind.ODE)


# ============================================================================
# Test Class 4: Custom Algorithms
# ============================================================================


class TestRegistration:
    """Test register() and describe()."""

    def test_describe_reads_class_attributes(self):
        desc = describe(HalfStepEuler, {ProblemKind.ODE})
        assert desc.name == "HalfStepEuler"
        assert not desc.adaptive
        assert desc.order == 1
        assert desc.description == "Euler variant registered under a custom name."

    def test_register_and_resolve(self, registry):
        registry.register(describe(HalfStepEuler, {ProblemKind.ODE}, aliases=("hse",)))
        desc, stepper = registry.resolve(ProblemKind.ODE, "HSE")
        assert desc.name == "HalfStepEuler"
        assert isinstance(stepper, HalfStepEuler)

    def test_duplicate_name_rejected(self, registry):
        with pytest.raises(ValueError, match="already registered"):
            registry.register(describe(DP5Stepper, {ProblemKind.ODE}))

    def test_replace(self, registry):
        registry.register(describe(DP5Stepper, {ProblemKind.ODE}), replace=True)
        with pytest.raises(UnsupportedAlgorithmError):
            registry.resolve(ProblemKind.DDE, "DP5")
        # Old aliases are gone with the replaced descriptor
        assert "dopri5" not in registry

    def test_register_requires_descriptor(self, registry):
        with pytest.raises(TypeError):
            registry.register(DP5Stepper)

    def test_descriptor_needs_a_kind(self):
        with pytest.raises(ValueError, match="at least one problem kind"):
            AlgorithmDescriptor("X", frozenset(), ExplicitEulerStepper, False, 1)

    def test_descriptor_adaptivity_matches_stepper(self):
        with pytest.raises(ValueError, match="disagrees"):
            AlgorithmDescriptor("X", {ProblemKind.ODE}, ExplicitEulerStepper, True, 1)
        with pytest.raises(ValueError, match="disagrees"):
            AlgorithmDescriptor("Y", {ProblemKind.ODE}, DP5Stepper, False, 5)

    def test_adaptive_order_defaults_to_stepper(self):
        desc = AlgorithmDescriptor("Z", {ProblemKind.ODE}, DP5Stepper, True, 5)
        assert desc.adaptive_order == 4
        fixed = AlgorithmDescriptor("W", {ProblemKind.ODE}, ExplicitEulerStepper, False, 1)
        assert fixed.adaptive_order == 1

    def test_unregister_unknown(self, registry):
        with pytest.raises(UnsupportedAlgorithmError):
            registry.unregister("nope")
        registry.unregister("nope", missing_ok=True)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
