"""Unit tests for tracing differential operators into trees."""

import pytest
import numpy as np
import jax.numpy as jnp

from jax_treevar import (
    ConfigMismatch,
    UnsupportedOperation,
    Domain,
    TreeVar,
    diff,
    sin,
    cos,
    exp,
    sind,
    airy,
)
from jax_treevar.tree import placeholders, to_infix, format_tree, to_prefix


@pytest.fixture
def scalar_problem():
    """Independent variable and one unknown on [0, 10]."""
    t, (u,) = placeholders(1, (0.0, 10.0))
    return t, u


@pytest.fixture
def coupled_problem():
    """Independent variable and two unknowns on [0, 1]."""
    t, (u, v) = placeholders(2, (0.0, 1.0))
    return t, u, v


class TestNodeInfo:

    def test_pendulum_metadata(self, scalar_problem):
        _, u = scalar_problem
        expr = u.diff(2) + sin(u)
        assert expr.diff_order == (2,)
        assert expr.height == 2
        assert expr.mask == 0b1

    def test_unary_keeps_diff_order(self, scalar_problem):
        _, u = scalar_problem
        expr = exp(u.diff(3))
        assert expr.diff_order == (3,)
        assert expr.height == 2

    def test_coupled_metadata(self, coupled_problem):
        _, u, v = coupled_problem
        expr = u * v.diff() + u.diff(2)
        assert expr.diff_order == (2, 1)
        assert expr.mask == 0b11
        assert expr.variables == (0, 1)

    def test_independent_variable_has_no_dependencies(self, scalar_problem):
        t, u = scalar_problem
        coeff = sin(t)
        assert coeff.mask == 0
        assert coeff.diff_order == (0,)
        assert (coeff * u.diff()).diff_order == (1,)

    def test_diff_orders_add(self, scalar_problem):
        _, u = scalar_problem
        assert u.diff().diff(2).diff_order == (3,)
        assert diff(u, 2).diff_order == (2,)

    def test_diff_zero_is_identity(self, scalar_problem):
        _, u = scalar_problem
        assert u.diff(0) is u

    def test_coefficient_recorded(self, scalar_problem):
        _, u = scalar_problem
        expr = 3.0 * u.diff(2)
        assert expr.info.coeff is not None
        assert expr.arena.get_value(expr.info.coeff) == 3.0

        halved = u.diff() / 2.0
        assert halved.arena.get_value(halved.info.coeff) == 0.5

        # Unary nodes inherit the coefficient of their child
        assert (-expr).info.coeff == expr.info.coeff

    def test_shared_subexpressions(self, scalar_problem):
        _, u = scalar_problem
        a = sin(u) + cos(u)
        b = sin(u) + cos(u)
        assert a.handle == b.handle


class TestOperators:

    def test_reflected_arithmetic(self, scalar_problem):
        _, u = scalar_problem
        assert to_infix(u.arena, (1 - u).handle) == "1 - u0"
        assert to_infix(u.arena, (2 / u).handle) == "2 / u0"
        assert to_infix(u.arena, (u ** 2).handle) == "u0 ^ 2"

    def test_method_and_function_forms_agree(self, scalar_problem):
        _, u = scalar_problem
        assert u.sin().handle == sin(u).handle

    def test_numpy_ufuncs(self, scalar_problem):
        _, u = scalar_problem
        assert np.sin(u).handle == sin(u).handle
        scaled = np.float64(2.0) * u
        assert isinstance(scaled, TreeVar)
        assert to_infix(u.arena, scaled.handle) == "2 * u0"

    def test_elementary_functions_on_numbers(self):
        assert jnp.allclose(sind(90.0), 1.0)
        assert jnp.allclose(airy(0.0), 0.3550280538878172, rtol=1e-14)
        assert jnp.allclose(sin(0.5), jnp.sin(0.5))

    def test_callable_coefficient(self, scalar_problem):
        _, u = scalar_problem

        def f(t):
            return 1.0 + t

        expr = f * u.diff()
        assert expr.diff_order == (1,)
        assert to_infix(u.arena, expr.handle) == "f * diff(u0)"


class TestUnsupported:

    @pytest.mark.parametrize("operation", [
        lambda u: u < 1.0,
        lambda u: u >= u,
        lambda u: u == 0.0,
        lambda u: u != u,
        lambda u: 1.0 == u,
        lambda u: bool(u),
        lambda u: float(u),
        lambda u: u[0],
        lambda u: u // 2,
        lambda u: u % 2,
        lambda u: u + "one",
        lambda u: u + np.ones(3),
        lambda u: np.arctan2(u, 1.0),
    ])
    def test_no_tree_rule(self, scalar_problem, operation):
        _, u = scalar_problem
        with pytest.raises(UnsupportedOperation):
            operation(u)

    @pytest.mark.parametrize("k", [-1, 1.5, True])
    def test_invalid_derivative_order(self, scalar_problem, k):
        _, u = scalar_problem
        with pytest.raises(UnsupportedOperation):
            u.diff(k)

    def test_error_names_operation_and_variable(self, coupled_problem):
        _, _, v = coupled_problem
        with pytest.raises(UnsupportedOperation) as excinfo:
            v > 0.0
        assert excinfo.value.operation == 'gt'
        assert excinfo.value.variable == 1

    def test_diff_of_untraced_value(self):
        with pytest.raises(UnsupportedOperation):
            diff(1.0)


class TestCombining:

    def test_registry_size_mismatch(self):
        _, (u,) = placeholders(1, (0.0, 1.0))
        _, (a, _) = placeholders(2, (0.0, 1.0))
        with pytest.raises(ConfigMismatch):
            u + a

    def test_domain_endpoint_mismatch(self):
        _, (u,) = placeholders(1, (0.0, 1.0))
        _, (w,) = placeholders(1, (0.0, 2.0))
        with pytest.raises(ConfigMismatch):
            u * w

    def test_trees_from_other_arena_are_adopted(self):
        _, (u,) = placeholders(1, (0.0, 1.0))
        _, (w,) = placeholders(1, (0.0, 0.5, 1.0))
        expr = u + sin(w.diff())
        assert expr.arena is u.arena
        assert expr.diff_order == (1,)
        assert expr.domain.breakpoints == (0.0, 0.5, 1.0)

    def test_value_domain_is_merged(self, scalar_problem):
        _, u = scalar_problem

        class Piecewise:
            domain = (0.0, 4.0, 10.0)

            def __call__(self, t):
                return jnp.where(t < 4.0, 1.0, 2.0)

        expr = Piecewise() * u.diff()
        assert expr.domain.breakpoints == (0.0, 4.0, 10.0)


class TestDomain:

    def test_create_sorts_and_deduplicates(self):
        domain = Domain.create([1.0, 0.0, 0.5, 1.0])
        assert domain.breakpoints == (0.0, 0.5, 1.0)
        assert domain.intervals == [(0.0, 0.5), (0.5, 1.0)]

    def test_union_keeps_endpoints(self):
        a = Domain.create((0.0, 0.3, 1.0))
        b = Domain.create((0.0, 0.7, 1.0))
        assert a.union(b).breakpoints == (0.0, 0.3, 0.7, 1.0)

    def test_invalid_domains(self):
        with pytest.raises(ValueError):
            Domain.create([1.0])
        with pytest.raises(ValueError):
            Domain((1.0, 0.0))

    def test_sample_includes_breakpoints(self):
        samples = Domain.create((0.0, 0.5, 1.0)).sample(5)
        for p in (0.0, 0.5, 1.0):
            assert np.any(np.isclose(samples, p))


class TestRenderings:

    def test_prefix(self, scalar_problem):
        _, u = scalar_problem
        expr = u.diff(2) + sin(u)
        assert to_prefix(u.arena, expr.handle) == [
            'plus', ['diff', 'u0', 2], ['sin', 'u0']
        ]

    def test_format_tree(self, scalar_problem):
        _, u = scalar_problem
        expr = u.diff(2) + sin(u)
        lines = format_tree(u.arena, expr.handle, names=['u']).splitlines()
        assert len(lines) == 5
        assert lines[0].startswith('plus  diffOrder=[2] height=2 ID=1')
        assert lines[1].strip().startswith('diff[2]')
        assert lines[-1].strip().startswith('u  diffOrder=[0] height=0')

    def test_repr(self, scalar_problem):
        _, u = scalar_problem
        assert repr(u.diff(2) + sin(u)) == "TreeVar(diff(u0, 2) + sin(u0))"
