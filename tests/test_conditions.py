"""Unit tests for sorting conditions onto state slots."""

import pytest
import numpy as np
import jax.numpy as jnp

from jax_treevar import (
    UnderOrOverDeterminedConditions,
    UnsupportedOperation,
    to_first_order,
    exp,
    sin,
)
from jax_treevar.reduction import sort_conditions
from jax_treevar.reduction.splitter import allocate_slots
from jax_treevar.tree import Registry, placeholders


@pytest.fixture
def pendulum():
    """u'' + sin(u) = 0 on [0, 10]."""
    return lambda t, u: u.diff(2) + sin(u)


class TestSortConditions:

    def test_initial_value_and_slope(self, pendulum):
        """u(0) = 1 fixes slot 0, u'(0) = 0 fixes slot 1."""
        system = to_first_order(pendulum, (0.0, 10.0), lbc=lambda u: [u - 1, u.diff()])
        conditions = system.conditions
        assert conditions.permutation == (0, 1)
        assert [c.slot for c in conditions] == [0, 1]
        assert [(c.var, c.order) for c in conditions] == [(0, 0), (0, 1)]
        assert conditions.location == 0.0
        assert not system.final_value
        assert jnp.allclose(system.y0, jnp.array([1.0, 0.0]), atol=1e-5)

    def test_reordered(self, pendulum):
        system = to_first_order(pendulum, (0.0, 10.0), lbc=lambda u: [u.diff(), u - 1])
        assert system.conditions.permutation == (1, 0)
        assert jnp.allclose(system.y0, jnp.array([1.0, 0.0]), atol=1e-5)

    def test_mixed_condition_falls_back(self, pendulum):
        """u' + u = 1 takes the slope slot once u = 0 claims the value slot."""
        system = to_first_order(
            pendulum, (0.0, 10.0), lbc=lambda u: [u.diff() + u - 1, u]
        )
        assert system.conditions.permutation == (1, 0)
        assert jnp.allclose(system.y0, jnp.array([0.0, 1.0]), atol=1e-5)

    def test_augmenting_path(self):
        """The first condition gives up its preferred slot to the second."""
        t, (u,) = placeholders(1, (0.0, 1.0))
        registry = Registry((2,))
        slots = allocate_slots(registry)
        roots = [(u + u.diff()).handle, u.diff().handle]
        conditions = sort_conditions(u.arena, roots, registry, slots, 0.0)
        assert conditions.permutation == (0, 1)
        assert [c.slot for c in conditions] == [0, 1]

    def test_nonlinear_condition(self, pendulum):
        system = to_first_order(
            pendulum, (0.0, 10.0), lbc=lambda u: [exp(u) - 2, u.diff()]
        )
        assert jnp.allclose(system.y0, jnp.array([np.log(2.0), 0.0]), atol=1e-5)
        assert system.y0.dtype == jnp.float64

    def test_numeric_conditions(self, pendulum):
        system = to_first_order(pendulum, (0.0, 10.0), lbc=[0.5, -1.0])
        assert jnp.allclose(system.y0, jnp.array([0.5, -1.0]), atol=1e-5)

    def test_final_conditions(self, pendulum):
        system = to_first_order(pendulum, (0.0, 10.0), rbc=lambda u: [u, u.diff() - 2])
        assert system.final_value
        assert system.conditions.location == 10.0
        assert system.conditions.endpoint == 'right'
        assert jnp.allclose(system.y0, jnp.array([0.0, 2.0]), atol=1e-5)

    def test_coupled_system(self):
        op = lambda x, u, v: [u.diff(2) + v - 1, u + v.diff() - x]
        system = to_first_order(op, (0.0, 1.0), lbc=lambda u, v: [v - 2, u.diff(), u - 1])
        assert system.conditions.permutation == (2, 1, 0)
        assert jnp.allclose(system.y0, jnp.array([1.0, 0.0, 2.0]), atol=1e-5)

    def test_no_conditions(self, pendulum):
        system = to_first_order(pendulum, (0.0, 10.0))
        assert system.conditions is None
        assert system.y0 is None


class TestConditionErrors:

    def test_too_few(self, pendulum):
        with pytest.raises(UnderOrOverDeterminedConditions) as excinfo:
            to_first_order(pendulum, (0.0, 10.0), lbc=lambda u: u - 1)
        assert excinfo.value.variable == 0
        assert excinfo.value.order == 1

    def test_too_many(self, pendulum):
        with pytest.raises(UnderOrOverDeterminedConditions) as excinfo:
            to_first_order(
                pendulum, (0.0, 10.0), lbc=lambda u: [u - 1, u.diff(), u + 1]
            )
        assert excinfo.value.condition == 2
        assert excinfo.value.variable == 0
        assert excinfo.value.order == 0
        assert "condition 2 fixes no new slot" in str(excinfo.value)

    def test_too_many_names_highest_term(self, pendulum):
        with pytest.raises(UnderOrOverDeterminedConditions) as excinfo:
            to_first_order(
                pendulum, (0.0, 10.0), lbc=lambda u: [u - 1, u.diff(), u.diff() + u]
            )
        assert excinfo.value.condition == 2
        assert excinfo.value.order == 1

    def test_slot_fixed_twice(self, pendulum):
        with pytest.raises(UnderOrOverDeterminedConditions) as excinfo:
            to_first_order(pendulum, (0.0, 10.0), lbc=lambda u: [u - 1, 2 * u])
        assert excinfo.value.order == 1

    def test_numeric_count(self, pendulum):
        with pytest.raises(UnderOrOverDeterminedConditions):
            to_first_order(pendulum, (0.0, 10.0), lbc=[1.0])

    def test_derivative_outside_state(self, pendulum):
        with pytest.raises(UnsupportedOperation):
            to_first_order(pendulum, (0.0, 10.0), lbc=lambda u: [u.diff(2), u])

    def test_both_endpoints(self, pendulum):
        with pytest.raises(UnsupportedOperation):
            to_first_order(pendulum, (0.0, 10.0), lbc=lambda u: u, rbc=lambda u: u)
