"""Unit tests for linearizing trees and generating evaluators."""

import pytest
import numpy as np
import jax
import jax.numpy as jnp

from scipy import special

from jax_treevar import UnsupportedOperation, airy, sin, cos, exp
from jax_treevar.tree import (
    VectorField,
    compile_program,
    compile_scalar,
    fd_jacobian,
    linearize,
    placeholders,
)
from jax_treevar.tree.printer import Register, StateRef, TimeRef, ConstRef


@pytest.fixture
def two_unknowns():
    t, (u, v) = placeholders(2, (0.0, 1.0))
    return t, u, v


class TestLinearize:

    def test_shared_subtree_emitted_once(self, two_unknowns):
        _, u, v = two_unknowns
        shared = sin(u * v)
        a = shared + shared
        b = cos(shared)
        program = linearize(u.arena, [a.handle, b.handle])

        ops = [ins.op for ins in program.instructions]
        assert ops == ['times', 'sin', 'plus', 'cos']
        assert program.n_registers == 4
        assert program.outputs == (Register(2), Register(3))

    def test_operands_left_first(self, two_unknowns):
        t, u, v = two_unknowns
        expr = (u - 2.0) * v + t
        program = linearize(u.arena, [expr.handle])

        minus, times, plus = program.instructions
        assert minus.args[0] == StateRef(0)
        assert isinstance(minus.args[1], ConstRef)
        assert times.args == (Register(0), StateRef(1))
        assert plus.args == (Register(1), TimeRef())
        assert program.symbols.slots == (0, 1)
        assert program.symbols.uses_time
        assert [obj for _, obj in program.symbols.constants] == [2.0]

    def test_leaf_slots(self, two_unknowns):
        _, u, v = two_unknowns
        program = linearize(u.arena, [(u + v).handle], leaf_slots={0: 3, 1: 5})
        assert program.instructions[0].args == (StateRef(3), StateRef(5))

    def test_derivative_cannot_be_lowered(self, two_unknowns):
        _, u, _ = two_unknowns
        with pytest.raises(UnsupportedOperation):
            linearize(u.arena, [(u.diff() + u).handle])

    def test_deep_tree(self, two_unknowns):
        _, u, _ = two_unknowns
        expr = u
        for _ in range(5000):
            expr = expr + 1.0
        program = linearize(u.arena, [expr.handle])
        assert program.n_registers == 5000


class TestVectorField:

    def test_round_trip_random_states(self, two_unknowns):
        """Generated code agrees with direct evaluation at 100 random states."""
        t, u, v = two_unknowns
        f1 = v * exp(-t) + sin(u) ** 2
        f2 = (u - v) / (2.0 + cos(u * v)) - 3.0
        fun = compile_program(linearize(u.arena, [f1.handle, f2.handle]), 2)

        key = jax.random.PRNGKey(0)
        states = jax.random.normal(key, (100, 2))
        times = jnp.linspace(0.0, 1.0, 100)

        x0, x1 = states[:, 0], states[:, 1]
        expected = jnp.stack([
            x1 * jnp.exp(-times) + jnp.sin(x0) ** 2,
            (x0 - x1) / (2.0 + jnp.cos(x0 * x1)) - 3.0,
        ], axis=-1)

        batched = fun(times, states)
        assert batched.shape == (100, 2)
        assert batched.dtype == jnp.float64
        assert jnp.allclose(batched, expected, rtol=1e-12, atol=1e-14)

        for k in range(100):
            assert jnp.allclose(fun(times[k], states[k]), expected[k], rtol=1e-12, atol=1e-14)

    def test_double_precision(self, two_unknowns):
        _, u, _ = two_unknowns
        fun = compile_program(linearize(u.arena, [(sin(u) + 1e-10).handle, u.handle]), 2)
        out = fun(0.0, np.array([0.1, 0.2], dtype=np.float64))
        assert out.dtype == jnp.float64
        assert np.allclose(np.asarray(out), [np.sin(0.1) + 1e-10, 0.1], rtol=1e-14, atol=0.0)

    def test_airy(self, two_unknowns):
        _, u, v = two_unknowns
        fun = compile_program(linearize(u.arena, [airy(u).handle, (v * airy(u)).handle]), 2)
        x = jnp.array([[0.0, 2.0], [1.0, 1.0], [-2.0, 0.5]])
        ai = special.airy(np.array([0.0, 1.0, -2.0]))[0]
        expected = np.stack([ai, np.array([2.0, 1.0, 0.5]) * ai], axis=-1)
        assert np.allclose(np.asarray(fun(0.0, x)), expected, rtol=1e-12)
        assert np.allclose(np.asarray(jax.jit(fun)(0.0, x[1])), expected[1], rtol=1e-12)

    def test_constant_outputs_broadcast(self, two_unknowns):
        t, u, v = two_unknowns
        program = linearize(u.arena, [v.handle, (t * 0.0 + 1.0).handle])
        fun = compile_program(program, 2)
        out = fun(0.5, jnp.ones((7, 2)))
        assert out.shape == (7, 2)
        assert jnp.allclose(out[:, 1], 1.0)

    def test_external_function_of_t(self, two_unknowns):
        _, u, v = two_unknowns

        def damping(t):
            return jnp.cos(t)

        expr = damping * u + v
        fun = compile_program(linearize(u.arena, [expr.handle, u.handle]), 2)
        x = jnp.array([2.0, 1.0])
        assert jnp.allclose(fun(0.3, x), jnp.array([2.0 * jnp.cos(0.3) + 1.0, 2.0]))

    def test_source_has_one_statement_per_instruction(self, two_unknowns):
        _, u, v = two_unknowns
        program = linearize(u.arena, [v.handle, (-sin(u)).handle])
        fun = VectorField(program, 2)
        assert "r0 = sin(x[..., 0])" in fun.source
        assert "r1 = uminus(r0)" in fun.source

    def test_jit_compatible(self, two_unknowns):
        _, u, v = two_unknowns
        fun = compile_program(linearize(u.arena, [v.handle, (-sin(u)).handle]), 2)
        x = jnp.array([0.5, -0.25])
        assert jnp.allclose(jax.jit(fun)(0.0, x), fun(0.0, x))

    def test_state_size_checks(self, two_unknowns):
        _, u, v = two_unknowns
        program = linearize(u.arena, [v.handle, u.handle])
        with pytest.raises(ValueError):
            VectorField(program, 3)
        fun = VectorField(program, 2)
        with pytest.raises(ValueError):
            fun(0.0, jnp.ones(3))


class TestScalarAndJacobian:

    def test_compile_scalar_of_t(self, two_unknowns):
        t, u, _ = two_unknowns
        expr = 1.0 + t ** 2
        fn = compile_scalar(linearize(u.arena, [expr.handle]))
        ts = jnp.linspace(0.0, 1.0, 11)
        assert jnp.allclose(fn(ts), 1.0 + ts ** 2)
        assert fn(ts).dtype == jnp.float64
        assert fn(0.5).shape == ()

    def test_fd_jacobian(self, two_unknowns):
        _, u, v = two_unknowns
        fun = compile_program(linearize(u.arena, [v.handle, (-sin(u)).handle]), 2)
        y = jnp.array([0.3, -0.7])
        expected = jnp.array([[0.0, 1.0], [-jnp.cos(0.3), 0.0]])
        assert jnp.allclose(fd_jacobian(fun, 0.0, y), expected, atol=1e-3)
        assert jnp.allclose(fun.jacobian(0.0, y), expected, atol=1e-3)

    def test_fd_jacobian_plain_function(self):
        fun = lambda t, y, a: a * y ** 2
        y = jnp.array([1.0, 2.0, 3.0])
        J = fd_jacobian(fun, 0.0, y, args=(0.5,))
        assert jnp.allclose(J, jnp.diag(y), atol=1e-2)
        assert np.count_nonzero(np.asarray(J) - np.diag(np.diag(np.asarray(J)))) == 0
