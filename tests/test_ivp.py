"""Integration tests: trace, reduce and integrate initial- and final-value problems."""

import pytest
import numpy as np
import jax.numpy as jnp

from jax_treevar import (
    UnderOrOverDeterminedConditions,
    BackwardEuler,
    solve_ode,
    to_first_order,
    sin,
)
from jax_treevar.integrate import NewtonRaphson, solve_with_history


@pytest.fixture
def harmonic():
    """u'' + u = 0, u(0) = 1, u'(0) = 0; exact solution u = cos(t)."""
    op = lambda t, u: u.diff(2) + u
    lbc = lambda u: [u - 1, u.diff()]
    return op, lbc


class TestSolveODE:

    def test_harmonic_oscillator(self, harmonic):
        op, lbc = harmonic
        t_eval = np.linspace(0.0, 2 * np.pi, 21)
        t, y = solve_ode(op, (0.0, 2 * np.pi), lbc=lbc, step_size=1e-2, t_eval=t_eval)

        assert y.shape == (21, 2)
        assert jnp.allclose(t, t_eval, atol=1e-6)
        assert jnp.allclose(y[:, 0], jnp.cos(t), atol=1e-3)
        assert jnp.allclose(y[:, 1], -jnp.sin(t), atol=1e-3)

    def test_backward_euler(self, harmonic):
        op, lbc = harmonic
        method = BackwardEuler(root_finder=NewtonRaphson(tol=1e-6))
        t, y = solve_ode(op, (0.0, 1.0), lbc=lbc, method=method, step_size=1e-3)
        assert jnp.allclose(y[-1, 0], jnp.cos(1.0), atol=1e-2)

    def test_default_output_at_breakpoints(self, harmonic):
        op, lbc = harmonic
        t, y = solve_ode(op, (0.0, 1.0, 2.0), lbc=lbc, step_size=1e-2)
        assert jnp.allclose(t, jnp.array([0.0, 1.0, 2.0]))
        assert jnp.allclose(y[:, 0], jnp.cos(t), atol=1e-4)

    def test_coupled_first_order(self):
        op = lambda t, u, v: [u.diff() - v, v.diff() + u]
        t_eval = jnp.linspace(0.0, 3.0, 7)
        t, y = solve_ode(op, (0.0, 3.0), lbc=lambda u, v: [u - 1, v], t_eval=t_eval)

        system = to_first_order(op, (0.0, 3.0))
        assert jnp.allclose(y[:, system.index[0]], jnp.cos(t), atol=1e-4)
        assert jnp.allclose(y[:, system.index[1]], -jnp.sin(t), atol=1e-4)

    def test_right_hand_side(self):
        """u' = 2t, u(0) = 0 has the solution u = t^2."""
        t, y = solve_ode(
            lambda t, u: u.diff(), (0.0, 1.0), lbc=0.0, rhs=lambda t: 2.0 * t,
            t_eval=jnp.array([0.0, 0.5, 1.0]),
        )
        assert jnp.allclose(y[:, 0], t**2, atol=1e-5)

    def test_final_value_problem(self):
        """u' + u = 0 with u(1) = exp(-1); the solution is exp(-t)."""
        t, y = solve_ode(
            lambda t, u: u.diff() + u, (0.0, 1.0),
            rbc=lambda u: u - float(np.exp(-1.0)),
            t_eval=jnp.array([0.0, 0.25, 0.5, 1.0]),
        )
        assert jnp.all(jnp.diff(t) > 0)
        assert jnp.allclose(t, jnp.array([0.0, 0.25, 0.5, 1.0]), atol=1e-6)
        assert jnp.allclose(y[:, 0], jnp.exp(-t), atol=1e-4)

    def test_final_value_breakpoints(self, harmonic):
        op, _ = harmonic
        t, y = solve_ode(
            op, (0.0, 0.5, 1.0), rbc=lambda u: [u - np.cos(1.0), u.diff() + np.sin(1.0)]
        )
        assert jnp.allclose(t, jnp.array([0.0, 0.5, 1.0]), atol=1e-6)
        assert jnp.allclose(y[:, 0], jnp.cos(t), atol=1e-4)

    def test_piecewise_coefficient(self):
        """u' + c(t) u = 0 with c jumping from 1 to 2 at the breakpoint t = 0.5."""

        class Rate:
            domain = (0.0, 0.5, 1.0)

            def __call__(self, t):
                return jnp.where(t < 0.5, 1.0, 2.0)

        t, y = solve_ode(lambda t, u: u.diff() + Rate() * u, (0.0, 1.0), lbc=1.0, step_size=1e-3)
        assert jnp.allclose(t, jnp.array([0.0, 0.5, 1.0]))
        assert jnp.allclose(y[1, 0], jnp.exp(-0.5), atol=1e-3)
        assert jnp.allclose(y[2, 0], jnp.exp(-1.5), atol=1e-3)

    def test_pendulum_energy(self):
        """The pendulum conserves E = u'^2 / 2 - cos(u)."""
        t, y = solve_ode(
            lambda t, u: u.diff(2) + sin(u), (0.0, 10.0),
            lbc=lambda u: [u - 1, u.diff()],
            t_eval=jnp.linspace(0.0, 10.0, 11),
        )
        energy = 0.5 * y[:, 1] ** 2 - jnp.cos(y[:, 0])
        assert jnp.allclose(energy, energy[0], atol=1e-4)

    def test_matches_solve_with_history(self, harmonic):
        op, lbc = harmonic
        system = to_first_order(op, (0.0, 1.0), lbc=lbc)
        t_eval = jnp.array([0.0, 0.5, 1.0])
        _, expected = solve_with_history(
            system.fun, (0.0, 1.0), system.y0, BackwardEuler(), step_size=0.1, t_eval=t_eval
        )
        _, y = solve_ode(op, (0.0, 1.0), lbc=lbc, method=BackwardEuler(), step_size=0.1, t_eval=t_eval)
        assert jnp.allclose(y, expected, atol=1e-6)

    def test_requires_conditions(self, harmonic):
        op, _ = harmonic
        with pytest.raises(UnderOrOverDeterminedConditions):
            solve_ode(op, (0.0, 1.0))

    def test_t_eval_outside_domain(self, harmonic):
        op, lbc = harmonic
        with pytest.raises(ValueError):
            solve_ode(op, (0.0, 1.0), lbc=lbc, t_eval=jnp.array([0.5, 2.0]))
