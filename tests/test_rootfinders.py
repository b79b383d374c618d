"""Unit tests for the root-finding algorithms."""

import logging

import pytest
import jax
import jax.numpy as jnp

from jax_treevar.integrate.rootfinders import NewtonRaphson, RootFinderProtocol
from jax_treevar.integrate.linsolvers import DirectDense
from jax_treevar.tree import fd_jacobian


@pytest.fixture
def simple_nonlinear_system():
    """
    Non-linear system: 2y (sqrt(2) - y) = 0

    This has roots at y=sqrt(2) and y=0.

    Initial guess: y = 1
    Expected solution: y = sqrt(2).
    """
    R = lambda y: 2.0 * y * (jnp.sqrt(2.0) - y)  # Residual
    jac = lambda y: jnp.diag(2.0 * (jnp.sqrt(2.0) - 2.0 * y))  # Jacobian
    y0 = jnp.ones((4,))  # Initial guess
    soln = jnp.full_like(y0, jnp.sqrt(2.0))  # Solution
    return R, jac, y0, soln


class TestRootFinders:

    def test_protocol(self):
        assert isinstance(NewtonRaphson(), RootFinderProtocol)

    def test_newton_raphson_dense_matrix(self, simple_nonlinear_system):
        root_finder = NewtonRaphson(tol=1e-6, maxiter=50, linsolver=DirectDense())
        residual, jac, y0, expected = simple_nonlinear_system
        soln = root_finder(residual, y0, jac_fn=jac)
        assert jnp.allclose(soln, expected, atol=1e-5, rtol=1e-5)

    def test_newton_raphson_fd_jacobian(self, simple_nonlinear_system):
        root_finder = NewtonRaphson(tol=1e-6, maxiter=50)
        residual, _, y0, expected = simple_nonlinear_system
        fun = lambda t, y: residual(y)
        soln = root_finder(residual, y0, jac_fn=lambda y: fd_jacobian(fun, 0.0, y))
        assert jnp.allclose(soln, expected, atol=1e-5, rtol=1e-5)

    def test_missing_jacobian(self, simple_nonlinear_system):
        residual, _, y0, _ = simple_nonlinear_system
        with pytest.raises(ValueError):
            NewtonRaphson()(residual, y0, jac_fn=None)

    def test_not_converged_warning(self, simple_nonlinear_system, caplog):
        root_finder = NewtonRaphson(tol=1e-12, maxiter=1)
        residual, jac, y0, _ = simple_nonlinear_system
        with caplog.at_level(logging.WARNING, logger="jax_treevar.integrate.rootfinders"):
            root_finder(residual, y0, jac_fn=jac)
            jax.effects_barrier()
        assert "did not converge" in caplog.text


class TestLinearSolvers:

    def test_direct_dense(self):
        A = jnp.array([[4.0, 1.0], [2.0, 3.0]])
        b = jnp.array([1.0, 2.0])
        x = DirectDense()(A, b)
        assert jnp.allclose(A @ x, b, atol=1e-6)

    def test_direct_dense_rejects_operators(self):
        with pytest.raises(TypeError):
            DirectDense()(lambda v: v, jnp.ones(2))
