"""Newton-Raphson method for root finding."""

import logging
from typing import Optional

from flax import nnx
import jax
from jax import Array
import jax.numpy as jnp

from ..linsolvers import LinearSolverProtocol, DirectDense
from ..custom_types import ResidualFn, JacobianConstructor

logger = logging.getLogger(__name__)


def _warn_not_converged(iters, maxiter, residual_norm, tol):
    if iters >= maxiter and residual_norm > tol:
        logger.warning(
            "Newton-Raphson did not converge within %d iterations. "
            "Final residual norm: %.2e.",
            int(maxiter), float(residual_norm),
        )


class NewtonRaphson(nnx.Module):
    """
    Newton-Raphson root-finding algorithm.

    Iterative update: $y \\leftarrow y - J^{-1}(y) R(y)$

    Implements: RootFinderProtocol

    Attributes:
        tol: Convergence tolerance for residual norm
        maxiter: Maximum number of Newton-Raphson iterations
        linsolver: Linear solver for the Newton updates (default: DirectDense)
    """

    def __init__(
        self,
        tol: float = 1e-6,
        maxiter: int = 50,
        linsolver: Optional[LinearSolverProtocol] = None,
    ):
        self.tol = tol
        self.maxiter = maxiter
        self.linsolver = linsolver if linsolver is not None else DirectDense()

    def __call__(
        self,
        residual_fn: ResidualFn,
        y_guess: Array,
        jac_fn: JacobianConstructor,
    ) -> Array:
        """
        Find the root of residual_fn(y) = 0 using Newton-Raphson method.

        Args:
            residual_fn: Residual function R(y)
            y_guess: Initial guess
            jac_fn: Function returning a dense Jacobian matrix with
                signature y -> J(y)

        Returns:
            Solution y
        """
        if jac_fn is None:
            raise ValueError("Must provide jac_fn")

        y_k = jnp.asarray(y_guess)
        state0 = (y_k, residual_fn(y_k), 0)

        def body_fun(state):
            y_k, r_k, k = state
            delta = self.linsolver(jac_fn(y_k), -r_k)
            y_kp1 = y_k + delta
            return (y_kp1, residual_fn(y_kp1), k + 1)

        def cond_fun(state):
            _, r_k, k = state
            return (jnp.linalg.norm(r_k) > self.tol) & (k < self.maxiter)

        y_final, r_final, niters = jax.lax.while_loop(cond_fun, body_fun, state0)

        jax.debug.callback(
            _warn_not_converged,
            niters, self.maxiter,
            jnp.linalg.norm(r_final), self.tol
        )

        return y_final
