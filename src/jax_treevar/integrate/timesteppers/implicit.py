"""
Implicit time-stepping schemes.
"""

from typing import Callable, Optional

from flax import nnx
from jax import Array
import jax.numpy as jnp

from ...tree.codegen import fd_jacobian
from ..rootfinders import RootFinderProtocol, NewtonRaphson


class BackwardEuler(nnx.Module):
    """
    Backward Euler time-stepping scheme.

    Discretisation:
    $$ \\frac{\\partial y}{\\partial t} \\rightarrow
    \\frac{y_{n+1} - y_n}{h} = f(t_{n+1}, y_{n+1}) $$

    Residual:
    $$ R(y_{n+1}) = y_{n+1} - y_n - h f(t_{n+1}, y_{n+1}) $$

    Jacobian:
    $$ J = I - h \\frac{\\partial f(t_{n+1}, y_{n+1})}{\\partial y} $$

    Unless `jac` is given, df/dy is estimated by forward differences with a
    single batched call of `fun`, so `fun` must accept a stack of states of
    shape (n, n). Every `VectorField` built by `to_first_order` does.

    Implements: StepperProtocol

    Attributes:
        root_finder: Root-finding algorithm for the implicit equations.
            Default: NewtonRaphson.
        jac: Optional user-provided dense Jacobian with
            signature (t, y, *args) -> df/dy.
    """

    def __init__(
        self,
        root_finder: Optional[RootFinderProtocol] = None,
        jac: Optional[Callable] = None,
    ):
        self.root_finder = root_finder if root_finder is not None else NewtonRaphson()
        self.jac = jac

    def step(
        self,
        fun: Callable,
        t: Array,
        y: Array,
        h: Array,
        args: tuple = (),
    ) -> Array:
        """
        Perform a backward Euler step.

        Solves $$ y_{n+1} - y_n - h f(t_{n+1}, y_{n+1}, \\cdot) = 0 $$
        for $y_{n+1}$ using the configured root finder.

        Args:
            fun: Right-hand side of system dydt = f(t, y, *args).
            t: Current time. Type: 0-dimensional JAX array.
            y: Current state at time t.
            h: Time step size. Type: 0-dimensional JAX array.
            args: Additional arguments to pass to fun and jac.

        Returns:
            State at time t + h.
        """
        t_next = t + h

        def residual_fn(y_next):
            return y_next - y - h * fun(t_next, y_next, *args)

        if self.jac is not None:
            dfdy = lambda y_next: self.jac(t_next, y_next, *args)
        else:
            dfdy = lambda y_next: fd_jacobian(fun, t_next, y_next, args=args)

        def jac_fn(y_next):
            return jnp.eye(y_next.size, dtype=y_next.dtype) - h * dfdy(y_next)

        # Initial guess: forward Euler step
        y_guess = y + h * fun(t, y, *args)

        return self.root_finder(residual_fn, y_guess, jac_fn=jac_fn)
