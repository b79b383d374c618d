"""Direct linear solvers."""

from flax import nnx
from jax import Array
import jax.numpy as jnp


class DirectDense(nnx.Module):
    """
    Direct solver for dense linear systems.

    Dispatches to `jax.numpy.linalg.solve`. The systems met here are the
    Jacobians of first-order ODE right-hand sides and of their conditions,
    whose size is the (small) length of the state vector.
    """

    def __call__(self, A: Array, b: Array) -> Array:
        """
        Solve A*x = b.

        Args:
            A: Dense matrix of shape (n, n)
            b: Right-hand side vector of shape (n,)

        Returns:
            Solution x

        Raises:
            TypeError: If A is a callable (linear operator) instead of a matrix
        """
        if callable(A):
            raise TypeError(
                "DirectDense requires a dense matrix, not a linear operator. "
                "Build the Jacobian with `fd_jacobian` first."
            )
        return jnp.linalg.solve(A, b)
