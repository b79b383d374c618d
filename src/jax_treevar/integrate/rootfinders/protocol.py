"""Protocol for root-finding algorithms."""

from typing import Protocol, runtime_checkable

from jax import Array

from ..custom_types import ResidualFn, JacobianConstructor


@runtime_checkable
class RootFinderProtocol(Protocol):
    """
    Protocol for root-finding algorithms.

    Used by implicit time-stepping schemes, and to recover the initial state
    of a reduced system from its boundary/initial conditions.
    """

    def __call__(
        self,
        residual_fn: ResidualFn,
        y_guess: Array,
        jac_fn: JacobianConstructor,
    ) -> Array:
        """
        Find the root of residual_fn(y) = 0.

        Args:
            residual_fn: Function mapping y -> R(y), where we seek R(y) = 0
            y_guess: Initial guess for the solution
            jac_fn: Dense Jacobian function y -> J

        Returns:
            Solution y such that residual_fn(y) ≈ 0
        """
        ...
