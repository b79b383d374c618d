"""Protocol for linear solvers used by root finders."""

from typing import Protocol, runtime_checkable

from jax import Array


@runtime_checkable
class LinearSolverProtocol(Protocol):
    """
    Protocol for linear solvers.

    Defines the interface for solving dense linear systems A*x = b.
    Any class implementing a __call__() method with this signature can be used
    as the linear solver of a Newton iteration.
    """

    def __call__(self, A: Array, b: Array) -> Array:
        """
        Solve the linear system A*x = b.

        Args:
            A: Dense matrix
            b: Right-hand side vector

        Returns:
            Solution vector x such that A*x ≈ b
        """
        ...
