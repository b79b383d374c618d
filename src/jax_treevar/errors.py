"""Errors raised while tracing and reducing differential operators.

All of these are detected before any numerical integration starts. None of
them is recoverable by retrying: the posed problem has to be reformulated.
"""

from typing import Optional


class TreeVarError(ValueError):
    """Base class for tracing and order-reduction failures."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        variable: Optional[int] = None,
    ):
        self.operation = operation
        self.variable = variable
        details = []
        if operation is not None:
            details.append(f"operation={operation!r}")
        if variable is not None:
            details.append(f"variable={variable}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class ConfigMismatch(TreeVarError):
    """Trees built against incompatible registries or domains were combined."""


class SingularLeadingCoefficient(TreeVarError):
    """The coefficient of a highest derivative vanishes on the domain."""


class UnderOrOverDeterminedConditions(TreeVarError):
    """The conditions do not match the eliminated derivatives one to one."""

    def __init__(
        self,
        message: str,
        variable: Optional[int] = None,
        order: Optional[int] = None,
        condition: Optional[int] = None,
    ):
        self.order = order
        self.condition = condition
        if condition is not None:
            message = f"{message} (condition={condition})"
        if order is not None:
            message = f"{message} (order={order})"
        super().__init__(message, variable=variable)


class UnsupportedOperation(TreeVarError):
    """Tracing or reduction met an operation with no defined tree rule."""


class InseparableLeadingTerm(UnsupportedOperation):
    """The highest derivative cannot be isolated; only an implicit form exists."""
