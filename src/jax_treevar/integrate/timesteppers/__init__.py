"""Time-stepping schemes for reduced first-order systems."""

from .protocol import StepperProtocol
from .explicit import (
    ButcherTableau,
    ExplicitRungeKutta,
    ForwardEuler,
    Midpoint,
    Heun,
    RK4,
)
from .implicit import BackwardEuler

__all__ = [
    # Protocol
    'StepperProtocol',

    # Explicit methods
    'ButcherTableau',
    'ExplicitRungeKutta',
    'ForwardEuler',
    'Midpoint',
    'Heun',
    'RK4',

    # Implicit methods
    'BackwardEuler',
]
