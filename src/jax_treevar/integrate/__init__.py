"""Time integration of reduced first-order systems."""

from .solve import solve_ivp, solve_with_history
from .timesteppers import (
    StepperProtocol,
    ButcherTableau,
    ExplicitRungeKutta,
    ForwardEuler,
    Midpoint,
    Heun,
    RK4,
    BackwardEuler,
)
from .rootfinders import RootFinderProtocol, NewtonRaphson
from .linsolvers import LinearSolverProtocol, DirectDense

__all__ = [
    # Drivers
    'solve_ivp',
    'solve_with_history',

    # Steppers
    'StepperProtocol',
    'ButcherTableau',
    'ExplicitRungeKutta',
    'ForwardEuler',
    'Midpoint',
    'Heun',
    'RK4',
    'BackwardEuler',

    # Nonlinear and linear solvers
    'RootFinderProtocol',
    'NewtonRaphson',
    'LinearSolverProtocol',
    'DirectDense',
]
