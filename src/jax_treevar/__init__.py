"""
JAX TreeVar

Traces nonlinear differential operators written with overloaded arithmetic
into syntax trees and reduces them to explicit first-order ODE systems that
can be integrated with JAX time steppers.

Main components:
- tree: placeholder variables, node model, printers and code generation
- reduction: derivative normalisation, splitting, coefficients and conditions
- integrate: time-stepping methods for the reduced systems
"""

import jax

# Generated evaluators, coefficient checks and condition solves run in double
# precision.
jax.config.update("jax_enable_x64", True)

from .errors import (
    TreeVarError,
    ConfigMismatch,
    SingularLeadingCoefficient,
    UnderOrOverDeterminedConditions,
    UnsupportedOperation,
    InseparableLeadingTerm,
)

# Tracing
from .tree import Domain, TreeVar, diff, format_tree, to_infix, to_prefix
from .tree.elementary import (
    abs,
    acos,
    acosd,
    acosh,
    acot,
    acoth,
    acsc,
    acscd,
    acsch,
    airy,
    asec,
    asecd,
    asech,
    asin,
    asind,
    asinh,
    atan,
    atand,
    atanh,
    cos,
    cosd,
    cosh,
    cot,
    cotd,
    coth,
    csc,
    cscd,
    csch,
    exp,
    expm1,
    log,
    log10,
    log2,
    log1p,
    pow2,
    sec,
    secd,
    sech,
    sin,
    sind,
    sinh,
    sqrt,
    tan,
    tand,
    tanh,
)

# Order reduction
from .reduction import FirstOrderSystem, ReductionOptions, to_first_order

# Time integration solvers
from .integrate import solve_ivp, solve_with_history, RK4, ForwardEuler, BackwardEuler
from .ivp import solve_ode

__all__ = [
    # Errors
    "TreeVarError",
    "ConfigMismatch",
    "SingularLeadingCoefficient",
    "UnderOrOverDeterminedConditions",
    "UnsupportedOperation",
    "InseparableLeadingTerm",

    # Tracing
    "Domain",
    "TreeVar",
    "diff",
    "format_tree",
    "to_infix",
    "to_prefix",

    # Elementary functions
    "abs",
    "acos",
    "acosd",
    "acosh",
    "acot",
    "acoth",
    "acsc",
    "acscd",
    "acsch",
    "airy",
    "asec",
    "asecd",
    "asech",
    "asin",
    "asind",
    "asinh",
    "atan",
    "atand",
    "atanh",
    "cos",
    "cosd",
    "cosh",
    "cot",
    "cotd",
    "coth",
    "csc",
    "cscd",
    "csch",
    "exp",
    "expm1",
    "log",
    "log10",
    "log2",
    "log1p",
    "pow2",
    "sec",
    "secd",
    "sech",
    "sin",
    "sind",
    "sinh",
    "sqrt",
    "tan",
    "tand",
    "tanh",

    # Order reduction
    "FirstOrderSystem",
    "ReductionOptions",
    "to_first_order",

    # ODE integration methods
    "solve_ivp",
    "solve_with_history",
    "solve_ode",
    "RK4",
    "ForwardEuler",
    "BackwardEuler",
]
