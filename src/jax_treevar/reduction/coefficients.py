"""
Coefficient extractor.

Given a normalised equation tree and its leading derivative D = u_var^(order),
write the tree as

    tree = coeff * D + rest

where `coeff` depends on the independent variable only and `rest` does not
contain D. This succeeds whenever D enters linearly: through sums and
differences, negation, and products or quotients with numbers, external
functions of t, or traced expressions of t alone.

Otherwise (D inside a nonlinear function or a power, in a denominator, or
multiplied by something that depends on the unknowns) the leading term is
inseparable and only an implicit formulation of the problem exists.
"""

import logging
import numbers
from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np
from scipy.optimize import minimize_scalar

from ..errors import SingularLeadingCoefficient
from ..tree.codegen import compile_scalar
from ..tree.domain import Domain, chebyshev_points
from ..tree.nodes import (
    Arena,
    Binary,
    Constant,
    Derivative,
    Leaf,
    TreeTree,
    TreeValue,
    Unary,
    ValueTree,
)
from ..tree.printer import linearize

logger = logging.getLogger(__name__)


class _Inseparable:
    """Sentinel: the leading derivative cannot be isolated."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'INSEPARABLE'

    def __bool__(self) -> bool:
        return False


INSEPARABLE = _Inseparable()


@dataclass(frozen=True)
class Separable:
    """`tree == coeff * D + rest`; `rest` is None when it vanishes."""
    coeff: int
    rest: Optional[int]


class _Algebra:
    """Coefficient arithmetic on arena handles. `None` stands for zero."""

    def __init__(self, arena: Arena):
        self.arena = arena
        self.one = arena.constant(arena.value(1.0))

    def number(self, handle: Optional[int]) -> Optional[float]:
        if handle is None:
            return 0.0
        node = self.arena.node(handle)
        if isinstance(node, Constant):
            value = self.arena.get_value(node.value)
            if isinstance(value, numbers.Number):
                return value
        return None

    def add(self, a, b):
        if a is None:
            return b
        if b is None:
            return a
        return self.arena.binary('plus', TreeTree(a, b))

    def sub(self, a, b):
        if b is None:
            return a
        if a is None:
            return self.neg(b)
        return self.arena.binary('minus', TreeTree(a, b))

    def neg(self, a):
        if a is None:
            return None
        return self.arena.unary('uminus', a)

    def value_op(self, op: str, value: int, a, value_first: bool):
        """op(value, a) or op(a, value) for an external value."""
        if a is None:
            return None
        if a == self.one and op == 'times':
            return self.arena.constant(value)
        operands = ValueTree(value, a) if value_first else TreeValue(a, value)
        return self.arena.binary(op, operands)

    def tree_op(self, op: str, a, b: int, tree_first: bool):
        """op(a, b) or op(b, a) for a traced expression `b` of t alone."""
        if a is None:
            return None
        if a == self.one and op == 'times':
            return b
        operands = TreeTree(b, a) if tree_first else TreeTree(a, b)
        return self.arena.binary(op, operands)


def extract_leading(
    arena: Arena, root: int, var: int, order: int
) -> Union[Separable, _Inseparable]:
    """
    Split `root` into `coeff * diff(u_var, order) + rest`.

    Returns:
        `Separable(coeff, rest)`, or `INSEPARABLE` when the derivative does
        not enter linearly with a coefficient independent of the unknowns.
    """
    alg = _Algebra(arena)
    memo: dict[int, object] = {}

    def contains(handle: int) -> bool:
        return arena.info(handle).diff_order[var] >= order

    def split(handle: int):
        if handle in memo:
            return memo[handle]
        if not contains(handle):
            out = (None, handle)
        else:
            out = _split_node(handle)
        memo[handle] = out
        return out

    def _split_node(handle: int):
        node = arena.node(handle)
        match node:
            case Derivative(child=child, order=k) if k == order and arena.node(child) == Leaf(var):
                return (alg.one, None)
            case Unary(op='uplus', child=child):
                return split(child)
            case Unary(op='uminus', child=child):
                part = split(child)
                if part is INSEPARABLE:
                    return INSEPARABLE
                return (alg.neg(part[0]), alg.neg(part[1]))
            case Binary(op='plus' | 'minus' as op, operands=TreeTree(left=left, right=right)):
                a, b = split(left), split(right)
                if a is INSEPARABLE or b is INSEPARABLE:
                    return INSEPARABLE
                combine = alg.add if op == 'plus' else alg.sub
                return (combine(a[0], b[0]), combine(a[1], b[1]))
            case Binary(op='plus' | 'minus' as op, operands=ValueTree(value=value, tree=tree)):
                part = split(tree)
                if part is INSEPARABLE:
                    return INSEPARABLE
                c, r = part
                r = arena.binary(op, ValueTree(value, r)) if r is not None else arena.constant(value)
                return (c if op == 'plus' else alg.neg(c), r)
            case Binary(op='plus' | 'minus' as op, operands=TreeValue(tree=tree, value=value)):
                part = split(tree)
                if part is INSEPARABLE:
                    return INSEPARABLE
                c, r = part
                if r is not None:
                    r = arena.binary(op, TreeValue(r, value))
                elif op == 'plus':
                    r = arena.constant(value)
                else:
                    r = arena.unary('uminus', arena.constant(value))
                return (c, r)
            case Binary(op='times', operands=ValueTree(value=value, tree=tree)):
                part = split(tree)
                if part is INSEPARABLE:
                    return INSEPARABLE
                return tuple(alg.value_op('times', value, p, value_first=True) for p in part)
            case Binary(op='times' | 'rdivide' as op, operands=TreeValue(tree=tree, value=value)):
                part = split(tree)
                if part is INSEPARABLE:
                    return INSEPARABLE
                return tuple(alg.value_op(op, value, p, value_first=False) for p in part)
            case Binary(op='times', operands=TreeTree(left=left, right=right)):
                if contains(left) and contains(right):
                    return INSEPARABLE
                inner, other, tree_first = (left, right, False) if contains(left) else (right, left, True)
                if arena.info(other).mask:
                    # Coefficient would depend on the unknowns
                    return INSEPARABLE
                part = split(inner)
                if part is INSEPARABLE:
                    return INSEPARABLE
                return tuple(alg.tree_op('times', p, other, tree_first) for p in part)
            case Binary(op='rdivide', operands=TreeTree(left=left, right=right)):
                if contains(right) or arena.info(right).mask:
                    return INSEPARABLE
                part = split(left)
                if part is INSEPARABLE:
                    return INSEPARABLE
                return tuple(alg.tree_op('rdivide', p, right, False) for p in part)
        return INSEPARABLE

    result = split(root)
    if result is INSEPARABLE or result[0] is None:
        return INSEPARABLE
    return Separable(coeff=result[0], rest=result[1])


@dataclass(frozen=True)
class LeadingCoefficient:
    """
    Coefficient of the highest derivative of one equation.

    Attributes:
        var: Base variable.
        order: Order of its highest derivative.
        handle: Arena handle of the coefficient tree (a function of t only).
        fn: Compiled coefficient, `fn(t) -> c(t)`.
        constant: The coefficient's value if it is a plain number, else None.
    """
    var: int
    order: int
    handle: int
    fn: Callable
    constant: Optional[float]

    def __call__(self, t):
        return self.fn(t)


def compile_coefficient(arena: Arena, var: int, order: int, handle: int) -> LeadingCoefficient:
    program = linearize(arena, [handle])
    fn = compile_scalar(program, name=f"coeff_{var}")
    node = arena.node(handle)
    constant = None
    if isinstance(node, Constant) and isinstance(arena.get_value(node.value), numbers.Number):
        constant = float(arena.get_value(node.value))
    return LeadingCoefficient(var, order, handle, fn, constant)


def _touching_zero(fn: Callable, t: np.ndarray, c: np.ndarray, threshold: float):
    """
    Refine every sampled local minimum of |c| with a bounded scalar minimiser.

    Returns the first point where |c| drops to `threshold` or below, or None.
    A coefficient that touches zero without changing sign, e.g. (t - 0.3)^2,
    only shows up here.
    """
    mag = np.abs(c)
    for i in range(len(t)):
        lo, hi = max(i - 1, 0), min(i + 1, len(t) - 1)
        if mag[i] > mag[lo] or mag[i] > mag[hi] or mag[i] == max(mag[lo], mag[hi]):
            # strict local minima only
            continue
        result = minimize_scalar(
            lambda s: abs(float(fn(s))),
            bounds=(t[lo], t[hi]),
            method='bounded',
            options={'xatol': 1e-10 * max(1.0, abs(t[hi] - t[lo]))},
        )
        if result.fun <= threshold:
            return float(result.x)
    return None


def check_nonsingular(
    coeff: LeadingCoefficient,
    domain: Domain,
    tol: float = 1e-12,
    n_samples: int = 65,
) -> None:
    """
    Raise `SingularLeadingCoefficient` if the coefficient vanishes on the domain.

    A vanishing coefficient is detected as a non-finite sample, a sample that
    is zero relative to the largest one, a sign change between neighbouring
    samples of the same subinterval, or a local minimum of |c| that refines to
    zero.
    """
    if coeff.constant is not None:
        if coeff.constant == 0.0 or not np.isfinite(coeff.constant):
            raise SingularLeadingCoefficient(
                f"Leading coefficient of derivative order {coeff.order} is {coeff.constant}",
                variable=coeff.var,
            )
        return

    samples = [
        (t, np.asarray(coeff.fn(t), dtype=float))
        for t in (chebyshev_points(a, b, n_samples) for a, b in domain.intervals)
    ]
    values = np.concatenate([c for _, c in samples])
    if not np.all(np.isfinite(values)):
        raise SingularLeadingCoefficient(
            "Leading coefficient is not finite on the domain", variable=coeff.var
        )
    scale = max(1.0, float(np.max(np.abs(values))))
    for t, c in samples:
        small = np.abs(c) <= tol * scale
        if np.any(small):
            raise SingularLeadingCoefficient(
                f"Leading coefficient vanishes at t={t[np.argmax(small)]:g}",
                variable=coeff.var,
            )
        crossing = np.nonzero(np.sign(c[1:]) != np.sign(c[:-1]))[0]
        if crossing.size:
            i = crossing[0]
            raise SingularLeadingCoefficient(
                f"Leading coefficient changes sign in [{t[i]:g}, {t[i + 1]:g}]",
                variable=coeff.var,
            )
        touch = _touching_zero(coeff.fn, t, c, tol * scale)
        if touch is not None:
            raise SingularLeadingCoefficient(
                f"Leading coefficient vanishes near t={touch:g}",
                variable=coeff.var,
            )
    logger.debug(
        "Leading coefficient of variable %d bounded away from zero (min |c| = %g)",
        coeff.var, float(np.min(np.abs(values))),
    )
