"""
Orchestrator: from a traced differential operator to an explicit first-order
system.

    system = to_first_order(lambda t, u: u.diff(2) + sin(u), (0.0, 10.0),
                            lbc=lambda u: [u - 1, u.diff()])
    system.fun(t, x)    # x' for the state x = (u, u')
    system.y0           # initial state solving the conditions
"""

import inspect
import logging
import numbers
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, TypeAlias, Union

from jax import Array

from ..errors import ConfigMismatch, UnderOrOverDeterminedConditions, UnsupportedOperation
from ..tree.builder import Registry, TreeVar, placeholders
from ..tree.codegen import VectorField
from ..tree.domain import Domain
from ..tree.nodes import Arena
from ..tree.printer import linearize, to_infix
from .coefficients import LeadingCoefficient
from .conditions import SortedConditions, initial_state, sort_conditions
from .normalize import normalize
from .options import ReductionOptions
from .splitter import SplitSystem, split, traced_orders

logger = logging.getLogger(__name__)

Operator: TypeAlias = Union[Callable[..., Any], Sequence[Callable[..., Any]]]


@dataclass(frozen=True)
class FirstOrderSystem:
    """
    Explicit first-order form `x' = fun(t, x)` of a traced problem.

    Attributes:
        fun: Compiled right-hand side, `fun(t, x) -> x'`.
        index: State-vector offset of each base variable; u_i^(j) lives in
            slot `index[i] + j`.
        domain: Domain of the problem, extended by the breakpoints of every
            coefficient that carries one.
        conditions: Conditions sorted by the slot they fix, or None.
        coefficients: Leading coefficient of each variable's defining equation.
        split_system: Trees of the reduced system.
        y0: State at the condition endpoint, or None without conditions.
    """
    fun: VectorField
    index: tuple[int, ...]
    domain: Domain
    conditions: Optional[SortedConditions]
    coefficients: tuple[LeadingCoefficient, ...]
    split_system: SplitSystem
    y0: Optional[Array] = None

    @property
    def registry(self) -> Registry:
        return self.split_system.registry

    @property
    def n_state(self) -> int:
        return self.split_system.n_state

    @property
    def names(self) -> tuple[str, ...]:
        return self.registry.names

    @property
    def final_value(self) -> bool:
        """True if the conditions hold at the right endpoint."""
        return self.conditions is not None and self.conditions.endpoint == 'right'

    def describe(self) -> list[str]:
        """One line `x[k]' = ...` per state slot."""
        arena = self.split_system.arena
        return [
            f"x[{k}]' = {to_infix(arena, eq, self.names)}"
            for k, eq in enumerate(self.split_system.equations)
        ]

    def __call__(self, t, x) -> Array:
        return self.fun(t, x)


def _positional_names(fn: Callable) -> Optional[list[str]]:
    """Names of the positional parameters of `fn`, or None if it takes *args."""
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return None
    names = []
    for p in params:
        if p.kind is inspect.Parameter.VAR_POSITIONAL:
            return None
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            names.append(p.name)
    return names


def _variable_names(ops: Sequence[Callable], orders: Optional[Sequence[int]]) -> tuple[str, ...]:
    params = _positional_names(ops[0])
    if params is None or len(params) < 2:
        if orders is None:
            raise ConfigMismatch(
                "Cannot infer the number of unknowns from the operator's signature; "
                "pass `orders`"
            )
        return tuple(f"u{i}" for i in range(len(orders)))
    names = tuple(params[1:])
    if orders is not None and len(orders) != len(names):
        raise ConfigMismatch(
            f"Operator takes {len(names)} unknowns but {len(orders)} orders were declared"
        )
    return names


def _as_trees(result: Any, arena: Arena, what: str) -> list[TreeVar]:
    items = list(result) if isinstance(result, (list, tuple)) else [result]
    trees = []
    for item in items:
        if not isinstance(item, TreeVar):
            raise UnsupportedOperation(
                f"{what} evaluated to {type(item).__name__}, not a traced expression",
                operation='trace',
            )
        if item.arena is not arena:
            item = TreeVar(arena, arena.adopt(item.arena, item.handle), item.domain)
        trees.append(item)
    return trees


def trace(
    op: Operator,
    domain,
    orders: Optional[Sequence[int]] = None,
) -> tuple[Arena, list[TreeVar], tuple[TreeVar, ...], tuple[str, ...]]:
    """
    Call the operator once with placeholders.

    `op` is either a single callable `op(t, u_1, ..., u_m)` returning one
    expression per equation, or a sequence of such callables returning one
    expression each.

    Returns:
        The arena, the traced equations, the base-variable placeholders and
        the variable names.
    """
    ops = list(op) if isinstance(op, (list, tuple)) else [op]
    if not ops or not all(callable(f) for f in ops):
        raise UnsupportedOperation(
            "The operator must be a callable or a sequence of callables", operation='trace'
        )
    names = _variable_names(ops, orders)
    t, base = placeholders(len(names), domain)
    arena = t.arena

    equations: list[TreeVar] = []
    for f in ops:
        traced = _as_trees(f(t, *base), arena, 'Operator')
        if len(ops) > 1 and len(traced) != 1:
            raise ConfigMismatch(
                f"Each operator in a sequence must return one equation, got {len(traced)}"
            )
        equations.extend(traced)
    logger.debug(
        "Traced %d equation(s) in %d unknown(s) %s, %d nodes",
        len(equations), len(names), names, len(arena),
    )
    return arena, equations, base, names


def _condition_trees(
    bc: Any,
    base: tuple[TreeVar, ...],
    slots: dict[tuple[int, int], int],
) -> list[TreeVar]:
    """
    Trace the conditions.

    `bc` is a callable of the base variables returning one expression per
    condition (`expr = 0`), or numbers giving the state values in slot order.
    """
    arena = base[0].arena
    if callable(bc):
        return _as_trees(bc(*base), arena, 'Condition')
    values = list(bc) if isinstance(bc, (list, tuple)) else [bc]
    if not all(isinstance(v, numbers.Real) for v in values):
        raise UnsupportedOperation(
            "Conditions must be a callable or real numbers", operation='bc'
        )
    if len(values) != len(slots):
        raise UnderOrOverDeterminedConditions(
            f"Got {len(values)} condition values for {len(slots)} eliminated derivatives"
        )
    by_slot = sorted(slots, key=slots.get)
    return [base[var].diff(order) - value for (var, order), value in zip(by_slot, values)]


def to_first_order(
    op: Operator,
    domain,
    *,
    rhs: Any = 0,
    orders: Optional[Sequence[int]] = None,
    lbc: Any = None,
    rbc: Any = None,
    options: ReductionOptions = ReductionOptions(),
) -> FirstOrderSystem:
    """
    Reduce the differential operator `op` to an explicit first-order system.

    Args:
        op: `op(t, u_1, ..., u_m)` returning the equations `L(u) = rhs`, or
            a sequence of callables returning one equation each.
        domain: Endpoints `(a, b)` or ordered breakpoints.
        rhs: Right-hand side of each equation: a number, a callable of t, or
            a sequence of those (one per equation).
        orders: Declared maximal derivative order of each unknown. Checked
            against the traced orders.
        lbc: Initial conditions at the left endpoint.
        rbc: Final conditions at the right endpoint.
        options: Tolerances of the reduction.

    Returns:
        FirstOrderSystem

    Raises:
        ConfigMismatch: Declared orders or the number of equations do not
            match the traced problem.
        SingularLeadingCoefficient: A leading coefficient vanishes on the domain.
        UnderOrOverDeterminedConditions: The conditions do not fix every
            eliminated derivative exactly once.
        UnsupportedOperation: The operator uses an operation without a tree
            rule, the leading term cannot be isolated, or both `lbc` and `rbc`
            are given (a boundary-value problem).
    """
    if lbc is not None and rbc is not None:
        raise UnsupportedOperation(
            "Conditions at both endpoints pose a boundary-value problem, which "
            "cannot be solved by time stepping",
            operation='bc',
        )

    arena, equations, base, names = trace(op, domain, orders)
    problem_domain = Domain.create(domain)
    for eq in equations:
        problem_domain = problem_domain.union(eq.domain)

    roots = normalize(arena, [eq.handle for eq in equations])
    traced = traced_orders(arena, roots)
    if orders is not None and tuple(int(n) for n in orders) != traced:
        raise ConfigMismatch(
            f"Declared derivative orders {tuple(orders)} differ from the traced "
            f"orders {traced}"
        )
    registry = Registry(traced, names)

    if isinstance(rhs, (list, tuple)):
        rhs_list = list(rhs)
    else:
        rhs_list = [rhs] * len(roots)
    split_system = split(arena, roots, registry, problem_domain, rhs_list, options)

    fun = VectorField(linearize(arena, split_system.equations), split_system.n_state)
    logger.debug("Reduced to %d first-order equations", split_system.n_state)

    conditions, y0 = None, None
    bc = lbc if lbc is not None else rbc
    if bc is not None:
        endpoint = 'left' if lbc is not None else 'right'
        location = problem_domain.left if lbc is not None else problem_domain.right
        trees = _condition_trees(bc, base, split_system.slots)
        for tree in trees:
            problem_domain = problem_domain.union(tree.domain)
        condition_roots = normalize(arena, [tree.handle for tree in trees])
        conditions = sort_conditions(
            arena, condition_roots, registry, split_system.slots, location, endpoint
        )
        y0 = initial_state(arena, conditions, registry, split_system.slots, options)

    return FirstOrderSystem(
        fun=fun,
        index=registry.offsets,
        domain=problem_domain,
        conditions=conditions,
        coefficients=split_system.coefficients,
        split_system=split_system,
        y0=y0,
    )
