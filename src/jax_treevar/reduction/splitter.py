"""
Splitter: rewrites an n-th order system into first-order form.

For every base variable u_i of maximal order n_i the state vector holds
u_i, u_i', ..., u_i^(n_i - 1) in consecutive slots. The system becomes

    slot_j'          = slot_{j+1}                      j = 0 .. n_i - 2
    slot_{n_i - 1}'  = (rhs - rest) / coeff

where `coeff * u_i^(n_i) + rest` is the equation defining u_i, with every
lower derivative in `rest` replaced by its slot.

Slots are numbered by one sequential counter: variables in registry order,
increasing derivative order within a variable. Identical inputs therefore
always give the same state layout.
"""

import logging
import numbers
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..errors import (
    ConfigMismatch,
    InseparableLeadingTerm,
    UnsupportedOperation,
)
from ..tree.builder import Registry, TreeVar
from ..tree.domain import Domain
from ..tree.nodes import (
    Arena,
    Binary,
    Constant,
    Derivative,
    Independent,
    Leaf,
    Slot,
    TreeTree,
    TreeValue,
    Unary,
    ValueTree,
    postorder,
)
from .coefficients import (
    INSEPARABLE,
    LeadingCoefficient,
    check_nonsingular,
    compile_coefficient,
    extract_leading,
)
from .options import ReductionOptions

logger = logging.getLogger(__name__)


class SlotAllocator:
    """Sequential slot counter; one instance per reduction pass."""

    def __init__(self):
        self._next = 0
        self.slots: dict[tuple[int, int], int] = {}

    def allocate(self, var: int, order: int) -> int:
        key = (var, order)
        if key in self.slots:
            raise ValueError(f"Slot for variable {var}, order {order} already allocated")
        self.slots[key] = self._next
        self._next += 1
        return self.slots[key]

    def __len__(self) -> int:
        return self._next


def allocate_slots(registry: Registry) -> dict[tuple[int, int], int]:
    """Slot index of every eliminated derivative `(var, order)`."""
    allocator = SlotAllocator()
    for var, n in enumerate(registry.orders):
        for order in range(n):
            allocator.allocate(var, order)
    return allocator.slots


def traced_orders(arena: Arena, roots: Sequence[int]) -> tuple[int, ...]:
    """Highest derivative order of each base variable over all `roots`."""
    orders = [0] * arena.n_vars
    for root in roots:
        for i, d in enumerate(arena.info(root).diff_order):
            orders[i] = max(orders[i], d)
    return tuple(orders)


def assign_equations(
    arena: Arena, roots: Sequence[int], registry: Registry
) -> tuple[int, ...]:
    """
    Match each base variable to the equation that defines it.

    Equation `e` can define variable `i` if it contains u_i^(n_i). The
    matching is found by augmenting paths, trying variables in registry order
    and equations in the given order.

    Returns:
        `eq[i]`, the index into `roots` of the equation defining variable `i`.
    """
    n_vars = registry.size
    if len(roots) != n_vars:
        raise ConfigMismatch(
            f"Got {len(roots)} equations for {n_vars} base variables"
        )
    for var, n in enumerate(registry.orders):
        if n == 0:
            raise UnsupportedOperation(
                "Variable is never differentiated; algebraic constraints "
                "cannot be reduced to explicit first-order form",
                variable=var,
            )

    candidates = [
        [e for e, root in enumerate(roots)
         if arena.info(root).diff_order[var] == registry.orders[var]]
        for var in range(n_vars)
    ]
    owner: dict[int, int] = {}

    def augment(var: int, visited: set) -> bool:
        for e in candidates[var]:
            if e in visited:
                continue
            visited.add(e)
            if e not in owner or augment(owner[e], visited):
                owner[e] = var
                return True
        return False

    for var in range(n_vars):
        if not augment(var, set()):
            raise ConfigMismatch(
                f"No equation left to define the derivative of order "
                f"{registry.orders[var]}",
                variable=var,
            )
    eq = [0] * n_vars
    for e, var in owner.items():
        eq[var] = e
    return tuple(eq)


def substitute_slots(
    arena: Arena,
    root: int,
    registry: Registry,
    slots: dict[tuple[int, int], int],
    memo: Optional[dict[int, int]] = None,
) -> int:
    """
    Replace every base variable and eliminated derivative by its state slot.

    Raises:
        InseparableLeadingTerm: A highest derivative remains, i.e. the
            equation also involves the leading term of another variable.
    """
    memo = {} if memo is None else memo
    for handle in postorder(arena, [root]):
        if handle in memo:
            continue
        node = arena.node(handle)
        match node:
            case Leaf(var=var):
                out = arena.slot(slots[(var, 0)], var, 0)
            case Derivative(child=child, order=order):
                leaf = arena.node(child)
                if not isinstance(leaf, Leaf):
                    raise UnsupportedOperation(
                        "Derivative of a compound expression survived normalisation",
                        operation='diff',
                    )
                if order >= registry.orders[leaf.var]:
                    raise InseparableLeadingTerm(
                        f"Highest derivative (order {order}) appears outside its "
                        f"defining term; only an implicit formulation exists",
                        operation='diff',
                        variable=leaf.var,
                    )
                out = arena.slot(slots[(leaf.var, order)], leaf.var, order)
            case Independent() | Constant() | Slot():
                out = handle
            case Unary(op=op, child=child):
                out = arena.unary(op, memo[child])
            case Binary(op=op, operands=ValueTree(value=value, tree=tree)):
                out = arena.binary(op, ValueTree(value, memo[tree]))
            case Binary(op=op, operands=TreeValue(tree=tree, value=value)):
                out = arena.binary(op, TreeValue(memo[tree], value))
            case Binary(op=op, operands=TreeTree(left=left, right=right)):
                out = arena.binary(op, TreeTree(memo[left], memo[right]))
        memo[handle] = out
    return memo[root]


@dataclass(frozen=True)
class SplitSystem:
    """
    First-order form of a traced system.

    Attributes:
        arena: Arena holding every tree below.
        registry: Base variables and their orders.
        equations: One tree per state slot; `equations[k]` is d(slot k)/dt.
        slots: Slot index of each eliminated derivative `(var, order)`.
        assignment: `assignment[i]` is the index of the equation defining
            variable `i`.
        coefficients: Leading coefficient of each variable's equation.
    """
    arena: Arena
    registry: Registry
    equations: tuple[int, ...]
    slots: dict[tuple[int, int], int]
    assignment: tuple[int, ...]
    coefficients: tuple[LeadingCoefficient, ...]

    @property
    def n_state(self) -> int:
        return len(self.equations)


def _rhs_handle(arena: Arena, rhs: Any) -> Optional[int]:
    """Arena handle of a right-hand side, or None for zero."""
    if rhs is None:
        return None
    if getattr(rhs, 'shape', None) == () and hasattr(rhs, 'dtype'):
        rhs = float(rhs)
    if isinstance(rhs, numbers.Number):
        return None if rhs == 0 else arena.constant(arena.value(rhs))
    if isinstance(rhs, TreeVar):
        handle = arena.adopt(rhs.arena, rhs.handle)
        if arena.info(handle).mask:
            raise ConfigMismatch("Right-hand side must not depend on the unknowns")
        return handle
    if callable(rhs):
        return arena.constant(arena.value(rhs))
    raise UnsupportedOperation(
        f"Unsupported right-hand side of type {type(rhs).__name__}", operation='rhs'
    )


def split(
    arena: Arena,
    roots: Sequence[int],
    registry: Registry,
    domain: Domain,
    rhs: Optional[Sequence[Any]] = None,
    options: ReductionOptions = ReductionOptions(),
) -> SplitSystem:
    """
    Reduce normalised equation trees to an explicit first-order system.

    Args:
        arena: Arena holding the equations.
        roots: One normalised tree per equation, `L_e(u) = rhs_e`.
        registry: Base variables with their maximal derivative orders.
        domain: Domain on which leading coefficients must not vanish.
        rhs: Right-hand side of each equation (numbers, callables of t,
            traced expressions of t); None means all zero.
        options: Tolerances for the singularity check.

    Raises:
        ConfigMismatch: Equations cannot be matched to variables.
        InseparableLeadingTerm: A highest derivative does not enter linearly.
        SingularLeadingCoefficient: A leading coefficient vanishes on the domain.
    """
    rhs = [0] * len(roots) if rhs is None else list(rhs)
    if len(rhs) != len(roots):
        raise ConfigMismatch(f"Got {len(rhs)} right-hand sides for {len(roots)} equations")

    assignment = assign_equations(arena, roots, registry)
    slots = allocate_slots(registry)
    memo: dict[int, int] = {}

    equations: list[int] = []
    coefficients: list[LeadingCoefficient] = []
    for var, n in enumerate(registry.orders):
        e = assignment[var]
        parts = extract_leading(arena, roots[e], var, n)
        if parts is INSEPARABLE:
            raise InseparableLeadingTerm(
                f"Cannot isolate the derivative of order {n} in equation {e}; "
                f"only an implicit formulation exists",
                variable=var,
            )
        coeff = compile_coefficient(arena, var, n, parts.coeff)
        check_nonsingular(coeff, domain, options.singular_tol, options.n_samples)
        coefficients.append(coeff)

        # Chain of trivial equations slot_j' = slot_{j+1}
        for order in range(n - 1):
            equations.append(arena.slot(slots[(var, order + 1)], var, order + 1))

        rest = None if parts.rest is None else substitute_slots(
            arena, parts.rest, registry, slots, memo
        )
        target = _rhs_handle(arena, rhs[e])
        if target is None:
            top = arena.unary('uminus', rest) if rest is not None else arena.constant(arena.value(0.0))
        elif rest is None:
            top = target
        else:
            top = arena.binary('minus', TreeTree(target, rest))
        if coeff.constant != 1.0:
            top = arena.binary('rdivide', TreeTree(top, parts.coeff))
        equations.append(top)
        logger.debug(
            "Variable %d (order %d) defined by equation %d, slots %d..%d",
            var, n, e, slots[(var, 0)], slots[(var, n - 1)],
        )

    return SplitSystem(
        arena=arena,
        registry=registry,
        equations=tuple(equations),
        slots=slots,
        assignment=assignment,
        coefficients=tuple(coefficients),
    )
