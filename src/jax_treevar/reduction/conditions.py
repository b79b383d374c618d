"""
Condition sorter.

Initial (or final) conditions are traced like the operator itself, as
expressions `g_k(u, u', ...) = 0` at one endpoint of the domain. After order
reduction the state vector holds every eliminated derivative u_i^(j), and each
condition has to fix exactly one of those slots. A condition is tried against
its highest-order term first, then its lower-order terms; conflicts are
resolved by augmenting paths so that `u' + u = 1, u = 0` still sorts.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from jax import Array
import jax.numpy as jnp

from ..errors import UnderOrOverDeterminedConditions, UnsupportedOperation
from ..integrate.rootfinders import NewtonRaphson
from ..tree.builder import Registry
from ..tree.codegen import VectorField, fd_jacobian
from ..tree.nodes import Arena, Derivative, Leaf, postorder
from ..tree.printer import linearize
from .options import ReductionOptions
from .splitter import substitute_slots

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Condition:
    """
    One traced condition, assigned to a state slot.

    Attributes:
        index: Position of the condition as the user supplied it.
        var: Base variable of the slot it fixes.
        order: Derivative order of the slot it fixes.
        slot: State-vector slot fixed by the condition.
        handle: Arena handle of the condition tree (`= 0` is implied).
        location: Point of the domain at which the condition holds.
    """
    index: int
    var: int
    order: int
    slot: int
    handle: int
    location: float


@dataclass(frozen=True)
class SortedConditions:
    """Conditions reordered by state slot; `conditions[k].slot == k`."""
    conditions: tuple[Condition, ...]
    location: float
    endpoint: str

    @property
    def permutation(self) -> tuple[int, ...]:
        """User index of the condition fixing each slot."""
        return tuple(c.index for c in self.conditions)

    @property
    def handles(self) -> tuple[int, ...]:
        return tuple(c.handle for c in self.conditions)

    def __len__(self) -> int:
        return len(self.conditions)

    def __iter__(self):
        return iter(self.conditions)


def condition_terms(
    arena: Arena, root: int, registry: Registry
) -> list[tuple[int, int]]:
    """
    State terms `(var, order)` a condition refers to, highest order first.

    Raises:
        UnsupportedOperation: The condition refers to a derivative that is
            not part of the state (order >= the variable's maximal order).
    """
    terms = set()
    for handle in postorder(arena, [root]):
        match arena.node(handle):
            case Leaf(var=var):
                terms.add((var, 0))
            case Derivative(child=child, order=order):
                leaf = arena.node(child)
                if not isinstance(leaf, Leaf):
                    raise UnsupportedOperation(
                        "Derivative of a compound expression in a condition",
                        operation='diff',
                    )
                if order >= registry.orders[leaf.var]:
                    raise UnsupportedOperation(
                        f"Condition on derivative of order {order}, but the state "
                        f"only holds orders below {registry.orders[leaf.var]}",
                        operation='diff',
                        variable=leaf.var,
                    )
                terms.add((leaf.var, order))
    return sorted(terms, key=lambda term: (-term[1], term[0]))


def sort_conditions(
    arena: Arena,
    roots: Sequence[int],
    registry: Registry,
    slots: dict[tuple[int, int], int],
    location: float,
    endpoint: str = 'left',
) -> SortedConditions:
    """
    Assign every condition to exactly one eliminated-derivative slot.

    Args:
        arena: Arena holding the normalised condition trees.
        roots: One tree per condition.
        registry: Base variables and their orders.
        slots: Slot index of each eliminated derivative `(var, order)`.
        location: Endpoint at which the conditions hold.
        endpoint: 'left' for initial, 'right' for final conditions.

    Raises:
        UnderOrOverDeterminedConditions: The number of conditions differs from
            the number of slots, or some slot is fixed by no condition.
        UnsupportedOperation: A condition refers to a derivative outside the
            state.
    """
    candidates = [
        [slots[term] for term in condition_terms(arena, root, registry)]
        for root in roots
    ]
    owner: dict[int, int] = {}

    def augment(c: int, visited: set) -> bool:
        for s in candidates[c]:
            if s in visited:
                continue
            visited.add(s)
            if s not in owner or augment(owner[s], visited):
                owner[s] = c
                return True
        return False

    for c in range(len(roots)):
        augment(c, set())

    by_slot = {s: key for key, s in slots.items()}
    missing = [s for s in sorted(by_slot) if s not in owner]
    if missing:
        var, order = by_slot[missing[0]]
        raise UnderOrOverDeterminedConditions(
            f"Got {len(roots)} conditions for {len(slots)} eliminated derivatives; "
            f"no condition fixes slot {missing[0]}",
            variable=var,
            order=order,
        )
    if len(roots) != len(slots):
        matched = set(owner.values())
        extra = next(c for c in range(len(roots)) if c not in matched)
        var, order = by_slot[candidates[extra][0]] if candidates[extra] else (None, None)
        raise UnderOrOverDeterminedConditions(
            f"Got {len(roots)} conditions for {len(slots)} eliminated derivatives; "
            f"condition {extra} fixes no new slot",
            variable=var,
            order=order,
            condition=extra,
        )

    conditions = []
    for s in sorted(owner):
        var, order = by_slot[s]
        c = owner[s]
        conditions.append(Condition(c, var, order, s, roots[c], location))
        logger.debug("Condition %d fixes slot %d (variable %d, order %d)", c, s, var, order)
    return SortedConditions(tuple(conditions), location, endpoint)


def initial_state(
    arena: Arena,
    conditions: SortedConditions,
    registry: Registry,
    slots: dict[tuple[int, int], int],
    options: ReductionOptions = ReductionOptions(),
    y_guess: Optional[Array] = None,
) -> Array:
    """
    State vector satisfying every condition at its endpoint.

    The sorted conditions are compiled to a residual `g(y)` and `g(y) = 0` is
    solved with Newton-Raphson and a finite-difference Jacobian. Linear
    conditions converge in a single step.
    """
    n_state = len(slots)
    memo: dict[int, int] = {}
    roots = [substitute_slots(arena, h, registry, slots, memo) for h in conditions.handles]
    residual = VectorField(linearize(arena, roots), n_state, name='conditions')
    t = jnp.asarray(conditions.location)

    y0 = jnp.zeros(n_state) if y_guess is None else jnp.asarray(y_guess)
    root_finder = NewtonRaphson(tol=options.condition_tol, maxiter=options.condition_maxiter)
    y = root_finder(
        lambda y: residual(t, y),
        y0,
        lambda y: fd_jacobian(residual, t, y),
    )
    logger.debug("Initial state at t=%g: %s", conditions.location, y)
    return y
