"""
Node model for traced syntax trees.

Nodes are frozen dataclasses held in an `Arena` and addressed by integer
handles. Children are stored as handles, never as embedded values, and the
arena hash-conses every node it builds: constructing a structurally identical
node twice returns the same handle. The same sub-tree can therefore be shared
by any number of parents (the tree is really a DAG) without aliasing hazards,
since nothing is ever mutated after construction.

Per-node metadata (`NodeInfo`) is derived once, when the node is first built:

    diff_order: number of differentiations applied to each base variable
    height:     number of operations between the base variables and the node
    mask:       bitset of the base variables the node depends on
    coeff:      value handle multiplying a bare leaf/derivative, or None (= 1)
"""

import numbers
from dataclasses import dataclass
from typing import Any, Optional, Union

from ..errors import ConfigMismatch, UnsupportedOperation


UNARY_OPS = frozenset({
    'abs', 'acos', 'acosd', 'acosh', 'acot', 'acoth', 'acsc', 'acscd', 'acsch',
    'airy', 'asec', 'asecd', 'asech', 'asin', 'asind', 'asinh', 'atan', 'atand',
    'atanh', 'cos', 'cosd', 'cosh', 'cot', 'cotd', 'coth', 'csc', 'cscd',
    'csch', 'exp', 'expm1', 'log', 'log10', 'log2', 'log1p', 'pow2', 'sec',
    'secd', 'sech', 'sin', 'sind', 'sinh', 'sqrt', 'tan', 'tand', 'tanh',
    'uminus', 'uplus',
})

BINARY_OPS = frozenset({'plus', 'minus', 'times', 'rdivide', 'power'})


# Leaves

@dataclass(frozen=True)
class Leaf:
    """Base variable `var` of the registry."""
    var: int


@dataclass(frozen=True)
class Independent:
    """The independent variable (time, or the spatial coordinate of an IVP)."""


@dataclass(frozen=True)
class Constant:
    """External value `value` (handle into the arena value table) used on its own."""
    value: int


@dataclass(frozen=True)
class Slot:
    """Reference to entry `index` of the state vector, holding u_var^(order)."""
    index: int
    var: int
    order: int


# Binary operand shapes

@dataclass(frozen=True)
class ValueTree:
    value: int
    tree: int


@dataclass(frozen=True)
class TreeValue:
    tree: int
    value: int


@dataclass(frozen=True)
class TreeTree:
    left: int
    right: int


Operands = Union[ValueTree, TreeValue, TreeTree]


# Interior nodes

@dataclass(frozen=True)
class Unary:
    op: str
    child: int


@dataclass(frozen=True)
class Binary:
    op: str
    operands: Operands


@dataclass(frozen=True)
class Derivative:
    child: int
    order: int


Node = Union[Leaf, Independent, Constant, Slot, Unary, Binary, Derivative]


@dataclass(frozen=True)
class NodeInfo:
    diff_order: tuple[int, ...]
    height: int
    mask: int
    coeff: Optional[int] = None

    def depends_on(self, var: int) -> bool:
        return bool(self.mask >> var & 1)


def mask_vars(mask: int) -> tuple[int, ...]:
    """Indices of the base variables set in `mask`."""
    out = []
    i = 0
    while mask:
        if mask & 1:
            out.append(i)
        mask >>= 1
        i += 1
    return tuple(out)


def children(node: Node) -> tuple[int, ...]:
    """Child handles of `node`, left to right."""
    match node:
        case Unary(child=child) | Derivative(child=child):
            return (child,)
        case Binary(operands=ValueTree(tree=tree)) | Binary(operands=TreeValue(tree=tree)):
            return (tree,)
        case Binary(operands=TreeTree(left=left, right=right)):
            return (left, right)
        case _:
            return ()


class Arena:
    """
    Storage for the nodes and external values of one traced problem.

    Args:
        n_vars: Size of the variable registry. Every node built here carries
            a diff order vector of this length.
    """

    def __init__(self, n_vars: int):
        if n_vars < 1:
            raise ValueError("n_vars must be a positive integer")
        self.n_vars = n_vars
        self._nodes: list[Node] = []
        self._info: list[NodeInfo] = []
        self._index: dict[Node, int] = {}
        self._values: list[Any] = []
        self._value_index: dict[tuple, int] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, handle: int) -> Node:
        return self._nodes[handle]

    def info(self, handle: int) -> NodeInfo:
        return self._info[handle]

    def children(self, handle: int) -> tuple[int, ...]:
        return children(self._nodes[handle])

    # External values

    def value(self, v: Any) -> int:
        """Intern an external value (number or callable of t) and return its handle."""
        if isinstance(v, numbers.Number):
            key = ('num', type(v).__name__, v)
        else:
            key = ('obj', id(v))
        handle = self._value_index.get(key)
        if handle is None:
            handle = len(self._values)
            self._values.append(v)
            self._value_index[key] = handle
        return handle

    def get_value(self, handle: int) -> Any:
        return self._values[handle]

    def num_values(self) -> int:
        return len(self._values)

    # Node constructors

    def _zeros(self) -> tuple[int, ...]:
        return (0,) * self.n_vars

    def _check(self, handle: int) -> NodeInfo:
        if not 0 <= handle < len(self._nodes):
            raise ValueError(f"Invalid node handle {handle}")
        return self._info[handle]

    def _check_value(self, handle: int) -> None:
        if not 0 <= handle < len(self._values):
            raise ValueError(f"Invalid value handle {handle}")

    def _intern(self, node: Node, info: NodeInfo) -> int:
        handle = self._index.get(node)
        if handle is None:
            handle = len(self._nodes)
            self._nodes.append(node)
            self._info.append(info)
            self._index[node] = handle
        return handle

    def leaf(self, var: int) -> int:
        if not 0 <= var < self.n_vars:
            raise ConfigMismatch(
                f"Base variable outside a registry of size {self.n_vars}",
                variable=var,
            )
        return self._intern(Leaf(var), NodeInfo(self._zeros(), 0, 1 << var))

    def independent(self) -> int:
        return self._intern(Independent(), NodeInfo(self._zeros(), 0, 0))

    def constant(self, value: int) -> int:
        self._check_value(value)
        return self._intern(Constant(value), NodeInfo(self._zeros(), 0, 0))

    def slot(self, index: int, var: int, order: int) -> int:
        if not 0 <= var < self.n_vars:
            raise ConfigMismatch(
                f"Slot for a base variable outside a registry of size {self.n_vars}",
                variable=var,
            )
        return self._intern(
            Slot(index, var, order), NodeInfo(self._zeros(), 0, 1 << var)
        )

    def unary(self, op: str, child: int) -> int:
        if op not in UNARY_OPS:
            raise UnsupportedOperation("No tree rule for unary operation", operation=op)
        c = self._check(child)
        info = NodeInfo(c.diff_order, c.height + 1, c.mask, c.coeff)
        return self._intern(Unary(op, child), info)

    def binary(self, op: str, operands: Operands) -> int:
        if op not in BINARY_OPS:
            raise UnsupportedOperation("No tree rule for binary operation", operation=op)
        match operands:
            case ValueTree(value=value, tree=tree):
                self._check_value(value)
                t = self._check(tree)
                coeff = value if op == 'times' and self._is_bare(tree) else None
                info = NodeInfo(t.diff_order, t.height + 1, t.mask, coeff)
            case TreeValue(tree=tree, value=value):
                self._check_value(value)
                t = self._check(tree)
                coeff = None
                if self._is_bare(tree):
                    if op == 'times':
                        coeff = value
                    elif op == 'rdivide':
                        v = self._values[value]
                        if isinstance(v, numbers.Number) and v != 0:
                            coeff = self.value(1.0 / v)
                info = NodeInfo(t.diff_order, t.height + 1, t.mask, coeff)
            case TreeTree(left=left, right=right):
                a = self._check(left)
                b = self._check(right)
                diff_order = tuple(max(x, y) for x, y in zip(a.diff_order, b.diff_order))
                info = NodeInfo(diff_order, max(a.height, b.height) + 1, a.mask | b.mask)
            case _:
                raise TypeError(f"Unknown operand shape {operands!r}")
        return self._intern(Binary(op, operands), info)

    def derivative(self, child: int, order: int) -> int:
        if not isinstance(order, numbers.Integral) or order < 1:
            raise UnsupportedOperation(
                f"Derivative order must be a positive integer, got {order!r}",
                operation='diff',
            )
        c = self._check(child)
        diff_order = tuple(
            d + order if c.mask >> i & 1 else d
            for i, d in enumerate(c.diff_order)
        )
        info = NodeInfo(diff_order, c.height + 1, c.mask, c.coeff)
        return self._intern(Derivative(child, int(order)), info)

    def _is_bare(self, handle: int) -> bool:
        return isinstance(self._nodes[handle], (Leaf, Derivative, Slot))

    # Cross-arena copies

    def adopt(self, other: "Arena", handle: int) -> int:
        """Copy the sub-tree `handle` of `other` into this arena."""
        if other is self:
            return handle
        if other.n_vars != self.n_vars:
            raise ConfigMismatch(
                f"Cannot combine trees over registries of size "
                f"{self.n_vars} and {other.n_vars}"
            )
        copied: dict[int, int] = {}
        for h in postorder(other, [handle]):
            copied[h] = self._rebuild(other, other.node(h), copied)
        return copied[handle]

    def _rebuild(self, other: "Arena", node: Node, copied: dict[int, int]) -> int:
        match node:
            case Leaf(var=var):
                return self.leaf(var)
            case Independent():
                return self.independent()
            case Constant(value=value):
                return self.constant(self.value(other.get_value(value)))
            case Slot(index=index, var=var, order=order):
                return self.slot(index, var, order)
            case Unary(op=op, child=child):
                return self.unary(op, copied[child])
            case Derivative(child=child, order=order):
                return self.derivative(copied[child], order)
            case Binary(op=op, operands=ValueTree(value=value, tree=tree)):
                v = self.value(other.get_value(value))
                return self.binary(op, ValueTree(v, copied[tree]))
            case Binary(op=op, operands=TreeValue(tree=tree, value=value)):
                v = self.value(other.get_value(value))
                return self.binary(op, TreeValue(copied[tree], v))
            case Binary(op=op, operands=TreeTree(left=left, right=right)):
                return self.binary(op, TreeTree(copied[left], copied[right]))
        raise TypeError(f"Unknown node {node!r}")


def postorder(arena: Arena, roots) -> list[int]:
    """
    Handles reachable from `roots` in post-order, each exactly once.

    Children are emitted before their parents and left operands before right
    operands. Iterative, so deep trees do not hit the recursion limit.
    """
    seen: set[int] = set()
    order: list[int] = []
    for root in roots:
        if root in seen:
            continue
        stack = [(root, False)]
        while stack:
            handle, expanded = stack.pop()
            if expanded:
                order.append(handle)
                continue
            if handle in seen:
                continue
            seen.add(handle)
            stack.append((handle, True))
            for child in reversed(arena.children(handle)):
                if child not in seen:
                    stack.append((child, False))
    return order
