"""
Tree builder: placeholder variables that record operations instead of
evaluating them.

A differential operator written as a Python function, e.g.

    def op(t, u):
        return u.diff(2) + sin(u)

is traced by calling it once with `TreeVar` placeholders. Every arithmetic
operator and elementary function returns a new `TreeVar` pointing at a new node
of the shared arena; nothing is evaluated numerically.
"""

import numbers
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import ConfigMismatch, UnsupportedOperation
from .domain import Domain
from .functions import UFUNC_ALIASES, UNARY_KERNELS
from .nodes import (
    Arena,
    NodeInfo,
    TreeTree,
    TreeValue,
    ValueTree,
    mask_vars,
)


@dataclass(frozen=True)
class Registry:
    """Ordered base variables and their declared maximum derivative orders."""

    orders: tuple[int, ...]
    names: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.names:
            object.__setattr__(
                self, 'names', tuple(f"u{i}" for i in range(len(self.orders)))
            )
        if len(self.names) != len(self.orders):
            raise ConfigMismatch(
                f"Registry has {len(self.names)} names but {len(self.orders)} orders"
            )

    @property
    def size(self) -> int:
        return len(self.orders)

    @property
    def offsets(self) -> tuple[int, ...]:
        """State-vector offset of each base variable."""
        out, total = [], 0
        for n in self.orders:
            out.append(total)
            total += n
        return tuple(out)

    @property
    def n_state(self) -> int:
        return sum(self.orders)


class TreeVar:
    """
    Placeholder for a base variable (or an expression of base variables)
    while tracing a differential operator.

    Args:
        arena: Arena holding the nodes of the traced problem.
        handle: Node of this expression.
        domain: Domain of the problem.
    """

    # Make NumPy scalars defer to our reflected operators.
    __array_priority__ = 1000

    def __init__(self, arena: Arena, handle: int, domain: Domain):
        self.arena = arena
        self.handle = handle
        self.domain = domain

    @property
    def info(self) -> NodeInfo:
        return self.arena.info(self.handle)

    @property
    def diff_order(self) -> tuple[int, ...]:
        return self.info.diff_order

    @property
    def height(self) -> int:
        return self.info.height

    @property
    def mask(self) -> int:
        return self.info.mask

    @property
    def variables(self) -> tuple[int, ...]:
        return mask_vars(self.info.mask)

    def _first_var(self) -> Optional[int]:
        vars_ = self.variables
        return vars_[0] if vars_ else None

    def _new(self, handle: int, domain: Optional[Domain] = None) -> "TreeVar":
        return TreeVar(self.arena, handle, domain if domain is not None else self.domain)

    # Unary operations

    def apply(self, op: str) -> "TreeVar":
        """Apply the elementary function `op`."""
        if op not in UNARY_KERNELS:
            raise UnsupportedOperation(
                "No tree rule for function", operation=op, variable=self._first_var()
            )
        return self._new(self.arena.unary(op, self.handle))

    def diff(self, k: int = 1) -> "TreeVar":
        """k-th derivative with respect to the independent variable."""
        if isinstance(k, bool) or not isinstance(k, numbers.Integral) or k < 0:
            raise UnsupportedOperation(
                f"Derivative order must be a non-negative integer, got {k!r}",
                operation='diff',
                variable=self._first_var(),
            )
        if k == 0:
            return self
        return self._new(self.arena.derivative(self.handle, int(k)))

    def __getattr__(self, name: str):
        # u.sin(), u.exp(), ...
        if name in UNARY_KERNELS:
            return lambda: self.apply(name)
        raise AttributeError(
            f"{type(self).__name__!r} object has no attribute {name!r}"
        )

    def __neg__(self):
        return self.apply('uminus')

    def __pos__(self):
        return self.apply('uplus')

    def __abs__(self):
        return self.apply('abs')

    # Binary operations

    def __add__(self, other):
        return combine('plus', self, other)

    def __radd__(self, other):
        return combine('plus', other, self)

    def __sub__(self, other):
        return combine('minus', self, other)

    def __rsub__(self, other):
        return combine('minus', other, self)

    def __mul__(self, other):
        return combine('times', self, other)

    def __rmul__(self, other):
        return combine('times', other, self)

    def __truediv__(self, other):
        return combine('rdivide', self, other)

    def __rtruediv__(self, other):
        return combine('rdivide', other, self)

    def __pow__(self, other):
        return combine('power', self, other)

    def __rpow__(self, other):
        return combine('power', other, self)

    def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
        name = getattr(ufunc, '__name__', repr(ufunc))
        op = UFUNC_ALIASES.get(name)
        if method != '__call__' or kwargs or op is None:
            raise UnsupportedOperation(
                "No tree rule for NumPy ufunc", operation=f"{name}.{method}",
                variable=self._first_var(),
            )
        if len(inputs) == 1:
            return self.apply(op)
        return combine(op, *inputs)

    # Operations without a tree rule

    def _unsupported(self, name: str):
        raise UnsupportedOperation(
            "No tree rule for operation on a traced variable",
            operation=name,
            variable=self._first_var(),
        )

    def __bool__(self):
        self._unsupported('bool')

    def __float__(self):
        self._unsupported('float')

    def __int__(self):
        self._unsupported('int')

    def __index__(self):
        self._unsupported('index')

    def __getitem__(self, key):
        self._unsupported('getitem')

    def __iter__(self):
        self._unsupported('iter')

    def __eq__(self, other):
        self._unsupported('eq')

    def __ne__(self, other):
        self._unsupported('ne')

    __hash__ = object.__hash__

    def __lt__(self, other):
        self._unsupported('lt')

    def __le__(self, other):
        self._unsupported('le')

    def __gt__(self, other):
        self._unsupported('gt')

    def __ge__(self, other):
        self._unsupported('ge')

    def __floordiv__(self, other):
        self._unsupported('floordiv')

    def __rfloordiv__(self, other):
        self._unsupported('floordiv')

    def __mod__(self, other):
        self._unsupported('mod')

    def __rmod__(self, other):
        self._unsupported('mod')

    def __matmul__(self, other):
        self._unsupported('matmul')

    def __rmatmul__(self, other):
        self._unsupported('matmul')

    def __repr__(self) -> str:
        from .printer import to_infix
        return f"TreeVar({to_infix(self.arena, self.handle)})"


def _external_value(op: str, value: Any, tree: TreeVar) -> Any:
    """Validate a non-traced operand: a real scalar or a callable of t."""
    if isinstance(value, numbers.Real):
        return value
    if getattr(value, 'shape', None) == () and hasattr(value, 'dtype'):
        # NumPy / JAX 0-d arrays
        return float(value)
    if callable(value):
        return value
    raise UnsupportedOperation(
        f"Unsupported operand of type {type(value).__name__}",
        operation=op,
        variable=tree._first_var(),
    )


def _value_domain(domain: Domain, value: Any) -> Domain:
    other = getattr(value, 'domain', None)
    if other is None or callable(other):
        return domain
    return domain.union(Domain.create(other))


def combine(op: str, left: Any, right: Any) -> TreeVar:
    """
    Build the binary node `op(left, right)`.

    Exactly one of three shapes applies: value/tree, tree/value or tree/tree.
    """
    if isinstance(left, TreeVar) and isinstance(right, TreeVar):
        arena = left.arena
        right_handle = arena.adopt(right.arena, right.handle)
        domain = left.domain.union(right.domain)
        handle = arena.binary(op, TreeTree(left.handle, right_handle))
        return TreeVar(arena, handle, domain)
    if isinstance(left, TreeVar):
        value = _external_value(op, right, left)
        handle = left.arena.binary(op, TreeValue(left.handle, left.arena.value(value)))
        return TreeVar(left.arena, handle, _value_domain(left.domain, value))
    if isinstance(right, TreeVar):
        value = _external_value(op, left, right)
        handle = right.arena.binary(op, ValueTree(right.arena.value(value), right.handle))
        return TreeVar(right.arena, handle, _value_domain(right.domain, value))
    raise UnsupportedOperation("Binary operation without a traced operand", operation=op)


def placeholders(n_vars: int, domain) -> tuple[TreeVar, tuple[TreeVar, ...]]:
    """
    Fresh placeholders for tracing: the independent variable and one
    `TreeVar` per base variable, all sharing one arena.
    """
    domain = Domain.create(domain)
    arena = Arena(n_vars)
    t = TreeVar(arena, arena.independent(), domain)
    base = tuple(TreeVar(arena, arena.leaf(i), domain) for i in range(n_vars))
    return t, base


def diff(f: TreeVar, k: int = 1) -> TreeVar:
    """k-th derivative of a traced expression."""
    if not isinstance(f, TreeVar):
        raise UnsupportedOperation(
            f"Cannot differentiate an untraced {type(f).__name__}", operation='diff'
        )
    return f.diff(k)
