"""
Derivative normalisation.

Order reduction needs every derivative to sit directly on a base variable,
`diff(u, k)`. Users may differentiate compound expressions, though, e.g.
`diff(u + 2*v)` or `diff(diff(u))`. `normalize` pushes such derivatives
through linear structure:

    diff(diff(u, j), k)      -> diff(u, j + k)
    diff(a +/- b, k)         -> diff(a, k) +/- diff(b, k)
    diff(-a, k)              -> -diff(a, k)
    diff(c * a, k)           -> c * diff(a, k)        (c a number)
    diff(a / c, k)           -> diff(a, k) / c        (c a number)
    diff(t, 1)               -> 1
    diff(c, k)               -> 0

Anything else (the derivative of a nonlinear function, of a product of two
traced expressions, or of an external function of t) would need symbolic
differentiation and raises `UnsupportedOperation`.
"""

import numbers

from ..errors import UnsupportedOperation
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
    mask_vars,
    postorder,
)


class _Normalizer:

    def __init__(self, arena: Arena):
        self.arena = arena
        self.done: dict[int, int] = {}
        self.pushed: dict[tuple[int, int], int] = {}

    def _fail(self, handle: int, operation: str):
        vars_ = mask_vars(self.arena.info(handle).mask)
        raise UnsupportedOperation(
            "Cannot differentiate this expression without symbolic differentiation",
            operation=operation,
            variable=vars_[0] if vars_ else None,
        )

    def _is_number(self, value: int) -> bool:
        return isinstance(self.arena.get_value(value), numbers.Number)

    def _zero(self) -> int:
        return self.arena.constant(self.arena.value(0.0))

    def push(self, handle: int, k: int) -> int:
        """diff(handle, k) for an already normalised `handle`."""
        key = (handle, k)
        if key in self.pushed:
            return self.pushed[key]
        arena = self.arena
        node = arena.node(handle)
        match node:
            case Leaf():
                out = arena.derivative(handle, k)
            case Derivative(child=child, order=order):
                out = arena.derivative(child, order + k)
            case Independent():
                out = arena.constant(arena.value(1.0)) if k == 1 else self._zero()
            case Constant():
                out = self._zero()
            case Unary(op='uminus' | 'uplus', child=child):
                out = arena.unary(node.op, self.push(child, k))
            case Binary(op='plus' | 'minus', operands=TreeTree(left=left, right=right)):
                out = arena.binary(node.op, TreeTree(self.push(left, k), self.push(right, k)))
            case (
                Binary(op='plus', operands=ValueTree(value=value, tree=tree))
                | Binary(op='plus' | 'minus', operands=TreeValue(tree=tree, value=value))
            ):
                if not self._is_number(value):
                    self._fail(handle, node.op)
                out = self.push(tree, k)
            case Binary(op='minus', operands=ValueTree(value=value, tree=tree)):
                if not self._is_number(value):
                    self._fail(handle, node.op)
                out = arena.unary('uminus', self.push(tree, k))
            case Binary(op='times', operands=ValueTree(value=value, tree=tree)):
                if not self._is_number(value):
                    self._fail(handle, node.op)
                out = arena.binary('times', ValueTree(value, self.push(tree, k)))
            case Binary(op='times' | 'rdivide', operands=TreeValue(tree=tree, value=value)):
                if not self._is_number(value):
                    self._fail(handle, node.op)
                out = arena.binary(node.op, TreeValue(self.push(tree, k), value))
            case Unary(op=op) | Binary(op=op):
                self._fail(handle, op)
            case _:
                self._fail(handle, 'diff')
        self.pushed[key] = out
        return out

    def __call__(self, root: int) -> int:
        arena = self.arena
        for handle in postorder(arena, [root]):
            if handle in self.done:
                continue
            node = arena.node(handle)
            match node:
                case Leaf() | Slot() | Independent() | Constant():
                    out = handle
                case Unary(op=op, child=child):
                    out = arena.unary(op, self.done[child])
                case Derivative(child=child, order=order):
                    out = self.push(self.done[child], order)
                case Binary(op=op, operands=ValueTree(value=value, tree=tree)):
                    out = arena.binary(op, ValueTree(value, self.done[tree]))
                case Binary(op=op, operands=TreeValue(tree=tree, value=value)):
                    out = arena.binary(op, TreeValue(self.done[tree], value))
                case Binary(op=op, operands=TreeTree(left=left, right=right)):
                    out = arena.binary(op, TreeTree(self.done[left], self.done[right]))
            self.done[handle] = out
        return self.done[root]


def normalize(arena: Arena, roots) -> list[int]:
    """Normalised copies of the trees at `roots`; derivatives wrap base variables only."""
    normalizer = _Normalizer(arena)
    return [normalizer(root) for root in roots]
