"""
Printer / serializer for traced trees.

`linearize` flattens one or more trees into a `Program`: a straight-line
instruction list in evaluation order, plus the symbols (state slots, the
independent variable and external constants) it reads. Shared sub-trees are
emitted once, however many parents or roots refer to them.

`to_infix`, `to_prefix` and `format_tree` are human-readable renderings used
for debugging and error messages.
"""

import numbers
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

from ..errors import UnsupportedOperation
from .functions import BINARY_SYMBOLS
from .nodes import (
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


@dataclass(frozen=True)
class Register:
    index: int


@dataclass(frozen=True)
class StateRef:
    slot: int


@dataclass(frozen=True)
class TimeRef:
    pass


@dataclass(frozen=True)
class ConstRef:
    value: int


Operand = Union[Register, StateRef, TimeRef, ConstRef]


@dataclass(frozen=True)
class Instruction:
    """`r[target] = op(*args)`"""
    target: int
    op: str
    args: tuple[Operand, ...]


@dataclass(frozen=True)
class SymbolTable:
    """State slots and external constants read by a program."""
    slots: tuple[int, ...]
    constants: tuple[tuple[int, Any], ...]
    uses_time: bool


@dataclass(frozen=True)
class Program:
    instructions: tuple[Instruction, ...]
    outputs: tuple[Operand, ...]
    symbols: SymbolTable

    @property
    def n_registers(self) -> int:
        return len(self.instructions)


def linearize(
    arena: Arena,
    roots: Sequence[int],
    leaf_slots: Optional[Mapping[int, int]] = None,
) -> Program:
    """
    Flatten the trees at `roots` into a single straight-line program.

    Args:
        arena: Arena holding the trees.
        roots: One handle per output.
        leaf_slots: State slot read for each bare base variable. Defaults to
            slot `i` for variable `i`.

    Returns:
        Program whose `outputs[k]` is the value of `roots[k]`.

    Raises:
        UnsupportedOperation: A derivative node survived order reduction.
    """
    operand_of: dict[int, Operand] = {}
    instructions: list[Instruction] = []
    slots: set[int] = set()
    constants: dict[int, Any] = {}
    uses_time = False

    def const(value: int) -> ConstRef:
        constants[value] = arena.get_value(value)
        return ConstRef(value)

    def emit(op: str, args: tuple[Operand, ...]) -> Register:
        reg = Register(len(instructions))
        instructions.append(Instruction(reg.index, op, args))
        return reg

    for handle in postorder(arena, roots):
        node = arena.node(handle)
        match node:
            case Leaf(var=var):
                slot = leaf_slots[var] if leaf_slots is not None else var
                slots.add(slot)
                operand_of[handle] = StateRef(slot)
            case Slot(index=index):
                slots.add(index)
                operand_of[handle] = StateRef(index)
            case Independent():
                uses_time = True
                operand_of[handle] = TimeRef()
            case Constant(value=value):
                operand_of[handle] = const(value)
            case Unary(op=op, child=child):
                operand_of[handle] = emit(op, (operand_of[child],))
            case Binary(op=op, operands=ValueTree(value=value, tree=tree)):
                operand_of[handle] = emit(op, (const(value), operand_of[tree]))
            case Binary(op=op, operands=TreeValue(tree=tree, value=value)):
                operand_of[handle] = emit(op, (operand_of[tree], const(value)))
            case Binary(op=op, operands=TreeTree(left=left, right=right)):
                operand_of[handle] = emit(op, (operand_of[left], operand_of[right]))
            case Derivative():
                info = arena.info(handle)
                vars_ = mask_vars(info.mask)
                raise UnsupportedOperation(
                    "Derivative left in a tree that is being lowered to an evaluator",
                    operation='diff',
                    variable=vars_[0] if vars_ else None,
                )

    symbols = SymbolTable(
        slots=tuple(sorted(slots)),
        constants=tuple(sorted(constants.items())),
        uses_time=uses_time,
    )
    return Program(
        instructions=tuple(instructions),
        outputs=tuple(operand_of[r] for r in roots),
        symbols=symbols,
    )


# Human-readable renderings

def _value_label(value: Any) -> str:
    if isinstance(value, numbers.Number):
        return f"{value:g}" if isinstance(value, float) else str(value)
    return getattr(value, '__name__', type(value).__name__)


def _leaf_label(arena: Arena, node, names: Optional[Sequence[str]]) -> Optional[str]:
    match node:
        case Constant(value=value):
            return _value_label(arena.get_value(value))
        case Leaf(var=var):
            return names[var] if names else f"u{var}"
        case Independent():
            return 't'
        case Slot(index=index):
            return f"x[{index}]"
    return None


def to_infix(arena: Arena, root: int, names: Optional[Sequence[str]] = None) -> str:
    """Infix string of the tree at `root`, e.g. `diff(u, 2) + sin(u)`."""
    text: dict[int, str] = {}
    for handle in postorder(arena, [root]):
        node = arena.node(handle)
        label = _leaf_label(arena, node, names)
        if label is not None:
            text[handle] = label
            continue
        match node:
            case Unary(op='uminus' | 'uplus' as op, child=child):
                inner = text[child]
                if inner.startswith(('-', '+')):
                    inner = f"({inner})"
                text[handle] = f"{'-' if op == 'uminus' else '+'}{inner}"
            case Unary(op=op, child=child):
                text[handle] = f"{op}({_strip(text[child])})"
            case Derivative(child=child, order=order):
                inner = _strip(text[child])
                text[handle] = f"diff({inner})" if order == 1 else f"diff({inner}, {order})"
            case Binary(op=op, operands=operands):
                match operands:
                    case ValueTree(value=value, tree=tree):
                        a, b = _value_label(arena.get_value(value)), text[tree]
                    case TreeValue(tree=tree, value=value):
                        a, b = text[tree], _value_label(arena.get_value(value))
                    case TreeTree(left=left, right=right):
                        a, b = text[left], text[right]
                text[handle] = f"({a} {BINARY_SYMBOLS[op]} {b})"
    return _strip(text[root])


def _strip(s: str) -> str:
    if s.startswith('(') and s.endswith(')'):
        depth = 0
        for i, ch in enumerate(s):
            depth += ch == '('
            depth -= ch == ')'
            if depth == 0 and i < len(s) - 1:
                return s
        return s[1:-1]
    return s


def to_prefix(arena: Arena, root: int, names: Optional[Sequence[str]] = None):
    """Nested prefix form, e.g. `['plus', ['diff', 'u0', 2], ['sin', 'u0']]`."""
    out: dict[int, Any] = {}
    for handle in postorder(arena, [root]):
        node = arena.node(handle)
        label = _leaf_label(arena, node, names)
        if label is not None:
            out[handle] = label
            continue
        match node:
            case Unary(op=op, child=child):
                out[handle] = [op, out[child]]
            case Derivative(child=child, order=order):
                out[handle] = ['diff', out[child], order]
            case Binary(op=op, operands=ValueTree(value=value, tree=tree)):
                out[handle] = [op, arena.get_value(value), out[tree]]
            case Binary(op=op, operands=TreeValue(tree=tree, value=value)):
                out[handle] = [op, out[tree], arena.get_value(value)]
            case Binary(op=op, operands=TreeTree(left=left, right=right)):
                out[handle] = [op, out[left], out[right]]
    return out[root]


def format_tree(
    arena: Arena,
    root: int,
    names: Optional[Sequence[str]] = None,
    indent: str = '  ',
) -> str:
    """Indented dump of a tree, one node per line with its metadata."""
    lines = []
    stack = [(root, 0)]
    while stack:
        handle, depth = stack.pop()
        node = arena.node(handle)
        info = arena.info(handle)
        label = _leaf_label(arena, node, names)
        if label is None:
            match node:
                case Unary(op=op) | Binary(op=op):
                    label = op
                case Derivative(order=order):
                    label = f"diff[{order}]"
        if isinstance(node, Binary):
            match node.operands:
                case ValueTree(value=value):
                    label += f" ({_value_label(arena.get_value(value))}, .)"
                case TreeValue(value=value):
                    label += f" (., {_value_label(arena.get_value(value))})"
        ids = ''.join('1' if info.depends_on(i) else '0' for i in range(arena.n_vars))
        line = (
            f"{indent * depth}{label}  diffOrder={list(info.diff_order)} "
            f"height={info.height} ID={ids}"
        )
        if info.coeff is not None:
            line += f" coeff={_value_label(arena.get_value(info.coeff))}"
        lines.append(line)
        for child in reversed(arena.children(handle)):
            stack.append((child, depth + 1))
    return '\n'.join(lines)
