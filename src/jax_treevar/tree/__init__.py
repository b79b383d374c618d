"""
Traced syntax trees: node model, placeholder variables, printers and the
code generator.
"""

from .nodes import Arena, NodeInfo, postorder
from .domain import Domain
from .builder import Registry, TreeVar, placeholders, diff
from .printer import Program, linearize, to_infix, to_prefix, format_tree
from .codegen import VectorField, compile_program, compile_scalar, fd_jacobian

__all__ = [
    # Node model
    'Arena',
    'NodeInfo',
    'postorder',
    'Domain',

    # Tracing
    'Registry',
    'TreeVar',
    'placeholders',
    'diff',

    # Printing and code generation
    'Program',
    'linearize',
    'to_infix',
    'to_prefix',
    'format_tree',
    'VectorField',
    'compile_program',
    'compile_scalar',
    'fd_jacobian',
]
