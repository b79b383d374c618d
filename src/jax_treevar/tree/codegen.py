"""
Code generator: compiles a linearized `Program` into a JAX evaluator.

The generated function has the signature `(t, x) -> dx`, built from one
statement per instruction, for example

    def vector_field(t, x):
        r0 = sin(x[..., 0])
        r1 = uminus(r0)
        return _stack([x[..., 1], r1], t, x)

Operands are combined exactly in the traced nesting; nothing is reassociated
or folded. State vectors may carry leading batch dimensions, `x.shape ==
(..., n)`, with `t` broadcast against them, so a single call can evaluate many
perturbed states (see `fd_jacobian`).
"""

import logging
import numbers
from typing import Callable, Optional

from jax import Array
import jax.numpy as jnp

from .functions import BINARY_TEMPLATES, UNARY_KERNELS
from .printer import ConstRef, Operand, Program, Register, StateRef, TimeRef

logger = logging.getLogger(__name__)


def _stack(outputs: list, t: Array, x: Array) -> Array:
    """Broadcast every output against the batch shape and stack the last axis."""
    batch = jnp.broadcast_shapes(jnp.shape(t), jnp.shape(x)[:-1])
    zero = jnp.zeros(batch, dtype=jnp.result_type(x, float))
    return jnp.stack([out + zero for out in outputs], axis=-1)


def _scalar(output, t: Array) -> Array:
    return output + jnp.zeros(jnp.shape(t), dtype=jnp.result_type(t, float))


def _call_external(f: Callable, t: Array) -> Array:
    return jnp.asarray(f(t))


def _operand_source(arg: Operand) -> str:
    match arg:
        case Register(index=index):
            return f"r{index}"
        case StateRef(slot=slot):
            return f"x[..., {slot}]"
        case TimeRef():
            return "t"
        case ConstRef(value=value):
            return f"c{value}"
    raise TypeError(f"Unknown operand {arg!r}")


def _program_source(program: Program, name: str, epilogue: str) -> tuple[str, dict]:
    namespace: dict = {'jnp': jnp, '_stack': _stack, '_scalar': _scalar}
    namespace.update(UNARY_KERNELS)

    lines = [f"def {name}(t, x):"]
    for value, obj in program.symbols.constants:
        if isinstance(obj, numbers.Number):
            namespace[f"c{value}"] = obj
        else:
            # External functions of the independent variable
            namespace[f"_f{value}"] = obj
            namespace['_call_external'] = _call_external
            lines.append(f"    c{value} = _call_external(_f{value}, t)")
    for ins in program.instructions:
        args = [_operand_source(a) for a in ins.args]
        if ins.op in BINARY_TEMPLATES:
            expr = BINARY_TEMPLATES[ins.op].format(*args)
        else:
            expr = f"{ins.op}({', '.join(args)})"
        lines.append(f"    r{ins.target} = {expr}")
    outputs = ', '.join(_operand_source(o) for o in program.outputs)
    lines.append("    " + epilogue.format(outputs=outputs))
    return '\n'.join(lines) + '\n', namespace


def _compile(source: str, namespace: dict, name: str) -> Callable:
    code = compile(source, f"<jax_treevar:{name}>", 'exec')
    exec(code, namespace)
    return namespace[name]


class VectorField:
    """
    Compiled right-hand side `(t, x) -> dx/dt` of a first-order system.

    Attributes:
        n_state: Length of the state vector.
        source: Generated Python source of the evaluator.
    """

    def __init__(self, program: Program, n_state: int, name: str = 'vector_field'):
        if len(program.outputs) != n_state:
            raise ValueError(
                f"Program has {len(program.outputs)} outputs for a state of size {n_state}"
            )
        bad = [s for s in program.symbols.slots if not 0 <= s < n_state]
        if bad:
            raise ValueError(f"Program reads state slots {bad} outside [0, {n_state})")
        self.program = program
        self.n_state = n_state
        self.source, namespace = _program_source(
            program, name, "return _stack([{outputs}], t, x)"
        )
        self._fun = _compile(self.source, namespace, name)
        logger.debug("Generated evaluator:\n%s", self.source)

    def __call__(self, t, x) -> Array:
        x = jnp.asarray(x)
        if x.shape[-1:] != (self.n_state,):
            raise ValueError(
                f"State must have trailing dimension {self.n_state}, got shape {x.shape}"
            )
        return self._fun(jnp.asarray(t), x)

    def jacobian(self, t, x, eps: Optional[float] = None) -> Array:
        """Finite-difference estimate of d(dx/dt)/dx at a single state."""
        return fd_jacobian(self, t, x, eps)

    def __repr__(self) -> str:
        return f"VectorField(n_state={self.n_state})"


def compile_program(program: Program, n_state: int) -> VectorField:
    """Compile `program` into a vector field over a state of size `n_state`."""
    return VectorField(program, n_state)


def compile_scalar(program: Program, name: str = 'scalar_fn') -> Callable:
    """
    Compile a single-output program into a function of `(t, x)`.

    The output is broadcast to the shape of `t`; programs that do not read the
    state accept `x=None`.
    """
    if len(program.outputs) != 1:
        raise ValueError(f"Expected a single output, got {len(program.outputs)}")
    source, namespace = _program_source(program, name, "return _scalar({outputs}, t)")
    fun = _compile(source, namespace, name)

    def scalar_fn(t, x=None):
        return fun(jnp.asarray(t), None if x is None else jnp.asarray(x))

    scalar_fn.source = source
    return scalar_fn


def fd_jacobian(
    fun: Callable,
    t,
    y: Array,
    eps: Optional[float] = None,
    args: tuple = (),
) -> Array:
    """
    Forward-difference Jacobian of `fun(t, y, *args)` with respect to `y`.

    All `n` perturbed states are evaluated in one batched call, so `fun` must
    accept states of shape `(n, n)` (every generated `VectorField` does).

    Returns:
        Array `J` of shape `(n, n)` with `J[i, j] ~ d fun_i / d y_j`.
    """
    y = jnp.asarray(y)
    if eps is None:
        eps = jnp.sqrt(jnp.finfo(jnp.result_type(y, float)).eps)
    h = eps * jnp.maximum(1.0, jnp.abs(y))
    f0 = fun(t, y, *args)
    perturbed = y[None, :] + jnp.diag(h)
    f1 = fun(t, perturbed, *args)
    return ((f1 - f0[None, :]) / h[:, None]).T

