"""
Numerical kernels for every traced operation.

Generated evaluators call these by operation name, so a traced `sind(u)`
evaluates exactly as `sind(1.0)` does when applied to a plain number.
"""

from typing import Callable

import jax
import jax.numpy as jnp
import numpy as np
from scipy import special


def _recip(f: Callable) -> Callable:
    return lambda x: 1.0 / f(x)


def _of_recip(f: Callable) -> Callable:
    return lambda x: f(1.0 / x)


def _degrees_in(f: Callable) -> Callable:
    return lambda x: f(jnp.deg2rad(x))


def _degrees_out(f: Callable) -> Callable:
    return lambda x: jnp.rad2deg(f(x))


def _airy(x):
    """Airy function Ai, evaluated by SciPy on the host."""
    x = jnp.asarray(x)
    dtype = jnp.result_type(x, float)
    return jax.pure_callback(
        lambda v: np.asarray(special.airy(v)[0], dtype=dtype),
        jax.ShapeDtypeStruct(x.shape, dtype),
        x.astype(dtype),
        vmap_method='broadcast_all',
    )


UNARY_KERNELS: dict[str, Callable] = {
    'abs': jnp.abs,
    'acos': jnp.arccos,
    'acosd': _degrees_out(jnp.arccos),
    'acosh': jnp.arccosh,
    'acot': _of_recip(jnp.arctan),
    'acoth': _of_recip(jnp.arctanh),
    'acsc': _of_recip(jnp.arcsin),
    'acscd': _degrees_out(_of_recip(jnp.arcsin)),
    'acsch': _of_recip(jnp.arcsinh),
    'airy': _airy,
    'asec': _of_recip(jnp.arccos),
    'asecd': _degrees_out(_of_recip(jnp.arccos)),
    'asech': _of_recip(jnp.arccosh),
    'asin': jnp.arcsin,
    'asind': _degrees_out(jnp.arcsin),
    'asinh': jnp.arcsinh,
    'atan': jnp.arctan,
    'atand': _degrees_out(jnp.arctan),
    'atanh': jnp.arctanh,
    'cos': jnp.cos,
    'cosd': _degrees_in(jnp.cos),
    'cosh': jnp.cosh,
    'cot': _recip(jnp.tan),
    'cotd': _degrees_in(_recip(jnp.tan)),
    'coth': _recip(jnp.tanh),
    'csc': _recip(jnp.sin),
    'cscd': _degrees_in(_recip(jnp.sin)),
    'csch': _recip(jnp.sinh),
    'exp': jnp.exp,
    'expm1': jnp.expm1,
    'log': jnp.log,
    'log10': jnp.log10,
    'log2': jnp.log2,
    'log1p': jnp.log1p,
    'pow2': jnp.exp2,
    'sec': _recip(jnp.cos),
    'secd': _degrees_in(_recip(jnp.cos)),
    'sech': _recip(jnp.cosh),
    'sin': jnp.sin,
    'sind': _degrees_in(jnp.sin),
    'sinh': jnp.sinh,
    'sqrt': jnp.sqrt,
    'tan': jnp.tan,
    'tand': _degrees_in(jnp.tan),
    'tanh': jnp.tanh,
    'uminus': jnp.negative,
    'uplus': jnp.positive,
}

# Infix templates; operands are never reassociated.
BINARY_TEMPLATES: dict[str, str] = {
    'plus': '{0} + {1}',
    'minus': '{0} - {1}',
    'times': '{0} * {1}',
    'rdivide': '{0} / {1}',
    'power': '{0} ** {1}',
}

BINARY_SYMBOLS: dict[str, str] = {
    'plus': '+',
    'minus': '-',
    'times': '*',
    'rdivide': '/',
    'power': '^',
}

# NumPy ufunc names accepted through `__array_ufunc__`.
UFUNC_ALIASES: dict[str, str] = {
    'absolute': 'abs',
    'fabs': 'abs',
    'arccos': 'acos',
    'arccosh': 'acosh',
    'arcsin': 'asin',
    'arcsinh': 'asinh',
    'arctan': 'atan',
    'arctanh': 'atanh',
    'cos': 'cos',
    'cosh': 'cosh',
    'exp': 'exp',
    'exp2': 'pow2',
    'expm1': 'expm1',
    'log': 'log',
    'log10': 'log10',
    'log1p': 'log1p',
    'log2': 'log2',
    'negative': 'uminus',
    'positive': 'uplus',
    'sin': 'sin',
    'sinh': 'sinh',
    'sqrt': 'sqrt',
    'tan': 'tan',
    'tanh': 'tanh',
    'add': 'plus',
    'subtract': 'minus',
    'multiply': 'times',
    'divide': 'rdivide',
    'true_divide': 'rdivide',
    'power': 'power',
}
