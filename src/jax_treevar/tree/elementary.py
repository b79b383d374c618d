"""
Elementary functions that accept traced variables as well as plain numbers.

Traced arguments record a unary node; anything else is evaluated directly
with the same kernel the generated evaluators use.
"""

from typing import Callable

from .builder import TreeVar
from .functions import UNARY_KERNELS


def _elementary(op: str) -> Callable:
    kernel = UNARY_KERNELS[op]

    def fn(x):
        if isinstance(x, TreeVar):
            return x.apply(op)
        return kernel(x)

    fn.__name__ = op
    fn.__qualname__ = op
    fn.__doc__ = f"Elementary function `{op}` of a traced variable or a number."
    return fn


abs = _elementary('abs')
acos = _elementary('acos')
acosd = _elementary('acosd')
acosh = _elementary('acosh')
acot = _elementary('acot')
acoth = _elementary('acoth')
acsc = _elementary('acsc')
acscd = _elementary('acscd')
acsch = _elementary('acsch')
airy = _elementary('airy')
asec = _elementary('asec')
asecd = _elementary('asecd')
asech = _elementary('asech')
asin = _elementary('asin')
asind = _elementary('asind')
asinh = _elementary('asinh')
atan = _elementary('atan')
atand = _elementary('atand')
atanh = _elementary('atanh')
cos = _elementary('cos')
cosd = _elementary('cosd')
cosh = _elementary('cosh')
cot = _elementary('cot')
cotd = _elementary('cotd')
coth = _elementary('coth')
csc = _elementary('csc')
cscd = _elementary('cscd')
csch = _elementary('csch')
exp = _elementary('exp')
expm1 = _elementary('expm1')
log = _elementary('log')
log10 = _elementary('log10')
log2 = _elementary('log2')
log1p = _elementary('log1p')
pow2 = _elementary('pow2')
sec = _elementary('sec')
secd = _elementary('secd')
sech = _elementary('sech')
sin = _elementary('sin')
sind = _elementary('sind')
sinh = _elementary('sinh')
sqrt = _elementary('sqrt')
tan = _elementary('tan')
tand = _elementary('tand')
tanh = _elementary('tanh')
