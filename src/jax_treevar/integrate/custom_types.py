"""Type aliases to improve type hint readability."""

from typing import Callable, TypeAlias
from jax import Array

VectorFieldFn: TypeAlias = Callable[..., Array]  # (t, y, *args) -> dy/dt
ResidualFn: TypeAlias = Callable[[Array], Array]
JacobianConstructor: TypeAlias = Callable[[Array], Array]
