"""
Explicit Runge-Kutta schemes.

Every method is an `ExplicitRungeKutta` built from a Butcher tableau. The
stage loop is unrolled while tracing, so a step of an s-stage method costs s
calls of the generated vector field and no Python work at run time.
"""

from dataclasses import dataclass
from typing import Callable

from flax import nnx
from jax import Array


@dataclass(frozen=True)
class ButcherTableau:
    """
    Coefficients of an explicit Runge-Kutta method.

    Attributes:
        a: Row i holds the i stage weights a_ij, j < i (row 0 is empty).
        b: Final weights, one per stage.
        c: Stage times as fractions of the step.
        order: Global order of accuracy.
    """
    a: tuple[tuple[float, ...], ...]
    b: tuple[float, ...]
    c: tuple[float, ...]
    order: int

    def __post_init__(self):
        s = len(self.b)
        if len(self.a) != s or len(self.c) != s:
            raise ValueError(f"Tableau needs {s} rows of a and {s} entries of c")
        for i, row in enumerate(self.a):
            if len(row) != i:
                raise ValueError(f"Row {i} of an explicit tableau must have {i} entries")
            if abs(sum(row) - self.c[i]) > 1e-12:
                raise ValueError(f"Row {i} of a does not sum to c[{i}] = {self.c[i]}")
        if abs(sum(self.b) - 1.0) > 1e-12:
            raise ValueError("Weights b must sum to one")

    @property
    def stages(self) -> int:
        return len(self.b)


EULER = ButcherTableau(a=((),), b=(1.0,), c=(0.0,), order=1)

MIDPOINT = ButcherTableau(a=((), (0.5,)), b=(0.0, 1.0), c=(0.0, 0.5), order=2)

HEUN = ButcherTableau(a=((), (1.0,)), b=(0.5, 0.5), c=(0.0, 1.0), order=2)

CLASSIC_RK4 = ButcherTableau(
    a=((), (0.5,), (0.0, 0.5), (0.0, 0.0, 1.0)),
    b=(1.0 / 6.0, 1.0 / 3.0, 1.0 / 3.0, 1.0 / 6.0),
    c=(0.0, 0.5, 0.5, 1.0),
    order=4,
)


class ExplicitRungeKutta(nnx.Module):
    """
    Explicit Runge-Kutta method defined by a Butcher tableau.

    $$ k_i = f(t_n + c_i h, y_n + h \\sum_{j<i} a_{ij} k_j), \\quad
    y_{n+1} = y_n + h \\sum_i b_i k_i $$

    Zero weights are skipped, so sparse tableaux cost no extra arithmetic.

    Implements: StepperProtocol
    """

    def __init__(self, tableau: ButcherTableau):
        self.tableau = tableau

    @property
    def order(self) -> int:
        return self.tableau.order

    def step(
        self,
        fun: Callable,
        t: Array,
        y: Array,
        h: Array,
        args: tuple = ()
    ) -> Array:
        tab = self.tableau
        k = []
        for a_i, c_i in zip(tab.a, tab.c):
            y_i = y
            for a_ij, k_j in zip(a_i, k):
                if a_ij:
                    y_i = y_i + (a_ij * h) * k_j
            k.append(fun(t + c_i * h, y_i, *args))

        increment = sum(b_i * k_i for b_i, k_i in zip(tab.b, k) if b_i)
        return y + h * increment


class ForwardEuler(ExplicitRungeKutta):
    """Forward Euler, $y_{n+1} = y_n + h f(t_n, y_n)$. First order."""

    def __init__(self):
        super().__init__(EULER)


class Midpoint(ExplicitRungeKutta):
    """Explicit midpoint rule. Second order, two stages."""

    def __init__(self):
        super().__init__(MIDPOINT)


class Heun(ExplicitRungeKutta):
    """Heun's method (explicit trapezoidal rule). Second order, two stages."""

    def __init__(self):
        super().__init__(HEUN)


class RK4(ExplicitRungeKutta):
    """Classical fourth order Runge-Kutta method."""

    def __init__(self):
        super().__init__(CLASSIC_RK4)
