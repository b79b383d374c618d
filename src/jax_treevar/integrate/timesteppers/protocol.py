"""Interface shared by the time-stepping schemes."""

from typing import Protocol, runtime_checkable

from jax import Array

from ..custom_types import VectorFieldFn


@runtime_checkable
class StepperProtocol(Protocol):
    """
    A one-step method for the reduced system x' = f(t, x).

    `solve_ivp` and `solve_with_history` call `step` inside `jax.lax.while_loop`, so
    an implementation must be traceable: no Python control flow on `t`, `y`
    or `h`, and the returned state must keep the shape and dtype of `y`.
    """

    def step(self, fun: VectorFieldFn, t: Array, y: Array, h: Array, args: tuple = ()) -> Array:
        """
        Advance the state from t to t + h.

        Args:
            fun: Vector field with signature (t, y, *args) -> dy/dt, usually
                the `VectorField` generated by `to_first_order`.
            t: Time at the start of the step (0-d array).
            y: State at t, laid out as in `FirstOrderSystem.index`.
            h: Step size (0-d array). Negative values step backwards.
            args: Extra positional arguments forwarded to fun.
        """
        ...
