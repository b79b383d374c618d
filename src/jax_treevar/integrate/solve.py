import time
from typing import Callable, Tuple, Optional

import jax
from jax import Array
import jax.numpy as jnp

from .timesteppers import StepperProtocol


def solve_ivp(
    fun: Callable,
    t_span: Tuple[float, float],
    y0: Array,
    method: StepperProtocol,
    step_size: float,
    args: tuple = ()
) -> Tuple[Array, Array]:
    """
    Integrate dy/dt = fun(t, y, *args) over the time interval t_span.

    Args:
        fun: Callable right-hand side of system dy/dt = fun(t, y, *args),
            e.g. the `fun` of a `FirstOrderSystem`
        t_span: (t_start, t_end) time interval
        y0: Initial state vector
        method: Time-stepping method instance (e.g., RK4(), BackwardEuler())
        step_size: Time step size
        args: Additional arguments to pass to fun

    Returns:
        t_final: Final time
        y_final: State at t_end

    Example usage:
    ```python
    import jax.numpy as jnp
    from jax_treevar import to_first_order, sin
    from jax_treevar.integrate import solve_ivp, RK4

    # Pendulum: u'' + sin(u) = 0
    system = to_first_order(lambda t, u: u.diff(2) + sin(u), (0.0, 10.0))

    y0 = jnp.array([1.0, 0.0])
    t, y = solve_ivp(system.fun, (0.0, 10.0), y0, RK4(), step_size=0.01)
    ```
    """
    t_start, t_end = t_span
    y0 = jnp.asarray(y0)
    t0 = jnp.asarray(t_start, dtype=jnp.result_type(y0, float))

    def cond_fn(carry):
        t, _ = carry
        return t < t_end

    def body_fn(carry):
        t, y = carry

        # Adjust final step to hit t_end exactly
        h = jnp.maximum(0.0, jnp.minimum(step_size, t_end - t)).astype(t.dtype)

        y_next = method.step(fun, t, y, h, args)

        return (t + h, y_next.astype(y.dtype))

    t_final, y_final = jax.lax.while_loop(cond_fn, body_fn, (t0, y0))

    return t_final, y_final


def solve_with_history(
    fun: Callable,
    t_span: Tuple[float, float],
    y0: Array,
    method: StepperProtocol,
    step_size: float,
    t_eval: Optional[Array] = None,
    args: tuple = (),
    verbose: bool = False
) -> Tuple[Array, Array]:
    """
    Integrate dy/dt = fun(t, y, *args) over the time interval t_span.

    This function returns intermediate states at times `t_eval`, but is not
    compatible with JAX transformations. The integration is done in chunks
    by calling a JIT-compiled `solve_ivp` between consecutive output times.

    Args:
        fun: Right-hand side function with signature (t, y, *args) -> dydt
        t_span: (t_start, t_end) time interval
        y0: Initial state vector
        method: Time-stepping method instance (e.g., RK4(), BackwardEuler())
        step_size: Time step size for integration.
        t_eval: Times at which to store the computed solution.
            If None, returns only the initial and final states.
            Must be sorted and lie within t_span.
        args: Additional arguments to pass to fun
        verbose: Print progress information

    Returns:
        t: Array of time points, shape (n_points,)
        y: Array of states at times t, shape (n_points, *y0.shape)
    """
    t_start, t_end = t_span

    if step_size <= 0:
        raise ValueError("step_size must be positive")
    if t_end < t_start:
        raise ValueError("t_span must satisfy t_start <= t_end")

    # Set up evaluation times
    if t_eval is None:
        # Only save initial and final states
        t_eval = jnp.array([t_start, t_end])
    else:
        # Validate t_eval
        t_eval = jnp.asarray(t_eval)
        if jnp.any(t_eval < t_start) or jnp.any(t_eval > t_end):
            raise ValueError("All values in t_eval must be within t_span")
        if jnp.any(jnp.diff(t_eval) < 0):
            raise ValueError("t_eval must be sorted in increasing order")

        # Ensure t_start is included
        if t_eval[0] != t_start:
            t_eval = jnp.concatenate([jnp.array([t_start]), t_eval])

    n_steps_total = int(jnp.ceil((t_end - t_start) / step_size))

    if verbose:
        method_name = type(method).__name__
        print(f"Solving with {method_name}")
        print(
            f"Time: [{t_start}, {t_end}], dt={step_size}, "
            f"~{n_steps_total} total steps"
        )
        print(f"Evaluating at {len(t_eval)} time points")

    @jax.jit
    def advance(t_a, t_b, y):
        return solve_ivp(fun, (t_a, t_b), y, method, step_size, args)

    # Integrate between consecutive evaluation points:
    y = jnp.asarray(y0)
    y_save = [y]
    t_save = [jnp.asarray(t_start, dtype=jnp.result_type(y, float))]

    start_wallclock = time.time()

    for i in range(len(t_eval) - 1):
        t_i = float(t_eval[i])
        t_ip1 = float(t_eval[i + 1])
        t, y = advance(t_i, t_ip1, y)
        t_save.append(t)
        y_save.append(y)

    t_arr = jnp.stack(t_save)
    y_arr = jnp.stack(y_save, axis=0)

    elapsed_wallclock = time.time() - start_wallclock

    if verbose:
        print(
            f"Completed in {elapsed_wallclock:.3f}s "
            f"({n_steps_total / max(elapsed_wallclock, 1e-12):.1f} steps/s)"
        )

    return t_arr, y_arr
