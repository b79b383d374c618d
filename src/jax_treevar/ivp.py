"""
End-to-end driver: reduce a traced initial- or final-value problem and
integrate it with a time stepper.
"""

import logging
from typing import Any, Optional, Sequence, Tuple

from jax import Array
import jax.numpy as jnp
import numpy as np

from .errors import UnderOrOverDeterminedConditions
from .integrate import RK4, StepperProtocol, solve_with_history
from .reduction import ReductionOptions, to_first_order
from .reduction.first_order import Operator

logger = logging.getLogger(__name__)


def _integrate_pieces(
    fun,
    breakpoints: Sequence[float],
    y0: Array,
    method: StepperProtocol,
    step_size: float,
    t_eval: Optional[np.ndarray],
    verbose: bool,
) -> Tuple[np.ndarray, Array]:
    """
    Integrate interval by interval, restarting the stepper at every breakpoint.

    Without `t_eval` the solution is returned at the breakpoints.
    """
    t_out = [breakpoints[0]]
    y_out = [jnp.asarray(y0)]
    y = y_out[0]
    for a, b in zip(breakpoints, breakpoints[1:]):
        if t_eval is None:
            pts = np.array([b])
        else:
            pts = np.append(t_eval[(t_eval > a) & (t_eval < b)], b)
        _, ys = solve_with_history(
            fun, (a, b), y, method, step_size, t_eval=pts, verbose=verbose
        )
        t_out.extend(float(p) for p in pts)
        y_out.extend(ys[1:])
        y = ys[-1]

    t_arr = np.asarray(t_out)
    y_arr = jnp.stack(y_out, axis=0)
    if t_eval is not None:
        keep = np.isin(t_arr, t_eval)
        t_arr, y_arr = t_arr[keep], y_arr[np.nonzero(keep)[0]]
    return t_arr, y_arr


def solve_ode(
    op: Operator,
    domain,
    *,
    lbc: Any = None,
    rbc: Any = None,
    rhs: Any = 0,
    orders: Optional[Sequence[int]] = None,
    method: Optional[StepperProtocol] = None,
    step_size: float = 1e-2,
    t_eval: Optional[Array] = None,
    options: ReductionOptions = ReductionOptions(),
    verbose: bool = False,
) -> Tuple[Array, Array]:
    """
    Solve an initial- or final-value problem `L(u) = rhs`.

    Args:
        op: Differential operator, as for `to_first_order`.
        domain: Endpoints `(a, b)` or ordered breakpoints.
        lbc: Initial conditions at the left endpoint.
        rbc: Final conditions at the right endpoint.
        rhs: Right-hand side of each equation.
        orders: Declared maximal derivative orders.
        method: Time-stepping method instance (default: RK4()).
        step_size: Time step size.
        t_eval: Sorted times at which to return the solution. Defaults to
            the breakpoints of the domain.
        options: Tolerances of the reduction.
        verbose: Print integration progress.

    Returns:
        t: Output times, increasing.
        y: States at times t, shape (len(t), n_state). `y[:, index[i]]` is
            the solution for unknown `i`, with `index` the offsets of the
            reduced system.

    Example usage:
    ```python
    import jax.numpy as jnp
    from jax_treevar import solve_ode

    # u'' + u = 0, u(0) = 1, u'(0) = 0
    t, y = solve_ode(
        lambda t, u: u.diff(2) + u, (0.0, 2 * jnp.pi),
        lbc=lambda u: [u - 1, u.diff()],
        t_eval=jnp.linspace(0.0, 2 * jnp.pi, 50),
    )
    ```
    """
    method = method if method is not None else RK4()
    system = to_first_order(
        op, domain, rhs=rhs, orders=orders, lbc=lbc, rbc=rbc, options=options
    )
    if system.y0 is None:
        raise UnderOrOverDeterminedConditions(
            f"No conditions given for {system.n_state} eliminated derivatives"
        )

    breakpoints = system.domain.breakpoints
    a, b = system.domain.left, system.domain.right
    if t_eval is not None:
        t_eval = np.asarray(t_eval, dtype=float)
        if np.any(np.diff(t_eval) < 0):
            raise ValueError("t_eval must be sorted in increasing order")
        if t_eval.size and (t_eval[0] < a or t_eval[-1] > b):
            raise ValueError("All values in t_eval must be within the domain")

    if not system.final_value:
        t, y = _integrate_pieces(
            system.fun, breakpoints, system.y0, method, step_size, t_eval, verbose
        )
        return jnp.asarray(t), y

    # Final-value problem: integrate tau = a + b - t forwards
    logger.debug("Final-value problem, integrating in reversed time")
    fun = system.fun

    def reversed_fun(tau, y, *args):
        return -fun(a + b - tau, y, *args)

    reversed_breakpoints = tuple(a + b - p for p in reversed(breakpoints))
    reversed_eval = None if t_eval is None else (a + b - t_eval)[::-1]
    tau, y = _integrate_pieces(
        reversed_fun, reversed_breakpoints, system.y0, method, step_size,
        reversed_eval, verbose,
    )
    return jnp.asarray(a + b - tau[::-1]), y[::-1]
