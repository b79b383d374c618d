import logging

import jax.numpy as jnp
from matplotlib import pyplot as plt

import jax_treevar as tv


def main(theta0=1.0, t_end=10.0, dt=0.01):
    """
    Trace the nonlinear pendulum u'' + sin(u) = 0, print its first-order form,
    integrate it and plot the angle together with the energy drift.

    Arguments:
        theta0 - Initial angle (default 1.0)
        t_end - Final time (default 10.0)
        dt - Time step size (default 0.01)
    """
    logging.basicConfig(level=logging.INFO)

    pendulum = lambda t, u: u.diff(2) + tv.sin(u)
    lbc = lambda u: [u - theta0, u.diff()]

    # Reduced system
    system = tv.to_first_order(pendulum, (0.0, t_end), lbc=lbc)
    print("First-order form:")
    for line in system.describe():
        print(f"  {line}")
    print(f"Initial state: {system.y0}")

    # Solve the equation
    print("Solving...")
    t_eval = jnp.linspace(0.0, t_end, 201)
    t, y = tv.solve_ode(pendulum, (0.0, t_end), lbc=lbc, step_size=dt, t_eval=t_eval)
    print("Solve finished.")

    u = y[:, system.index[0]]
    energy = 0.5 * y[:, 1] ** 2 - jnp.cos(u)
    print(f"Maximum energy drift: {jnp.max(jnp.abs(energy - energy[0])):.3e}")

    # Plot results
    fig, (ax1, ax2) = plt.subplots(2, 1, sharex=True)
    ax1.plot(t, u, '-', label="Numerical")
    ax1.plot(t, theta0 * jnp.cos(t), '--', label="Small-angle approximation")
    ax1.legend()
    ax1.set_ylabel('u')
    ax2.plot(t, energy - energy[0])
    ax2.set_xlabel('t')
    ax2.set_ylabel('energy drift')
    plt.show()


if __name__ == "__main__":
    main()
