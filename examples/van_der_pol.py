import jax.numpy as jnp
from matplotlib import pyplot as plt

import jax_treevar as tv
from jax_treevar.integrate import BackwardEuler, NewtonRaphson, RK4


def main(mu=20.0, t_end=60.0, dt=0.01):
    """
    Solve the stiff Van der Pol oscillator u'' - mu (1 - u^2) u' + u = 0 with
    an explicit and an implicit method and compare the limit cycles.

    Arguments:
        mu - Damping parameter (default 20.0)
        t_end - Final time (default 60.0)
        dt - Time step size (default 0.01)
    """
    van_der_pol = lambda t, u: u.diff(2) - mu * (1 - u**2) * u.diff() + u
    lbc = lambda u: [u - 2, u.diff()]

    t_eval = jnp.linspace(0.0, t_end, 601)
    methods = {
        'RK4': RK4(),
        'Backward Euler': BackwardEuler(root_finder=NewtonRaphson(tol=1e-6, maxiter=20)),
    }

    fig, ax = plt.subplots()
    for name, method in methods.items():
        t, y = tv.solve_ode(
            van_der_pol, (0.0, t_end), lbc=lbc, method=method, step_size=dt,
            t_eval=t_eval, verbose=True,
        )
        ax.plot(y[:, 0], y[:, 1], '-', label=name)
    ax.legend()
    ax.set_xlabel('u')
    ax.set_ylabel("u'")
    plt.show()


if __name__ == "__main__":
    main()
