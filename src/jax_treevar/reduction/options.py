"""Tunable settings of the order-reduction pipeline."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ReductionOptions:
    """
    Attributes:
        singular_tol: A leading coefficient with |c| <= singular_tol * max|c|
            at any sample point counts as singular.
        n_samples: Chebyshev sample points per subinterval of the domain used
            to check leading coefficients.
        condition_tol: Residual tolerance when solving the conditions for the
            initial state.
        condition_maxiter: Newton iterations allowed for that solve.
    """

    singular_tol: float = 1e-12
    n_samples: int = 65
    condition_tol: float = 1e-6
    condition_maxiter: int = 20

    def __post_init__(self):
        if self.singular_tol < 0:
            raise ValueError("singular_tol must be non-negative")
        if self.n_samples < 2:
            raise ValueError("n_samples must be at least 2")
        if self.condition_maxiter < 1:
            raise ValueError("condition_maxiter must be at least 1")
