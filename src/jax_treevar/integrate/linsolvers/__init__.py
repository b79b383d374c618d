"""Linear solvers used in root finding and implicit time stepping schemes."""

from .protocol import LinearSolverProtocol
from .direct import DirectDense


__all__ = [
    "LinearSolverProtocol",
    "DirectDense",
]
