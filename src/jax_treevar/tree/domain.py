"""Problem domains: ordered interval breakpoints."""

from dataclasses import dataclass
from typing import Iterable, Union

import numpy as np

from ..errors import ConfigMismatch


def chebyshev_points(a: float, b: float, n: int) -> np.ndarray:
    """`n` Chebyshev points of the second kind on [a, b], increasing."""
    k = np.arange(n)
    return 0.5 * (a + b) - 0.5 * (b - a) * np.cos(np.pi * k / (n - 1))


@dataclass(frozen=True)
class Domain:
    """
    Ordered, de-duplicated breakpoints of an interval.

    The first and last breakpoints are the endpoints; anything in between is
    an interior breakpoint, e.g. where a coefficient is discontinuous. Time
    integration restarts at every breakpoint.
    """

    breakpoints: tuple[float, ...]

    def __post_init__(self):
        points = tuple(float(p) for p in self.breakpoints)
        if len(points) < 2:
            raise ValueError("A domain needs at least two breakpoints")
        if not all(np.isfinite(points)):
            raise ValueError(f"Domain breakpoints must be finite, got {points}")
        if any(b <= a for a, b in zip(points, points[1:])):
            raise ValueError(f"Domain breakpoints must be strictly increasing, got {points}")
        object.__setattr__(self, 'breakpoints', points)

    @classmethod
    def create(cls, points: Union["Domain", Iterable[float]]) -> "Domain":
        """Build a domain from a pair or a sequence of breakpoints (sorted, de-duplicated)."""
        if isinstance(points, Domain):
            return points
        return cls(tuple(sorted(set(float(p) for p in points))))

    @property
    def left(self) -> float:
        return self.breakpoints[0]

    @property
    def right(self) -> float:
        return self.breakpoints[-1]

    @property
    def intervals(self) -> list[tuple[float, float]]:
        return list(zip(self.breakpoints, self.breakpoints[1:]))

    def union(self, other: "Domain") -> "Domain":
        """Merge interior breakpoints. Both domains must share their endpoints."""
        if other is self or other == self:
            return self
        if (self.left, self.right) != (other.left, other.right):
            raise ConfigMismatch(
                f"Cannot combine domains [{self.left}, {self.right}] and "
                f"[{other.left}, {other.right}]"
            )
        return Domain.create(self.breakpoints + other.breakpoints)

    def sample(self, n: int = 33) -> np.ndarray:
        """
        Chebyshev points of the second kind on every subinterval.

        Endpoints and breakpoints are always included.
        """
        pieces = [chebyshev_points(a, b, n) for a, b in self.intervals]
        return np.unique(np.concatenate(pieces))

    def __iter__(self):
        return iter(self.breakpoints)

    def __len__(self) -> int:
        return len(self.breakpoints)
