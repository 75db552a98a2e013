"""Random sources used for weight initialisation."""

from __future__ import annotations

import math

import numpy as np

from .types import Array


class GaussianDistribution:
    """Normal distribution sampled with the Box-Muller transform.

    Parameters
    ----------
    mean:
        Centre of the distribution.
    deviation:
        Standard deviation; must be non-negative.  Zero always yields ``mean``.
    rng:
        Uniform source.  A fresh :class:`numpy.random.Generator` is used when
        omitted.
    """

    def __init__(
        self,
        mean: float = 0.0,
        deviation: float = 1.0,
        rng: np.random.Generator | None = None,
    ) -> None:
        if deviation < 0:
            raise ValueError(f"deviation must be non-negative, got {deviation}")
        self.mean = float(mean)
        self.deviation = float(deviation)
        self.rng = rng if rng is not None else np.random.default_rng()

    def next_float(self) -> float:
        if self.deviation == 0:
            return self.mean
        u1 = 1.0 - float(self.rng.random())  # (0, 1], keeps log finite
        u2 = float(self.rng.random())
        z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        return self.mean + z * self.deviation

    def sample(self, count: int) -> Array:
        """Draw ``count`` float32 values in one vectorised pass."""

        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        if self.deviation == 0:
            return np.full(count, self.mean, dtype=np.float32)
        u1 = 1.0 - self.rng.random(count)
        u2 = self.rng.random(count)
        z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
        return (self.mean + z * self.deviation).astype(np.float32)


__all__ = ["GaussianDistribution"]
