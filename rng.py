"""
Seedable random source shared by every part of the simulation.

Wraps numpy's Generator and adds Box–Muller Gaussian sampling with a cached
spare value: each transform yields two normals, the second is kept and
handed out by the next request. The cache belongs to the instance, so two
simulations seeded alike never disturb each other.
"""

import numpy as np


class SimRandom:
    """Injectable random generator (uniform, integer and Gaussian draws)."""

    def __init__(self, seed: int = None):
        self.seed = seed
        self._gen = np.random.default_rng(seed)
        self._has_spare = False
        self._spare     = 0.0

    # ──────────────────────────────────────────────────────────────────────────

    def random(self, size=None):
        """Uniform float(s) in [0, 1)."""
        return self._gen.random(size)

    def integers(self, low: int, high: int = None, size=None):
        """Uniform integer(s) in [low, high)."""
        if size is None:
            return int(self._gen.integers(low, high))
        return self._gen.integers(low, high, size=size)

    # ──────────────────────────────────────────────────────────────────────────

    def _box_muller(self, pairs: int):
        # 1 - U keeps u in (0, 1] so log(u) is finite
        u = 1.0 - self._gen.random(pairs)
        v = self._gen.random(pairs)
        r = np.sqrt(-2.0 * np.log(u))
        return r * np.cos(2 * np.pi * v), r * np.sin(2 * np.pi * v)

    def gaussian(self) -> float:
        """One standard-normal sample."""
        if self._has_spare:
            self._has_spare = False
            return float(self._spare)
        z0, z1 = self._box_muller(1)
        self._has_spare = True
        self._spare     = float(z1[0])
        return float(z0[0])

    def gaussian_array(self, shape) -> np.ndarray:
        """
        Standard-normal samples of the given shape.

        Consumes the cached spare first, generates the rest in pairs and
        caches the leftover value when an odd number was needed.
        """
        n   = int(np.prod(shape))
        out = np.empty(n, dtype=np.float64)
        filled = 0
        if n and self._has_spare:
            out[0] = self._spare
            self._has_spare = False
            filled = 1
        remaining = n - filled
        if remaining > 0:
            pairs  = (remaining + 1) // 2
            z0, z1 = self._box_muller(pairs)
            values = np.empty(pairs * 2, dtype=np.float64)
            values[0::2] = z0
            values[1::2] = z1
            out[filled:] = values[:remaining]
            if remaining % 2:
                self._has_spare = True
                self._spare     = float(values[-1])
        return out.reshape(shape)

    def choice_index(self, n: int) -> int:
        """Uniform index in [0, n)."""
        return self.integers(0, n)
