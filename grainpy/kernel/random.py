from typing import Optional
import numpy as np
import numpy.typing as npt

# sin-hash multiplier for deterministic per-index draws
SEEDED_RANDOM_MULTIPLIER = 10000.0


class SeededRandom:
    """
    Reproducible RandomSource backed by numpy's PCG64 generator.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def random(self) -> float:
        return float(self._rng.random())


def resolve_random_source(seed: Optional[int]) -> SeededRandom:
    """
    Default source for the outermost boundary. None means OS entropy.
    """
    return SeededRandom(seed)


def seeded_random(seed: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """
    Deterministic pseudo-random value(s) in [0, 1) derived from a numeric key.
    frac(sin(seed) * 10000); vectorised over arrays of keys.
    """
    x = np.sin(np.asarray(seed, dtype=np.float64)) * SEEDED_RANDOM_MULTIPLIER
    res = x - np.floor(x)
    # floor() rounding can land exactly on 1.0 for tiny negative fractions
    return np.where(res >= 1.0, 0.0, res)
