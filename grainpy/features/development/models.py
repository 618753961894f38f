from dataclasses import dataclass
from typing import Dict, Any, Tuple, Optional
import numpy as np

DEVELOPMENT_CONSTANTS: Dict[str, Any] = {
    "initial_factor": 1.0,
    "dampening": 0.3,
    "log_clamp": 2.0,  # |ln(factor)| limit before dampening
    "sigmoid_steepness": 8.0,
    "min_factor": 0.1,
    "max_factor": 10.0,
}


@dataclass(frozen=True, eq=False)
class DevelopmentIteration:
    """
    One pass of the development loop: the factor that was applied, the
    lightness ratio it produced and the resulting IntrinsicDensityMap.
    """

    iteration: int
    adjustment_factor: float
    lightness_ratio: float
    density: np.ndarray
    # Trial printed black although the reference is visible
    starved: bool = False


@dataclass(frozen=True)
class DevelopmentResult:
    density: np.ndarray
    iterations: Tuple[DevelopmentIteration, ...]
    converged: bool

    @property
    def iteration_count(self) -> int:
        return len(self.iterations)

    @property
    def last(self) -> Optional[DevelopmentIteration]:
        return self.iterations[-1] if self.iterations else None

    @property
    def adjustment_factor(self) -> float:
        last = self.last
        return last.adjustment_factor if last else DEVELOPMENT_CONSTANTS["initial_factor"]
