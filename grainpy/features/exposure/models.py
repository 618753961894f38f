from dataclasses import dataclass
from typing import Dict, Any
import numpy as np

KERNEL_CONSTANTS: Dict[str, Any] = {
    "small_radius": 1.5,  # px, below: 4 samples
    "medium_radius": 4.0,  # px, below: 8 samples, else 16
    "sample_count_small": 4,
    "sample_count_medium": 8,
    "sample_count_large": 16,
    "max_single_ring": 6,  # non-centre samples that still fit one ring
    "single_ring_radius": 0.7,
    "inner_ring_share": 0.4,
    "inner_ring_radius": 0.4,
    "outer_ring_radius": 0.8,
    "single_ring_angle_jitter": 0.1,  # fraction of the angular step
    "single_ring_radius_jitter": 0.1,  # total span, +-5%
    "multi_ring_angle_jitter": 0.08,
    "multi_ring_radius_jitter": 0.08,
    "sigma_factor": 0.7,  # gaussian sigma = radius * sigma_factor
    "min_weight": 0.05,
    "cache_precision": 1,  # decimals of the radius cache key
    "cache_limit": 100,
}


@dataclass(frozen=True)
class SamplingKernel:
    """
    Sample offsets (relative to the grain centre) and their falloff weights.
    """

    radius: float
    dx: np.ndarray
    dy: np.ndarray
    weight: np.ndarray

    @property
    def sample_count(self) -> int:
        return int(self.dx.shape[0])
