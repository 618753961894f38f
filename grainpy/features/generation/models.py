from dataclasses import dataclass
from typing import Dict, Any, Optional

GENERATION_CONSTANTS: Dict[str, Any] = {
    "min_radius": 0.5,  # px, floor for the base grain radius
    "size_divisor": 200.0,  # base radius = iso / size_divisor
    "max_density_factor": 0.05,  # grains per pixel ceiling
    "density_divisor": 10000.0,  # density factor = iso / density_divisor
    "min_distance": 1.0,  # px, floor for Poisson-disk spacing
    "distance_factor": 0.3,  # spacing = radius * distance_factor
    "candidates_per_point": 30,
    "max_attempts_factor": 100,  # attempts <= target * factor
    "min_yield_ratio": 0.5,  # fewer Poisson points than this * target => fallback
    "max_quadrant_share": 0.5,
    "coverage_cell_min_expected": 4,  # coarse cells expected to hold this many must be non-empty
    "coverage_max_cells": 8,
    "fallback_jitter": 0.6,  # jitter span as a fraction of the grid cell (+-30%)
    # Attribute draw multipliers, one per attribute so draws stay uncorrelated
    "size_seed_multiplier": 123.456,
    "sensitivity_seed_multiplier": 789.012,
    "threshold_seed_multiplier": 345.678,
    "size_min_scale": 0.5,
    "size_scale_range": 1.5,
    "sensitivity_min": 0.8,
    "sensitivity_range": 0.4,
}


@dataclass(frozen=True)
class GrainParameters:
    base_radius: float
    target_count: int
    min_distance: float
    density_factor: float
    image_area: int


@dataclass(frozen=True)
class Quadrants:
    top_left: int
    top_right: int
    bottom_left: int
    bottom_right: int

    def max(self) -> int:
        return max(self.top_left, self.top_right, self.bottom_left, self.bottom_right)


@dataclass(frozen=True)
class DistributionAnalysis:
    quadrants: Quadrants
    coverage: float  # grains per pixel
    density: float  # grains per 1000 pixels
    empty_coverage_cells: int
    min_distance: Optional[float] = None
    median_distance: Optional[float] = None
    max_distance: Optional[float] = None
