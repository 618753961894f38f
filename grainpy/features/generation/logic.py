import math
from typing import List, Optional, Tuple
import numpy as np
from grainpy.domain.interfaces import RandomSource
from grainpy.domain.models import GrainField, GrainSettings
from grainpy.domain.constants import FILM_CHARACTERISTICS
from grainpy.kernel.random import seeded_random
from grainpy.kernel.system.logging import get_logger
from grainpy.features.generation.models import (
    GENERATION_CONSTANTS,
    GrainParameters,
    Quadrants,
    DistributionAnalysis,
)

logger = get_logger(__name__)

Points = Tuple[List[float], List[float]]


def calculate_grain_parameters(width: int, height: int, iso: float) -> GrainParameters:
    area = width * height
    base_radius = max(
        GENERATION_CONSTANTS["min_radius"], iso / GENERATION_CONSTANTS["size_divisor"]
    )
    density_factor = min(
        GENERATION_CONSTANTS["max_density_factor"],
        iso / GENERATION_CONSTANTS["density_divisor"],
    )
    target = max(1, int(math.floor(area * density_factor)))
    min_distance = max(
        GENERATION_CONSTANTS["min_distance"],
        base_radius * GENERATION_CONSTANTS["distance_factor"],
    )
    return GrainParameters(
        base_radius=base_radius,
        target_count=target,
        min_distance=min_distance,
        density_factor=density_factor,
        image_area=area,
    )


def _clamp_coord(v: float, limit: int) -> float:
    if v < 0.0:
        return 0.0
    if v >= limit:
        return float(np.nextafter(float(limit), 0.0))
    return v


def count_quadrants(xs: np.ndarray, ys: np.ndarray, width: int, height: int) -> Quadrants:
    mid_x = width / 2.0
    mid_y = height / 2.0
    left = xs < mid_x
    top = ys < mid_y
    return Quadrants(
        top_left=int(np.count_nonzero(left & top)),
        top_right=int(np.count_nonzero(~left & top)),
        bottom_left=int(np.count_nonzero(left & ~top)),
        bottom_right=int(np.count_nonzero(~left & ~top)),
    )


def count_empty_coverage_cells(
    xs: np.ndarray, ys: np.ndarray, width: int, height: int
) -> int:
    """
    Splits the image into an n x n coarse grid where every cell should hold at
    least `coverage_cell_min_expected` points and counts the empty cells.
    Returns 0 when the population is too small for a meaningful grid.
    """
    count = len(xs)
    n = int(math.sqrt(count / GENERATION_CONSTANTS["coverage_cell_min_expected"]))
    n = min(n, GENERATION_CONSTANTS["coverage_max_cells"])
    if n < 2:
        return 0

    cx = np.minimum((xs * n / width).astype(np.int64), n - 1)
    cy = np.minimum((ys * n / height).astype(np.int64), n - 1)
    occupied = np.zeros((n, n), dtype=bool)
    occupied[cy, cx] = True
    return int(n * n - np.count_nonzero(occupied))


class GrainGenerator:
    """
    Places grains over a width x height canvas and derives their attributes.
    All placement randomness comes from the injected RandomSource.
    """

    def __init__(
        self, width: int, height: int, settings: GrainSettings, rng: RandomSource
    ):
        self.width = width
        self.height = height
        self.settings = settings
        self.rng = rng
        self.film = FILM_CHARACTERISTICS[settings.film_type]
        self.params = calculate_grain_parameters(width, height, settings.iso)

    def generate_poisson_disk_sampling(self, min_distance: float, target: int) -> Points:
        """
        Bridson-style dart throwing with an active list. Candidates are drawn in
        the annulus [d, 2d) around a random active point; the background grid
        (cell d / sqrt(2)) holds at most one point per cell.
        """
        w, h = self.width, self.height
        rng = self.rng
        d = min_distance
        d2 = d * d
        cell = d / math.sqrt(2.0)
        gw = int(math.ceil(w / cell))
        gh = int(math.ceil(h / cell))
        grid = np.full((gh, gw), -1, dtype=np.int32)

        xs: List[float] = []
        ys: List[float] = []
        active: List[int] = []

        def insert(px: float, py: float) -> None:
            idx = len(xs)
            xs.append(px)
            ys.append(py)
            grid[min(gh - 1, int(py / cell)), min(gw - 1, int(px / cell))] = idx
            active.append(idx)

        def is_valid(px: float, py: float) -> bool:
            if px < 0.0 or px >= w or py < 0.0 or py >= h:
                return False
            gx = min(gw - 1, int(px / cell))
            gy = min(gh - 1, int(py / cell))
            # Points within d can sit up to two cells away
            for ny in range(max(0, gy - 2), min(gh, gy + 3)):
                for nx in range(max(0, gx - 2), min(gw, gx + 3)):
                    other = grid[ny, nx]
                    if other >= 0:
                        dx = xs[other] - px
                        dy = ys[other] - py
                        if dx * dx + dy * dy < d2:
                            return False
            return True

        insert(rng.random() * w, rng.random() * h)

        k = GENERATION_CONSTANTS["candidates_per_point"]
        max_attempts = target * GENERATION_CONSTANTS["max_attempts_factor"]
        attempts = 0
        while active and len(xs) < target and attempts < max_attempts:
            attempts += 1
            slot = min(int(rng.random() * len(active)), len(active) - 1)
            origin = active[slot]
            ox, oy = xs[origin], ys[origin]

            found = False
            for _ in range(k):
                angle = rng.random() * 2.0 * math.pi
                radius = d * (1.0 + rng.random())
                px = ox + radius * math.cos(angle)
                py = oy + radius * math.sin(angle)
                if is_valid(px, py):
                    insert(px, py)
                    found = True
                    break

            if not found:
                # swap-remove
                active[slot] = active[-1]
                active.pop()

        logger.debug(
            f"Poisson disk: {len(xs)}/{target} points after {attempts} attempts"
        )
        return xs, ys

    def generate_fallback_grains(self, target: int) -> Points:
        """
        Jittered regular grid covering the whole canvas, one grain per cell.
        """
        w, h = self.width, self.height
        cell = math.sqrt((w * h) / target)
        cols = max(1, int(math.ceil(w / cell)))
        rows = max(1, int(math.ceil(h / cell)))
        jitter = cell * GENERATION_CONSTANTS["fallback_jitter"]

        xs: List[float] = []
        ys: List[float] = []
        for r in range(rows):
            for c in range(cols):
                cx = (c + 0.5) * cell + (self.rng.random() - 0.5) * jitter
                cy = (r + 0.5) * cell + (self.rng.random() - 0.5) * jitter
                xs.append(_clamp_coord(cx, w))
                ys.append(_clamp_coord(cy, h))
        return xs, ys

    def _needs_fallback(self, xs: np.ndarray, ys: np.ndarray, target: int) -> Optional[str]:
        count = len(xs)
        if count < target * GENERATION_CONSTANTS["min_yield_ratio"]:
            return f"low yield ({count}/{target})"

        quadrants = count_quadrants(xs, ys, self.width, self.height)
        if quadrants.max() > count * GENERATION_CONSTANTS["max_quadrant_share"]:
            return f"clustered ({quadrants.max()}/{count} in one quadrant)"

        holes = count_empty_coverage_cells(xs, ys, self.width, self.height)
        if holes > 0:
            return f"{holes} empty coverage cells"
        return None

    def assign_attributes(self, count: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Size, sensitivity and threshold per grain id, each from its own
        index-keyed deterministic draw.
        """
        ids = np.arange(count, dtype=np.float64)
        u_size = seeded_random(ids * GENERATION_CONSTANTS["size_seed_multiplier"])
        u_sens = seeded_random(ids * GENERATION_CONSTANTS["sensitivity_seed_multiplier"])
        u_thr = seeded_random(ids * GENERATION_CONSTANTS["threshold_seed_multiplier"])

        size = self.params.base_radius * (
            GENERATION_CONSTANTS["size_min_scale"]
            + u_size * GENERATION_CONSTANTS["size_scale_range"]
        )
        sensitivity = (
            GENERATION_CONSTANTS["sensitivity_min"]
            + u_sens * GENERATION_CONSTANTS["sensitivity_range"]
        )
        threshold = np.clip(
            self.film.threshold_base + (u_thr - 0.5) * 2.0 * self.film.threshold_variation,
            0.0,
            1.0,
        )
        return size, sensitivity, threshold

    def generate_grain_structure(self) -> GrainField:
        p = self.params
        xs_list, ys_list = self.generate_poisson_disk_sampling(p.min_distance, p.target_count)
        xs = np.asarray(xs_list, dtype=np.float64)
        ys = np.asarray(ys_list, dtype=np.float64)

        reason = self._needs_fallback(xs, ys, p.target_count)
        used_fallback = reason is not None
        if used_fallback:
            logger.debug(f"Poisson sampling rejected: {reason}; using jittered grid")
            xs_list, ys_list = self.generate_fallback_grains(p.target_count)
            xs = np.asarray(xs_list, dtype=np.float64)
            ys = np.asarray(ys_list, dtype=np.float64)

        size, sensitivity, threshold = self.assign_attributes(len(xs))
        logger.info(
            f"Generated {len(xs)} grains for {self.width}x{self.height} "
            f"(ISO {self.settings.iso:g}, radius {p.base_radius:.2f}"
            f"{', fallback grid' if used_fallback else ''})"
        )
        return GrainField(
            width=self.width,
            height=self.height,
            x=xs,
            y=ys,
            size=size,
            sensitivity=sensitivity,
            threshold=threshold,
            used_fallback=used_fallback,
        )


def analyze_distribution(
    field: GrainField, rng: Optional[RandomSource] = None, sample_size: int = 100
) -> DistributionAnalysis:
    """
    Summary statistics of a grain population. Pairwise distances are measured
    from up to `sample_size` grains (chosen with `rng`, or the first ones) to
    their nearest neighbour in the full population.
    """
    n = len(field)
    area = field.width * field.height
    quadrants = count_quadrants(field.x, field.y, field.width, field.height)
    holes = count_empty_coverage_cells(field.x, field.y, field.width, field.height)
    coverage = n / area if area else 0.0

    min_d = median_d = max_d = None
    if n >= 2:
        m = min(sample_size, n)
        if rng is not None:
            picks = np.array([min(int(rng.random() * n), n - 1) for _ in range(m)])
        else:
            picks = np.arange(m)
        dx = field.x[picks, None] - field.x[None, :]
        dy = field.y[picks, None] - field.y[None, :]
        dist = np.sqrt(dx * dx + dy * dy)
        dist[np.arange(m), picks] = np.inf
        nearest = dist.min(axis=1)
        min_d = float(nearest.min())
        median_d = float(np.median(nearest))
        max_d = float(nearest.max())

    return DistributionAnalysis(
        quadrants=quadrants,
        coverage=coverage,
        density=coverage * 1000.0,
        empty_coverage_cells=holes,
        min_distance=min_d,
        median_distance=median_d,
        max_distance=max_d,
    )
