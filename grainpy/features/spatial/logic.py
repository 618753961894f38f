import math
from dataclasses import dataclass
from typing import Optional, Tuple
import numpy as np
from numba import njit  # type: ignore
from grainpy.domain.models import GrainField
from grainpy.kernel.system.logging import get_logger

logger = get_logger(__name__)

MIN_BUCKET_SIZE = 16
# Grains influence pixels up to this multiple of their radius
INFLUENCE_RADIUS_FACTOR = 2.0


@njit(cache=True)
def bucket_range(
    pos: float, size: float, bucket: float, n_buckets: int
) -> Tuple[int, int]:
    reach = INFLUENCE_RADIUS_FACTOR * size
    lo = int(math.floor((pos - reach) / bucket))
    hi = int(math.floor((pos + reach) / bucket))
    if lo < 0:
        lo = 0
    if hi > n_buckets - 1:
        hi = n_buckets - 1
    return lo, hi


@njit(cache=True)
def _build_buckets_jit(
    xs: np.ndarray,
    ys: np.ndarray,
    sizes: np.ndarray,
    bucket: float,
    grid_w: int,
    grid_h: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    n_cells = grid_w * grid_h
    counts = np.zeros(n_cells, dtype=np.int64)
    max_radius = np.zeros(n_cells, dtype=np.float64)

    for i in range(xs.shape[0]):
        x0, x1 = bucket_range(xs[i], sizes[i], bucket, grid_w)
        y0, y1 = bucket_range(ys[i], sizes[i], bucket, grid_h)
        for by in range(y0, y1 + 1):
            for bx in range(x0, x1 + 1):
                cell = by * grid_w + bx
                counts[cell] += 1
                if sizes[i] > max_radius[cell]:
                    max_radius[cell] = sizes[i]

    offsets = np.zeros(n_cells + 1, dtype=np.int64)
    for c in range(n_cells):
        offsets[c + 1] = offsets[c] + counts[c]

    items = np.empty(offsets[n_cells], dtype=np.int64)
    cursor = offsets[:-1].copy()
    # Ascending ids within each bucket
    for i in range(xs.shape[0]):
        x0, x1 = bucket_range(xs[i], sizes[i], bucket, grid_w)
        y0, y1 = bucket_range(ys[i], sizes[i], bucket, grid_h)
        for by in range(y0, y1 + 1):
            for bx in range(x0, x1 + 1):
                cell = by * grid_w + bx
                items[cursor[cell]] = i
                cursor[cell] += 1

    return offsets, items, max_radius


@dataclass(frozen=True)
class SpatialStats:
    grid_width: int
    grid_height: int
    bucket_size: int
    non_empty_cells: int
    total_references: int
    avg_per_cell: float
    max_per_cell: int


class SpatialLookupGrid:
    """
    Uniform bucket grid over the canvas. Each grain is referenced from every
    bucket its influence disc (2 x size) overlaps, so a 3x3 bucket search
    around any pixel sees every grain that can influence it.

    Buckets are stored CSR-style: `items[offsets[c]:offsets[c + 1]]` are the
    grain ids of cell `c = by * grid_width + bx`.
    """

    def __init__(self, width: int, height: int, field: GrainField):
        self.width = width
        self.height = height
        self.max_radius = field.max_size
        self.bucket_size = max(
            MIN_BUCKET_SIZE, int(math.ceil(INFLUENCE_RADIUS_FACTOR * self.max_radius))
        )
        self.grid_width = max(1, int(math.ceil(width / self.bucket_size)))
        self.grid_height = max(1, int(math.ceil(height / self.bucket_size)))

        self.offsets, self.items, self.bucket_max_radius = _build_buckets_jit(
            field.x,
            field.y,
            field.size,
            float(self.bucket_size),
            self.grid_width,
            self.grid_height,
        )
        logger.debug(
            f"Spatial grid {self.grid_width}x{self.grid_height} "
            f"(bucket {self.bucket_size}px, {len(self.items)} refs)"
        )

    def _bucket_of(self, x: float, y: float) -> Tuple[int, int]:
        bx = int(math.floor(x / self.bucket_size))
        by = int(math.floor(y / self.bucket_size))
        return (
            min(max(bx, 0), self.grid_width - 1),
            min(max(by, 0), self.grid_height - 1),
        )

    def _cell_items(self, bx: int, by: int) -> np.ndarray:
        c = by * self.grid_width + bx
        return self.items[self.offsets[c] : self.offsets[c + 1]]

    def grains_in_bucket(self, x: float, y: float) -> np.ndarray:
        bx, by = self._bucket_of(x, y)
        return self._cell_items(bx, by).copy()

    def grains_near(self, x: float, y: float, radius: Optional[float] = None) -> np.ndarray:
        """
        Sorted, unique ids from every bucket intersecting the square window
        [x - radius, x + radius] x [y - radius, y + radius].
        """
        if radius is None:
            radius = self.lookup_radius(x, y)
        bx0, by0 = self._bucket_of(x - radius, y - radius)
        bx1, by1 = self._bucket_of(x + radius, y + radius)

        chunks = [
            self._cell_items(bx, by)
            for by in range(by0, by1 + 1)
            for bx in range(bx0, bx1 + 1)
        ]
        if not chunks:
            return np.empty(0, dtype=np.int64)
        return np.unique(np.concatenate(chunks))

    def local_max_radius(self, x: float, y: float) -> float:
        bx, by = self._bucket_of(x, y)
        y0, y1 = max(0, by - 1), min(self.grid_height, by + 2)
        x0, x1 = max(0, bx - 1), min(self.grid_width, bx + 2)
        local = self.bucket_max_radius.reshape(self.grid_height, self.grid_width)[
            y0:y1, x0:x1
        ].max()
        if local <= 0.0:
            return self.max_radius
        return float(local)

    def lookup_radius(self, x: float, y: float) -> float:
        return INFLUENCE_RADIUS_FACTOR * self.local_max_radius(x, y)

    def stats(self) -> SpatialStats:
        counts = np.diff(self.offsets)
        non_empty = int(np.count_nonzero(counts))
        total = int(counts.sum())
        return SpatialStats(
            grid_width=self.grid_width,
            grid_height=self.grid_height,
            bucket_size=self.bucket_size,
            non_empty_cells=non_empty,
            total_references=total,
            avg_per_cell=total / non_empty if non_empty else 0.0,
            max_per_cell=int(counts.max()) if counts.size else 0,
        )
