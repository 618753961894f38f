import math
from dataclasses import dataclass
from typing import Optional, Tuple
import numpy as np
import cv2
from numba import njit, prange  # type: ignore
from grainpy.domain.errors import InternalInvariantError
from grainpy.domain.models import GrainField
from grainpy.domain.types import (
    ImageBuffer,
    Rgba8Buffer,
    RGBA_CHANNELS,
    ALPHA_CHANNEL_INDEX,
)
from grainpy.features.spatial.logic import (
    SpatialLookupGrid,
    bucket_range,
    INFLUENCE_RADIUS_FACTOR,
)

DEBUG_MARKER_COLOR = (255, 0, 255, 255)
DEBUG_MARKER_SIZE = 5  # 2 px arms around the centre pixel


@dataclass(frozen=True)
class CompositeResult:
    buffer: ImageBuffer
    grain_effect_count: int
    processed_pixels: int


@njit(parallel=True, cache=True)
def _composite_jit(
    xs: np.ndarray,
    ys: np.ndarray,
    sizes: np.ndarray,
    density: np.ndarray,
    offsets: np.ndarray,
    items: np.ndarray,
    bucket: float,
    grid_w: int,
    grid_h: int,
    rows: np.ndarray,
    cols: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    n_rows = rows.shape[0]
    n_cols = cols.shape[0]
    out = np.zeros((n_rows, n_cols), dtype=np.float64)
    effects = np.zeros(n_rows, dtype=np.int64)

    for ri in prange(n_rows):
        py = float(rows[ri])
        by = int(math.floor(py / bucket))
        if by > grid_h - 1:
            by = grid_h - 1
        wy0 = max(by - 1, 0)
        wy1 = min(by + 1, grid_h - 1)

        for ci in range(n_cols):
            px = float(cols[ci])
            bx = int(math.floor(px / bucket))
            if bx > grid_w - 1:
                bx = grid_w - 1
            wx0 = max(bx - 1, 0)
            wx1 = min(bx + 1, grid_w - 1)

            total_w = 0.0
            total_wd = 0.0
            for cy in range(wy0, wy1 + 1):
                for cx in range(wx0, wx1 + 1):
                    cell = cy * grid_w + cx
                    for k in range(offsets[cell], offsets[cell + 1]):
                        g = items[k]
                        # Count each grain once: only in the first window bucket it occupies
                        gx0, _ = bucket_range(xs[g], sizes[g], bucket, grid_w)
                        gy0, _ = bucket_range(ys[g], sizes[g], bucket, grid_h)
                        if max(gx0, wx0) != cx or max(gy0, wy0) != cy:
                            continue

                        dx = xs[g] - px
                        dy = ys[g] - py
                        d = math.sqrt(dx * dx + dy * dy)
                        if d < INFLUENCE_RADIUS_FACTOR * sizes[g]:
                            w = math.exp(-d / sizes[g])
                            total_w += w
                            total_wd += w * density[g]

            if total_w > 0.0:
                effects[ri] += 1
                # Beer-Lambert response of the locally averaged optical density
                out[ri, ci] = 1.0 - math.exp(-(total_wd / total_w))

    return out, effects


def composite_grains(
    field: GrainField,
    grid: SpatialLookupGrid,
    density: np.ndarray,
    rows: Optional[np.ndarray] = None,
    cols: Optional[np.ndarray] = None,
) -> CompositeResult:
    """
    Prints the developed grains onto a (len(rows), len(cols), 4) linear buffer.
    Without `rows`/`cols` every pixel of the field's canvas is rendered.
    Pixels no grain reaches stay at 0.
    """
    if density.shape != (len(field),):
        raise InternalInvariantError(
            f"Density map covers {density.shape[0] if density.ndim else 0} grains, "
            f"field has {len(field)}"
        )
    if not np.all(np.isfinite(density)):
        raise InternalInvariantError("Density map contains non-finite values")

    if rows is None:
        rows = np.arange(field.height, dtype=np.int64)
    if cols is None:
        cols = np.arange(field.width, dtype=np.int64)

    values, effects = _composite_jit(
        field.x,
        field.y,
        field.size,
        np.ascontiguousarray(density, dtype=np.float64),
        grid.offsets,
        grid.items,
        float(grid.bucket_size),
        grid.grid_width,
        grid.grid_height,
        np.ascontiguousarray(rows, dtype=np.int64),
        np.ascontiguousarray(cols, dtype=np.int64),
    )

    buf = np.empty((values.shape[0], values.shape[1], RGBA_CHANNELS), dtype=np.float32)
    buf[..., :ALPHA_CHANNEL_INDEX] = values[..., None]
    buf[..., ALPHA_CHANNEL_INDEX] = 1.0
    return CompositeResult(
        buffer=buf,
        grain_effect_count=int(effects.sum()),
        processed_pixels=int(values.size),
    )


def draw_grain_centers(buf: Rgba8Buffer, field: GrainField) -> Rgba8Buffer:
    """
    Magenta cross at each grain's rounded centre, on a copy of `buf`.
    """
    res = np.ascontiguousarray(buf.copy())
    cx = np.floor(field.x + 0.5).astype(np.int64)
    cy = np.floor(field.y + 0.5).astype(np.int64)
    for x, y in zip(cx, cy):
        cv2.drawMarker(
            res,
            (int(x), int(y)),
            DEBUG_MARKER_COLOR,
            markerType=cv2.MARKER_CROSS,
            markerSize=DEBUG_MARKER_SIZE,
            thickness=1,
            line_type=cv2.LINE_8,
        )
    return res
