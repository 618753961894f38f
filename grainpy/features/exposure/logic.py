import math
from typing import Dict, List, Tuple
import numpy as np
from numba import njit, prange  # type: ignore
from grainpy.domain.interfaces import RandomSource
from grainpy.domain.models import GrainField
from grainpy.features.color.logic import luminance_to_exposure
from grainpy.features.exposure.models import KERNEL_CONSTANTS, SamplingKernel
from grainpy.kernel.system.logging import get_logger

logger = get_logger(__name__)


def sample_weight(distance: float, radius: float) -> float:
    sigma = radius * KERNEL_CONSTANTS["sigma_factor"]
    w = math.exp(-(distance * distance) / (2.0 * sigma * sigma))
    return max(w, KERNEL_CONSTANTS["min_weight"])


def determine_sample_count(radius: float) -> int:
    if radius < KERNEL_CONSTANTS["small_radius"]:
        return KERNEL_CONSTANTS["sample_count_small"]
    if radius < KERNEL_CONSTANTS["medium_radius"]:
        return KERNEL_CONSTANTS["sample_count_medium"]
    return KERNEL_CONSTANTS["sample_count_large"]


class KernelGenerator:
    """
    Builds jittered ring sampling patterns for grain area sampling. Kernels are
    cached per radius rounded to 0.1 px, so jitter is drawn once per key.
    """

    def __init__(self, rng: RandomSource):
        self.rng = rng
        self._cache: Dict[float, SamplingKernel] = {}

    def _ring(
        self,
        points: List[Tuple[float, float]],
        count: int,
        ring_radius: float,
        angle_offset: float,
        angle_jitter: float,
        radius_jitter: float,
    ) -> None:
        step = 2.0 * math.pi / count
        for i in range(count):
            angle = i * step + angle_offset + (self.rng.random() - 0.5) * step * angle_jitter
            r = ring_radius * (1.0 + (self.rng.random() - 0.5) * radius_jitter)
            points.append((math.cos(angle) * r, math.sin(angle) * r))

    def get_kernel(self, radius: float) -> SamplingKernel:
        key = round(radius, KERNEL_CONSTANTS["cache_precision"])
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        remaining = determine_sample_count(radius) - 1
        points: List[Tuple[float, float]] = [(0.0, 0.0)]
        if remaining <= KERNEL_CONSTANTS["max_single_ring"]:
            self._ring(
                points,
                remaining,
                radius * KERNEL_CONSTANTS["single_ring_radius"],
                0.0,
                KERNEL_CONSTANTS["single_ring_angle_jitter"],
                KERNEL_CONSTANTS["single_ring_radius_jitter"],
            )
        else:
            inner = int(math.floor(remaining * KERNEL_CONSTANTS["inner_ring_share"]))
            outer = remaining - inner
            self._ring(
                points,
                inner,
                radius * KERNEL_CONSTANTS["inner_ring_radius"],
                0.0,
                KERNEL_CONSTANTS["multi_ring_angle_jitter"],
                KERNEL_CONSTANTS["multi_ring_radius_jitter"],
            )
            # Half-step offset interleaves the outer ring with the inner one
            self._ring(
                points,
                outer,
                radius * KERNEL_CONSTANTS["outer_ring_radius"],
                math.pi / outer,
                KERNEL_CONSTANTS["multi_ring_angle_jitter"],
                KERNEL_CONSTANTS["multi_ring_radius_jitter"],
            )

        dx = np.array([p[0] for p in points], dtype=np.float64)
        dy = np.array([p[1] for p in points], dtype=np.float64)
        weight = np.array(
            [sample_weight(math.hypot(x, y), radius) for x, y in points], dtype=np.float64
        )
        kernel = SamplingKernel(radius=radius, dx=dx, dy=dy, weight=weight)

        if len(self._cache) < KERNEL_CONSTANTS["cache_limit"]:
            self._cache[key] = kernel
        return kernel

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)


@njit(parallel=True, cache=True)
def _sample_luminance_jit(
    luminance: np.ndarray,
    xs: np.ndarray,
    ys: np.ndarray,
    kernel_ids: np.ndarray,
    k_offsets: np.ndarray,
    k_dx: np.ndarray,
    k_dy: np.ndarray,
    k_w: np.ndarray,
) -> np.ndarray:
    h, w = luminance.shape
    n = xs.shape[0]
    res = np.zeros(n, dtype=np.float64)

    for i in prange(n):
        k = kernel_ids[i]
        total = 0.0
        total_w = 0.0
        for s in range(k_offsets[k], k_offsets[k + 1]):
            sx = int(math.floor(xs[i] + k_dx[s] + 0.5))
            sy = int(math.floor(ys[i] + k_dy[s] + 0.5))
            if sx >= 0 and sx < w and sy >= 0 and sy < h:
                total += luminance[sy, sx] * k_w[s]
                total_w += k_w[s]

        if total_w > 0.0:
            res[i] = total / total_w
        else:
            # Pixel containing the centre
            cx = int(math.floor(xs[i]))
            cy = int(math.floor(ys[i]))
            if cx >= 0 and cx < w and cy >= 0 and cy < h:
                res[i] = luminance[cy, cx]
            else:
                res[i] = -1.0  # marks "no light sampled"

    return res


def pack_kernels(
    field: GrainField, kernels: KernelGenerator
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Flattens the kernel of every grain into CSR arrays shared between grains
    with the same kernel object.
    """
    slots: Dict[int, int] = {}
    packed: List[SamplingKernel] = []
    kernel_ids = np.empty(len(field), dtype=np.int64)
    for i, size in enumerate(field.size):
        kernel = kernels.get_kernel(float(size))
        slot = slots.get(id(kernel))
        if slot is None:
            slot = len(packed)
            slots[id(kernel)] = slot
            packed.append(kernel)
        kernel_ids[i] = slot

    counts = np.array([k.sample_count for k in packed], dtype=np.int64)
    offsets = np.zeros(len(packed) + 1, dtype=np.int64)
    np.cumsum(counts, out=offsets[1:])
    if packed:
        dx = np.concatenate([k.dx for k in packed])
        dy = np.concatenate([k.dy for k in packed])
        wt = np.concatenate([k.weight for k in packed])
    else:
        dx = dy = wt = np.empty(0, dtype=np.float64)
    return kernel_ids, offsets, dx, dy, wt


def sample_grain_exposures(
    luminance: np.ndarray, field: GrainField, kernels: KernelGenerator
) -> np.ndarray:
    """
    ExposureMap: per grain id, the kernel-weighted mean linear luminance around
    the grain mapped to logarithmic exposure in [0, 1]. Grains whose kernel and
    centre both miss the image receive exposure 0.
    """
    lum = np.ascontiguousarray(luminance, dtype=np.float64)
    if len(field) == 0:
        return np.zeros(0, dtype=np.float64)

    kernel_ids, offsets, dx, dy, wt = pack_kernels(field, kernels)
    sampled = _sample_luminance_jit(lum, field.x, field.y, kernel_ids, offsets, dx, dy, wt)

    missed = sampled < 0.0
    exposures = luminance_to_exposure(np.where(missed, 0.0, sampled))
    exposures[missed] = 0.0
    logger.debug(
        f"Sampled exposures for {len(field)} grains with {len(offsets) - 1} kernels"
        f" (mean {float(exposures.mean()):.3f})"
    )
    return exposures
