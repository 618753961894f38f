from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
import numpy as np
from grainpy.domain.constants import FILM_CHARACTERISTICS
from grainpy.domain.errors import InvalidInputError
from grainpy.domain.interfaces import ProgressCallback, RandomSource
from grainpy.domain.models import GrainSettings
from grainpy.domain.types import Rgba8Buffer, RGBA_CHANNELS, ALPHA_CHANNEL_INDEX
from grainpy.features.color.logic import (
    rgba8_to_grayscale,
    rgba8_to_linear,
    linear_to_rgba8,
    get_luminance,
    calculate_lightness_factor,
    apply_lightness_scaling,
)
from grainpy.features.generation.logic import GrainGenerator
from grainpy.features.spatial.logic import SpatialLookupGrid
from grainpy.features.exposure.logic import KernelGenerator, sample_grain_exposures
from grainpy.features.development.models import DevelopmentIteration
from grainpy.features.development.processor import DevelopmentEngine
from grainpy.features.printing.logic import composite_grains, draw_grain_centers
from grainpy.kernel.image.validation import validate_positive_int
from grainpy.kernel.random import resolve_random_source
from grainpy.kernel.system.logging import get_logger
from grainpy.kernel.system.performance import PerformanceTracker, time_function

logger = get_logger(__name__)

RasterInput = Union[bytes, bytearray, memoryview, np.ndarray]

PROGRESS_CHECKPOINTS: Dict[str, int] = {
    "generation": 5,
    "indexing": 10,
    "sampling": 15,
    "development": 20,
    "compositing": 85,
    "debug": 90,
    "complete": 100,
}
# Development spans 20..80, one checkpoint per iteration
DEVELOPMENT_PROGRESS_SPAN = 60


@dataclass(frozen=True)
class ProcessingResult:
    """
    Output raster (flat RGBA8, same length as the input) plus run metrics.
    """

    buffer: Rgba8Buffer
    width: int
    height: int
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def image(self) -> Rgba8Buffer:
        return self.buffer.reshape(self.height, self.width, RGBA_CHANNELS)


def coerce_raster(buffer: RasterInput, width: int, height: int) -> Rgba8Buffer:
    """
    Validates a row-major RGBA8 raster against its declared size and returns it
    as a (height, width, 4) uint8 array. Never coerces other dtypes.
    """
    width = validate_positive_int(width, "width")
    height = validate_positive_int(height, "height")
    expected = width * height * RGBA_CHANNELS

    if isinstance(buffer, (bytes, bytearray, memoryview)):
        arr = np.frombuffer(buffer, dtype=np.uint8)
    elif isinstance(buffer, np.ndarray):
        if buffer.dtype != np.uint8:
            raise InvalidInputError(f"Raster must be uint8, got {buffer.dtype}")
        arr = buffer
    else:
        raise InvalidInputError(
            f"Raster must be bytes or a numpy array, got {type(buffer).__name__}"
        )

    if arr.size != expected:
        raise InvalidInputError(
            f"Raster holds {arr.size} bytes, expected {expected} for {width}x{height} RGBA"
        )
    return np.ascontiguousarray(arr).reshape(height, width, RGBA_CHANNELS)


class GrainEngine:
    """
    Runs one grain simulation per `process` call:
    grayscale -> linear -> grains -> index -> exposures -> development ->
    final print -> lightness correction -> encode -> optional debug overlay.
    """

    def __init__(
        self,
        settings: GrainSettings,
        rng: Optional[RandomSource] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        self.settings = settings
        self.rng = rng if rng is not None else resolve_random_source(settings.seed)
        self.progress = progress
        self.film = FILM_CHARACTERISTICS[settings.film_type]

    def _report(self, stage: str, percent: int) -> None:
        if self.progress is None:
            return
        try:
            self.progress(stage, percent)
        except Exception as e:
            logger.warning(f"Progress callback failed at {stage} ({percent}%): {e}")

    @time_function
    def process(self, buffer: RasterInput, width: int, height: int) -> ProcessingResult:
        rgba = coerce_raster(buffer, width, height)
        height, width = rgba.shape[:2]
        pixels = width * height
        tracker = PerformanceTracker()
        logger.info(
            f"Processing {width}x{height} at ISO {self.settings.iso:g} "
            f"({self.settings.film_type.value})"
        )

        tracker.start("conversion", pixels)
        gray = rgba8_to_grayscale(rgba)
        linear = rgba8_to_linear(gray)
        tracker.end("conversion")

        self._report("generation", PROGRESS_CHECKPOINTS["generation"])
        tracker.start("generation", pixels)
        grains = GrainGenerator(width, height, self.settings, self.rng).generate_grain_structure()
        tracker.end("generation")

        self._report("indexing", PROGRESS_CHECKPOINTS["indexing"])
        tracker.start("indexing")
        grid = SpatialLookupGrid(width, height, grains)
        tracker.end("indexing")

        self._report("sampling", PROGRESS_CHECKPOINTS["sampling"])
        tracker.start("sampling")
        exposures = sample_grain_exposures(
            get_luminance(linear), grains, KernelGenerator(self.rng)
        )
        tracker.end("sampling")

        def print_trial(density: np.ndarray, rows: np.ndarray, cols: np.ndarray):
            return composite_grains(grains, grid, density, rows, cols).buffer

        def on_iteration(record: DevelopmentIteration) -> None:
            done = record.iteration / self.settings.max_iterations
            self._report(
                "development",
                PROGRESS_CHECKPOINTS["development"]
                + int(round(done * DEVELOPMENT_PROGRESS_SPAN)),
            )

        self._report("development", PROGRESS_CHECKPOINTS["development"])
        tracker.start("development", pixels)
        developer = DevelopmentEngine(grains, self.film, self.settings, print_trial)
        development = developer.run(exposures, linear, on_iteration=on_iteration)
        tracker.end("development")

        self._report("compositing", PROGRESS_CHECKPOINTS["compositing"])
        tracker.start("compositing", pixels)
        printed = composite_grains(grains, grid, development.density)
        lightness = calculate_lightness_factor(linear, printed.buffer)
        output = linear_to_rgba8(apply_lightness_scaling(printed.buffer, lightness))
        output[..., ALPHA_CHANNEL_INDEX] = 255
        tracker.end("compositing")

        if self.settings.debug_grain_centers:
            self._report("debug", PROGRESS_CHECKPOINTS["debug"])
            output = draw_grain_centers(output, grains)

        tracker.log_summary()
        metrics: Dict[str, Any] = {
            "grain_count": len(grains),
            "used_fallback": grains.used_fallback,
            "iterations": development.iteration_count,
            "converged": development.converged,
            "adjustment_factor": development.adjustment_factor,
            "lightness_factor": lightness,
            "grain_effect_count": printed.grain_effect_count,
            "processed_pixels": printed.processed_pixels,
            "timings_ms": tracker.durations(),
        }
        self._report("complete", PROGRESS_CHECKPOINTS["complete"])
        logger.info(
            f"Done: {len(grains)} grains, {development.iteration_count} iterations, "
            f"lightness x{lightness:.3f}"
        )
        return ProcessingResult(
            buffer=output.reshape(-1), width=width, height=height, metrics=metrics
        )
