from typing import Callable, List, Optional
import numpy as np
from grainpy.domain.constants import FilmCharacteristics
from grainpy.domain.models import GrainField, GrainSettings
from grainpy.domain.types import ImageBuffer
from grainpy.features.color.logic import calculate_lightness_factor, is_starved_print
from grainpy.features.development.logic import (
    adjust_exposures,
    develop_grains,
    sampling_lattice,
)
from grainpy.features.development.models import (
    DEVELOPMENT_CONSTANTS,
    DevelopmentIteration,
    DevelopmentResult,
)
from grainpy.kernel.system.logging import get_logger

logger = get_logger(__name__)

# (density, rows, cols) -> linear trial buffer restricted to the given lattice
Printer = Callable[[np.ndarray, np.ndarray, np.ndarray], ImageBuffer]
IterationCallback = Callable[[DevelopmentIteration], None]


class DevelopmentEngine:
    """
    Iterative development: adjusts exposures until the printed trial matches
    the reference's average lightness, or the iteration budget runs out.
    """

    def __init__(
        self,
        field: GrainField,
        film: FilmCharacteristics,
        settings: GrainSettings,
        printer: Printer,
    ):
        self.field = field
        self.film = film
        self.settings = settings
        self.printer = printer

    def run(
        self,
        exposures: np.ndarray,
        reference: ImageBuffer,
        on_iteration: Optional[IterationCallback] = None,
    ) -> DevelopmentResult:
        height, width = reference.shape[:2]
        rows, cols = sampling_lattice(
            width, height, self.settings.lightness_estimation_sampling_density
        )
        ref_sample = reference[np.ix_(rows, cols)]

        factor = DEVELOPMENT_CONSTANTS["initial_factor"]
        max_factor = DEVELOPMENT_CONSTANTS["max_factor"]
        history: List[DevelopmentIteration] = []
        converged = False

        for i in range(self.settings.max_iterations):
            adjusted = adjust_exposures(exposures, factor)
            density = develop_grains(adjusted, self.field, self.film)
            density.setflags(write=False)

            trial = self.printer(density, rows, cols)
            ratio = calculate_lightness_factor(ref_sample, trial)
            starved = is_starved_print(ref_sample, trial)

            record = DevelopmentIteration(
                iteration=i + 1,
                adjustment_factor=factor,
                lightness_ratio=ratio,
                density=density,
                starved=starved,
            )
            history.append(record)
            logger.debug(
                f"Development {record.iteration}/{self.settings.max_iterations}: "
                f"factor={factor:.4f} ratio={ratio:.4f} starved={starved} "
                f"mean density={float(density.mean()) if density.size else 0.0:.4f}"
            )
            if on_iteration is not None:
                on_iteration(record)

            if starved:
                # Nothing developed: the neutral ratio must not count as a match
                if factor >= max_factor:
                    logger.warning(
                        f"No grains developed even at factor {factor:.2f}; "
                        "stopping development"
                    )
                    break
                factor = max_factor
                continue

            if abs(ratio - 1.0) < self.settings.convergence_threshold:
                converged = True
                break

            factor = float(
                np.clip(factor * ratio, DEVELOPMENT_CONSTANTS["min_factor"], max_factor)
            )

        # A starved density prints black; keep the last one that produced light
        chosen = next((it for it in reversed(history) if not it.starved), history[-1])
        result = DevelopmentResult(
            density=chosen.density,
            iterations=tuple(history),
            converged=converged,
        )
        if converged:
            logger.info(f"Development converged after {result.iteration_count} iterations")
        else:
            logger.info(
                f"Development did not converge after {result.iteration_count} iterations "
                f"(last ratio {history[-1].lightness_ratio:.4f})"
            )
        return result
