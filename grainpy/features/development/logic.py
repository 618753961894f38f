from typing import Tuple
import numpy as np
import numpy.typing as npt
from scipy.special import expit
from grainpy.domain.constants import FilmCharacteristics, FilmCurve
from grainpy.domain.models import GrainField
from grainpy.features.development.models import DEVELOPMENT_CONSTANTS


def dampen_factor(factor: float) -> float:
    """
    Damped logarithmic form of an exposure adjustment factor.
    """
    clamp = DEVELOPMENT_CONSTANTS["log_clamp"]
    log_f = float(np.clip(np.log(factor), -clamp, clamp))
    return float(np.exp(log_f * DEVELOPMENT_CONSTANTS["dampening"]))


def adjust_exposures(exposures: np.ndarray, factor: float) -> np.ndarray:
    return np.clip(exposures * dampen_factor(factor), 0.0, 1.0)


def apply_film_curve(values: npt.ArrayLike, curve: FilmCurve) -> npt.NDArray[np.float64]:
    """
    Characteristic curve: power-law body x^(1/gamma), a toe that bends the
    shadows down below `toe` and a shoulder that rolls highlights off towards 1
    above `shoulder`. Continuous at both joins, maps 0 -> 0 and 1 -> 1.
    """
    x = np.clip(np.asarray(values, dtype=np.float64), 0.0, 1.0)
    inv_gamma = 1.0 / curve.gamma
    body = np.power(x, inv_gamma)

    toe_out = curve.toe**inv_gamma
    toe = toe_out * np.power(x / curve.toe, curve.toe_strength)

    shoulder_out = curve.shoulder**inv_gamma
    ratio = np.clip((x - curve.shoulder) / (1.0 - curve.shoulder), 0.0, 1.0)
    shoulder = shoulder_out + (1.0 - shoulder_out) * (
        1.0 - np.power(1.0 - ratio, curve.shoulder_strength)
    )

    return np.where(x < curve.toe, toe, np.where(x > curve.shoulder, shoulder, body))


def develop_grains(
    exposures: np.ndarray, field: GrainField, film: FilmCharacteristics
) -> np.ndarray:
    """
    IntrinsicDensityMap from adjusted exposures. A grain develops only once
    exposure x sensitivity passes its threshold; the excess drives a logistic
    response rescaled to start at zero.
    """
    activation = exposures * field.sensitivity
    excess = activation - field.threshold
    steep = DEVELOPMENT_CONSTANTS["sigmoid_steepness"] * film.contrast
    response = np.where(excess > 0.0, 2.0 * expit(steep * excess) - 1.0, 0.0)
    return np.clip(apply_film_curve(response, film.curve), 0.0, 1.0)


def sampling_stride(density: float) -> int:
    """
    Per-axis stride of the trial lattice covering roughly `density` of the
    pixels. Density 0 or >= 1 means every pixel.
    """
    if density <= 0.0 or density >= 1.0:
        return 1
    return max(1, int(np.floor(1.0 / np.sqrt(density))))


def sampling_lattice(
    width: int, height: int, density: float
) -> Tuple[np.ndarray, np.ndarray]:
    stride = sampling_stride(density)
    rows = np.arange(0, height, stride, dtype=np.int64)
    cols = np.arange(0, width, stride, dtype=np.int64)
    return rows, cols
