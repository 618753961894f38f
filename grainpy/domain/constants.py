from dataclasses import dataclass
from typing import Dict
from grainpy.domain.models import FilmType


@dataclass(frozen=True)
class FilmCurve:
    """
    Characteristic curve shaping developed density: power-law body with a
    compressed toe (shadows) and shoulder (highlights).
    """

    gamma: float
    toe: float
    shoulder: float
    toe_strength: float
    shoulder_strength: float


@dataclass(frozen=True)
class FilmCharacteristics:
    contrast: float
    # Development threshold distribution: base +- variation
    threshold_base: float
    threshold_variation: float
    curve: FilmCurve


# Kodak is the most sensitive emulsion, Ilford the least
FILM_CHARACTERISTICS: Dict[FilmType, FilmCharacteristics] = {
    FilmType.KODAK: FilmCharacteristics(
        contrast=1.2,
        threshold_base=0.35,
        threshold_variation=0.15,
        curve=FilmCurve(gamma=1.1, toe=0.1, shoulder=0.85, toe_strength=1.3, shoulder_strength=1.6),
    ),
    FilmType.FUJI: FilmCharacteristics(
        contrast=1.1,
        threshold_base=0.40,
        threshold_variation=0.12,
        curve=FilmCurve(gamma=1.0, toe=0.08, shoulder=0.88, toe_strength=1.2, shoulder_strength=1.4),
    ),
    FilmType.ILFORD: FilmCharacteristics(
        contrast=1.3,
        threshold_base=0.45,
        threshold_variation=0.18,
        curve=FilmCurve(gamma=1.2, toe=0.12, shoulder=0.82, toe_strength=1.4, shoulder_strength=1.8),
    ),
}
