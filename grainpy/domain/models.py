from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional
import numpy as np
from grainpy.domain.types import GrainArray
from grainpy.domain.errors import InvalidInputError
from grainpy.kernel.image.validation import (
    validate_bool,
    validate_float_range,
    validate_int_range,
)


class FilmType(Enum):
    KODAK = "kodak"
    FUJI = "fuji"
    ILFORD = "ilford"


# Accepted request keys -> dataclass field names
_SETTINGS_ALIASES: Dict[str, str] = {
    "iso": "iso",
    "filmType": "film_type",
    "film_type": "film_type",
    "debugGrainCenters": "debug_grain_centers",
    "debug_grain_centers": "debug_grain_centers",
    "maxIterations": "max_iterations",
    "max_iterations": "max_iterations",
    "convergenceThreshold": "convergence_threshold",
    "convergence_threshold": "convergence_threshold",
    "lightnessEstimationSamplingDensity": "lightness_estimation_sampling_density",
    "lightness_estimation_sampling_density": "lightness_estimation_sampling_density",
    "seed": "seed",
}

def normalize_settings_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Maps camelCase or snake_case request keys onto GrainSettings field names.
    Unknown keys are rejected; None values are dropped.
    """
    if not isinstance(data, Mapping):
        raise InvalidInputError(f"settings must be a mapping, got {type(data).__name__}")

    res: Dict[str, Any] = {}
    for key, value in data.items():
        target = _SETTINGS_ALIASES.get(key)
        if target is None:
            raise InvalidInputError(f"Unknown setting: {key!r}")
        if value is None:
            continue
        res[target] = value
    return res


MAX_ITERATIONS_LIMIT = 20


@dataclass(frozen=True)
class GrainSettings:
    """
    Complete, validated parameters for one grain simulation request.
    Defaults are resolved here once; downstream components trust these values.
    """

    iso: float
    film_type: FilmType
    debug_grain_centers: bool = False
    max_iterations: int = 5
    convergence_threshold: float = 0.05
    # Fraction of pixels used for trial composites inside the development loop
    lightness_estimation_sampling_density: float = 0.1
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        validate_float_range(self.iso, "iso", 0.0, float("inf"), low_inclusive=False)
        if not isinstance(self.film_type, FilmType):
            raise InvalidInputError(f"film_type must be a FilmType, got {self.film_type!r}")
        validate_bool(self.debug_grain_centers, "debug_grain_centers")
        validate_int_range(self.max_iterations, "max_iterations", 1, MAX_ITERATIONS_LIMIT)
        validate_float_range(
            self.convergence_threshold,
            "convergence_threshold",
            0.0,
            1.0,
            low_inclusive=False,
        )
        validate_float_range(
            self.lightness_estimation_sampling_density,
            "lightness_estimation_sampling_density",
            0.0,
            1.0,
        )
        if self.seed is not None and (
            isinstance(self.seed, bool) or not isinstance(self.seed, (int, np.integer))
        ):
            raise InvalidInputError(f"seed must be an integer, got {self.seed!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GrainSettings":
        """
        Builds settings from a loosely-typed request record (camelCase or snake_case).
        Unknown keys and wrong types are rejected, never coerced.
        """
        kwargs = normalize_settings_keys(data)

        for required in ("iso", "film_type"):
            if required not in kwargs:
                raise InvalidInputError(f"Missing required setting: {required}")

        film = kwargs["film_type"]
        if isinstance(film, str):
            try:
                kwargs["film_type"] = FilmType(film)
            except ValueError:
                valid = ", ".join(f.value for f in FilmType)
                raise InvalidInputError(
                    f"film_type must be one of: {valid}, got {film!r}"
                ) from None

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        res = {f.name: getattr(self, f.name) for f in fields(self)}
        res["film_type"] = self.film_type.value
        return res


@dataclass(frozen=True)
class GrainPoint:
    """
    Immutable view of a single grain.
    """

    id: int
    x: float
    y: float
    size: float
    sensitivity: float
    threshold: float


@dataclass(frozen=True, eq=False)
class GrainField:
    """
    Grain population as parallel arrays. A grain's id is its index.
    """

    width: int
    height: int
    x: GrainArray
    y: GrainArray
    size: GrainArray
    sensitivity: GrainArray
    threshold: GrainArray
    used_fallback: bool = False

    def __post_init__(self) -> None:
        n = len(self.x)
        for name in ("y", "size", "sensitivity", "threshold"):
            if len(getattr(self, name)) != n:
                raise ValueError(f"GrainField.{name} length does not match x ({n})")
        for name in ("x", "y", "size", "sensitivity", "threshold"):
            arr = np.ascontiguousarray(getattr(self, name), dtype=np.float64)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    def __len__(self) -> int:
        return int(self.x.shape[0])

    def __iter__(self) -> Iterator[GrainPoint]:
        for i in range(len(self)):
            yield self.point(i)

    def point(self, grain_id: int) -> GrainPoint:
        return GrainPoint(
            id=int(grain_id),
            x=float(self.x[grain_id]),
            y=float(self.y[grain_id]),
            size=float(self.size[grain_id]),
            sensitivity=float(self.sensitivity[grain_id]),
            threshold=float(self.threshold[grain_id]),
        )

    @property
    def max_size(self) -> float:
        return float(self.size.max()) if len(self) else 0.0
