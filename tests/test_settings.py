import dataclasses
import pytest
from grainpy.domain.errors import GrainError, InvalidInputError
from grainpy.domain.models import FilmType, GrainSettings, normalize_settings_keys
from grainpy.kernel.system.config import DEFAULT_GRAIN_SETTINGS


def test_defaults_resolved_once():
    s = GrainSettings.from_dict({"iso": 400, "filmType": "kodak"})
    assert s.film_type is FilmType.KODAK
    assert s.debug_grain_centers is False
    assert s.max_iterations == 5
    assert s.convergence_threshold == 0.05
    assert s.lightness_estimation_sampling_density == 0.1
    assert s.seed is None


def test_camel_and_snake_case_keys():
    camel = GrainSettings.from_dict(
        {
            "iso": 800,
            "filmType": "ilford",
            "debugGrainCenters": True,
            "maxIterations": 7,
            "convergenceThreshold": 0.1,
            "lightnessEstimationSamplingDensity": 0.5,
        }
    )
    snake = GrainSettings.from_dict(
        {
            "iso": 800,
            "film_type": FilmType.ILFORD,
            "debug_grain_centers": True,
            "max_iterations": 7,
            "convergence_threshold": 0.1,
            "lightness_estimation_sampling_density": 0.5,
        }
    )
    assert camel == snake


def test_none_values_fall_back_to_defaults():
    s = GrainSettings.from_dict({"iso": 100, "filmType": "fuji", "maxIterations": None})
    assert s.max_iterations == 5


def test_round_trip_through_dict():
    s = dataclasses.replace(DEFAULT_GRAIN_SETTINGS, seed=12, iso=1600.0)
    assert GrainSettings.from_dict(s.to_dict()) == s
    assert s.to_dict()["film_type"] == "kodak"


@pytest.mark.parametrize(
    "data",
    [
        {"filmType": "kodak"},
        {"iso": 400},
        {"iso": 0, "filmType": "kodak"},
        {"iso": -100, "filmType": "kodak"},
        {"iso": True, "filmType": "kodak"},
        {"iso": "400", "filmType": "kodak"},
        {"iso": float("nan"), "filmType": "kodak"},
        {"iso": 400, "filmType": "agfa"},
        {"iso": 400, "filmType": 3},
        {"iso": 400, "filmType": "kodak", "maxIterations": 0},
        {"iso": 400, "filmType": "kodak", "maxIterations": 21},
        {"iso": 400, "filmType": "kodak", "maxIterations": 2.5},
        {"iso": 400, "filmType": "kodak", "convergenceThreshold": 0},
        {"iso": 400, "filmType": "kodak", "convergenceThreshold": 1.5},
        {"iso": 400, "filmType": "kodak", "lightnessEstimationSamplingDensity": -0.1},
        {"iso": 400, "filmType": "kodak", "lightnessEstimationSamplingDensity": 1.01},
        {"iso": 400, "filmType": "kodak", "debugGrainCenters": "yes"},
        {"iso": 400, "filmType": "kodak", "seed": 1.5},
        {"iso": 400, "filmType": "kodak", "grainShape": 0.5},
    ],
)
def test_rejects_invalid_settings(data):
    with pytest.raises(InvalidInputError):
        GrainSettings.from_dict(data)


def test_boundaries_accepted():
    s = GrainSettings.from_dict(
        {
            "iso": 0.001,
            "filmType": "fuji",
            "maxIterations": 20,
            "convergenceThreshold": 1.0,
            "lightnessEstimationSamplingDensity": 0.0,
        }
    )
    assert s.max_iterations == 20


def test_not_a_mapping():
    with pytest.raises(InvalidInputError):
        GrainSettings.from_dict([("iso", 400)])


def test_invalid_input_is_value_error():
    with pytest.raises(ValueError):
        GrainSettings(iso=-1.0, film_type=FilmType.KODAK)
    assert issubclass(InvalidInputError, GrainError)


def test_settings_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_GRAIN_SETTINGS.iso = 100.0


def test_normalize_settings_keys():
    keys = normalize_settings_keys({"filmType": "fuji", "maxIterations": 3, "seed": None})
    assert keys == {"film_type": "fuji", "max_iterations": 3}
    with pytest.raises(InvalidInputError):
        normalize_settings_keys({"grainSize": 2})
    with pytest.raises(InvalidInputError):
        normalize_settings_keys([("iso", 400)])
