from typing import Any, cast
import numpy as np
from grainpy.domain.types import ImageBuffer
from grainpy.domain.errors import InvalidInputError


def ensure_image(arr: Any) -> ImageBuffer:
    """
    Ensures the input is a float32 numpy array and returns it as an ImageBuffer.
    """
    if not isinstance(arr, np.ndarray):
        raise TypeError(f"Expected numpy.ndarray, got {type(arr)}")

    if arr.dtype != np.float32:
        arr = arr.astype(np.float32)

    return cast(ImageBuffer, arr)


def validate_positive_int(val: Any, name: str) -> int:
    """Rejects bools, floats and non-positive values instead of coercing them."""
    if isinstance(val, bool) or not isinstance(val, (int, np.integer)):
        raise InvalidInputError(f"{name} must be a positive integer, got {val!r}")
    if val <= 0:
        raise InvalidInputError(f"{name} must be a positive integer, got {val!r}")
    return int(val)


def validate_float_range(
    val: Any,
    name: str,
    low: float,
    high: float,
    low_inclusive: bool = True,
) -> float:
    if isinstance(val, bool) or not isinstance(val, (int, float, np.integer, np.floating)):
        raise InvalidInputError(f"{name} must be a number, got {val!r}")
    res = float(val)
    if not np.isfinite(res):
        raise InvalidInputError(f"{name} must be finite, got {val!r}")
    below = res < low if low_inclusive else res <= low
    if below or res > high:
        bracket = "[" if low_inclusive else "("
        raise InvalidInputError(f"{name} must be in {bracket}{low}, {high}], got {val!r}")
    return res


def validate_int_range(val: Any, name: str, low: int, high: int) -> int:
    if isinstance(val, bool) or not isinstance(val, (int, np.integer)):
        raise InvalidInputError(f"{name} must be an integer, got {val!r}")
    if val < low or val > high:
        raise InvalidInputError(f"{name} must be in [{low}, {high}], got {val!r}")
    return int(val)


def validate_bool(val: Any, name: str) -> bool:
    if not isinstance(val, (bool, np.bool_)):
        raise InvalidInputError(f"{name} must be a boolean, got {val!r}")
    return bool(val)
