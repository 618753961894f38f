import numpy as np
import numpy.typing as npt
from grainpy.domain.types import (
    ImageBuffer,
    Rgba8Buffer,
    LUMA_R,
    LUMA_G,
    LUMA_B,
    ALPHA_CHANNEL_INDEX,
)
from grainpy.kernel.image.validation import ensure_image
from grainpy.features.color.models import (
    SRGB_CONSTANTS,
    EXPOSURE_CONVERSION,
    LIGHTNESS_CONSTANTS,
)


def srgb_to_linear(value: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """
    Gamma-encoded [0, 1] -> linear radiance [0, 1].
    """
    v = np.clip(np.asarray(value, dtype=np.float64), 0.0, 1.0)
    return np.where(
        v <= SRGB_CONSTANTS["decode_threshold"],
        v / SRGB_CONSTANTS["linear_slope"],
        np.power(
            (v + SRGB_CONSTANTS["offset"]) / SRGB_CONSTANTS["multiplier"],
            SRGB_CONSTANTS["gamma"],
        ),
    )


def linear_to_srgb(value: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """
    Linear radiance [0, 1] -> gamma-encoded [0, 1].
    """
    v = np.clip(np.asarray(value, dtype=np.float64), 0.0, 1.0)
    return np.where(
        v <= SRGB_CONSTANTS["encode_threshold"],
        v * SRGB_CONSTANTS["linear_slope"],
        SRGB_CONSTANTS["multiplier"] * np.power(v, 1.0 / SRGB_CONSTANTS["gamma"])
        - SRGB_CONSTANTS["offset"],
    )


def rgba8_to_linear(buf: Rgba8Buffer) -> ImageBuffer:
    """
    RGBA8 (H, W, 4) -> linear float32. Alpha is only rescaled to [0, 1].
    """
    norm = buf.astype(np.float64) / 255.0
    res = srgb_to_linear(norm)
    res[..., ALPHA_CHANNEL_INDEX] = norm[..., ALPHA_CHANNEL_INDEX]
    return ensure_image(res)


def linear_to_rgba8(buf: ImageBuffer) -> Rgba8Buffer:
    """
    Linear float (H, W, 4) -> RGBA8. RGB is clamped before encoding; alpha is only rescaled.
    """
    res = linear_to_srgb(buf)
    res[..., ALPHA_CHANNEL_INDEX] = np.clip(buf[..., ALPHA_CHANNEL_INDEX], 0.0, 1.0)
    return np.round(res * 255.0).astype(np.uint8)


def get_luminance(img: npt.NDArray) -> npt.NDArray[np.float64]:
    """
    Rec.709 luminance of a linear (..., >=3) buffer.
    """
    return (
        LUMA_R * img[..., 0].astype(np.float64)
        + LUMA_G * img[..., 1]
        + LUMA_B * img[..., 2]
    )


def rgba8_to_grayscale(buf: Rgba8Buffer) -> Rgba8Buffer:
    """
    Monochrome conversion done in linear light, re-encoded to 8-bit and replicated
    across RGB. Alpha is preserved.
    """
    linear = srgb_to_linear(buf[..., :3].astype(np.float64) / 255.0)
    lum = get_luminance(linear)
    gray = np.round(np.clip(linear_to_srgb(lum) * 255.0, 0.0, 255.0)).astype(np.uint8)

    res = np.empty_like(buf)
    res[..., 0] = gray
    res[..., 1] = gray
    res[..., 2] = gray
    res[..., ALPHA_CHANNEL_INDEX] = buf[..., ALPHA_CHANNEL_INDEX]
    return res


def luminance_to_exposure(luminance: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """
    Linear luminance -> normalised logarithmic photographic exposure in [0, 1].
    Middle gray (0.18) lands at 0.5; each side spans `exposure_scale` log units.
    """
    lum = np.asarray(luminance, dtype=np.float64)
    safe = lum + EXPOSURE_CONVERSION["luminance_offset"]
    log_exposure = np.log(safe / EXPOSURE_CONVERSION["middle_gray_luminance"]) / np.log(
        EXPOSURE_CONVERSION["log_base"]
    )
    scale = EXPOSURE_CONVERSION["exposure_scale"]
    normalized = (log_exposure + scale) / (2.0 * scale)
    return np.clip(normalized, 0.0, 1.0)


def average_luminance(buf: ImageBuffer) -> float:
    if buf.size == 0:
        return 0.0
    return float(np.mean(get_luminance(buf)))


def is_starved_print(reference: ImageBuffer, processed: ImageBuffer) -> bool:
    """
    True when a visible reference printed to (near) black: no grain received
    enough light, so the lightness ratio carries no information.
    """
    return (
        average_luminance(reference) >= LIGHTNESS_CONSTANTS["dark_threshold"]
        and average_luminance(processed) < LIGHTNESS_CONSTANTS["processed_min"]
    )


def calculate_lightness_factor(reference: ImageBuffer, processed: ImageBuffer) -> float:
    """
    Ratio of mean luminance reference/processed, used to restore the source's
    brightness after the nonlinear print step.
    """
    if reference.shape != processed.shape:
        raise ValueError(
            f"Lightness buffers differ in shape: {reference.shape} vs {processed.shape}"
        )

    avg_ref = average_luminance(reference)
    avg_proc = average_luminance(processed)

    # Near-black source: grain must stay minimal, so never amplify
    if avg_ref < LIGHTNESS_CONSTANTS["dark_threshold"]:
        return min(1.0, avg_ref / max(avg_proc, LIGHTNESS_CONSTANTS["processed_min"]))

    if avg_proc < LIGHTNESS_CONSTANTS["processed_min"]:
        return 1.0

    factor = avg_ref / avg_proc
    return float(
        np.clip(factor, LIGHTNESS_CONSTANTS["factor_min"], LIGHTNESS_CONSTANTS["factor_max"])
    )


def apply_lightness_scaling(buf: ImageBuffer, factor: float) -> ImageBuffer:
    """
    Scales RGB by `factor`; alpha untouched.
    """
    res = buf.copy()
    res[..., :3] *= np.float32(factor)
    return ensure_image(res)
