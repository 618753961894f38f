from typing import Dict, Any

# IEC 61966-2-1 (sRGB) companding curve
SRGB_CONSTANTS: Dict[str, float] = {
    "decode_threshold": 0.04045,
    "encode_threshold": 0.0031308,
    "linear_slope": 12.92,
    "gamma": 2.4,
    "offset": 0.055,
    "multiplier": 1.055,
}

EXPOSURE_CONVERSION: Dict[str, Any] = {
    "middle_gray_luminance": 0.18,  # Zone V, 18% reflectance
    "log_base": 2.718281828459045,  # natural log
    "exposure_scale": 5.0,  # +-5 log units map onto [0, 1]
    "luminance_offset": 0.001,  # keeps log() finite in pure black
}

LIGHTNESS_CONSTANTS: Dict[str, float] = {
    "dark_threshold": 0.01,  # reference darker than this is never amplified
    "processed_min": 0.001,  # near-black comparison => neutral factor
    "factor_min": 0.01,
    "factor_max": 100.0,
}
