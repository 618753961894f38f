from typing import TypeAlias
import numpy as np
import numpy.typing as npt


# Image Types
# Floating point image 0.0 - 1.0 (Height, Width, Channels), linear light
ImageBuffer: TypeAlias = npt.NDArray[np.float32]
# Interleaved 8-bit RGBA, either flat (H*W*4,) or (Height, Width, 4)
Rgba8Buffer: TypeAlias = npt.NDArray[np.uint8]

# Per-grain scalar arrays indexed by grain id
GrainArray: TypeAlias = npt.NDArray[np.float64]

# https://en.wikipedia.org/wiki/Rec._709
LUMA_R = 0.2126
LUMA_G = 0.7152
LUMA_B = 0.0722

RGBA_CHANNELS = 4
ALPHA_CHANNEL_INDEX = 3
