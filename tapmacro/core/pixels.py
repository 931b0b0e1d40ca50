"""Pixel buffer helpers shared by the detector, matcher and calibrator."""

import numpy as np

from .constants import ALPHA_THRESHOLD, LUMA_WEIGHT_B, LUMA_WEIGHT_G, LUMA_WEIGHT_R


def to_luminance(pixels: np.ndarray) -> np.ndarray:
    """Convert an RGB(A) buffer to integer luminance.

    Uses Y = round((299*R + 587*G + 114*B) / 1000), ITU-R BT.601 weights.

    Args:
        pixels: uint8 array (h, w, 3|4) in RGB(A) order, or (h, w) already gray

    Returns:
        int32 array (h, w) with values 0..255
    """
    if pixels.ndim == 2:
        return pixels.astype(np.int32)

    r = pixels[:, :, 0].astype(np.int32)
    g = pixels[:, :, 1].astype(np.int32)
    b = pixels[:, :, 2].astype(np.int32)

    return (LUMA_WEIGHT_R * r + LUMA_WEIGHT_G * g + LUMA_WEIGHT_B * b + 500) // 1000


def alpha_mask(pixels: np.ndarray, threshold: int = ALPHA_THRESHOLD) -> np.ndarray:
    """Boolean inclusion mask from the alpha channel.

    RGB buffers (no alpha) are treated as fully opaque.
    """
    height, width = pixels.shape[:2]
    if pixels.ndim < 3 or pixels.shape[2] < 4:
        return np.ones((height, width), dtype=bool)
    return pixels[:, :, 3] >= threshold


def bgra_to_rgba(image: np.ndarray) -> np.ndarray:
    """Swap B and R channels of an mss BGRA grab."""
    return image[:, :, [2, 1, 0, 3]]
