"""Mask resampling to the source image resolution."""

import numpy as np
from PIL import Image

from segoverlay.config import Config

_FILTERS = {
    "bilinear": Image.Resampling.BILINEAR,
    "nearest": Image.Resampling.NEAREST,
}


def scale_factors(source_size: tuple[int, int], target_size: tuple[int, int]) -> tuple[float, float]:
    """Return (sx, sy) mapping a (width, height) buffer onto the target size."""
    (mw, mh), (tw, th) = source_size, target_size
    return tw / mw, th / mh


def resample(
    buffer: np.ndarray,
    width: int,
    height: int,
    method: str = Config.RESAMPLE_METHOD,
) -> np.ndarray:
    """Scale a (H, W) or (H, W, 4) uint8 buffer to (height, width).

    The x and y axes are scaled independently (sx = width / W, sy = height / H),
    so an aspect change stretches the buffer rather than letterboxing or cropping it.

    Args:
        buffer: Single channel or RGBA buffer.
        width: Target width.
        height: Target height.
        method: "bilinear" or "nearest".

    Returns:
        New uint8 buffer with the same channel layout.
    """
    if method not in _FILTERS:
        raise ValueError(f"Invalid resample method: {method}")
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid target size {width}x{height}")

    buffer = np.asarray(buffer)
    if buffer.dtype != np.uint8 or buffer.ndim not in (2, 3):
        raise ValueError(f"Expected uint8 (H, W) or (H, W, C) buffer, got {buffer.shape} {buffer.dtype}")
    if buffer.shape[0] == 0 or buffer.shape[1] == 0:
        raise ValueError("Cannot resample an empty buffer")

    if buffer.shape[:2] == (height, width):
        return buffer.copy()

    if buffer.ndim == 2:
        return _resize_channel(buffer, width, height, _FILTERS[method])

    # Channels are scaled separately so colour is not premultiplied by alpha
    channels = [
        _resize_channel(buffer[..., c], width, height, _FILTERS[method])
        for c in range(buffer.shape[2])
    ]
    return np.stack(channels, axis=-1)


def _resize_channel(channel: np.ndarray, width: int, height: int, resample_filter) -> np.ndarray:
    image = Image.fromarray(np.ascontiguousarray(channel))
    return np.array(image.resize((width, height), resample_filter))
