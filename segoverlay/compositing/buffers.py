"""Pixel buffer types passed between pipeline stages.

All buffers are row-major numpy arrays: (H, W) for single channel data and
(H, W, 4) for RGBA.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image

from segoverlay.errors import MalformedFrameError, MaskGenerationError


def _readonly(array: np.ndarray) -> np.ndarray:
    array = np.array(array, order="C")
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class SourceImage:
    """Immutable RGBA photo owned by the presentation layer."""
    pixels: np.ndarray  # (H, W, 4) uint8

    def __post_init__(self):
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4 or pixels.dtype != np.uint8:
            raise MalformedFrameError(f"Expected (H, W, 4) uint8 RGBA, got {pixels.shape} {pixels.dtype}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise MalformedFrameError("Source image has zero size")
        object.__setattr__(self, "pixels", _readonly(pixels))

    @classmethod
    def from_pil(cls, image: Image.Image) -> "SourceImage":
        return cls(np.array(image.convert("RGBA")))

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def stride(self) -> int:
        """Bytes per row."""
        return self.pixels.strides[0]

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.pixels)


@dataclass(frozen=True, eq=False)
class ClassIndexMap:
    """Per-pixel class ids produced by a semantic segmentation model."""
    indices: np.ndarray  # (H, W) int32

    def __post_init__(self):
        indices = np.asarray(self.indices)
        if indices.ndim != 2:
            raise MalformedFrameError(f"Class index map must be 2-D, got shape {indices.shape}")
        object.__setattr__(self, "indices", _readonly(indices.astype(np.int32, copy=False)))

    @property
    def width(self) -> int:
        return self.indices.shape[1]

    @property
    def height(self) -> int:
        return self.indices.shape[0]


@dataclass(eq=False)
class InstanceMask:
    """Coverage of one detected instance at inference resolution."""
    data: np.ndarray
    confidence: float = 1.0

    def coverage(self, width: int, height: int) -> np.ndarray:
        """Return the mask as uint8 coverage 0..255 for a (width, height) frame.

        Bool masks and float masks in [0, 1] are scaled to 0..255.

        Raises:
            MaskGenerationError: if the mask is not a finite 2-D array of the frame size.
        """
        data = np.asarray(self.data)
        if data.ndim != 2:
            raise MaskGenerationError(f"Instance mask must be 2-D, got shape {data.shape}")
        if data.shape != (height, width):
            raise MaskGenerationError(
                f"Instance mask is {data.shape[1]}x{data.shape[0]}, frame is {width}x{height}"
            )
        if data.dtype == np.bool_:
            return data.astype(np.uint8) * 255
        if data.dtype == np.uint8:
            return data.copy()
        if not np.issubdtype(data.dtype, np.number):
            raise MaskGenerationError(f"Unsupported mask dtype {data.dtype}")

        values = data.astype(np.float32)
        if not np.all(np.isfinite(values)):
            raise MaskGenerationError("Instance mask contains non-finite values")
        if values.size and values.max() <= 1.0:
            values = values * 255.0
        return np.clip(np.rint(values), 0, 255).astype(np.uint8)


@dataclass(frozen=True, eq=False)
class CompositeMask:
    """Combined mask at inference resolution.

    Either single channel coverage (from instance masks) or RGBA colour
    (from a class index map), in which case alpha is the coverage.
    """
    data: np.ndarray  # (H, W) or (H, W, 4) uint8

    def __post_init__(self):
        data = np.asarray(self.data)
        if data.dtype != np.uint8 or not (data.ndim == 2 or (data.ndim == 3 and data.shape[2] == 4)):
            raise MalformedFrameError(f"Composite mask must be (H, W) or (H, W, 4) uint8, got {data.shape} {data.dtype}")
        object.__setattr__(self, "data", _readonly(data))

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def is_rgba(self) -> bool:
        return self.data.ndim == 3

    @property
    def coverage(self) -> np.ndarray:
        return self.data[..., 3] if self.is_rgba else self.data

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.data)


@dataclass(frozen=True, eq=False)
class OverlayImage:
    """Final opaque RGBA image at the source resolution."""
    pixels: np.ndarray  # (H, W, 4) uint8, alpha always 255

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def to_pil(self, mode: Optional[str] = None) -> Image.Image:
        image = Image.fromarray(self.pixels)
        return image.convert(mode) if mode else image
