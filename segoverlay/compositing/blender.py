"""Blend the source photo over a background through a composite mask."""

import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from segoverlay.config import Config
from segoverlay.compositing.buffers import CompositeMask, OverlayImage, SourceImage
from segoverlay.compositing.resample import resample, scale_factors
from segoverlay.errors import RenderError

logger = logging.getLogger(__name__)


@dataclass
class BlendConfig:
    """Configuration for overlay blending."""
    background_color: tuple[int, int, int] = Config.BACKGROUND_COLOR
    resample_method: str = Config.RESAMPLE_METHOD

    def __post_init__(self):
        if len(self.background_color) != 3 or any(not 0 <= int(c) <= 255 for c in self.background_color):
            raise ValueError(f"Invalid background color: {self.background_color}")
        self.background_color = tuple(int(c) for c in self.background_color)
        if self.resample_method not in ("bilinear", "nearest"):
            raise ValueError(f"Invalid resample method: {self.resample_method}")


class AlphaBlender:
    """Composites a SourceImage over a solid background using mask coverage as alpha."""

    def __init__(self, config: Optional[BlendConfig] = None):
        self.config = config or BlendConfig()

    def blend(
        self,
        source: SourceImage,
        mask: Union[CompositeMask, np.ndarray, None],
    ) -> OverlayImage:
        """Produce an opaque overlay at the source resolution.

        Each pixel is lerp(background, source, coverage / 255). The source's own
        alpha channel is ignored.

        Args:
            source: Photo to reveal.
            mask: Composite mask at any resolution, a (H, W) uint8 coverage
                array, or None for "no result" (background everywhere).

        Returns:
            OverlayImage with the same width and height as the source.
        """
        coverage = self.prepare_coverage(source, mask)
        try:
            alpha = coverage.astype(np.uint32)[..., None]
            rgb = source.pixels[..., :3].astype(np.uint32)
            background = np.array(self.config.background_color, dtype=np.uint32)

            blended = (rgb * alpha + background * (255 - alpha) + 127) // 255
            pixels = np.empty((source.height, source.width, 4), dtype=np.uint8)
            pixels[..., :3] = blended.astype(np.uint8)
            pixels[..., 3] = 255
        except (ValueError, MemoryError) as e:
            raise RenderError(f"Failed to render overlay: {e}") from e

        return OverlayImage(pixels)

    def prepare_coverage(
        self,
        source: SourceImage,
        mask: Union[CompositeMask, np.ndarray, None],
    ) -> np.ndarray:
        """Return mask coverage resampled to the source size."""
        if mask is None:
            return np.zeros((source.height, source.width), dtype=np.uint8)

        coverage = mask.coverage if isinstance(mask, CompositeMask) else np.asarray(mask)
        if coverage.ndim != 2 or coverage.dtype != np.uint8:
            raise RenderError(f"Mask coverage must be (H, W) uint8, got {coverage.shape} {coverage.dtype}")

        mask_h, mask_w = coverage.shape
        if (mask_w, mask_h) != source.size:
            sx, sy = scale_factors((mask_w, mask_h), source.size)
            logger.debug("Resampling mask %dx%d -> %dx%d (sx=%.3f, sy=%.3f)",
                         mask_w, mask_h, source.width, source.height, sx, sy)
            try:
                coverage = resample(coverage, source.width, source.height, self.config.resample_method)
            except ValueError as e:
                raise RenderError(str(e)) from e
        return coverage
