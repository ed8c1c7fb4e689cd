"""Turn raw model output into a single composite mask.

Two sources are supported: the per-instance masks of an instance segmentor,
layered with source-over compositing, and the class index grid of a
semantic segmentor, mapped to colours.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

import numpy as np

from segoverlay.config import Config
from segoverlay.compositing.buffers import ClassIndexMap, CompositeMask, InstanceMask
from segoverlay.errors import MaskGenerationError

logger = logging.getLogger(__name__)

ColorTable = dict[int, tuple[int, int, int]]


def composite_instances(
    masks: Iterable[InstanceMask],
    width: int,
    height: int,
) -> Optional[CompositeMask]:
    """Layer instance masks onto a transparent canvas with source-over blending.

    canvas = m + canvas * (1 - m), applied in detector order on coverage in [0, 1].
    Single channel source-over is commutative, so the order only matters up to
    rounding; the canvas stays float32 and is rounded once at the end. Binary
    masks therefore give exactly their union, soft edges keep their alpha.

    A mask that cannot be read is logged and skipped.

    Returns:
        CompositeMask of size (width, height), or None if no masks were given.
    """
    masks = list(masks)
    if not masks:
        return None

    canvas = np.zeros((height, width), dtype=np.float32)
    used = 0
    for i, mask in enumerate(masks):
        try:
            coverage = mask.coverage(width, height).astype(np.float32) / 255.0
        except MaskGenerationError as e:
            logger.warning("Skipping instance %d: %s", i, e)
            continue
        canvas = coverage + canvas * (1.0 - coverage)
        used += 1

    logger.debug("Composited %d/%d instance masks at %dx%d", used, len(masks), width, height)
    return CompositeMask(np.clip(np.rint(canvas * 255.0), 0, 255).astype(np.uint8))


def map_class_indices(
    class_map: ClassIndexMap,
    colors: Optional[ColorTable] = None,
) -> CompositeMask:
    """Colour a class index grid as RGBA.

    Class 0 is fully transparent, every other class in the table is opaque in
    its colour, and classes missing from the table become transparent black.
    """
    colors = Config.CLASS_COLORS if colors is None else colors
    indices = class_map.indices
    rgba = np.zeros(indices.shape + (4,), dtype=np.uint8)

    for class_index in np.unique(indices):
        class_index = int(class_index)
        if class_index == 0 or class_index not in colors:
            continue
        r, g, b = colors[class_index]
        rgba[indices == class_index] = (r, g, b, 255)

    return CompositeMask(rgba)


@dataclass
class InstanceMasks:
    """Instance segmentation output: masks in detector order plus the frame size."""
    masks: list[InstanceMask]
    width: int
    height: int

    def build(self) -> Optional[CompositeMask]:
        return composite_instances(self.masks, self.width, self.height)


@dataclass
class ClassMap:
    """Semantic segmentation output."""
    class_map: ClassIndexMap
    colors: Optional[ColorTable] = None

    def build(self) -> Optional[CompositeMask]:
        return map_class_indices(self.class_map, self.colors)


MaskSource = Union[InstanceMasks, ClassMap]
