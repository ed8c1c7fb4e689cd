"""Mask compositing, resampling and blending."""

from segoverlay.compositing.buffers import (
    ClassIndexMap,
    CompositeMask,
    InstanceMask,
    OverlayImage,
    SourceImage,
)
from segoverlay.compositing.compositor import (
    ClassMap,
    InstanceMasks,
    MaskSource,
    composite_instances,
    map_class_indices,
)
from segoverlay.compositing.resample import resample
from segoverlay.compositing.blender import AlphaBlender, BlendConfig

__all__ = [
    "SourceImage", "ClassIndexMap", "InstanceMask", "CompositeMask", "OverlayImage",
    "InstanceMasks", "ClassMap", "MaskSource", "composite_instances", "map_class_indices",
    "resample", "AlphaBlender", "BlendConfig",
]
