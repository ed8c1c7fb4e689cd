"""Segmentation overlay pipeline."""

from segoverlay.pipeline.processor import (
    PipelineRun,
    PipelineState,
    ProcessingResult,
    SegmentationPipeline,
)
from segoverlay.pipeline.runner import BackgroundRunner

__all__ = ["SegmentationPipeline", "ProcessingResult", "PipelineState", "PipelineRun", "BackgroundRunner"]
