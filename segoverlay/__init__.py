"""Segmentation overlay rendering: run a segmentation model on a photo and reveal the segmented regions."""

from segoverlay.config import Config
from segoverlay.pipeline import BackgroundRunner, ProcessingResult, SegmentationPipeline

__all__ = ["Config", "SegmentationPipeline", "ProcessingResult", "BackgroundRunner"]
