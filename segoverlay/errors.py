"""Error taxonomy for the overlay pipeline.

Everything except MaskGenerationError ends the run it occurs in. Mask
generation failures are per instance and are skipped by the compositor.
"""


class SegmentationError(Exception):
    """Base class for every pipeline failure.

    When raised out of a pipeline run, `history` holds the states the run
    went through, ending in FAILED.
    """
    history: tuple = ()


class NoImageError(SegmentationError):
    """No image was acquired (missing file, failed download, cancelled capture)."""


class MalformedFrameError(SegmentationError):
    """A pixel buffer could not be derived from the source image."""


class InferenceError(SegmentationError):
    """The segmentation model or service failed."""


class ModelLoadError(InferenceError):
    """Model weights could not be loaded."""


class PredictionError(InferenceError):
    """The model failed while running a prediction."""


class MaskGenerationError(SegmentationError):
    """A single instance mask could not be produced."""


class RenderError(SegmentationError):
    """The final buffer could not be materialized into an image."""
