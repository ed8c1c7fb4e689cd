"""Segmentation pipeline: inference, compositing, resampling and blending."""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from PIL import Image

from segoverlay.config import Config
from segoverlay.compositing.blender import AlphaBlender, BlendConfig
from segoverlay.compositing.buffers import CompositeMask, OverlayImage, SourceImage
from segoverlay.compositing.compositor import ClassMap, MaskSource
from segoverlay.errors import InferenceError, NoImageError, PredictionError, SegmentationError
from segoverlay.ingest import load_image, to_source_image

logger = logging.getLogger(__name__)

ImageInput = Union[Image.Image, SourceImage, bytes, None]


class PipelineState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    INFERRING = "inferring"
    COMPOSITING = "compositing"
    RESAMPLING = "resampling"
    BLENDING = "blending"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineRun:
    """State history of a single pipeline invocation."""
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])

    @property
    def state(self) -> PipelineState:
        return self.history[-1]

    def advance(self, state: PipelineState) -> None:
        logger.debug("%s -> %s", self.state.value, state.value)
        self.history.append(state)


@dataclass(eq=False)
class ProcessingResult:
    source: SourceImage
    overlay: OverlayImage
    composite: Optional[CompositeMask]  # None when no instances were detected
    mode: str
    model_name: str = "unknown"
    instance_count: Optional[int] = None
    history: tuple[PipelineState, ...] = ()

    @property
    def state(self) -> PipelineState:
        return self.history[-1] if self.history else PipelineState.DONE


class SegmentationPipeline:
    """Runs one of the two segmentation back-ends and renders an overlay.

    Back-ends are created on first use unless injected. Each call keeps its
    own PipelineRun, so one pipeline can serve several worker threads.
    """

    def __init__(
        self,
        mode: str = Config.DEFAULT_MODE,
        blend_config: Optional[BlendConfig] = None,
        segmentor=None,
        classifier=None,
        device: Optional[str] = None,
    ):
        if mode not in Config.MODES:
            raise ValueError(f"Invalid pipeline mode: {mode}")
        self.mode = mode
        self.device = device
        self.blender = AlphaBlender(blend_config)
        self._segmentor = segmentor
        self._classifier = classifier
        self._load_lock = threading.Lock()

    @property
    def segmentor(self):
        with self._load_lock:
            if self._segmentor is None:
                from segoverlay.models.segmentor import InstanceSegmentor
                self._segmentor = InstanceSegmentor(device=self.device)
            return self._segmentor

    @property
    def classifier(self):
        with self._load_lock:
            if self._classifier is None:
                from segoverlay.models.classifier import DeepLabClassifier
                self._classifier = DeepLabClassifier(device=self.device)
            return self._classifier

    @property
    def model_name(self) -> str:
        backend = self._segmentor if self.mode == Config.MODE_INSTANCE else self._classifier
        return getattr(backend, "model_name", "unknown")

    def process(self, image: ImageInput) -> ProcessingResult:
        """Run the full pipeline on one image.

        Args:
            image: A loaded photo, a SourceImage, encoded image bytes, or None
                when no image was acquired.

        Raises:
            SegmentationError: on any terminal failure. Its `history` ends in FAILED.
        """
        run = PipelineRun()
        try:
            return self._process(image, run)
        except SegmentationError as e:
            run.advance(PipelineState.FAILED)
            e.history = tuple(run.history)
            raise

    def run(self, image: ImageInput) -> Optional[ProcessingResult]:
        """Run the pipeline, logging failures instead of raising them."""
        try:
            return self.process(image)
        except SegmentationError as e:
            logger.error("Segmentation failed (%s): %s", type(e).__name__, e)
            return None

    def _process(self, image: ImageInput, run: PipelineRun) -> ProcessingResult:
        run.advance(PipelineState.CAPTURING)
        if image is None:
            raise NoImageError("No image acquired")
        if isinstance(image, bytes):
            image = load_image(image)
        source = image if isinstance(image, SourceImage) else to_source_image(image)

        run.advance(PipelineState.INFERRING)
        mask_source, instance_count = self._infer(source)

        run.advance(PipelineState.COMPOSITING)
        composite = mask_source.build()

        run.advance(PipelineState.RESAMPLING)
        coverage = self.blender.prepare_coverage(source, composite)

        run.advance(PipelineState.BLENDING)
        overlay = self.blender.blend(source, coverage)

        run.advance(PipelineState.DONE)
        logger.info("Rendered %s overlay %dx%d", self.mode, overlay.width, overlay.height)
        return ProcessingResult(
            source=source,
            overlay=overlay,
            composite=composite,
            mode=self.mode,
            model_name=self.model_name,
            instance_count=instance_count,
            history=tuple(run.history),
        )

    def _infer(self, source: SourceImage) -> tuple[MaskSource, Optional[int]]:
        try:
            if self.mode == Config.MODE_INSTANCE:
                segmentation = self.segmentor.segment(source)
                return segmentation.to_mask_source(), len(segmentation.masks)
            class_map = self.classifier.predict(source)
        except SegmentationError:
            raise
        except Exception as e:
            raise PredictionError(f"{self.mode} back-end failed: {type(e).__name__}: {e}") from e

        if class_map.width == 0 or class_map.height == 0:
            raise InferenceError("Model returned an empty class map")
        return ClassMap(class_map), None
