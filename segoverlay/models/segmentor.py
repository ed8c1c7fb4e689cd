"""Foreground instance segmentation via ultralytics.

The segmentor runs on a square frame of Config.INSTANCE_INPUT_SIZE pixels, so
the returned masks share one inference resolution that is independent of the
photo's size. The compositor layers them and the blender stretches the result
back to the photo.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from PIL import Image

from segoverlay.config import Config
from segoverlay.compositing.buffers import InstanceMask, SourceImage
from segoverlay.compositing.compositor import InstanceMasks
from segoverlay.errors import InferenceError, MalformedFrameError, ModelLoadError
from segoverlay.ingest import resize_frame

logger = logging.getLogger(__name__)


@dataclass
class InstanceSegmentation:
    """Instance masks in detector order at the inference frame size."""
    masks: list[InstanceMask] = field(default_factory=list)
    frame_width: int = 0
    frame_height: int = 0

    def to_mask_source(self) -> InstanceMasks:
        return InstanceMasks(self.masks, self.frame_width, self.frame_height)


class InstanceSegmentor:
    """Ultralytics instance segmentation (YOLO-seg, or SAM for "sam*" model names)."""

    def __init__(
        self,
        device: Optional[str] = None,
        model_name: str = Config.INSTANCE_MODEL,
        input_size: int = Config.INSTANCE_INPUT_SIZE,
        confidence_threshold: float = Config.DETECTION_CONFIDENCE,
        max_detections: int = Config.MAX_DETECTIONS,
    ):
        """Initialize the segmentor.

        Args:
            device: Device to run inference on (cuda/mps/cpu). Auto-detected if None.
            model_name: Ultralytics weights name, without the .pt suffix.
            input_size: Side of the square inference frame.
            confidence_threshold: Minimum confidence for detections.
            max_detections: Maximum number of instances to return.
        """
        self.device = device or Config.get_device()
        self.model_name = model_name
        self.input_size = input_size
        self.confidence_threshold = confidence_threshold
        self.max_detections = max_detections
        self.model = self._load_model(model_name)

    def _load_model(self, model_name: str):
        from ultralytics import SAM, YOLO

        loader = SAM if model_name.lower().startswith("sam") else YOLO
        logger.info("Loading %s model: %s on %s", loader.__name__, model_name, self.device)
        try:
            model = loader(f"{model_name}.pt")
        except Exception as e:
            raise ModelLoadError(f"Failed to load {model_name}: {e}") from e
        logger.info("Model loaded: %s", model_name)
        return model

    def segment(self, image: SourceImage | Image.Image) -> InstanceSegmentation:
        """Detect foreground instances and return their masks.

        Raises:
            MalformedFrameError: if the image cannot be turned into a frame.
            InferenceError: if the model fails.
        """
        try:
            frame = resize_frame(image, self.input_size, self.input_size)
        except (OSError, ValueError) as e:
            raise MalformedFrameError(f"Cannot build inference frame: {e}") from e

        try:
            results = self.model(
                frame,
                imgsz=self.input_size,
                conf=self.confidence_threshold,
                retina_masks=True,
                device=self.device,
                verbose=False,
            )
        except Exception as e:
            raise InferenceError(f"Instance segmentation failed: {e}") from e

        segmentation = InstanceSegmentation(frame_width=frame.width, frame_height=frame.height)
        segmentation.masks = self._process_results(results)
        logger.info("Detected %d instances", len(segmentation.masks))
        return segmentation

    def _process_results(self, results) -> list[InstanceMask]:
        """Convert ultralytics results into InstanceMasks, keeping detector order."""
        instance_masks = []

        for result in results:
            if result.masks is None:
                continue

            masks = result.masks.data.cpu().numpy()
            boxes = result.boxes

            for i, mask in enumerate(masks):
                if len(instance_masks) >= self.max_detections:
                    return instance_masks

                confidence = 1.0
                if boxes is not None and boxes.conf is not None and len(boxes.conf) > i:
                    confidence = float(boxes.conf[i])

                if confidence < self.confidence_threshold:
                    continue

                instance_masks.append(InstanceMask(data=mask, confidence=confidence))

        return instance_masks
