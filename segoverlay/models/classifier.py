"""DeepLabV3 semantic segmentation producing per-pixel PASCAL VOC class ids."""

import logging
from typing import Optional

import numpy as np
import torch
from PIL import Image
from transformers import AutoImageProcessor, AutoModelForSemanticSegmentation

from segoverlay.config import Config
from segoverlay.compositing.buffers import ClassIndexMap, SourceImage
from segoverlay.errors import MalformedFrameError, ModelLoadError, PredictionError
from segoverlay.ingest import resize_frame

logger = logging.getLogger(__name__)


class DeepLabClassifier:
    def __init__(
        self,
        device: Optional[str] = None,
        model_name: str = Config.DEEPLAB_MODEL,
        input_size: int = Config.DEEPLAB_INPUT_SIZE,
    ):
        self.device = device or Config.get_device()
        self.model_name = model_name
        self.input_size = input_size

        logger.info("Loading DeepLabV3: %s on %s", model_name, self.device)
        try:
            self.processor = AutoImageProcessor.from_pretrained(model_name)
            self.model = AutoModelForSemanticSegmentation.from_pretrained(model_name).to(self.device)
        except (OSError, ValueError) as e:
            raise ModelLoadError(f"Failed to load {model_name}: {e}") from e
        self.model.eval()
        self.num_labels = self.model.config.num_labels
        logger.info("DeepLabV3 loaded. Labels: %d", self.num_labels)

    def predict(self, image: SourceImage | Image.Image) -> ClassIndexMap:
        """Return the argmax class id of every output cell.

        The image is stretched to input_size x input_size first; the map comes
        back at the model's output resolution, which can be smaller.
        """
        try:
            frame = resize_frame(image, self.input_size, self.input_size)
        except (OSError, ValueError) as e:
            raise MalformedFrameError(f"Cannot build inference frame: {e}") from e

        try:
            inputs = self.processor(
                images=frame,
                return_tensors="pt",
                do_resize=False,
                do_center_crop=False,
            ).to(self.device)
            with torch.no_grad():
                logits = self.model(**inputs).logits
        except Exception as e:
            raise PredictionError(f"DeepLabV3 prediction failed: {e}") from e

        predictions = logits.argmax(dim=1)[0].cpu().numpy().astype(np.int32)
        return ClassIndexMap(predictions)
