"""Configuration constants for the segmentation overlay system."""

import os
import torch


class Config:
    """Configuration settings for the overlay pipeline."""

    # Base paths
    BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    OUTPUT_DIR = os.path.join(BASE_DIR, "overlays")
    STATIC_DIR = os.path.join(BASE_DIR, "static")

    # Semantic segmentation (DeepLabV3, PASCAL VOC labels)
    DEEPLAB_MODEL = os.getenv("SEGOVERLAY_DEEPLAB_MODEL", "google/deeplabv3_mobilenet_v2_1.0_513")
    DEEPLAB_INPUT_SIZE = 513  # model expects a square 513x513 frame

    # Instance segmentation (ultralytics)
    # Names starting with "sam" load through ultralytics.SAM, anything else through YOLO
    INSTANCE_MODEL = os.getenv("SEGOVERLAY_INSTANCE_MODEL", "yolo11n-seg")
    INSTANCE_INPUT_SIZE = 640
    DETECTION_CONFIDENCE = 0.25  # Minimum confidence for detections
    MAX_DETECTIONS = 20  # Maximum instances composited per image

    PASCAL_VOC_CLASSES = [
        "background", "aeroplane", "bicycle", "bird", "boat", "bottle",
        "bus", "car", "cat", "chair", "cow", "dining table", "dog",
        "horse", "motorbike", "person", "potted plant", "sheep",
        "sofa", "train", "tv/monitor",
    ]
    PERSON_CLASS = 15

    # Class index -> RGB. Class 0 is always transparent, unmapped classes fall back to transparent black.
    CLASS_COLORS = {
        0: (0, 0, 0),
        PERSON_CLASS: (255, 0, 0),
    }

    # Compositing
    BACKGROUND_COLOR = (0, 0, 0)
    RESAMPLE_METHOD = "bilinear"  # "bilinear" or "nearest"

    # Pipeline modes
    MODE_INSTANCE = "instance"
    MODE_DEEPLAB = "deeplab"
    MODES = (MODE_INSTANCE, MODE_DEEPLAB)
    DEFAULT_MODE = MODE_DEEPLAB

    LOG_LEVEL = os.getenv("SEGOVERLAY_LOG_LEVEL", "INFO")

    # Device selection
    @staticmethod
    def get_device() -> str:
        """Get the best available device."""
        if torch.cuda.is_available():
            return "cuda"
        elif torch.backends.mps.is_available():
            # Set environment variables for MacOS compatibility
            os.environ['KMP_DUPLICATE_LIB_OK'] = 'True'
            return "mps"
        return "cpu"

    @classmethod
    def get_absolute_path(cls, relative_path: str) -> str:
        """Convert relative path to absolute based on BASE_DIR."""
        if os.path.isabs(relative_path):
            return relative_path
        return os.path.join(cls.BASE_DIR, relative_path)
