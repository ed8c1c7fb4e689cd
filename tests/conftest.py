"""Shared test fixtures and helpers."""

import threading
from typing import Optional

import numpy as np
import pytest
from PIL import Image

from segoverlay.compositing.buffers import ClassIndexMap, InstanceMask, SourceImage
from segoverlay.models.segmentor import InstanceSegmentation


def make_image(width: int, height: int, color=(200, 120, 40)) -> Image.Image:
    """Solid colour RGB image."""
    return Image.new("RGB", (width, height), color)


def make_noise_image(width: int, height: int, seed: int = 0) -> Image.Image:
    rng = np.random.RandomState(seed)
    return Image.fromarray(rng.randint(0, 256, (height, width, 3), dtype=np.uint8))


class FakeClassifier:
    """Stands in for DeepLabClassifier, returning a fixed class map."""

    model_name = "fake-deeplab"

    def __init__(self, class_map: Optional[np.ndarray] = None, error: Optional[Exception] = None):
        self.class_map = np.zeros((65, 65), dtype=np.int32) if class_map is None else class_map
        self.error = error
        self.calls = 0

    def predict(self, image) -> ClassIndexMap:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ClassIndexMap(self.class_map)


class FakeSegmentor:
    """Stands in for InstanceSegmentor, returning fixed masks."""

    model_name = "fake-seg"

    def __init__(self, masks=None, frame_size=(64, 64), error: Optional[Exception] = None):
        self.masks = masks or []
        self.frame_size = frame_size
        self.error = error

    def segment(self, image) -> InstanceSegmentation:
        if self.error is not None:
            raise self.error
        w, h = self.frame_size
        return InstanceSegmentation(
            masks=[InstanceMask(m) for m in self.masks], frame_width=w, frame_height=h
        )


class GatedClassifier(FakeClassifier):
    """Blocks predictions of images whose top-left red value has a gate until it is opened."""

    def __init__(self):
        super().__init__()
        self.gates: dict[int, threading.Event] = {}
        self.started: dict[int, threading.Event] = {}

    def gate(self, red: int) -> threading.Event:
        self.started[red] = threading.Event()
        self.gates[red] = threading.Event()
        return self.gates[red]

    def predict(self, image: SourceImage) -> ClassIndexMap:
        red = int(image.pixels[0, 0, 0])
        if red in self.gates:
            self.started[red].set()
            self.gates[red].wait(timeout=10)
        return super().predict(image)


@pytest.fixture
def source_513() -> SourceImage:
    return SourceImage.from_pil(make_noise_image(513, 513))
