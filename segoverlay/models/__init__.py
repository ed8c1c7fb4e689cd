"""Model back-ends for the overlay pipeline."""

from segoverlay.models.segmentor import InstanceSegmentor, InstanceSegmentation
from segoverlay.models.classifier import DeepLabClassifier

__all__ = ["InstanceSegmentor", "InstanceSegmentation", "DeepLabClassifier"]
