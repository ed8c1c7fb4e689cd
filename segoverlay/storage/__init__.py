"""Storage components for the overlay system."""

from segoverlay.storage.image_storage import ImageStorage

__all__ = ["ImageStorage"]
