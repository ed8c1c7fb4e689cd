"""Storage for rendered overlays and composite masks."""

import re
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image

from segoverlay.config import Config
from segoverlay.errors import RenderError
from segoverlay.pipeline.processor import ProcessingResult


def _normalize_name(name: str) -> str:
    """Normalize a name for use in a path (replace non-alphanumeric with _)."""
    return re.sub(r'[^a-zA-Z0-9]', '_', name).strip('_') or "image"


class ImageStorage:
    """Saves and loads overlay and mask PNGs under {base}/{mode}/."""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir) if base_dir else Path(Config.OUTPUT_DIR)

    def get_dir(self, mode: str) -> Path:
        return self.base_dir / mode

    def overlay_path(self, name: str, mode: str) -> Path:
        return self.get_dir(mode) / f"{_normalize_name(name)}_overlay.png"

    def mask_path(self, name: str, mode: str) -> Path:
        return self.get_dir(mode) / f"{_normalize_name(name)}_mask.png"

    def save_result(self, result: ProcessingResult, name: str, save_mask: bool = True) -> list[str]:
        """Save the overlay (and the composite mask, if any) of a pipeline result.

        Returns:
            Paths of the written files, overlay first.
        """
        paths = [self.save_image(result.overlay.to_pil("RGB"), self.overlay_path(name, result.mode))]
        if save_mask and result.composite is not None:
            paths.append(self.save_image(result.composite.to_pil(), self.mask_path(name, result.mode)))
        return paths

    def save_image(self, image: Image.Image, path: Path) -> str:
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            image.save(path, optimize=True)
        except (OSError, ValueError) as e:
            raise RenderError(f"Failed to write {path}: {e}") from e
        return str(path)

    def load_overlay(self, name: str, mode: str) -> Optional[np.ndarray]:
        path = self.overlay_path(name, mode)
        if not path.exists():
            return None
        return np.array(Image.open(path).convert("RGB"))

    def load_mask(self, name: str, mode: str) -> Optional[np.ndarray]:
        path = self.mask_path(name, mode)
        if not path.exists():
            return None
        return np.array(Image.open(path))
