"""Image acquisition and conversion to pipeline buffers."""

import logging
from io import BytesIO
from pathlib import Path
from typing import Union

import requests
from PIL import Image, ImageOps, UnidentifiedImageError

from segoverlay.compositing.buffers import SourceImage
from segoverlay.errors import MalformedFrameError, NoImageError

logger = logging.getLogger(__name__)


def load_image(source: Union[str, Path, bytes]) -> Image.Image:
    """Load an image from a path, an http(s) URL or raw bytes.

    Raises:
        NoImageError: if nothing could be read.
    """
    try:
        if isinstance(source, bytes):
            data = source
        elif str(source).startswith(('http://', 'https://')):
            response = requests.get(str(source), timeout=10)
            response.raise_for_status()
            data = response.content
        else:
            path = Path(source)
            if not path.exists():
                raise NoImageError(f"Image not found: {path}")
            data = path.read_bytes()
        img = Image.open(BytesIO(data))
        img.load()
    except requests.RequestException as e:
        raise NoImageError(f"Failed to download {source}: {e}") from e
    except (UnidentifiedImageError, OSError) as e:
        raise NoImageError(f"Failed to read image: {e}") from e
    return img


def to_source_image(image: Image.Image) -> SourceImage:
    """Convert a loaded photo into an upright RGBA SourceImage."""
    if image is None:
        raise NoImageError("No image acquired")
    try:
        upright = ImageOps.exif_transpose(image)
        return SourceImage.from_pil(upright)
    except (OSError, ValueError) as e:
        raise MalformedFrameError(f"Cannot derive pixel buffer: {e}") from e


def resize_frame(image: Union[Image.Image, SourceImage], width: int, height: int) -> Image.Image:
    """Stretch an image to a model input size as RGB.

    The aspect ratio is not preserved; masks produced on this frame are
    stretched back with the inverse x/y scale.
    """
    if isinstance(image, SourceImage):
        image = image.to_pil()
    if image.width == 0 or image.height == 0:
        raise MalformedFrameError("Cannot resize an empty image")
    rgb = image.convert("RGB")
    if rgb.size == (width, height):
        return rgb
    logger.debug("Resizing frame %dx%d -> %dx%d", rgb.width, rgb.height, width, height)
    return rgb.resize((width, height), Image.Resampling.BILINEAR)
