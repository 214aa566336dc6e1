"""Image file input and output.

Rendered framebuffers are written as 8-bit PNGs, and image files are decoded
into float RGB arrays for image textures and skyboxes. Both go through
Pillow; the render core itself only ever sees pixel arrays.

Example:
    >>> from pathtracer.preview.export import load_image, save_png
    >>> sky = scene.set_skybox_image(load_image("sky.jpg"))
    >>> save_png(framebuffer, "output.png")
"""

import logging
from pathlib import Path

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage
from PIL import UnidentifiedImageError

from pathtracer.core.framebuffer import Framebuffer
from pathtracer.errors import TextureLoadError

logger = logging.getLogger(__name__)


def save_png(framebuffer: Framebuffer, filepath: str | Path, gamma: float | None = None) -> Path:
    """Save a framebuffer as an 8-bit RGB PNG.

    Args:
        framebuffer: Frame to save. Finalized with ``gamma`` (default 2.2)
            if it is not already.
        filepath: Output path.
        gamma: Gamma for finalizing.

    Returns:
        The path written.
    """
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    PILImage.fromarray(framebuffer.to_uint8(gamma)).save(path)
    logger.info("Saved %dx%d image to %s", framebuffer.width, framebuffer.height, path)
    return path


def save_frames(
    framebuffers: list[Framebuffer],
    directory: str | Path,
    padding: int = 4,
    prefix: str = "frame_",
) -> list[Path]:
    """Save an animation as numbered PNGs, in frame order.

    Args:
        framebuffers: Frames in temporal order.
        directory: Output directory, created if missing.
        padding: Digits in the frame number.
        prefix: File name before the frame number.

    Returns:
        The paths written.
    """
    out = Path(directory)
    out.mkdir(parents=True, exist_ok=True)
    return [
        save_png(fb, out / f"{prefix}{index:0{padding}d}.png")
        for index, fb in enumerate(framebuffers)
    ]


def load_image(filepath: str | Path) -> npt.NDArray[np.float32]:
    """Decode an image file into linear float RGB.

    Args:
        filepath: Image file in any format Pillow reads.

    Returns:
        Array of shape (height, width, 3) with values in [0, 1], row 0 at
        the top.

    Raises:
        TextureLoadError: If the file is missing or cannot be decoded.
    """
    path = Path(filepath)
    try:
        with PILImage.open(path) as image:
            rgb = np.asarray(image.convert("RGB"), dtype=np.float32) / 255.0
    except (OSError, UnidentifiedImageError) as exc:
        raise TextureLoadError(f"Cannot load image {path}: {exc}") from exc
    logger.debug("Loaded %s (%dx%d)", path, rgb.shape[1], rgb.shape[0])
    return rgb
