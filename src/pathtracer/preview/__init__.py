"""Image file output and input through Pillow."""

from .export import load_image, save_frames, save_png

__all__ = ["save_png", "save_frames", "load_image"]
