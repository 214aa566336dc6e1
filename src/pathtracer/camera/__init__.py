"""Camera module for primary ray generation.

Ray generation uses normalized viewport coordinates:
    s in [0, 1]: left to right across image
    t in [0, 1]: bottom to top across image
"""

from .thin_lens import (
    ThinLensCamera,
    camera_basis,
    get_camera_origin,
    get_ray,
    setup_camera,
    validate_camera,
)

__all__ = [
    "ThinLensCamera",
    "setup_camera",
    "validate_camera",
    "camera_basis",
    "get_ray",
    "get_camera_origin",
]
