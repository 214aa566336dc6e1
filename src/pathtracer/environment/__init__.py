"""Environment lighting for rays that escape the scene."""

from .skybox import (
    SkyboxMode,
    get_skybox_mode,
    sample_skybox,
    sample_skybox_host,
    set_skybox_gradient,
    set_skybox_none,
    set_skybox_texture,
)

__all__ = [
    "SkyboxMode",
    "set_skybox_none",
    "set_skybox_gradient",
    "set_skybox_texture",
    "get_skybox_mode",
    "sample_skybox",
    "sample_skybox_host",
]
