"""Background radiance for rays that leave the scene.

Three modes are supported:

- NONE: black; only emissive materials light the scene.
- GRADIENT: white at the horizon blending to sky blue overhead.
- TEXTURE: any texture mapped onto the sphere at infinity. Image textures are
  sampled bilinearly with the longitude wrapped and the latitude clamped;
  other textures are evaluated at the spherical (u, v) and the direction.

Every mode is scaled by an intensity. ``sample_skybox`` is defined for every
unit direction, including the poles and the longitude seam.

Example:
    >>> from pathtracer.environment.skybox import set_skybox_texture
    >>> set_skybox_texture(texture_id=sky, intensity=1.5)
    >>> # Within a Taichi kernel:
    >>> # radiance = sample_skybox(direction)
"""

import math
from enum import IntEnum

import taichi as ti
import taichi.math as tm

from pathtracer.errors import InvalidScene
from pathtracer.geometry.sphere import sphere_uv
from pathtracer.textures.texture import (
    TextureType,
    sample_image_bilinear,
    sample_texture,
    tex_types,
    validate_texture_id,
)

vec3 = tm.vec3


class SkyboxMode(IntEnum):
    NONE = 0
    GRADIENT = 1
    TEXTURE = 2


_skybox_mode = ti.field(dtype=ti.i32, shape=())
_skybox_texture = ti.field(dtype=ti.i32, shape=())
_skybox_intensity = ti.field(dtype=ti.f32, shape=())

# Python helper output
_host_sample = ti.Vector.field(3, dtype=ti.f32, shape=())


def _check_intensity(intensity: float) -> None:
    if not math.isfinite(intensity) or intensity < 0.0:
        raise InvalidScene(f"Skybox intensity must be finite and >= 0, got {intensity}")


def set_skybox_none() -> None:
    """Black background."""
    _skybox_mode[None] = int(SkyboxMode.NONE)
    _skybox_texture[None] = -1
    _skybox_intensity[None] = 0.0


def set_skybox_gradient(intensity: float = 1.0) -> None:
    """Vertical white-to-blue gradient."""
    _check_intensity(intensity)
    _skybox_mode[None] = int(SkyboxMode.GRADIENT)
    _skybox_texture[None] = -1
    _skybox_intensity[None] = intensity


def set_skybox_texture(texture_id: int, intensity: float = 1.0) -> None:
    """Map a texture onto the sphere at infinity.

    Raises:
        TextureLoadError: If the texture id is unknown.
        InvalidScene: If intensity is negative or not finite.
    """
    validate_texture_id(texture_id)
    _check_intensity(intensity)
    _skybox_mode[None] = int(SkyboxMode.TEXTURE)
    _skybox_texture[None] = texture_id
    _skybox_intensity[None] = intensity


def get_skybox_mode() -> SkyboxMode:
    return SkyboxMode(int(_skybox_mode[None]))


@ti.func
def direction_to_uv(direction: vec3):
    """Spherical (u, v) of a direction. u is longitude, v latitude (0 = down)."""
    return sphere_uv(tm.normalize(direction))


@ti.func
def sample_skybox(direction: vec3) -> vec3:
    """Background radiance seen along a direction.

    Args:
        direction: Ray direction; need not be unit length.

    Returns:
        The radiance for the configured mode.
    """
    radiance = vec3(0.0, 0.0, 0.0)
    mode = _skybox_mode[None]
    if mode == int(SkyboxMode.GRADIENT):
        unit = tm.normalize(direction)
        a = 0.5 * (unit.y + 1.0)
        radiance = (1.0 - a) * vec3(1.0, 1.0, 1.0) + a * vec3(0.5, 0.7, 1.0)
    elif mode == int(SkyboxMode.TEXTURE):
        tex = _skybox_texture[None]
        u, v = direction_to_uv(direction)
        if tex_types[tex] == int(TextureType.IMAGE):
            radiance = sample_image_bilinear(tex, u, v)
        else:
            radiance = sample_texture(tex, u, v, tm.normalize(direction))
    return radiance * _skybox_intensity[None]


@ti.kernel
def _sample_skybox_kernel(direction: vec3):
    _host_sample[None] = sample_skybox(direction)


def sample_skybox_host(direction: tuple[float, float, float]) -> tuple[float, float, float]:
    """Evaluate the skybox from Python.

    Args:
        direction: Direction as (x, y, z).

    Returns:
        The radiance as (R, G, B).
    """
    _sample_skybox_kernel(vec3(direction[0], direction[1], direction[2]))
    c = _host_sample[None]
    return (float(c[0]), float(c[1]), float(c[2]))
