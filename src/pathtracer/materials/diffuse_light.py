"""Diffuse area light material.

Lights never scatter. They emit their texture color times an intensity from
the front face, and from the back face too when marked two-sided.
"""

import math

import taichi as ti
import taichi.math as tm

from pathtracer.errors import InvalidScene
from pathtracer.textures.texture import sample_texture, validate_texture_id

vec3 = tm.vec3

MAX_DIFFUSE_LIGHT_MATERIALS = 256

light_textures = ti.field(dtype=ti.i32, shape=MAX_DIFFUSE_LIGHT_MATERIALS)
light_intensity = ti.field(dtype=ti.f32, shape=MAX_DIFFUSE_LIGHT_MATERIALS)
light_two_sided = ti.field(dtype=ti.i32, shape=MAX_DIFFUSE_LIGHT_MATERIALS)
num_diffuse_light_materials = ti.field(dtype=ti.i32, shape=())


def clear_diffuse_light_materials() -> None:
    num_diffuse_light_materials[None] = 0


def add_diffuse_light_material(
    texture_id: int,
    intensity: float = 1.0,
    two_sided: bool = False,
) -> int:
    """Register an emissive material.

    Args:
        texture_id: Texture supplying the emitted color.
        intensity: Multiplier on the texture color. Must be >= 0.
        two_sided: Emit from back faces as well.

    Returns:
        The type-local material index.

    Raises:
        TextureLoadError: If the texture id is unknown.
        InvalidScene: If intensity is negative or not finite.
        RuntimeError: If the maximum number of materials is exceeded.
    """
    validate_texture_id(texture_id)
    if not math.isfinite(intensity) or intensity < 0.0:
        raise InvalidScene(f"Light intensity must be finite and >= 0, got {intensity}")

    idx = num_diffuse_light_materials[None]
    if idx >= MAX_DIFFUSE_LIGHT_MATERIALS:
        raise RuntimeError(
            f"Maximum number of diffuse light materials ({MAX_DIFFUSE_LIGHT_MATERIALS}) exceeded"
        )

    light_textures[idx] = texture_id
    light_intensity[idx] = intensity
    light_two_sided[idx] = 1 if two_sided else 0
    num_diffuse_light_materials[None] = idx + 1
    return idx


def get_diffuse_light_material_count() -> int:
    return int(num_diffuse_light_materials[None])


@ti.func
def emitted_diffuse_light(
    material_idx: ti.i32,
    u: ti.f32,
    v: ti.f32,
    p: vec3,
    front_face: ti.i32,
) -> vec3:
    """Radiance leaving a light surface toward the incoming ray."""
    emission = vec3(0.0, 0.0, 0.0)
    if front_face == 1 or light_two_sided[material_idx] == 1:
        emission = light_intensity[material_idx] * sample_texture(
            light_textures[material_idx], u, v, p
        )
    return emission
