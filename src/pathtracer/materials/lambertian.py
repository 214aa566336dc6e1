"""Lambertian (ideal diffuse) material.

The scattered direction is the surface normal plus a uniformly random unit
vector, which is distributed as cos(theta) / pi around the normal. With that
distribution the BRDF's 1/pi and cosine terms cancel against the pdf, so the
attenuation is simply the albedo.

A material may also absorb part of the incoming light: with probability
``1 - scatter_probability`` the path ends, and surviving paths are weighted
by ``1 / scatter_probability`` so the estimate stays unbiased.

Example:
    >>> from pathtracer.materials.lambertian import scatter_lambertian
    >>> # Within a Taichi kernel:
    >>> # direction, attenuation, did_scatter = scatter_lambertian(
    >>> #     albedo, normal, 1.0, stream)
"""

import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import near_zero, normalize
from pathtracer.core.sampler import random_float, random_unit_vector
from pathtracer.errors import InvalidScene
from pathtracer.textures.texture import sample_texture, validate_texture_id

vec3 = tm.vec3


@ti.func
def scatter_lambertian(
    albedo: vec3,
    normal: vec3,
    scatter_probability: ti.f32,
    stream: ti.i32,
):
    """Sample a diffuse bounce.

    Args:
        albedo: Surface color at the hit point.
        normal: Unit normal facing the incoming ray.
        scatter_probability: Chance in (0, 1] that the ray scatters at all.
        stream: RNG stream to draw from.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter).
    """
    direction = normal + random_unit_vector(stream)
    # Offset cancelled the normal
    if near_zero(direction):
        direction = normal

    did_scatter = 1
    attenuation = albedo / scatter_probability
    if scatter_probability < 1.0:
        if random_float(stream) >= scatter_probability:
            did_scatter = 0

    return normalize(direction), attenuation, did_scatter


# =============================================================================
# Material Field Storage
# =============================================================================

MAX_LAMBERTIAN_MATERIALS = 1024

lambertian_textures = ti.field(dtype=ti.i32, shape=MAX_LAMBERTIAN_MATERIALS)
lambertian_scatter_probability = ti.field(dtype=ti.f32, shape=MAX_LAMBERTIAN_MATERIALS)
num_lambertian_materials = ti.field(dtype=ti.i32, shape=())


def clear_lambertian_materials() -> None:
    num_lambertian_materials[None] = 0


def add_lambertian_material(texture_id: int, scatter_probability: float = 1.0) -> int:
    """Register a Lambertian material.

    Args:
        texture_id: Texture supplying the albedo.
        scatter_probability: Probability in (0, 1] that a hit scatters.

    Returns:
        The type-local material index.

    Raises:
        TextureLoadError: If the texture id is unknown.
        InvalidScene: If scatter_probability is outside (0, 1].
        RuntimeError: If the maximum number of materials is exceeded.
    """
    validate_texture_id(texture_id)
    if not 0.0 < scatter_probability <= 1.0:
        raise InvalidScene(
            f"scatter_probability must be in (0, 1], got {scatter_probability}"
        )

    idx = num_lambertian_materials[None]
    if idx >= MAX_LAMBERTIAN_MATERIALS:
        raise RuntimeError(
            f"Maximum number of Lambertian materials ({MAX_LAMBERTIAN_MATERIALS}) exceeded"
        )

    lambertian_textures[idx] = texture_id
    lambertian_scatter_probability[idx] = scatter_probability
    num_lambertian_materials[None] = idx + 1
    return idx


def get_lambertian_material_count() -> int:
    return int(num_lambertian_materials[None])


@ti.func
def get_lambertian_albedo(material_idx: ti.i32, u: ti.f32, v: ti.f32, p: vec3) -> vec3:
    return sample_texture(lambertian_textures[material_idx], u, v, p)


@ti.func
def scatter_lambertian_by_id(
    material_idx: ti.i32,
    normal: vec3,
    u: ti.f32,
    v: ti.f32,
    p: vec3,
    stream: ti.i32,
):
    """scatter_lambertian() with albedo and probability looked up by index."""
    albedo = get_lambertian_albedo(material_idx, u, v, p)
    return scatter_lambertian(
        albedo, normal, lambertian_scatter_probability[material_idx], stream
    )
