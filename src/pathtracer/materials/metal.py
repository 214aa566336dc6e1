"""Metal (specular, optionally fuzzy) material.

The incoming direction is mirrored about the normal and then perturbed by a
random unit vector scaled by ``fuzz``. Perturbations that push the ray below
the surface absorb it.

Example:
    >>> from pathtracer.materials.metal import scatter_metal
    >>> # Within a Taichi kernel:
    >>> # direction, attenuation, did_scatter = scatter_metal(
    >>> #     albedo, 0.0, incident, normal, stream)
"""

import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import normalize, reflect
from pathtracer.core.sampler import random_unit_vector
from pathtracer.textures.texture import sample_texture, validate_texture_id

vec3 = tm.vec3


@ti.func
def scatter_metal(
    albedo: vec3,
    fuzz: ti.f32,
    incident_direction: vec3,
    normal: vec3,
    stream: ti.i32,
):
    """Sample a metal reflection.

    Args:
        albedo: Reflective color at the hit point.
        fuzz: Perturbation radius in [0, 1]. 0 is a perfect mirror.
        incident_direction: Unit incoming direction.
        normal: Unit normal facing the incoming ray.
        stream: RNG stream to draw from.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter).
        did_scatter is 0 when the fuzzed direction points into the surface.
    """
    scattered = reflect(incident_direction, normal)
    if fuzz > 0.0:
        scattered = normalize(normalize(scattered) + fuzz * random_unit_vector(stream))

    did_scatter = 0
    if tm.dot(scattered, normal) > 0.0:
        did_scatter = 1

    return scattered, albedo, did_scatter


# =============================================================================
# Material Field Storage
# =============================================================================

MAX_METAL_MATERIALS = 1024

metal_textures = ti.field(dtype=ti.i32, shape=MAX_METAL_MATERIALS)
metal_fuzz = ti.field(dtype=ti.f32, shape=MAX_METAL_MATERIALS)
num_metal_materials = ti.field(dtype=ti.i32, shape=())


def clear_metal_materials() -> None:
    num_metal_materials[None] = 0


def add_metal_material(texture_id: int, fuzz: float = 0.0) -> int:
    """Register a metal material.

    Args:
        texture_id: Texture supplying the albedo.
        fuzz: Perturbation radius. Clamped to [0, 1].

    Returns:
        The type-local material index.

    Raises:
        TextureLoadError: If the texture id is unknown.
        RuntimeError: If the maximum number of materials is exceeded.
    """
    validate_texture_id(texture_id)

    idx = num_metal_materials[None]
    if idx >= MAX_METAL_MATERIALS:
        raise RuntimeError(f"Maximum number of metal materials ({MAX_METAL_MATERIALS}) exceeded")

    metal_textures[idx] = texture_id
    metal_fuzz[idx] = min(max(float(fuzz), 0.0), 1.0)
    num_metal_materials[None] = idx + 1
    return idx


def get_metal_material_count() -> int:
    return int(num_metal_materials[None])


def get_metal_fuzz_python(material_idx: int) -> float:
    return float(metal_fuzz[material_idx])


@ti.func
def get_metal_albedo(material_idx: ti.i32, u: ti.f32, v: ti.f32, p: vec3) -> vec3:
    return sample_texture(metal_textures[material_idx], u, v, p)


@ti.func
def get_metal_fuzz(material_idx: ti.i32) -> ti.f32:
    return metal_fuzz[material_idx]
