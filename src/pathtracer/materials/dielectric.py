"""Dielectric (glass, water) material.

Light is either reflected or refracted. Total internal reflection forces a
reflection; otherwise Schlick's reflectance is used as the probability of
reflecting. Dielectrics never absorb, so attenuation is white.

When the two media have the same index of refraction the interface is
invisible and the ray continues unchanged.

Example:
    >>> from pathtracer.materials.dielectric import scatter_dielectric
    >>> # Within a Taichi kernel:
    >>> # direction, attenuation, did_scatter = scatter_dielectric(
    >>> #     1.5, incident, normal, front_face, stream)
"""

import math

import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import reflect, refract, schlick_fresnel
from pathtracer.core.sampler import random_float
from pathtracer.errors import InvalidScene

vec3 = tm.vec3

# Refraction ratios this close to 1 are index matched
INDEX_MATCH_EPSILON = 1e-6


@ti.func
def scatter_dielectric(
    ior: ti.f32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
    stream: ti.i32,
):
    """Reflect or refract a ray at a dielectric boundary.

    Args:
        ior: Index of refraction of the material relative to its surroundings.
        incident_direction: Unit incoming direction.
        normal: Unit normal facing the incoming ray.
        front_face: 1 when entering the material, 0 when leaving it.
        stream: RNG stream to draw from.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter); did_scatter
        is always 1.
    """
    attenuation = vec3(1.0, 1.0, 1.0)

    # Entering: n_air / n_material. Leaving: the inverse.
    refraction_ratio = 1.0 / ior
    if front_face == 0:
        refraction_ratio = ior

    scattered_direction = incident_direction
    if ti.abs(refraction_ratio - 1.0) > INDEX_MATCH_EPSILON:
        cos_theta = tm.min(-tm.dot(incident_direction, normal), 1.0)
        sin_theta = tm.sqrt(tm.max(0.0, 1.0 - cos_theta * cos_theta))
        cannot_refract = refraction_ratio * sin_theta > 1.0
        reflectance = schlick_fresnel(cos_theta, refraction_ratio)

        if cannot_refract or random_float(stream) < reflectance:
            scattered_direction = reflect(incident_direction, normal)
        else:
            scattered_direction = refract(incident_direction, normal, refraction_ratio)
        scattered_direction = tm.normalize(scattered_direction)

    did_scatter = 1
    return scattered_direction, attenuation, did_scatter


# =============================================================================
# Material Field Storage
# =============================================================================

MAX_DIELECTRIC_MATERIALS = 1024

dielectric_iors = ti.field(dtype=ti.f32, shape=MAX_DIELECTRIC_MATERIALS)
num_dielectric_materials = ti.field(dtype=ti.i32, shape=())


def clear_dielectric_materials() -> None:
    num_dielectric_materials[None] = 0


def add_dielectric_material(ior: float = 1.5) -> int:
    """Register a dielectric material.

    Args:
        ior: Index of refraction. Values below 1 model e.g. an air bubble in
            water (1 / 1.33).

    Returns:
        The type-local material index.

    Raises:
        InvalidScene: If ior is not a positive finite number.
        RuntimeError: If the maximum number of materials is exceeded.
    """
    if not math.isfinite(ior) or ior <= 0.0:
        raise InvalidScene(f"Index of refraction must be positive and finite, got {ior}")

    idx = num_dielectric_materials[None]
    if idx >= MAX_DIELECTRIC_MATERIALS:
        raise RuntimeError(
            f"Maximum number of dielectric materials ({MAX_DIELECTRIC_MATERIALS}) exceeded"
        )

    dielectric_iors[idx] = ior
    num_dielectric_materials[None] = idx + 1
    return idx


def get_dielectric_material_count() -> int:
    return int(num_dielectric_materials[None])


@ti.func
def get_dielectric_ior(material_idx: ti.i32) -> ti.f32:
    return dielectric_iors[material_idx]
