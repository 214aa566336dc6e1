"""Path tracing integrator for Monte Carlo light transport.

Radiance along a camera ray is estimated by following a single path through
the scene. At every surface interaction the emitted light of the surface is
added, weighted by the path throughput, and the material decides whether
and where the path continues. Paths that leave the scene pick up the skybox
radiance.

The path is followed iteratively with an explicit throughput, so deep paths
never grow a call stack:

    L = sum over bounces k of (prod_{i<k} attenuation_i) * Le_k
      + (prod of all attenuations) * L_sky    (if the path escapes)

Key features:
    - Material dispatch (Lambertian, Metal, Dielectric, DiffuseLight)
    - Depth cutoff at ``max_depth`` surface interactions (0 renders black)
    - Optional Russian roulette after ``rr_min_depth`` bounces
    - Per-sample sanitization of NaN, infinite and negative radiance

Example:
    >>> from pathtracer.core.integrator import trace_ray
    >>> # After SceneManager.build():
    >>> trace_ray((0, 0, 0), (0, 0, -1), time=0.0, max_depth=10, seed=7)
    (0.61, 0.74, 0.98)
"""

import taichi as ti
import taichi.math as tm

from pathtracer.core.sampler import random_float, seed_stream
from pathtracer.environment.skybox import sample_skybox
from pathtracer.materials.dielectric import get_dielectric_ior, scatter_dielectric
from pathtracer.materials.diffuse_light import emitted_diffuse_light
from pathtracer.materials.lambertian import scatter_lambertian_by_id
from pathtracer.materials.metal import get_metal_albedo, get_metal_fuzz, scatter_metal
from pathtracer.scene.intersection import intersect_scene
from pathtracer.scene.manager import (
    MaterialType,
    get_material_type,
    get_material_type_index,
)

vec3 = tm.vec3

# =============================================================================
# Rendering Constants
# =============================================================================

# Hits closer than this are self-intersections of the surface just left
T_MIN = 1e-3
T_MAX = 1e10

# Russian roulette survival probability cap
MAX_RR_PROBABILITY = 0.95

# Samples whose radiance had to be sanitized since the last reset
_sanitized_samples = ti.field(dtype=ti.i32, shape=())

# trace_ray() output
_trace_result = ti.Vector.field(3, dtype=ti.f32, shape=())


def reset_sanitized_count() -> None:
    _sanitized_samples[None] = 0


def get_sanitized_count() -> int:
    """Number of samples sanitized since the last reset."""
    return int(_sanitized_samples[None])


# =============================================================================
# Material Dispatch
# =============================================================================


@ti.func
def _scatter_material(
    material_id: ti.i32,
    incident_direction: vec3,
    hit_point: vec3,
    normal: vec3,
    front_face: ti.i32,
    u: ti.f32,
    v: ti.f32,
    stream: ti.i32,
):
    """Dispatch to the appropriate material scattering function.

    Args:
        material_id: The unified material ID.
        incident_direction: The incoming ray direction (normalized).
        hit_point: The intersection point on the surface.
        normal: The surface normal (normalized, facing toward ray).
        front_face: 1 if hit front face, 0 if back face.
        u: Surface u coordinate for texture lookups.
        v: Surface v coordinate for texture lookups.
        stream: RNG stream to draw from.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter) where:
        - scattered_direction: The new ray direction (normalized).
        - attenuation: The color attenuation for this bounce.
        - did_scatter: 1 if ray scattered, 0 if absorbed. Lights and
          unknown materials never scatter.
    """
    mat_type = get_material_type(material_id)
    type_index = get_material_type_index(material_id)

    scattered_direction = vec3(0.0, 0.0, 0.0)
    attenuation = vec3(0.0, 0.0, 0.0)
    did_scatter = 0

    if mat_type == int(MaterialType.LAMBERTIAN):
        scattered_direction, attenuation, did_scatter = scatter_lambertian_by_id(
            type_index, normal, u, v, hit_point, stream
        )

    elif mat_type == int(MaterialType.METAL):
        albedo = get_metal_albedo(type_index, u, v, hit_point)
        fuzz = get_metal_fuzz(type_index)
        scattered_direction, attenuation, did_scatter = scatter_metal(
            albedo, fuzz, incident_direction, normal, stream
        )

    elif mat_type == int(MaterialType.DIELECTRIC):
        ior = get_dielectric_ior(type_index)
        scattered_direction, attenuation, did_scatter = scatter_dielectric(
            ior, incident_direction, normal, front_face, stream
        )

    return scattered_direction, attenuation, did_scatter


@ti.func
def _get_emission(
    material_id: ti.i32,
    hit_point: vec3,
    front_face: ti.i32,
    u: ti.f32,
    v: ti.f32,
) -> vec3:
    """Radiance emitted by the hit surface, zero for non-emitters."""
    emission = vec3(0.0, 0.0, 0.0)
    if get_material_type(material_id) == int(MaterialType.DIFFUSE_LIGHT):
        emission = emitted_diffuse_light(
            get_material_type_index(material_id), u, v, hit_point, front_face
        )
    return emission


# =============================================================================
# Path Tracing Core
# =============================================================================


@ti.func
def ray_color(
    origin: vec3,
    direction: vec3,
    time: ti.f32,
    max_depth: ti.i32,
    rr_min_depth: ti.i32,
    stream: ti.i32,
) -> vec3:
    """Estimate the radiance arriving along a ray.

    Args:
        origin: Ray origin.
        direction: Ray direction; need not be unit length.
        time: Scene time carried by every ray of the path.
        max_depth: Maximum number of surface interactions.
        rr_min_depth: Bounces before Russian roulette may end the path,
            0 to disable it.
        stream: RNG stream to draw from.

    Returns:
        The estimated radiance (RGB), before sanitization.
    """
    radiance = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    ray_origin = origin
    ray_direction = direction

    # Taichi doesn't support break in ti.func loops
    active = 1

    for bounce in range(max_depth):
        if active == 1:
            rec = intersect_scene(ray_origin, ray_direction, time, T_MIN, T_MAX, stream)

            if rec.hit == 0:
                radiance += throughput * sample_skybox(ray_direction)
                active = 0
            else:
                radiance += throughput * _get_emission(
                    rec.material_id, rec.point, rec.front_face, rec.u, rec.v
                )

                incident = tm.normalize(ray_direction)
                scattered, attenuation, did_scatter = _scatter_material(
                    rec.material_id, incident, rec.point, rec.normal,
                    rec.front_face, rec.u, rec.v, stream,
                )

                if did_scatter == 0:
                    active = 0
                else:
                    throughput *= attenuation

                    if rr_min_depth > 0 and bounce + 1 >= rr_min_depth:
                        rr_prob = tm.min(
                            tm.max(throughput.x, tm.max(throughput.y, throughput.z)),
                            MAX_RR_PROBABILITY,
                        )
                        if rr_prob <= 0.0 or random_float(stream) >= rr_prob:
                            active = 0
                        else:
                            throughput /= rr_prob

                    ray_origin = rec.point
                    ray_direction = scattered

    return radiance


@ti.func
def sanitize_sample(color: vec3) -> vec3:
    """Zero NaN, infinite and negative components and count the sample."""
    result = color
    bad = 0
    for c in ti.static(range(3)):
        if tm.isnan(color[c]) or tm.isinf(color[c]) or color[c] < 0.0:
            result[c] = 0.0
            bad = 1
    if bad == 1:
        ti.atomic_add(_sanitized_samples[None], 1)
    return result


# =============================================================================
# Python Helpers
# =============================================================================


@ti.kernel
def _trace_ray_kernel(
    origin: vec3,
    direction: vec3,
    time: ti.f32,
    max_depth: ti.i32,
    rr_min_depth: ti.i32,
    seed: ti.i32,
):
    seed_stream(0, ti.cast(seed, ti.u32))
    _trace_result[None] = sanitize_sample(
        ray_color(origin, direction, time, max_depth, rr_min_depth, 0)
    )


def trace_ray(
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    time: float = 0.0,
    max_depth: int = 10,
    seed: int = 0,
    rr_min_depth: int = 0,
) -> tuple[float, float, float]:
    """Trace one sanitized radiance sample from Python.

    Uses RNG stream 0. Intended for tests and debugging; production renders
    go through the scheduler.

    Args:
        origin: Ray origin (x, y, z).
        direction: Ray direction (x, y, z).
        time: Ray time.
        max_depth: Maximum number of surface interactions.
        seed: Seed for the path's random stream.
        rr_min_depth: Bounces before Russian roulette, 0 to disable.

    Returns:
        The radiance as (R, G, B).

    Raises:
        ValueError: If max_depth or rr_min_depth is negative.
    """
    if max_depth < 0 or rr_min_depth < 0:
        raise ValueError("max_depth and rr_min_depth must be >= 0")
    _trace_ray_kernel(
        vec3(origin[0], origin[1], origin[2]),
        vec3(direction[0], direction[1], direction[2]),
        time,
        max_depth,
        rr_min_depth,
        seed & 0x7FFFFFFF,
    )
    c = _trace_result[None]
    return (float(c[0]), float(c[1]), float(c[2]))
