"""Core rendering module.

Components:
    ray: Ray data structure and vector utilities
    sampler: Per-stream random number generation and sampling routines
    integrator: Iterative path tracing with material dispatch
    scheduler: Work-unit partitioning and the render kernels
    framebuffer: Host-side accumulation and finalization of frames

All compute-intensive operations are Taichi functions run on the CPU
backend's thread pool.
"""

from .framebuffer import Framebuffer
from .ray import (
    Ray,
    cross,
    dot,
    length,
    length_squared,
    make_ray,
    near_zero,
    normalize,
    ray_at,
    reflect,
    refract,
    schlick_fresnel,
    vec3,
)
from .sampler import (
    build_onb_from_normal,
    local_to_world,
    random_cosine_direction,
    random_float,
    random_in_unit_disk,
    random_in_unit_sphere,
    random_unit_vector,
    sample_cosine_hemisphere,
    seed_stream_host,
)

# Note: integrator and scheduler are NOT imported here to avoid circular imports.
# Import directly from pathtracer.core.integrator or pathtracer.core.scheduler.

__all__ = [
    "Framebuffer",
    "Ray",
    "ray_at",
    "make_ray",
    "vec3",
    "length",
    "length_squared",
    "normalize",
    "dot",
    "cross",
    "reflect",
    "refract",
    "schlick_fresnel",
    "near_zero",
    "random_float",
    "random_in_unit_sphere",
    "random_unit_vector",
    "random_in_unit_disk",
    "random_cosine_direction",
    "build_onb_from_normal",
    "local_to_world",
    "sample_cosine_hemisphere",
    "seed_stream_host",
]
