"""Explicit per-stream random number generation for Monte Carlo sampling.

Every sampling routine takes a ``stream`` index and advances only that
stream's state. The scheduler gives each work unit its own stream and reseeds
it at the start of every pixel from a hash of (frame seed, pixel index), so a
render's result depends on the seed alone and not on how pixels were split
across workers.

The generator is a 32-bit xorshift seeded through Wang's integer hash.

Example:
    >>> from pathtracer.core.sampler import seed_stream_host, random_float
    >>> seed_stream_host(stream=0, seed=1234)
    >>> @ti.kernel
    ... def draw() -> ti.f32:
    ...     return random_float(0)
"""

import taichi as ti
import taichi.math as tm

from pathtracer.config import MAX_WORK_UNITS
from pathtracer.core.ray import cross, length_squared, normalize

vec3 = tm.vec3

# One generator state per work unit
_rng_state = ti.field(dtype=ti.u32, shape=MAX_WORK_UNITS)

# 2^-24: maps the top 24 bits of a draw onto [0, 1)
_INV_2_24 = 1.0 / 16777216.0


@ti.func
def hash_u32(value: ti.u32) -> ti.u32:
    """Wang's 32-bit integer hash."""
    x = value
    x = (x ^ ti.u32(61)) ^ (x >> ti.u32(16))
    x = x * ti.u32(9)
    x = x ^ (x >> ti.u32(4))
    x = x * ti.u32(668265261)
    x = x ^ (x >> ti.u32(15))
    return x


@ti.func
def pixel_seed(frame_seed: ti.u32, pixel_index: ti.u32) -> ti.u32:
    """Seed for one pixel of one frame."""
    return hash_u32(frame_seed ^ hash_u32(pixel_index + ti.u32(1)))


@ti.func
def seed_stream(stream: ti.i32, seed: ti.u32):
    """Reset a stream's state. A zero state would be stuck, so it becomes 1."""
    state = hash_u32(seed)
    if state == ti.u32(0):
        state = ti.u32(1)
    _rng_state[stream] = state


@ti.func
def next_u32(stream: ti.i32) -> ti.u32:
    """Advance a stream by one xorshift32 step and return the new state."""
    x = _rng_state[stream]
    x ^= x << ti.u32(13)
    x ^= x >> ti.u32(17)
    x ^= x << ti.u32(5)
    _rng_state[stream] = x
    return x


@ti.func
def random_float(stream: ti.i32) -> ti.f32:
    """Uniform float in [0, 1)."""
    return ti.cast(next_u32(stream) >> ti.u32(8), ti.f32) * _INV_2_24


@ti.func
def random_in_unit_sphere(stream: ti.i32) -> vec3:
    """Uniform point strictly inside the unit sphere, by rejection sampling.

    The loop is bounded; in the astronomically unlikely case that every
    candidate is rejected the origin is returned.
    """
    p = vec3(0.0, 0.0, 0.0)
    found = 0
    for _ in range(64):
        if found == 0:
            candidate = vec3(
                random_float(stream) * 2.0 - 1.0,
                random_float(stream) * 2.0 - 1.0,
                random_float(stream) * 2.0 - 1.0,
            )
            if length_squared(candidate) < 1.0:
                p = candidate
                found = 1
    return p


@ti.func
def random_unit_vector(stream: ti.i32) -> vec3:
    """Uniform direction on the unit sphere.

    Sampled analytically from (z, phi) so the result is never degenerate.
    """
    z = 1.0 - 2.0 * random_float(stream)
    phi = 2.0 * tm.pi * random_float(stream)
    r = ti.sqrt(tm.max(0.0, 1.0 - z * z))
    return vec3(r * ti.cos(phi), r * ti.sin(phi), z)


@ti.func
def random_in_unit_disk(stream: ti.i32) -> vec3:
    """Uniform point inside the unit disk in the xy-plane, used for lens sampling."""
    p = vec3(0.0, 0.0, 0.0)
    found = 0
    for _ in range(64):
        if found == 0:
            candidate = vec3(
                random_float(stream) * 2.0 - 1.0,
                random_float(stream) * 2.0 - 1.0,
                0.0,
            )
            if candidate.x * candidate.x + candidate.y * candidate.y < 1.0:
                p = candidate
                found = 1
    return p


@ti.func
def random_cosine_direction(stream: ti.i32) -> vec3:
    """Cosine-weighted direction about +z (pdf = cos(theta) / pi)."""
    r1 = random_float(stream)
    r2 = random_float(stream)
    phi = 2.0 * tm.pi * r1
    sqrt_r2 = ti.sqrt(r2)
    return vec3(ti.cos(phi) * sqrt_r2, ti.sin(phi) * sqrt_r2, ti.sqrt(1.0 - r2))


@ti.func
def build_onb_from_normal(normal: vec3):
    """Orthonormal basis (tangent, bitangent, normal) around a unit normal."""
    a = vec3(1.0, 0.0, 0.0)
    if ti.abs(normal.x) > 0.9:
        a = vec3(0.0, 1.0, 0.0)
    tangent = normalize(cross(a, normal))
    bitangent = cross(normal, tangent)
    return tangent, bitangent, normal


@ti.func
def local_to_world(local_dir: vec3, tangent: vec3, bitangent: vec3, normal: vec3) -> vec3:
    return local_dir.x * tangent + local_dir.y * bitangent + local_dir.z * normal


@ti.func
def sample_cosine_hemisphere(normal: vec3, stream: ti.i32):
    """Cosine-weighted hemisphere sample around a normal.

    Args:
        normal: Unit surface normal.
        stream: RNG stream to draw from.

    Returns:
        A tuple of (direction, pdf) with pdf = cos(theta) / pi.
    """
    local_dir = random_cosine_direction(stream)
    tangent, bitangent, n = build_onb_from_normal(normal)
    world_dir = local_to_world(local_dir, tangent, bitangent, n)
    pdf = tm.dot(world_dir, normal) / tm.pi
    return world_dir, pdf


# =============================================================================
# Host Helpers
# =============================================================================


@ti.kernel
def _seed_stream_kernel(stream: ti.i32, seed: ti.i32):
    seed_stream(stream, ti.cast(seed, ti.u32))


def seed_stream_host(stream: int, seed: int) -> None:
    """Seed one stream from Python.

    Args:
        stream: Stream index in [0, MAX_WORK_UNITS).
        seed: Any integer; only the low 31 bits are used.

    Raises:
        ValueError: If stream is out of range.
    """
    if not 0 <= stream < MAX_WORK_UNITS:
        raise ValueError(f"stream must be in [0, {MAX_WORK_UNITS}), got {stream}")
    _seed_stream_kernel(stream, seed & 0x7FFFFFFF)
