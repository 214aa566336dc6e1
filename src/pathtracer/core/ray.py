"""Ray data structure and vector helpers used inside Taichi kernels.

Rays carry a time value so that moving primitives can be evaluated at the
instant the camera shutter sampled them.

Example:
    >>> from pathtracer.core.ray import Ray, make_ray, ray_at, vec3
    >>> @ti.kernel
    ... def point_along() -> vec3:
    ...     ray = make_ray(vec3(0.0), vec3(0.0, 0.0, -1.0), 0.5)
    ...     return ray_at(ray, 2.0)  # (0, 0, -2)
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3
vec2 = tm.vec2


@ti.dataclass
class Ray:
    """A ray with origin, direction and the time it was emitted.

    Attributes:
        origin: The starting point of the ray.
        direction: The direction vector. Not required to be unit length.
        time: Scene time at which the ray exists, used for motion blur.
    """

    origin: vec3
    direction: vec3
    time: ti.f32


@ti.func
def make_ray(origin: vec3, direction: vec3, time: ti.f32) -> Ray:
    """Create a ray inside a Taichi kernel."""
    return Ray(origin=origin, direction=direction, time=time)


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Point at parameter t along the ray: origin + t * direction."""
    return ray.origin + t * ray.direction


# =============================================================================
# Vector Helpers
# =============================================================================


@ti.func
def length(v: vec3) -> ti.f32:
    return tm.length(v)


@ti.func
def length_squared(v: vec3) -> ti.f32:
    """Squared length, avoids the square root when only comparing magnitudes."""
    return tm.dot(v, v)


@ti.func
def normalize(v: vec3) -> vec3:
    return tm.normalize(v)


@ti.func
def dot(a: vec3, b: vec3) -> ti.f32:
    return tm.dot(a, b)


@ti.func
def cross(a: vec3, b: vec3) -> vec3:
    return tm.cross(a, b)


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Mirror an incident direction about a unit normal.

    The reflected direction r satisfies dot(r, n) == -dot(d, n).

    Args:
        incident: Incoming direction, pointing toward the surface.
        normal: Unit surface normal.

    Returns:
        The reflected direction.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(incident: vec3, normal: vec3, eta: ti.f32) -> vec3:
    """Refract a unit direction through a surface using Snell's law.

    Args:
        incident: Unit incoming direction.
        normal: Unit normal on the side of the incoming ray.
        eta: Ratio of refractive indices n_incident / n_transmitted.

    Returns:
        The refracted direction, or a zero vector under total internal
        reflection.
    """
    cos_i = tm.min(-tm.dot(incident, normal), 1.0)
    sin2_t = eta * eta * (1.0 - cos_i * cos_i)
    result = vec3(0.0, 0.0, 0.0)
    if sin2_t <= 1.0:
        r_perp = eta * (incident + cos_i * normal)
        r_parallel = -ti.sqrt(ti.abs(1.0 - tm.dot(r_perp, r_perp))) * normal
        result = r_perp + r_parallel
    return result


@ti.func
def schlick_fresnel(cosine: ti.f32, ref_idx: ti.f32) -> ti.f32:
    """Schlick's approximation of Fresnel reflectance.

    Args:
        cosine: Cosine of the angle between incident direction and normal.
        ref_idx: Ratio of refractive indices.

    Returns:
        Reflectance in [0, 1].
    """
    r0 = ((1.0 - ref_idx) / (1.0 + ref_idx)) ** 2
    return r0 + (1.0 - r0) * ((1.0 - cosine) ** 5)


@ti.func
def near_zero(v: vec3) -> ti.i32:
    """1 if every component of v is within 1e-8 of zero."""
    s = 1e-8
    return ti.abs(v.x) < s and ti.abs(v.y) < s and ti.abs(v.z) < s
