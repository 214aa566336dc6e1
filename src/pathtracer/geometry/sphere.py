"""Sphere primitive with robust ray-sphere intersection.

Spheres are tested at a single instant; the scene layer moves them to the
ray's time first. Intersection uses the numerically stable quadratic
formulation from Ray Tracing Gems (chapter 7) to avoid catastrophic
cancellation when the discriminant is close to zero.

A negative radius is allowed: the geometry is identical but normals point
inward, which is the usual way to model a hollow glass shell.

Example:
    >>> from pathtracer.geometry.sphere import Sphere, hit_sphere
    >>> sphere = Sphere(center=ti.math.vec3(0, 0, -1), radius=0.5)
    >>> # Use hit_sphere within a Taichi kernel
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from pathtracer.geometry.aabb import AABB

vec3 = tm.vec3


@ti.dataclass
class Sphere:
    """A sphere at a single instant.

    Attributes:
        center: The center point of the sphere.
        radius: The radius. Negative values flip the normal inward.
    """

    center: vec3
    radius: ti.f32


@ti.dataclass
class HitRecord:
    """Record of a ray-primitive intersection.

    Attributes:
        hit: 1 if the ray intersected the primitive, 0 otherwise.
        t: Ray parameter of the intersection. Only valid if hit == 1.
        point: Intersection point. Only valid if hit == 1.
        normal: Unit normal facing against the incoming ray.
        front_face: 1 if the ray hit the outside of the surface.
        u: Surface u coordinate in [0, 1].
        v: Surface v coordinate in [0, 1].
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    u: ti.f32
    v: ti.f32


@ti.func
def make_miss() -> HitRecord:
    return HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        u=0.0,
        v=0.0,
    )


@ti.func
def sphere_uv(p: vec3):
    """Spherical (u, v) of a point on the unit sphere.

    u runs with the angle around the y axis starting from -x, v from the
    south pole (y = -1) to the north pole (y = +1).

    Args:
        p: A point on the unit sphere centered at the origin.

    Returns:
        A tuple (u, v), each in [0, 1].
    """
    theta = ti.acos(tm.clamp(-p.y, -1.0, 1.0))
    phi = ti.atan2(-p.z, p.x) + tm.pi
    return phi / (2.0 * tm.pi), theta / tm.pi


@ti.func
def _solve_quadratic_robust(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Roots of a*t^2 + 2*h*t + c = 0 ordered t0 <= t1."""
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0
    if ti.abs(q) < 1e-10:
        # Tangent ray
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp
    return t0, t1


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test a ray against a sphere.

    Solves |origin + t * direction - center|^2 = radius^2 with the half-b
    formulation and returns the nearest root inside (t_min, t_max).

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction (need not be normalized).
        sphere: The sphere at the ray's time.
        t_min: Minimum valid t.
        t_max: Maximum valid t.

    Returns:
        A HitRecord; check its hit field.
    """
    oc = ray_origin - sphere.center
    a = tm.dot(ray_direction, ray_direction)
    h = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius
    discriminant = h * h - a * c

    result = make_miss()

    if discriminant >= 0.0:
        sqrt_d = ti.sqrt(discriminant)
        t0, t1 = _solve_quadratic_robust(h, a, c, sqrt_d)

        t = t0
        valid = (t > t_min) and (t < t_max)
        if not valid:
            t = t1
            valid = (t > t_min) and (t < t_max)

        if valid:
            point = ray_origin + t * ray_direction
            outward_normal = (point - sphere.center) / sphere.radius
            u, v = sphere_uv(outward_normal)
            front_face = 1
            normal = outward_normal
            if tm.dot(ray_direction, outward_normal) > 0.0:
                front_face = 0
                normal = -outward_normal
            result = HitRecord(
                hit=1,
                t=t,
                point=point,
                normal=normal,
                front_face=front_face,
                u=u,
                v=v,
            )

    return result


def sphere_bounds(centers: npt.ArrayLike, radii: npt.ArrayLike) -> AABB:
    """Bounding box of a sphere over a sequence of motion knots.

    Center and radius are linear between knots, so the boxes at the knots
    bound every instant in between.

    Args:
        centers: Center at each knot, shape (k, 3).
        radii: Radius at each knot, shape (k,). Signs are ignored.

    Returns:
        The union of the boxes at every knot.
    """
    c = np.asarray(centers, dtype=np.float64).reshape(-1, 3)
    r = np.abs(np.asarray(radii, dtype=np.float64)).reshape(-1, 1)
    return AABB.from_points(np.vstack([c - r, c + r]))
