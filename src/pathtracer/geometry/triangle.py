"""Triangle primitive using the Moller-Trumbore intersection test.

Vertices are moved to the ray's time by the scene layer before the test.
Per-vertex normals and UVs are optional and are interpolated by the scene
layer from the barycentric coordinates returned here.

Example:
    >>> from pathtracer.geometry.triangle import hit_triangle
    >>> # Within a Taichi kernel:
    >>> # hit, t, b1, b2 = hit_triangle(origin, direction, v0, v1, v2, 1e-3, 1e10)
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from pathtracer.geometry.aabb import AABB

vec3 = tm.vec3

# Determinant threshold below which the ray is treated as parallel
PARALLEL_EPSILON = 1e-9

# Minimum area for a triangle to be accepted into a scene
DEGENERATE_AREA = 1e-12


@ti.func
def hit_triangle(
    ray_origin: vec3,
    ray_direction: vec3,
    v0: vec3,
    v1: vec3,
    v2: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Moller-Trumbore ray-triangle test.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction.
        v0: First vertex.
        v1: Second vertex.
        v2: Third vertex.
        t_min: Minimum valid t.
        t_max: Maximum valid t.

    Returns:
        A tuple (hit, t, b1, b2) where b1 and b2 are the barycentric weights
        of v1 and v2. Parallel rays and points outside the triangle miss.
    """
    edge1 = v1 - v0
    edge2 = v2 - v0
    pvec = tm.cross(ray_direction, edge2)
    det = tm.dot(edge1, pvec)

    hit = 0
    t = 0.0
    b1 = 0.0
    b2 = 0.0

    if ti.abs(det) > PARALLEL_EPSILON:
        inv_det = 1.0 / det
        tvec = ray_origin - v0
        b1 = tm.dot(tvec, pvec) * inv_det
        if b1 >= 0.0 and b1 <= 1.0:
            qvec = tm.cross(tvec, edge1)
            b2 = tm.dot(ray_direction, qvec) * inv_det
            if b2 >= 0.0 and b1 + b2 <= 1.0:
                t = tm.dot(edge2, qvec) * inv_det
                if t > t_min and t < t_max:
                    hit = 1

    return hit, t, b1, b2


@ti.func
def triangle_geometric_normal(v0: vec3, v1: vec3, v2: vec3) -> vec3:
    """Unit normal following the counter-clockwise winding v0 -> v1 -> v2."""
    return tm.normalize(tm.cross(v1 - v0, v2 - v0))


def triangle_areas(corners: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Areas of triangles given as corners, shape (m, 3, 3)."""
    c = np.asarray(corners, dtype=np.float64).reshape(-1, 3, 3)
    return 0.5 * np.linalg.norm(np.cross(c[:, 1] - c[:, 0], c[:, 2] - c[:, 0]), axis=1)


def triangle_bounds(corners: npt.ArrayLike) -> AABB:
    """Box around a triangle at every motion knot.

    Args:
        corners: Vertex positions at each knot, shape (k, 3, 3) or (3, 3).
            Vertices are linear between knots, so the knots suffice.
    """
    return AABB.from_points(np.asarray(corners, dtype=np.float64).reshape(-1, 3))
