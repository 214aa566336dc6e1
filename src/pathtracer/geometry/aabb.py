"""Axis-aligned bounding boxes.

Boxes are built on the host with NumPy when constructing the BVH and tested
inside kernels with the slab method.

Example:
    >>> import numpy as np
    >>> from pathtracer.geometry.aabb import AABB
    >>> box = AABB.from_points(np.array([[0, 0, 0], [1, 0, 2]], dtype=np.float32))
    >>> box.pad().extent()[1] > 0.0  # flat axis gets padded
    True
"""

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

# Minimum thickness of a box along any axis
AABB_EPSILON = 1e-4


@dataclass
class AABB:
    """Host-side axis-aligned bounding box.

    Attributes:
        minimum: Lower corner, shape (3,).
        maximum: Upper corner, shape (3,).
    """

    minimum: npt.NDArray[np.float64]
    maximum: npt.NDArray[np.float64]

    @classmethod
    def from_points(cls, points: npt.ArrayLike) -> "AABB":
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return cls(pts.min(axis=0), pts.max(axis=0))

    @classmethod
    def empty(cls) -> "AABB":
        return cls(np.full(3, np.inf), np.full(3, -np.inf))

    def union(self, other: "AABB") -> "AABB":
        """Smallest box containing both boxes."""
        return AABB(np.minimum(self.minimum, other.minimum), np.maximum(self.maximum, other.maximum))

    def pad(self, epsilon: float = AABB_EPSILON) -> "AABB":
        """Grow every axis thinner than epsilon so flat boxes still have volume."""
        lo = self.minimum.copy()
        hi = self.maximum.copy()
        thin = (hi - lo) < epsilon
        lo[thin] -= epsilon / 2.0
        hi[thin] += epsilon / 2.0
        return AABB(lo, hi)

    def extent(self) -> npt.NDArray[np.float64]:
        return self.maximum - self.minimum

    def centroid(self) -> npt.NDArray[np.float64]:
        return (self.minimum + self.maximum) * 0.5

    def longest_axis(self) -> int:
        return int(np.argmax(self.extent()))

    def surface_area(self) -> float:
        e = np.maximum(self.extent(), 0.0)
        return float(2.0 * (e[0] * e[1] + e[1] * e[2] + e[2] * e[0]))

    def contains(self, point: npt.ArrayLike) -> bool:
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.minimum) and np.all(p <= self.maximum))


@ti.func
def safe_inverse(direction: vec3) -> vec3:
    """Componentwise 1/direction with zero components replaced by a tiny value.

    Keeps the slab test finite for axis-parallel rays.
    """
    inv = vec3(0.0, 0.0, 0.0)
    for a in ti.static(range(3)):
        d = direction[a]
        if ti.abs(d) < 1e-12:
            d = ti.select(d < 0.0, -1e-12, 1e-12)
        inv[a] = 1.0 / d
    return inv


@ti.func
def hit_aabb(
    ray_origin: vec3,
    inv_direction: vec3,
    box_min: vec3,
    box_max: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Slab test of a ray against a box.

    Args:
        ray_origin: The ray origin.
        inv_direction: Componentwise reciprocal of the ray direction
            (see safe_inverse).
        box_min: Lower corner of the box.
        box_max: Upper corner of the box.
        t_min: Start of the valid ray interval.
        t_max: End of the valid ray interval.

    Returns:
        A tuple (hit, t_entry): hit is 1 when the ray overlaps the box within
        [t_min, t_max]; t_entry is where it enters (clamped to t_min).
    """
    t0 = (box_min - ray_origin) * inv_direction
    t1 = (box_max - ray_origin) * inv_direction
    t_near = tm.min(t0, t1)
    t_far = tm.max(t0, t1)
    enter = tm.max(tm.max(t_near.x, t_near.y), tm.max(t_near.z, t_min))
    leave = tm.min(tm.min(t_far.x, t_far.y), tm.min(t_far.z, t_max))
    hit = 0
    if enter <= leave:
        hit = 1
    return hit, enter
