"""Geometry module for shape primitives and spatial acceleration.

Components:
    aabb: Axis-aligned bounding boxes and the slab test
    sphere: Sphere primitive with ray-sphere intersection
    triangle: Triangle primitive (Moller-Trumbore)
    bvh: Bounding volume hierarchy stored as a flat node arena

Intersection routines are Taichi functions. Bounds and the BVH build are
computed on the host with NumPy.
"""

from .aabb import AABB, AABB_EPSILON, hit_aabb, safe_inverse
from .bvh import BVHArena, build_bvh, build_bvh_arrays, clear_bvh, get_bvh_node_count, upload_bvh
from .sphere import HitRecord, Sphere, hit_sphere, sphere_bounds, sphere_uv
from .triangle import hit_triangle, triangle_areas, triangle_bounds, triangle_geometric_normal

__all__ = [
    "AABB",
    "AABB_EPSILON",
    "hit_aabb",
    "safe_inverse",
    "BVHArena",
    "build_bvh",
    "build_bvh_arrays",
    "upload_bvh",
    "clear_bvh",
    "get_bvh_node_count",
    "Sphere",
    "HitRecord",
    "hit_sphere",
    "sphere_uv",
    "sphere_bounds",
    "hit_triangle",
    "triangle_geometric_normal",
    "triangle_areas",
    "triangle_bounds",
]
