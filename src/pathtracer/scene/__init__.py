"""Scene module: primitive storage, intersection, animation and the manager.

Components:
    intersection: Sphere/triangle storage and nearest-hit queries (list or BVH)
    motion: Per-object keyframe samples evaluated at each ray's time
    timeline: Keyframe tracks for animating objects and the camera
    manager: SceneManager coordinating textures, materials and objects
    demo_scenes: Ready-made scenes (import directly; it depends on camera)
"""

from .intersection import (
    MAX_SPHERES,
    MAX_TRIANGLES,
    SceneHitRecord,
    WorldMode,
    clear_scene,
    get_primitive_count,
    get_sphere_count,
    get_triangle_count,
    intersect_scene,
)
from .manager import (
    MAX_MATERIALS,
    MaterialInfo,
    MaterialType,
    SceneManager,
    get_material_type,
    get_material_type_index,
)
from .timeline import Interpolation, Keyframe, Track

__all__ = [
    "SceneHitRecord",
    "WorldMode",
    "clear_scene",
    "get_sphere_count",
    "get_triangle_count",
    "get_primitive_count",
    "intersect_scene",
    "MAX_SPHERES",
    "MAX_TRIANGLES",
    "SceneManager",
    "MaterialType",
    "MaterialInfo",
    "MAX_MATERIALS",
    "get_material_type",
    "get_material_type_index",
    "Interpolation",
    "Keyframe",
    "Track",
]
