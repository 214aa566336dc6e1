"""Scene-level ray intersection over spheres and triangles.

Primitives are stored in Taichi fields (Structure of Arrays) and addressed by
a global primitive index; ``prim_type`` / ``prim_local`` map that index to the
per-type storage. The scene is queried either by a linear scan over every
primitive (``intersect_list``) or through the BVH (``intersect_bvh``). Both
return the same nearest hit; ``intersect_scene`` picks whichever the scene
was built for.

Positions are stored untransformed together with the id of their object's
motion (see :mod:`pathtracer.scene.motion`), and every primitive is moved to
the ray's time before it is tested.

Example:
    >>> from pathtracer.scene.intersection import intersect_scene
    >>> # Within a Taichi kernel:
    >>> # rec = intersect_scene(origin, direction, time, 1e-3, 1e10, stream)
    >>> # if rec.hit == 1: ...
"""

from dataclasses import dataclass
from enum import IntEnum

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from pathtracer.config import MAX_WORK_UNITS
from pathtracer.geometry.aabb import hit_aabb, safe_inverse
from pathtracer.geometry.bvh import (
    BVH_STACK_SIZE,
    bvh_left,
    bvh_node_max,
    bvh_node_min,
    bvh_primitive,
    bvh_right,
    clear_bvh,
    num_bvh_nodes,
)
from pathtracer.geometry.sphere import Sphere, hit_sphere
from pathtracer.geometry.triangle import hit_triangle, triangle_geometric_normal
from pathtracer.scene.motion import clear_motions, evaluate_motion, move_point

vec3 = tm.vec3
vec2 = tm.vec2


class PrimitiveType(IntEnum):
    SPHERE = 0
    TRIANGLE = 1


class WorldMode(IntEnum):
    """How intersect_scene() searches the primitives."""

    LIST = 0
    BVH = 1


@ti.dataclass
class SceneHitRecord:
    """Nearest intersection of a ray with the scene.

    Attributes:
        hit: 1 if any primitive was hit, 0 otherwise.
        t: Ray parameter of the hit.
        point: World-space hit point.
        normal: Unit shading normal facing against the incoming ray.
        front_face: 1 if the ray hit the outside of the surface.
        u: Surface u coordinate.
        v: Surface v coordinate.
        material_id: Unified material id of the primitive, -1 on a miss.
        primitive_id: Global primitive index, -1 on a miss.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    u: ti.f32
    v: ti.f32
    material_id: ti.i32
    primitive_id: ti.i32


MAX_SPHERES = 4096
MAX_TRIANGLES = 1 << 16
MAX_PRIMITIVES = MAX_SPHERES + MAX_TRIANGLES

# Sphere storage. Centers are untransformed; the radius comes from the
# motion's scale.
sphere_centers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SPHERES)
sphere_motions = ti.field(dtype=ti.i32, shape=MAX_SPHERES)
sphere_material_ids = ti.field(dtype=ti.i32, shape=MAX_SPHERES)
num_spheres = ti.field(dtype=ti.i32, shape=())

# Triangle storage. Vertices and normals are in the mesh's own frame.
triangle_v0 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_v1 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_v2 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_n0 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_n1 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_n2 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_uv0 = ti.Vector.field(2, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_uv1 = ti.Vector.field(2, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_uv2 = ti.Vector.field(2, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_has_normals = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
triangle_has_uvs = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
triangle_motions = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
triangle_material_ids = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
num_triangles = ti.field(dtype=ti.i32, shape=())

# Global primitive index -> (type, index within the type's storage)
prim_type = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
prim_local = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
num_primitives = ti.field(dtype=ti.i32, shape=())

_world_mode = ti.field(dtype=ti.i32, shape=())

# Per-stream traversal stacks: node index and box entry distance
_bvh_stack = ti.field(dtype=ti.i32, shape=(MAX_WORK_UNITS, BVH_STACK_SIZE))
_bvh_stack_t = ti.field(dtype=ti.f32, shape=(MAX_WORK_UNITS, BVH_STACK_SIZE))


@dataclass
class SphereArrays:
    """Host arrays for a batch of spheres, shapes (n, 3) or (n,)."""

    center: npt.NDArray[np.float32]
    motion: npt.NDArray[np.int32]
    material_id: npt.NDArray[np.int32]

    def __len__(self) -> int:
        return int(self.motion.shape[0])


@dataclass
class TriangleArrays:
    """Host arrays for a batch of triangles.

    Attributes:
        vertices: Untransformed positions, shape (n, 3, 3).
        normals: Per-vertex normals, shape (n, 3, 3).
        uvs: Per-vertex texture coordinates, shape (n, 3, 2).
        has_normals: Whether normals are meaningful, shape (n,).
        has_uvs: Whether uvs are meaningful, shape (n,).
        motion: Motion id of the owning mesh, shape (n,).
        material_id: Unified material id, shape (n,).
    """

    vertices: npt.NDArray[np.float32]
    normals: npt.NDArray[np.float32]
    uvs: npt.NDArray[np.float32]
    has_normals: npt.NDArray[np.int32]
    has_uvs: npt.NDArray[np.int32]
    motion: npt.NDArray[np.int32]
    material_id: npt.NDArray[np.int32]

    def __len__(self) -> int:
        return int(self.material_id.shape[0])


def _padded(array: npt.ArrayLike, rows: int, dtype) -> npt.NDArray:
    """Copy into a zeroed array with `rows` leading entries."""
    src = np.asarray(array, dtype=dtype)
    out = np.zeros((rows,) + src.shape[1:], dtype=dtype)
    out[: src.shape[0]] = src
    return out


def clear_scene() -> None:
    """Remove every primitive, their motions and the BVH."""
    num_spheres[None] = 0
    num_triangles[None] = 0
    num_primitives[None] = 0
    _world_mode[None] = int(WorldMode.LIST)
    clear_motions()
    clear_bvh()


def set_world_mode(mode: WorldMode) -> None:
    _world_mode[None] = int(mode)


def get_world_mode() -> WorldMode:
    return WorldMode(int(_world_mode[None]))


def upload_primitives(spheres: SphereArrays, triangles: TriangleArrays) -> None:
    """Replace the scene's primitives.

    Global primitive indices are assigned spheres first, then triangles, in
    array order. The motions they reference must be uploaded separately.

    Raises:
        RuntimeError: If either batch exceeds its preallocated capacity.
    """
    ns = len(spheres)
    nt = len(triangles)
    if ns > MAX_SPHERES:
        raise RuntimeError(f"Maximum number of spheres ({MAX_SPHERES}) exceeded")
    if nt > MAX_TRIANGLES:
        raise RuntimeError(f"Maximum number of triangles ({MAX_TRIANGLES}) exceeded")

    sphere_centers.from_numpy(_padded(np.reshape(spheres.center, (ns, 3)), MAX_SPHERES, np.float32))
    sphere_motions.from_numpy(_padded(spheres.motion, MAX_SPHERES, np.int32))
    sphere_material_ids.from_numpy(_padded(spheres.material_id, MAX_SPHERES, np.int32))
    num_spheres[None] = ns

    vertices = np.asarray(triangles.vertices, dtype=np.float32).reshape(nt, 3, 3)
    normals = np.asarray(triangles.normals, dtype=np.float32).reshape(nt, 3, 3)
    uvs = np.asarray(triangles.uvs, dtype=np.float32).reshape(nt, 3, 2)
    for k, (vf, nf, uvf) in enumerate(
        [
            (triangle_v0, triangle_n0, triangle_uv0),
            (triangle_v1, triangle_n1, triangle_uv1),
            (triangle_v2, triangle_n2, triangle_uv2),
        ]
    ):
        vf.from_numpy(_padded(vertices[:, k, :], MAX_TRIANGLES, np.float32))
        nf.from_numpy(_padded(normals[:, k, :], MAX_TRIANGLES, np.float32))
        uvf.from_numpy(_padded(uvs[:, k, :], MAX_TRIANGLES, np.float32))
    triangle_has_normals.from_numpy(_padded(triangles.has_normals, MAX_TRIANGLES, np.int32))
    triangle_has_uvs.from_numpy(_padded(triangles.has_uvs, MAX_TRIANGLES, np.int32))
    triangle_motions.from_numpy(_padded(triangles.motion, MAX_TRIANGLES, np.int32))
    triangle_material_ids.from_numpy(_padded(triangles.material_id, MAX_TRIANGLES, np.int32))
    num_triangles[None] = nt

    types = np.zeros(MAX_PRIMITIVES, dtype=np.int32)
    local = np.zeros(MAX_PRIMITIVES, dtype=np.int32)
    types[ns : ns + nt] = int(PrimitiveType.TRIANGLE)
    local[:ns] = np.arange(ns, dtype=np.int32)
    local[ns : ns + nt] = np.arange(nt, dtype=np.int32)
    prim_type.from_numpy(types)
    prim_local.from_numpy(local)
    num_primitives[None] = ns + nt


def get_sphere_count() -> int:
    return int(num_spheres[None])


def get_triangle_count() -> int:
    return int(num_triangles[None])


def get_primitive_count() -> int:
    return int(num_primitives[None])


# =============================================================================
# Intersection (Taichi)
# =============================================================================


@ti.func
def _make_miss_record() -> SceneHitRecord:
    return SceneHitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        u=0.0,
        v=0.0,
        material_id=-1,
        primitive_id=-1,
    )


@ti.func
def _intersect_sphere(
    idx: ti.i32,
    prim: ti.i32,
    ray_origin: vec3,
    ray_direction: vec3,
    time: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    motion = sphere_motions[idx]
    offset, scale = evaluate_motion(motion, time)
    center = move_point(motion, sphere_centers[idx], offset, vec3(1.0, 1.0, 1.0))
    rec = hit_sphere(ray_origin, ray_direction, Sphere(center=center, radius=scale.x),
                     t_min, t_max)
    result = _make_miss_record()
    if rec.hit == 1:
        result = SceneHitRecord(
            hit=1,
            t=rec.t,
            point=rec.point,
            normal=rec.normal,
            front_face=rec.front_face,
            u=rec.u,
            v=rec.v,
            material_id=sphere_material_ids[idx],
            primitive_id=prim,
        )
    return result


@ti.func
def _intersect_triangle(
    idx: ti.i32,
    prim: ti.i32,
    ray_origin: vec3,
    ray_direction: vec3,
    time: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    motion = triangle_motions[idx]
    offset, scale = evaluate_motion(motion, time)
    v0 = move_point(motion, triangle_v0[idx], offset, scale)
    v1 = move_point(motion, triangle_v1[idx], offset, scale)
    v2 = move_point(motion, triangle_v2[idx], offset, scale)
    hit, t, b1, b2 = hit_triangle(ray_origin, ray_direction, v0, v1, v2, t_min, t_max)

    result = _make_miss_record()
    if hit == 1:
        b0 = 1.0 - b1 - b2
        geometric = triangle_geometric_normal(v0, v1, v2)
        shading = geometric
        if triangle_has_normals[idx] == 1:
            interpolated = b0 * triangle_n0[idx] + b1 * triangle_n1[idx] + b2 * triangle_n2[idx]
            # Normals follow the inverse transpose of the per-axis scale
            interpolated = interpolated / scale
            if tm.dot(interpolated, interpolated) > 1e-12:
                shading = tm.normalize(interpolated)

        u = b1
        v = b2
        if triangle_has_uvs[idx] == 1:
            uv = b0 * triangle_uv0[idx] + b1 * triangle_uv1[idx] + b2 * triangle_uv2[idx]
            u = uv.x
            v = uv.y

        front_face = 1
        if tm.dot(ray_direction, geometric) > 0.0:
            front_face = 0
            shading = -shading

        result = SceneHitRecord(
            hit=1,
            t=t,
            point=ray_origin + t * ray_direction,
            normal=shading,
            front_face=front_face,
            u=u,
            v=v,
            material_id=triangle_material_ids[idx],
            primitive_id=prim,
        )
    return result


@ti.func
def intersect_primitive(
    prim: ti.i32,
    ray_origin: vec3,
    ray_direction: vec3,
    time: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    """Test one primitive by global index."""
    result = _make_miss_record()
    idx = prim_local[prim]
    if prim_type[prim] == int(PrimitiveType.SPHERE):
        result = _intersect_sphere(idx, prim, ray_origin, ray_direction, time, t_min, t_max)
    else:
        result = _intersect_triangle(idx, prim, ray_origin, ray_direction, time, t_min, t_max)
    return result


@ti.func
def intersect_list(
    ray_origin: vec3,
    ray_direction: vec3,
    time: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    """Nearest hit by testing every primitive in turn."""
    closest_t = t_max
    result = _make_miss_record()
    for prim in range(num_primitives[None]):
        rec = intersect_primitive(prim, ray_origin, ray_direction, time, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = rec
    return result


@ti.func
def intersect_bvh(
    ray_origin: vec3,
    ray_direction: vec3,
    time: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
    stream: ti.i32,
) -> SceneHitRecord:
    """Nearest hit through the BVH.

    Depth-first traversal with an explicit per-stream stack. The nearer child
    is visited first and any node whose box is entered beyond the closest hit
    found so far is skipped.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction.
        time: The ray time.
        t_min: Minimum valid t.
        t_max: Maximum valid t.
        stream: Work unit owning the traversal stack.

    Returns:
        The nearest SceneHitRecord, or a miss record.
    """
    closest_t = t_max
    result = _make_miss_record()
    inv_dir = safe_inverse(ray_direction)

    sp = 0
    if num_bvh_nodes[None] > 0:
        hit_root, t_root = hit_aabb(ray_origin, inv_dir, bvh_node_min[0], bvh_node_max[0],
                                    t_min, closest_t)
        if hit_root == 1:
            _bvh_stack[stream, 0] = 0
            _bvh_stack_t[stream, 0] = t_root
            sp = 1

    while sp > 0:
        sp -= 1
        node = _bvh_stack[stream, sp]
        entry = _bvh_stack_t[stream, sp]
        if entry <= closest_t:
            prim = bvh_primitive[node]
            if prim >= 0:
                rec = intersect_primitive(prim, ray_origin, ray_direction, time, t_min, closest_t)
                if rec.hit == 1:
                    closest_t = rec.t
                    result = rec
            else:
                left = bvh_left[node]
                right = bvh_right[node]
                hit_l, t_l = hit_aabb(ray_origin, inv_dir, bvh_node_min[left], bvh_node_max[left],
                                      t_min, closest_t)
                hit_r, t_r = hit_aabb(ray_origin, inv_dir, bvh_node_min[right],
                                      bvh_node_max[right], t_min, closest_t)
                # Push the farther child first so the nearer one is popped next
                first = left
                first_t = t_l
                second = right
                second_t = t_r
                first_hit = hit_l
                second_hit = hit_r
                if hit_l == 1 and hit_r == 1 and t_r < t_l:
                    first = right
                    first_t = t_r
                    second = left
                    second_t = t_l
                    first_hit = hit_r
                    second_hit = hit_l
                if second_hit == 1 and sp < BVH_STACK_SIZE:
                    _bvh_stack[stream, sp] = second
                    _bvh_stack_t[stream, sp] = second_t
                    sp += 1
                if first_hit == 1 and sp < BVH_STACK_SIZE:
                    _bvh_stack[stream, sp] = first
                    _bvh_stack_t[stream, sp] = first_t
                    sp += 1
    return result


@ti.func
def intersect_scene(
    ray_origin: vec3,
    ray_direction: vec3,
    time: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
    stream: ti.i32,
) -> SceneHitRecord:
    """Nearest hit using the BVH when one was built, else a linear scan."""
    result = _make_miss_record()
    if _world_mode[None] == int(WorldMode.BVH):
        result = intersect_bvh(ray_origin, ray_direction, time, t_min, t_max, stream)
    else:
        result = intersect_list(ray_origin, ray_direction, time, t_min, t_max)
    return result
