"""Bounding volume hierarchy stored as a flat arena of nodes.

The tree is built on the host with NumPy from one bounding box per primitive
and then copied into Taichi fields. Nodes reference their children and their
primitive by integer index, so traversal inside kernels touches only flat
arrays. Traversal itself lives in :mod:`pathtracer.scene.intersection`, next
to the primitive tests it dispatches to.

Build: split on the longest axis of the centroid bounds, sort by centroid
along it and cut at the median. Leaves hold exactly one primitive; a node with
two primitives therefore splits straight into two leaves. Moving primitives
are bounded by the union of their boxes at every motion knot,
and every box is padded so flat primitives still have volume.

Example:
    >>> from pathtracer.geometry.bvh import build_bvh, upload_bvh
    >>> arena = build_bvh([sphere_bounds([(0, 0, -1)], [0.5])])
    >>> arena.node_count
    1
    >>> upload_bvh(arena)
"""

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti

from pathtracer.errors import InvalidScene
from pathtracer.geometry.aabb import AABB, AABB_EPSILON

logger = logging.getLogger(__name__)

# Maximum number of primitives a BVH can index
MAX_BVH_PRIMITIVES = 1 << 17

# A full binary tree with n leaves has 2n - 1 nodes
MAX_BVH_NODES = 2 * MAX_BVH_PRIMITIVES

# Traversal stack entries per stream; median splits keep depth near log2(n)
BVH_STACK_SIZE = 64

# Arena storage: Structure of Arrays
bvh_node_min = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
bvh_node_max = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
# Child node indices, -1 for leaves
bvh_left = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_right = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
# Primitive index for leaves, -1 for internal nodes
bvh_primitive = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
num_bvh_nodes = ti.field(dtype=ti.i32, shape=())


@dataclass
class BVHArena:
    """Host copy of a built hierarchy. Node 0 is the root.

    Attributes:
        node_min: Lower corners, shape (n, 3).
        node_max: Upper corners, shape (n, 3).
        left: Left child per node, -1 for leaves.
        right: Right child per node, -1 for leaves.
        primitive: Primitive index per leaf, -1 for internal nodes.
    """

    node_min: npt.NDArray[np.float32]
    node_max: npt.NDArray[np.float32]
    left: npt.NDArray[np.int32]
    right: npt.NDArray[np.int32]
    primitive: npt.NDArray[np.int32]

    @property
    def node_count(self) -> int:
        return int(self.left.shape[0])

    def depth(self) -> int:
        """Number of levels from the root to the deepest leaf."""
        deepest = 0
        stack = [(0, 1)]
        while stack:
            node, level = stack.pop()
            deepest = max(deepest, level)
            if self.left[node] >= 0:
                stack.append((int(self.left[node]), level + 1))
                stack.append((int(self.right[node]), level + 1))
        return deepest

    def leaf_primitives(self) -> list[int]:
        return sorted(int(p) for p in self.primitive if p >= 0)


class _ArenaBuilder:
    """Accumulates nodes while recursing over primitive index ranges."""

    def __init__(self, mins: npt.NDArray[np.float64], maxs: npt.NDArray[np.float64]) -> None:
        self.mins = mins
        self.maxs = maxs
        self.centroids = (mins + maxs) * 0.5
        n = mins.shape[0]
        capacity = 2 * n - 1
        self.node_min = np.zeros((capacity, 3), dtype=np.float64)
        self.node_max = np.zeros((capacity, 3), dtype=np.float64)
        self.left = np.full(capacity, -1, dtype=np.int32)
        self.right = np.full(capacity, -1, dtype=np.int32)
        self.primitive = np.full(capacity, -1, dtype=np.int32)
        self.count = 0

    def _allocate(self) -> int:
        index = self.count
        self.count += 1
        return index

    def build(self, indices: npt.NDArray[np.int64]) -> int:
        node = self._allocate()
        if indices.shape[0] == 1:
            prim = int(indices[0])
            self.primitive[node] = prim
            self.node_min[node] = self.mins[prim]
            self.node_max[node] = self.maxs[prim]
            return node

        centroids = self.centroids[indices]
        axis = int(np.argmax(centroids.max(axis=0) - centroids.min(axis=0)))
        order = indices[np.argsort(centroids[:, axis], kind="stable")]
        mid = order.shape[0] // 2

        left = self.build(order[:mid])
        right = self.build(order[mid:])
        self.left[node] = left
        self.right[node] = right
        self.node_min[node] = np.minimum(self.node_min[left], self.node_min[right])
        self.node_max[node] = np.maximum(self.node_max[left], self.node_max[right])
        return node


def build_bvh(bounds: list[AABB]) -> BVHArena:
    """Build a hierarchy over primitive bounding boxes.

    Args:
        bounds: One box per primitive, already covering the primitive's whole
            motion over the frame's time interval. The list index is the
            primitive index stored in the leaves.

    Returns:
        The node arena.

    Raises:
        InvalidScene: If bounds is empty.
        RuntimeError: If there are more primitives than MAX_BVH_PRIMITIVES.
    """
    if not bounds:
        raise InvalidScene("Cannot build a BVH over an empty primitive list")
    mins = np.array([box.minimum for box in bounds], dtype=np.float64)
    maxs = np.array([box.maximum for box in bounds], dtype=np.float64)
    return build_bvh_arrays(mins, maxs)


def build_bvh_arrays(mins: npt.ArrayLike, maxs: npt.ArrayLike) -> BVHArena:
    """build_bvh() over boxes given as (n, 3) corner arrays."""
    mins = np.asarray(mins, dtype=np.float64).reshape(-1, 3)
    maxs = np.asarray(maxs, dtype=np.float64).reshape(-1, 3)
    count = mins.shape[0]
    if count == 0:
        raise InvalidScene("Cannot build a BVH over an empty primitive list")
    if count > MAX_BVH_PRIMITIVES:
        raise RuntimeError(f"Maximum number of BVH primitives ({MAX_BVH_PRIMITIVES}) exceeded")

    thin = (maxs - mins) < AABB_EPSILON
    mins = np.where(thin, mins - AABB_EPSILON / 2.0, mins)
    maxs = np.where(thin, maxs + AABB_EPSILON / 2.0, maxs)
    if not (np.all(np.isfinite(mins)) and np.all(np.isfinite(maxs))):
        raise InvalidScene("Primitive bounds must be finite")

    builder = _ArenaBuilder(mins, maxs)
    builder.build(np.arange(count))

    arena = BVHArena(
        # Round outward so float32 boxes still contain their primitives
        node_min=np.nextafter(builder.node_min.astype(np.float32), np.float32(-np.inf)),
        node_max=np.nextafter(builder.node_max.astype(np.float32), np.float32(np.inf)),
        left=builder.left,
        right=builder.right,
        primitive=builder.primitive,
    )
    logger.debug("Built BVH: %d primitives, %d nodes, depth %d",
                 count, arena.node_count, arena.depth())
    return arena


def upload_bvh(arena: BVHArena) -> None:
    """Copy an arena into the Taichi node fields.

    Raises:
        RuntimeError: If the arena does not fit the preallocated fields or
            is deeper than the traversal stack.
    """
    n = arena.node_count
    if n > MAX_BVH_NODES:
        raise RuntimeError(f"Maximum number of BVH nodes ({MAX_BVH_NODES}) exceeded")
    if arena.depth() >= BVH_STACK_SIZE:
        raise RuntimeError(f"BVH depth {arena.depth()} exceeds traversal stack ({BVH_STACK_SIZE})")

    node_min = np.zeros((MAX_BVH_NODES, 3), dtype=np.float32)
    node_max = np.zeros((MAX_BVH_NODES, 3), dtype=np.float32)
    left = np.full(MAX_BVH_NODES, -1, dtype=np.int32)
    right = np.full(MAX_BVH_NODES, -1, dtype=np.int32)
    primitive = np.full(MAX_BVH_NODES, -1, dtype=np.int32)
    node_min[:n] = arena.node_min
    node_max[:n] = arena.node_max
    left[:n] = arena.left
    right[:n] = arena.right
    primitive[:n] = arena.primitive

    bvh_node_min.from_numpy(node_min)
    bvh_node_max.from_numpy(node_max)
    bvh_left.from_numpy(left)
    bvh_right.from_numpy(right)
    bvh_primitive.from_numpy(primitive)
    num_bvh_nodes[None] = n


def clear_bvh() -> None:
    """Drop the uploaded hierarchy."""
    num_bvh_nodes[None] = 0


def get_bvh_node_count() -> int:
    return int(num_bvh_nodes[None])
