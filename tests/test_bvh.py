"""Tests for bounding boxes and the BVH.

The key property is that a BVH query returns the same nearest hit as testing
every primitive in turn, including for moving primitives.
"""

import numpy as np
import pytest
import taichi as ti


class TestAABB:
    def test_union_and_centroid(self):
        from pathtracer.geometry.aabb import AABB

        a = AABB(np.array([0.0, 0.0, 0.0]), np.array([1.0, 1.0, 1.0]))
        b = AABB(np.array([-1.0, 2.0, 0.5]), np.array([0.0, 3.0, 0.75]))
        box = a.union(b)
        np.testing.assert_allclose(box.minimum, [-1.0, 0.0, 0.0])
        np.testing.assert_allclose(box.maximum, [1.0, 3.0, 1.0])
        np.testing.assert_allclose(box.centroid(), [0.0, 1.5, 0.5])
        assert box.longest_axis() == 1

    def test_empty_is_identity_for_union(self):
        from pathtracer.geometry.aabb import AABB

        a = AABB.from_points([[1, 2, 3], [4, 5, 6]])
        box = AABB.empty().union(a)
        np.testing.assert_allclose(box.minimum, a.minimum)
        np.testing.assert_allclose(box.maximum, a.maximum)

    def test_pad_flat_box(self):
        from pathtracer.geometry.aabb import AABB, AABB_EPSILON

        flat = AABB.from_points([[0, 0, 0], [1, 0, 1]]).pad()
        assert flat.extent()[1] == pytest.approx(AABB_EPSILON)
        assert flat.extent()[0] == pytest.approx(1.0)

    def test_slab_test(self):
        from pathtracer.geometry.aabb import hit_aabb, safe_inverse

        out_hit = ti.field(dtype=ti.i32, shape=4)
        out_t = ti.field(dtype=ti.f32, shape=4)

        @ti.kernel
        def test_kernel():
            lo = ti.math.vec3(-1.0, -1.0, -1.0)
            hi = ti.math.vec3(1.0, 1.0, 1.0)
            origins = ti.Matrix([[0.0, 0.0, 5.0], [0.0, 3.0, 5.0], [0.0, 0.0, 0.0], [0.0, 0.0, 5.0]])
            dirs = ti.Matrix([[0.0, 0.0, -1.0], [0.0, 0.0, -1.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
            for k in ti.static(range(4)):
                o = ti.math.vec3(origins[k, 0], origins[k, 1], origins[k, 2])
                d = ti.math.vec3(dirs[k, 0], dirs[k, 1], dirs[k, 2])
                hit, t = hit_aabb(o, safe_inverse(d), lo, hi, 1e-3, 1e10)
                out_hit[k] = hit
                out_t[k] = t

        test_kernel()
        # Straight on: enters at z = 1
        assert out_hit[0] == 1
        assert out_t[0] == pytest.approx(4.0, abs=1e-5)
        # Passes above the box
        assert out_hit[1] == 0
        # Starts inside: entry clamps to t_min
        assert out_hit[2] == 1
        assert out_t[2] == pytest.approx(1e-3, abs=1e-6)
        # Box is behind the ray
        assert out_hit[3] == 0


class TestBuild:
    def test_single_primitive(self):
        from pathtracer.geometry.bvh import build_bvh
        from pathtracer.geometry.sphere import sphere_bounds

        arena = build_bvh([sphere_bounds([(0, 0, -1)], [0.5])])
        assert arena.node_count == 1
        assert arena.primitive[0] == 0
        assert arena.depth() == 1

    def test_every_primitive_in_exactly_one_leaf(self):
        from pathtracer.geometry.bvh import build_bvh_arrays

        rng = np.random.default_rng(3)
        n = 257
        mins = rng.uniform(-10.0, 10.0, size=(n, 3))
        maxs = mins + rng.uniform(0.0, 1.0, size=(n, 3))
        arena = build_bvh_arrays(mins, maxs)
        assert arena.node_count == 2 * n - 1
        assert arena.leaf_primitives() == list(range(n))
        # Median splits keep the tree balanced
        assert arena.depth() <= int(np.ceil(np.log2(n))) + 1

    def test_parent_boxes_contain_children(self):
        from pathtracer.geometry.bvh import build_bvh_arrays

        rng = np.random.default_rng(5)
        mins = rng.uniform(-5.0, 5.0, size=(64, 3))
        maxs = mins + rng.uniform(0.0, 2.0, size=(64, 3))
        arena = build_bvh_arrays(mins, maxs)
        for node in range(arena.node_count):
            for child in (arena.left[node], arena.right[node]):
                if child >= 0:
                    assert np.all(arena.node_min[node] <= arena.node_min[child])
                    assert np.all(arena.node_max[node] >= arena.node_max[child])
            prim = arena.primitive[node]
            if prim >= 0:
                assert np.all(arena.node_min[node] <= mins[prim])
                assert np.all(arena.node_max[node] >= maxs[prim])

    def test_empty_rejected(self):
        from pathtracer.errors import InvalidScene
        from pathtracer.geometry.bvh import build_bvh

        with pytest.raises(InvalidScene):
            build_bvh([])

    def test_non_finite_bounds_rejected(self):
        from pathtracer.errors import InvalidScene
        from pathtracer.geometry.bvh import build_bvh_arrays

        with pytest.raises(InvalidScene):
            build_bvh_arrays([[0.0, 0.0, np.inf]], [[1.0, 1.0, np.inf]])


def _random_scene(scene, rng, spheres=60, triangles=60, moving=False):
    mat = scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
    for i in range(spheres):
        alias = f"s{i}"
        scene.add_sphere(tuple(rng.uniform(-8.0, 8.0, 3)), float(rng.uniform(0.2, 1.0)), mat, alias=alias)
        if moving:
            scene.translate(alias, tuple(rng.uniform(-1.0, 1.0, 3)), keyframe=1.0)
    for i in range(triangles):
        base = rng.uniform(-8.0, 8.0, 3)
        v0, v1, v2 = (base + rng.uniform(-1.0, 1.0, 3) for _ in range(3))
        alias = f"t{i}"
        scene.add_triangle(tuple(v0), tuple(v1), tuple(v2), mat, alias=alias)
        if moving:
            scene.translate(alias, tuple(rng.uniform(-1.0, 1.0, 3)), keyframe=1.0)


def _compare_bvh_and_list(rng, n_rays=2000, times=None):
    from pathtracer.scene.intersection import intersect_bvh, intersect_list

    origins = ti.Vector.field(3, dtype=ti.f32, shape=n_rays)
    directions = ti.Vector.field(3, dtype=ti.f32, shape=n_rays)
    ray_times = ti.field(dtype=ti.f32, shape=n_rays)
    bvh_hit = ti.field(dtype=ti.i32, shape=n_rays)
    list_hit = ti.field(dtype=ti.i32, shape=n_rays)
    bvh_prim = ti.field(dtype=ti.i32, shape=n_rays)
    list_prim = ti.field(dtype=ti.i32, shape=n_rays)
    bvh_t = ti.field(dtype=ti.f32, shape=n_rays)
    list_t = ti.field(dtype=ti.f32, shape=n_rays)

    o = rng.uniform(-12.0, 12.0, size=(n_rays, 3)).astype(np.float32)
    # Aim through the populated region so most rays hit something
    targets = rng.uniform(-6.0, 6.0, size=(n_rays, 3))
    d = (targets - o).astype(np.float32)
    origins.from_numpy(o)
    directions.from_numpy(d)
    if times is None:
        ray_times.fill(0.0)
    else:
        ray_times.from_numpy(rng.uniform(times[0], times[1], size=n_rays).astype(np.float32))

    @ti.kernel
    def cast():
        for k in range(n_rays):
            a = intersect_bvh(origins[k], directions[k], ray_times[k], 1e-3, 1e10, k)
            b = intersect_list(origins[k], directions[k], ray_times[k], 1e-3, 1e10)
            bvh_hit[k] = a.hit
            list_hit[k] = b.hit
            bvh_prim[k] = a.primitive_id
            list_prim[k] = b.primitive_id
            bvh_t[k] = a.t
            list_t[k] = b.t

    cast()
    hits = list_hit.to_numpy()
    np.testing.assert_array_equal(bvh_hit.to_numpy(), hits)
    np.testing.assert_array_equal(bvh_prim.to_numpy(), list_prim.to_numpy())
    np.testing.assert_allclose(bvh_t.to_numpy(), list_t.to_numpy(), rtol=1e-6)
    # The comparison is only meaningful if plenty of rays hit
    assert hits.mean() > 0.1


class TestTraversal:
    def test_bvh_matches_linear_scan(self, fresh_scene):
        rng = np.random.default_rng(11)
        _random_scene(fresh_scene, rng)
        stats = fresh_scene.build()
        assert stats.bvh_nodes == 2 * (stats.spheres + stats.triangles) - 1
        _compare_bvh_and_list(rng)

    def test_bvh_matches_linear_scan_with_motion(self, fresh_scene):
        rng = np.random.default_rng(12)
        _random_scene(fresh_scene, rng, moving=True)
        fresh_scene.build(time_interval=(0.0, 1.0))
        _compare_bvh_and_list(rng, times=(0.0, 1.0))

    def test_unaccelerated_build_has_no_nodes(self, fresh_scene):
        from pathtracer.geometry.bvh import get_bvh_node_count
        from pathtracer.scene.intersection import WorldMode, get_world_mode

        rng = np.random.default_rng(13)
        _random_scene(fresh_scene, rng, spheres=5, triangles=5)
        stats = fresh_scene.build(accelerate=False)
        assert stats.bvh_nodes == 0
        assert get_bvh_node_count() == 0
        assert get_world_mode() == WorldMode.LIST
