"""Unit tests for SceneManager.

Tests cover:
- Unified material IDs across material types
- Material type and type-index lookup from Taichi
- Object registration, aliases and validation
- Keyframed translation, radius animation and hiding
- Keyframes and holds inside one shutter interval
- Per-axis and uniform mesh scale
- Building: motion intervals, BVH vs list mode, empty scenes
"""

import numpy as np
import pytest
import taichi as ti


def _material_lookup(material_id):
    from pathtracer.scene.manager import get_material_type, get_material_type_index

    out = ti.field(dtype=ti.i32, shape=2)

    @ti.kernel
    def test_kernel(mid: ti.i32):
        out[0] = get_material_type(mid)
        out[1] = get_material_type_index(mid)

    test_kernel(material_id)
    return out[0], out[1]


def _hit_t(origin, direction, time=0.0):
    from pathtracer.scene.intersection import intersect_scene

    out = ti.field(dtype=ti.f32, shape=2)

    @ti.kernel
    def test_kernel(o: ti.math.vec3, d: ti.math.vec3, time: ti.f32):
        rec = intersect_scene(o, d, time, 1e-3, 1e10, 0)
        out[0] = ti.cast(rec.hit, ti.f32)
        out[1] = rec.t

    test_kernel(ti.math.vec3(*origin), ti.math.vec3(*direction), time)
    if out[0] == 0.0:
        return None
    return out[1]


class TestMaterials:
    def test_unified_ids_are_sequential(self, fresh_scene):
        from pathtracer.scene.manager import MaterialType

        ids = [
            fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5)),
            fresh_scene.add_metal_material(albedo=(0.8, 0.8, 0.8), fuzz=0.1),
            fresh_scene.add_dielectric_material(ior=1.5),
            fresh_scene.add_diffuse_light_material(color=(4.0, 4.0, 4.0)),
            fresh_scene.add_lambertian_material(albedo=(0.1, 0.2, 0.3)),
        ]
        assert ids == [0, 1, 2, 3, 4]
        assert fresh_scene.get_material_count() == 5
        assert [fresh_scene.get_material_type_python(i) for i in ids] == [
            MaterialType.LAMBERTIAN,
            MaterialType.METAL,
            MaterialType.DIELECTRIC,
            MaterialType.DIFFUSE_LIGHT,
            MaterialType.LAMBERTIAN,
        ]
        # Type-local indices restart per type
        assert fresh_scene.get_material_info(4).type_index == 1
        assert fresh_scene.get_material_info(2).params == {"ior": 1.5}

    def test_taichi_lookup(self, fresh_scene):
        from pathtracer.scene.manager import MaterialType

        fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        metal = fresh_scene.add_metal_material(albedo=(0.8, 0.8, 0.8))
        assert _material_lookup(metal) == (int(MaterialType.METAL), 0)
        assert _material_lookup(57) == (-1, -1)
        assert _material_lookup(-1) == (-1, -1)

    def test_unknown_material_queries(self, fresh_scene):
        assert fresh_scene.get_material_info(0) is None
        assert fresh_scene.get_material_type_python(3) is None

    def test_shared_texture(self, fresh_scene):
        checker = fresh_scene.add_checker_colors(0.5, (1.0, 1.0, 1.0), (0.0, 0.0, 0.0))
        a = fresh_scene.add_lambertian_material(texture_id=checker)
        b = fresh_scene.add_metal_material(texture_id=checker)
        assert fresh_scene.get_material_info(a).params["texture_id"] == checker
        assert fresh_scene.get_material_info(b).params["texture_id"] == checker

    def test_material_needs_color_or_texture(self, fresh_scene):
        from pathtracer.errors import InvalidScene

        with pytest.raises(InvalidScene):
            fresh_scene.add_lambertian_material()

    def test_unknown_texture_id(self, fresh_scene):
        from pathtracer.errors import TextureLoadError

        with pytest.raises(TextureLoadError):
            fresh_scene.add_lambertian_material(texture_id=42)


class TestObjects:
    def test_invalid_material_rejected(self, fresh_scene):
        from pathtracer.errors import InvalidScene

        with pytest.raises(InvalidScene):
            fresh_scene.add_sphere((0, 0, 0), 1.0, 0)

    @pytest.mark.parametrize("radius", [0.0, float("nan"), float("inf")])
    def test_bad_radius_rejected(self, fresh_scene, radius):
        from pathtracer.errors import InvalidScene

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        with pytest.raises(InvalidScene):
            fresh_scene.add_sphere((0, 0, 0), radius, mat)

    def test_bad_center_rejected(self, fresh_scene):
        from pathtracer.errors import InvalidScene

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        with pytest.raises(InvalidScene):
            fresh_scene.add_sphere((0, float("nan"), 0), 1.0, mat)

    @pytest.mark.parametrize(
        "center", [5.0, "abc", (1.0, 2.0), ((0, 0, 0), (1, 1, 1)), (0, "x", 0)],
        ids=["scalar", "string", "short", "nested", "non-numeric"],
    )
    def test_malformed_points_raise_invalid_scene(self, fresh_scene, center):
        from pathtracer.errors import InvalidScene

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        with pytest.raises(InvalidScene):
            fresh_scene.add_sphere(center, 1.0, mat)
        fresh_scene.add_sphere((0, 0, 0), 1.0, mat, alias="ball")
        with pytest.raises(InvalidScene):
            fresh_scene.translate("ball", center, keyframe=1.0)

    def test_aliases(self, fresh_scene):
        from pathtracer.errors import InvalidScene
        from pathtracer.scene.manager import SphereObject

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, 0), 1.0, mat, alias="ball")
        assert isinstance(fresh_scene.get_object("ball"), SphereObject)
        with pytest.raises(InvalidScene):
            fresh_scene.add_sphere((1, 0, 0), 1.0, mat, alias="ball")
        with pytest.raises(InvalidScene):
            fresh_scene.get_object("missing")
        with pytest.raises(InvalidScene):
            fresh_scene.translate("missing", (1, 0, 0), keyframe=1.0)

    def test_mesh_registration(self, fresh_scene):
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        vertices = [(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)]
        faces = [(0, 1, 2), (0, 2, 3)]
        fresh_scene.add_mesh(vertices, faces, mat, alias="quad")
        assert fresh_scene.get_object("quad").triangle_count == 2


class TestAnimation:
    def test_translate_moves_sphere_within_frame(self, fresh_scene):
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, -5), 1.0, mat, alias="ball")
        fresh_scene.translate("ball", (0, 0, 2), keyframe=1.0)
        fresh_scene.build((0.0, 1.0))
        assert _hit_t((0, 0, 0), (0, 0, -1), time=0.0) == pytest.approx(4.0, abs=1e-4)
        assert _hit_t((0, 0, 0), (0, 0, -1), time=0.5) == pytest.approx(3.0, abs=1e-4)
        assert _hit_t((0, 0, 0), (0, 0, -1), time=1.0) == pytest.approx(2.0, abs=1e-4)

    def test_build_evaluates_interval_ends(self, fresh_scene):
        """A later frame starts where the animation is at that time."""
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, -5), 1.0, mat, alias="ball")
        fresh_scene.translate("ball", (0, 0, 2), keyframe=2.0)
        fresh_scene.build((1.0, 1.0))
        assert _hit_t((0, 0, 0), (0, 0, -1), time=1.0) == pytest.approx(3.0, abs=1e-4)

    def test_keyframe_at_zero_replaces_start(self, fresh_scene):
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, -5), 1.0, mat, alias="ball")
        fresh_scene.translate("ball", (0, 0, 1), keyframe=0.0)
        fresh_scene.build()
        assert _hit_t((0, 0, 0), (0, 0, -1)) == pytest.approx(3.0, abs=1e-4)

    def test_scale_radius(self, fresh_scene):
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, -5), 1.0, mat, alias="ball")
        fresh_scene.scale_radius("ball", 3.0, keyframe=1.0)
        fresh_scene.build((0.5, 0.5))
        assert _hit_t((0, 0, 0), (0, 0, -1), time=0.5) == pytest.approx(3.0, abs=1e-4)

    def test_keyframe_inside_shutter_is_honored(self, fresh_scene):
        """Out and back within one interval: the midpoint is away, not at rest."""
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, -5), 1.0, mat, alias="ball")
        fresh_scene.translate("ball", (10, 0, 0), keyframe=0.5)
        fresh_scene.translate("ball", (0, 0, 0), keyframe=1.0)
        fresh_scene.build((0.0, 1.0))
        assert _hit_t((0, 0, 0), (0, 0, -1), time=0.0) == pytest.approx(4.0, abs=1e-4)
        assert _hit_t((0, 0, 0), (0, 0, -1), time=0.5) is None
        assert _hit_t((10, 0, 0), (0, 0, -1), time=0.5) == pytest.approx(4.0, abs=1e-4)
        assert _hit_t((5, 0, 0), (0, 0, -1), time=0.75) == pytest.approx(4.0, abs=1e-4)
        assert _hit_t((0, 0, 0), (0, 0, -1), time=1.0) == pytest.approx(4.0, abs=1e-4)

    @pytest.mark.parametrize("accelerate", [True, False])
    def test_nerp_holds_until_its_keyframe(self, fresh_scene, accelerate):
        from pathtracer.scene.timeline import Interpolation

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, -5), 1.0, mat, alias="ball")
        fresh_scene.translate("ball", (10, 0, 0), keyframe=1.0, interpolation=Interpolation.NERP)
        fresh_scene.build((0.0, 1.0), accelerate=accelerate)
        assert _hit_t((0, 0, 0), (0, 0, -1), time=0.5) == pytest.approx(4.0, abs=1e-4)
        assert _hit_t((0, 0, 0), (0, 0, -1), time=0.99) == pytest.approx(4.0, abs=1e-4)
        assert _hit_t((0, 0, 0), (0, 0, -1), time=1.0) is None
        assert _hit_t((10, 0, 0), (0, 0, -1), time=1.0) == pytest.approx(4.0, abs=1e-4)

    def test_radius_changes_within_shutter(self, fresh_scene):
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, -5), 1.0, mat, alias="ball")
        fresh_scene.scale_radius("ball", 3.0, keyframe=1.0)
        fresh_scene.build((0.0, 1.0))
        assert _hit_t((0, 0, 0), (0, 0, -1), time=0.0) == pytest.approx(4.0, abs=1e-4)
        assert _hit_t((0, 0, 0), (0, 0, -1), time=0.5) == pytest.approx(3.0, abs=1e-4)
        # Only the grown sphere reaches this ray, so the BVH must cover it
        assert _hit_t((0, 2.5, 0), (0, 0, -1), time=1.0) is not None
        assert _hit_t((0, 2.5, 0), (0, 0, -1), time=0.0) is None

    def test_scale_radius_rejects_meshes(self, fresh_scene):
        from pathtracer.errors import InvalidScene

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_triangle((0, 0, 0), (1, 0, 0), (0, 1, 0), mat, alias="tri")
        with pytest.raises(InvalidScene):
            fresh_scene.scale_radius("tri", 2.0, keyframe=1.0)

    def test_hidden_objects_are_skipped(self, fresh_scene):
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, -5), 1.0, mat, alias="front")
        fresh_scene.add_sphere((0, 0, -10), 1.0, mat)
        fresh_scene.set_hidden("front")
        stats = fresh_scene.build()
        assert stats.spheres == 1
        assert _hit_t((0, 0, 0), (0, 0, -1)) == pytest.approx(9.0, abs=1e-4)

        fresh_scene.set_hidden("front", False)
        fresh_scene.build()
        assert _hit_t((0, 0, 0), (0, 0, -1)) == pytest.approx(4.0, abs=1e-4)


class TestMeshScale:
    @pytest.fixture
    def quad(self, fresh_scene):
        """2x2 square at z=-5 centered on the z axis."""
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        vertices = [(-1, -1, -5), (1, -1, -5), (1, 1, -5), (-1, 1, -5)]
        fresh_scene.add_mesh(vertices, [(0, 1, 2), (0, 2, 3)], mat, alias="quad")
        return fresh_scene

    def test_uniform_scale_about_centroid(self, quad):
        quad.scale_all_uniform("quad", 3.0, keyframe=1.0)
        quad.build((0.0, 1.0))
        assert _hit_t((1.5, 1.5, 0), (0, 0, -1), time=0.0) is None
        # Half way the square spans [-2, 2]
        assert _hit_t((1.5, 1.5, 0), (0, 0, -1), time=0.5) == pytest.approx(5.0, abs=1e-4)
        assert _hit_t((2.5, 0, 0), (0, 0, -1), time=0.5) is None
        assert _hit_t((2.5, 0, 0), (0, 0, -1), time=1.0) == pytest.approx(5.0, abs=1e-4)
        # Centroid stays put
        assert _hit_t((0, 0, 0), (0, 0, -1), time=1.0) == pytest.approx(5.0, abs=1e-4)

    def test_single_axis_scale(self, quad):
        quad.scale_x("quad", 2.0, keyframe=0.0)
        quad.build()
        assert _hit_t((1.5, 0, 0), (0, 0, -1)) == pytest.approx(5.0, abs=1e-4)
        assert _hit_t((0, 1.5, 0), (0, 0, -1)) is None

    def test_axes_combine(self, quad):
        quad.scale_y("quad", 2.0, keyframe=1.0)
        quad.scale_x("quad", 3.0, keyframe=1.0)
        quad.scale_z("quad", 0.5, keyframe=2.0)
        track = quad.get_object("quad").scale
        assert track.value_at(0.0) == (1.0, 1.0, 1.0)
        assert track.value_at(1.0) == (3.0, 2.0, 1.0)
        assert track.value_at(2.0) == (3.0, 2.0, 0.5)

    def test_scale_combines_with_translation(self, quad):
        quad.translate("quad", (0, 0, 2), keyframe=0.0)
        quad.scale_all("quad", (4.0, 1.0, 1.0), keyframe=0.0)
        quad.build()
        assert _hit_t((3.5, 0, 0), (0, 0, -1)) == pytest.approx(3.0, abs=1e-4)

    def test_scaled_normals_follow_surface(self, fresh_scene):
        from pathtracer.scene.intersection import intersect_scene

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        tilted = np.array([1.0, 0.0, 1.0]) / np.sqrt(2.0)
        fresh_scene.add_mesh(
            [(-1, -1, -5), (1, -1, -5), (0, 1, -5)], [(0, 1, 2)], mat,
            normals=[tilted, tilted, tilted], alias="tri",
        )
        fresh_scene.scale_all("tri", (2.0, 1.0, 1.0), keyframe=0.0)
        fresh_scene.build()

        out = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            rec = intersect_scene(ti.math.vec3(0.0, 0.0, 0.0), ti.math.vec3(0.0, 0.0, -1.0), 0.0,
                                  1e-3, 1e10, 0)
            out[None] = rec.normal

        test_kernel()
        # Stretching x by 2 halves the normal's x component before renormalizing
        expected = np.array([0.5, 0.0, 1.0]) / np.linalg.norm([0.5, 0.0, 1.0])
        np.testing.assert_allclose(tuple(out[None]), expected, atol=1e-5)

    def test_spheres_reject_mesh_scale(self, fresh_scene):
        from pathtracer.errors import InvalidScene

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, -5), 1.0, mat, alias="ball")
        for operation in (fresh_scene.scale_x, fresh_scene.scale_y, fresh_scene.scale_z,
                          fresh_scene.scale_all_uniform):
            with pytest.raises(InvalidScene):
                operation("ball", 2.0, keyframe=1.0)

    @pytest.mark.parametrize("factors", [(0.0, 1.0, 1.0), (1.0, float("inf"), 1.0)])
    def test_bad_scale_rejected(self, quad, factors):
        from pathtracer.errors import InvalidScene

        with pytest.raises(InvalidScene):
            quad.scale_all("quad", factors, keyframe=1.0)


class TestBuild:
    def test_empty_scene_rejected(self, fresh_scene):
        from pathtracer.errors import InvalidScene

        with pytest.raises(InvalidScene):
            fresh_scene.build()

    def test_all_hidden_rejected(self, fresh_scene):
        from pathtracer.errors import InvalidScene

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, 0), 1.0, mat, alias="only")
        fresh_scene.set_hidden("only")
        with pytest.raises(InvalidScene):
            fresh_scene.build()

    def test_reversed_interval_rejected(self, fresh_scene):
        from pathtracer.errors import InvalidScene

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, 0), 1.0, mat)
        with pytest.raises(InvalidScene):
            fresh_scene.build((1.0, 0.5))

    def test_build_stats(self, fresh_scene):
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, 0), 1.0, mat)
        fresh_scene.add_sphere((3, 0, 0), 1.0, mat)
        fresh_scene.add_mesh([(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)], [(0, 1, 2), (0, 2, 3)], mat)
        stats = fresh_scene.build((0.0, 0.25))
        assert (stats.spheres, stats.triangles, stats.bvh_nodes) == (2, 2, 7)
        assert stats.time_interval == (0.0, 0.25)
        assert fresh_scene.last_build is stats

    def test_list_and_bvh_modes_agree(self, fresh_scene):
        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        rng = np.random.default_rng(2)
        for center in rng.uniform(-3.0, 3.0, size=(10, 3)):
            fresh_scene.add_sphere(tuple(center + np.array([0.0, 0.0, -10.0])), 0.7, mat)
        directions = [tuple(d) for d in rng.normal(scale=0.2, size=(32, 3)) + np.array([0.0, 0.0, -1.0])]

        fresh_scene.build(accelerate=True)
        with_bvh = [_hit_t((0, 0, 0), d) for d in directions]
        fresh_scene.build(accelerate=False)
        without_bvh = [_hit_t((0, 0, 0), d) for d in directions]
        assert with_bvh == without_bvh

    def test_clear_resets_everything(self, fresh_scene):
        from pathtracer.scene.intersection import get_primitive_count
        from pathtracer.textures.texture import get_texture_count

        mat = fresh_scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        fresh_scene.add_sphere((0, 0, 0), 1.0, mat, alias="ball")
        fresh_scene.build()
        fresh_scene.clear()
        assert fresh_scene.get_material_count() == 0
        assert get_texture_count() == 0
        assert get_primitive_count() == 0
        assert fresh_scene.objects == []
        assert fresh_scene.aliases == {}

    def test_skybox_image(self, fresh_scene):
        from pathtracer.environment.skybox import SkyboxMode, get_skybox_mode

        tid = fresh_scene.set_skybox_image(np.full((4, 8, 3), 0.5, dtype=np.float32), intensity=2.0)
        assert tid == 0
        assert get_skybox_mode() == SkyboxMode.TEXTURE
