"""Unit tests for the sphere primitive.

Tests cover:
- Ray-sphere intersection (hit, miss, inside, tangent)
- Front face determination and normals
- Hollow (negative radius) spheres
- Spherical UV mapping
- Sphere bounds over motion knots
"""

import math

import numpy as np
import pytest
import taichi as ti


def _hit(origin, direction, center, radius, t_min=1e-3, t_max=1e10):
    """Run hit_sphere in a kernel and return the record as a dict."""
    from pathtracer.geometry.sphere import Sphere, hit_sphere

    out_hit = ti.field(dtype=ti.i32, shape=())
    out_t = ti.field(dtype=ti.f32, shape=())
    out_normal = ti.Vector.field(3, dtype=ti.f32, shape=())
    out_front = ti.field(dtype=ti.i32, shape=())
    out_uv = ti.Vector.field(2, dtype=ti.f32, shape=())

    @ti.kernel
    def test_kernel(o: ti.math.vec3, d: ti.math.vec3, c: ti.math.vec3, r: ti.f32, t0: ti.f32, t1: ti.f32):
        rec = hit_sphere(o, d, Sphere(center=c, radius=r), t0, t1)
        out_hit[None] = rec.hit
        out_t[None] = rec.t
        out_normal[None] = rec.normal
        out_front[None] = rec.front_face
        out_uv[None] = ti.math.vec2(rec.u, rec.v)

    test_kernel(
        ti.math.vec3(*origin), ti.math.vec3(*direction), ti.math.vec3(*center), radius, t_min, t_max
    )
    return {
        "hit": out_hit[None],
        "t": out_t[None],
        "normal": tuple(out_normal[None]),
        "front_face": out_front[None],
        "uv": tuple(out_uv[None]),
    }


class TestRaySphereIntersection:
    def test_hit_from_outside(self):
        rec = _hit((0, 0, 0), (0, 0, -1), (0, 0, -5), 1.0)
        assert rec["hit"] == 1
        assert rec["t"] == pytest.approx(4.0, abs=1e-5)
        assert rec["front_face"] == 1
        assert rec["normal"] == pytest.approx((0.0, 0.0, 1.0), abs=1e-5)

    def test_miss(self):
        rec = _hit((0, 0, 0), (0, 1, 0), (0, 0, -5), 1.0)
        assert rec["hit"] == 0

    def test_sphere_behind_ray(self):
        rec = _hit((0, 0, 0), (0, 0, 1), (0, 0, -5), 1.0)
        assert rec["hit"] == 0

    def test_hit_from_inside_is_back_face(self):
        rec = _hit((0, 0, 0), (1, 0, 0), (0, 0, 0), 2.0)
        assert rec["hit"] == 1
        assert rec["t"] == pytest.approx(2.0, abs=1e-5)
        assert rec["front_face"] == 0
        # Normal faces the incoming ray
        assert rec["normal"] == pytest.approx((-1.0, 0.0, 0.0), abs=1e-5)

    def test_t_max_excludes_far_hits(self):
        rec = _hit((0, 0, 0), (0, 0, -1), (0, 0, -5), 1.0, t_max=3.0)
        assert rec["hit"] == 0

    def test_unnormalized_direction(self):
        rec = _hit((0, 0, 0), (0, 0, -2), (0, 0, -5), 1.0)
        assert rec["hit"] == 1
        assert rec["t"] == pytest.approx(2.0, abs=1e-5)

    def test_negative_radius_flips_outward_normal(self):
        """A negative radius makes a hollow shell: hitting it from outside is a back face."""
        rec = _hit((0, 0, 0), (0, 0, -1), (0, 0, -5), -1.0)
        assert rec["hit"] == 1
        assert rec["front_face"] == 0
        assert rec["normal"] == pytest.approx((0.0, 0.0, 1.0), abs=1e-5)


class TestSphereUV:
    @pytest.mark.parametrize(
        "point, expected",
        [
            ((1.0, 0.0, 0.0), (0.5, 0.5)),
            ((0.0, 1.0, 0.0), (None, 1.0)),
            ((0.0, -1.0, 0.0), (None, 0.0)),
            ((-1.0, 0.0, 0.0), (None, 0.5)),
            ((0.0, 0.0, 1.0), (0.25, 0.5)),
            ((0.0, 0.0, -1.0), (0.75, 0.5)),
        ],
    )
    def test_uv_at_known_points(self, point, expected):
        from pathtracer.geometry.sphere import sphere_uv

        out = ti.Vector.field(2, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel(p: ti.math.vec3):
            u, v = sphere_uv(p)
            out[None] = ti.math.vec2(u, v)

        test_kernel(ti.math.vec3(*point))
        u, v = out[None]
        if expected[0] is not None:
            assert u == pytest.approx(expected[0], abs=1e-5)
        assert v == pytest.approx(expected[1], abs=1e-5)
        assert 0.0 <= u <= 1.0

    def test_hit_reports_uv(self):
        rec = _hit((5, 0, 0), (-1, 0, 0), (0, 0, 0), 1.0)
        assert rec["uv"] == pytest.approx((0.5, 0.5), abs=1e-5)


class TestSphereBounds:
    def test_bounds_cover_every_knot(self):
        from pathtracer.geometry.sphere import sphere_bounds

        box = sphere_bounds([(0, 0, 0), (3, 0, 0)], [-0.5, -0.5])
        np.testing.assert_allclose(box.minimum, [-0.5, -0.5, -0.5])
        np.testing.assert_allclose(box.maximum, [3.5, 0.5, 0.5])
        assert box.surface_area() == pytest.approx(2.0 * (4.0 * 1.0 + 1.0 * 1.0 + 1.0 * 4.0))

    def test_bounds_contain_surface_points(self):
        from pathtracer.geometry.sphere import sphere_bounds

        box = sphere_bounds([(1, 2, 3)], [2.0])
        for angle in np.linspace(0.0, 2.0 * math.pi, 16):
            assert box.contains((1 + 2 * math.cos(angle), 2 + 2 * math.sin(angle), 3))

    def test_growing_radius_uses_largest_knot(self):
        from pathtracer.geometry.sphere import sphere_bounds

        box = sphere_bounds([(0, 0, 0), (0, 0, 0), (1, 0, 0)], [1.0, 3.0, 0.5])
        np.testing.assert_allclose(box.minimum, [-3.0, -3.0, -3.0])
        np.testing.assert_allclose(box.maximum, [3.0, 3.0, 3.0])
