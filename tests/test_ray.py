"""Unit tests for ray and vector helpers.

Tests cover:
- Ray construction and evaluation
- Reflection about a normal
- Refraction, including total internal reflection
- Schlick reflectance
- near_zero
"""

import math

import pytest
import taichi as ti


class TestRay:
    def test_ray_at(self):
        from pathtracer.core.ray import make_ray, ray_at

        result = ti.Vector.field(3, dtype=ti.f32, shape=())
        result_time = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            ray = make_ray(ti.math.vec3(1.0, 2.0, 3.0), ti.math.vec3(0.0, 0.0, -2.0), 0.25)
            result[None] = ray_at(ray, 1.5)
            result_time[None] = ray.time

        test_kernel()
        p = result[None]
        assert p[0] == pytest.approx(1.0)
        assert p[1] == pytest.approx(2.0)
        assert p[2] == pytest.approx(0.0)
        assert result_time[None] == pytest.approx(0.25)


class TestReflect:
    def test_mirror_law(self):
        """reflect(d, n) . n == -(d . n)."""
        from pathtracer.core.ray import reflect

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            d = ti.math.normalize(ti.math.vec3(0.3, -0.8, 0.5))
            n = ti.math.vec3(0.0, 1.0, 0.0)
            result[None] = reflect(d, n)

        test_kernel()
        r = result[None]
        d = [0.3, -0.8, 0.5]
        norm = math.sqrt(sum(x * x for x in d))
        d = [x / norm for x in d]
        assert r[1] == pytest.approx(-d[1], abs=1e-6)
        assert r[0] == pytest.approx(d[0], abs=1e-6)
        assert r[2] == pytest.approx(d[2], abs=1e-6)


class TestRefract:
    def test_refract_eta_one_is_identity(self):
        from pathtracer.core.ray import refract

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            d = ti.math.normalize(ti.math.vec3(0.6, -0.8, 0.0))
            result[None] = refract(d, ti.math.vec3(0.0, 1.0, 0.0), 1.0)

        test_kernel()
        r = result[None]
        assert r[0] == pytest.approx(0.6, abs=1e-5)
        assert r[1] == pytest.approx(-0.8, abs=1e-5)

    def test_snell_law(self):
        """sin(theta_t) == eta * sin(theta_i)."""
        from pathtracer.core.ray import refract

        result = ti.Vector.field(3, dtype=ti.f32, shape=())
        eta = 1.0 / 1.5

        @ti.kernel
        def test_kernel(eta: ti.f32):
            d = ti.math.normalize(ti.math.vec3(0.5, -1.0, 0.0))
            result[None] = refract(d, ti.math.vec3(0.0, 1.0, 0.0), eta)

        test_kernel(eta)
        r = result[None]
        sin_i = 0.5 / math.sqrt(1.25)
        sin_t = r[0] / math.sqrt(r[0] ** 2 + r[1] ** 2 + r[2] ** 2)
        assert sin_t == pytest.approx(eta * sin_i, abs=1e-5)
        assert r[1] < 0.0

    def test_total_internal_reflection_returns_zero(self):
        from pathtracer.core.ray import refract

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            # Grazing ray leaving glass
            d = ti.math.normalize(ti.math.vec3(1.0, -0.1, 0.0))
            result[None] = refract(d, ti.math.vec3(0.0, 1.0, 0.0), 1.5)

        test_kernel()
        r = result[None]
        assert (r[0], r[1], r[2]) == (0.0, 0.0, 0.0)


class TestSchlick:
    @pytest.mark.parametrize("ior", [1.33, 1.5, 2.4])
    def test_normal_incidence_matches_r0(self, ior):
        from pathtracer.core.ray import schlick_fresnel

        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel(ior: ti.f32):
            result[None] = schlick_fresnel(1.0, ior)

        test_kernel(ior)
        r0 = ((1.0 - ior) / (1.0 + ior)) ** 2
        assert result[None] == pytest.approx(r0, abs=1e-6)

    def test_grazing_incidence_is_total(self):
        from pathtracer.core.ray import schlick_fresnel

        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = schlick_fresnel(0.0, 1.5)

        test_kernel()
        assert result[None] == pytest.approx(1.0, abs=1e-6)


def test_near_zero():
    from pathtracer.core.ray import near_zero

    result = ti.field(dtype=ti.i32, shape=2)

    @ti.kernel
    def test_kernel():
        result[0] = near_zero(ti.math.vec3(1e-9, -1e-9, 0.0))
        result[1] = near_zero(ti.math.vec3(1e-9, 1e-3, 0.0))

    test_kernel()
    assert result[0] == 1
    assert result[1] == 0
