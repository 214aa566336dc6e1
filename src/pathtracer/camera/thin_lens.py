"""Thin-lens camera with depth of field and a time shutter.

The camera builds an orthonormal basis (u, v, w) from the view parameters:

- w: points from lookat toward lookfrom (opposite the view direction)
- u: points right in the image plane
- v: points up in the image plane

The viewport sits at ``focus_dist`` in front of the camera so everything on
that plane is in focus. Ray origins are jittered over a lens disk whose radius
is ``focus_dist * tan(defocus_angle / 2)``; a defocus angle of 0 reduces to a
pinhole camera. Each ray carries a time drawn uniformly from the shutter
interval, which is what produces motion blur, and is cast from the camera
pose at that time.

Example:
    >>> from pathtracer.camera.thin_lens import ThinLensCamera, setup_camera
    >>> camera = ThinLensCamera(
    ...     lookfrom=(13.0, 2.0, 3.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     vfov=20.0,
    ...     aspect_ratio=16.0 / 9.0,
    ...     defocus_angle=0.6,
    ...     focus_dist=10.0,
    ... )
    >>> setup_camera(camera)
    >>> # Within a Taichi kernel:
    >>> # ray = get_ray(s, t, stream)
"""

import math
from dataclasses import dataclass, replace

import numpy as np
import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import Ray, make_ray, vec3
from pathtracer.core.sampler import random_float, random_in_unit_disk
from pathtracer.errors import InvalidScene
from pathtracer.scene.motion import sample_knots
from pathtracer.scene.timeline import Track, sample_tracks

# Basis vectors shorter than this are degenerate
_DEGENERATE_EPSILON = 1e-8

# Pose keyframes one shutter interval can hold
MAX_CAMERA_KNOTS = 256


@dataclass
class ThinLensCamera:
    """Configuration for a thin-lens perspective camera.

    Attributes:
        lookfrom: Camera position in world space.
        lookat: Point the camera looks at.
        vup: Up direction used to orient the camera.
        vfov: Vertical field of view in degrees, in (0, 180).
        aspect_ratio: Image width divided by height.
        defocus_angle: Cone angle in degrees subtended by the lens at the
            focus plane. 0 disables depth of field.
        focus_dist: Distance from lookfrom to the plane of perfect focus.
        shutter_open: Time the shutter opens.
        shutter_close: Time the shutter closes.
        lookfrom_track: Optional animation of lookfrom over time.
        lookat_track: Optional animation of lookat over time.
    """

    lookfrom: tuple[float, float, float] = (0.0, 0.0, 0.0)
    lookat: tuple[float, float, float] = (0.0, 0.0, -1.0)
    vup: tuple[float, float, float] = (0.0, 1.0, 0.0)
    vfov: float = 90.0
    aspect_ratio: float = 16.0 / 9.0
    defocus_angle: float = 0.0
    focus_dist: float = 10.0
    shutter_open: float = 0.0
    shutter_close: float = 0.0
    lookfrom_track: Track | None = None
    lookat_track: Track | None = None

    def with_shutter(self, shutter_open: float, shutter_close: float) -> "ThinLensCamera":
        """Copy of this camera with a different shutter interval."""
        return replace(self, shutter_open=shutter_open, shutter_close=shutter_close)

    def with_aspect_ratio(self, aspect_ratio: float) -> "ThinLensCamera":
        return replace(self, aspect_ratio=aspect_ratio)

    @property
    def lens_radius(self) -> float:
        return self.focus_dist * math.tan(math.radians(self.defocus_angle) / 2.0)


# =============================================================================
# Taichi Fields for Camera State
# =============================================================================

_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_u = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_v = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_w = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_vup = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_width = ti.field(dtype=ti.f32, shape=())
_viewport_height = ti.field(dtype=ti.f32, shape=())
_focus_dist = ti.field(dtype=ti.f32, shape=())
_lens_radius = ti.field(dtype=ti.f32, shape=())
_shutter_open = ti.field(dtype=ti.f32, shape=())
_shutter_close = ti.field(dtype=ti.f32, shape=())

# Pose samples over the shutter interval
_knot_time = ti.field(dtype=ti.f32, shape=MAX_CAMERA_KNOTS)
_knot_lookfrom = ti.Vector.field(3, dtype=ti.f32, shape=MAX_CAMERA_KNOTS)
_knot_lookat = ti.Vector.field(3, dtype=ti.f32, shape=MAX_CAMERA_KNOTS)
_knot_lookfrom_held = ti.field(dtype=ti.i32, shape=MAX_CAMERA_KNOTS)
_knot_lookat_held = ti.field(dtype=ti.i32, shape=MAX_CAMERA_KNOTS)
_knot_count = ti.field(dtype=ti.i32, shape=())


def validate_camera(camera: ThinLensCamera) -> None:
    """Reject cameras that cannot produce rays.

    Raises:
        InvalidScene: On a degenerate basis (lookfrom == lookat, or vup
            parallel to the view direction), a non-positive focus distance,
            a field of view outside (0, 180), a non-positive aspect ratio, a
            negative defocus angle or a shutter that closes before it opens.
    """
    if not 0.0 < camera.vfov < 180.0:
        raise InvalidScene(f"vfov must be in (0, 180) degrees, got {camera.vfov}")
    if not camera.focus_dist > 0.0:
        raise InvalidScene(f"focus_dist must be positive, got {camera.focus_dist}")
    if not camera.aspect_ratio > 0.0:
        raise InvalidScene(f"aspect_ratio must be positive, got {camera.aspect_ratio}")
    if not 0.0 <= camera.defocus_angle < 180.0:
        raise InvalidScene(f"defocus_angle must be in [0, 180), got {camera.defocus_angle}")
    if camera.shutter_close < camera.shutter_open:
        raise InvalidScene(
            f"Shutter closes ({camera.shutter_close}) before it opens ({camera.shutter_open})"
        )


def camera_basis(lookfrom, lookat, vup) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Orthonormal (u, v, w) for a view.

    Raises:
        InvalidScene: If the basis is degenerate.
    """
    lookfrom = np.asarray(lookfrom, dtype=np.float64)
    lookat = np.asarray(lookat, dtype=np.float64)
    vup = np.asarray(vup, dtype=np.float64)

    w = lookfrom - lookat
    w_len = np.linalg.norm(w)
    if w_len < _DEGENERATE_EPSILON:
        raise InvalidScene("Degenerate camera basis: lookfrom and lookat coincide")
    w = w / w_len

    u = np.cross(vup, w)
    u_len = np.linalg.norm(u)
    if u_len < _DEGENERATE_EPSILON:
        raise InvalidScene("Degenerate camera basis: vup is parallel to the view direction")
    u = u / u_len
    v = np.cross(w, u)
    return u, v, w


def setup_camera(camera: ThinLensCamera) -> None:
    """Write camera state into the Taichi fields.

    The lookfrom/lookat tracks are sampled at every keyframe inside the
    shutter interval and each ray evaluates its own pose at its time.

    Raises:
        InvalidScene: If the camera is invalid (see validate_camera), its
            pose is degenerate at any sampled time, or the shutter holds too
            many keyframes.
    """
    validate_camera(camera)
    lookfrom_track = camera.lookfrom_track or Track(camera.lookfrom)
    lookat_track = camera.lookat_track or Track(camera.lookat)
    knots = sample_tracks([lookfrom_track, lookat_track], camera.shutter_open, camera.shutter_close)
    count = len(knots.times)
    if count > MAX_CAMERA_KNOTS:
        raise InvalidScene(f"Camera has {count} keyframes in one shutter interval, limit {MAX_CAMERA_KNOTS}")
    for lookfrom, lookat in zip(*knots.values):
        camera_basis(lookfrom, lookat, camera.vup)

    # Shutter-open pose; also the fallback basis if a pose degenerates between knots
    u, v, w = camera_basis(knots.values[0][0], knots.values[1][0], camera.vup)
    origin = np.asarray(knots.values[0][0], dtype=np.float64)

    h = math.tan(math.radians(camera.vfov) / 2.0)
    viewport_height = 2.0 * h * camera.focus_dist
    viewport_width = camera.aspect_ratio * viewport_height

    _camera_origin[None] = origin.tolist()
    _camera_u[None] = u.tolist()
    _camera_v[None] = v.tolist()
    _camera_w[None] = w.tolist()
    _camera_vup[None] = list(camera.vup)
    _viewport_width[None] = viewport_width
    _viewport_height[None] = viewport_height
    _focus_dist[None] = camera.focus_dist
    _lens_radius[None] = camera.lens_radius
    _shutter_open[None] = camera.shutter_open
    _shutter_close[None] = camera.shutter_close

    times = np.zeros(MAX_CAMERA_KNOTS, dtype=np.float32)
    lookfroms = np.zeros((MAX_CAMERA_KNOTS, 3), dtype=np.float32)
    lookats = np.zeros((MAX_CAMERA_KNOTS, 3), dtype=np.float32)
    lookfrom_held = np.zeros(MAX_CAMERA_KNOTS, dtype=np.int32)
    lookat_held = np.zeros(MAX_CAMERA_KNOTS, dtype=np.int32)
    times[:count] = knots.times
    lookfroms[:count] = knots.values[0]
    lookats[:count] = knots.values[1]
    lookfrom_held[:count] = knots.held[0]
    lookat_held[:count] = knots.held[1]
    _knot_time.from_numpy(times)
    _knot_lookfrom.from_numpy(lookfroms)
    _knot_lookat.from_numpy(lookats)
    _knot_lookfrom_held.from_numpy(lookfrom_held)
    _knot_lookat_held.from_numpy(lookat_held)
    _knot_count[None] = count


def get_camera_origin() -> tuple[float, float, float]:
    """Camera position at shutter open."""
    o = _camera_origin[None]
    return (float(o[0]), float(o[1]), float(o[2]))


# =============================================================================
# Ray Generation
# =============================================================================


@ti.func
def get_ray(s: ti.f32, t: ti.f32, stream: ti.i32) -> Ray:
    """Primary ray through normalized viewport coordinates.

    Args:
        s: Horizontal coordinate in [0, 1], left to right.
        t: Vertical coordinate in [0, 1], bottom to top.
        stream: RNG stream for the lens and time samples.

    Returns:
        A ray from a point on the lens through the focus plane, stamped
        with a time inside the shutter interval and cast from the camera
        pose at that time.
    """
    rd = vec3(0.0, 0.0, 0.0)
    if _lens_radius[None] > 0.0:
        rd = _lens_radius[None] * random_in_unit_disk(stream)

    time = _shutter_open[None]
    shutter = _shutter_close[None] - _shutter_open[None]
    if shutter > 0.0:
        time = _shutter_open[None] + shutter * random_float(stream)

    count = _knot_count[None]
    lookfrom = sample_knots(_knot_time, _knot_lookfrom, _knot_lookfrom_held, 0, count, time)
    lookat = sample_knots(_knot_time, _knot_lookat, _knot_lookat_held, 0, count, time)

    u = _camera_u[None]
    v = _camera_v[None]
    w = _camera_w[None]
    view = lookfrom - lookat
    view_len = tm.length(view)
    if view_len > _DEGENERATE_EPSILON:
        w_t = view / view_len
        side = tm.cross(_camera_vup[None], w_t)
        side_len = tm.length(side)
        if side_len > _DEGENERATE_EPSILON:
            w = w_t
            u = side / side_len
            v = tm.cross(w, u)

    horizontal = _viewport_width[None] * u
    vertical = _viewport_height[None] * v
    lower_left = lookfrom - _focus_dist[None] * w - horizontal / 2.0 - vertical / 2.0
    origin = lookfrom + u * rd.x + v * rd.y
    target = lower_left + s * horizontal + t * vertical
    return make_ray(origin, tm.normalize(target - origin), time)
