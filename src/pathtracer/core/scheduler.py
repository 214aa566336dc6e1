"""Tile scheduler driving the render kernels over the CPU worker pool.

A frame is split into work units, square tiles or bands of rows, that
together cover the image without overlapping. The render kernel runs one
loop iteration per worker lane (the configured thread count, capped at the
pool size), and each lane pulls the next unit from a shared counter until
none remain. Each unit writes only its own pixels and uses its own RNG stream
and BVH traversal stack, so no locking is needed; scene fields are only read.

Every pixel reseeds its unit's stream from (frame seed, pixel index) before
sampling, so the accumulated image is identical for any thread count and
any partition of the image.

A render walks through these states per frame:

    IDLE -> DISPATCHING -> RUNNING -> JOINING -> DONE

DISPATCHING builds the scene for the frame's shutter interval, sets up the
camera and partitions the image; everything that can fail does so here,
before any worker starts. RUNNING launches the kernel, JOINING reads the
accumulation buffers back into a Framebuffer, and DONE finalizes it.

Example:
    >>> from pathtracer.runtime import init_runtime
    >>> init_runtime(thread_count=8)
    >>> from pathtracer.config import RenderConfig
    >>> from pathtracer.core.scheduler import RenderScheduler
    >>> from pathtracer.scene.demo_scenes import build_demo_scene
    >>> config = RenderConfig(width=320, height=180, samples_per_pixel=32)
    >>> scene, camera = build_demo_scene("spheres", config.aspect_ratio)
    >>> framebuffer = RenderScheduler(config).render(scene, camera)
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum

import numpy as np
import taichi as ti
import taichi.math as tm

from pathtracer.camera.thin_lens import ThinLensCamera, get_ray, setup_camera
from pathtracer.config import (
    MAX_IMAGE_HEIGHT,
    MAX_IMAGE_WIDTH,
    MAX_WORK_UNITS,
    RenderConfig,
    WorkUnitMode,
)
from pathtracer.core.framebuffer import Framebuffer
from pathtracer.core.integrator import (
    get_sanitized_count,
    ray_color,
    reset_sanitized_count,
    sanitize_sample,
)
from pathtracer.core.sampler import pixel_seed, random_float, seed_stream
from pathtracer.errors import ConfigurationError
from pathtracer.runtime import active_thread_count, is_initialized
from pathtracer.scene.manager import SceneManager

logger = logging.getLogger(__name__)

vec3 = tm.vec3


class SchedulerState(Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    RUNNING = "running"
    JOINING = "joining"
    DONE = "done"


@dataclass(frozen=True)
class WorkUnit:
    """A rectangle of pixels, half-open: [x0, x1) x [y0, y1), row 0 at the top."""

    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


def partition_image(
    width: int,
    height: int,
    tile_size: int = 16,
    mode: WorkUnitMode = "tiles",
) -> list[WorkUnit]:
    """Split an image into disjoint work units covering every pixel.

    Args:
        width: Image width in pixels.
        height: Image height in pixels.
        tile_size: Tile edge, or band height in ``"rows"`` mode. Units on the
            right and bottom edges are clipped to the image.
        mode: ``"tiles"`` or ``"rows"``.

    Returns:
        Work units in row-major order.

    Raises:
        ConfigurationError: On a non-positive size or an unknown mode.
    """
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Resolution must be positive, got {width}x{height}")
    if tile_size < 1:
        raise ConfigurationError(f"tile_size must be at least 1, got {tile_size}")
    if mode not in ("tiles", "rows"):
        raise ConfigurationError(f"work_unit must be 'tiles' or 'rows', got {mode!r}")

    step_x = width if mode == "rows" else tile_size
    units = []
    for y0 in range(0, height, tile_size):
        for x0 in range(0, width, step_x):
            units.append(
                WorkUnit(x0, y0, min(x0 + step_x, width), min(y0 + tile_size, height))
            )
    return units


# =============================================================================
# Render Target
# =============================================================================

# Accumulation buffers, indexed [x, j] with j = 0 at the bottom row
_color_sum = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_sample_count = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# (x0, y0, x1, y1) per work unit
_unit_bounds = ti.Vector.field(4, dtype=ti.i32, shape=MAX_WORK_UNITS)
# Next work unit to hand out
_next_unit = ti.field(dtype=ti.i32, shape=())


def _upload_units(units: list[WorkUnit]) -> None:
    bounds = np.zeros((MAX_WORK_UNITS, 4), dtype=np.int32)
    bounds[: len(units)] = [(u.x0, u.y0, u.x1, u.y1) for u in units]
    _unit_bounds.from_numpy(bounds)


def _clear_render_target() -> None:
    _color_sum.fill(0.0)
    _sample_count.fill(0)
    _next_unit[None] = 0


def _read_render_target(width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Active region as (height, width, 3) sums and (height, width) counts, top row first."""
    sums = _color_sum.to_numpy()[:width, :height, :]
    counts = _sample_count.to_numpy()[:width, :height]
    sums = np.flipud(np.transpose(sums, (1, 0, 2)))
    counts = np.flipud(counts.T)
    return sums, counts


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.func
def _render_unit(
    unit: ti.i32,
    width: ti.i32,
    height: ti.i32,
    samples_per_pixel: ti.i32,
    max_depth: ti.i32,
    rr_min_depth: ti.i32,
    frame_seed: ti.u32,
):
    """Trace every sample of every pixel in one work unit, on its own stream."""
    b = _unit_bounds[unit]
    for y in range(b[1], b[3]):
        for x in range(b[0], b[2]):
            seed_stream(unit, pixel_seed(frame_seed, ti.cast(y * width + x, ti.u32)))
            j = height - 1 - y
            total = vec3(0.0, 0.0, 0.0)
            for _ in range(samples_per_pixel):
                s = (ti.cast(x, ti.f32) + random_float(unit)) / ti.cast(width, ti.f32)
                t = (ti.cast(j, ti.f32) + random_float(unit)) / ti.cast(height, ti.f32)
                ray = get_ray(s, t, unit)
                total += sanitize_sample(
                    ray_color(ray.origin, ray.direction, ray.time, max_depth, rr_min_depth, unit)
                )
            _color_sum[x, j] += total
            _sample_count[x, j] += samples_per_pixel


@ti.kernel
def _render_units(
    lane_count: ti.i32,
    unit_count: ti.i32,
    width: ti.i32,
    height: ti.i32,
    samples_per_pixel: ti.i32,
    max_depth: ti.i32,
    rr_min_depth: ti.i32,
    frame_seed: ti.i32,
):
    # One iteration per worker lane; each lane pulls the next unit until none remain
    ti.loop_config(block_dim=1)
    for _lane in range(lane_count):
        unit = ti.atomic_add(_next_unit[None], 1)
        while unit < unit_count:
            _render_unit(
                unit, width, height, samples_per_pixel, max_depth, rr_min_depth,
                ti.cast(frame_seed, ti.u32),
            )
            unit = ti.atomic_add(_next_unit[None], 1)


def seed_for_frame(seed: int, frame: int) -> int:
    """Seed for one frame of a render, 31 bits."""
    return (seed ^ (frame * 0x9E3779B1)) & 0x7FFFFFFF


# =============================================================================
# Scheduler
# =============================================================================


class RenderScheduler:
    """Runs renders described by a RenderConfig.

    Attributes:
        config: The render configuration.
        state: Current state of the frame being rendered.
        accelerate: Build a BVH for every frame. Without it every ray scans
            all primitives.
        units: Work units of the last dispatched frame.
        sanitized_per_frame: Sanitized sample count of each rendered frame.
        worker_count: Worker lanes each frame runs on: the configured thread
            count, capped at the pool size.
    """

    def __init__(self, config: RenderConfig, accelerate: bool = True) -> None:
        if not is_initialized():
            raise RuntimeError("Taichi runtime not initialised. Call init_runtime() first.")
        self.config = config
        self.accelerate = accelerate
        self.state = SchedulerState.IDLE
        self.units: list[WorkUnit] = []
        self.sanitized_per_frame: list[int] = []

        pool = active_thread_count()
        self.worker_count = min(config.thread_count, pool)
        if config.thread_count > pool:
            logger.warning(
                "Config asks for %d threads but the worker pool was sized to %d at init; using %d",
                config.thread_count,
                pool,
                self.worker_count,
            )

    def _transition(self, state: SchedulerState) -> None:
        logger.debug("Scheduler %s -> %s", self.state.value, state.value)
        self.state = state

    def frame_interval(self, camera: ThinLensCamera, frame: int) -> tuple[float, float]:
        """Shutter interval for a frame.

        A still image with a shutter angle of 0 keeps the camera's own
        shutter interval; otherwise the frame schedule decides.
        """
        if (
            self.config.frame_count == 1
            and self.config.shutter_angle == 0.0
            and camera.shutter_close > camera.shutter_open
        ):
            return camera.shutter_open, camera.shutter_close
        return self.config.frame_interval(frame)

    def render(
        self, scene: SceneManager, camera: ThinLensCamera
    ) -> Framebuffer | list[Framebuffer]:
        """Render every frame of the configured run.

        Args:
            scene: Scene to render. It is rebuilt for each frame's interval.
            camera: Camera. Its aspect ratio is replaced by the image's, and
                its shutter by each frame's interval.

        Returns:
            A finalized Framebuffer for a still image, or one per frame in
            temporal order for an animation.

        Raises:
            InvalidScene: If the scene or camera is invalid.
            TextureLoadError: If a texture cannot be resolved.
        """
        config = self.config
        frames = [self._render_frame(scene, camera, k) for k in range(config.frame_count)]
        if config.frame_count == 1:
            return frames[0]
        return frames

    def _render_frame(
        self, scene: SceneManager, camera: ThinLensCamera, frame: int
    ) -> Framebuffer:
        config = self.config
        started = time.perf_counter()
        self.state = SchedulerState.IDLE

        self._transition(SchedulerState.DISPATCHING)
        t0, t1 = self.frame_interval(camera, frame)
        scene.build((t0, t1), accelerate=self.accelerate)
        frame_camera = camera.with_aspect_ratio(config.aspect_ratio).with_shutter(t0, t1)
        setup_camera(frame_camera)
        self.units = partition_image(config.width, config.height, config.tile_size, config.work_unit)
        _upload_units(self.units)
        _clear_render_target()
        reset_sanitized_count()

        self._transition(SchedulerState.RUNNING)
        _render_units(
            self.worker_count,
            len(self.units),
            config.width,
            config.height,
            config.samples_per_pixel,
            config.max_depth,
            config.rr_min_depth,
            seed_for_frame(config.seed, frame),
        )

        self._transition(SchedulerState.JOINING)
        sums, counts = _read_render_target(config.width, config.height)
        framebuffer = Framebuffer(config.width, config.height, frame_index=frame, time_interval=(t0, t1))
        framebuffer.add_samples(sums, counts)
        sanitized = get_sanitized_count()
        self.sanitized_per_frame.append(sanitized)
        if sanitized:
            logger.warning("Frame %d: sanitized %d non-finite or negative samples", frame, sanitized)

        self._transition(SchedulerState.DONE)
        framebuffer.finalize(config.gamma)
        logger.info(
            "Frame %d/%d rendered in %.2fs (%dx%d, %d spp, %d work units)",
            frame + 1,
            config.frame_count,
            time.perf_counter() - started,
            config.width,
            config.height,
            config.samples_per_pixel,
            len(self.units),
        )
        return framebuffer


def render(
    scene: SceneManager,
    camera: ThinLensCamera,
    width: int,
    height: int,
    samples_per_pixel: int,
    thread_count: int | None = None,
    **options,
) -> Framebuffer | list[Framebuffer]:
    """Render with a RenderConfig built from arguments.

    Args:
        scene: Scene to render.
        camera: Camera to render from.
        width: Image width in pixels.
        height: Image height in pixels.
        samples_per_pixel: Camera rays per pixel.
        thread_count: Worker threads, at most the pool's size; defaults to
            the pool's size.
        **options: Any other RenderConfig field.

    Returns:
        See RenderScheduler.render().

    Raises:
        ConfigurationError: If the arguments do not form a valid config.
    """
    if thread_count is None:
        thread_count = active_thread_count()
    config = RenderConfig(
        width=width,
        height=height,
        samples_per_pixel=samples_per_pixel,
        thread_count=thread_count,
        **options,
    )
    return RenderScheduler(config).render(scene, camera)

