"""Render configuration consumed by the scheduler.

The command line layer (see ``examples/render_demo.py``) is responsible for
turning argv and environment variables into a ``RenderConfig``. The core only
ever sees this plain object, validated on construction.

Example:
    >>> from pathtracer.config import RenderConfig
    >>> config = RenderConfig(width=320, height=180, samples_per_pixel=16)
    >>> config.aspect_ratio
    1.7777777777777777
"""

import math
import os
from dataclasses import dataclass, field, replace
from typing import Literal

from pathtracer.errors import ConfigurationError

# Render target buffers are preallocated to this size
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

# Upper bound on work units per frame (one RNG stream and traversal stack each)
MAX_WORK_UNITS = 16384

WorkUnitMode = Literal["tiles", "rows"]


def default_thread_count() -> int:
    """Return the host's available parallelism."""
    try:
        return max(1, len(os.sched_getaffinity(0)))
    except AttributeError:
        return max(1, os.cpu_count() or 1)


@dataclass(frozen=True)
class RenderConfig:
    """Configuration for a render run.

    Attributes:
        output: Output target. A file path for a single frame or a directory
            for animations. The core does not touch it.
        thread_count: Size of the worker pool. Defaults to host parallelism.
        scene: Demo scene selector.
        samples_per_pixel: Camera rays traced per pixel.
        width: Image width in pixels.
        height: Image height in pixels.
        max_depth: Maximum number of surface interactions per path.
        frame_count: Number of frames. 1 renders a still image.
        frame_rate: Frames per second, used to place frames in scene time.
        shutter_angle: Fraction of the frame interval the shutter is open,
            in degrees (0 disables motion blur, 360 is a fully open shutter).
        seed: Base random seed. Renders are reproducible for a fixed seed.
        tile_size: Edge length of square tiles in pixels.
        work_unit: ``"tiles"`` for square tiles, ``"rows"`` for row bands
            ``tile_size`` rows tall.
        rr_min_depth: Bounces before Russian roulette may end a path.
            0 disables Russian roulette so only the depth cutoff applies.
        gamma: Gamma used when finalizing framebuffers.
    """

    output: str = "render.png"
    thread_count: int = field(default_factory=default_thread_count)
    scene: str = "spheres"
    samples_per_pixel: int = 16
    width: int = 400
    height: int = 225
    max_depth: int = 10
    frame_count: int = 1
    frame_rate: float = 24.0
    shutter_angle: float = 0.0
    seed: int = 0
    tile_size: int = 16
    work_unit: WorkUnitMode = "tiles"
    rr_min_depth: int = 0
    gamma: float = 2.2

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check every value and raise on the first invalid one.

        Raises:
            ConfigurationError: If any value is out of range.
        """
        if self.samples_per_pixel <= 0:
            raise ConfigurationError(
                f"samples_per_pixel must be positive, got {self.samples_per_pixel}"
            )
        if self.thread_count < 1:
            raise ConfigurationError(f"thread_count must be at least 1, got {self.thread_count}")
        if self.width <= 0 or self.height <= 0:
            raise ConfigurationError(
                f"Resolution must be positive, got {self.width}x{self.height}"
            )
        if self.width > MAX_IMAGE_WIDTH or self.height > MAX_IMAGE_HEIGHT:
            raise ConfigurationError(
                f"Image dimensions ({self.width}x{self.height}) exceed maximum supported "
                f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
            )
        if self.max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.frame_count < 1:
            raise ConfigurationError(f"frame_count must be at least 1, got {self.frame_count}")
        if not self.frame_rate > 0.0:
            raise ConfigurationError(f"frame_rate must be positive, got {self.frame_rate}")
        if not 0.0 <= self.shutter_angle <= 360.0:
            raise ConfigurationError(
                f"shutter_angle must be in [0, 360] degrees, got {self.shutter_angle}"
            )
        if self.tile_size < 1:
            raise ConfigurationError(f"tile_size must be at least 1, got {self.tile_size}")
        if self.work_unit not in ("tiles", "rows"):
            raise ConfigurationError(
                f"work_unit must be 'tiles' or 'rows', got {self.work_unit!r}"
            )
        if self.rr_min_depth < 0:
            raise ConfigurationError(f"rr_min_depth must be >= 0, got {self.rr_min_depth}")
        if not self.gamma > 0.0:
            raise ConfigurationError(f"gamma must be positive, got {self.gamma}")
        if self.work_unit_count > MAX_WORK_UNITS:
            raise ConfigurationError(
                f"{self.work_unit_count} work units exceed the maximum of {MAX_WORK_UNITS}; "
                "increase tile_size"
            )

    @property
    def aspect_ratio(self) -> float:
        """Width divided by height."""
        return self.width / self.height

    @property
    def work_unit_count(self) -> int:
        """Number of work units a frame is partitioned into."""
        rows = math.ceil(self.height / self.tile_size)
        if self.work_unit == "rows":
            return rows
        return rows * math.ceil(self.width / self.tile_size)

    def frame_interval(self, frame: int) -> tuple[float, float]:
        """Shutter open and close times for a frame.

        Frame ``k`` opens at ``k / frame_rate`` and stays open for
        ``(shutter_angle / 360) / frame_rate`` seconds.
        """
        start = frame / self.frame_rate
        return start, start + (self.shutter_angle / 360.0) / self.frame_rate

    def with_overrides(self, **changes) -> "RenderConfig":
        """Return a validated copy with some values replaced."""
        return replace(self, **changes)
