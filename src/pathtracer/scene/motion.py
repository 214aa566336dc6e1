"""Per-object motion over a frame's shutter interval.

Every visible object gets a motion: its translation and scale tracks sampled
at each keyframe inside the interval (see ``sample_tracks``). The knots of all
motions are concatenated into flat Taichi fields and evaluated at the ray's
time inside intersection kernels, so interior keyframes and NERP holds are
honored within a single frame.

A point on an object at time t is ``pivot + scale(t) * (p - pivot) +
offset(t)``. Spheres keep their radius in every scale component.

Example:
    >>> from pathtracer.scene.motion import MotionTable, upload_motions
    >>> table = MotionTable()
    >>> motion = table.add(sample_tracks([translation, scale], 0.0, 1.0), pivot=(0, 0, 0))
    >>> upload_motions(table)
    >>> # Within a Taichi kernel:
    >>> # offset, scale = evaluate_motion(motion, ray.time)
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from pathtracer.scene.timeline import MotionKnots

vec3 = tm.vec3

MAX_MOTIONS = 1 << 13
MAX_KNOTS = 1 << 16

motion_start = ti.field(dtype=ti.i32, shape=MAX_MOTIONS)
motion_count = ti.field(dtype=ti.i32, shape=MAX_MOTIONS)
motion_pivot = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MOTIONS)
num_motions = ti.field(dtype=ti.i32, shape=())

knot_time = ti.field(dtype=ti.f32, shape=MAX_KNOTS)
knot_offset = ti.Vector.field(3, dtype=ti.f32, shape=MAX_KNOTS)
knot_scale = ti.Vector.field(3, dtype=ti.f32, shape=MAX_KNOTS)
# 1 when the segment ending at this knot holds the previous knot's value
knot_offset_held = ti.field(dtype=ti.i32, shape=MAX_KNOTS)
knot_scale_held = ti.field(dtype=ti.i32, shape=MAX_KNOTS)


class MotionTable:
    """Host-side builder for the concatenated knot arrays."""

    def __init__(self) -> None:
        self.start: list[int] = []
        self.count: list[int] = []
        self.pivot: list[tuple[float, float, float]] = []
        self.times: list[float] = []
        self.offsets: list[tuple[float, ...]] = []
        self.scales: list[tuple[float, ...]] = []
        self.offset_held: list[bool] = []
        self.scale_held: list[bool] = []

    def __len__(self) -> int:
        return len(self.start)

    @property
    def knot_count(self) -> int:
        return len(self.times)

    def add(self, knots: MotionKnots, pivot: npt.ArrayLike) -> int:
        """Append one motion.

        Args:
            knots: Samples of exactly two tracks: the offset (3 components)
                and the scale (3 components, or 1 for a uniform scale).
            pivot: Point the scale is applied about.

        Returns:
            The motion id.
        """
        offsets, scales = knots.values
        offset_held, scale_held = knots.held
        self.start.append(len(self.times))
        self.count.append(len(knots.times))
        self.pivot.append(tuple(float(x) for x in np.asarray(pivot, dtype=np.float64)))
        self.times.extend(knots.times)
        self.offsets.extend(offsets)
        self.scales.extend(s * 3 if len(s) == 1 else s for s in scales)
        self.offset_held.extend(offset_held)
        self.scale_held.extend(scale_held)
        return len(self.start) - 1

    def positions(self, motion: int, points: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Points transformed by every knot of a motion, shape (knots, ..., 3)."""
        begin = self.start[motion]
        end = begin + self.count[motion]
        pivot = np.asarray(self.pivot[motion])
        offsets = np.asarray(self.offsets[begin:end])
        scales = np.asarray(self.scales[begin:end])
        p = np.asarray(points, dtype=np.float64) - pivot
        extra = (1,) * (p.ndim - 1)
        shape = (end - begin,) + extra + (3,)
        return pivot + scales.reshape(shape) * p + offsets.reshape(shape)

    def scale_values(self, motion: int) -> npt.NDArray[np.float64]:
        begin = self.start[motion]
        return np.asarray(self.scales[begin : begin + self.count[motion]])


def _padded(values, rows: int, dtype, width: int | None = None) -> npt.NDArray:
    shape = (rows,) if width is None else (rows, width)
    out = np.zeros(shape, dtype=dtype)
    if len(values):
        out[: len(values)] = np.asarray(values, dtype=dtype)
    return out


def upload_motions(table: MotionTable) -> None:
    """Replace the uploaded motions.

    Raises:
        RuntimeError: If the table exceeds the preallocated capacity.
    """
    if len(table) > MAX_MOTIONS:
        raise RuntimeError(f"Maximum number of moving objects ({MAX_MOTIONS}) exceeded")
    if table.knot_count > MAX_KNOTS:
        raise RuntimeError(f"Maximum number of motion keyframes ({MAX_KNOTS}) exceeded")

    motion_start.from_numpy(_padded(table.start, MAX_MOTIONS, np.int32))
    motion_count.from_numpy(_padded(table.count, MAX_MOTIONS, np.int32))
    motion_pivot.from_numpy(_padded(table.pivot, MAX_MOTIONS, np.float32, 3))
    knot_time.from_numpy(_padded(table.times, MAX_KNOTS, np.float32))
    knot_offset.from_numpy(_padded(table.offsets, MAX_KNOTS, np.float32, 3))
    knot_scale.from_numpy(_padded(table.scales, MAX_KNOTS, np.float32, 3))
    knot_offset_held.from_numpy(_padded(table.offset_held, MAX_KNOTS, np.int32))
    knot_scale_held.from_numpy(_padded(table.scale_held, MAX_KNOTS, np.int32))
    num_motions[None] = len(table)


def clear_motions() -> None:
    num_motions[None] = 0


def get_motion_count() -> int:
    return int(num_motions[None])


@ti.func
def sample_knots(
    times: ti.template(),
    values: ti.template(),
    held: ti.template(),
    start: ti.i32,
    count: ti.i32,
    time: ti.f32,
):
    """Piecewise value of one knot sequence at a time.

    Clamps outside the knots. Between knots i and i + 1 the value is linear
    unless knot i + 1 is held, in which case it stays at knot i.

    Args:
        times: Knot time field.
        values: Knot value field.
        held: Knot hold-flag field.
        start: First knot of the sequence.
        count: Number of knots, at least 1.
        time: Evaluation time.

    Returns:
        The value at ``time``.
    """
    value = values[start]
    last = start + count - 1
    if time >= times[last]:
        value = values[last]
    elif time > times[start]:
        i = start
        while times[i + 1] <= time:
            i += 1
        value = values[i]
        if held[i + 1] == 0:
            s = (time - times[i]) / (times[i + 1] - times[i])
            value = values[i] + s * (values[i + 1] - values[i])
    return value


@ti.func
def evaluate_motion(motion: ti.i32, time: ti.f32):
    """(offset, scale) of a motion at a time."""
    start = motion_start[motion]
    count = motion_count[motion]
    offset = sample_knots(knot_time, knot_offset, knot_offset_held, start, count, time)
    scale = sample_knots(knot_time, knot_scale, knot_scale_held, start, count, time)
    return offset, scale


@ti.func
def move_point(motion: ti.i32, p: vec3, offset: vec3, scale: vec3) -> vec3:
    pivot = motion_pivot[motion]
    return pivot + scale * (p - pivot) + offset
