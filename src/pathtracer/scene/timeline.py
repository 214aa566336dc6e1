"""Keyframed values for animating scene objects and the camera.

A ``Track`` holds (time, value) keyframes. Between two keyframes the value is
either held (NERP, "no interpolation") or linearly interpolated (LERP), as
chosen per keyframe for the segment that ends at it. Outside the keyframe
range the value is clamped to the first or last keyframe.

Example:
    >>> from pathtracer.scene.timeline import Interpolation, Track
    >>> track = Track((0.0, 0.0, 0.0))
    >>> track.add_keyframe(1.0, (2.0, 0.0, 0.0), Interpolation.LERP)
    >>> track.value_at(0.5)
    (1.0, 0.0, 0.0)
"""

import bisect
import math
from dataclasses import dataclass, field
from enum import Enum

from pathtracer.errors import InvalidScene

Value = tuple[float, ...]


class Interpolation(Enum):
    """How a value travels from the previous keyframe to this one."""

    NERP = "nerp"
    LERP = "lerp"


@dataclass(frozen=True)
class Keyframe:
    time: float
    value: Value
    interpolation: Interpolation = Interpolation.LERP


@dataclass
class Track:
    """A value evolving over time.

    Attributes:
        initial: Value before any keyframe, and the value of a track with no
            keyframes.
        keyframes: Keyframes sorted by time.
    """

    initial: Value
    keyframes: list[Keyframe] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.initial = _as_value(self.initial, None)

    @property
    def dimension(self) -> int:
        return len(self.initial)

    def add_keyframe(
        self,
        time: float,
        value: float | Value,
        interpolation: Interpolation = Interpolation.LERP,
    ) -> None:
        """Insert a keyframe, replacing any existing keyframe at the same time.

        Raises:
            InvalidScene: If the time is not finite or the value has the
                wrong dimension.
        """
        if not math.isfinite(time):
            raise InvalidScene(f"Keyframe time must be finite, got {time}")
        frame = Keyframe(time, _as_value(value, self.dimension), interpolation)
        times = [k.time for k in self.keyframes]
        i = bisect.bisect_left(times, time)
        if i < len(times) and times[i] == time:
            self.keyframes[i] = frame
        else:
            self.keyframes.insert(i, frame)

    def is_animated(self) -> bool:
        return bool(self.keyframes)

    def jumps_at(self, time: float) -> bool:
        """Whether a NERP keyframe sits exactly at a time.

        The value then holds right up to that time and jumps on it.
        """
        return any(k.time == time and k.interpolation is Interpolation.NERP for k in self.keyframes)

    def value_at(self, time: float) -> Value:
        """Evaluate the track at a time."""
        if not self.keyframes:
            return self.initial
        if time <= self.keyframes[0].time:
            return self.keyframes[0].value
        if time >= self.keyframes[-1].time:
            return self.keyframes[-1].value

        times = [k.time for k in self.keyframes]
        i = bisect.bisect_right(times, time)
        prev, nxt = self.keyframes[i - 1], self.keyframes[i]
        if nxt.interpolation is Interpolation.NERP:
            return prev.value
        s = (time - prev.time) / (nxt.time - prev.time)
        return tuple(a + s * (b - a) for a, b in zip(prev.value, nxt.value))


@dataclass
class MotionKnots:
    """Several tracks sampled at every keyframe inside a time interval.

    Between two knots each track is either linear or held, so evaluating the
    knots piecewise reproduces ``value_at`` exactly.

    Attributes:
        times: Ascending knot times, from the interval start to its end.
        values: Per track, the value at every knot.
        held: Per track and knot, True when the value holds from the previous
            knot and only jumps at this one.
    """

    times: list[float]
    values: list[list[Value]]
    held: list[list[bool]]


def sample_tracks(tracks: list[Track], t0: float, t1: float) -> MotionKnots:
    """Sample tracks at t0, t1 and every keyframe time strictly between.

    Raises:
        InvalidScene: If the interval is reversed.
    """
    if t1 < t0:
        raise InvalidScene(f"Invalid time interval ({t0}, {t1})")
    times = {t0, t1}
    for track in tracks:
        times.update(k.time for k in track.keyframes if t0 < k.time < t1)
    ordered = sorted(times)
    return MotionKnots(
        times=ordered,
        values=[[track.value_at(t) for t in ordered] for track in tracks],
        held=[[i > 0 and track.jumps_at(t) for i, t in enumerate(ordered)] for track in tracks],
    )


def _as_value(value: float | Value, dimension: int | None) -> Value:
    if isinstance(value, (int, float)):
        result: Value = (float(value),)
    else:
        result = tuple(float(x) for x in value)
    if dimension is not None and len(result) != dimension:
        raise InvalidScene(f"Keyframe value must have {dimension} components, got {len(result)}")
    if not all(math.isfinite(x) for x in result):
        raise InvalidScene(f"Keyframe value must be finite, got {result}")
    return result
