"""Host-side image buffer for one rendered frame.

A framebuffer keeps the running color sum and the sample count of every
pixel, with row 0 at the top of the image. The linear image is the sum
divided by the count. Finalizing clamps that to [0, 1] and gamma-encodes it;
this happens once and the result is cached.

Example:
    >>> fb = Framebuffer(4, 2)
    >>> fb.add_samples(sums, counts)
    >>> fb.finalize(gamma=2.2).shape
    (2, 4, 3)
    >>> fb.to_uint8().dtype
    dtype('uint8')
"""

import numpy as np
import numpy.typing as npt


class Framebuffer:
    """Accumulated samples for a width x height image.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        sums: Running color sums, shape (height, width, 3).
        counts: Samples per pixel, shape (height, width).
        frame_index: Index of the frame in an animation.
        time_interval: Shutter (open, close) the frame was rendered with.
    """

    def __init__(
        self,
        width: int,
        height: int,
        frame_index: int = 0,
        time_interval: tuple[float, float] = (0.0, 0.0),
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Framebuffer size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.frame_index = frame_index
        self.time_interval = time_interval
        self.sums = np.zeros((height, width, 3), dtype=np.float64)
        self.counts = np.zeros((height, width), dtype=np.int64)
        self._final: npt.NDArray[np.float32] | None = None
        self._final_gamma: float | None = None

    @property
    def shape(self) -> tuple[int, int]:
        return (self.height, self.width)

    @property
    def is_finalized(self) -> bool:
        return self._final is not None

    def add_samples(self, sums: npt.ArrayLike, counts: npt.ArrayLike) -> None:
        """Add color sums and sample counts for every pixel.

        Args:
            sums: Color sums, shape (height, width, 3).
            counts: Sample counts, shape (height, width).

        Raises:
            RuntimeError: If the framebuffer was already finalized.
            ValueError: If the shapes do not match.
        """
        if self.is_finalized:
            raise RuntimeError("Cannot add samples to a finalized framebuffer")
        sums = np.asarray(sums, dtype=np.float64)
        counts = np.asarray(counts, dtype=np.int64)
        if sums.shape != self.sums.shape or counts.shape != self.counts.shape:
            raise ValueError(
                f"Expected sums {self.sums.shape} and counts {self.counts.shape}, "
                f"got {sums.shape} and {counts.shape}"
            )
        self.sums += sums
        self.counts += counts

    def linear(self) -> npt.NDArray[np.float32]:
        """Mean radiance per pixel, shape (height, width, 3).

        Pixels without samples are black.
        """
        counts = self.counts[..., None]
        mean = np.divide(
            self.sums, counts, out=np.zeros_like(self.sums), where=counts > 0
        )
        return mean.astype(np.float32)

    def finalize(self, gamma: float = 2.2) -> npt.NDArray[np.float32]:
        """Clamp to [0, 1] and gamma-encode.

        Args:
            gamma: Display gamma; values are raised to 1 / gamma.

        Returns:
            Display-ready values in [0, 1], shape (height, width, 3).

        Raises:
            ValueError: If gamma is not positive.
            RuntimeError: If already finalized with a different gamma.
        """
        if not gamma > 0.0:
            raise ValueError(f"gamma must be positive, got {gamma}")
        if self._final is not None:
            if gamma != self._final_gamma:
                raise RuntimeError(
                    f"Framebuffer already finalized with gamma {self._final_gamma}"
                )
            return self._final

        image = np.clip(self.linear(), 0.0, 1.0)
        self._final = np.power(image, 1.0 / gamma).astype(np.float32)
        self._final_gamma = gamma
        return self._final

    def to_uint8(self, gamma: float | None = None) -> npt.NDArray[np.uint8]:
        """8-bit RGB image, finalizing first if needed."""
        if self._final is None:
            self.finalize(2.2 if gamma is None else gamma)
        elif gamma is not None:
            self.finalize(gamma)
        return (self._final * 255.0 + 0.5).astype(np.uint8)
