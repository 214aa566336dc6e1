"""Taichi runtime initialisation.

Taichi fields are declared at module level throughout the package, so the
runtime must be initialised before any field-declaring module is imported.
The CPU thread pool created here is the worker pool used by the scheduler; it
is sized once per process.

Example:
    >>> from pathtracer.runtime import init_runtime
    >>> init_runtime(thread_count=8)
    8
    >>> from pathtracer.core.scheduler import RenderScheduler  # safe now
"""

import logging

import taichi as ti

from pathtracer.config import default_thread_count
from pathtracer.errors import ConfigurationError

logger = logging.getLogger(__name__)

_active_thread_count: int | None = None


def init_runtime(thread_count: int | None = None, seed: int = 0, debug: bool = False) -> int:
    """Initialise Taichi on the CPU backend with a fixed-size thread pool.

    Only the first call initialises the runtime. Re-initialising would
    invalidate every field already declared, so later calls keep the
    existing pool and log when a different size was requested.

    Args:
        thread_count: Number of CPU worker threads. Defaults to the host's
            available parallelism.
        seed: Seed for Taichi's own generator. The render path does not use
            it, but it keeps ad-hoc kernels reproducible.
        debug: Enable Taichi's bounds-checking debug mode.

    Returns:
        The size of the active worker pool.

    Raises:
        ConfigurationError: If thread_count is less than 1.
    """
    global _active_thread_count

    if thread_count is None:
        thread_count = default_thread_count()
    if thread_count < 1:
        raise ConfigurationError(f"thread_count must be at least 1, got {thread_count}")

    if _active_thread_count is not None:
        if thread_count != _active_thread_count:
            logger.warning(
                "Taichi runtime already running with %d threads; ignoring request for %d",
                _active_thread_count,
                thread_count,
            )
        return _active_thread_count

    ti.init(
        arch=ti.cpu,
        cpu_max_num_threads=thread_count,
        random_seed=seed,
        default_fp=ti.f32,
        debug=debug,
        log_level=ti.WARN,
    )
    _active_thread_count = thread_count
    logger.info("Taichi CPU runtime initialised with %d worker threads", thread_count)
    return thread_count


def is_initialized() -> bool:
    """Whether init_runtime() has been called in this process."""
    return _active_thread_count is not None


def active_thread_count() -> int:
    """Size of the worker pool.

    Raises:
        RuntimeError: If the runtime has not been initialised.
    """
    if _active_thread_count is None:
        raise RuntimeError("Taichi runtime not initialised. Call init_runtime() first.")
    return _active_thread_count
