#!/usr/bin/env python3
"""Render one of the demo scenes to PNG.

Command line options take precedence over environment variables, which take
precedence over the RenderConfig defaults.

Usage:
    python examples/render_demo.py [options]

Options:
    --scene NAME          spheres, motion_blur, checker, mesh or emissive
    --width WIDTH         Image width in pixels
    --height HEIGHT       Image height in pixels
    --samples SAMPLES     Samples per pixel
    --max-depth DEPTH     Maximum surface interactions per path
    --threads N           Worker threads (default: host parallelism)
    --frames N            Frame count; more than 1 writes numbered PNGs
    --frame-rate FPS      Frames per second of scene time
    --shutter-angle DEG   Shutter angle in degrees, 0 disables motion blur
    --tile-size PIXELS    Work unit edge length
    --work-unit MODE      tiles or rows
    --seed SEED           Base random seed
    --output PATH         Output file, or directory for animations
    --log-level LEVEL     DEBUG, INFO, WARNING, ...

Environment variables:
    PATHTRACER_THREADS, PATHTRACER_SCENE, PATHTRACER_SAMPLES,
    PATHTRACER_OUTPUT, PATHTRACER_LOG_LEVEL

Example:
    python examples/render_demo.py --scene checker --width 320 --height 180 --samples 32
"""

import argparse
import os
import sys
from pathlib import Path

from pathtracer.config import RenderConfig, default_thread_count
from pathtracer.errors import RenderError
from pathtracer.logging_config import setup_logging
from pathtracer.runtime import init_runtime


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    defaults = RenderConfig(thread_count=1)
    parser = argparse.ArgumentParser(
        description="Render a demo scene with the CPU path tracer.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--scene", default=os.environ.get("PATHTRACER_SCENE", defaults.scene))
    parser.add_argument("--width", type=int, default=defaults.width)
    parser.add_argument("--height", type=int, default=defaults.height)
    parser.add_argument(
        "--samples",
        type=int,
        default=_env_int("PATHTRACER_SAMPLES", defaults.samples_per_pixel),
    )
    parser.add_argument("--max-depth", type=int, default=defaults.max_depth)
    parser.add_argument(
        "--threads",
        type=int,
        default=_env_int("PATHTRACER_THREADS", default_thread_count()),
    )
    parser.add_argument("--frames", type=int, default=defaults.frame_count)
    parser.add_argument("--frame-rate", type=float, default=defaults.frame_rate)
    parser.add_argument("--shutter-angle", type=float, default=defaults.shutter_angle)
    parser.add_argument("--tile-size", type=int, default=defaults.tile_size)
    parser.add_argument("--work-unit", choices=("tiles", "rows"), default=defaults.work_unit)
    parser.add_argument("--rr-min-depth", type=int, default=defaults.rr_min_depth)
    parser.add_argument("--seed", type=int, default=defaults.seed)
    parser.add_argument(
        "--output", default=os.environ.get("PATHTRACER_OUTPUT", defaults.output)
    )
    parser.add_argument(
        "--log-level", default=os.environ.get("PATHTRACER_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> RenderConfig:
    return RenderConfig(
        output=args.output,
        thread_count=args.threads,
        scene=args.scene,
        samples_per_pixel=args.samples,
        width=args.width,
        height=args.height,
        max_depth=args.max_depth,
        frame_count=args.frames,
        frame_rate=args.frame_rate,
        shutter_angle=args.shutter_angle,
        seed=args.seed,
        tile_size=args.tile_size,
        work_unit=args.work_unit,
        rr_min_depth=args.rr_min_depth,
    )


def render_demo(config: RenderConfig) -> list[Path]:
    """Render the configured demo scene and save it.

    Returns:
        Paths of the written images.
    """
    # Lazy imports: these modules allocate Taichi fields
    from pathtracer.core.scheduler import RenderScheduler
    from pathtracer.preview.export import save_frames, save_png
    from pathtracer.scene.demo_scenes import build_demo_scene

    scene, camera = build_demo_scene(config.scene, config.aspect_ratio)
    result = RenderScheduler(config).render(scene, camera)
    if isinstance(result, list):
        return save_frames(result, config.output)
    return [save_png(result, config.output)]


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logger = setup_logging(level=args.log_level)

    try:
        config = config_from_args(args)
        init_runtime(config.thread_count, seed=config.seed)
        paths = render_demo(config)
    except RenderError as e:
        logger.error("%s", e)
        return 1

    logger.info("Wrote %d image(s), first: %s", len(paths), paths[0].absolute())
    return 0


if __name__ == "__main__":
    sys.exit(main())
