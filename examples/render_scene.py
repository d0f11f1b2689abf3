#!/usr/bin/env python3
"""Render one of the ready-made sphere scenes.

Builds the chosen scene, views it through the cover camera and path traces
it scanline by scanline, printing the number of scanlines still to go.

Usage:
    python -m examples.render_scene [options]

Options:
    --width WIDTH           Image width in pixels (default: 1200)
    --aspect-ratio RATIO    Width divided by height (default: 1.5)
    --samples SAMPLES       Samples per pixel (default: 200)
    --max-depth DEPTH       Maximum bounces per path (default: 50)
    --scene NAME            random, pastel, moon, red_blue, normal or perf
                            (default: pastel)
    --output OUTPUT         .ppm or .png file, or - for PPM on stdout
                            (default: image.ppm)
    --mode MODE             parallel or sequential (default: parallel)
    --workers N             Number of workers (default: CPU count, max 16)
    --backend BACKEND       fast or crypto random source (default: fast)
    --seed SEED             Seed for the fast random source (default: 1)
    --quiet                 Suppress progress output
    --verbose               Enable debug logging

Example:
    python -m examples.render_scene --width 400 --samples 20 --output cover.png
"""

from __future__ import annotations

import argparse
import logging
import sys
import time

import taichi as ti

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Path trace a sphere scene.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--width",
        type=int,
        default=1200,
        help="Image width in pixels (default: 1200)",
    )
    parser.add_argument(
        "--aspect-ratio",
        type=float,
        default=3.0 / 2.0,
        help="Image width divided by height (default: 1.5)",
    )
    parser.add_argument(
        "--samples",
        type=int,
        default=200,
        help="Number of samples per pixel (default: 200)",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=50,
        help="Maximum number of bounces per path (default: 50)",
    )
    parser.add_argument(
        "--scene",
        type=str,
        default="pastel",
        choices=["random", "pastel", "moon", "red_blue", "normal", "perf"],
        help="Scene to render (default: pastel)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="image.ppm",
        help="Output .ppm or .png file, or - for PPM on stdout (default: image.ppm)",
    )
    parser.add_argument(
        "--mode",
        type=str,
        default="parallel",
        choices=["parallel", "sequential"],
        help="Run the workers in parallel or one after another (default: parallel)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of workers (default: CPU count, at most 16)",
    )
    parser.add_argument(
        "--backend",
        type=str,
        default="fast",
        choices=["fast", "crypto"],
        help="Random source behind the workers' streams (default: fast)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=1,
        help="Seed for the fast random source (default: 1)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args()


def render_scene(
    scene: str = "pastel",
    width: int = 1200,
    aspect_ratio: float = 3.0 / 2.0,
    samples_per_px: int = 200,
    max_depth: int = 50,
    output_path: str = "image.ppm",
    mode: str = "parallel",
    num_workers: int | None = None,
    backend: str = "fast",
    seed: int = 1,
    quiet: bool = False,
) -> None:
    """Render a scene and write it to a file or stdout.

    Args:
        scene: Name of a scene builder.
        width: Image width in pixels.
        aspect_ratio: Width divided by height.
        samples_per_px: Samples averaged per pixel.
        max_depth: Bounce limit per path.
        output_path: A .ppm or .png path, or "-" for PPM on stdout.
        mode: "parallel" or "sequential".
        num_workers: Worker count; None picks one per CPU.
        backend: "fast" or "crypto".
        seed: Seed for the fast random source.
        quiet: If True, suppress progress output.
    """
    # Lazy imports to allow Taichi initialization first
    from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
    from src.rtweekend.core.sampler import (
        SCENE_SPAWN_KEY,
        RandomBackend,
        RandomSource,
        release_random_streams,
        setup_random_streams,
    )
    from src.rtweekend.preview.export import save_image, write_ppm
    from src.rtweekend.scene.weekend import build_scene, final_camera

    random_backend = RandomBackend[backend.upper()]
    params = RenderParams(
        image_width=width,
        aspect_ratio=aspect_ratio,
        samples_per_px=samples_per_px,
        max_depth=max_depth,
    )
    renderer = ScanlineRenderer(
        params,
        mode=mode,
        num_workers=num_workers,
        backend=random_backend,
        seed=seed,
    )

    # Scenes draw from their own seed child so the render streams never
    # replay the draws that placed the spheres
    setup_random_streams(1, random_backend, seed, spawn_key=SCENE_SPAWN_KEY)
    try:
        world = build_scene(scene, RandomSource(0))
    finally:
        release_random_streams()
    logger.info("Built %s scene with %d spheres", scene, len(world))

    def progress_callback(remaining: int, total: int) -> None:
        if not quiet:
            print(f"\rScanlines remaining: {remaining:4d}", end="", file=sys.stderr, flush=True)

    start_time = time.time()
    buffer = renderer.render(world, final_camera(aspect_ratio), callback=progress_callback)

    if not quiet:
        print(file=sys.stderr)  # Newline after progress

    if output_path == "-":
        write_ppm(buffer, renderer.width, renderer.height, sys.stdout)
        sys.stdout.flush()
    else:
        save_image(buffer, renderer.width, renderer.height, output_path)

    if not quiet:
        print(f"Done in {time.time() - start_time:.2f}s", file=sys.stderr)


def main() -> int:
    """Main entry point."""
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)

    try:
        render_scene(
            scene=args.scene,
            width=args.width,
            aspect_ratio=args.aspect_ratio,
            samples_per_px=args.samples,
            max_depth=args.max_depth,
            output_path=args.output,
            mode=args.mode,
            num_workers=args.workers,
            backend=args.backend,
            seed=args.seed,
            quiet=args.quiet,
        )
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
