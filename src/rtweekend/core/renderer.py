"""Scanline render scheduler.

The ScanlineRenderer splits the image into scanlines and hands them to a
fixed pool of workers. Worker w owns random stream w for the whole render
and takes output rows w, w + W, w + 2W, ... (W workers), so a pass renders
W consecutive rows at once. Pixels within a row are traced in order.

The two execution modes run the same kernel: "parallel" spreads the workers
over Taichi's CPU thread pool and "sequential" runs them one after another.
Since each pixel depends only on its coordinates and its worker's stream,
both modes produce identical buffers for the same seed.

With the FAST backend a pass is a single kernel launch. A CRYPTO stream can
only be refilled between launches, so there a pass is split into blocks of
columns, and a pixel with many samples into several launches whose sums are
accumulated before conversion. A launch that runs a stream dry is thrown
away and the block is redone with half as many samples per launch.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
    >>> from src.rtweekend.scene.weekend import final_camera, red_blue_scene
    >>>
    >>> params = RenderParams(image_width=300, aspect_ratio=3 / 2, samples_per_px=10)
    >>> renderer = ScanlineRenderer(params, mode="parallel", num_workers=8)
    >>> buffer = renderer.render(red_blue_scene(), final_camera(params.aspect_ratio))
    >>> buffer.shape
    (180000,)
"""

import logging
import os
import time
from collections.abc import Callable, Generator
from dataclasses import dataclass
from typing import Literal

import numpy as np
import numpy.typing as npt

from ..camera.thin_lens import ThinLensCamera, setup_camera
from ..scene.world import World
from .integrator import (
    MAX_IMAGE_HEIGHT,
    MAX_IMAGE_WIDTH,
    accumulate_sample_block,
    clear_pixel_sums,
    get_output_buffer,
    render_rows,
    setup_render_target,
    trace_sample_block,
    write_pixel_sums,
)
from .sampler import (
    DEFAULT_SEED,
    MAX_STREAMS,
    RandomBackend,
    RandomSourceError,
    ensure_stream_headroom,
    refill_stream,
    release_random_streams,
    setup_random_streams,
    take_exhausted_streams,
)

logger = logging.getLogger(__name__)

ExecutionMode = Literal["parallel", "sequential"]

# Type alias for progress callback
# Callback receives (scanlines_remaining, total_scanlines)
ProgressCallback = Callable[[int, int], None]

# Starting number of pixel samples per kernel launch with the cryptographic
# backend. Halved whenever a launch runs a stream buffer dry.
CRYPTO_SAMPLES_PER_LAUNCH = 256


@dataclass(frozen=True)
class RenderParams:
    """Image and sampling configuration.

    Attributes:
        image_width: Width in pixels.
        aspect_ratio: Width divided by height.
        samples_per_px: Camera rays averaged per pixel.
        max_depth: Maximum number of bounces per path.
    """

    image_width: int = 1200
    aspect_ratio: float = 3.0 / 2.0
    samples_per_px: int = 200
    max_depth: int = 50

    def __post_init__(self) -> None:
        if self.image_width < 1:
            raise ValueError(f"image_width = {self.image_width} must be positive")
        if not self.aspect_ratio > 0.0:
            raise ValueError(f"aspect_ratio = {self.aspect_ratio} must be positive")
        if self.samples_per_px < 1:
            raise ValueError(f"samples_per_px = {self.samples_per_px} must be positive")
        if self.max_depth < 0:
            raise ValueError(f"max_depth = {self.max_depth} must be non-negative")
        if self.image_height < 1:
            raise ValueError(
                f"image_width / aspect_ratio = {self.image_width / self.aspect_ratio} "
                "gives an image height below 1"
            )
        if self.image_width > MAX_IMAGE_WIDTH or self.image_height > MAX_IMAGE_HEIGHT:
            raise ValueError(
                f"Image dimensions ({self.image_width}x{self.image_height}) exceed "
                f"maximum supported ({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
            )

    @property
    def image_height(self) -> int:
        return int(self.image_width / self.aspect_ratio)

    @property
    def buffer_size(self) -> int:
        """Length of the output buffer in bytes."""
        return 3 * self.image_width * self.image_height


def default_worker_count() -> int:
    """One worker per CPU, capped at MAX_STREAMS."""
    return max(1, min(MAX_STREAMS, os.cpu_count() or 1))


class ScanlineRenderer:
    """Renders a World through a camera into a flat RGB byte buffer.

    Attributes:
        params: The image and sampling configuration.
        mode: "parallel" or "sequential".
        num_workers: Number of workers, each with its own random stream.
        backend: Random backend behind the streams.
        seed: Seed for the FAST backend.
    """

    def __init__(
        self,
        params: RenderParams,
        mode: ExecutionMode = "parallel",
        num_workers: int | None = None,
        backend: RandomBackend = RandomBackend.FAST,
        seed: int = DEFAULT_SEED,
    ) -> None:
        """Initialize the renderer.

        Args:
            params: The image and sampling configuration.
            mode: "parallel" or "sequential".
            num_workers: Worker count in [1, MAX_STREAMS]; defaults to the
                CPU count, capped at MAX_STREAMS.
            backend: Random backend behind the streams.
            seed: Seed for the FAST backend.

        Raises:
            ValueError: If the mode or worker count is invalid.
        """
        if mode not in ("parallel", "sequential"):
            raise ValueError(f"Unknown execution mode: {mode!r}")
        if num_workers is None:
            num_workers = default_worker_count()
        if not 1 <= num_workers <= MAX_STREAMS:
            raise ValueError(f"num_workers = {num_workers} is outside [1, {MAX_STREAMS}]")

        self.params = params
        self.mode = mode
        self.num_workers = num_workers
        self.backend = RandomBackend(backend)
        self.seed = seed
        self._samples_per_launch = CRYPTO_SAMPLES_PER_LAUNCH
        self._retried_fresh = False

    @property
    def width(self) -> int:
        return self.params.image_width

    @property
    def height(self) -> int:
        return self.params.image_height

    def render(
        self,
        world: World,
        camera: ThinLensCamera,
        callback: ProgressCallback | None = None,
    ) -> npt.NDArray[np.uint8]:
        """Render the whole image.

        Args:
            world: The scene. It is frozen for the rest of its life and
                loaded into the shared fields if another World replaced it.
            camera: The camera configuration.
            callback: Optional callback called after every pass with
                (scanlines_remaining, total_scanlines).

        Returns:
            A uint8 array of 3 * width * height bytes, top row first.

        Raises:
            RandomSourceError: If the random source fails.
        """
        for remaining, total in self.render_progressive(world, camera):
            if callback is not None:
                callback(remaining, total)
        return get_output_buffer()

    def render_progressive(
        self,
        world: World,
        camera: ThinLensCamera,
    ) -> Generator[tuple[int, int], None, None]:
        """Render pass by pass, yielding progress after each pass.

        The random streams are released when the generator finishes or is
        closed early. Call get_buffer() afterwards for the result.

        Yields:
            Tuple of (scanlines_remaining, total_scanlines).
        """
        width, height = self.width, self.height
        if abs(camera.aspect_ratio - self.params.aspect_ratio) > 1e-9:
            logger.warning(
                "Camera aspect ratio %s differs from image aspect ratio %s",
                camera.aspect_ratio,
                self.params.aspect_ratio,
            )

        world.freeze().upload()
        setup_camera(camera)
        setup_render_target(width, height)
        setup_random_streams(self.num_workers, self.backend, self.seed)
        self._samples_per_launch = CRYPTO_SAMPLES_PER_LAUNCH
        self._retried_fresh = False

        logger.info(
            "Rendering %dx%d, %d samples/px, depth %d, %d %s workers, %s random source",
            width,
            height,
            self.params.samples_per_px,
            self.params.max_depth,
            self.num_workers,
            self.mode,
            self.backend.name,
        )
        start = time.perf_counter()
        try:
            for first_row in range(0, height, self.num_workers):
                self._render_pass(first_row)
                remaining = max(height - first_row - self.num_workers, 0)
                logger.debug("Pass at row %d done, %d scanlines remaining", first_row, remaining)
                yield remaining, height
        finally:
            release_random_streams()

        logger.info("Rendered %d scanlines in %.2fs", height, time.perf_counter() - start)

    def get_buffer(self) -> npt.NDArray[np.uint8]:
        """Copy the output buffer of the last render."""
        return get_output_buffer()

    def _render_pass(self, first_row: int) -> None:
        serialize = self.mode == "sequential"
        if self.backend == RandomBackend.FAST:
            # The LCG never runs dry, so one launch covers the whole pass
            render_rows(
                first_row,
                self.num_workers,
                self.params.samples_per_px,
                self.params.max_depth,
                serialize=serialize,
            )
            return

        col = 0
        while col < self.width:
            block_columns = max(1, self._samples_per_launch // self.params.samples_per_px)
            col_end = min(col + block_columns, self.width)
            if self._trace_pixels(first_row, col, col_end, serialize):
                write_pixel_sums(
                    first_row, self.num_workers, col, col_end, self.params.samples_per_px
                )
                col = col_end

    def _trace_pixels(self, first_row: int, col_start: int, col_end: int, serialize: bool) -> bool:
        """Sum every sample of a block of pixels, spread over as many launches as needed.

        Returns:
            False if a launch ran a stream dry. The launch size has then been
            reduced and the block must be traced again from scratch.
        """
        samples_per_px = self.params.samples_per_px
        step = min(self._samples_per_launch, samples_per_px)
        clear_pixel_sums(self.num_workers, col_start, col_end)
        for sample_start in range(0, samples_per_px, step):
            ensure_stream_headroom()
            trace_sample_block(
                first_row,
                self.num_workers,
                col_start,
                col_end,
                min(step, samples_per_px - sample_start),
                self.params.max_depth,
                serialize,
            )
            exhausted = take_exhausted_streams()
            if exhausted:
                self._recover_from_exhaustion(exhausted, first_row)
                return False
            accumulate_sample_block(self.num_workers, col_start, col_end)
        self._retried_fresh = False
        return True

    def _recover_from_exhaustion(self, exhausted: list[int], first_row: int) -> None:
        if self._samples_per_launch > 1:
            for stream in exhausted:
                refill_stream(stream)
            self._samples_per_launch //= 2
            logger.debug(
                "Streams %s ran dry at row %d, retrying with %d samples per launch",
                exhausted,
                first_row,
                self._samples_per_launch,
            )
            return

        if self._retried_fresh:
            raise RandomSourceError(
                "A single camera sample drew more numbers than a full random buffer "
                "holds; cannot produce a trustworthy render"
            )
        # Last resort: one sample per launch, every buffer full
        for stream in range(self.num_workers):
            refill_stream(stream)
        self._retried_fresh = True

    def __repr__(self) -> str:
        return (
            f"ScanlineRenderer(width={self.width}, height={self.height}, mode={self.mode!r}, "
            f"num_workers={self.num_workers}, backend={self.backend.name})"
        )
