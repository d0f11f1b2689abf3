"""Path integrator and the scanline kernels that drive it.

``ray_color`` estimates the radiance arriving along a ray. The recursion of
the textbook formulation is unrolled into a loop that multiplies a
throughput by each bounce's attenuation:

    - a miss returns throughput * sky gradient (the only light source)
    - an absorbed path returns black
    - a path still bouncing after ``depth`` bounces returns black

Intersections use the interval [0.001, +inf) so a scattered ray does not
immediately re-hit the surface it left.

The render target is a flat byte buffer of 3 * width * height entries, top
row first. ``_render_rows`` traces a block of scanlines, one per worker, each
worker drawing only from its own random stream, and writes each finished
pixel straight into its row of the buffer. Workers never share a row, so no
synchronisation is needed.

``trace_sample_block`` and its companions do the same work in smaller
pieces: a pixel's samples can be spread over several launches, with the
radiance summed in f64 fields and converted only once all samples are in.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.core.integrator import compute_output_color
    >>> compute_output_color((1.0, 1.0, 1.0), samples_per_px=1)
    (255, 255, 255)
"""

import logging

import numpy as np
import taichi as ti
import taichi.math as tm

from ..camera.thin_lens import get_ray
from ..materials.dielectric import scatter_dielectric_by_id
from ..materials.lambertian import scatter_lambertian_by_id
from ..materials.metal import scatter_metal_by_id
from ..scene.intersection import hit_world
from ..scene.world import MaterialType, get_material_type, get_material_type_index
from .ray import as_vector, normalize, vec3
from .sampler import MAX_STREAMS, random_double

logger = logging.getLogger(__name__)

# =============================================================================
# Rendering Constants
# =============================================================================

# Intersection interval; the lower bound avoids shadow acne
T_MIN = 0.001
T_MAX = tm.inf

# Sky gradient endpoints, blended by the ray's normalized y
SKY_BOTTOM = (1.0, 1.0, 1.0)
SKY_TOP = (0.5, 0.7, 1.0)

# Largest channel value before scaling to bytes; keeps 256 * c below 256
COLOR_CLAMP_MAX = 0.999

_LAMBERTIAN = int(MaterialType.LAMBERTIAN)
_METAL = int(MaterialType.METAL)
_DIELECTRIC = int(MaterialType.DIELECTRIC)

# =============================================================================
# Render Target (Output Buffer)
# =============================================================================

# Maximum supported image dimensions (preallocated to avoid kernel recompilation)
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

# Flat RGB bytes, row-major, top scanline first
_output = ti.field(dtype=ti.u8, shape=3 * MAX_IMAGE_WIDTH * MAX_IMAGE_HEIGHT)

_render_target_initialized = ti.field(dtype=ti.i32, shape=())

# Host-side single-ray evaluation result
_trace_result = ti.Vector.field(3, dtype=ti.f64, shape=())

# Radiance sums for pixels whose samples are split over several launches,
# indexed by (worker, column). _block_sum holds the latest launch only.
_block_sum = ti.Vector.field(3, dtype=ti.f64, shape=(MAX_STREAMS, MAX_IMAGE_WIDTH))
_pixel_sum = ti.Vector.field(3, dtype=ti.f64, shape=(MAX_STREAMS, MAX_IMAGE_WIDTH))


def setup_render_target(width: int, height: int) -> None:
    """Set the active image size and clear the output buffer.

    Args:
        width: Image width in pixels, at most MAX_IMAGE_WIDTH.
        height: Image height in pixels, at most MAX_IMAGE_HEIGHT.

    Raises:
        ValueError: If a dimension is not positive or exceeds the maximum.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Image dimensions ({width}x{height}) must be positive")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    _output.fill(0)


def release_render_target() -> None:
    """Mark the render target as not set up."""
    _render_target_initialized[None] = 0


def get_image_dimensions() -> tuple[int, int]:
    """Get the active (width, height)."""
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


def get_output_buffer() -> np.ndarray:
    """Copy the active part of the output buffer.

    Returns:
        A uint8 array of length 3 * width * height, row 0 = top scanline.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    return _output.to_numpy()[: 3 * width * height].copy()


# =============================================================================
# Material Dispatch
# =============================================================================


@ti.func
def scatter_material(
    stream: ti.i32,
    material_id: ti.i32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
):
    """Dispatch to the scatter function of a material's type.

    Args:
        stream: The calling worker's random stream.
        material_id: The unified material ID from the hit record.
        incident_direction: The incoming ray direction.
        normal: The unit normal at the hit point, facing the ray.
        front_face: 1 if the ray arrived from outside.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter). An
        unknown material absorbs the path.
    """
    mat_type = get_material_type(material_id)
    type_index = get_material_type_index(material_id)

    scattered_direction = vec3(0.0, 0.0, 0.0)
    attenuation = vec3(0.0, 0.0, 0.0)
    did_scatter = 0

    if mat_type == _LAMBERTIAN:
        scattered_direction, attenuation, did_scatter = scatter_lambertian_by_id(
            stream, type_index, normal
        )
    elif mat_type == _METAL:
        scattered_direction, attenuation, did_scatter = scatter_metal_by_id(
            stream, type_index, incident_direction, normal
        )
    elif mat_type == _DIELECTRIC:
        scattered_direction, attenuation, did_scatter = scatter_dielectric_by_id(
            stream, type_index, incident_direction, normal, front_face
        )

    return scattered_direction, attenuation, did_scatter


# =============================================================================
# Path Tracing Core
# =============================================================================


@ti.func
def background_color(direction: vec3) -> vec3:
    """Sky gradient: white at y = -1 blending to pale blue at y = +1."""
    unit_direction = normalize(direction)
    t = 0.5 * (unit_direction.y + 1.0)
    bottom = vec3(SKY_BOTTOM[0], SKY_BOTTOM[1], SKY_BOTTOM[2])
    top = vec3(SKY_TOP[0], SKY_TOP[1], SKY_TOP[2])
    return (1.0 - t) * bottom + t * top


@ti.func
def ray_color(stream: ti.i32, origin: vec3, direction: vec3, depth: ti.i32) -> vec3:
    """Estimate the radiance arriving along a ray.

    Args:
        stream: The calling worker's random stream.
        origin: Ray origin.
        direction: Ray direction (any length).
        depth: Maximum number of surface interactions. depth <= 0 yields
            black.

    Returns:
        The radiance estimate. May contain NaN or Inf for degenerate
        geometry; output_color cleans those up.
    """
    color = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    ray_origin = origin
    ray_direction = direction

    # Active flag for path continuation (no break inside ti.func loops)
    active = 1
    for _ in range(ti.max(depth, 0)):
        if active == 1:
            rec = hit_world(ray_origin, ray_direction, T_MIN, T_MAX)
            if rec.hit == 0:
                color = throughput * background_color(ray_direction)
                active = 0
            else:
                scattered_direction, attenuation, did_scatter = scatter_material(
                    stream, rec.material_id, ray_direction, rec.normal, rec.front_face
                )
                if did_scatter == 0:
                    active = 0
                else:
                    throughput *= attenuation
                    ray_origin = rec.point
                    ray_direction = scattered_direction

    return color


@ti.func
def output_color(pixel_color: vec3, samples_per_px: ti.i32):
    """Convert a radiance sum into three byte values.

    NaN components become 0, then each channel is divided by the sample
    count, gamma-2 encoded (square root), clamped to [0, 0.999] and scaled
    by 256.

    Returns:
        A 3-vector of i32 in [0, 255].
    """
    scale = 1.0 / ti.cast(samples_per_px, ti.f64)
    result = ti.Vector([0, 0, 0], dt=ti.i32)
    for k in ti.static(range(3)):
        c = pixel_color[k]
        if tm.isnan(c):
            c = 0.0
        c = ti.sqrt(scale * c)
        if tm.isnan(c):
            c = 0.0
        c = ti.min(ti.max(c, 0.0), COLOR_CLAMP_MAX)
        result[k] = ti.cast(256.0 * c, ti.i32)
    return result


@ti.func
def trace_samples(
    stream: ti.i32, row: ti.i32, col: ti.i32, num_samples: ti.i32, max_depth: ti.i32
) -> vec3:
    """Sum the radiance of num_samples jittered camera rays through a pixel.

    ``row`` is the output row (0 = top). The ray-space scanline index is
    ``height - 1 - row``, so row 0 looks along the top edge of the viewport.
    """
    width = _image_width[None]
    height = _image_height[None]
    i = height - 1 - row
    u_denom = ti.cast(ti.max(width - 1, 1), ti.f64)
    v_denom = ti.cast(ti.max(height - 1, 1), ti.f64)

    pixel_color = vec3(0.0, 0.0, 0.0)
    for _ in range(num_samples):
        u = (ti.cast(col, ti.f64) + random_double(stream)) / u_denom
        v = (ti.cast(i, ti.f64) + random_double(stream)) / v_denom
        ray = get_ray(stream, u, v)
        pixel_color += ray_color(stream, ray.origin, ray.direction, max_depth)
    return pixel_color


@ti.func
def sample_pixel(stream: ti.i32, row: ti.i32, col: ti.i32, samples_per_px: ti.i32, max_depth: ti.i32):
    """Trace and convert every sample of one pixel."""
    return output_color(trace_samples(stream, row, col, samples_per_px, max_depth), samples_per_px)


@ti.func
def _write_pixel(row: ti.i32, col: ti.i32, rgb):
    base = 3 * (_image_width[None] * row + col)
    for k in ti.static(range(3)):
        _output[base + k] = ti.cast(rgb[k], ti.u8)


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.kernel
def _render_rows(
    first_row: ti.i32,
    num_workers: ti.i32,
    col_start: ti.i32,
    col_end: ti.i32,
    samples_per_px: ti.i32,
    max_depth: ti.i32,
    serialize: ti.template(),
):
    """Worker w renders columns [col_start, col_end) of row first_row + w."""
    ti.loop_config(serialize=serialize)
    for worker in range(num_workers):
        row = first_row + worker
        if row < _image_height[None]:
            for col in range(col_start, col_end):
                _write_pixel(row, col, sample_pixel(worker, row, col, samples_per_px, max_depth))


@ti.kernel
def _trace_sample_block(
    first_row: ti.i32,
    num_workers: ti.i32,
    col_start: ti.i32,
    col_end: ti.i32,
    num_samples: ti.i32,
    max_depth: ti.i32,
    serialize: ti.template(),
):
    """Worker w sums num_samples more samples per column into _block_sum."""
    ti.loop_config(serialize=serialize)
    for worker in range(num_workers):
        row = first_row + worker
        if row < _image_height[None]:
            for col in range(col_start, col_end):
                _block_sum[worker, col] = trace_samples(worker, row, col, num_samples, max_depth)


@ti.kernel
def _clear_pixel_sums(num_workers: ti.i32, col_start: ti.i32, col_end: ti.i32):
    for worker, col in ti.ndrange(num_workers, (col_start, col_end)):
        _pixel_sum[worker, col] = vec3(0.0, 0.0, 0.0)


@ti.kernel
def _accumulate_sample_block(num_workers: ti.i32, col_start: ti.i32, col_end: ti.i32):
    for worker, col in ti.ndrange(num_workers, (col_start, col_end)):
        _pixel_sum[worker, col] += _block_sum[worker, col]


@ti.kernel
def _write_pixel_sums(
    first_row: ti.i32,
    num_workers: ti.i32,
    col_start: ti.i32,
    col_end: ti.i32,
    samples_per_px: ti.i32,
):
    for worker, col in ti.ndrange(num_workers, (col_start, col_end)):
        row = first_row + worker
        if row < _image_height[None]:
            _write_pixel(row, col, output_color(_pixel_sum[worker, col], samples_per_px))


@ti.kernel
def _trace_single_ray(origin: vec3, direction: vec3, depth: ti.i32, stream: ti.i32):
    # Serial wrapper so the loops inside ray_color stay sequential
    ti.loop_config(serialize=True)
    for _ in range(1):
        _trace_result[None] = ray_color(stream, origin, direction, depth)


@ti.kernel
def _convert_color(pixel_color: vec3, samples_per_px: ti.i32) -> ti.types.vector(3, ti.i32):
    return output_color(pixel_color, samples_per_px)


# =============================================================================
# Public Rendering API
# =============================================================================


def render_rows(
    first_row: int,
    num_workers: int,
    samples_per_px: int,
    max_depth: int,
    col_start: int = 0,
    col_end: int | None = None,
    serialize: bool = False,
) -> None:
    """Render one block of scanlines, one row per worker.

    Worker w traces row ``first_row + w`` using random stream w. Rows past
    the bottom of the image are skipped.

    Args:
        first_row: Output row (0 = top) handled by worker 0.
        num_workers: Number of workers, each with its own stream.
        samples_per_px: Samples averaged per pixel.
        max_depth: Bounce limit passed to ray_color.
        col_start: First column to render.
        col_end: One past the last column; defaults to the image width.
        serialize: Run the workers one after another instead of in
            parallel. The result is the same.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    width, _ = get_image_dimensions()
    if col_end is None:
        col_end = width
    _render_rows(first_row, num_workers, col_start, col_end, samples_per_px, max_depth, serialize)


def clear_pixel_sums(num_workers: int, col_start: int, col_end: int) -> None:
    """Zero the running radiance sums of a block of pixels."""
    _clear_pixel_sums(num_workers, col_start, col_end)


def trace_sample_block(
    first_row: int,
    num_workers: int,
    col_start: int,
    col_end: int,
    num_samples: int,
    max_depth: int,
    serialize: bool = False,
) -> None:
    """Trace part of the samples of a block of pixels, one row per worker.

    The sums land in a scratch block; accumulate_sample_block() adds them
    to the running sums, so a launch that has to be discarded leaves those
    untouched. Workers trace their columns in order and each column's
    samples consecutively, the same draw order render_rows() uses.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    _trace_sample_block(
        first_row, num_workers, col_start, col_end, num_samples, max_depth, serialize
    )


def accumulate_sample_block(num_workers: int, col_start: int, col_end: int) -> None:
    """Add the last traced block to the running sums."""
    _accumulate_sample_block(num_workers, col_start, col_end)


def write_pixel_sums(
    first_row: int, num_workers: int, col_start: int, col_end: int, samples_per_px: int
) -> None:
    """Convert the running sums of a block with output_color into the buffer.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    _write_pixel_sums(first_row, num_workers, col_start, col_end, samples_per_px)


def trace_ray(origin, direction, depth: int, stream: int = 0) -> tuple[float, float, float]:
    """Evaluate ray_color for one ray from the host.

    Python-callable for testing; the scene, materials and random streams
    must already be set up.

    Returns:
        Tuple of (R, G, B) radiance.
    """
    _trace_single_ray(vec3(*as_vector(origin)), vec3(*as_vector(direction)), depth, stream)
    color = _trace_result[None]
    return (float(color[0]), float(color[1]), float(color[2]))


def compute_output_color(pixel_color, samples_per_px: int) -> tuple[int, int, int]:
    """Apply output_color to a radiance sum from the host.

    Returns:
        Tuple of (R, G, B) byte values.
    """
    if samples_per_px < 1:
        raise ValueError(f"samples_per_px = {samples_per_px} must be at least 1")
    rgb = _convert_color(vec3(*as_vector(pixel_color)), samples_per_px)
    return (int(rgb[0]), int(rgb[1]), int(rgb[2]))
