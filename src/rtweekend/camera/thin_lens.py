"""Thin-lens camera model with depth of field.

The camera builds an orthonormal basis (u, v, w) from the view parameters:
- w: points from lookat toward lookfrom (opposite view direction)
- u: points right in the image plane
- v: points up in the image plane

The viewport sits focus_dist away from the eye along -w and spans
``2*tan(vfov/2)`` by ``aspect_ratio`` times that, both scaled by focus_dist.
Rays start at a random point on a lens disk of radius aperture/2 and pass
through the viewport point for (s, t), so only objects at focus_dist are
sharp. With aperture 0 the camera is a pinhole.

The basis is computed once on the host in double precision and stored in
Taichi fields that every worker reads.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.camera.thin_lens import ThinLensCamera, setup_camera
    >>> camera = ThinLensCamera(
    ...     lookfrom=(13.0, 2.0, 3.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     vfov=20.0,
    ...     aspect_ratio=3.0 / 2.0,
    ...     aperture=0.1,
    ...     focus_dist=10.0,
    ... )
    >>> setup_camera(camera)
    >>> # Within a Taichi kernel: ray = get_ray(stream, s, t)
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import taichi as ti

from ..core.ray import Ray, make_ray, random_in_unit_disk, vec3

logger = logging.getLogger(__name__)

# =============================================================================
# Camera Data Structures
# =============================================================================


@dataclass(frozen=True)
class ThinLensCamera:
    """Configuration for a thin-lens perspective camera.

    Attributes:
        lookfrom: Eye position in world space.
        lookat: Point the camera looks at.
        vup: Approximate up direction; must not be parallel to the view.
        vfov: Vertical field of view in degrees, in (0, 180).
        aspect_ratio: Image width divided by height.
        aperture: Lens diameter. 0 disables depth of field.
        focus_dist: Distance from the eye to the plane in focus.
    """

    lookfrom: tuple[float, float, float]
    lookat: tuple[float, float, float]
    vup: tuple[float, float, float] = (0.0, 1.0, 0.0)
    vfov: float = 90.0
    aspect_ratio: float = 16.0 / 9.0
    aperture: float = 0.0
    focus_dist: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 < self.vfov < 180.0:
            raise ValueError(f"vfov = {self.vfov} must be in (0, 180) degrees")
        if not self.aspect_ratio > 0.0:
            raise ValueError(f"aspect_ratio = {self.aspect_ratio} must be positive")
        if self.aperture < 0.0:
            raise ValueError(f"aperture = {self.aperture} must be non-negative")
        if not self.focus_dist > 0.0:
            raise ValueError(f"focus_dist = {self.focus_dist} must be positive")

    @property
    def lens_radius(self) -> float:
        return self.aperture / 2.0


# =============================================================================
# Taichi Fields for Camera State
# =============================================================================

_camera_origin = ti.Vector.field(3, dtype=ti.f64, shape=())

# Orthonormal basis vectors
_camera_u = ti.Vector.field(3, dtype=ti.f64, shape=())  # Right
_camera_v = ti.Vector.field(3, dtype=ti.f64, shape=())  # Up
_camera_w = ti.Vector.field(3, dtype=ti.f64, shape=())  # Backward (opposite view)

# Viewport on the focus plane
_viewport_horizontal = ti.Vector.field(3, dtype=ti.f64, shape=())
_viewport_vertical = ti.Vector.field(3, dtype=ti.f64, shape=())
_lower_left_corner = ti.Vector.field(3, dtype=ti.f64, shape=())

_lens_radius = ti.field(dtype=ti.f64, shape=())

_active_camera: ThinLensCamera | None = None


# =============================================================================
# Camera Setup (host side, once per configuration)
# =============================================================================


def _unit(vector: np.ndarray, name: str) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm == 0.0 or not np.isfinite(norm):
        raise ValueError(f"Camera {name} vector is degenerate: {vector.tolist()}")
    return vector / norm


def setup_camera(camera: ThinLensCamera) -> None:
    """Compute the camera basis and viewport and store them for kernels.

    Args:
        camera: The camera configuration.

    Raises:
        ValueError: If lookfrom equals lookat or vup is parallel to the
            view direction.
    """
    global _active_camera

    theta = math.radians(camera.vfov)
    h = math.tan(theta / 2.0)
    viewport_height = 2.0 * h
    viewport_width = camera.aspect_ratio * viewport_height

    lookfrom = np.array(camera.lookfrom, dtype=np.float64)
    lookat = np.array(camera.lookat, dtype=np.float64)
    vup = np.array(camera.vup, dtype=np.float64)

    w = _unit(lookfrom - lookat, "view")
    u = _unit(np.cross(vup, w), "up")
    v = np.cross(w, u)

    horizontal = camera.focus_dist * viewport_width * u
    vertical = camera.focus_dist * viewport_height * v
    lower_left = lookfrom - horizontal / 2.0 - vertical / 2.0 - camera.focus_dist * w

    _camera_origin[None] = lookfrom.tolist()
    _camera_u[None] = u.tolist()
    _camera_v[None] = v.tolist()
    _camera_w[None] = w.tolist()
    _viewport_horizontal[None] = horizontal.tolist()
    _viewport_vertical[None] = vertical.tolist()
    _lower_left_corner[None] = lower_left.tolist()
    _lens_radius[None] = camera.lens_radius

    _active_camera = camera
    logger.debug("Camera set up: %s", camera)


def clear_camera() -> None:
    """Forget the active camera. Rendering requires a new setup_camera call."""
    global _active_camera
    _active_camera = None


def get_active_camera() -> ThinLensCamera | None:
    """Get the configuration passed to the last setup_camera call."""
    return _active_camera


# =============================================================================
# Ray Generation
# =============================================================================


@ti.func
def get_ray(stream: ti.i32, s: ti.f64, t: ti.f64) -> Ray:
    """Generate a ray through normalized image coordinates (s, t).

    s = 0 is the left edge and t = 0 the bottom edge of the image. Two
    draws are taken from the stream for the lens sample, even when the
    aperture is 0.

    Args:
        stream: The calling worker's random stream.
        s: Horizontal coordinate in [0, 1].
        t: Vertical coordinate in [0, 1].

    Returns:
        A ray from a point on the lens toward the focus plane. The
        direction is not normalized.
    """
    rd = _lens_radius[None] * random_in_unit_disk(stream)
    offset = _camera_u[None] * rd.x + _camera_v[None] * rd.y

    origin = _camera_origin[None] + offset
    direction = (
        _lower_left_corner[None]
        + s * _viewport_horizontal[None]
        + t * _viewport_vertical[None]
        - _camera_origin[None]
        - offset
    )
    return make_ray(origin, direction)


# =============================================================================
# Utility Functions
# =============================================================================


def get_camera_info() -> dict[str, tuple[float, float, float] | float]:
    """Get the derived camera state for debugging.

    Returns:
        Dictionary with origin, u, v, w, horizontal, vertical, lower_left
        and lens_radius.
    """

    def _tuple(field) -> tuple[float, float, float]:
        value = field[None]
        return (float(value[0]), float(value[1]), float(value[2]))

    return {
        "origin": _tuple(_camera_origin),
        "u": _tuple(_camera_u),
        "v": _tuple(_camera_v),
        "w": _tuple(_camera_w),
        "horizontal": _tuple(_viewport_horizontal),
        "vertical": _tuple(_viewport_vertical),
        "lower_left": _tuple(_lower_left_corner),
        "lens_radius": float(_lens_radius[None]),
    }
