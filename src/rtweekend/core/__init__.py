"""Core rendering module.

Components:
    ray: Ray type, double-precision vector helpers and sampling utilities
    sampler: Per-worker random streams (fast LCG and OS-entropy backends)
    integrator: The ray_color path integrator and scanline kernels
    renderer: RenderParams and the ScanlineRenderer scheduler

All per-ray work runs in Taichi functions and kernels; the host side only
prepares fields, schedules passes and refills random buffers.
"""

from .ray import (
    Ray,
    as_vector,
    cross,
    dot,
    length,
    length_squared,
    make_ray,
    near_zero,
    normalize,
    random_in_unit_disk,
    random_in_unit_sphere,
    random_unit_vector,
    random_vec3,
    random_vec3_range,
    ray_at,
    reflect,
    refract,
    schlick_fresnel,
    vec3,
)
from .sampler import (
    DEFAULT_SEED,
    MAX_STREAMS,
    RAND_BUF_SIZE,
    SCENE_SPAWN_KEY,
    RandomBackend,
    RandomSource,
    RandomSourceError,
    get_random_backend,
    get_stream_count,
    random_double,
    random_double_range,
    release_random_streams,
    setup_random_streams,
)

# Note: integrator and renderer are NOT imported here to avoid circular imports.
# Import directly from src.rtweekend.core.integrator or src.rtweekend.core.renderer.

__all__ = [
    "Ray",
    "ray_at",
    "make_ray",
    "vec3",
    "as_vector",
    "length",
    "length_squared",
    "normalize",
    "dot",
    "cross",
    "reflect",
    "refract",
    "schlick_fresnel",
    "near_zero",
    "random_vec3",
    "random_vec3_range",
    "random_in_unit_sphere",
    "random_unit_vector",
    "random_in_unit_disk",
    "RandomBackend",
    "RandomSource",
    "RandomSourceError",
    "DEFAULT_SEED",
    "MAX_STREAMS",
    "RAND_BUF_SIZE",
    "SCENE_SPAWN_KEY",
    "setup_random_streams",
    "release_random_streams",
    "get_random_backend",
    "get_stream_count",
    "random_double",
    "random_double_range",
]
