"""Camera module for primary ray generation.

Ray generation uses normalized image coordinates:
    s in [0, 1]: left to right across the image
    t in [0, 1]: bottom to top across the image
"""

from .thin_lens import (
    ThinLensCamera,
    clear_camera,
    get_active_camera,
    get_camera_info,
    get_ray,
    setup_camera,
)

__all__ = [
    "ThinLensCamera",
    "setup_camera",
    "clear_camera",
    "get_active_camera",
    "get_ray",
    "get_camera_info",
]
