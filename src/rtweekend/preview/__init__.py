"""Preview module: writing the rendered byte buffer to image files.

Example:
    >>> from src.rtweekend.preview import save_image
    >>> save_image(buffer, width, height, "image.png")
"""

from .export import (
    PPM_MAX_VALUE,
    buffer_to_image,
    save_image,
    save_png,
    save_ppm,
    write_ppm,
)

__all__ = [
    "PPM_MAX_VALUE",
    "buffer_to_image",
    "write_ppm",
    "save_ppm",
    "save_png",
    "save_image",
]
