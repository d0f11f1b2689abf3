"""Image export for rendered byte buffers.

Supported formats:
    - PPM, plain-text ``P3`` variant (one "R G B" line per pixel)
    - PNG (8-bit RGB via Pillow)

The renderer's buffer is already gamma encoded and quantised, so both
writers store the bytes unchanged.

Example:
    >>> from src.rtweekend.preview.export import save_png, save_ppm
    >>> buffer = renderer.render(world, camera)
    >>> save_ppm(buffer, renderer.width, renderer.height, "image.ppm")
    >>> save_png(buffer, renderer.width, renderer.height, "image.png")
"""

from __future__ import annotations

import os
from typing import TextIO

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

# Maximum channel value written in the PPM header
PPM_MAX_VALUE = 255


def buffer_to_image(buffer: npt.ArrayLike, width: int, height: int) -> npt.NDArray[np.uint8]:
    """Reshape a flat RGB buffer into a (height, width, 3) image.

    Args:
        buffer: 3 * width * height bytes, top row first.
        width: Image width in pixels.
        height: Image height in pixels.

    Returns:
        A uint8 array of shape (height, width, 3).

    Raises:
        ValueError: If the buffer length does not match the dimensions.
    """
    pixels = np.asarray(buffer, dtype=np.uint8).reshape(-1)
    expected = 3 * width * height
    if pixels.size != expected:
        raise ValueError(
            f"Buffer holds {pixels.size} bytes, expected {expected} for {width}x{height}"
        )
    return pixels.reshape(height, width, 3)


def write_ppm(buffer: npt.ArrayLike, width: int, height: int, stream: TextIO) -> None:
    """Write a buffer as a plain-text PPM to an open text stream.

    Args:
        buffer: 3 * width * height bytes, top row first.
        width: Image width in pixels.
        height: Image height in pixels.
        stream: Destination, e.g. an open file or sys.stdout.
    """
    pixels = buffer_to_image(buffer, width, height).reshape(-1, 3)
    stream.write(f"P3\n{width} {height}\n{PPM_MAX_VALUE}\n")
    stream.writelines(f"{r} {g} {b}\n" for r, g, b in pixels.tolist())


def save_ppm(buffer: npt.ArrayLike, width: int, height: int, filepath: str | os.PathLike) -> None:
    """Save a buffer as a plain-text PPM file."""
    with open(filepath, "w", encoding="ascii", newline="\n") as f:
        write_ppm(buffer, width, height, f)


def save_png(buffer: npt.ArrayLike, width: int, height: int, filepath: str | os.PathLike) -> None:
    """Save a buffer as an 8-bit RGB PNG file."""
    image = buffer_to_image(buffer, width, height)
    PILImage.fromarray(image).save(filepath)


def save_image(buffer: npt.ArrayLike, width: int, height: int, filepath: str | os.PathLike) -> None:
    """Save a buffer, picking the format from the file extension.

    Raises:
        ValueError: If the extension is neither .ppm nor .png.
    """
    extension = os.path.splitext(os.fspath(filepath))[1].lower()
    if extension == ".ppm":
        save_ppm(buffer, width, height, filepath)
    elif extension == ".png":
        save_png(buffer, width, height, filepath)
    else:
        raise ValueError(f"Unsupported image format {extension!r}; use .ppm or .png")
