"""
Letterbox detection and cropping on decoded pixel buffers.

Buffers are numpy arrays shaped (height, width) or (height, width, channels).
A row or column is letterbox when every channel of every pixel in it is
<= threshold. Alpha is an ordinary channel here.
"""

from typing import Tuple

import numpy as np

from common import CropRect, InvalidRectangle, NoContent, validate_threshold


def _dark_mask(pixels: np.ndarray, threshold: int) -> np.ndarray:
    """Return a (height, width) bool mask of pixels whose channels are all <= threshold."""
    if pixels.ndim == 2:
        return pixels <= threshold
    if pixels.ndim == 3:
        return np.all(pixels <= threshold, axis=2)
    raise ValueError(f"Expected a 2-D or 3-D pixel array, got shape {pixels.shape}")


def _leading_count(is_border: np.ndarray) -> int:
    """Number of consecutive True entries at the start of a 1-D bool array."""
    # argmin finds the first False; the all-True case is handled by the caller.
    return int(np.argmin(is_border))


def find_bounds(pixels: np.ndarray, threshold: int) -> CropRect:
    """Return the rectangle left after stripping letterbox rows and columns.

    Each edge is scanned inward independently and stops at the first row or
    column that is not entirely dark. Raises NoContent when the whole image
    is letterbox.
    """
    validate_threshold(threshold)
    dark = _dark_mask(np.asarray(pixels), threshold)
    height, width = dark.shape
    if height == 0 or width == 0:
        raise NoContent(f"Image has no pixels ({width}x{height})")

    dark_rows = dark.all(axis=1)
    if dark_rows.all():
        raise NoContent(f"Every row of the {width}x{height} image is darker than {threshold}")
    dark_cols = dark.all(axis=0)

    top = _leading_count(dark_rows)
    bottom = height - _leading_count(dark_rows[::-1])
    left = _leading_count(dark_cols)
    right = width - _leading_count(dark_cols[::-1])
    return CropRect(top=top, bottom=bottom, left=left, right=right)


def check_rect(rect: CropRect, width: int, height: int) -> None:
    """Raise InvalidRectangle unless rect lies inside a width x height image with positive area."""
    if not (0 <= rect.top < rect.bottom <= height and 0 <= rect.left < rect.right <= width):
        raise InvalidRectangle(
            f"Crop rectangle {rect.to_dict()} does not fit a {width}x{height} image"
        )


def apply_crop(pixels: np.ndarray, rect: CropRect) -> np.ndarray:
    """Return a new buffer holding the pixels inside rect; pixels is left unchanged."""
    if pixels.ndim not in (2, 3):
        raise ValueError(f"Expected a 2-D or 3-D pixel array, got shape {pixels.shape}")
    height, width = pixels.shape[:2]
    check_rect(rect, width, height)
    return pixels[rect.top:rect.bottom, rect.left:rect.right].copy()


def remove_letterbox(pixels: np.ndarray, threshold: int) -> Tuple[CropRect, np.ndarray]:
    """Detect the letterbox and crop it away. Raises NoContent for fully dark images."""
    rect = find_bounds(pixels, threshold)
    return rect, apply_crop(pixels, rect)
