#!/usr/bin/env python3
"""
Unit tests for letterbox detection and cropping.
"""

import numpy as np
import pytest

from common import CropRect, InvalidRectangle, NoContent
from letterbox import apply_crop, find_bounds, remove_letterbox


def _letterboxed(
    width: int,
    height: int,
    top: int = 0,
    bottom: int = 0,
    left: int = 0,
    right: int = 0,
    border=(0, 0, 0),
    content=(200, 200, 200),
) -> np.ndarray:
    """Build an image with dark bands of the given depth on each side."""
    pixels = np.empty((height, width, len(content)), dtype=np.uint8)
    pixels[:, :] = border
    pixels[top:height - bottom, left:width - right] = content
    return pixels


def test_no_border_returns_full_rectangle():
    pixels = _letterboxed(40, 30)
    rect = find_bounds(pixels, 10)
    assert rect == CropRect(top=0, bottom=30, left=0, right=40)
    assert rect.is_full(40, 30)

    cropped = apply_crop(pixels, rect)
    assert cropped.shape == pixels.shape
    assert np.array_equal(cropped, pixels)
    assert cropped is not pixels


def test_solid_dark_image_has_no_content():
    pixels = np.full((20, 20, 3), 7, dtype=np.uint8)
    with pytest.raises(NoContent):
        find_bounds(pixels, 10)


def test_value_equal_to_threshold_counts_as_dark():
    pixels = np.full((10, 10, 3), 10, dtype=np.uint8)
    with pytest.raises(NoContent):
        find_bounds(pixels, 10)
    assert find_bounds(pixels, 9).is_full(10, 10)


@pytest.mark.parametrize("depth", [1, 3, 12])
def test_uniform_border_depth(depth: int):
    width, height = 64, 48
    pixels = _letterboxed(width, height, depth, depth, depth, depth)
    rect = find_bounds(pixels, 10)
    assert rect == CropRect(top=depth, bottom=height - depth, left=depth, right=width - depth)


def test_asymmetric_top_border():
    pixels = _letterboxed(50, 40, top=5)
    rect = find_bounds(pixels, 10)
    assert (rect.top, rect.bottom, rect.left, rect.right) == (5, 40, 0, 50)


def test_asymmetric_left_and_right_borders():
    pixels = _letterboxed(50, 40, left=3, right=11)
    rect = find_bounds(pixels, 10)
    assert (rect.top, rect.bottom, rect.left, rect.right) == (0, 40, 3, 39)


def test_hundred_pixel_letterbox_scenario():
    pixels = _letterboxed(100, 100, top=10, bottom=10)
    rect, cropped = remove_letterbox(pixels, 10)
    assert (rect.top, rect.bottom, rect.left, rect.right) == (10, 90, 0, 100)
    assert cropped.shape[:2] == (80, 100)


def test_second_pass_does_not_crop_further():
    pixels = _letterboxed(60, 60, top=8, bottom=4, left=2, right=6)
    _, once = remove_letterbox(pixels, 10)
    rect, twice = remove_letterbox(once, 10)
    assert rect.is_full(once.shape[1], once.shape[0])
    assert np.array_equal(once, twice)


def test_crop_preserves_pixels_inside_rectangle():
    rng = np.random.default_rng(1234)
    pixels = rng.integers(0, 256, size=(30, 40, 3), dtype=np.uint8)
    original = pixels.copy()
    rect = CropRect(top=4, bottom=25, left=7, right=33)

    cropped = apply_crop(pixels, rect)

    assert cropped.shape == (21, 26, 3)
    for y in range(rect.height):
        for x in range(rect.width):
            assert tuple(cropped[y, x]) == tuple(pixels[y + rect.top, x + rect.left])
    assert np.array_equal(pixels, original)


def test_single_bright_pixel_in_dark_image():
    pixels = np.zeros((20, 30, 3), dtype=np.uint8)
    pixels[7, 12] = (0, 0, 90)
    rect = find_bounds(pixels, 10)
    assert rect == CropRect(top=7, bottom=8, left=12, right=13)


def test_alpha_channel_is_an_ordinary_channel():
    opaque_black = _letterboxed(20, 20, top=4, border=(0, 0, 0, 255), content=(200, 200, 200, 255))
    assert find_bounds(opaque_black, 10).is_full(20, 20)

    transparent_black = _letterboxed(20, 20, top=4, border=(0, 0, 0, 0), content=(200, 200, 200, 255))
    assert find_bounds(transparent_black, 10).top == 4


def test_grayscale_buffer():
    pixels = np.zeros((16, 16), dtype=np.uint8)
    pixels[2:14, :] = 128
    rect, cropped = remove_letterbox(pixels, 10)
    assert rect == CropRect(top=2, bottom=14, left=0, right=16)
    assert cropped.shape == (12, 16)


def test_one_bright_channel_breaks_the_border():
    pixels = _letterboxed(10, 10, top=3)
    pixels[1, 5] = (0, 11, 0)
    assert find_bounds(pixels, 10).top == 1


@pytest.mark.parametrize(
    "rect",
    [
        CropRect(top=5, bottom=5, left=0, right=10),
        CropRect(top=0, bottom=10, left=6, right=2),
        CropRect(top=-1, bottom=10, left=0, right=10),
        CropRect(top=0, bottom=11, left=0, right=10),
        CropRect(top=0, bottom=10, left=0, right=12),
    ],
)
def test_apply_crop_rejects_invalid_rectangles(rect: CropRect):
    pixels = _letterboxed(10, 10)
    with pytest.raises(InvalidRectangle):
        apply_crop(pixels, rect)


@pytest.mark.parametrize("threshold", [-1, 256, 3.5])
def test_find_bounds_rejects_bad_threshold(threshold):
    with pytest.raises(ValueError):
        find_bounds(_letterboxed(5, 5), threshold)


def test_find_bounds_is_deterministic():
    pixels = _letterboxed(33, 21, top=2, bottom=1, left=4)
    assert find_bounds(pixels, 10) == find_bounds(pixels, 10)
