"""Pytest configuration and fixtures."""

import numpy as np
import pytest


def solid(width: int, height: int, color) -> np.ndarray:
    """Create an RGBA bitmap filled with one color."""
    bitmap = np.empty((height, width, 4), dtype=np.uint8)
    bitmap[:, :] = color
    return bitmap


def assert_lines_valid(lines: np.ndarray, width: int, height: int):
    """Check that scanlines lie inside the image and never overlap."""
    assert lines.dtype == np.int32
    assert lines.ndim == 2 and lines.shape[1] == 4
    previous = None
    for y, x1, x2, _ in lines:
        assert 0 <= y < height
        assert 0 <= x1 <= x2 < width
        if previous is not None and previous[0] == y:
            assert x1 > previous[2], "runs on the same row overlap"
        if previous is not None:
            assert (y, x1) > (previous[0], previous[1]), "runs are not sorted"
        previous = (y, x1, x2)


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(12345)


@pytest.fixture
def noise_target(rng):
    """Random opaque 24x20 RGBA target."""
    target = rng.integers(0, 256, size=(20, 24, 4), dtype=np.uint8)
    target[:, :, 3] = 255
    return target


@pytest.fixture
def gradient_target():
    """Smooth opaque 32x24 RGBA gradient."""
    ys, xs = np.mgrid[0:24, 0:32]
    target = np.empty((24, 32, 4), dtype=np.uint8)
    target[:, :, 0] = (xs * 255) // 31
    target[:, :, 1] = (ys * 255) // 23
    target[:, :, 2] = 128
    target[:, :, 3] = 255
    return target
