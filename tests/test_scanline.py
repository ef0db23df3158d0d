"""Tests for scanline packing, trimming and merging."""

import numpy as np

from geomosaic.core.scanline import (
    FULL_COVERAGE,
    Scanline,
    empty_scanlines,
    make_scanlines,
    merge_scanlines,
    trim_scanlines,
)


class TestScanlineRecords:
    """Test conversion between records and scanline arrays."""

    def test_make_scanlines_defaults_alpha(self):
        """Records without a mask get full coverage."""
        lines = make_scanlines([(0, 1, 3), Scanline(2, 0, 0, 100)])
        assert lines.dtype == np.int32
        assert lines.tolist() == [[0, 1, 3, FULL_COVERAGE], [2, 0, 0, 100]]

    def test_empty(self):
        """No records give an empty (0 x 4) array."""
        assert make_scanlines([]).shape == (0, 4)
        assert empty_scanlines().shape == (0, 4)


class TestTrimScanlines:
    """Test clipping scanlines to the image bounds."""

    def test_trim_drops_and_clamps(self):
        """Rows outside the image vanish, runs are clamped, empty runs vanish."""
        lines = make_scanlines([(-1, 0, 5), (0, -3, 2), (1, 5, 9), (2, 8, 12), (3, 0, 1)])
        trimmed = trim_scanlines(lines, 8, 3)
        assert trimmed.tolist() == [
            [0, 0, 2, FULL_COVERAGE],
            [1, 5, 7, FULL_COVERAGE],
        ]

    def test_trim_does_not_modify_input(self):
        """The input array is left untouched."""
        lines = make_scanlines([(0, -3, 20)])
        trim_scanlines(lines, 10, 10)
        assert lines.tolist() == [[0, -3, 20, FULL_COVERAGE]]


class TestMergeScanlines:
    """Test sorting and merging of scanlines."""

    def test_merge_overlapping_and_touching(self):
        """Overlapping and touching runs on a row are joined."""
        lines = make_scanlines([(1, 4, 6), (0, 0, 1), (1, 2, 4), (1, 7, 7), (1, 9, 9)])
        merged = merge_scanlines(lines, 10)
        assert merged.tolist() == [
            [0, 0, 1, FULL_COVERAGE],
            [1, 2, 7, FULL_COVERAGE],
            [1, 9, 9, FULL_COVERAGE],
        ]

    def test_merge_duplicate_pixels(self):
        """Repeated single pixels collapse to one run."""
        lines = make_scanlines([(3, 4, 4), (3, 4, 4), (3, 5, 5)])
        assert merge_scanlines(lines, 10).tolist() == [[3, 4, 5, FULL_COVERAGE]]

    def test_touching_runs_with_different_masks_stay_apart(self):
        """Adjacent runs with different coverage are not joined."""
        lines = make_scanlines([(0, 0, 1, 100), (0, 2, 3, 200)])
        assert merge_scanlines(lines, 10).tolist() == [[0, 0, 1, 100], [0, 2, 3, 200]]

    def test_merge_empty(self):
        """An empty array stays empty."""
        assert merge_scanlines(empty_scanlines(), 10).shape == (0, 4)
