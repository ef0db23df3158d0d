import numpy as np
from typing import Iterable, NamedTuple
from numba import njit

# column layout of a scanline array: one row per run
Y_COL, X1_COL, X2_COL, ALPHA_COL = 0, 1, 2, 3
# coverage mask value for a fully covered run
FULL_COVERAGE = 0xFFFF


class Scanline(NamedTuple):
    """
    A horizontal run of pixels on row `y`, spanning `x1` to `x2` inclusive

    `alpha` is the coverage mask of the run in [0, 65535]; compositing scales
    the blended color by it
    """

    y: int
    x1: int
    x2: int
    alpha: int = FULL_COVERAGE


def empty_scanlines() -> np.ndarray:
    """Returns an empty (0 x 4) int32 scanline array"""
    return np.empty((0, 4), dtype=np.int32)


def make_scanlines(lines: Iterable) -> np.ndarray:
    """
    Packs scanline records into the (N x 4) int32 array used by the kernels

    :param lines: Iterable of `Scanline` values or (y, x1, x2[, alpha]) tuples
    :type lines: Iterable
    :return: Array with one (y, x1, x2, alpha) row per input record
    :rtype: np.ndarray
    """
    rows = [tuple(Scanline(*line)) for line in lines]
    if not rows:
        return empty_scanlines()
    return np.array(rows, dtype=np.int32).reshape(-1, 4)


@njit(nogil=True)
def trim_scanlines(lines: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Clips scanlines to the image bounds [0, width) x [0, height)

    Runs on rows outside the image are dropped, runs that cross the left or
    right edge are truncated, and runs that end up empty are dropped

    :param lines: (N x 4) int32 scanline array, in any order
    :type lines: np.ndarray
    :param width: Image width in pixels
    :type width: int
    :param height: Image height in pixels
    :type height: int
    :return: A new (M x 4) int32 array with M <= N, preserving input order
    :rtype: np.ndarray
    """
    trimmed = np.empty_like(lines)
    count = 0
    for i in range(lines.shape[0]):
        y = lines[i, Y_COL]
        if y < 0 or y >= height:
            continue
        x1 = max(lines[i, X1_COL], 0)
        x2 = min(lines[i, X2_COL], width - 1)
        if x1 > x2:
            continue
        trimmed[count, Y_COL] = y
        trimmed[count, X1_COL] = x1
        trimmed[count, X2_COL] = x2
        trimmed[count, ALPHA_COL] = lines[i, ALPHA_COL]
        count += 1
    return trimmed[:count].copy()


@njit(nogil=True)
def merge_scanlines(lines: np.ndarray, width: int) -> np.ndarray:
    """
    Sorts scanlines by (y, x1) and merges runs that overlap on the same row

    Touching runs are joined only when their coverage masks agree; overlapping
    runs are joined keeping the larger mask. The output rows are pairwise
    disjoint, so every covered pixel appears exactly once

    :param lines: (N x 4) int32 scanline array, already trimmed to [0, width)
    :type lines: np.ndarray
    :param width: Image width in pixels, used to build the sort key
    :type width: int
    :return: A new (M x 4) int32 array of disjoint runs in row-major order
    :rtype: np.ndarray
    """
    n = lines.shape[0]
    if n == 0:
        return lines.copy()
    keys = np.empty(n, dtype=np.int64)
    for i in range(n):
        keys[i] = np.int64(lines[i, Y_COL]) * (width + 1) + lines[i, X1_COL]
    order = np.argsort(keys, kind="mergesort")

    merged = np.empty_like(lines)
    count = 0
    for k in range(n):
        src = order[k]
        y = lines[src, Y_COL]
        x1 = lines[src, X1_COL]
        x2 = lines[src, X2_COL]
        alpha = lines[src, ALPHA_COL]
        if count > 0 and merged[count - 1, Y_COL] == y:
            last_x2 = merged[count - 1, X2_COL]
            overlaps = x1 <= last_x2
            touches = x1 == last_x2 + 1 and merged[count - 1, ALPHA_COL] == alpha
            if overlaps or touches:
                if x2 > last_x2:
                    merged[count - 1, X2_COL] = x2
                if alpha > merged[count - 1, ALPHA_COL]:
                    merged[count - 1, ALPHA_COL] = alpha
                continue
        merged[count, Y_COL] = y
        merged[count, X1_COL] = x1
        merged[count, X2_COL] = x2
        merged[count, ALPHA_COL] = alpha
        count += 1
    return merged[:count].copy()
