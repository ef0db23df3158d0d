import numpy as np
from numba import njit

from geomosaic.core.scanline import FULL_COVERAGE

# sentinels for rows the polygon outline never reaches
_EMPTY_LEFT = 1 << 62
_EMPTY_RIGHT = -(1 << 62)


@njit(nogil=True)
def bresenham(x1: int, y1: int, x2: int, y2: int) -> np.ndarray:
    """
    Computes the integer points on the line from (x1, y1) to (x2, y2) using
    Bresenham's line algorithm

    Both endpoints are included. Coordinates are not clipped

    :param x1: x-coordinate of the start point
    :type x1: int
    :param y1: y-coordinate of the start point
    :type y1: int
    :param x2: x-coordinate of the end point
    :type x2: int
    :param y2: y-coordinate of the end point
    :type y2: int
    :return: (K x 2) int64 array of (x, y) points, in drawing order
    :rtype: np.ndarray
    """
    dx, dy = abs(x2 - x1), abs(y2 - y1)
    sx = 1 if x1 < x2 else -1
    sy = 1 if y1 < y2 else -1
    err = dx - dy
    points = np.empty((max(dx, dy) + 1, 2), dtype=np.int64)
    x, y = x1, y1
    count = 0
    while True:
        points[count, 0] = x
        points[count, 1] = y
        count += 1
        if x == x2 and y == y2:  # endpoint reached
            break
        e2 = 2 * err
        if e2 > -dy:
            err -= dy
            x += sx
        if e2 < dx:
            err += dx
            y += sy
    return points[:count]


@njit(nogil=True)
def polyline_scanlines(points: np.ndarray) -> np.ndarray:
    """
    Rasterizes an open chain of segments through `points` as unit-width scanlines

    Each point is joined to the next one; the last point is joined to itself,
    so a single point still produces one pixel. One scanline is emitted per
    touched pixel, and pixels shared by consecutive segments appear twice

    :param points: (K x 2) int64 array of (x, y) control points
    :type points: np.ndarray
    :return: (N x 4) int32 scanline array, not trimmed
    :rtype: np.ndarray
    """
    k = points.shape[0]
    total = 0
    for i in range(k):
        j = i + 1 if i < k - 1 else i
        dx = abs(points[j, 0] - points[i, 0])
        dy = abs(points[j, 1] - points[i, 1])
        total += max(dx, dy) + 1

    lines = np.empty((total, 4), dtype=np.int32)
    count = 0
    for i in range(k):
        j = i + 1 if i < k - 1 else i
        segment = bresenham(points[i, 0], points[i, 1], points[j, 0], points[j, 1])
        for p in range(segment.shape[0]):
            lines[count, 0] = segment[p, 1]
            lines[count, 1] = segment[p, 0]
            lines[count, 2] = segment[p, 0]
            lines[count, 3] = FULL_COVERAGE
            count += 1
    return lines[:count]


@njit(nogil=True)
def convex_polygon_scanlines(points: np.ndarray) -> np.ndarray:
    """
    Rasterizes a filled convex polygon as one scanline per covered row

    The outline is traced with Bresenham segments between consecutive vertices
    (closing back to the first), and each row is filled between the leftmost
    and rightmost outline pixels on it

    :param points: (K x 2) int64 array of (x, y) vertices, K >= 1
    :type points: np.ndarray
    :return: (N x 4) int32 scanline array ordered by row, not trimmed
    :rtype: np.ndarray
    """
    k = points.shape[0]
    y_min = points[0, 1]
    y_max = points[0, 1]
    for i in range(1, k):
        y_min = min(y_min, points[i, 1])
        y_max = max(y_max, points[i, 1])
    rows = y_max - y_min + 1

    # per-row extent of the outline, empty rows keep left > right
    left = np.empty(rows, dtype=np.int64)
    right = np.empty(rows, dtype=np.int64)
    for r in range(rows):
        left[r] = _EMPTY_LEFT
        right[r] = _EMPTY_RIGHT

    for i in range(k):
        j = (i + 1) % k
        edge = bresenham(points[i, 0], points[i, 1], points[j, 0], points[j, 1])
        for p in range(edge.shape[0]):
            r = edge[p, 1] - y_min
            if edge[p, 0] < left[r]:
                left[r] = edge[p, 0]
            if edge[p, 0] > right[r]:
                right[r] = edge[p, 0]

    lines = np.empty((rows, 4), dtype=np.int32)
    count = 0
    for r in range(rows):
        if left[r] > right[r]:
            continue
        lines[count, 0] = y_min + r
        lines[count, 1] = left[r]
        lines[count, 2] = right[r]
        lines[count, 3] = FULL_COVERAGE
        count += 1
    return lines[:count]


@njit(nogil=True)
def ellipse_scanlines(cx: int, cy: int, rx: int, ry: int) -> np.ndarray:
    """
    Rasterizes an axis-aligned filled ellipse centred on (cx, cy)

    Rows run from cy - ry + 1 to cy + ry - 1; each row spans the half-width
    of the ellipse at that height, truncated to an integer

    :param cx: x-coordinate of the centre
    :type cx: int
    :param cy: y-coordinate of the centre
    :type cy: int
    :param rx: Horizontal radius, >= 1
    :type rx: int
    :param ry: Vertical radius, >= 1
    :type ry: int
    :return: (N x 4) int32 scanline array, not trimmed
    :rtype: np.ndarray
    """
    if rx < 1 or ry < 1:
        return np.empty((0, 4), dtype=np.int32)
    aspect = np.float64(rx) / np.float64(ry)
    lines = np.empty((2 * ry, 4), dtype=np.int32)
    count = 0
    for dy in range(ry):
        half_width = np.int64(np.sqrt(np.float64(ry * ry - dy * dy)) * aspect)
        x1 = cx - half_width
        x2 = cx + half_width
        lines[count, 0] = cy - dy
        lines[count, 1] = x1
        lines[count, 2] = x2
        lines[count, 3] = FULL_COVERAGE
        count += 1
        if dy > 0:  # the centre row is only emitted once
            lines[count, 0] = cy + dy
            lines[count, 1] = x1
            lines[count, 2] = x2
            lines[count, 3] = FULL_COVERAGE
            count += 1
    return lines[:count]
