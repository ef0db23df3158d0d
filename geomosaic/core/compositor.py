import numpy as np
from numba import njit
from typing import Sequence, Tuple

from geomosaic.core.scanline import ALPHA_COL, X1_COL, X2_COL, Y_COL

# largest 16-bit channel value
_MAX_16 = 65535


@njit(nogil=True)
def _compute_color(
    target: np.ndarray, current: np.ndarray, lines: np.ndarray, alpha: int
) -> np.ndarray:
    totals = np.zeros(3, dtype=np.int64)
    count = np.int64(0)
    a = np.int64(257 * 255 // alpha)
    for i in range(lines.shape[0]):
        y = lines[i, Y_COL]
        for x in range(lines[i, X1_COL], lines[i, X2_COL] + 1):
            for c in range(3):
                t = np.int64(target[y, x, c])
                cur = np.int64(current[y, x, c])
                totals[c] += (t - cur) * a + cur * 257
            count += 1

    color = np.zeros(4, dtype=np.int64)
    if count == 0:
        return color
    for c in range(3):
        # floor division, matching the integer arithmetic for negative sums
        value = (totals[c] // count) >> 8
        color[c] = min(255, max(0, value))
    color[3] = alpha
    return color


def compute_color(
    target: np.ndarray, current: np.ndarray, lines: np.ndarray, alpha: int
) -> Tuple[int, int, int, int]:
    """
    Calculates the color that, blended at `alpha` over `current`, best
    approximates `target` on the pixels under `lines`

    Each RGB channel is the least-squares optimum of the blend equation,
    computed in 16-bit fixed point and clamped to [0, 255]

    :param target: (H x W x 4) uint8 target image
    :type target: np.ndarray
    :param current: (H x W x 4) uint8 canvas the color will be blended onto
    :type current: np.ndarray
    :param lines: (N x 4) int32 in-bounds scanline array
    :type lines: np.ndarray
    :param alpha: Opacity of the shape, in [1, 255]
    :type alpha: int
    :raises ValueError: If `alpha` is outside [1, 255]
    :return: (r, g, b, alpha), or (0, 0, 0, 0) when `lines` covers no pixel
    :rtype: Tuple[int, int, int, int]
    """
    if not 1 <= int(alpha) <= 255:
        raise ValueError(f"Alpha must be in [1, 255], got {alpha}")
    color = _compute_color(target, current, lines, int(alpha))
    return tuple(int(v) for v in color)


@njit(nogil=True)
def _draw_lines(image: np.ndarray, color: np.ndarray, lines: np.ndarray):
    a = np.int64(color[3])
    # premultiplied 16-bit source channels
    sr = np.int64(color[0]) * 257 * a // 255
    sg = np.int64(color[1]) * 257 * a // 255
    sb = np.int64(color[2]) * 257 * a // 255
    sa = a * 257
    for i in range(lines.shape[0]):
        y = lines[i, Y_COL]
        ma = np.int64(lines[i, ALPHA_COL])
        inv = (_MAX_16 - sa * ma // _MAX_16) * 257
        for x in range(lines[i, X1_COL], lines[i, X2_COL] + 1):
            dr = np.int64(image[y, x, 0])
            dg = np.int64(image[y, x, 1])
            db = np.int64(image[y, x, 2])
            da = np.int64(image[y, x, 3])
            image[y, x, 0] = ((dr * inv + sr * ma) // _MAX_16) >> 8
            image[y, x, 1] = ((dg * inv + sg * ma) // _MAX_16) >> 8
            image[y, x, 2] = ((db * inv + sb * ma) // _MAX_16) >> 8
            image[y, x, 3] = ((da * inv + sa * ma) // _MAX_16) >> 8


def draw_lines(image: np.ndarray, color: Sequence[int], lines: np.ndarray):
    """
    Alpha-blends `color` onto `image` in place over the pixels under `lines`

    Uses premultiplied 16-bit arithmetic scaled by each scanline's coverage
    mask. Pixels outside `lines` are left untouched. With an alpha of 255 the
    blend is idempotent: drawing the same color and lines again changes nothing

    :param image: (H x W x 4) uint8 image, modified in place
    :type image: np.ndarray
    :param color: (r, g, b, a) with every component in [0, 255]
    :type color: Sequence[int]
    :param lines: (N x 4) int32 in-bounds scanline array
    :type lines: np.ndarray
    """
    _draw_lines(image, np.asarray(color, dtype=np.uint8), lines)


@njit(nogil=True)
def copy_lines(destination: np.ndarray, source: np.ndarray, lines: np.ndarray):
    """
    Copies the pixels under `lines` from `source` into `destination`

    :param destination: (H x W x 4) uint8 image, modified in place
    :type destination: np.ndarray
    :param source: (H x W x 4) uint8 image with the same shape
    :type source: np.ndarray
    :param lines: (N x 4) int32 in-bounds scanline array
    :type lines: np.ndarray
    """
    for i in range(lines.shape[0]):
        y = lines[i, Y_COL]
        x1 = lines[i, X1_COL]
        x2 = lines[i, X2_COL] + 1
        destination[y, x1:x2, :] = source[y, x1:x2, :]
