import numpy as np
from numba import njit

from geomosaic.core.scanline import X1_COL, X2_COL, Y_COL

# number of color channels compared per pixel (rgba)
_CHANNELS = 4
_MAX_CHANNEL = 255.0


@njit(nogil=True)
def _squared_error_sum(first: np.ndarray, second: np.ndarray) -> np.float64:
    """
    Sums the squared per-channel differences of two RGBA images

    :param first: (H x W x 4) uint8 image
    :type first: np.ndarray
    :param second: (H x W x 4) uint8 image with the same shape as `first`
    :type second: np.ndarray
    :return: The sum of squared differences over all pixels and channels
    :rtype: np.float64
    """
    height, width = first.shape[0], first.shape[1]
    total = np.float64(0.0)
    for y in range(height):
        for x in range(width):
            for c in range(_CHANNELS):
                d = np.int64(first[y, x, c]) - np.int64(second[y, x, c])
                total += d * d
    return total


def difference_full(first: np.ndarray, second: np.ndarray) -> float:
    """
    Calculates the root-mean-square channel difference of two RGBA images,
    normalized to [0, 1]

    0 means the images are identical, 1 means every channel is maximally apart

    :param first: (H x W x 4) uint8 image
    :type first: np.ndarray
    :param second: (H x W x 4) uint8 image
    :type second: np.ndarray
    :raises ValueError: If the images do not share the same (H x W x 4) shape
    :return: The normalized difference score
    :rtype: float
    """
    if first.shape != second.shape:
        raise ValueError(
            f"Images must have the same shape, got {first.shape} and {second.shape}"
        )
    if first.ndim != 3 or first.shape[2] != _CHANNELS:
        raise ValueError(f"Expected (H x W x 4) RGBA images, got shape {first.shape}")
    size = first.shape[0] * first.shape[1] * _CHANNELS
    if size == 0:
        return 0.0
    total = _squared_error_sum(first, second)
    return float(np.sqrt(total / size) / _MAX_CHANNEL)


@njit(nogil=True)
def difference_partial(
    target: np.ndarray,
    before: np.ndarray,
    after: np.ndarray,
    score: float,
    lines: np.ndarray,
) -> np.float64:
    """
    Updates a difference score after the pixels under `lines` changed

    Reconstructs the total squared error from `score`, swaps the contribution
    of every pixel on `lines` from its `before` value to its `after` value and
    renormalizes. Only the covered pixels are visited

    The result matches `difference_full(target, after)` when `before` and
    `after` agree outside `lines`, `score` is the exact score of `before`, and
    the scanlines are pairwise disjoint (as produced by `Shape.rasterize`)

    :param target: (H x W x 4) uint8 target image
    :type target: np.ndarray
    :param before: (H x W x 4) uint8 image that `score` was computed for
    :type before: np.ndarray
    :param after: (H x W x 4) uint8 image after the change
    :type after: np.ndarray
    :param score: Normalized difference between `target` and `before`
    :type score: float
    :param lines: (N x 4) int32 array of disjoint, in-bounds scanlines
    :type lines: np.ndarray
    :return: Normalized difference between `target` and `after`
    :rtype: np.float64
    """
    size = np.float64(target.shape[0] * target.shape[1] * _CHANNELS)
    if size == 0.0:
        return np.float64(0.0)
    rms = np.float64(score) * _MAX_CHANNEL
    # the true total is an integer sum of squares
    total = np.rint(rms * rms * size)
    for i in range(lines.shape[0]):
        y = lines[i, Y_COL]
        for x in range(lines[i, X1_COL], lines[i, X2_COL] + 1):
            for c in range(_CHANNELS):
                t = np.int64(target[y, x, c])
                db = t - np.int64(before[y, x, c])
                da = t - np.int64(after[y, x, c])
                total -= db * db
                total += da * da
    total = np.rint(total)
    if total < 0.0:
        total = 0.0
    return np.sqrt(total / size) / _MAX_CHANNEL


@njit(nogil=True)
def _mse(first: np.ndarray, second: np.ndarray) -> np.float64:
    size = first.shape[0] * first.shape[1] * _CHANNELS
    if size == 0:
        return np.float64(0.0)
    return _squared_error_sum(first, second) / size


def psnr(first: np.ndarray, second: np.ndarray) -> float:
    """
    Calculates the Peak Signal-to-Noise Ratio of two RGBA images, in dB

    Used for the end-of-run report only; the search scores with `difference_full`

    :param first: (H x W x 4) uint8 image
    :type first: np.ndarray
    :param second: (H x W x 4) uint8 image with the same shape
    :type second: np.ndarray
    :raises ValueError: If the shapes differ
    :return: The PSNR value, or inf for identical images
    :rtype: float
    """
    if first.shape != second.shape:
        raise ValueError("PSNR: Input images must have the same shape")
    mse_val = float(_mse(first, second))
    if mse_val <= 1e-10:
        return float("inf")
    return float(20.0 * np.log10(_MAX_CHANNEL) - 10.0 * np.log10(mse_val))


# metrics printed in the final run report, keyed by display name
REPORT_METRICS = {
    "difference": difference_full,
    "psnr": psnr,
}
