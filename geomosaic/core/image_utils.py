import imageio.v3 as iio
import numpy as np
import os
from typing import Sequence, Tuple


def to_color(color: Sequence[int]) -> Tuple[int, int, int, int]:
    """
    Validates an RGBA color and returns it as a tuple of ints

    :param color: Four channel values (r, g, b, a)
    :type color: Sequence[int]
    :raises ValueError: If there are not exactly four values or one is outside [0, 255]
    :return: The color as (r, g, b, a)
    :rtype: Tuple[int, int, int, int]
    """
    values = [int(v) for v in color]
    if len(values) != 4:
        raise ValueError(f"Color must have 4 components (r, g, b, a), got {len(values)}")
    if any(v < 0 or v > 255 for v in values):
        raise ValueError(f"Color components must be in [0, 255], got {values}")
    return tuple(values)


def create_bitmap(width: int, height: int, color: Sequence[int]) -> np.ndarray:
    """
    Creates an RGBA bitmap filled with a single color

    :param width: Width in pixels
    :type width: int
    :param height: Height in pixels
    :type height: int
    :param color: Fill color (r, g, b, a)
    :type color: Sequence[int]
    :raises ValueError: If a dimension is negative or the color is invalid
    :return: (height x width x 4) uint8 array
    :rtype: np.ndarray
    """
    if width < 0 or height < 0:
        raise ValueError(f"Bitmap dimensions must not be negative, got {width}x{height}")
    bitmap = np.empty((height, width, 4), dtype=np.uint8)
    bitmap[:, :] = to_color(color)
    return bitmap


def fill_bitmap(bitmap: np.ndarray, color: Sequence[int]):
    """Overwrites every pixel of `bitmap` with `color`, in place"""
    bitmap[:, :] = to_color(color)


def to_rgba(image: np.ndarray) -> np.ndarray:
    """
    Converts an image array to uint8 RGBA

    Float images are assumed to be in [0, 1] and scaled, other integer types
    are clipped to [0, 255]. Grayscale and RGB inputs get an opaque alpha channel

    :param image: (H x W), (H x W x 1), (H x W x 3) or (H x W x 4) array
    :type image: np.ndarray
    :raises ValueError: If the layout is not one of the above
    :return: (H x W x 4) uint8 array (a new array unless the input already qualifies)
    :rtype: np.ndarray
    """
    img = image
    if img.dtype != np.uint8:
        if np.issubdtype(img.dtype, np.floating):
            img = (np.clip(img, 0.0, 1.0) * 255.0).astype(np.uint8)
        else:
            img = np.clip(img, 0, 255).astype(np.uint8)

    if img.ndim == 3 and img.shape[2] == 1:
        img = img[:, :, 0]

    if img.ndim == 2:  # grayscale
        opaque = np.full(img.shape, 255, dtype=np.uint8)
        return np.dstack((img, img, img, opaque))
    elif img.ndim == 3 and img.shape[2] == 3:  # rgb
        opaque = np.full(img.shape[:2], 255, dtype=np.uint8)
        return np.dstack((img, opaque))
    elif img.ndim == 3 and img.shape[2] == 4:  # rgba
        return np.ascontiguousarray(img)
    raise ValueError(f"Unsupported image layout: shape={image.shape}, dtype={image.dtype}")


def average_color(bitmap: np.ndarray) -> Tuple[int, int, int, int]:
    """
    Calculates the mean color of an RGBA bitmap, rounded per channel

    :param bitmap: (H x W x 4) uint8 array
    :type bitmap: np.ndarray
    :return: The mean color (r, g, b, a), or opaque black for an empty bitmap
    :rtype: Tuple[int, int, int, int]
    """
    if bitmap.shape[0] == 0 or bitmap.shape[1] == 0:
        return (0, 0, 0, 255)
    means = bitmap.reshape(-1, 4).mean(axis=0, dtype=np.float64)
    return tuple(int(v) for v in np.clip(np.rint(means), 0, 255))


def load_image(image_path: str) -> np.ndarray:
    """
    Loads an image from the specified path using imageio and converts it to RGBA

    :param image_path: Path to the image file
    :type image_path: str
    :raises FileNotFoundError: If the image file does not exist
    :raises ValueError: If the file cannot be read or has an unsupported layout
    :return: (H x W x 4) uint8 array
    :rtype: np.ndarray
    """
    if not os.path.isfile(image_path):
        raise FileNotFoundError(f"Image file not found: {image_path}")
    try:
        img = iio.imread(image_path)
    except Exception as e:
        # imageio raises plugin-specific errors for unreadable files
        raise ValueError(f"Error loading image: {e}") from e

    # animated inputs: keep the first frame
    if img.ndim == 4:
        img = img[0]
    try:
        return to_rgba(img)
    except ValueError as e:
        raise ValueError(f"Unsupported image format: {image_path}, {e}") from e


def save_image(
    image: np.ndarray, output_path: str, filename: str, file_format: str = "png"
) -> str:
    """
    Saves an image array to `output_path`/`filename`.`file_format` using imageio

    Creates the output directory if it doesn't exist. Formats without an alpha
    channel (jpg, jpeg, bmp) receive the RGB channels only

    :param image: Image array, converted to uint8 if needed
    :type image: np.ndarray
    :param output_path: Directory the image is written to
    :type output_path: str
    :param filename: Base filename (without extension)
    :type filename: str
    :param file_format: Image file format (default is "png")
    :type file_format: str
    :raises OSError: If there is an error writing the file
    :return: The path of the written file
    :rtype: str
    """
    filepath = os.path.join(output_path, f"{filename}.{file_format}")
    os.makedirs(output_path, exist_ok=True)

    processed_image = to_rgba(image)
    if file_format.lower() in ("jpg", "jpeg", "bmp"):
        processed_image = processed_image[:, :, :3]

    try:
        iio.imwrite(filepath, processed_image)
    except Exception as e:
        raise OSError(f"Error saving image to {filepath}: {e}") from e
    return filepath
