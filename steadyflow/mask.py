"""
mask.py - Obstacle Masks from Images
====================================
Turns a picture of the obstacle into the bool[height][width] mask that
create_grid_from_mask() expects.

Rule: a grid cell is an obstacle when the image pixel it maps to has
alpha > 128 (on a 0-255 scale). Pixels are picked by nearest lookup:
  px = floor(gx * image_width  / grid_width)
  py = floor(gy * image_height / grid_height)

So a PNG with a transparent background and an opaque silhouette gives a
mask of the silhouette. An image with no alpha channel counts as fully
opaque, which makes every cell an obstacle.
"""

import numpy as np
import matplotlib.image as mpimg

from .errors import InvalidDimension

ALPHA_THRESHOLD = 128


def _alpha_channel(pixels: np.ndarray) -> np.ndarray:
    """Alpha on a 0-255 scale, shape (H, W)."""
    pixels = np.asarray(pixels)

    if pixels.ndim == 3 and pixels.shape[2] == 4:
        alpha = pixels[:, :, 3]
        # matplotlib reads PNGs as floats in [0, 1]
        if np.issubdtype(alpha.dtype, np.floating):
            alpha = alpha * 255.0
        return alpha

    if pixels.ndim in (2, 3):
        return np.full(pixels.shape[:2], 255.0)   # no alpha → opaque

    raise ValueError(f"Expected an (H, W) or (H, W, C) image, got shape {pixels.shape}")


def image_to_mask(pixels, grid_width: int, grid_height: int,
                  alpha_threshold: float = ALPHA_THRESHOLD) -> np.ndarray:
    """
    Sample an RGBA image down (or up) to a grid_height x grid_width mask.

    Args:
        pixels          : (H, W, 4) array, uint8 or float in [0, 1]
        grid_width      : Mask width in cells
        grid_height     : Mask height in cells
        alpha_threshold : Cells with alpha above this are obstacles

    Returns:
        bool array, shape (grid_height, grid_width)
    """
    if grid_width <= 0 or grid_height <= 0:
        raise InvalidDimension(
            f"Mask dimensions must be positive, got {grid_width}x{grid_height}"
        )

    alpha = _alpha_channel(pixels)
    H, W = alpha.shape

    px = np.floor(np.arange(grid_width) * (W / grid_width)).astype(np.intp)
    py = np.floor(np.arange(grid_height) * (H / grid_height)).astype(np.intp)

    return alpha[np.ix_(py, px)] > alpha_threshold


def load_mask(path, grid_width: int, grid_height: int) -> np.ndarray:
    """Read an image file and convert it with image_to_mask()."""
    return image_to_mask(mpimg.imread(path), grid_width, grid_height)


def circle_mask(width: int, height: int, cx: float = 0.3, cy: float = 0.5,
                radius: float = 0.1) -> np.ndarray:
    """
    Demo obstacle: a filled circle.

    Centre (cx, cy) and radius are normalized; the radius is a fraction of
    the smaller grid dimension.
    """
    if width <= 0 or height <= 0:
        raise InvalidDimension(f"Mask dimensions must be positive, got {width}x{height}")

    ys, xs = np.mgrid[0:height, 0:width]
    r = radius * min(width, height)
    return (xs + 0.5 - cx * width) ** 2 + (ys + 0.5 - cy * height) ** 2 <= r * r
