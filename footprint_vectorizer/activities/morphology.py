"""Binary morphological closing of a raster mask.

``close`` runs a dilation (window maximum) followed by an erosion
(window minimum) with the same square structuring element.  The pair
fills small holes and gaps inside structure regions without shrinking
the overall shapes.

Edge policy: window positions falling outside the grid are excluded
from the max/min.  ``scipy.ndimage`` with ``mode="nearest"`` gives
exactly that: a replicated edge pixel is already inside the window, so
it can never change the result.  Border pixels are neither darkened nor
lightened, and equal inputs give bit-identical ``uint8`` outputs.
"""

from __future__ import annotations

import logging

from scipy import ndimage

from footprint_vectorizer.core.constants import DEFAULT_KERNEL_SIZE
from footprint_vectorizer.models.raster import RasterMask

logger = logging.getLogger("footprint_vectorizer.activities.morphology")

EDGE_MODE = "nearest"


def normalize_kernel_size(kernel_size: int) -> int:
    """Return *kernel_size* forced to an odd value (even values are incremented).

    Raises:
        ValueError: If *kernel_size* is not positive.
    """
    if kernel_size < 1:
        msg = f"kernel_size must be a positive integer, got {kernel_size}"
        raise ValueError(msg)
    if kernel_size % 2 == 0:
        kernel_size += 1
    return kernel_size


def dilate(mask: RasterMask, kernel_size: int = DEFAULT_KERNEL_SIZE) -> RasterMask:
    """Replace every pixel with the maximum of its ``k × k`` neighbourhood."""
    k = normalize_kernel_size(kernel_size)
    return RasterMask(ndimage.grey_dilation(mask.pixels, size=(k, k), mode=EDGE_MODE))


def erode(mask: RasterMask, kernel_size: int = DEFAULT_KERNEL_SIZE) -> RasterMask:
    """Replace every pixel with the minimum of its ``k × k`` neighbourhood."""
    k = normalize_kernel_size(kernel_size)
    return RasterMask(ndimage.grey_erosion(mask.pixels, size=(k, k), mode=EDGE_MODE))


def close(mask: RasterMask, kernel_size: int = DEFAULT_KERNEL_SIZE) -> RasterMask:
    """Morphological closing: dilate, then erode the dilation result.

    Args:
        mask: Input mask (any 0–255 intensities; binary in practice).
        kernel_size: Side of the square window in pixels.  Even values
            are incremented by one.

    Returns:
        A new ``RasterMask`` of the same size.  A binary input yields a
        binary output.
    """
    k = normalize_kernel_size(kernel_size)
    closed = erode(dilate(mask, k), k)
    logger.debug(
        "Mask closed | kernel=%d | size=%dx%d | foreground=%d->%d",
        k,
        mask.width,
        mask.height,
        mask.foreground_count(),
        closed.foreground_count(),
    )
    return closed

