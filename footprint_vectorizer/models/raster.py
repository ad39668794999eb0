"""Raster models: the captured image and the single-channel mask.

Both wrap ``numpy`` ``uint8`` arrays.  Arrays are copied on construction
and marked read-only, so a stage can never mutate the raster it was
handed by the previous one.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from footprint_vectorizer.core.constants import MASK_BACKGROUND, MASK_FOREGROUND
from footprint_vectorizer.models.geometry import BoundingBox, ModelValidationError
from footprint_vectorizer.utils.imaging import encode_png_base64


def _frozen_uint8(array: np.ndarray, model: str) -> np.ndarray:
    if array.dtype != np.uint8:
        raise ModelValidationError(model, "dtype", str(array.dtype), "must be uint8")
    frozen = np.array(array, dtype=np.uint8, copy=True)
    frozen.flags.writeable = False
    return frozen


@dataclass(frozen=True, slots=True, eq=False)
class RasterMask:
    """A ``height × width`` grid of intensities (0–255).

    Conceptually binary (0 background, 255 structure) once cleaned; only
    intensity is carried, there is no alpha channel.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim != 2:
            raise ModelValidationError(
                "RasterMask", "pixels", self.pixels.shape, "must be a 2-D array"
            )
        if self.pixels.shape[0] == 0 or self.pixels.shape[1] == 0:
            raise ModelValidationError(
                "RasterMask", "pixels", self.pixels.shape, "must not be empty"
            )
        object.__setattr__(self, "pixels", _frozen_uint8(self.pixels, "RasterMask"))

    @classmethod
    def from_image_array(cls, array: np.ndarray) -> RasterMask:
        """Build a mask from a grey, RGB or RGBA array.

        Only the first (intensity) channel is kept; alpha is dropped.
        """
        if array.ndim == 3:
            array = array[:, :, 0]
        return cls(np.asarray(array, dtype=np.uint8))

    @classmethod
    def blank(cls, width: int, height: int) -> RasterMask:
        """Return an all-background mask."""
        return cls(np.full((height, width), MASK_BACKGROUND, dtype=np.uint8))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def is_binary(self) -> bool:
        """Whether every pixel is either background or foreground."""
        return bool(
            np.isin(self.pixels, (MASK_BACKGROUND, MASK_FOREGROUND)).all()
        )

    def foreground_count(self) -> int:
        """Number of pixels at full intensity."""
        return int(np.count_nonzero(self.pixels == MASK_FOREGROUND))

    def to_png_base64(self) -> str:
        """Encode as a greyscale PNG, base64 without a data-URI prefix."""
        return encode_png_base64(self.pixels)


@dataclass(frozen=True, slots=True, eq=False)
class CapturedImage:
    """A rendered image of a bounded geographic region.

    Attributes:
        pixels: ``height × width × channels`` ``uint8`` array (RGB or RGBA).
        bbox: The region the image covers, edge to edge.
    """

    pixels: np.ndarray
    bbox: BoundingBox

    def __post_init__(self) -> None:
        if self.pixels.ndim not in (2, 3):
            raise ModelValidationError(
                "CapturedImage", "pixels", self.pixels.shape, "must be a 2-D or 3-D array"
            )
        if self.pixels.shape[0] == 0 or self.pixels.shape[1] == 0:
            raise ModelValidationError(
                "CapturedImage", "pixels", self.pixels.shape, "must not be empty"
            )
        object.__setattr__(self, "pixels", _frozen_uint8(self.pixels, "CapturedImage"))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def encoded(self) -> str:
        """PNG bytes as base64, without a ``data:image/png;base64,`` prefix."""
        return encode_png_base64(self.pixels)
