"""Capture adapter reading tiles from a georeferenced raster file.

Stands in for the interactive map renderer: given a bounding box, it
reads the matching window from an EPSG:4326 orthophoto/GeoTIFF and
returns it as an RGB image whose pixels span exactly that box.

Reads are boundless: parts of the box outside the raster come back as
black (nodata) pixels.  A box that misses the raster entirely is a
capture failure.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path

import numpy as np
import rasterio
from rasterio.errors import RasterioError
from rasterio.windows import Window, from_bounds

from footprint_vectorizer.core.constants import WGS84, WGS84_EPSG
from footprint_vectorizer.core.exceptions import CaptureError
from footprint_vectorizer.models.geometry import BoundingBox
from footprint_vectorizer.models.raster import CapturedImage
from footprint_vectorizer.providers.base import ImageCapture

logger = logging.getLogger("footprint_vectorizer.providers.geotiff_capture")

RGB_BANDS = 3


class GeoTiffCapture(ImageCapture):
    """Read bounding-box windows from a raster file.

    Args:
        path: Raster file in a geographic (EPSG:4326) CRS.
        max_size: Optional cap on the longest output side in pixels; the
            window is resampled down when it exceeds it.
    """

    def __init__(self, path: str | Path, *, max_size: int | None = None) -> None:
        self._path = Path(path)
        self._max_size = max_size

    async def capture(self, bbox: BoundingBox) -> CapturedImage:
        try:
            with rasterio.open(self._path) as src:
                if src.crs is None or src.crs.to_epsg() != WGS84_EPSG:
                    msg = f"{self._path.name}: expected CRS {WGS84}, got {src.crs}"
                    raise CaptureError(msg)

                window = from_bounds(*bbox.to_bounds(), transform=src.transform)
                if not _overlaps_raster(window, src.width, src.height):
                    msg = (
                        f"{self._path.name}: bbox {bbox.to_bounds()} lies outside the raster "
                        f"bounds {tuple(src.bounds)}"
                    )
                    raise CaptureError(msg)
                width = max(1, math.floor(window.width + 0.5))
                height = max(1, math.floor(window.height + 0.5))
                if self._max_size and max(width, height) > self._max_size:
                    factor = self._max_size / max(width, height)
                    width = max(1, round(width * factor))
                    height = max(1, round(height * factor))

                bands = list(range(1, min(src.count, RGB_BANDS) + 1))
                data = src.read(
                    bands,
                    window=window,
                    out_shape=(len(bands), height, width),
                    boundless=True,
                    fill_value=0,
                )
        except CaptureError:
            raise
        except (RasterioError, OSError, ValueError) as exc:
            msg = f"Failed to capture {bbox.to_bounds()} from {self._path.name}: {exc}"
            raise CaptureError(msg) from exc

        pixels = np.moveaxis(data, 0, -1)
        if pixels.shape[2] == 1:
            pixels = np.repeat(pixels, RGB_BANDS, axis=2)
        pixels = _to_uint8(pixels)

        logger.info(
            "Tile captured | source=%s | size=%dx%d | bbox=[%.6f, %.6f, %.6f, %.6f]",
            self._path.name,
            width,
            height,
            *bbox.to_bounds(),
        )
        return CapturedImage(pixels=pixels, bbox=bbox)


def _overlaps_raster(window: Window, width: int, height: int) -> bool:
    return (
        window.width > 0
        and window.height > 0
        and window.col_off < width
        and window.row_off < height
        and window.col_off + window.width > 0
        and window.row_off + window.height > 0
    )


def _to_uint8(pixels: np.ndarray) -> np.ndarray:
    """Scale non-byte rasters into 0–255."""
    if pixels.dtype == np.uint8:
        return pixels
    as_float = pixels.astype(np.float64)
    peak = float(as_float.max()) if as_float.size else 0.0
    if peak <= 0:
        return np.zeros(pixels.shape, dtype=np.uint8)
    return np.clip(as_float / peak * 255.0, 0, 255).astype(np.uint8)
