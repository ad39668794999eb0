"""Tests for the GeoTIFF capture adapter.

Rasters are written on the fly with rasterio into ``tmp_path``.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_bounds

from footprint_vectorizer.core.exceptions import CaptureError
from footprint_vectorizer.models.geometry import BoundingBox
from footprint_vectorizer.providers.geotiff_capture import GeoTiffCapture

# 0.002° square at 1e-5°/px → 200 × 200 pixels
RASTER_BOUNDS = (-49.356, -25.566, -49.354, -25.564)
RASTER_SIZE = 200


def _write_raster(
    path: Path,
    *,
    bands: int = 3,
    crs: str = "EPSG:4326",
    dtype: str = "uint8",
    bounds: tuple[float, float, float, float] = RASTER_BOUNDS,
) -> Path:
    transform = from_bounds(*bounds, RASTER_SIZE, RASTER_SIZE)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        width=RASTER_SIZE,
        height=RASTER_SIZE,
        count=bands,
        dtype=dtype,
        crs=crs,
        transform=transform,
    ) as dst:
        for band in range(1, bands + 1):
            dst.write(np.full((RASTER_SIZE, RASTER_SIZE), band * 10, dtype=dtype), band)
    return path


class TestGeoTiffCapture:
    """Reading bounding-box windows."""

    @pytest.mark.asyncio()
    async def test_reads_window_as_rgb(self, tmp_path: Path) -> None:
        path = _write_raster(tmp_path / "ortho.tif")
        bbox = BoundingBox(-49.356, -25.566, -49.355, -25.565)

        image = await GeoTiffCapture(path).capture(bbox)

        assert (image.width, image.height) == (100, 100)
        assert image.pixels.shape == (100, 100, 3)
        assert image.bbox == bbox
        assert (image.pixels[..., 0] == 10).all()
        assert (image.pixels[..., 2] == 30).all()

    @pytest.mark.asyncio()
    async def test_single_band_repeated(self, tmp_path: Path) -> None:
        path = _write_raster(tmp_path / "grey.tif", bands=1)
        bbox = BoundingBox(-49.356, -25.566, -49.355, -25.565)

        image = await GeoTiffCapture(path).capture(bbox)

        assert image.pixels.shape == (100, 100, 3)
        assert (image.pixels == 10).all()

    @pytest.mark.asyncio()
    async def test_max_size_downscales(self, tmp_path: Path) -> None:
        path = _write_raster(tmp_path / "ortho.tif")
        bbox = BoundingBox.from_bounds(RASTER_BOUNDS)

        image = await GeoTiffCapture(path, max_size=50).capture(bbox)

        assert (image.width, image.height) == (50, 50)

    @pytest.mark.asyncio()
    async def test_non_byte_raster_scaled(self, tmp_path: Path) -> None:
        path = _write_raster(tmp_path / "u16.tif", dtype="uint16")
        bbox = BoundingBox.from_bounds(RASTER_BOUNDS)

        image = await GeoTiffCapture(path).capture(bbox)

        assert image.pixels.dtype == np.uint8
        assert image.pixels[..., 2].max() == 255

    @pytest.mark.asyncio()
    async def test_projected_crs_rejected(self, tmp_path: Path) -> None:
        path = _write_raster(
            tmp_path / "mercator.tif",
            crs="EPSG:3857",
            bounds=(-5494000.0, -2946000.0, -5493800.0, -2945800.0),
        )
        with pytest.raises(CaptureError, match="expected CRS EPSG:4326"):
            await GeoTiffCapture(path).capture(BoundingBox.from_bounds(RASTER_BOUNDS))

    @pytest.mark.asyncio()
    async def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(CaptureError, match="missing.tif"):
            await GeoTiffCapture(tmp_path / "missing.tif").capture(
                BoundingBox.from_bounds(RASTER_BOUNDS)
            )

    @pytest.mark.asyncio()
    async def test_captured_image_is_encodable(self, tmp_path: Path) -> None:
        path = _write_raster(tmp_path / "ortho.tif")
        image = await GeoTiffCapture(path).capture(BoundingBox.from_bounds(RASTER_BOUNDS))
        assert image.encoded.startswith("iVBOR")  # base64 of the PNG signature

    @pytest.mark.asyncio()
    async def test_partial_overlap_filled_black(self, tmp_path: Path) -> None:
        path = _write_raster(tmp_path / "ortho.tif")
        bbox = BoundingBox(-49.357, -25.566, -49.355, -25.564)

        image = await GeoTiffCapture(path).capture(bbox)

        assert (image.width, image.height) == (200, 200)
        assert (image.pixels[:, 0] == 0).all()
        assert (image.pixels[:, -1, 0] == 10).all()

    @pytest.mark.asyncio()
    async def test_bbox_outside_raster_rejected(self, tmp_path: Path) -> None:
        path = _write_raster(tmp_path / "ortho.tif", bounds=(10.0, 10.0, 10.002, 10.002))
        bbox = BoundingBox(-49.36, -25.57, -49.35, -25.56)

        with pytest.raises(CaptureError, match="outside the raster"):
            await GeoTiffCapture(path).capture(bbox)

