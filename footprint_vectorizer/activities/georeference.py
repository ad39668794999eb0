"""Affine mapping between raster pixels and geographic coordinates.

For an image of ``width × height`` pixels covering ``bbox``::

    lon = west  + (x / width)  * (east  - west)
    lat = north - (y / height) * (north - south)

Row 0 is the northernmost row, hence the inverted ``y``.  Pixel
``(0, 0)`` maps exactly to ``(west, north)`` and ``(width, height)`` to
``(east, south)``.
"""

from __future__ import annotations

from collections.abc import Iterable

from footprint_vectorizer.models.geometry import BoundingBox, GeoRing


def pixel_to_geo(
    x: float,
    y: float,
    img_width: int,
    img_height: int,
    bbox: BoundingBox,
) -> tuple[float, float]:
    """Map a pixel position to ``(lon, lat)``.

    Precondition: ``img_width`` and ``img_height`` are positive.
    """
    assert img_width > 0 and img_height > 0, (
        f"image extent must be positive, got {img_width}x{img_height}"
    )
    tx = x / img_width
    ty = y / img_height
    # Weighted form so the corners land exactly on the bbox edges.
    lon = bbox.west * (1.0 - tx) + bbox.east * tx
    lat = bbox.north * (1.0 - ty) + bbox.south * ty
    return (lon, lat)


def geo_to_pixel(
    lon: float,
    lat: float,
    img_width: int,
    img_height: int,
    bbox: BoundingBox,
) -> tuple[float, float]:
    """Inverse of ``pixel_to_geo``: map ``(lon, lat)`` to fractional pixels."""
    assert img_width > 0 and img_height > 0, (
        f"image extent must be positive, got {img_width}x{img_height}"
    )
    x = (lon - bbox.west) / (bbox.east - bbox.west) * img_width
    y = (bbox.north - lat) / (bbox.north - bbox.south) * img_height
    return (x, y)


def ring_to_geo(
    ring: Iterable[tuple[float, float]],
    img_width: int,
    img_height: int,
    bbox: BoundingBox,
) -> GeoRing:
    """Map every vertex of a pixel ring, preserving order."""
    return [pixel_to_geo(x, y, img_width, img_height, bbox) for x, y in ring]
