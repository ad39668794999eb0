"""Contour tracer backed by ``rasterio.features.shapes``.

The mask is decoded from PNG, reduced to one channel and binarised
(pixels brighter than the threshold become foreground).  Each connected
foreground region becomes one ring: the outer boundary of its polygon,
in pixel-corner coordinates, with the closing vertex removed.  Interior
holes are not reported.

``rings_from_geojson`` covers the other tracer flavour: an external
routine that answers with a GeoJSON FeatureCollection string.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import numpy as np
from rasterio.features import shapes

from footprint_vectorizer.core.constants import (
    DEFAULT_TRACE_THRESHOLD,
    MASK_FOREGROUND,
    MIN_RING_POINTS,
)
from footprint_vectorizer.core.exceptions import VectorizationError
from footprint_vectorizer.models.geometry import PixelRing
from footprint_vectorizer.providers.base import Tracer
from footprint_vectorizer.utils.imaging import decode_png_base64

logger = logging.getLogger("footprint_vectorizer.providers.raster_tracer")

_POLYGON_TYPES = frozenset({"Polygon", "MultiPolygon"})


class RasterioTracer(Tracer):
    """Trace foreground regions of a PNG mask.

    Args:
        threshold: Pixels with intensity ``> threshold`` are foreground.
        connectivity: 4 or 8 pixel connectivity for region grouping.
    """

    def __init__(self, threshold: int = DEFAULT_TRACE_THRESHOLD, connectivity: int = 4) -> None:
        if connectivity not in (4, 8):
            msg = f"connectivity must be 4 or 8, got {connectivity}"
            raise ValueError(msg)
        self._threshold = threshold
        self._connectivity = connectivity

    async def trace(self, encoded_mask: str) -> list[PixelRing]:
        try:
            grey = decode_png_base64(encoded_mask, mode="L")
        except ValueError as exc:
            msg = f"Tracer could not decode the mask: {exc}"
            raise VectorizationError(msg) from exc
        return self.trace_array(grey)

    def trace_array(self, grey: np.ndarray) -> list[PixelRing]:
        """Trace a single-channel ``uint8`` array directly."""
        binary = np.where(grey > self._threshold, MASK_FOREGROUND, 0).astype(np.uint8)
        if not binary.any():
            logger.info("Mask traced | rings=0 | reason=no_foreground")
            return []

        rings: list[PixelRing] = []
        try:
            for geometry, value in shapes(
                binary, mask=binary == MASK_FOREGROUND, connectivity=self._connectivity
            ):
                if int(value) != MASK_FOREGROUND:
                    continue
                rings.extend(_outer_rings(geometry))
        except (ValueError, TypeError) as exc:
            msg = f"Tracing failed: {exc}"
            raise VectorizationError(msg) from exc

        logger.info(
            "Mask traced | rings=%d | size=%dx%d | threshold=%d",
            len(rings),
            binary.shape[1],
            binary.shape[0],
            self._threshold,
        )
        return rings


def rings_from_geojson(payload: str | dict[str, Any]) -> list[PixelRing]:
    """Extract outer rings from a GeoJSON FeatureCollection in pixel space.

    Features without geometry or with non-polygon geometry are ignored.

    Raises:
        VectorizationError: If *payload* is not JSON or not a
            FeatureCollection, or a polygon's coordinates are malformed.
    """
    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            msg = f"Tracer result is not valid JSON: {exc}"
            raise VectorizationError(msg, detail=payload[:500]) from exc
    else:
        data = payload

    if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
        msg = "Tracer result is not a GeoJSON FeatureCollection"
        raise VectorizationError(msg, detail=str(payload)[:500])

    features = data.get("features")
    if not isinstance(features, list):
        msg = "Tracer result has no 'features' list"
        raise VectorizationError(msg, detail=str(payload)[:500])

    rings: list[PixelRing] = []
    for feature in features:
        geometry = feature.get("geometry") if isinstance(feature, dict) else None
        if not isinstance(geometry, dict) or geometry.get("type") not in _POLYGON_TYPES:
            continue
        try:
            rings.extend(_outer_rings(geometry))
        except (TypeError, ValueError, IndexError) as exc:
            msg = f"Malformed polygon coordinates in tracer result: {exc}"
            raise VectorizationError(msg) from exc
    return rings


def _outer_rings(geometry: dict[str, Any]) -> list[PixelRing]:
    """Return the exterior ring(s) of a GeoJSON polygon mapping, unclosed."""
    if geometry["type"] == "Polygon":
        polygons = [geometry["coordinates"]]
    else:
        polygons = list(geometry["coordinates"])

    rings: list[PixelRing] = []
    for polygon in polygons:
        if not polygon:
            continue
        ring = [(float(p[0]), float(p[1])) for p in polygon[0]]
        if len(ring) > MIN_RING_POINTS and ring[0] == ring[-1]:
            ring = ring[:-1]
        rings.append(ring)
    return rings
