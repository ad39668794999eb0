"""Turn traced pixel rings into accepted building features.

For every ring:

1. Rings with fewer than 3 points are rejected.
2. Vertices are mapped to ``(lon, lat)`` through the geo transform.
3. The ring is closed (first vertex appended when first != last).
4. A simple polygon is built; degenerate or self-intersecting rings are
   rejected.  This is an expected filtering outcome, logged at DEBUG.
5. The polygon is simplified with a distance tolerance in degrees,
   preserving topological validity.
6. The geodesic area (WGS 84 ellipsoid) is computed in square metres.
7. Features whose area is at or below ``min_area_m2`` are discarded.
8. Survivors get a fresh session identifier and their area rounded to
   two decimals.

No exception escapes ``process_ring``: a failing ring yields ``None``
and the caller moves on to the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from pyproj import Geod
from pyproj.exceptions import GeodError
from shapely.errors import ShapelyError
from shapely.geometry import Polygon
from shapely.validation import explain_validity

from footprint_vectorizer.activities.georeference import ring_to_geo
from footprint_vectorizer.core.constants import (
    DEFAULT_MIN_AREA_M2,
    DEFAULT_SIMPLIFY_TOLERANCE_DEG,
    MIN_RING_POINTS,
)
from footprint_vectorizer.core.exceptions import GeometryConstructionError
from footprint_vectorizer.models.feature import Feature
from footprint_vectorizer.models.geometry import BoundingBox, GeoRing, PixelRing

logger = logging.getLogger("footprint_vectorizer.activities.process_rings")

_GEOD = Geod(ellps="WGS84")


def process_ring(
    ring: PixelRing,
    img_width: int,
    img_height: int,
    bbox: BoundingBox,
    *,
    next_id: Callable[[], str],
    min_area_m2: float = DEFAULT_MIN_AREA_M2,
    simplify_tolerance: float = DEFAULT_SIMPLIFY_TOLERANCE_DEG,
) -> Feature | None:
    """Convert one traced ring into a ``Feature``, or ``None`` if filtered out.

    Args:
        ring: Pixel-space vertices from the tracer (closed or not).
        img_width: Width of the traced raster in pixels.
        img_height: Height of the traced raster in pixels.
        bbox: Geographic extent of the traced raster.
        next_id: Identifier source; called only when a feature is produced.
        min_area_m2: Features with area ``<=`` this are dropped.
        simplify_tolerance: Simplification tolerance in degrees.

    Returns:
        The accepted feature, or ``None``.
    """
    if len(ring) < MIN_RING_POINTS:
        logger.debug("Ring dropped | reason=too_few_points | points=%d", len(ring))
        return None

    try:
        coords = close_ring(ring_to_geo(ring, img_width, img_height, bbox))
        polygon = build_polygon(coords)
        simplified = simplify_polygon(polygon, simplify_tolerance)
        exterior: GeoRing = [(float(x), float(y)) for x, y in simplified.exterior.coords]
        area_m2 = compute_geodesic_area_m2(exterior)
    except (GeometryConstructionError, ShapelyError, GeodError, ValueError, TypeError) as exc:
        logger.debug("Ring dropped | reason=invalid_geometry | points=%d | error=%s", len(ring), exc)
        return None

    if area_m2 <= min_area_m2:
        logger.debug(
            "Ring dropped | reason=below_min_area | area=%.2f m2 | min=%.2f m2",
            area_m2,
            min_area_m2,
        )
        return None

    return Feature(feature_id=next_id(), exterior_coords=exterior, area_m2=area_m2)


def process_rings(
    rings: Iterable[PixelRing],
    img_width: int,
    img_height: int,
    bbox: BoundingBox,
    *,
    next_id: Callable[[], str],
    min_area_m2: float = DEFAULT_MIN_AREA_M2,
    simplify_tolerance: float = DEFAULT_SIMPLIFY_TOLERANCE_DEG,
) -> list[Feature]:
    """Run ``process_ring`` over every ring and keep the accepted features in order."""
    features: list[Feature] = []
    total = 0
    for ring in rings:
        total += 1
        feature = process_ring(
            ring,
            img_width,
            img_height,
            bbox,
            next_id=next_id,
            min_area_m2=min_area_m2,
            simplify_tolerance=simplify_tolerance,
        )
        if feature is not None:
            features.append(feature)

    logger.info(
        "Rings processed | rings=%d | accepted=%d | dropped=%d | min_area=%.2f m2",
        total,
        len(features),
        total - len(features),
        min_area_m2,
    )
    return features


def close_ring(coords: GeoRing) -> GeoRing:
    """Return *coords* with the first vertex appended if the ring is open."""
    if coords and coords[0] != coords[-1]:
        return [*coords, coords[0]]
    return list(coords)


def build_polygon(coords: GeoRing) -> Polygon:
    """Build a simple polygon from a closed ring.

    Raises:
        GeometryConstructionError: If the ring is too short, empty,
            zero-area or self-intersecting.
    """
    if len(coords) < MIN_RING_POINTS + 1:
        msg = f"Closed ring needs at least {MIN_RING_POINTS + 1} positions, got {len(coords)}"
        raise GeometryConstructionError(msg)

    polygon = Polygon(coords)
    if polygon.is_empty or polygon.area == 0:
        msg = "Ring encloses no area"
        raise GeometryConstructionError(msg)
    if not polygon.is_valid:
        msg = f"Ring is not a simple polygon: {explain_validity(polygon)}"
        raise GeometryConstructionError(msg)
    return polygon


def simplify_polygon(polygon: Polygon, tolerance: float) -> Polygon:
    """Simplify vertices while preserving topology.

    Raises:
        GeometryConstructionError: If simplification collapses the polygon.
    """
    simplified = polygon.simplify(tolerance, preserve_topology=True)
    if not isinstance(simplified, Polygon) or simplified.is_empty:
        msg = f"Simplification collapsed the polygon into {simplified.geom_type}"
        raise GeometryConstructionError(msg)
    return simplified


def compute_geodesic_area_m2(coords: GeoRing) -> float:
    """Geodesic area of a ring on the WGS 84 ellipsoid, in square metres.

    Winding-order agnostic (absolute value).
    """
    lons = [c[0] for c in coords]
    lats = [c[1] for c in coords]
    area_m2, _perimeter = _GEOD.polygon_area_perimeter(lons, lats)
    return abs(area_m2)
