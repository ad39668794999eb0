"""Data model for an accepted building footprint.

A Feature is created once, by the ring processing stage, and never
mutated afterwards.  It is the unit stored by the session accumulator
and written to the export archive.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from footprint_vectorizer.core.constants import AREA_DECIMALS


@dataclass(frozen=True, slots=True)
class Feature:
    """A simplified, georeferenced building polygon.

    Attributes:
        feature_id: Session-unique identifier (e.g. ``"footprint_12"``).
        exterior_coords: Closed exterior ring as a tuple of ``(lon, lat)``
            pairs (first vertex equals last vertex).  Any iterable of pairs
            is accepted and frozen on construction.
        area_m2: Geodesic area in square metres, rounded to two decimals.
    """

    feature_id: str
    exterior_coords: tuple[tuple[float, float], ...] = ()
    area_m2: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "exterior_coords", _freeze_ring(self.exterior_coords))
        object.__setattr__(self, "area_m2", round(float(self.area_m2), AREA_DECIMALS))

    @property
    def vertex_count(self) -> int:
        """Number of vertices in the exterior ring (closing vertex included)."""
        return len(self.exterior_coords)

    @property
    def is_closed(self) -> bool:
        return bool(self.exterior_coords) and self.exterior_coords[0] == self.exterior_coords[-1]

    def to_geojson(self) -> dict[str, object]:
        """Serialise as a GeoJSON ``Feature`` mapping."""
        return {
            "type": "Feature",
            "id": self.feature_id,
            "geometry": {
                "type": "Polygon",
                "coordinates": [[list(c) for c in self.exterior_coords]],
            },
            "properties": {
                "id": self.feature_id,
                "area_m2": self.area_m2,
            },
        }

    @classmethod
    def from_geojson(cls, data: dict[str, object]) -> Feature:
        """Deserialise from a GeoJSON ``Feature`` mapping.

        Raises:
            TypeError: If the geometry or properties have unexpected types.
        """
        geometry = data.get("geometry")
        if not isinstance(geometry, dict) or geometry.get("type") != "Polygon":
            msg = "geometry must be a GeoJSON Polygon mapping"
            raise TypeError(msg)
        rings = geometry.get("coordinates")
        if not isinstance(rings, list) or not rings:
            msg = "Polygon coordinates must be a non-empty list of rings"
            raise TypeError(msg)

        properties = data.get("properties") or {}
        if not isinstance(properties, dict):
            msg = f"properties must be a dict, got {type(properties).__name__}"
            raise TypeError(msg)

        return cls(
            feature_id=str(properties.get("id", data.get("id", ""))),
            exterior_coords=[(c[0], c[1]) for c in rings[0]],
            area_m2=float(properties.get("area_m2", 0.0)),  # type: ignore[arg-type]
        )


def _freeze_ring(coords: Iterable[Iterable[float]]) -> tuple[tuple[float, float], ...]:
    return tuple((float(lon), float(lat)) for lon, lat in coords)
