"""Geometric primitives shared by every pipeline stage.

- ``BoundingBox``: the geographic rectangle a captured raster represents.
- ``PixelRing``: a polygon boundary in raster space, as produced by the tracer.

All geographic coordinates are WGS 84 (EPSG:4326) longitude/latitude
degrees.  Pixel coordinates have their origin at the north-west corner
of the raster, ``x`` growing east and ``y`` growing south.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from footprint_vectorizer.core.exceptions import PipelineError

PixelRing: TypeAlias = list[tuple[float, float]]
"""Ordered ``(x, y)`` pixel vertices; not necessarily closed."""

GeoRing: TypeAlias = list[tuple[float, float]]
"""Ordered ``(lon, lat)`` vertices."""


class ModelValidationError(ValueError, PipelineError):
    """Raised when a domain model is constructed with invalid field values.

    Attributes:
        model: Name of the model class that failed validation.
        field_name: The field that violated the invariant.
        value: The invalid value.
    """

    default_stage = "model_validation"
    default_code = "MODEL_VALIDATION_FAILED"

    def __init__(self, model: str, field_name: str, value: object, message: str) -> None:
        self.model = model
        self.field_name = field_name
        self.value = value
        formatted = f"{model}.{field_name}={value!r}: {message}"
        PipelineError.__init__(self, formatted)


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Geographic rectangle matching a raster's pixel extent 1:1.

    Pixel ``(0, 0)`` is the ``(west, north)`` corner and pixel
    ``(width, height)`` the ``(east, south)`` corner.

    Attributes:
        west: Western longitude in degrees.
        south: Southern latitude in degrees.
        east: Eastern longitude in degrees (strictly greater than ``west``).
        north: Northern latitude in degrees (strictly greater than ``south``).
    """

    west: float
    south: float
    east: float
    north: float

    def __post_init__(self) -> None:
        for name in ("west", "east"):
            _check_range("BoundingBox", name, getattr(self, name), -180.0, 180.0)
        for name in ("south", "north"):
            _check_range("BoundingBox", name, getattr(self, name), -90.0, 90.0)
        if not self.west < self.east:
            raise ModelValidationError(
                "BoundingBox", "west", self.west, f"must be < east ({self.east})"
            )
        if not self.south < self.north:
            raise ModelValidationError(
                "BoundingBox", "south", self.south, f"must be < north ({self.north})"
            )

    @classmethod
    def from_bounds(cls, bounds: tuple[float, float, float, float] | list[float]) -> BoundingBox:
        """Build from ``(west, south, east, north)``, the rasterio/shapely order."""
        if len(bounds) != 4:
            raise ModelValidationError(
                "BoundingBox", "bounds", bounds, "must have exactly 4 values"
            )
        west, south, east, north = (float(v) for v in bounds)
        return cls(west=west, south=south, east=east, north=north)

    def to_bounds(self) -> tuple[float, float, float, float]:
        """Return ``(west, south, east, north)``."""
        return (self.west, self.south, self.east, self.north)

    @property
    def width_deg(self) -> float:
        """East-west extent in degrees."""
        return self.east - self.west

    @property
    def height_deg(self) -> float:
        """North-south extent in degrees."""
        return self.north - self.south


def _check_range(model: str, field_name: str, value: float, lo: float, hi: float) -> None:
    if not lo <= value <= hi:
        raise ModelValidationError(model, field_name, value, f"must be between {lo} and {hi}")
