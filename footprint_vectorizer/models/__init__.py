"""Data models and schemas.

Defines the data structures handed between pipeline stages:
- BoundingBox / PixelRing: geographic extent and raster-space rings
- RasterMask / CapturedImage: single-channel mask and captured tile
- Feature: accepted, georeferenced building footprint
- SegmentationRequest / SegmentationResponse: segmentation wire models
"""

from footprint_vectorizer.models.feature import Feature
from footprint_vectorizer.models.geometry import (
    BoundingBox,
    GeoRing,
    ModelValidationError,
    PixelRing,
)
from footprint_vectorizer.models.raster import CapturedImage, RasterMask
from footprint_vectorizer.models.segmentation import (
    SegmentationRequest,
    SegmentationResponse,
)

__all__ = [
    "BoundingBox",
    "CapturedImage",
    "Feature",
    "GeoRing",
    "ModelValidationError",
    "PixelRing",
    "RasterMask",
    "SegmentationRequest",
    "SegmentationResponse",
]
