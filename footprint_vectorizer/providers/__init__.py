"""External collaborator adapters.

Implements the adapter pattern for everything the pipeline consumes but
does not own:
- ImageCapture / GeoTiffCapture: raster of a bounded region
- SegmentationService / HttpSegmentationService: SVG building mask
- Tracer / RasterioTracer: pixel rings from a binary raster
"""

from footprint_vectorizer.providers.base import ImageCapture, SegmentationService, Tracer
from footprint_vectorizer.providers.geotiff_capture import GeoTiffCapture
from footprint_vectorizer.providers.http_segmentation import HttpSegmentationService
from footprint_vectorizer.providers.raster_tracer import RasterioTracer, rings_from_geojson

__all__ = [
    "GeoTiffCapture",
    "HttpSegmentationService",
    "ImageCapture",
    "RasterioTracer",
    "SegmentationService",
    "Tracer",
    "rings_from_geojson",
]
