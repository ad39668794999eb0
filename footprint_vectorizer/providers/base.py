"""Abstract base classes for the pipeline's external collaborators.

The orchestrator talks exclusively to these interfaces and never knows
which concrete adapter is behind them:

1. ``ImageCapture.capture(bbox)``          — render a raster of a region.
2. ``SegmentationService.segment(...)``   — encoded raster in, SVG mask out.
3. ``Tracer.trace(encoded_mask)``         — binary raster in, pixel rings out.

Every method is a coroutine: each call is a suspend point of the
orchestrator.  Adapters raise the stage's ``PipelineError`` subclass
(``CaptureError``, ``SegmentationRequestError`` /
``InvalidSegmentationPayloadError``, ``VectorizationError``); anything
else they raise is wrapped by the orchestrator.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from footprint_vectorizer.models.geometry import BoundingBox, PixelRing
    from footprint_vectorizer.models.raster import CapturedImage


class ImageCapture(abc.ABC):
    """Produces a raster image of a bounded geographic region."""

    @abc.abstractmethod
    async def capture(self, bbox: BoundingBox) -> CapturedImage:
        """Render the area inside *bbox*.

        Returns:
            A ``CapturedImage`` whose ``bbox`` is the exact extent of its
            pixels (usually *bbox* itself).

        Raises:
            CaptureError: If the region cannot be rendered.
        """


class SegmentationService(abc.ABC):
    """Remote segmentation model returning an SVG building mask."""

    @abc.abstractmethod
    async def segment(self, image_base64: str, width: int, height: int) -> str:
        """Request a mask for the encoded image.

        Args:
            image_base64: PNG as base64, no data-URI prefix.
            width: Image width in pixels.
            height: Image height in pixels.

        Returns:
            The raw mask markup, before sanitising.

        Raises:
            SegmentationRequestError: On transport failures, non-success
                responses, or an error reported by the service.
            InvalidSegmentationPayloadError: If the response has no mask.
        """


class Tracer(abc.ABC):
    """Extracts polygon rings from a binary raster."""

    @abc.abstractmethod
    async def trace(self, encoded_mask: str) -> list[PixelRing]:
        """Trace the foreground regions of a base64 PNG mask.

        Returns:
            Pixel-space rings (possibly none).  Non-polygon results are
            ignored by adapters.

        Raises:
            VectorizationError: If tracing fails or the result is not a
                polygon collection.
        """
