"""HTTP adapter for the segmentation service.

POSTs ``{"imageBase64", "width", "height"}`` as JSON and expects
``{"svg": "<svg ...>...</svg>"}`` back, or ``{"error": ..., "detail": ...}``.
The model prompt and model selection live with the service, not here.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from footprint_vectorizer.core.constants import (
    DEFAULT_SEGMENTATION_TIMEOUT_S,
    DEFAULT_SEGMENTATION_URL,
)
from footprint_vectorizer.core.exceptions import (
    InvalidSegmentationPayloadError,
    SegmentationRequestError,
)
from footprint_vectorizer.models.segmentation import (
    SegmentationRequest,
    SegmentationResponse,
)
from footprint_vectorizer.providers.base import SegmentationService
from footprint_vectorizer.utils.imaging import strip_data_uri

logger = logging.getLogger("footprint_vectorizer.providers.http_segmentation")


class HttpSegmentationService(SegmentationService):
    """Segmentation service reached over HTTP with ``httpx``.

    Args:
        url: Endpoint accepting the JSON request.
        timeout_s: Request timeout in seconds.
        client: Optional shared ``httpx.AsyncClient``.  When omitted, a
            client is created per request.
    """

    def __init__(
        self,
        url: str = DEFAULT_SEGMENTATION_URL,
        *,
        timeout_s: float = DEFAULT_SEGMENTATION_TIMEOUT_S,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout_s = timeout_s
        self._client = client

    @property
    def url(self) -> str:
        return self._url

    async def segment(self, image_base64: str, width: int, height: int) -> str:
        request = SegmentationRequest(
            image_base64=strip_data_uri(image_base64), width=width, height=height
        )
        logger.info(
            "Segmentation request | url=%s | size=%dx%d | payload_chars=%d",
            self._url,
            width,
            height,
            len(request.image_base64),
        )

        try:
            if self._client is not None:
                response = await self._client.post(
                    self._url, json=request.to_wire(), timeout=self._timeout_s
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                    response = await client.post(self._url, json=request.to_wire())
        except httpx.HTTPError as exc:
            msg = f"Segmentation request failed: {exc}"
            raise SegmentationRequestError(msg, retryable=True) from exc

        if not response.is_success:
            body = response.text
            msg = f"Server error ({response.status_code}): {body}"
            raise SegmentationRequestError(msg, detail=body)

        try:
            parsed = SegmentationResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as exc:
            msg = "Segmentation service returned an unreadable response"
            raise InvalidSegmentationPayloadError(msg, detail=response.text) from exc

        if parsed.error:
            raise SegmentationRequestError(parsed.error, detail=parsed.detail or "")

        if not parsed.has_mask:
            msg = "Segmentation service did not return an SVG mask"
            raise InvalidSegmentationPayloadError(msg, detail=response.text)

        logger.info("Segmentation response | mask_chars=%d", len(parsed.svg or ""))
        return parsed.svg or ""
