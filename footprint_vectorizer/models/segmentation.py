"""Pydantic wire models for the segmentation service.

The service receives the captured tile as base64 PNG plus its pixel size
and answers with an SVG mask string, or with an error message and an
optional detail.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SegmentationRequest(BaseModel):
    """Request body sent to the segmentation endpoint.

    Attributes:
        image_base64: PNG bytes as base64, without a data-URI prefix.
        width: Image width in pixels; the mask must use the same extent.
        height: Image height in pixels.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    image_base64: str = Field(alias="imageBase64", min_length=1)
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    def to_wire(self) -> dict[str, object]:
        """Return the JSON body with the service's field names."""
        return self.model_dump(by_alias=True)


class SegmentationResponse(BaseModel):
    """Response body returned by the segmentation endpoint.

    Exactly one of ``svg`` or ``error`` is expected; both are optional so
    that a malformed response is still parseable and can be reported.
    """

    model_config = ConfigDict(extra="ignore")

    svg: str | None = None
    error: str | None = None
    detail: str | None = None

    @property
    def has_mask(self) -> bool:
        return bool(self.svg and self.svg.strip())
