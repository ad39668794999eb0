"""Tests for the HTTP segmentation adapter (httpx mock transport)."""

from __future__ import annotations

import json

import httpx
import pytest

from footprint_vectorizer.core.exceptions import (
    InvalidSegmentationPayloadError,
    SegmentationRequestError,
)
from footprint_vectorizer.providers.http_segmentation import HttpSegmentationService

URL = "http://segmentation.test/api/segment"
SVG = '<svg viewBox="0 0 4 4"><rect width="2" height="2" fill="white"/></svg>'


async def _segment(handler, image: str = "aGVsbG8=", width: int = 4, height: int = 4) -> str:
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        service = HttpSegmentationService(URL, timeout_s=5.0, client=client)
        return await service.segment(image, width, height)


class TestRequest:
    """What goes over the wire."""

    @pytest.mark.asyncio()
    async def test_posts_json_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"svg": SVG})

        await _segment(handler, width=640, height=480)

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == URL
        assert json.loads(request.content) == {
            "imageBase64": "aGVsbG8=",
            "width": 640,
            "height": 480,
        }

    @pytest.mark.asyncio()
    async def test_data_uri_prefix_stripped(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"svg": SVG})

        await _segment(handler, image="data:image/png;base64,aGVsbG8=")
        assert bodies[0]["imageBase64"] == "aGVsbG8="

    def test_url_property(self) -> None:
        assert HttpSegmentationService(URL).url == URL


class TestResponse:
    """How responses map onto results and errors."""

    @pytest.mark.asyncio()
    async def test_returns_svg(self) -> None:
        assert await _segment(lambda r: httpx.Response(200, json={"svg": SVG})) == SVG

    @pytest.mark.asyncio()
    async def test_server_error(self) -> None:
        with pytest.raises(SegmentationRequestError) as exc_info:
            await _segment(lambda r: httpx.Response(500, text="model overloaded"))
        err = exc_info.value
        assert err.message == "Server error (500): model overloaded"
        assert err.detail == "model overloaded"
        assert err.retryable is False

    @pytest.mark.asyncio()
    async def test_service_reported_error(self) -> None:
        body = {"error": "Image too large", "detail": "max 4 MB"}
        with pytest.raises(SegmentationRequestError) as exc_info:
            await _segment(lambda r: httpx.Response(200, json=body))
        assert exc_info.value.message == "Image too large"
        assert exc_info.value.detail == "max 4 MB"

    @pytest.mark.asyncio()
    async def test_missing_svg(self) -> None:
        with pytest.raises(InvalidSegmentationPayloadError, match="did not return an SVG"):
            await _segment(lambda r: httpx.Response(200, json={"svg": "   "}))

    @pytest.mark.asyncio()
    async def test_non_json_body(self) -> None:
        with pytest.raises(InvalidSegmentationPayloadError, match="unreadable"):
            await _segment(lambda r: httpx.Response(200, text="<html>oops</html>"))

    @pytest.mark.asyncio()
    async def test_unexpected_fields_ignored(self) -> None:
        body = {"svg": SVG, "model": "vision-1", "latency_ms": 830}
        assert await _segment(lambda r: httpx.Response(200, json=body)) == SVG

    @pytest.mark.asyncio()
    async def test_transport_error_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SegmentationRequestError) as exc_info:
            await _segment(handler)
        assert exc_info.value.retryable is True
        assert exc_info.value.category == "transient"
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
