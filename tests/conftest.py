"""Shared pytest fixtures for the footprint vectorizer test suite."""

from __future__ import annotations

import asyncio

import numpy as np
import pytest

from footprint_vectorizer.models.geometry import BoundingBox
from footprint_vectorizer.models.raster import CapturedImage, RasterMask
from footprint_vectorizer.orchestrators.reporting import RunReporter
from footprint_vectorizer.providers.base import ImageCapture, SegmentationService, Tracer

# ---------------------------------------------------------------------------
# Geometry fixtures
# ---------------------------------------------------------------------------

# 0.01° square near Curitiba; at 1000 px each pixel is ~1 m wide.
SCENARIO_BBOX = (-49.36, -25.57, -49.35, -25.56)

# 0.001° square; at 100 px each pixel is ~1 m wide.
TILE_BBOX = (-49.356, -25.566, -49.355, -25.565)
TILE_SIZE = 100


@pytest.fixture()
def scenario_bbox() -> BoundingBox:
    """Bounding box used by the georeferencing scenarios."""
    return BoundingBox.from_bounds(SCENARIO_BBOX)


@pytest.fixture()
def tile_bbox() -> BoundingBox:
    """Small bounding box matching a ``TILE_SIZE`` square tile."""
    return BoundingBox.from_bounds(TILE_BBOX)


# ---------------------------------------------------------------------------
# Mask helpers
# ---------------------------------------------------------------------------


def square_mask(size: int, x0: int, y0: int, side: int) -> RasterMask:
    """Black ``size × size`` mask with one white ``side`` px square at (x0, y0)."""
    pixels = np.zeros((size, size), dtype=np.uint8)
    pixels[y0 : y0 + side, x0 : x0 + side] = 255
    return RasterMask(pixels)


def svg_mask(width: int, height: int, body: str, *, root_attrs: str = "") -> str:
    """Wrap drawing elements in an SVG root whose viewBox matches the image."""
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {width} {height}" {root_attrs}>'
        f'<rect width="{width}" height="{height}" fill="black"/>'
        f"{body}</svg>"
    )


@pytest.fixture()
def make_svg():
    """Factory fixture for SVG mask payloads."""
    return svg_mask


@pytest.fixture()
def make_square_mask():
    """Factory fixture for square test masks."""
    return square_mask


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class StubCapture(ImageCapture):
    """Returns a black RGB tile of a fixed size for any bbox."""

    def __init__(
        self,
        width: int = TILE_SIZE,
        height: int = TILE_SIZE,
        *,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.width = width
        self.height = height
        self.error = error
        self.gate = gate
        self.calls: list[BoundingBox] = []

    async def capture(self, bbox: BoundingBox) -> CapturedImage:
        self.calls.append(bbox)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return CapturedImage(np.zeros((self.height, self.width, 3), dtype=np.uint8), bbox)


class StubSegmenter(SegmentationService):
    """Replays queued responses; an ``Exception`` entry is raised instead."""

    def __init__(self, *responses: object) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[int, int]] = []

    async def segment(self, image_base64: str, width: int, height: int) -> str:
        self.calls.append((width, height))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response  # type: ignore[return-value]


class StubTracer(Tracer):
    """Returns a fixed tracer result, or raises."""

    def __init__(self, result: object = None, *, error: Exception | None = None) -> None:
        self.result = [] if result is None else result
        self.error = error
        self.calls = 0

    async def trace(self, encoded_mask: str):  # type: ignore[override]
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class RecordingReporter(RunReporter):
    """Collects every reporter callback as ``(name, payload)`` tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def progress(self, state, text: str) -> None:
        self.events.append(("progress", state))

    def hide_progress(self) -> None:
        self.events.append(("hide_progress", None))

    def notify(self, message: str, *, detail: str = "") -> None:
        self.events.append(("notify", (message, detail)))

    def show_debug_mask(self, mask, bbox) -> None:
        self.events.append(("show_debug_mask", mask))

    def render(self, new_features, all_features) -> None:
        self.events.append(("render", (list(new_features), list(all_features))))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def notifications(self) -> list[tuple[str, str]]:
        return [payload for name, payload in self.events if name == "notify"]  # type: ignore[misc]


@pytest.fixture()
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture()
def stub_capture():
    """Factory for ``StubCapture`` instances."""
    return StubCapture


@pytest.fixture()
def stub_segmenter():
    """Factory for ``StubSegmenter`` instances."""
    return StubSegmenter


@pytest.fixture()
def stub_tracer():
    """Factory for ``StubTracer`` instances."""
    return StubTracer
