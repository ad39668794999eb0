"""Decode the segmentation service's SVG mask into a pixel grid.

The service answers with SVG markup produced by a language model, so the
text is cleaned before it is trusted:

1. **Sanitise** — drop markdown code fences and control characters, and
   cut everything before the first ``<svg`` and after the last
   ``</svg>``.  The result must start with ``<svg`` and end with
   ``</svg>``.
2. **Parse** — hardened lxml parse (no entities, no network).  The root
   must be ``svg`` and declare a coordinate space (``viewBox="0 0 W H"``,
   or numeric ``width``/``height``) equal to the requested image size.
3. **Rasterize** — paint the drawing elements in document order onto a
   black canvas of exactly ``width × height`` pixels with
   ``rasterio.features.rasterize``; later shapes replace earlier ones.

Supported drawing elements: ``rect``, ``polygon``, ``polyline``,
``path``, ``circle``, ``ellipse``, nested in ``g`` groups.  Fills and
transforms are inherited from groups.  Path curve and arc commands
contribute their end points only; mask polygons from the service are
straight-edged.
"""

from __future__ import annotations

import logging
import math
import re
from functools import reduce
from typing import TYPE_CHECKING

import numpy as np
from rasterio.enums import MergeAlg
from rasterio.features import rasterize
from shapely import affinity
from shapely.errors import ShapelyError
from shapely.geometry import Point, Polygon
from shapely.validation import make_valid

from footprint_vectorizer.core.exceptions import (
    InvalidSegmentationPayloadError,
    RasterizationError,
)
from footprint_vectorizer.models.raster import RasterMask

if TYPE_CHECKING:
    from collections.abc import Iterator

    from lxml.etree import _Element
    from shapely.geometry.base import BaseGeometry

logger = logging.getLogger("footprint_vectorizer.activities.decode_mask")

SVG_OPEN = "<svg"
SVG_CLOSE = "</svg>"

_FENCE_RE = re.compile(r"```(?:xml|svg)?", re.IGNORECASE)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_PATH_TOKEN_RE = re.compile(
    r"[MmLlHhVvCcSsQqTtAaZz]|[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
)
_TRANSFORM_RE = re.compile(r"(matrix|translate|scale|rotate|skewX|skewY)\s*\(([^)]*)\)")
_RGB_RE = re.compile(r"rgba?\(([^)]*)\)", re.IGNORECASE)

# Path command -> number of arguments per segment
_PATH_ARITY = {"m": 2, "l": 2, "h": 1, "v": 1, "c": 6, "s": 4, "q": 4, "t": 2, "a": 7, "z": 0}

_SKIPPED_TAGS = frozenset(
    {
        "defs",
        "clipPath",
        "mask",
        "pattern",
        "symbol",
        "marker",
        "title",
        "desc",
        "metadata",
        "style",
        "script",
        "linearGradient",
        "radialGradient",
        "text",
    }
)

_NAMED_COLOURS: dict[str, tuple[int, int, int]] = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
    "silver": (192, 192, 192),
    "lightgray": (211, 211, 211),
    "lightgrey": (211, 211, 211),
    "darkgray": (169, 169, 169),
    "darkgrey": (169, 169, 169),
    "dimgray": (105, 105, 105),
    "dimgrey": (105, 105, 105),
    "red": (255, 0, 0),
    "maroon": (128, 0, 0),
    "lime": (0, 255, 0),
    "green": (0, 128, 0),
    "blue": (0, 0, 255),
    "navy": (0, 0, 128),
    "yellow": (255, 255, 0),
    "olive": (128, 128, 0),
    "aqua": (0, 255, 255),
    "cyan": (0, 255, 255),
    "teal": (0, 128, 128),
    "fuchsia": (255, 0, 255),
    "magenta": (255, 0, 255),
    "purple": (128, 0, 128),
    "orange": (255, 165, 0),
}

# SVG matrix (a, b, c, d, e, f):  x' = a*x + c*y + e,  y' = b*x + d*y + f
Matrix = tuple[float, float, float, float, float, float]
IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode_mask(raw: str, width: int, height: int) -> RasterMask:
    """Sanitise, validate and rasterize a raw mask payload.

    Raises:
        InvalidSegmentationPayloadError: If the payload fails sanitising
            or validation.
        RasterizationError: If the validated mask cannot be painted.
    """
    svg = sanitize_mask_payload(raw)
    root = parse_mask_payload(svg, width, height)
    return rasterize_mask(root, width, height)


def sanitize_mask_payload(raw: str) -> str:
    """Strip non-geometry wrapping from a mask payload.

    Raises:
        InvalidSegmentationPayloadError: If the cleaned text does not start
            with ``<svg`` and end with ``</svg>``.  The raw text is kept
            in ``detail``.
    """
    text = _FENCE_RE.sub("", raw or "")
    text = _CONTROL_RE.sub("", text)

    start = text.find(SVG_OPEN)
    end = text.rfind(SVG_CLOSE)
    if start != -1 and end > start:
        text = text[start : end + len(SVG_CLOSE)]
    text = text.strip()

    if not (text.startswith(SVG_OPEN) and text.endswith(SVG_CLOSE)):
        msg = "Segmentation service returned a malformed mask (expected <svg>...</svg>)"
        raise InvalidSegmentationPayloadError(msg, detail=raw or "")
    return text


def parse_mask_payload(svg: str, width: int, height: int) -> _Element:
    """Parse sanitised SVG and check its coordinate space.

    Raises:
        InvalidSegmentationPayloadError: On XML syntax errors, text that
            cannot be encoded (lone surrogates), a non-``svg`` root, a
            missing coordinate space, or a size mismatch.
    """
    from lxml import etree  # type: ignore[attr-defined]

    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)
    try:
        root: _Element = etree.fromstring(svg.encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError as exc:
        msg = f"Mask is not well-formed XML: {exc}"
        raise InvalidSegmentationPayloadError(msg, detail=svg) from exc
    except UnicodeError as exc:
        msg = f"Mask is not encodable text: {exc}"
        printable = svg.encode("utf-8", "replace").decode("utf-8")
        raise InvalidSegmentationPayloadError(msg, detail=printable) from exc

    if _local_name(root) != "svg":
        msg = f"Mask root element is <{_local_name(root)}>, expected <svg>"
        raise InvalidSegmentationPayloadError(msg, detail=svg)

    extent = declared_extent(root)
    if extent is None:
        msg = "Mask root does not declare its coordinate space (viewBox or width/height)"
        raise InvalidSegmentationPayloadError(msg, detail=svg)

    declared_w, declared_h = extent
    if not (math.isclose(declared_w, width) and math.isclose(declared_h, height)):
        msg = (
            f"Mask coordinate space {declared_w:g}x{declared_h:g} does not match "
            f"the requested image size {width}x{height}"
        )
        raise InvalidSegmentationPayloadError(msg, detail=svg)

    return root


def declared_extent(root: _Element) -> tuple[float, float] | None:
    """Return the ``(width, height)`` coordinate space declared by the root.

    ``viewBox`` wins over ``width``/``height``.  Percentage sizes declare
    nothing.

    Raises:
        InvalidSegmentationPayloadError: If ``viewBox`` is malformed or
            does not start at the origin.
    """
    view_box = root.get("viewBox")
    if view_box is not None:
        numbers = [float(n) for n in _NUMBER_RE.findall(view_box)]
        if len(numbers) != 4 or numbers[2] <= 0 or numbers[3] <= 0:
            msg = f"Malformed viewBox: {view_box!r}"
            raise InvalidSegmentationPayloadError(msg, detail=view_box)
        if numbers[0] != 0 or numbers[1] != 0:
            msg = f"viewBox must start at the origin, got {view_box!r}"
            raise InvalidSegmentationPayloadError(msg, detail=view_box)
        return (numbers[2], numbers[3])

    width = _absolute_length(root.get("width"))
    height = _absolute_length(root.get("height"))
    if width is None or height is None:
        return None
    return (width, height)


def rasterize_mask(root: _Element, width: int, height: int) -> RasterMask:
    """Paint the SVG's drawing elements onto a ``width × height`` grid.

    Raises:
        RasterizationError: If any element cannot be converted or painted.
    """
    try:
        extent = declared_extent(root) or (float(width), float(height))
        scale: Matrix = (width / extent[0], 0.0, 0.0, height / extent[1], 0.0, 0.0)
        shapes = list(_collect_shapes(root, extent, scale, _element_fill(root, "black")))
        if shapes:
            pixels = rasterize(
                shapes,
                out_shape=(height, width),
                fill=0,
                dtype="uint8",
                merge_alg=MergeAlg.replace,
            )
        else:
            pixels = np.zeros((height, width), dtype=np.uint8)
    except RasterizationError:
        raise
    except (InvalidSegmentationPayloadError, ShapelyError, ValueError, TypeError) as exc:
        msg = f"Failed to rasterize mask: {exc}"
        raise RasterizationError(msg) from exc

    mask = RasterMask(np.asarray(pixels, dtype=np.uint8))
    logger.info(
        "Mask rasterized | size=%dx%d | shapes=%d | foreground=%d",
        width,
        height,
        len(shapes),
        mask.foreground_count(),
    )
    return mask


# ---------------------------------------------------------------------------
# Element walk
# ---------------------------------------------------------------------------


def _collect_shapes(
    element: _Element,
    viewport: tuple[float, float],
    matrix: Matrix,
    inherited_fill: str,
) -> Iterator[tuple[BaseGeometry, int]]:
    """Yield ``(pixel_geometry, intensity)`` pairs in paint order."""
    for child in element:
        if not isinstance(child.tag, str):
            continue  # comments, processing instructions
        tag = _local_name(child)
        if tag in _SKIPPED_TAGS or _is_hidden(child):
            continue

        child_matrix = _compose(matrix, parse_transform(child.get("transform", "")))
        fill = _element_fill(child, inherited_fill)

        if tag in ("g", "a", "svg"):
            yield from _collect_shapes(child, viewport, child_matrix, fill)
            continue

        geometry = _element_geometry(child, tag, viewport)
        if geometry is None or geometry.is_empty:
            continue
        intensity = fill_intensity(fill)
        if intensity is None:
            continue
        yield (_apply(geometry, child_matrix), intensity)


def _element_geometry(
    element: _Element,
    tag: str,
    viewport: tuple[float, float],
) -> BaseGeometry | None:
    if tag == "rect":
        x = _length(element.get("x"), viewport[0])
        y = _length(element.get("y"), viewport[1])
        w = _length(element.get("width"), viewport[0])
        h = _length(element.get("height"), viewport[1])
        if w <= 0 or h <= 0:
            return None
        return Polygon([(x, y), (x + w, y), (x + w, y + h), (x, y + h)])

    if tag in ("polygon", "polyline"):
        numbers = [float(n) for n in _NUMBER_RE.findall(element.get("points", ""))]
        points = list(zip(numbers[0::2], numbers[1::2], strict=False))
        if len(points) < 3:
            return None
        return Polygon(points)

    if tag == "path":
        return path_geometry(element.get("d", ""))

    if tag == "circle":
        r = _length(element.get("r"), viewport[0])
        if r <= 0:
            return None
        return Point(_length(element.get("cx"), viewport[0]), _length(element.get("cy"), viewport[1])).buffer(r)

    if tag == "ellipse":
        rx = _length(element.get("rx"), viewport[0])
        ry = _length(element.get("ry"), viewport[1])
        if rx <= 0 or ry <= 0:
            return None
        cx = _length(element.get("cx"), viewport[0])
        cy = _length(element.get("cy"), viewport[1])
        return affinity.affine_transform(Point(0, 0).buffer(1.0), [rx, 0, 0, ry, cx, cy])

    logger.debug("Skipping unsupported mask element <%s>", tag)
    return None


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def path_geometry(d: str) -> BaseGeometry | None:
    """Build the filled area of an SVG path using the even-odd rule.

    Each subpath with at least three distinct vertices becomes a ring.
    A single subpath is returned as-is; several are combined by
    symmetric difference so inner subpaths cut holes.
    """
    rings = [ring for ring in parse_path(d) if len(set(ring)) >= 3]
    if not rings:
        return None
    if len(rings) == 1:
        return Polygon(rings[0])
    polygons = [make_valid(Polygon(ring)) for ring in rings]
    return reduce(lambda acc, poly: acc.symmetric_difference(poly), polygons)


def parse_path(d: str) -> list[list[tuple[float, float]]]:
    """Split path data into vertex lists, one per subpath.

    Raises:
        RasterizationError: If the data contains a stray number or too
            few arguments for a command.
    """
    tokens = _PATH_TOKEN_RE.findall(d)
    subpaths: list[list[tuple[float, float]]] = []
    current: list[tuple[float, float]] = []
    x = y = 0.0
    start_x = start_y = 0.0
    command = ""
    i = 0

    while i < len(tokens):
        token = tokens[i]
        if token.isalpha():
            command = token
            i += 1
            if command in "Zz":
                if current:
                    subpaths.append(current)
                current = []
                x, y = start_x, start_y
                continue
        elif not command:
            msg = f"Path data starts with a number: {d[:40]!r}"
            raise RasterizationError(msg)
        elif command in "Zz":
            msg = f"Path closepath followed by a number: {d[:40]!r}"
            raise RasterizationError(msg)

        arity = _PATH_ARITY[command.lower()]
        args = tokens[i : i + arity]
        if len(args) < arity or any(a.isalpha() for a in args):
            msg = f"Path command {command!r} expects {arity} arguments"
            raise RasterizationError(msg)
        values = [float(a) for a in args]
        i += arity

        relative = command.islower()
        op = command.lower()
        if op == "h":
            x = x + values[0] if relative else values[0]
        elif op == "v":
            y = y + values[0] if relative else values[0]
        else:
            # End point is always the last pair, except for arcs (args 6-7)
            end_x, end_y = values[-2], values[-1]
            x, y = (x + end_x, y + end_y) if relative else (end_x, end_y)

        if op == "m":
            if current:
                subpaths.append(current)
            current = [(x, y)]
            start_x, start_y = x, y
            # Extra coordinate pairs after a moveto are implicit linetos
            command = "l" if relative else "L"
        else:
            if not current:
                current = [(start_x, start_y)]
            current.append((x, y))

    if current:
        subpaths.append(current)
    return subpaths


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------


def parse_transform(text: str) -> Matrix:
    """Parse an SVG ``transform`` attribute into a single matrix.

    Raises:
        RasterizationError: If a transform function has the wrong number
            of arguments.
    """
    matrix = IDENTITY
    for name, raw_args in _TRANSFORM_RE.findall(text or ""):
        args = [float(n) for n in _NUMBER_RE.findall(raw_args)]
        matrix = _compose(matrix, _transform_matrix(name, args))
    return matrix


def _transform_matrix(name: str, args: list[float]) -> Matrix:
    if name == "matrix" and len(args) == 6:
        return (args[0], args[1], args[2], args[3], args[4], args[5])
    if name == "translate" and len(args) in (1, 2):
        return (1.0, 0.0, 0.0, 1.0, args[0], args[1] if len(args) == 2 else 0.0)
    if name == "scale" and len(args) in (1, 2):
        sy = args[1] if len(args) == 2 else args[0]
        return (args[0], 0.0, 0.0, sy, 0.0, 0.0)
    if name == "rotate" and len(args) in (1, 3):
        angle = math.radians(args[0])
        cos, sin = math.cos(angle), math.sin(angle)
        rotation: Matrix = (cos, sin, -sin, cos, 0.0, 0.0)
        if len(args) == 3:
            cx, cy = args[1], args[2]
            return _compose(
                _compose((1.0, 0.0, 0.0, 1.0, cx, cy), rotation),
                (1.0, 0.0, 0.0, 1.0, -cx, -cy),
            )
        return rotation
    if name == "skewX" and len(args) == 1:
        return (1.0, 0.0, math.tan(math.radians(args[0])), 1.0, 0.0, 0.0)
    if name == "skewY" and len(args) == 1:
        return (1.0, math.tan(math.radians(args[0])), 0.0, 1.0, 0.0, 0.0)
    msg = f"Unsupported transform {name}({', '.join(f'{a:g}' for a in args)})"
    raise RasterizationError(msg)


def _compose(outer: Matrix, inner: Matrix) -> Matrix:
    """Return ``outer × inner`` (inner is applied first)."""
    a1, b1, c1, d1, e1, f1 = outer
    a2, b2, c2, d2, e2, f2 = inner
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def _apply(geometry: BaseGeometry, matrix: Matrix) -> BaseGeometry:
    if matrix == IDENTITY:
        return geometry
    a, b, c, d, e, f = matrix
    return affinity.affine_transform(geometry, [a, c, b, d, e, f])


# ---------------------------------------------------------------------------
# Fills
# ---------------------------------------------------------------------------


def fill_intensity(fill: str) -> int | None:
    """Convert an SVG fill to a grey intensity (0–255), ``None`` for no fill.

    Raises:
        RasterizationError: If the colour cannot be parsed.
    """
    value = fill.strip().lower()
    if value in ("none", "transparent", ""):
        return None

    rgb = _parse_colour(value)
    if rgb is None:
        msg = f"Unsupported fill colour: {fill!r}"
        raise RasterizationError(msg)
    r, g, b = rgb
    return int(round(0.299 * r + 0.587 * g + 0.114 * b))


def _parse_colour(value: str) -> tuple[int, int, int] | None:
    if value in _NAMED_COLOURS:
        return _NAMED_COLOURS[value]
    if value.startswith("#"):
        digits = value[1:]
        if len(digits) in (3, 4):
            digits = "".join(ch * 2 for ch in digits[:3])
        elif len(digits) == 8:
            digits = digits[:6]
        if len(digits) != 6:
            return None
        try:
            return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))
        except ValueError:
            return None
    match = _RGB_RE.fullmatch(value)
    if match:
        parts = [p.strip() for p in match.group(1).split(",")]
        if len(parts) < 3:
            return None
        channels = []
        for part in parts[:3]:
            if part.endswith("%"):
                channels.append(round(float(part[:-1]) * 2.55))
            else:
                channels.append(round(float(part)))
        r, g, b = (max(0, min(255, ch)) for ch in channels)
        return (r, g, b)
    return None


def _element_fill(element: _Element, inherited: str) -> str:
    style = _style_properties(element.get("style", ""))
    fill = style.get("fill", element.get("fill"))
    if fill is None or fill.strip() == "inherit":
        return inherited
    return fill


def _style_properties(style: str) -> dict[str, str]:
    properties: dict[str, str] = {}
    for declaration in style.split(";"):
        if ":" in declaration:
            key, value = declaration.split(":", 1)
            properties[key.strip()] = value.strip()
    return properties


def _is_hidden(element: _Element) -> bool:
    style = _style_properties(element.get("style", ""))
    display = style.get("display", element.get("display", ""))
    visibility = style.get("visibility", element.get("visibility", ""))
    return display.strip() == "none" or visibility.strip() == "hidden"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _local_name(element: _Element) -> str:
    tag = element.tag
    if isinstance(tag, str) and "}" in tag:
        return tag.split("}", 1)[1]
    return str(tag)


def _absolute_length(value: str | None) -> float | None:
    """Parse a length in user units; ``None`` for missing or percentage values."""
    if value is None:
        return None
    text = value.strip()
    if text.endswith("%"):
        return None
    if text.endswith("px"):
        text = text[:-2]
    try:
        return float(text)
    except ValueError:
        return None


def _length(value: str | None, reference: float) -> float:
    """Parse a length attribute, resolving percentages against *reference*.

    Raises:
        RasterizationError: If the attribute is present but not numeric.
    """
    if value is None or not value.strip():
        return 0.0
    text = value.strip()
    try:
        if text.endswith("%"):
            return float(text[:-1]) / 100.0 * reference
        if text.endswith("px"):
            text = text[:-2]
        return float(text)
    except ValueError as exc:
        msg = f"Invalid length attribute: {value!r}"
        raise RasterizationError(msg) from exc
