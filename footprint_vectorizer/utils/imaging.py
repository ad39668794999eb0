"""PNG + base64 codec used at the collaborator boundaries.

Rasters travel between the pipeline and its collaborators (segmentation
service, tracer) as base64-encoded PNG without a data-URI prefix.
"""

from __future__ import annotations

import base64
import binascii
import io

import numpy as np
from PIL import Image, UnidentifiedImageError

DATA_URI_SEPARATOR = ","


def strip_data_uri(encoded: str) -> str:
    """Drop a ``data:image/png;base64,`` style prefix if present."""
    if encoded.startswith("data:") and DATA_URI_SEPARATOR in encoded:
        return encoded.split(DATA_URI_SEPARATOR, 1)[1]
    return encoded


def encode_png_base64(pixels: np.ndarray) -> str:
    """Encode a ``uint8`` grey (H×W), RGB or RGBA (H×W×C) array as base64 PNG."""
    array = np.ascontiguousarray(pixels, dtype=np.uint8)
    if array.ndim == 3 and array.shape[2] == 1:
        array = array[:, :, 0]
    buffer = io.BytesIO()
    Image.fromarray(array).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_png_base64(encoded: str, *, mode: str = "L") -> np.ndarray:
    """Decode base64 image bytes into a ``uint8`` array converted to *mode*.

    Raises:
        ValueError: If the text is not base64 or not a readable image.
    """
    try:
        raw = base64.b64decode(strip_data_uri(encoded), validate=True)
    except binascii.Error as exc:
        msg = f"Invalid base64 image data: {exc}"
        raise ValueError(msg) from exc

    try:
        with Image.open(io.BytesIO(raw)) as image:
            return np.asarray(image.convert(mode), dtype=np.uint8)
    except (UnidentifiedImageError, OSError) as exc:
        msg = f"Unreadable image data: {exc}"
        raise ValueError(msg) from exc
