"""Shared pipeline constants.

Centralises the numeric defaults and string literals shared by the
activities, providers, configuration and command line.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Raster values
# ---------------------------------------------------------------------------

MASK_BACKGROUND: int = 0
"""Intensity of background pixels in a binary mask."""

MASK_FOREGROUND: int = 255
"""Intensity of structure pixels in a binary mask."""

# ---------------------------------------------------------------------------
# Processing defaults
# ---------------------------------------------------------------------------

DEFAULT_KERNEL_SIZE: int = 5
"""Side of the square structuring element used by the closing filter."""

DEFAULT_MIN_AREA_M2: float = 5.0
"""Features whose simplified area is at or below this are discarded."""

DEFAULT_SIMPLIFY_TOLERANCE_DEG: float = 0.000005
"""Distance tolerance for polygon simplification, in degrees."""

DEFAULT_TRACE_THRESHOLD: int = 128
"""Pixels brighter than this are foreground when tracing."""

MIN_RING_POINTS: int = 3
"""Minimum vertex count for a ring to describe an area."""

AREA_DECIMALS: int = 2
"""Precision of reported feature areas (square metres)."""

# ---------------------------------------------------------------------------
# Accumulation policy
# ---------------------------------------------------------------------------

ACCUMULATE_APPEND: str = "append"
ACCUMULATE_REPLACE: str = "replace"
ACCUMULATION_MODES: tuple[str, ...] = (ACCUMULATE_APPEND, ACCUMULATE_REPLACE)

# ---------------------------------------------------------------------------
# Collaborators and export
# ---------------------------------------------------------------------------

DEFAULT_SEGMENTATION_URL: str = "http://localhost:3000/api/segment"
DEFAULT_SEGMENTATION_TIMEOUT_S: float = 120.0

DEFAULT_FEATURE_ID_PREFIX: str = "footprint"
DEFAULT_EXPORT_FOLDER: str = "footprints"
DEFAULT_EXPORT_LAYER: str = "buildings"

WGS84: str = "EPSG:4326"
"""CRS of every geographic coordinate handled by the pipeline."""
WGS84_EPSG: int = 4326
