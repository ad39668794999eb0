"""Pipeline configuration loaded from environment variables.

All configuration values have defaults matching the behaviour of the
interactive mapping tool (5 px closing kernel, 5 m² minimum area,
5e-6° simplification tolerance).

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any value is out
    of its valid range, so bad configuration is caught at startup rather
    than halfway through a run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from footprint_vectorizer.core.constants import (
    ACCUMULATE_APPEND,
    ACCUMULATION_MODES,
    DEFAULT_EXPORT_FOLDER,
    DEFAULT_EXPORT_LAYER,
    DEFAULT_FEATURE_ID_PREFIX,
    DEFAULT_KERNEL_SIZE,
    DEFAULT_MIN_AREA_M2,
    DEFAULT_SEGMENTATION_TIMEOUT_S,
    DEFAULT_SEGMENTATION_URL,
    DEFAULT_SIMPLIFY_TOLERANCE_DEG,
    DEFAULT_TRACE_THRESHOLD,
)
from footprint_vectorizer.core.exceptions import PipelineError

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class ConfigValidationError(PipelineError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable pipeline configuration.

    Loaded once at startup and handed to the orchestrator.

    Attributes:
        kernel_size: Closing kernel side in pixels (even values are bumped to odd).
        min_area_m2: Area threshold in square metres; features at or below are dropped.
        simplify_tolerance_deg: Simplification tolerance in degrees.
        accumulation_mode: ``"append"`` keeps earlier features across runs,
            ``"replace"`` swaps them for the latest non-empty run.
        single_active_run: Discard results of runs superseded by a newer one.
        segmentation_url: Endpoint of the segmentation service.
        segmentation_timeout_s: HTTP timeout for the segmentation call, in seconds.
        trace_threshold: Binarisation threshold used by the tracer.
        feature_id_prefix: Prefix of generated feature identifiers.
        export_folder: Folder name inside the exported archive.
        export_layer: Shapefile layer name inside the exported archive.
    """

    kernel_size: int = DEFAULT_KERNEL_SIZE
    min_area_m2: float = DEFAULT_MIN_AREA_M2
    simplify_tolerance_deg: float = DEFAULT_SIMPLIFY_TOLERANCE_DEG
    accumulation_mode: str = ACCUMULATE_APPEND
    single_active_run: bool = True
    segmentation_url: str = DEFAULT_SEGMENTATION_URL
    segmentation_timeout_s: float = DEFAULT_SEGMENTATION_TIMEOUT_S
    trace_threshold: int = DEFAULT_TRACE_THRESHOLD
    feature_id_prefix: str = DEFAULT_FEATURE_ID_PREFIX
    export_folder: str = DEFAULT_EXPORT_FOLDER
    export_layer: str = DEFAULT_EXPORT_LAYER

    def __post_init__(self) -> None:
        _validate(self)

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a value is out of range, a required
                string is empty, or a boolean flag is unrecognised.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``MIN_AREA_M2=abc``).
        """
        return cls(
            kernel_size=int(os.getenv("MORPH_KERNEL_SIZE", str(DEFAULT_KERNEL_SIZE))),
            min_area_m2=float(os.getenv("MIN_AREA_M2", str(DEFAULT_MIN_AREA_M2))),
            simplify_tolerance_deg=float(
                os.getenv("SIMPLIFY_TOLERANCE_DEG", str(DEFAULT_SIMPLIFY_TOLERANCE_DEG))
            ),
            accumulation_mode=os.getenv("ACCUMULATION_MODE", ACCUMULATE_APPEND).strip().lower(),
            single_active_run=_parse_bool(
                "SINGLE_ACTIVE_RUN", os.getenv("SINGLE_ACTIVE_RUN", "true")
            ),
            segmentation_url=os.getenv("SEGMENTATION_URL", DEFAULT_SEGMENTATION_URL),
            segmentation_timeout_s=float(
                os.getenv("SEGMENTATION_TIMEOUT_S", str(DEFAULT_SEGMENTATION_TIMEOUT_S))
            ),
            trace_threshold=int(os.getenv("TRACE_THRESHOLD", str(DEFAULT_TRACE_THRESHOLD))),
            feature_id_prefix=os.getenv("FEATURE_ID_PREFIX", DEFAULT_FEATURE_ID_PREFIX),
            export_folder=os.getenv("EXPORT_FOLDER", DEFAULT_EXPORT_FOLDER),
            export_layer=os.getenv("EXPORT_LAYER", DEFAULT_EXPORT_LAYER),
        )


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigValidationError(key, raw, "must be a boolean (true/false)")


def _validate(config: PipelineConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if config.kernel_size < 1:
        raise ConfigValidationError(
            "MORPH_KERNEL_SIZE",
            config.kernel_size,
            "must be >= 1 (pixels)",
        )

    if config.min_area_m2 < 0:
        raise ConfigValidationError(
            "MIN_AREA_M2",
            config.min_area_m2,
            "must be >= 0 (square metres)",
        )

    if config.simplify_tolerance_deg < 0:
        raise ConfigValidationError(
            "SIMPLIFY_TOLERANCE_DEG",
            config.simplify_tolerance_deg,
            "must be >= 0 (degrees)",
        )

    if config.accumulation_mode not in ACCUMULATION_MODES:
        raise ConfigValidationError(
            "ACCUMULATION_MODE",
            config.accumulation_mode,
            f"must be one of {', '.join(ACCUMULATION_MODES)}",
        )

    if config.segmentation_timeout_s <= 0:
        raise ConfigValidationError(
            "SEGMENTATION_TIMEOUT_S",
            config.segmentation_timeout_s,
            "must be > 0 (seconds)",
        )

    if not 0 <= config.trace_threshold < 255:
        raise ConfigValidationError(
            "TRACE_THRESHOLD",
            config.trace_threshold,
            "must be between 0 and 254",
        )

    for key, value in (
        ("SEGMENTATION_URL", config.segmentation_url),
        ("FEATURE_ID_PREFIX", config.feature_id_prefix),
        ("EXPORT_FOLDER", config.export_folder),
        ("EXPORT_LAYER", config.export_layer),
    ):
        if not value:
            raise ConfigValidationError(key, value, "must not be empty")
