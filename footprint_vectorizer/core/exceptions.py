"""Unified pipeline exception taxonomy.

Every domain exception inherits from ``PipelineError`` and carries
structured context fields so the orchestrator can report failures
consistently and the caller can decide whether a retry makes sense.

Taxonomy categories
-------------------
- ``ValidationError``   — input/contract violations, never retryable.
- ``TransientError``    — temporary failures (network, throttle), retryable.
- ``PermanentError``    — unrecoverable domain failures, not retryable.
- ``ContractError``     — payload/schema drift between stages, never retryable.

Stage errors
------------
One concrete class per pipeline stage: capture, segmentation request,
segmentation payload, rasterization, vectorization, per-ring geometry
construction and archive export.  Only ``GeometryConstructionError`` is
recovered locally (the ring is dropped); every other stage error aborts
the current run.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred
            (e.g. ``"capture"``, ``"decode_mask"``).
        code: Machine-readable error code (e.g. ``"CAPTURE_FAILED"``).
        retryable: Whether the operation may succeed if repeated.
        correlation_id: Run correlation identifier.
        detail: Optional diagnostic text (raw response body, raw payload)
            kept for user-visible debugging.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        correlation_id: str = "",
        detail: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.correlation_id = correlation_id
        self.detail = detail
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys.

        Suitable for run results, logging, and user notification.
        """
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
            "detail": self.detail,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(PipelineError):
    """Input or domain-model validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(PipelineError):
    """Temporary failure that may succeed on retry."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(PipelineError):
    """Unrecoverable domain failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(PipelineError):
    """Payload or schema drift between pipeline stages. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Stage errors
# ---------------------------------------------------------------------------


class CaptureError(PermanentError):
    """The image capture collaborator could not produce a raster."""

    default_stage = "capture"
    default_code = "CAPTURE_FAILED"


class SegmentationRequestError(PipelineError):
    """The segmentation service call failed (transport, HTTP status, or service error).

    Transport failures are retryable; a non-success response or an error
    reported by the service itself is not.
    """

    default_stage = "segmentation"
    default_code = "SEGMENTATION_REQUEST_FAILED"


class InvalidSegmentationPayloadError(ContractError):
    """The segmentation service returned no mask, or a mask that fails validation."""

    default_stage = "decode_mask"
    default_code = "INVALID_SEGMENTATION_PAYLOAD"


class RasterizationError(PermanentError):
    """A validated mask could not be rasterized onto the pixel grid."""

    default_stage = "rasterize_mask"
    default_code = "RASTERIZATION_FAILED"


class VectorizationError(PermanentError):
    """The tracer failed or returned a result that is not a polygon collection."""

    default_stage = "vectorize"
    default_code = "VECTORIZATION_FAILED"


class GeometryConstructionError(ValidationError):
    """A single ring could not be turned into a valid polygon.

    Recovered locally: the ring is dropped and the run continues.
    """

    default_stage = "process_ring"
    default_code = "GEOMETRY_CONSTRUCTION_FAILED"


class ExportError(PermanentError):
    """The accumulated features could not be exported as an archive."""

    default_stage = "export"
    default_code = "EXPORT_FAILED"
