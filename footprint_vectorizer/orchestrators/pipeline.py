"""Pipeline orchestrator: one user-drawn area in, accepted features out.

State machine per run::

    IDLE → CAPTURING → REQUESTING_SEGMENTATION → DECODING_MASK
         → CLEANING_MASK → VECTORIZING → GEOREFERENCING → ACCUMULATING → IDLE

with ``ERROR`` reachable from every in-progress state.  A failed run
notifies the user with the error's message and detail, leaves the
session's accumulated features untouched, and returns to ``IDLE``.

Concurrency model: a run is a coroutine on a single event loop.  The
capture, segmentation and tracing calls are suspend points; between the
CPU-bound stages (mask cleaning, ring processing) the run yields to the
loop with ``asyncio.sleep(0)``.  There is no cancellation.  When
``single_active_run`` is set, a run compares its token with the session
after every suspend point and discards itself once a newer run has
started.  With the guard off, overlapping runs all accumulate, in the
order they finish.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from footprint_vectorizer.activities.decode_mask import (
    parse_mask_payload,
    rasterize_mask,
    sanitize_mask_payload,
)
from footprint_vectorizer.activities.export_archive import export_shapefile_zip
from footprint_vectorizer.activities.morphology import close
from footprint_vectorizer.activities.process_rings import process_rings
from footprint_vectorizer.core.config import PipelineConfig
from footprint_vectorizer.core.constants import ACCUMULATE_REPLACE
from footprint_vectorizer.core.exceptions import (
    CaptureError,
    ExportError,
    InvalidSegmentationPayloadError,
    PermanentError,
    PipelineError,
    RasterizationError,
    SegmentationRequestError,
    VectorizationError,
)
from footprint_vectorizer.models.feature import Feature
from footprint_vectorizer.models.geometry import BoundingBox
from footprint_vectorizer.orchestrators.reporting import LoggingReporter, RunReporter
from footprint_vectorizer.orchestrators.session import SessionState
from footprint_vectorizer.providers.base import ImageCapture, SegmentationService, Tracer

logger = logging.getLogger("footprint_vectorizer.orchestrators.pipeline")

NOTHING_DETECTED = "No buildings were detected in this area."
NOTHING_TO_EXPORT = "There are no polygons to export. Draw an area and wait for processing."

Exporter = Callable[..., bytes]


class PipelineState(enum.Enum):
    """Orchestrator state within a run."""

    IDLE = "idle"
    CAPTURING = "capturing"
    REQUESTING_SEGMENTATION = "requesting_segmentation"
    DECODING_MASK = "decoding_mask"
    CLEANING_MASK = "cleaning_mask"
    VECTORIZING = "vectorizing"
    GEOREFERENCING = "georeferencing"
    ACCUMULATING = "accumulating"
    ERROR = "error"


class RunOutcome(enum.Enum):
    """How a run ended.

    Values:
        COMPLETED: Features were produced and accumulated.
        EMPTY:     The run finished but detected nothing.
        FAILED:    A stage failed; the accumulator is unchanged.
        STALE:     A newer run started; this run's results were discarded.
    """

    COMPLETED = "completed"
    EMPTY = "empty"
    FAILED = "failed"
    STALE = "stale"


PROGRESS_TEXT: dict[PipelineState, str] = {
    PipelineState.CAPTURING: "Capturing image of the area...",
    PipelineState.REQUESTING_SEGMENTATION: "Analyzing with AI (please wait)...",
    PipelineState.DECODING_MASK: "Decoding mask...",
    PipelineState.CLEANING_MASK: "Cleaning mask...",
    PipelineState.VECTORIZING: "Vectorizing polygons...",
    PipelineState.GEOREFERENCING: "Georeferencing polygons...",
    PipelineState.ACCUMULATING: "Saving polygons...",
}


#: Error class used to wrap a foreign exception raised while in each state.
_STAGE_ERRORS: dict[PipelineState, type[PipelineError]] = {
    PipelineState.CAPTURING: CaptureError,
    PipelineState.REQUESTING_SEGMENTATION: SegmentationRequestError,
    PipelineState.DECODING_MASK: RasterizationError,
    PipelineState.CLEANING_MASK: RasterizationError,
    PipelineState.VECTORIZING: VectorizationError,
}


@dataclass(frozen=True, slots=True)
class RunResult:
    """Summary of a single run.

    Attributes:
        run_id: Session run token.
        outcome: How the run ended.
        features: Features produced by this run (empty unless ``COMPLETED``).
        error: The failure, when ``outcome`` is ``FAILED``.
        states: Every state the run entered, in order.
    """

    run_id: int
    outcome: RunOutcome
    features: list[Feature] = field(default_factory=list)
    error: PipelineError | None = None
    states: list[PipelineState] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "outcome": self.outcome.value,
            "feature_count": len(self.features),
            "feature_ids": [f.feature_id for f in self.features],
            "error": self.error.to_error_dict() if self.error else None,
            "states": [s.value for s in self.states],
        }


class _RunSuperseded(Exception):
    """Internal signal: a newer run started while this one was suspended."""


@dataclass(slots=True)
class _RunContext:
    run_id: int
    session: SessionState
    states: list[PipelineState] = field(default_factory=list)


class PipelineOrchestrator:
    """Drives capture → segmentation → decode → clean → trace → georeference → accumulate.

    Args:
        capture: Image capture collaborator.
        segmenter: Segmentation service collaborator.
        tracer: Contour tracer collaborator.
        config: Processing configuration (defaults when omitted).
        reporter: UI feedback sink (logs when omitted).
        exporter: Archive writer, ``(features, *, folder, layer) -> bytes``.
    """

    def __init__(
        self,
        capture: ImageCapture,
        segmenter: SegmentationService,
        tracer: Tracer,
        *,
        config: PipelineConfig | None = None,
        reporter: RunReporter | None = None,
        exporter: Exporter = export_shapefile_zip,
    ) -> None:
        self._capture = capture
        self._segmenter = segmenter
        self._tracer = tracer
        self._config = config or PipelineConfig()
        self._reporter = reporter or LoggingReporter()
        self._exporter = exporter
        self.state = PipelineState.IDLE
        self._in_flight: set[int] = set()

    @property
    def config(self) -> PipelineConfig:
        return self._config

    def new_session(self) -> SessionState:
        """Create a session whose identifiers use the configured prefix."""
        return SessionState(id_prefix=self._config.feature_id_prefix)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, session: SessionState, bbox: BoundingBox) -> RunResult:
        """Process one area of interest end to end.

        Never raises: failures are reported through the reporter and
        returned in ``RunResult.error``.  Unexpected exceptions from a stage
        are wrapped in that stage's error class first.
        """
        ctx = _RunContext(run_id=session.begin_run(), session=session)
        self._in_flight.add(ctx.run_id)
        logger.info(
            "Run started | run=%d | bbox=[%.6f, %.6f, %.6f, %.6f] | active_runs=%d",
            ctx.run_id,
            *bbox.to_bounds(),
            session.active_runs,
        )

        superseded = False
        try:
            features = await self._execute(ctx, bbox)
        except _RunSuperseded:
            superseded = True
            logger.info("Run superseded | run=%d | results discarded", ctx.run_id)
            return RunResult(ctx.run_id, RunOutcome.STALE, states=ctx.states)
        except PipelineError as exc:
            return self._fail(ctx, exc)
        except Exception as exc:
            return self._fail(ctx, self._wrap_unexpected(ctx, exc))
        finally:
            session.finish_run(ctx.run_id)
            self._finish(ctx, superseded=superseded)

        outcome = RunOutcome.COMPLETED if features else RunOutcome.EMPTY
        logger.info(
            "Run finished | run=%d | outcome=%s | features=%d | accumulated=%d",
            ctx.run_id,
            outcome.value,
            len(features),
            len(session.accumulator),
        )
        return RunResult(ctx.run_id, outcome, features=features, states=ctx.states)

    def _fail(self, ctx: _RunContext, exc: PipelineError) -> RunResult:
        exc.correlation_id = exc.correlation_id or f"run-{ctx.run_id}"
        self._enter(ctx, PipelineState.ERROR)
        logger.warning("Run failed | run=%d | error=%s", ctx.run_id, exc.to_error_dict())
        self._reporter.notify(exc.message, detail=exc.detail)
        return RunResult(ctx.run_id, RunOutcome.FAILED, error=exc, states=ctx.states)

    def _finish(self, ctx: _RunContext, *, superseded: bool) -> None:
        """Return to IDLE; a superseded run leaves state and progress to the newer run."""
        self._in_flight.discard(ctx.run_id)
        ctx.states.append(PipelineState.IDLE)
        if not self._in_flight:
            self.state = PipelineState.IDLE
        if not superseded:
            self._reporter.hide_progress()

    def _wrap_unexpected(self, ctx: _RunContext, exc: Exception) -> PipelineError:
        state = ctx.states[-1] if ctx.states else PipelineState.IDLE
        msg = f"Unexpected failure while {state.value.replace('_', ' ')}: {exc}"
        logger.exception("Unexpected stage failure | run=%d | state=%s", ctx.run_id, state.value)
        error_cls = _STAGE_ERRORS.get(state)
        if error_cls is None:
            error: PipelineError = PermanentError(msg, stage=state.value, code="UNEXPECTED_FAILURE")
        else:
            error = error_cls(msg)
        error.__cause__ = exc
        return error

    async def _execute(self, ctx: _RunContext, bbox: BoundingBox) -> list[Feature]:
        cfg = self._config

        # Capturing
        self._enter(ctx, PipelineState.CAPTURING)
        image = await self._call(CaptureError, "Image capture failed", self._capture.capture, bbox)
        self._ensure_current(ctx)

        # Requesting segmentation
        self._enter(ctx, PipelineState.REQUESTING_SEGMENTATION)
        raw_mask = await self._call(
            SegmentationRequestError,
            "Segmentation request failed",
            self._segmenter.segment,
            image.encoded,
            image.width,
            image.height,
        )
        self._ensure_current(ctx)
        if not isinstance(raw_mask, str):
            msg = f"Segmentation service returned {type(raw_mask).__name__}, expected SVG text"
            raise InvalidSegmentationPayloadError(msg, detail=repr(raw_mask)[:500])

        # Decoding: sanitise + validate, then rasterize to exactly width x height
        self._enter(ctx, PipelineState.DECODING_MASK)
        root = parse_mask_payload(sanitize_mask_payload(raw_mask), image.width, image.height)
        mask = rasterize_mask(root, image.width, image.height)
        self._reporter.show_debug_mask(mask, image.bbox)
        await self._yield(ctx)

        # Cleaning
        self._enter(ctx, PipelineState.CLEANING_MASK)
        cleaned = close(mask, cfg.kernel_size)
        await self._yield(ctx)

        # Vectorizing
        self._enter(ctx, PipelineState.VECTORIZING)
        rings = await self._call(
            VectorizationError,
            "Tracing failed",
            self._tracer.trace,
            cleaned.to_png_base64(),
        )
        self._ensure_current(ctx)
        if not isinstance(rings, list):
            msg = f"Tracer returned {type(rings).__name__}, expected a polygon collection"
            raise VectorizationError(msg)

        # Georeferencing
        self._enter(ctx, PipelineState.GEOREFERENCING)
        features = process_rings(
            rings,
            cleaned.width,
            cleaned.height,
            image.bbox,
            next_id=ctx.session.ids.next_id,
            min_area_m2=cfg.min_area_m2,
            simplify_tolerance=cfg.simplify_tolerance_deg,
        )
        await self._yield(ctx)

        # Accumulating
        self._enter(ctx, PipelineState.ACCUMULATING)
        if not features:
            self._reporter.notify(NOTHING_DETECTED)
            return []

        accumulator = ctx.session.accumulator
        if cfg.accumulation_mode == ACCUMULATE_REPLACE:
            accumulator.clear()
        accumulator.accept(features)
        self._reporter.render(features, accumulator.all())
        return features

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_archive(self, session: SessionState) -> bytes:
        """Export every accumulated feature as a zipped shapefile.

        Raises:
            ExportError: If nothing has been accumulated or writing fails.
                The user is notified in both cases.
        """
        features = session.accumulator.all()
        try:
            if not features:
                raise ExportError(NOTHING_TO_EXPORT)
            try:
                data = self._exporter(
                    features,
                    folder=self._config.export_folder,
                    layer=self._config.export_layer,
                )
            except ExportError:
                raise
            except Exception as exc:
                msg = f"Failed to generate the archive: {exc}"
                raise ExportError(msg) from exc
        except ExportError as exc:
            logger.warning("Export failed | error=%s", exc.to_error_dict())
            self._reporter.notify(exc.message, detail=exc.detail)
            raise

        self._reporter.notify(f"Export complete: {len(features)} polygons exported.")
        return data

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, ctx: _RunContext, state: PipelineState) -> None:
        ctx.states.append(state)
        self.state = state
        text = PROGRESS_TEXT.get(state)
        if text is not None:
            logger.debug("State | run=%d | state=%s", ctx.run_id, state.value)
            self._reporter.progress(state, text)

    def _ensure_current(self, ctx: _RunContext) -> None:
        if self._config.single_active_run and not ctx.session.is_current(ctx.run_id):
            raise _RunSuperseded

    async def _yield(self, ctx: _RunContext) -> None:
        await asyncio.sleep(0)
        self._ensure_current(ctx)

    @staticmethod
    async def _call(
        error_cls: type[PipelineError],
        what: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Any:
        """Await a collaborator call, wrapping foreign exceptions in *error_cls*."""
        try:
            return await func(*args)
        except PipelineError:
            raise
        except Exception as exc:
            msg = f"{what}: {exc}"
            raise error_cls(msg) from exc
