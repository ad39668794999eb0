"""User-feedback sink for pipeline runs.

The orchestrator never touches a UI directly; it reports through a
``RunReporter``.  The base class is a no-op so front ends override only
what they display.  ``LoggingReporter`` turns every callback into a log
record and is the default for headless use.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from footprint_vectorizer.models.feature import Feature
    from footprint_vectorizer.models.geometry import BoundingBox
    from footprint_vectorizer.models.raster import RasterMask
    from footprint_vectorizer.orchestrators.pipeline import PipelineState

logger = logging.getLogger("footprint_vectorizer.orchestrators.reporting")


class RunReporter:
    """Callbacks fired by the orchestrator during a run."""

    def progress(self, state: PipelineState, text: str) -> None:
        """Show (or update) the progress indicator."""

    def hide_progress(self) -> None:
        """Hide the progress indicator; the UI is interactable again."""

    def notify(self, message: str, *, detail: str = "") -> None:
        """Tell the user something (failure, nothing detected)."""

    def show_debug_mask(self, mask: RasterMask, bbox: BoundingBox) -> None:
        """Display the decoded mask over its region for visual debugging."""

    def render(self, new_features: Sequence[Feature], all_features: Sequence[Feature]) -> None:
        """Draw the features accepted by the run."""


class LoggingReporter(RunReporter):
    """Reporter that writes every callback to the log."""

    def progress(self, state: PipelineState, text: str) -> None:
        logger.info("Progress | state=%s | %s", state.value, text)

    def hide_progress(self) -> None:
        logger.debug("Progress hidden")

    def notify(self, message: str, *, detail: str = "") -> None:
        if detail:
            logger.warning("%s | detail=%s", message, detail)
        else:
            logger.warning("%s", message)

    def show_debug_mask(self, mask: RasterMask, bbox: BoundingBox) -> None:
        logger.debug(
            "Debug mask | size=%dx%d | foreground=%d | bbox=[%.6f, %.6f, %.6f, %.6f]",
            mask.width,
            mask.height,
            mask.foreground_count(),
            *bbox.to_bounds(),
        )

    def render(self, new_features: Sequence[Feature], all_features: Sequence[Feature]) -> None:
        logger.info("Rendered | new=%d | total=%d", len(new_features), len(all_features))
