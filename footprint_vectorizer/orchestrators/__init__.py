"""Run orchestration for the footprint pipeline.

Manages the end-to-end workflow for one drawn area:
1. Capture the region → request an SVG mask from the segmentation service
2. Decode + clean the mask → trace pixel rings
3. Georeference, simplify and filter rings → accumulate features in the session
"""

from footprint_vectorizer.orchestrators.pipeline import (
    PipelineOrchestrator,
    PipelineState,
    RunOutcome,
    RunResult,
)
from footprint_vectorizer.orchestrators.reporting import LoggingReporter, RunReporter
from footprint_vectorizer.orchestrators.session import (
    DuplicateFeatureError,
    FeatureAccumulator,
    IdentifierSequence,
    SessionState,
)

__all__ = [
    "DuplicateFeatureError",
    "FeatureAccumulator",
    "IdentifierSequence",
    "LoggingReporter",
    "PipelineOrchestrator",
    "PipelineState",
    "RunOutcome",
    "RunResult",
    "RunReporter",
    "SessionState",
]
