"""Session-scoped state shared by successive pipeline runs.

``SessionState`` is the explicit context object handed to every
orchestrator run.  It owns:

- ``FeatureAccumulator`` — the append-only, ordered set of accepted
  features, cleared only by an explicit user action.
- ``IdentifierSequence`` — the monotonically increasing feature
  identifier source; never rewound, not even by ``clear()``.
- run tokens: each run takes a token when it starts; a run whose token
  is no longer the latest has been superseded.

Everything here runs on a single event loop thread; no locking.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable

from footprint_vectorizer.core.constants import DEFAULT_FEATURE_ID_PREFIX
from footprint_vectorizer.core.exceptions import ContractError
from footprint_vectorizer.models.feature import Feature

logger = logging.getLogger("footprint_vectorizer.orchestrators.session")


class DuplicateFeatureError(ContractError):
    """Raised when accepting a feature whose identifier is already present."""

    default_stage = "accumulate"
    default_code = "DUPLICATE_FEATURE_ID"


class IdentifierSequence:
    """Issues ``"<prefix>_<n>"`` identifiers, ``n`` starting at 1."""

    def __init__(self, prefix: str = DEFAULT_FEATURE_ID_PREFIX) -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._issued = 0

    @property
    def issued(self) -> int:
        """How many identifiers have been handed out."""
        return self._issued

    def next_id(self) -> str:
        self._issued = next(self._counter)
        return f"{self._prefix}_{self._issued}"

    __call__ = next_id


class FeatureAccumulator:
    """Ordered, identifier-unique collection of accepted features."""

    def __init__(self) -> None:
        self._features: list[Feature] = []
        self._ids: set[str] = set()

    def accept(self, features: Iterable[Feature]) -> None:
        """Append *features* in order.

        The batch is checked before anything is stored, so a rejected
        batch leaves the accumulator unchanged.

        Raises:
            DuplicateFeatureError: If any identifier is already present
                or repeated within the batch.
        """
        batch = list(features)
        seen: set[str] = set()
        for feature in batch:
            if feature.feature_id in self._ids or feature.feature_id in seen:
                msg = f"Feature identifier {feature.feature_id!r} is already accumulated"
                raise DuplicateFeatureError(msg)
            seen.add(feature.feature_id)

        self._features.extend(batch)
        self._ids.update(seen)
        logger.info("Features accepted | added=%d | total=%d", len(batch), len(self._features))

    def clear(self) -> None:
        """Drop every accumulated feature."""
        dropped = len(self._features)
        self._features.clear()
        self._ids.clear()
        logger.info("Features cleared | dropped=%d", dropped)

    def all(self) -> list[Feature]:
        """Return a snapshot of the accumulated features in insertion order."""
        return list(self._features)

    def __len__(self) -> int:
        return len(self._features)

    def __bool__(self) -> bool:
        return bool(self._features)


class SessionState:
    """Per-session context passed by reference into every run.

    Attributes:
        accumulator: Features accepted so far in this session.
        ids: Identifier source shared by all runs of the session.
    """

    def __init__(self, *, id_prefix: str = DEFAULT_FEATURE_ID_PREFIX) -> None:
        self.accumulator = FeatureAccumulator()
        self.ids = IdentifierSequence(id_prefix)
        self._latest_run = 0
        self._active_runs: set[int] = set()

    def begin_run(self) -> int:
        """Register a new run and return its token (monotonically increasing)."""
        self._latest_run += 1
        self._active_runs.add(self._latest_run)
        return self._latest_run

    def finish_run(self, token: int) -> None:
        self._active_runs.discard(token)

    def is_current(self, token: int) -> bool:
        """Whether *token* belongs to the most recently started run."""
        return token == self._latest_run

    @property
    def active_runs(self) -> int:
        """Number of runs started but not yet finished."""
        return len(self._active_runs)

    def reset(self) -> None:
        """User-initiated reset: clear features, keep identifiers monotonic."""
        self.accumulator.clear()
