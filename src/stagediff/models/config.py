"""Configuration models for stagediff.

AnalyzeConfig holds the externally tunable knobs of one analysis: the sync
marker pattern, the scan window, and the wall-clock timeout, plus a few
library-only settings (squash detection, worker count).
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import BaseModel, Field, model_validator

from stagediff.exceptions import InvalidConfigError

if TYPE_CHECKING:
    from stagediff.protocols import MarkerPredicate

DEFAULT_SCAN_WINDOW = 50
DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_WORKERS = 8
# GitHub-style squash titles end in "(#123)".
DEFAULT_SQUASH_PATTERN = r"squash|\(#\d+\)"


def default_marker_pattern(downstream: str) -> str:
    """Marker pattern for "<downstream> merged back into upstream" messages.

    Only the last path segment of the ref is used, so ``origin/main`` and
    ``refs/heads/main`` both look for ``main``.
    """
    name = downstream.rsplit("/", 1)[-1]
    return r"merge.*" + re.escape(name)


def _check_regex(name: str, pattern: str | None) -> None:
    if pattern is None:
        return
    try:
        re.compile(pattern)
    except re.error as exc:
        raise InvalidConfigError(name, f"{pattern!r}: {exc}") from None


class AnalyzeConfig(BaseModel):
    """Per-analysis configuration.

    Attributes:
        marker_pattern: Regex (case-insensitive search) identifying sync
            marker merges. None derives one from the downstream ref name.
        marker: Custom marker predicate; overrides marker_pattern.
        squash_pattern: Regex identifying squash-merge commits on the
            downstream stage.
        scan_window: Maximum number of merge commits the sync locator
            inspects before giving up.
        timeout: Wall-clock budget in seconds for the whole pipeline.
            None disables the deadline.
        verify_marker_parents: Require a marker merge to have a non-first
            parent reachable from the downstream tip.
        max_workers: Upper bound on content-verification worker threads.
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    marker_pattern: Optional[str] = None
    marker: Optional[Callable[..., bool]] = None
    squash_pattern: str = DEFAULT_SQUASH_PATTERN
    scan_window: int = Field(DEFAULT_SCAN_WINDOW, ge=1)
    timeout: Optional[float] = Field(DEFAULT_TIMEOUT, gt=0)
    verify_marker_parents: bool = True
    max_workers: int = Field(DEFAULT_MAX_WORKERS, ge=1)

    @model_validator(mode="after")
    def _compile_patterns(self) -> "AnalyzeConfig":
        _check_regex("marker pattern", self.marker_pattern)
        _check_regex("squash pattern", self.squash_pattern)
        return self

    def marker_predicate(self, downstream: str) -> MarkerPredicate:
        """Resolve the marker predicate for a given downstream ref."""
        if self.marker is not None:
            return self.marker
        from stagediff.operations.sync import RegexMarker

        return RegexMarker(self.marker_pattern or default_marker_pattern(downstream))

    def squash_regex(self) -> re.Pattern[str]:
        return re.compile(self.squash_pattern, re.IGNORECASE)
