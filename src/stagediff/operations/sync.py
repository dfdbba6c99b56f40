"""Sync-point location: find the newest "downstream merged back" marker.

A sync marker is a merge commit on the upstream stage whose message
matches the marker predicate and whose non-first parents include a commit
reachable from the downstream stage. Everything at or below the newest
marker is already reflected downstream.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stagediff.engine.deadline import Deadline
    from stagediff.models.commit import CommitInfo
    from stagediff.protocols import MarkerPredicate
    from stagediff.storage.repositories import HistoryReader

logger = logging.getLogger(__name__)


class RegexMarker:
    """Marker predicate: case-insensitive regex search over the full message."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        self._regex = re.compile(pattern, re.IGNORECASE)

    def __call__(self, commit: CommitInfo) -> bool:
        return self._regex.search(commit.message) is not None

    def __repr__(self) -> str:
        return f"RegexMarker({self.pattern!r})"


def merges_downstream(
    reader: HistoryReader,
    merge: CommitInfo,
    downstream_tip: str,
    *,
    deadline: Deadline | None = None,
) -> bool:
    """True if any non-first parent of merge is reachable from downstream_tip."""
    return any(
        reader.is_ancestor(parent, downstream_tip, deadline=deadline)
        for parent in merge.parents[1:]
    )


def locate_sync_point(
    reader: HistoryReader,
    upstream_tip: str,
    downstream_tip: str,
    *,
    marker: MarkerPredicate,
    scan_window: int = 50,
    verify_parents: bool = True,
    deadline: Deadline | None = None,
) -> CommitInfo | None:
    """Return the most recent sync marker reachable from upstream_tip.

    Walks ancestors newest-first and inspects at most *scan_window* merge
    commits. The first qualifying merge wins; older markers are ignored.

    Returns:
        The marker commit, or None when no marker is found in the window.
        None is a degraded mode, not an error.
    """
    merges_seen = 0
    for h in reader.ancestors(upstream_tip, deadline=deadline):
        if len(reader.parents(h)) < 2:
            continue
        merges_seen += 1
        commit = reader.get_commit(h)
        if marker(commit):
            if not verify_parents or merges_downstream(
                reader, commit, downstream_tip, deadline=deadline
            ):
                logger.debug("Sync marker %s after %d merge(s)", commit, merges_seen)
                return commit
            logger.debug(
                "Merge %s matches marker but merges nothing from downstream", commit
            )
        if merges_seen >= scan_window:
            logger.debug("Scan window of %d merge commits exhausted", scan_window)
            break
    return None
