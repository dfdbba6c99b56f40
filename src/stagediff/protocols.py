"""Protocols for stagediff extension points."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from stagediff.models.commit import CommitInfo


@runtime_checkable
class MarkerPredicate(Protocol):
    """Decides whether a merge commit's metadata marks a sync point.

    Receives only merge commits; graph checks (which parents are reachable
    from the downstream stage) are done by the locator, not the predicate.
    """

    def __call__(self, commit: CommitInfo) -> bool: ...
