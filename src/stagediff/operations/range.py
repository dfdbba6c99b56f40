"""Range extraction: the upstream commits not yet covered by a sync point."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from stagediff.models.report import ReportWarning, SyncMode, SyncPoint, WarningCode
from stagediff.operations.dag import chronological_order

if TYPE_CHECKING:
    from stagediff.engine.deadline import Deadline
    from stagediff.models.commit import CommitInfo
    from stagediff.storage.repositories import HistoryReader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateRange:
    """Non-merge commits past the sync boundary, oldest first.

    Attributes:
        candidates: Commits in chronological (parents-first) order.
        sync_point: The boundary actually used.
        unverified: True when the histories are disjoint and the range is
            the whole upstream ancestry.
        warnings: Non-fatal conditions met while extracting.
    """

    candidates: list[CommitInfo]
    sync_point: SyncPoint
    unverified: bool = False
    warnings: list[ReportWarning] = field(default_factory=list)


def extract_range(
    reader: HistoryReader,
    upstream_tip: str,
    downstream_tip: str,
    sync_commit: CommitInfo | None,
    *,
    deadline: Deadline | None = None,
) -> CandidateRange:
    """Enumerate the candidate commits for promotion.

    With a sync marker, the range is ``upstream_tip ^marker``. Without one,
    the best common ancestor of the two tips stands in as a synthetic sync
    point (degraded). With no common ancestor at all, the whole upstream
    ancestry is returned and flagged unverified.
    """
    warnings: list[ReportWarning] = []
    unverified = False

    if sync_commit is not None:
        boundary: str | None = sync_commit.commit_hash
        sync_point = SyncPoint(mode=SyncMode.MARKER, commit_hash=boundary)
    else:
        boundary = reader.merge_base(upstream_tip, downstream_tip, deadline=deadline)
        if boundary is not None:
            sync_point = SyncPoint(mode=SyncMode.COMMON_ANCESTOR, commit_hash=boundary)
            message = (
                f"No sync marker found; using common ancestor {boundary[:8]} "
                "as the promotion boundary"
            )
            warnings.append(ReportWarning(code=WarningCode.DEGRADED_SYNC, message=message))
        else:
            sync_point = SyncPoint(mode=SyncMode.DISJOINT)
            unverified = True
            message = (
                "Upstream and downstream share no history; "
                "every upstream commit is a candidate"
            )
            warnings.append(ReportWarning(code=WarningCode.DEGRADED_SYNC, message=message))
            warnings.append(ReportWarning(
                code=WarningCode.UNVERIFIED,
                message="Report is unverified: no ancestry boundary exists",
            ))
        logger.warning(message)

    in_range = reader.exclusive_ancestors(upstream_tip, boundary, deadline=deadline)
    commits = []
    for h in sorted(in_range):
        if deadline is not None:
            deadline.check()
        commit = reader.get_commit(h)
        if not commit.is_merge:
            commits.append(commit)

    ordered = chronological_order(commits, deadline=deadline)
    logger.debug(
        "Range %s..%s: %d candidate(s) from %d commit(s)",
        (boundary or "root")[:8],
        upstream_tip[:8],
        len(ordered),
        len(in_range),
    )
    return CandidateRange(
        candidates=ordered,
        sync_point=sync_point,
        unverified=unverified,
        warnings=warnings,
    )
