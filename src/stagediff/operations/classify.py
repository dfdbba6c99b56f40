"""Promotion classification: verdicts + ordering -> PromotionReport."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from stagediff.models.report import (
    PromotionReport,
    ReportCounts,
    ReportWarning,
    Verdict,
    VerdictReason,
    WarningCode,
)

if TYPE_CHECKING:
    from stagediff.models.report import PromotionCandidate
    from stagediff.operations.equivalence import SquashBaseline
    from stagediff.operations.range import CandidateRange

logger = logging.getLogger(__name__)


def collapse_duplicates(candidates: list[PromotionCandidate]) -> list[PromotionCandidate]:
    """Keep only the earliest-authored of candidates sharing a content signature.

    Candidates already excluded are left alone; every later duplicate of a
    still-pending (or ambiguous) candidate becomes already-present.
    """
    earliest: dict[str, PromotionCandidate] = {}
    for position, cand in sorted(
        enumerate(candidates),
        key=lambda item: (item[1].commit.authored_at, item[0]),
    ):
        if cand.verdict == Verdict.ALREADY_PRESENT:
            continue
        earliest.setdefault(cand.commit.content_signature, cand)

    result = []
    for cand in candidates:
        first = earliest.get(cand.commit.content_signature)
        if (
            cand.verdict != Verdict.ALREADY_PRESENT
            and first is not None
            and first.commit.commit_hash != cand.commit.commit_hash
        ):
            logger.debug("%s duplicates %s", cand.commit, first.commit)
            cand = cand.model_copy(update={
                "verdict": Verdict.ALREADY_PRESENT,
                "verdict_reason": VerdictReason.DUPLICATE_OF_EARLIER_CANDIDATE,
                "duplicate_of": first.commit.commit_hash,
            })
        result.append(cand)
    return result


def classify(
    upstream: str,
    downstream: str,
    upstream_tip: str,
    downstream_tip: str,
    candidate_range: CandidateRange,
    verified: list[PromotionCandidate],
    baseline: SquashBaseline | None = None,
) -> PromotionReport:
    """Assemble the final report.

    ``verified`` must follow ``candidate_range.candidates`` order; that
    order is carried unchanged into both the pending list and the trail.
    """
    trail = collapse_duplicates(verified)
    pending = [c for c in trail if c.verdict != Verdict.ALREADY_PRESENT]
    ambiguous = [c for c in trail if c.verdict == Verdict.AMBIGUOUS]
    present = [c for c in trail if c.verdict == Verdict.ALREADY_PRESENT]

    warnings: list[ReportWarning] = list(candidate_range.warnings)
    if baseline is not None and not baseline.from_squash and verified:
        warnings.append(ReportWarning(
            code=WarningCode.SQUASH_BASELINE_FALLBACK,
            message=(
                "No squash commit found on the downstream stage; changesets "
                f"were compared against the downstream tip {baseline.commit_hash[:8]}"
            ),
        ))
    if ambiguous:
        warnings.append(ReportWarning(
            code=WarningCode.AMBIGUOUS,
            message=(
                f"{len(ambiguous)} candidate(s) need manual disposition: "
                + ", ".join(c.commit.commit_hash[:8] for c in ambiguous)
            ),
        ))

    counts = ReportCounts(
        scanned=len(trail),
        pending=len(pending) - len(ambiguous),
        already_present=len(present),
        ambiguous=len(ambiguous),
        filtered_by_content=sum(
            1 for c in present
            if c.verdict_reason != VerdictReason.DUPLICATE_OF_EARLIER_CANDIDATE
        ),
    )
    return PromotionReport(
        upstream=upstream,
        downstream=downstream,
        upstream_tip=upstream_tip,
        downstream_tip=downstream_tip,
        sync_point=candidate_range.sync_point,
        unverified=candidate_range.unverified,
        counts=counts,
        pending=pending,
        trail=trail,
        warnings=warnings,
    )
