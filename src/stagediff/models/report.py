"""Promotion report models.

PromotionCandidate is the per-commit decision; PromotionReport is the
final, deterministic output of one analysis; ChainReport bundles the
reports for each adjacent pair of a multi-stage pipeline.
"""

from __future__ import annotations

import enum
import json
from typing import Any, Optional

from pydantic import BaseModel, Field

from stagediff.models.commit import CommitInfo


class Verdict(str, enum.Enum):
    """Classification of one candidate commit."""

    PENDING = "pending"
    ALREADY_PRESENT = "already-present"
    AMBIGUOUS = "ambiguous"

    def __str__(self) -> str:
        return self.value


class VerdictReason(str, enum.Enum):
    """Why a candidate received its verdict."""

    REACHABLE_FROM_DOWNSTREAM = "reachable-from-downstream"
    CONTENT_PRESENT = "content-present"
    NOT_IN_DOWNSTREAM = "not-in-downstream"
    SIGNATURE_ONLY = "signature-only"
    CHANGESET_ONLY = "changeset-only"
    DUPLICATE_OF_EARLIER_CANDIDATE = "duplicate-of-earlier-candidate"

    def __str__(self) -> str:
        return self.value


class SyncMode(str, enum.Enum):
    """How the boundary of the pending range was determined."""

    MARKER = "marker"
    COMMON_ANCESTOR = "common-ancestor"
    DISJOINT = "disjoint"


class ReportStatus(str, enum.Enum):
    OK = "ok"
    FAILED = "failed"


class FailureReason(str, enum.Enum):
    """Fatal outcomes. A failed report never carries a partial pending list."""

    BACKEND_UNAVAILABLE = "backend-unavailable"
    TIMEOUT = "timeout"
    NOT_FOUND = "not-found"


class WarningCode(str, enum.Enum):
    DEGRADED_SYNC = "degraded-sync"
    UNVERIFIED = "unverified"
    AMBIGUOUS = "ambiguous"
    SQUASH_BASELINE_FALLBACK = "squash-baseline-fallback"


class ReportWarning(BaseModel):
    """Non-fatal condition attached to a report."""

    model_config = {"frozen": True}

    code: WarningCode
    message: str


class EquivalenceSignals(BaseModel):
    """Raw outcome of the content-equivalence checks for one candidate.

    Attributes:
        reachable: Candidate is ancestor-or-self of the downstream tip.
        signature_match: Signal (a): its content signature occurs in the
            downstream history.
        changeset_absorbed: Signal (b): every path it touches already has
            the same content in the downstream squash baseline.
    """

    model_config = {"frozen": True}

    reachable: bool = False
    signature_match: bool = False
    changeset_absorbed: bool = False


class PromotionCandidate(BaseModel):
    """One non-merge commit from the pending range and its verdict."""

    model_config = {"frozen": True}

    commit: CommitInfo
    verdict: Verdict
    verdict_reason: VerdictReason
    signals: EquivalenceSignals = Field(default_factory=EquivalenceSignals)
    duplicate_of: Optional[str] = None

    @property
    def flagged(self) -> bool:
        """Ambiguous candidates stay in the pending list but are flagged."""
        return self.verdict == Verdict.AMBIGUOUS

    def explain(self) -> str:
        """Human-readable diagnostic line for the audit trail."""
        short = self.commit.commit_hash[:8]
        reason = self.verdict_reason
        if reason == VerdictReason.REACHABLE_FROM_DOWNSTREAM:
            why = "commit is already reachable from the downstream tip"
        elif reason == VerdictReason.CONTENT_PRESENT:
            why = "signature and changeset both found downstream"
        elif reason == VerdictReason.NOT_IN_DOWNSTREAM:
            why = "no equivalent content found downstream"
        elif reason == VerdictReason.SIGNATURE_ONLY:
            why = "signature found downstream but changeset not absorbed; needs manual review"
        elif reason == VerdictReason.CHANGESET_ONLY:
            why = "changeset absorbed downstream but signature not found; needs manual review"
        else:
            why = f"same content signature as earlier candidate {(self.duplicate_of or '')[:8]}"
        return f"{short} {self.verdict.value}: {why}"


class SyncPoint(BaseModel):
    """The boundary used for range extraction."""

    model_config = {"frozen": True}

    mode: SyncMode
    commit_hash: Optional[str] = None

    def describe(self) -> str:
        if self.mode == SyncMode.MARKER:
            return self.commit_hash or ""
        if self.mode == SyncMode.COMMON_ANCESTOR:
            return "none — fallback to common-ancestor"
        return "none — disjoint history"


class ReportCounts(BaseModel):
    scanned: int = 0
    pending: int = 0
    already_present: int = 0
    ambiguous: int = 0
    filtered_by_content: int = 0


class PromotionReport(BaseModel):
    """Final output of one upstream -> downstream analysis.

    ``pending`` holds Pending and Ambiguous candidates in chronological
    order; ``trail`` holds every candidate decision, including exclusions.
    A failed report has ``failure`` set and both lists empty.
    """

    upstream: str
    downstream: str
    upstream_tip: Optional[str] = None
    downstream_tip: Optional[str] = None
    status: ReportStatus = ReportStatus.OK
    failure: Optional[FailureReason] = None
    failure_detail: Optional[str] = None
    sync_point: Optional[SyncPoint] = None
    unverified: bool = False
    counts: ReportCounts = Field(default_factory=ReportCounts)
    pending: list[PromotionCandidate] = Field(default_factory=list)
    trail: list[PromotionCandidate] = Field(default_factory=list)
    warnings: list[ReportWarning] = Field(default_factory=list)

    @classmethod
    def failed(
        cls,
        upstream: str,
        downstream: str,
        reason: FailureReason,
        detail: str,
    ) -> PromotionReport:
        return cls(
            upstream=upstream,
            downstream=downstream,
            status=ReportStatus.FAILED,
            failure=reason,
            failure_detail=detail,
        )

    @property
    def ok(self) -> bool:
        return self.status == ReportStatus.OK

    @property
    def degraded(self) -> bool:
        return any(w.code == WarningCode.DEGRADED_SYNC for w in self.warnings)

    @property
    def pending_hashes(self) -> list[str]:
        return [c.commit.commit_hash for c in self.pending]

    def to_payload(self) -> dict[str, Any]:
        """Plain-dict rendering of the report (stable key set, no clock data)."""
        payload: dict[str, Any] = {
            "upstream": {"ref": self.upstream, "tip": self.upstream_tip},
            "downstream": {"ref": self.downstream, "tip": self.downstream_tip},
            "status": self.status.value,
        }
        if self.failure is not None:
            payload["failure"] = {
                "reason": self.failure.value,
                "detail": self.failure_detail,
            }
            return payload
        payload["sync_point"] = (
            {
                "mode": self.sync_point.mode.value,
                "commit": self.sync_point.commit_hash,
                "description": self.sync_point.describe(),
            }
            if self.sync_point is not None
            else None
        )
        payload["unverified"] = self.unverified
        payload["counts"] = self.counts.model_dump()
        payload["pending"] = [
            {
                "id": c.commit.commit_hash,
                "message": c.commit.message,
                "authored_at": c.commit.authored_at.isoformat(),
                "verdict": c.verdict.value,
                "flagged": c.flagged,
            }
            for c in self.pending
        ]
        payload["trail"] = [
            {
                "id": c.commit.commit_hash,
                "verdict": c.verdict.value,
                "reason": c.verdict_reason.value,
                "duplicate_of": c.duplicate_of,
                "detail": c.explain(),
            }
            for c in self.trail
        ]
        payload["warnings"] = [
            {"code": w.code.value, "message": w.message} for w in self.warnings
        ]
        return payload

    def to_json(self) -> str:
        """Deterministic JSON rendering: same tips in, same bytes out."""
        return json.dumps(self.to_payload(), indent=2, ensure_ascii=False)


class ChainReport(BaseModel):
    """Reports for each adjacent pair of a stage chain (upstream first)."""

    stages: list[str]
    links: list[PromotionReport] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(link.ok for link in self.links)

    @property
    def first_failure(self) -> Optional[PromotionReport]:
        return next((link for link in self.links if not link.ok), None)

    def to_json(self) -> str:
        return json.dumps(
            {
                "stages": self.stages,
                "links": [link.to_payload() for link in self.links],
            },
            indent=2,
            ensure_ascii=False,
        )
