"""Promotion analysis pipeline.

Drives one analysis through its stages::

    start -> locate-sync -> extract-range -> verify-content -> classify -> report
                                                                       \\-> failed

Nothing is cached between runs; each run re-reads both stage tips, so
repeated runs against unchanged tips produce identical reports. Fatal
conditions (backend unavailable, unknown ref, timeout) end in a failed
report that carries no candidates at all.
"""

from __future__ import annotations

import enum
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Sequence

from stagediff.engine.deadline import Deadline
from stagediff.exceptions import (
    BackendUnavailableError,
    InvalidConfigError,
    NotFoundError,
    PipelineTimeoutError,
)
from stagediff.models.config import AnalyzeConfig
from stagediff.models.report import ChainReport, FailureReason, PromotionReport
from stagediff.operations.classify import classify
from stagediff.operations.equivalence import ContentVerifier
from stagediff.operations.range import extract_range
from stagediff.operations.sync import locate_sync_point

if TYPE_CHECKING:
    from stagediff.storage.repositories import HistoryReader

logger = logging.getLogger(__name__)


class PipelineStage(str, enum.Enum):
    START = "start"
    LOCATE_SYNC = "locate-sync"
    EXTRACT_RANGE = "extract-range"
    VERIFY_CONTENT = "verify-content"
    CLASSIFY = "classify"
    REPORT = "report"
    FAILED = "failed"


class PromotionPipeline:
    """One-shot analysis of an upstream stage against a downstream stage.

    Args:
        reader: History backend to query.
        config: Analysis configuration (defaults apply when omitted).
        clock: Monotonic clock for the deadline; injectable for tests.
    """

    def __init__(
        self,
        reader: HistoryReader,
        config: AnalyzeConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.reader = reader
        self.config = config or AnalyzeConfig()
        self._clock = clock
        self.stage = PipelineStage.START

    def _advance(self, stage: PipelineStage, deadline: Deadline) -> None:
        deadline.check()
        logger.debug("Pipeline %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def run(self, upstream: str, downstream: str) -> PromotionReport:
        """Analyze which upstream commits are not yet in downstream."""
        self.stage = PipelineStage.START
        deadline = Deadline(self.config.timeout, clock=self._clock)
        try:
            report = self._run(upstream, downstream, deadline)
        except PipelineTimeoutError as exc:
            return self._fail(upstream, downstream, FailureReason.TIMEOUT, str(exc))
        except BackendUnavailableError as exc:
            return self._fail(upstream, downstream, FailureReason.BACKEND_UNAVAILABLE, str(exc))
        except NotFoundError as exc:
            return self._fail(upstream, downstream, FailureReason.NOT_FOUND, str(exc))
        self.stage = PipelineStage.REPORT
        return report

    def _fail(
        self,
        upstream: str,
        downstream: str,
        reason: FailureReason,
        detail: str,
    ) -> PromotionReport:
        logger.error("Analysis %s -> %s failed in %s: %s", upstream, downstream, self.stage.value, detail)
        self.stage = PipelineStage.FAILED
        return PromotionReport.failed(upstream, downstream, reason, detail)

    def _run(self, upstream: str, downstream: str, deadline: Deadline) -> PromotionReport:
        reader = self.reader
        config = self.config
        upstream_tip = reader.resolve_ref(upstream)
        downstream_tip = reader.resolve_ref(downstream)

        self._advance(PipelineStage.LOCATE_SYNC, deadline)
        sync_commit = locate_sync_point(
            reader,
            upstream_tip,
            downstream_tip,
            marker=config.marker_predicate(downstream),
            scan_window=config.scan_window,
            verify_parents=config.verify_marker_parents,
            deadline=deadline,
        )

        self._advance(PipelineStage.EXTRACT_RANGE, deadline)
        candidate_range = extract_range(
            reader, upstream_tip, downstream_tip, sync_commit, deadline=deadline
        )

        self._advance(PipelineStage.VERIFY_CONTENT, deadline)
        verifier = ContentVerifier(
            reader,
            downstream_tip,
            squash_regex=config.squash_regex(),
            scan_window=config.scan_window,
            max_workers=config.max_workers,
            deadline=deadline,
        )
        baseline = verifier.prepare()
        verified = verifier.verify(candidate_range.candidates)

        self._advance(PipelineStage.CLASSIFY, deadline)
        report = classify(
            upstream,
            downstream,
            upstream_tip,
            downstream_tip,
            candidate_range,
            verified,
            baseline,
        )
        deadline.check()
        logger.info(
            "%s -> %s: %d pending, %d already present, %d ambiguous (of %d scanned)",
            upstream,
            downstream,
            report.counts.pending,
            report.counts.already_present,
            report.counts.ambiguous,
            report.counts.scanned,
        )
        return report


def analyze(
    reader: HistoryReader,
    upstream: str,
    downstream: str,
    config: AnalyzeConfig | None = None,
    **overrides: Any,
) -> PromotionReport:
    """Run one promotion analysis.

    Keyword overrides build an AnalyzeConfig when *config* is omitted, or
    replace fields of *config* otherwise::

        report = analyze(reader, "develop", "staging", scan_window=20)

    Overrides are validated like a fresh AnalyzeConfig.

    Raises:
        InvalidConfigError: An override pattern is not a valid regex.
        pydantic.ValidationError: An override is out of range.
    """
    if config is None:
        config = AnalyzeConfig(**overrides)
    elif overrides:
        config = AnalyzeConfig.model_validate({**config.model_dump(), **overrides})
    return PromotionPipeline(reader, config).run(upstream, downstream)


def analyze_chain(
    reader: HistoryReader,
    stages: Sequence[str],
    config: AnalyzeConfig | None = None,
) -> ChainReport:
    """Analyze each adjacent pair of a stage chain, upstream first.

    ``["develop", "staging", "main"]`` yields develop -> staging and
    staging -> main. Stops after the first failed link.
    """
    if len(stages) < 2:
        raise InvalidConfigError("stage chain", "at least two stages are required")
    chain = ChainReport(stages=list(stages))
    for upstream, downstream in zip(stages, stages[1:]):
        report = PromotionPipeline(reader, config).run(upstream, downstream)
        chain.links.append(report)
        if not report.ok:
            break
    return chain
