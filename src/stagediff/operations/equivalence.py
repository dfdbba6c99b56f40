"""Content-equivalence verification of candidate commits.

Two independent signals decide whether a candidate's content already
reached the downstream stage:

(a) its content signature occurs among the downstream's commits;
(b) every path it touches already holds the same blob in the content of
    the most recent downstream squash commit.

Signatures break under squash and the changeset check can miss reworked
or renamed files, so both must agree: both -> already present, neither ->
pending, one -> ambiguous. A candidate that is itself reachable from the
downstream tip is already present without consulting either signal.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING

from stagediff.exceptions import PipelineTimeoutError
from stagediff.models.report import (
    EquivalenceSignals,
    PromotionCandidate,
    Verdict,
    VerdictReason,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from stagediff.engine.deadline import Deadline
    from stagediff.models.commit import CommitInfo
    from stagediff.storage.repositories import HistoryReader

logger = logging.getLogger(__name__)

# Seconds a timed-out verify() waits for running checks to stop.
SHUTDOWN_GRACE = 1.0


@dataclass(frozen=True)
class SquashBaseline:
    """Cumulative downstream content that signal (b) compares against.

    Attributes:
        commit_hash: The squash commit (or the downstream tip on fallback).
        from_squash: False when no squash commit was found in the window.
        content: path -> blob id at that commit.
    """

    commit_hash: str
    from_squash: bool
    content: dict[str, str]


def find_squash_baseline(
    reader: HistoryReader,
    downstream_tip: str,
    squash_regex: re.Pattern[str],
    *,
    scan_window: int = 50,
    deadline: Deadline | None = None,
) -> SquashBaseline:
    """Locate the newest squash commit on the downstream first-parent line."""
    for depth, commit in enumerate(reader.first_parent_chain(downstream_tip, deadline=deadline)):
        if depth >= scan_window:
            break
        if not commit.is_merge and squash_regex.search(commit.message):
            return SquashBaseline(
                commit_hash=commit.commit_hash,
                from_squash=True,
                content=reader.snapshot(commit.commit_hash),
            )
    return SquashBaseline(
        commit_hash=downstream_tip,
        from_squash=False,
        content=reader.snapshot(downstream_tip),
    )


def changeset_absorbed(
    changes: Mapping[str, str | None],
    content: Mapping[str, str],
) -> bool:
    """True if applying changes to content would change nothing."""
    return all(content.get(path) == blob for path, blob in changes.items())


def assign_verdict(signals: EquivalenceSignals) -> tuple[Verdict, VerdictReason]:
    if signals.reachable:
        return Verdict.ALREADY_PRESENT, VerdictReason.REACHABLE_FROM_DOWNSTREAM
    if signals.signature_match and signals.changeset_absorbed:
        return Verdict.ALREADY_PRESENT, VerdictReason.CONTENT_PRESENT
    if signals.signature_match:
        return Verdict.AMBIGUOUS, VerdictReason.SIGNATURE_ONLY
    if signals.changeset_absorbed:
        return Verdict.AMBIGUOUS, VerdictReason.CHANGESET_ONLY
    return Verdict.PENDING, VerdictReason.NOT_IN_DOWNSTREAM


class ContentVerifier:
    """Checks candidates against one downstream tip.

    ``prepare()`` gathers the shared, read-only inputs (downstream
    signatures and squash baseline); ``verify()`` then fans the
    per-candidate checks out over a bounded thread pool.
    """

    def __init__(
        self,
        reader: HistoryReader,
        downstream_tip: str,
        *,
        squash_regex: re.Pattern[str],
        scan_window: int = 50,
        max_workers: int = 8,
        deadline: Deadline | None = None,
    ) -> None:
        self._reader = reader
        self._downstream_tip = downstream_tip
        self._squash_regex = squash_regex
        self._scan_window = scan_window
        self._max_workers = max_workers
        self._deadline = deadline
        self._signatures: frozenset[str] | None = None
        self.baseline: SquashBaseline | None = None

    def prepare(self) -> SquashBaseline:
        self._signatures = frozenset(
            self._reader.reachable_signatures(self._downstream_tip, deadline=self._deadline)
        )
        self.baseline = find_squash_baseline(
            self._reader,
            self._downstream_tip,
            self._squash_regex,
            scan_window=self._scan_window,
            deadline=self._deadline,
        )
        logger.debug(
            "Downstream has %d signature(s); squash baseline %s (squash=%s)",
            len(self._signatures),
            self.baseline.commit_hash[:8],
            self.baseline.from_squash,
        )
        return self.baseline

    def signals_for(self, commit: CommitInfo) -> EquivalenceSignals:
        """Evaluate every signal for one candidate. Safe to call concurrently."""
        if self._signatures is None or self.baseline is None:
            self.prepare()
        if self._deadline is not None:
            self._deadline.check()
        h = commit.commit_hash
        if self._reader.is_ancestor(h, self._downstream_tip, deadline=self._deadline):
            return EquivalenceSignals(reachable=True, signature_match=True, changeset_absorbed=True)
        if self._deadline is not None:
            self._deadline.check()
        return EquivalenceSignals(
            signature_match=commit.content_signature in self._signatures,
            changeset_absorbed=changeset_absorbed(
                self._reader.changes(h), self.baseline.content
            ),
        )

    def check(self, commit: CommitInfo) -> PromotionCandidate:
        signals = self.signals_for(commit)
        verdict, reason = assign_verdict(signals)
        if verdict == Verdict.AMBIGUOUS:
            logger.warning("Ambiguous content equivalence for %s (%s)", commit, reason.value)
        else:
            logger.debug("%s -> %s (%s)", commit, verdict.value, reason.value)
        return PromotionCandidate(
            commit=commit, verdict=verdict, verdict_reason=reason, signals=signals
        )

    def verify(self, candidates: list[CommitInfo]) -> list[PromotionCandidate]:
        """Check all candidates in parallel; results keep the input order.

        On timeout, queued checks are cancelled and verify() waits up to
        SHUTDOWN_GRACE seconds for running ones to stop at their next
        deadline check before raising.

        Raises:
            PipelineTimeoutError: The deadline passed before every check
                finished. No partial result is returned.
        """
        if not candidates:
            return []
        if self._signatures is None or self.baseline is None:
            self.prepare()

        workers = min(len(candidates), self._max_workers)
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stagediff-verify")
        try:
            futures = [pool.submit(self.check, commit) for commit in candidates]
            timeout = self._deadline.remaining() if self._deadline is not None else None
            _, not_done = wait(futures, timeout=timeout)
            if not_done:
                for future in not_done:
                    future.cancel()
                _, stuck = wait(not_done, timeout=SHUTDOWN_GRACE)
                if stuck:
                    logger.warning(
                        "%d verification worker(s) still running after timeout", len(stuck)
                    )
                raise PipelineTimeoutError(self._deadline.timeout or 0.0)
            return [f.result() for f in futures]
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
