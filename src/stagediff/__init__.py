"""stagediff: promotion-state tracking for multi-stage branch pipelines.

Given an upstream stage (e.g. ``develop``) and a downstream stage (e.g.
``staging``), stagediff reports which upstream commits are still waiting to
be promoted, recognising work that already arrived through squash merges
or cherry-picks.
"""

from stagediff._version import __version__

# Entry points
from stagediff.pipeline import PipelineStage, PromotionPipeline, analyze, analyze_chain
from stagediff.store import HistoryStore

# History readers
from stagediff.storage.repositories import HistoryReader
from stagediff.storage.sqlite import SqlHistoryReader

# Models
from stagediff.models.commit import CommitInfo
from stagediff.models.config import AnalyzeConfig
from stagediff.models.report import (
    ChainReport,
    EquivalenceSignals,
    FailureReason,
    PromotionCandidate,
    PromotionReport,
    ReportCounts,
    ReportStatus,
    ReportWarning,
    SyncMode,
    SyncPoint,
    Verdict,
    VerdictReason,
    WarningCode,
)

# Protocols
from stagediff.protocols import MarkerPredicate
from stagediff.operations.sync import RegexMarker

# Exceptions
from stagediff.exceptions import (
    StageDiffError,
    NotFoundError,
    CommitNotFoundError,
    RefNotFoundError,
    BackendUnavailableError,
    PipelineTimeoutError,
    InvalidConfigError,
)

__all__ = [
    "__version__",
    # Entry points
    "analyze",
    "analyze_chain",
    "PromotionPipeline",
    "PipelineStage",
    "HistoryStore",
    # Readers
    "HistoryReader",
    "SqlHistoryReader",
    # Models
    "CommitInfo",
    "AnalyzeConfig",
    "ChainReport",
    "EquivalenceSignals",
    "FailureReason",
    "PromotionCandidate",
    "PromotionReport",
    "ReportCounts",
    "ReportStatus",
    "ReportWarning",
    "SyncMode",
    "SyncPoint",
    "Verdict",
    "VerdictReason",
    "WarningCode",
    # Protocols
    "MarkerPredicate",
    "RegexMarker",
    # Exceptions
    "StageDiffError",
    "NotFoundError",
    "CommitNotFoundError",
    "RefNotFoundError",
    "BackendUnavailableError",
    "PipelineTimeoutError",
    "InvalidConfigError",
]
