"""stagediff exception hierarchy.

All stagediff-specific exceptions inherit from StageDiffError.
"""


class StageDiffError(Exception):
    """Base exception for all stagediff errors."""


class NotFoundError(StageDiffError):
    """Raised when a supplied commit id or ref does not resolve."""


class CommitNotFoundError(NotFoundError):
    """Raised when a commit id lookup fails."""

    def __init__(self, commit_hash: str) -> None:
        self.commit_hash = commit_hash
        super().__init__(f"Commit not found: {commit_hash}")


class RefNotFoundError(NotFoundError):
    """Raised when a stage ref (branch, tag, revision) does not resolve."""

    def __init__(self, ref_name: str) -> None:
        self.ref_name = ref_name
        super().__init__(f"Ref not found: {ref_name}")


class BackendUnavailableError(StageDiffError):
    """Raised when the history store cannot answer queries."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"History backend unavailable: {detail}")


class PipelineTimeoutError(StageDiffError):
    """Raised when an analysis exceeds its wall-clock budget."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Analysis exceeded timeout of {timeout:g}s")


class InvalidConfigError(StageDiffError):
    """Raised when analysis configuration is invalid (e.g. a bad regex)."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid {name}: {reason}")
