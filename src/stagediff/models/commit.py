"""Commit domain model for stagediff.

CommitInfo is the read-only view of a commit handed out by every history
backend. Commits are created by the collaborating history store; stagediff
never mutates them.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, field_validator


class CommitInfo(BaseModel):
    """Immutable commit node.

    Attributes:
        commit_hash: Opaque stable identifier.
        parents: Ordered parent ids. Empty for a root, two or more for a merge.
        message: Full commit message.
        authored_at: Authoring timestamp, always timezone-aware UTC.
        content_signature: Changeset fingerprint independent of graph
            position (stable across cherry-picks, not across squashes).
    """

    model_config = {"frozen": True}

    commit_hash: str
    parents: tuple[str, ...] = ()
    message: str = ""
    authored_at: datetime
    content_signature: str

    @field_validator("authored_at")
    @classmethod
    def _normalize_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC; aware ones are converted."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def is_merge(self) -> bool:
        return len(self.parents) >= 2

    @property
    def is_root(self) -> bool:
        return not self.parents

    @property
    def first_parent(self) -> str | None:
        return self.parents[0] if self.parents else None

    @property
    def subject(self) -> str:
        """First line of the message."""
        return self.message.splitlines()[0] if self.message else ""

    def __str__(self) -> str:
        short_hash = self.commit_hash[:8]
        msg = self.subject
        if len(msg) > 60:
            msg = msg[:57] + "..."
        return f"{short_hash} {msg}"

    def __repr__(self) -> str:
        kind = "merge" if self.is_merge else "commit"
        return f"CommitInfo({self.commit_hash[:8]} {kind} {self.subject!r})"
