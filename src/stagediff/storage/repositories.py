"""Abstract interfaces for stagediff history access.

HistoryReader is the read-only contract every analysis runs against.
CommitRepository and RefRepository are the storage-level contracts of the
SQL history store. No SQLAlchemy imports here -- pure abstract contracts.

Concrete implementations are in sqlite.py and git.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from stagediff.engine.deadline import Deadline
    from stagediff.models.commit import CommitInfo
    from stagediff.storage.schema import CommitRow, FileChangeRow


class HistoryReader(ABC):
    """Read-only queries over a commit graph.

    Implementations must be safe to call from several threads at once and
    must not cache anything across analyses: stage tips can move between
    invocations.

    Raises:
        CommitNotFoundError / RefNotFoundError: unknown id or ref.
        BackendUnavailableError: the underlying store cannot be reached.
    """

    @abstractmethod
    def get_commit(self, commit_hash: str) -> CommitInfo:
        """Get a commit by id."""
        ...

    @abstractmethod
    def resolve_ref(self, ref: str) -> str:
        """Resolve a stage ref (branch name, tag, revision) to a commit id."""
        ...

    @abstractmethod
    def changes(self, commit_hash: str) -> dict[str, str | None]:
        """File-level changeset relative to the first parent.

        Maps path -> resulting blob id; None marks a deletion. A root
        commit's changeset is its whole snapshot.
        """
        ...

    @abstractmethod
    def snapshot(self, commit_hash: str) -> dict[str, str]:
        """Full content at a commit: path -> blob id."""
        ...

    def parents(self, commit_hash: str) -> tuple[str, ...]:
        return self.get_commit(commit_hash).parents

    def is_merge(self, commit_hash: str) -> bool:
        return self.get_commit(commit_hash).is_merge

    def message(self, commit_hash: str) -> str:
        return self.get_commit(commit_hash).message

    def content_signature(self, commit_hash: str) -> str:
        return self.get_commit(commit_hash).content_signature

    def ancestors(
        self, tip: str, *, deadline: Deadline | None = None
    ) -> Iterator[str]:
        """Yield tip and its ancestors, reverse-chronological topological.

        A generator, but the default implementation reads every ancestor
        before yielding the first one (see ``topo_walk``).
        """
        from stagediff.operations.dag import topo_walk

        return topo_walk(tip, self, deadline=deadline)

    def is_ancestor(
        self, ancestor: str, descendant: str, *, deadline: Deadline | None = None
    ) -> bool:
        """True if ancestor is descendant itself or reachable from it."""
        from stagediff.operations.dag import is_ancestor

        return is_ancestor(self, ancestor, descendant, deadline=deadline)

    def merge_base(
        self, hash_a: str, hash_b: str, *, deadline: Deadline | None = None
    ) -> str | None:
        """Best common ancestor of two commits, or None for disjoint histories."""
        from stagediff.operations.dag import find_merge_base

        return find_merge_base(self, hash_a, hash_b, deadline=deadline)

    def first_parent_chain(
        self, tip: str, *, deadline: Deadline | None = None
    ) -> Iterator[CommitInfo]:
        from stagediff.operations.dag import first_parent_chain

        return first_parent_chain(tip, self, deadline=deadline)

    def exclusive_ancestors(
        self,
        tip: str,
        boundary: str | None,
        *,
        deadline: Deadline | None = None,
    ) -> set[str]:
        """Commits reachable from tip but not from boundary (``tip ^boundary``).

        With no boundary this is every ancestor of tip.
        """
        from stagediff.operations.dag import bfs_walk, get_all_ancestors

        excluded = (
            get_all_ancestors(boundary, self, deadline=deadline)
            if boundary is not None
            else set()
        )
        return {
            h
            for h in bfs_walk(tip, self, stop_at=excluded, deadline=deadline)
            if h not in excluded
        }

    def reachable_signatures(
        self, tip: str, *, deadline: Deadline | None = None
    ) -> set[str]:
        """Content signatures of every non-merge commit reachable from tip."""
        from stagediff.operations.dag import bfs_walk

        signatures: set[str] = set()
        for h in bfs_walk(tip, self, deadline=deadline):
            commit = self.get_commit(h)
            if not commit.is_merge:
                signatures.add(commit.content_signature)
        return signatures

    def close(self) -> None:
        """Release backend resources. Default: nothing to release."""


class CommitRepository(ABC):
    """Abstract interface for commit storage operations."""

    @abstractmethod
    def get(self, commit_hash: str) -> CommitRow | None:
        """Get a commit by its hash. Returns None if not found."""
        ...

    @abstractmethod
    def save(
        self,
        commit: CommitRow,
        parents: Sequence[str],
        changes: dict[str, str | None],
    ) -> None:
        """Save a commit together with its ordered parents and changeset."""
        ...

    @abstractmethod
    def get_parents(self, commit_hash: str) -> list[str]:
        """Get parent hashes ordered by position (first parent first)."""
        ...

    @abstractmethod
    def get_changes(self, commit_hash: str) -> Sequence[FileChangeRow]:
        """Get the file changes recorded for a commit."""
        ...


class RefRepository(ABC):
    """Abstract interface for stage ref operations."""

    @abstractmethod
    def get(self, ref_name: str) -> str | None:
        """Get the commit a ref points to. Returns None if absent."""
        ...

    @abstractmethod
    def set(self, ref_name: str, commit_hash: str) -> None:
        """Create or move a ref."""
        ...

    @abstractmethod
    def list_refs(self) -> list[str]:
        """All ref names, sorted."""
        ...
