"""GitPython-backed HistoryReader for analysing a real git repository.

Commit ids are git object ids. Content signatures are patch-id style
hashes of the patch against the first parent (see
``stagediff.engine.hashing.patch_signature``), so cherry-picks keep their
signature while squashes do not.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import TYPE_CHECKING

import git
from git.exc import BadName, BadObject, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from stagediff.engine.hashing import patch_signature
from stagediff.exceptions import (
    BackendUnavailableError,
    CommitNotFoundError,
    RefNotFoundError,
)
from stagediff.models.commit import CommitInfo
from stagediff.storage.repositories import HistoryReader

if TYPE_CHECKING:
    from stagediff.engine.deadline import Deadline

logger = logging.getLogger(__name__)

# git prints %x00 as a NUL byte, which separates commits in batched `git log -p` output.
_COMMIT_MARKER = "\x00"
_DIFF_FLAGS = ("--no-renames", "--no-color", "--full-index")


def split_patch(text: str) -> dict[str, str]:
    """Split unified diff text into per-file chunks keyed by the diff header."""
    patches: dict[str, list[str]] = {}
    current: list[str] | None = None
    for line in text.splitlines():
        if line.startswith("diff --git "):
            current = patches.setdefault(line[len("diff --git "):], [])
            continue
        if current is not None:
            current.append(line)
    return {key: "\n".join(lines) for key, lines in patches.items()}


class GitHistoryReader(HistoryReader):
    """HistoryReader over a git repository on disk.

    Each thread gets its own ``git.Repo`` handle because GitPython keeps
    long-lived ``cat-file`` processes per repository object.
    """

    def __init__(self, path: str = ".") -> None:
        self._path = path
        self._local = threading.local()
        self._repos: list[git.Repo] = []
        self._repos_lock = threading.Lock()
        self._repo()

    def _repo(self) -> git.Repo:
        repo = getattr(self._local, "repo", None)
        if repo is None:
            try:
                repo = git.Repo(self._path, search_parent_directories=True)
            except (InvalidGitRepositoryError, NoSuchPathError) as exc:
                raise BackendUnavailableError(
                    f"not a git repository: {self._path}"
                ) from exc
            self._local.repo = repo
            with self._repos_lock:
                self._repos.append(repo)
        return repo

    def _object(self, rev: str) -> git.Commit:
        try:
            return self._repo().commit(rev)
        except (BadName, BadObject, ValueError) as exc:
            raise CommitNotFoundError(rev) from exc
        except GitCommandError as exc:
            raise BackendUnavailableError(str(exc)) from exc

    def _git(self, *args: str) -> str:
        try:
            return self._repo().git.execute(["git", *args])
        except GitCommandError as exc:
            raise BackendUnavailableError(str(exc)) from exc

    def resolve_ref(self, ref: str) -> str:
        try:
            return self._repo().commit(ref).hexsha
        except (BadName, BadObject, ValueError) as exc:
            raise RefNotFoundError(ref) from exc
        except GitCommandError as exc:
            raise BackendUnavailableError(str(exc)) from exc

    def get_commit(self, commit_hash: str) -> CommitInfo:
        commit = self._object(commit_hash)
        parents = tuple(p.hexsha for p in commit.parents)
        return CommitInfo(
            commit_hash=commit.hexsha,
            parents=parents,
            message=commit.message.rstrip("\n"),
            authored_at=commit.authored_datetime,
            content_signature=self._signature(commit.hexsha, parents[0] if parents else None),
        )

    def parents(self, commit_hash: str) -> tuple[str, ...]:
        return tuple(p.hexsha for p in self._object(commit_hash).parents)

    def _signature(self, commit_hash: str, first_parent: str | None) -> str:
        if first_parent is None:
            text = self._git("diff-tree", "-p", "--root", "--no-commit-id", *_DIFF_FLAGS, commit_hash)
        else:
            text = self._git("diff-tree", "-p", *_DIFF_FLAGS, first_parent, commit_hash)
        return patch_signature(split_patch(text))

    def changes(self, commit_hash: str) -> dict[str, str | None]:
        parents = self.parents(commit_hash)
        if parents:
            raw = self._git("diff-tree", "-r", "-z", "--no-renames", "--full-index", parents[0], commit_hash)
        else:
            raw = self._git(
                "diff-tree", "-r", "-z", "--root", "--no-commit-id",
                "--no-renames", "--full-index", commit_hash,
            )
        # -z output: ":<modes> <old> <new> <status>\0<path>\0" per entry.
        fields = [f for f in raw.split("\0") if f]
        result: dict[str, str | None] = {}
        for meta, path in zip(fields[0::2], fields[1::2]):
            _, _, _, new_blob, status = meta.lstrip(":").split(" ")
            result[path] = None if status.startswith("D") else new_blob
        return result

    def snapshot(self, commit_hash: str) -> dict[str, str]:
        raw = self._git("ls-tree", "-r", "-z", "--full-tree", commit_hash)
        content: dict[str, str] = {}
        for entry in raw.split("\0"):
            if not entry:
                continue
            meta, path = entry.split("\t", 1)
            _, obj_type, blob_id = meta.split(" ")
            if obj_type == "blob":
                content[path] = blob_id
        return content

    def ancestors(
        self, tip: str, *, deadline: Deadline | None = None
    ) -> Iterator[str]:
        """Stream ``git rev-list --date-order`` lazily."""
        try:
            for commit in self._repo().iter_commits(tip, date_order=True):
                if deadline is not None:
                    deadline.check()
                yield commit.hexsha
        except GitCommandError as exc:
            raise BackendUnavailableError(str(exc)) from exc

    def is_ancestor(
        self, ancestor: str, descendant: str, *, deadline: Deadline | None = None
    ) -> bool:
        if deadline is not None:
            deadline.check()
        try:
            return self._repo().is_ancestor(ancestor, descendant)
        except GitCommandError as exc:
            raise BackendUnavailableError(str(exc)) from exc

    def merge_base(
        self, hash_a: str, hash_b: str, *, deadline: Deadline | None = None
    ) -> str | None:
        if deadline is not None:
            deadline.check()
        try:
            bases = self._repo().merge_base(hash_a, hash_b)
        except GitCommandError as exc:
            # `git merge-base` exits 1 when the histories share nothing.
            if exc.status == 1:
                return None
            raise BackendUnavailableError(str(exc)) from exc
        if not bases:
            return None
        return max(bases, key=lambda c: (c.authored_datetime, c.hexsha)).hexsha

    def exclusive_ancestors(
        self,
        tip: str,
        boundary: str | None,
        *,
        deadline: Deadline | None = None,
    ) -> set[str]:
        if deadline is not None:
            deadline.check()
        args = ["rev-list", tip]
        if boundary is not None:
            args.append(f"^{boundary}")
        return set(self._git(*args).split())

    def reachable_signatures(
        self, tip: str, *, deadline: Deadline | None = None
    ) -> set[str]:
        """Signatures of every non-merge commit reachable from tip, in one git call."""
        if deadline is not None:
            deadline.check()
        text = self._git(
            "log", "-p", "--no-merges", "--format=%x00%H", *_DIFF_FLAGS, tip
        )
        signatures: set[str] = set()
        for chunk in text.split(_COMMIT_MARKER)[1:]:
            _, _, patch = chunk.partition("\n")
            signatures.add(patch_signature(split_patch(patch)))
        return signatures

    def close(self) -> None:
        with self._repos_lock:
            for repo in self._repos:
                repo.close()
            self._repos.clear()
