"""SQLite implementations of the storage interfaces.

All repositories use SQLAlchemy 2.0-style queries (select() + session.execute()).
Each repository takes a Session in its constructor; SqlHistoryReader opens a
short-lived session per query so it can be shared across threads.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager, nullcontext
from datetime import timezone
from typing import Iterator, Sequence

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stagediff.exceptions import (
    BackendUnavailableError,
    CommitNotFoundError,
    RefNotFoundError,
)
from stagediff.models.commit import CommitInfo
from stagediff.storage.engine import create_session_factory, is_shared_connection
from stagediff.storage.repositories import (
    CommitRepository,
    HistoryReader,
    RefRepository,
)
from stagediff.storage.schema import CommitParentRow, CommitRow, FileChangeRow, RefRow

logger = logging.getLogger(__name__)


class SqliteCommitRepository(CommitRepository):
    """SQLite implementation of commit repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, commit_hash: str) -> CommitRow | None:
        stmt = select(CommitRow).where(CommitRow.commit_hash == commit_hash)
        return self._session.execute(stmt).scalar_one_or_none()

    def save(
        self,
        commit: CommitRow,
        parents: Sequence[str],
        changes: dict[str, str | None],
    ) -> None:
        self._session.add(commit)
        self._session.flush()
        for position, parent_hash in enumerate(parents):
            self._session.add(
                CommitParentRow(
                    commit_hash=commit.commit_hash,
                    parent_hash=parent_hash,
                    position=position,
                )
            )
        for path, blob_id in sorted(changes.items()):
            self._session.add(
                FileChangeRow(commit_hash=commit.commit_hash, path=path, blob_id=blob_id)
            )
        self._session.flush()

    def get_parents(self, commit_hash: str) -> list[str]:
        stmt = (
            select(CommitParentRow.parent_hash)
            .where(CommitParentRow.commit_hash == commit_hash)
            .order_by(CommitParentRow.position)
        )
        return list(self._session.execute(stmt).scalars().all())

    def get_changes(self, commit_hash: str) -> Sequence[FileChangeRow]:
        stmt = (
            select(FileChangeRow)
            .where(FileChangeRow.commit_hash == commit_hash)
            .order_by(FileChangeRow.path)
        )
        return self._session.execute(stmt).scalars().all()


class SqliteRefRepository(RefRepository):
    """SQLite implementation of ref repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, ref_name: str) -> str | None:
        stmt = select(RefRow.commit_hash).where(RefRow.ref_name == ref_name)
        return self._session.execute(stmt).scalar_one_or_none()

    def set(self, ref_name: str, commit_hash: str) -> None:
        self._session.execute(delete(RefRow).where(RefRow.ref_name == ref_name))
        self._session.add(RefRow(ref_name=ref_name, commit_hash=commit_hash))
        self._session.flush()

    def list_refs(self) -> list[str]:
        stmt = select(RefRow.ref_name).order_by(RefRow.ref_name)
        return list(self._session.execute(stmt).scalars().all())


def _to_commit_info(row: CommitRow, parents: list[str]) -> CommitInfo:
    return CommitInfo(
        commit_hash=row.commit_hash,
        parents=tuple(parents),
        message=row.message,
        authored_at=row.authored_at.replace(tzinfo=timezone.utc),
        content_signature=row.content_signature,
    )


class SqlHistoryReader(HistoryReader):
    """HistoryReader over a SQLAlchemy history store.

    Every query runs in its own session. When the engine shares a single
    connection (in-memory SQLite) queries are serialized with a lock.
    """

    def __init__(self, engine: Engine, *, owns_engine: bool = False) -> None:
        self._engine = engine
        self._owns_engine = owns_engine
        self._session_factory = create_session_factory(engine)
        self._lock = threading.Lock() if is_shared_connection(engine) else nullcontext()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._lock:
            try:
                with self._session_factory() as session:
                    yield session
            except SQLAlchemyError as exc:
                logger.debug("History store query failed", exc_info=True)
                raise BackendUnavailableError(str(exc)) from exc

    def get_commit(self, commit_hash: str) -> CommitInfo:
        with self._session() as session:
            repo = SqliteCommitRepository(session)
            row = repo.get(commit_hash)
            if row is None:
                raise CommitNotFoundError(commit_hash)
            return _to_commit_info(row, repo.get_parents(commit_hash))

    def parents(self, commit_hash: str) -> tuple[str, ...]:
        with self._session() as session:
            repo = SqliteCommitRepository(session)
            if repo.get(commit_hash) is None:
                raise CommitNotFoundError(commit_hash)
            return tuple(repo.get_parents(commit_hash))

    def resolve_ref(self, ref: str) -> str:
        with self._session() as session:
            target = SqliteRefRepository(session).get(ref)
            if target is not None:
                return target
            # Full commit ids resolve to themselves, like a detached revision.
            if SqliteCommitRepository(session).get(ref) is not None:
                return ref
        raise RefNotFoundError(ref)

    def changes(self, commit_hash: str) -> dict[str, str | None]:
        with self._session() as session:
            repo = SqliteCommitRepository(session)
            if repo.get(commit_hash) is None:
                raise CommitNotFoundError(commit_hash)
            return {row.path: row.blob_id for row in repo.get_changes(commit_hash)}

    def snapshot(self, commit_hash: str) -> dict[str, str]:
        """Rebuild content by replaying first-parent changesets from the root."""
        with self._session() as session:
            repo = SqliteCommitRepository(session)
            chain: list[str] = []
            current: str | None = commit_hash
            while current is not None:
                if repo.get(current) is None:
                    raise CommitNotFoundError(current)
                chain.append(current)
                parents = repo.get_parents(current)
                current = parents[0] if parents else None

            content: dict[str, str] = {}
            for h in reversed(chain):
                for row in repo.get_changes(h):
                    if row.blob_id is None:
                        content.pop(row.path, None)
                    else:
                        content[row.path] = row.blob_id
            return content

    def close(self) -> None:
        if self._owns_engine:
            self._engine.dispose()
