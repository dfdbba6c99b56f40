"""HistoryStore: the SQL-backed history store that stagediff reads from.

The store is the collaborating system that owns commit data; analyses only
ever see it through ``HistoryStore.reader()``. Writing helpers exist so
that graphs can be loaded (by import tooling, fixtures, or other services).

Example::

    store = HistoryStore.open("history.db")
    root = store.commit("init", {"README.md": "b0"}, ref="main")
    store.commit("feat: add api", {"api.py": "b1"}, ref="develop", parents=[root.commit_hash])
    report = analyze(store.reader(), "develop", "main")
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from stagediff.engine.hashing import changeset_signature, commit_hash
from stagediff.exceptions import BackendUnavailableError, CommitNotFoundError
from stagediff.models.commit import CommitInfo
from stagediff.storage.engine import (
    create_history_engine,
    create_session_factory,
    has_history_schema,
    init_db,
)
from stagediff.storage.schema import CommitRow
from stagediff.storage.sqlite import (
    SqlHistoryReader,
    SqliteCommitRepository,
    SqliteRefRepository,
)


class HistoryStore:
    """Writable handle on a SQL history store."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = create_session_factory(engine)

    @classmethod
    def open(
        cls,
        path: str = ":memory:",
        *,
        url: str | None = None,
        create: bool = True,
    ) -> HistoryStore:
        """Open (and by default initialize) a history store.

        Args:
            path: SQLite file path or ``":memory:"``.
            url: Full SQLAlchemy URL; overrides *path*.
            create: When False, open an existing store without writing to
                it: a SQLite file is opened read-only, no table is created
                and a database without the stagediff schema is an error.

        Raises:
            BackendUnavailableError: The database is missing, unreachable,
                or (with create=False) not a stagediff history store.
        """
        on_disk = url is None and path != ":memory:"
        if on_disk and not create and not os.path.exists(path):
            raise BackendUnavailableError(f"database not found: {path}")
        try:
            engine = create_history_engine(path, url=url, readonly=on_disk and not create)
            if create:
                init_db(engine)
            elif not has_history_schema(engine):
                engine.dispose()
                raise BackendUnavailableError(
                    f"not a stagediff history store: {url or path}"
                )
        except SQLAlchemyError as exc:
            raise BackendUnavailableError(str(exc)) from exc
        return cls(engine)

    def commit(
        self,
        message: str,
        changes: Mapping[str, str | None] | None = None,
        *,
        parents: Sequence[str] | None = None,
        ref: str | None = None,
        authored_at: datetime | None = None,
        signature: str | None = None,
    ) -> CommitInfo:
        """Record a commit and optionally advance a ref to it.

        Args:
            message: Commit message.
            changes: Changeset relative to the first parent
                (path -> blob id, None for deletion).
            parents: Ordered parents. Defaults to the current tip of *ref*
                (or no parents when the ref does not exist yet).
            ref: Ref to advance to the new commit.
            authored_at: Authoring time; defaults to now (UTC).
            signature: Explicit content signature; defaults to the
                changeset signature of *changes*.

        Returns:
            CommitInfo for the new commit.
        """
        changes = dict(changes or {})
        when = authored_at or datetime.now(timezone.utc)
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        when = when.astimezone(timezone.utc)

        try:
            with self._session_factory() as session:
                commits = SqliteCommitRepository(session)
                refs = SqliteRefRepository(session)
                if parents is None:
                    tip = refs.get(ref) if ref is not None else None
                    parents = [tip] if tip is not None else []
                for parent in parents:
                    if commits.get(parent) is None:
                        raise CommitNotFoundError(parent)

                new_hash = commit_hash(list(parents), message, when.isoformat(), changes)
                row = CommitRow(
                    commit_hash=new_hash,
                    message=message,
                    authored_at=when.replace(tzinfo=None),
                    content_signature=signature or changeset_signature(changes),
                )
                commits.save(row, parents, changes)
                if ref is not None:
                    refs.set(ref, new_hash)
                session.commit()
        except SQLAlchemyError as exc:
            raise BackendUnavailableError(str(exc)) from exc

        return CommitInfo(
            commit_hash=new_hash,
            parents=tuple(parents),
            message=message,
            authored_at=when,
            content_signature=row.content_signature,
        )

    def set_ref(self, ref_name: str, commit_hash: str) -> None:
        """Point a ref at an existing commit."""
        try:
            with self._session_factory() as session:
                if SqliteCommitRepository(session).get(commit_hash) is None:
                    raise CommitNotFoundError(commit_hash)
                SqliteRefRepository(session).set(ref_name, commit_hash)
                session.commit()
        except SQLAlchemyError as exc:
            raise BackendUnavailableError(str(exc)) from exc

    def get_ref(self, ref_name: str) -> str | None:
        with self._session_factory() as session:
            return SqliteRefRepository(session).get(ref_name)

    def list_refs(self) -> list[str]:
        with self._session_factory() as session:
            return SqliteRefRepository(session).list_refs()

    def reader(self, *, owns_engine: bool = False) -> SqlHistoryReader:
        """Read-only view used by analyses. Shares this store's engine.

        With owns_engine=True, closing the reader disposes the engine.
        """
        return SqlHistoryReader(self._engine, owns_engine=owns_engine)

    def close(self) -> None:
        self._engine.dispose()

    def __enter__(self) -> HistoryStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
