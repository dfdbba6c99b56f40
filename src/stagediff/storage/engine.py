"""SQLAlchemy plumbing for the history store: engines, sessions, schema setup.

Writable file databases run in WAL mode so CLI readers never block a writer
that is loading history at the same time. Read-only engines open the file
with ``mode=ro`` and never touch its journal mode.
"""

from __future__ import annotations

import os

from sqlalchemy import Engine, create_engine, event, inspect, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stagediff.storage.schema import SCHEMA_VERSION, Base, MetaRow


def create_history_engine(
    db_path: str = ":memory:",
    *,
    url: str | None = None,
    readonly: bool = False,
) -> Engine:
    """Create a SQLAlchemy engine for the history store.

    Either a SQLite location (file path or ``":memory:"``) or, via *url*,
    any SQLAlchemy URL for a history store kept in another database.

    An in-memory database lives on a single shared connection so that
    worker threads see the same data; callers must serialize access to it
    (``SqlHistoryReader`` does).

    Args:
        db_path: SQLite file, or ``":memory:"``. Ignored when *url* is set.
        url: SQLAlchemy database URL.
        readonly: Open a SQLite file read-only. No pragma that persists in
            the file is issued.
    """
    if url is not None:
        engine = create_engine(url, echo=False)
    elif db_path == ":memory:":
        engine = create_engine(
            "sqlite://",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif readonly:
        engine = create_engine(
            f"sqlite:///file:{os.path.abspath(db_path)}?mode=ro&uri=true",
            echo=False,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            f"sqlite:///{db_path}",
            echo=False,
            connect_args={"check_same_thread": False},
        )

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):  # type: ignore[no-untyped-def]
            cursor = dbapi_conn.cursor()
            if readonly:
                cursor.execute("PRAGMA query_only=ON")
            else:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def is_shared_connection(engine: Engine) -> bool:
    """True when every session shares one DBAPI connection (in-memory SQLite)."""
    return isinstance(engine.pool, StaticPool)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Sessions keep loaded rows usable after commit (expire_on_commit=False)."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create missing tables and stamp the schema version once."""
    Base.metadata.create_all(engine)

    SessionLocal = create_session_factory(engine)
    with SessionLocal() as session:
        existing = session.execute(
            select(MetaRow).where(MetaRow.key == "schema_version")
        ).scalar_one_or_none()
        if existing is None:
            session.add(MetaRow(key="schema_version", value=SCHEMA_VERSION))
            session.commit()


def has_history_schema(engine: Engine) -> bool:
    """True when the database already holds a stagediff history store."""
    return inspect(engine).has_table(MetaRow.__tablename__)
