"""Shared test fixtures for stagediff.

Provides in-memory history store, reader, and graph-builder fixtures.
"""

import pytest
from sqlalchemy.orm import Session, sessionmaker

from stagediff.storage.engine import create_history_engine, init_db
from stagediff.storage.sqlite import SqliteCommitRepository, SqliteRefRepository
from stagediff.store import HistoryStore
from tests.graphs import GraphBuilder


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    eng = create_history_engine(":memory:")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    """Session with automatic rollback after each test."""
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    sess = SessionLocal()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def commit_repo(session: Session) -> SqliteCommitRepository:
    return SqliteCommitRepository(session)


@pytest.fixture
def ref_repo(session: Session) -> SqliteRefRepository:
    return SqliteRefRepository(session)


@pytest.fixture
def store():
    """Empty in-memory history store."""
    s = HistoryStore.open(":memory:")
    yield s
    s.close()


@pytest.fixture
def reader(store):
    r = store.reader()
    yield r
    r.close()


@pytest.fixture
def graph(store) -> GraphBuilder:
    return GraphBuilder(store)
