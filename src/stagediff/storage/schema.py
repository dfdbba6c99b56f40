"""SQLAlchemy ORM schema for the stagediff history store.

Defines all database tables: commits, commit_parents, file_changes, refs,
_stagediff_meta.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

SCHEMA_VERSION = "1"


class Base(DeclarativeBase):
    """Base class for all stagediff ORM models."""

    pass


class CommitRow(Base):
    """A commit in the stage history DAG."""

    __tablename__ = "commits"

    commit_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Stored as naive UTC; readers re-attach the timezone.
    authored_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    content_signature: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        Index("ix_commits_signature", "content_signature"),
        Index("ix_commits_authored", "authored_at"),
    )


class CommitParentRow(Base):
    """Ordered parent links. Position 0 is the first parent."""

    __tablename__ = "commit_parents"

    commit_hash: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("commits.commit_hash"),
        primary_key=True,
    )
    parent_hash: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("commits.commit_hash"),
        primary_key=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_commit_parents_commit", "commit_hash"),
        Index("ix_commit_parents_parent", "parent_hash"),
    )


class FileChangeRow(Base):
    """One path changed by a commit, relative to its first parent.

    blob_id is None for a deletion. For merge commits the rows describe the
    full difference from the first parent, so replaying first-parent
    changesets from the root reproduces every snapshot.
    """

    __tablename__ = "file_changes"

    commit_hash: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("commits.commit_hash"),
        primary_key=True,
    )
    path: Mapped[str] = mapped_column(String(1024), primary_key=True)
    blob_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class RefRow(Base):
    """Mutable named pointer to a stage tip."""

    __tablename__ = "refs"

    ref_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    commit_hash: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("commits.commit_hash"),
        nullable=False,
    )


class MetaRow(Base):
    """Key/value store metadata (schema version)."""

    __tablename__ = "_stagediff_meta"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
