"""DAG utilities for stagediff -- ancestry walks, merge base, ordering.

These utilities operate on any HistoryReader and follow every parent of
merge commits. They hold no state between calls.
"""

from __future__ import annotations

import heapq
from collections import deque
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stagediff.engine.deadline import Deadline
    from stagediff.models.commit import CommitInfo
    from stagediff.storage.repositories import HistoryReader


def bfs_walk(
    start: str,
    reader: HistoryReader,
    *,
    stop_at: set[str] | None = None,
    deadline: Deadline | None = None,
) -> Iterator[str]:
    """BFS walk from a start hash, yielding each visited commit hash once.

    Args:
        start: Starting commit hash.
        reader: History backend.
        stop_at: Optional set of known hashes. When a commit is in this set,
            it is yielded but its parents are not enqueued.
        deadline: Polled once per visited commit.
    """
    visited: set[str] = set()
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        if deadline is not None:
            deadline.check()
        visited.add(current)
        yield current
        if stop_at is not None and current in stop_at:
            continue
        for parent in reader.parents(current):
            if parent not in visited:
                queue.append(parent)


def get_all_ancestors(
    commit_hash: str,
    reader: HistoryReader,
    *,
    deadline: Deadline | None = None,
) -> set[str]:
    """Get all ancestor hashes of a commit (including itself)."""
    return set(bfs_walk(commit_hash, reader, deadline=deadline))


def is_ancestor(
    reader: HistoryReader,
    potential_ancestor: str,
    commit_hash: str,
    *,
    deadline: Deadline | None = None,
) -> bool:
    """Check if potential_ancestor is reachable from commit_hash (or equal to it).

    Uses early-termination BFS -- stops as soon as the target is found.
    """
    for h in bfs_walk(commit_hash, reader, deadline=deadline):
        if h == potential_ancestor:
            return True
    return False


def find_merge_base(
    reader: HistoryReader,
    hash_a: str,
    hash_b: str,
    *,
    deadline: Deadline | None = None,
) -> str | None:
    """Find the best common ancestor (merge base) of two commits.

    Collects the frontier of common ancestors reachable from hash_b without
    walking past any of them, drops those that are proper ancestors of
    another frontier commit, and returns the most recently authored
    survivor (hash as tie-break).

    Returns:
        The commit hash of the merge base, or None if no common ancestor.
    """
    ancestors_a = get_all_ancestors(hash_a, reader, deadline=deadline)
    frontier = [
        h
        for h in bfs_walk(hash_b, reader, stop_at=ancestors_a, deadline=deadline)
        if h in ancestors_a
    ]
    if not frontier:
        return None

    best = [
        c
        for c in frontier
        if not any(
            other != c and is_ancestor(reader, c, other, deadline=deadline)
            for other in frontier
        )
    ]
    return max(best, key=lambda h: (reader.get_commit(h).authored_at, h))


def _newest_first_key(commit: CommitInfo) -> tuple[float, str]:
    return (-commit.authored_at.timestamp(), commit.commit_hash)


def topo_walk(
    tip: str,
    reader: HistoryReader,
    *,
    deadline: Deadline | None = None,
) -> Iterator[str]:
    """Yield ancestors of tip in reverse-chronological topological order.

    A commit is never yielded before any of its reachable children. Among
    commits whose children have all been yielded, the newest goes first.

    Authoring times can run backwards across an edge, so the order is only
    known once every ancestor of tip has been read: the first call to
    ``next()`` loads the whole reachable graph, one get_commit per commit.
    Callers that stop early (the sync locator's scan window) save the
    ordering work, not the reads; *deadline* is what bounds the reads.
    """
    commits: dict[str, CommitInfo] = {}
    pending_children: dict[str, int] = {tip: 0}
    queue: deque[str] = deque([tip])
    while queue:
        if deadline is not None:
            deadline.check()
        commit = reader.get_commit(queue.popleft())
        commits[commit.commit_hash] = commit
        for parent in commit.parents:
            if parent not in pending_children:
                pending_children[parent] = 0
                queue.append(parent)
            pending_children[parent] += 1

    heap = [(_newest_first_key(commits[tip]), tip)]
    while heap:
        if deadline is not None:
            deadline.check()
        _, current = heapq.heappop(heap)
        yield current
        for parent in commits[current].parents:
            pending_children[parent] -= 1
            if pending_children[parent] == 0:
                heapq.heappush(heap, (_newest_first_key(commits[parent]), parent))


def first_parent_chain(
    tip: str,
    reader: HistoryReader,
    *,
    deadline: Deadline | None = None,
) -> Iterator[CommitInfo]:
    """Yield tip and its first-parent ancestors, newest first."""
    current: str | None = tip
    while current is not None:
        if deadline is not None:
            deadline.check()
        commit = reader.get_commit(current)
        yield commit
        current = commit.first_parent


def chronological_order(
    commits: Iterable[CommitInfo],
    *,
    deadline: Deadline | None = None,
) -> list[CommitInfo]:
    """Order a set of commits oldest-first, parents before children.

    Kahn's algorithm restricted to the given set; among ready commits the
    oldest authored_at (then hash) goes first, so the result is sorted by
    timestamp whenever timestamps respect causality and falls back to
    topological order where they do not.
    """
    by_hash = {c.commit_hash: c for c in commits}
    waiting_on: dict[str, int] = {}
    children: dict[str, list[str]] = {h: [] for h in by_hash}
    for h, commit in by_hash.items():
        inside = [p for p in commit.parents if p in by_hash]
        waiting_on[h] = len(inside)
        for parent in inside:
            children[parent].append(h)

    heap = [
        (c.authored_at.timestamp(), h, h)
        for h, c in by_hash.items()
        if waiting_on[h] == 0
    ]
    heapq.heapify(heap)
    ordered: list[CommitInfo] = []
    while heap:
        if deadline is not None:
            deadline.check()
        _, _, current = heapq.heappop(heap)
        ordered.append(by_hash[current])
        for child in children[current]:
            waiting_on[child] -= 1
            if waiting_on[child] == 0:
                c = by_hash[child]
                heapq.heappush(heap, (c.authored_at.timestamp(), child, child))
    return ordered
