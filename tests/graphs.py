"""Helpers that build stage histories on an in-memory HistoryStore.

GraphBuilder tracks the snapshot of every commit it writes so merges and
squashes can be recorded with correct first-parent changesets, the way a
real history store would materialize them.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from stagediff.models.commit import CommitInfo
from stagediff.store import HistoryStore

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _diff(before: dict[str, str], after: dict[str, str]) -> dict[str, str | None]:
    changes: dict[str, str | None] = {
        path: blob for path, blob in after.items() if before.get(path) != blob
    }
    for path in before:
        if path not in after:
            changes[path] = None
    return changes


class GraphBuilder:
    """Write named commits onto named branches with monotonically increasing times."""

    def __init__(self, store: HistoryStore, *, start: datetime = T0) -> None:
        self.store = store
        self._clock = start
        self._snapshots: dict[str, dict[str, str]] = {}
        self.commits: dict[str, CommitInfo] = {}

    def _tick(self) -> datetime:
        self._clock += timedelta(minutes=1)
        return self._clock

    def _resolve(self, name_or_branch: str) -> str:
        if name_or_branch in self.commits:
            return self.commits[name_or_branch].commit_hash
        tip = self.store.get_ref(name_or_branch)
        if tip is None:
            raise KeyError(name_or_branch)
        return tip

    def h(self, name: str) -> str:
        """Commit id of a named commit."""
        return self.commits[name].commit_hash

    def hs(self, *names: str) -> list[str]:
        return [self.h(n) for n in names]

    def snapshot(self, name_or_branch: str) -> dict[str, str]:
        return dict(self._snapshots[self._resolve(name_or_branch)])

    def commit(
        self,
        branch: str,
        name: str,
        files: dict[str, str | None] | None = None,
        *,
        message: str | None = None,
        parents: list[str] | None = None,
        at: datetime | None = None,
        signature: str | None = None,
    ) -> CommitInfo:
        """Commit *files* (path -> blob, None deletes) on top of *branch*.

        Without explicit parents, the commit goes on the branch tip (or
        becomes a root when the branch does not exist yet).
        """
        if files is None:
            files = {f"{name.lower()}.txt": f"blob-{name.lower()}"}
        if parents is None:
            tip = self.store.get_ref(branch)
            parent_hashes = [tip] if tip is not None else []
        else:
            parent_hashes = [self._resolve(p) for p in parents]

        base = dict(self._snapshots[parent_hashes[0]]) if parent_hashes else {}
        content = dict(base)
        for path, blob in files.items():
            if blob is None:
                content.pop(path, None)
            else:
                content[path] = blob

        info = self.store.commit(
            message or name,
            _diff(base, content) if parent_hashes else dict(content),
            parents=parent_hashes,
            ref=branch,
            authored_at=at or self._tick(),
            signature=signature,
        )
        self._snapshots[info.commit_hash] = content
        self.commits[name] = info
        return info

    def merge(
        self,
        branch: str,
        source: str,
        name: str,
        *,
        message: str | None = None,
    ) -> CommitInfo:
        """Merge *source* (branch or commit name) into *branch*; source wins conflicts."""
        ours = self._resolve(branch)
        theirs = self._resolve(source)
        merged = dict(self._snapshots[ours])
        merged.update(self._snapshots[theirs])
        info = self.store.commit(
            message or f"Merge branch '{source}' into {branch}",
            _diff(self._snapshots[ours], merged),
            parents=[ours, theirs],
            ref=branch,
            authored_at=self._tick(),
        )
        self._snapshots[info.commit_hash] = merged
        self.commits[name] = info
        return info

    def squash(
        self,
        branch: str,
        source: str,
        name: str,
        *,
        message: str | None = None,
    ) -> CommitInfo:
        """Single-parent commit on *branch* that takes on *source*'s content."""
        ours = self._resolve(branch)
        merged = dict(self._snapshots[ours])
        merged.update(self._snapshots[self._resolve(source)])
        return self.commit(
            branch,
            name,
            _diff(self._snapshots[ours], merged),
            message=message or f"Promote {source} (#{len(self.commits) + 1})",
        )

    def branch(self, branch: str, at: str) -> None:
        """Create or move *branch* to a named commit (or another branch's tip)."""
        self.store.set_ref(branch, self._resolve(at))


def build_scenario_a(g: GraphBuilder) -> None:
    """develop A-F; A-C squash-promoted to staging and merged back before D."""
    g.commit("staging", "BASE", {"README.md": "readme-v1"})
    g.branch("develop", "BASE")
    for name in ("A", "B", "C"):
        g.commit("develop", name)
    g.squash("staging", "develop", "PROMO", message="Promote develop to staging (#12)")
    g.merge("develop", "staging", "SYNC", message="Merge branch 'staging' into develop")
    for name in ("D", "E", "F"):
        g.commit("develop", name)


def build_scenario_b(g: GraphBuilder) -> None:
    """develop A-E; staging fast-forwarded to C, no marker merge anywhere."""
    for name in ("A", "B", "C"):
        g.commit("develop", name)
    g.branch("staging", "C")
    for name in ("D", "E"):
        g.commit("develop", name)


def build_scenario_c(g: GraphBuilder) -> None:
    """develop and staging with unrelated roots."""
    g.commit("staging", "X", {"infra.tf": "infra-v1"})
    g.commit("staging", "Y", {"infra.tf": "infra-v2"})
    for name in ("A", "B", "C"):
        g.commit("develop", name)


def build_scenario_d(g: GraphBuilder) -> None:
    """G cherry-picked to staging, then reworked by a later squash.

    G's signature is found downstream, but the squash baseline holds a
    different blob for the path G touches.
    """
    g.commit("staging", "BASE", {"README.md": "readme-v1"})
    g.branch("develop", "BASE")
    g.commit("develop", "G", {"api.py": "api-v1"})
    g.commit("staging", "G_PICK", {"api.py": "api-v1"}, message="G (cherry picked)")
    g.commit("staging", "FIX", {"api.py": "api-v2"}, message="Hotfix api (#40)")
    g.commit("develop", "H", {"cli.py": "cli-v1"})
