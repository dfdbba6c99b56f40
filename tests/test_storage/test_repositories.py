"""Tests for the SQLite storage repositories and SqlHistoryReader."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, inspect, text

from stagediff.exceptions import BackendUnavailableError, CommitNotFoundError, RefNotFoundError
from stagediff.storage.schema import CommitRow
from stagediff.store import HistoryStore


def _row(commit_hash: str, message: str = "msg") -> CommitRow:
    return CommitRow(
        commit_hash=commit_hash,
        message=message,
        authored_at=datetime(2024, 3, 1, 9, 0),
        content_signature="s" * 64,
    )


class TestSqliteCommitRepository:
    def test_get_nonexistent(self, commit_repo):
        assert commit_repo.get("nope") is None

    def test_save_keeps_parent_order(self, commit_repo):
        commit_repo.save(_row("p1"), [], {"a.py": "b1"})
        commit_repo.save(_row("p2"), [], {"b.py": "b2"})
        commit_repo.save(_row("m"), ["p2", "p1"], {"a.py": "b1"})
        assert commit_repo.get_parents("m") == ["p2", "p1"]
        assert commit_repo.get_parents("p1") == []

    def test_changes_sorted_by_path(self, commit_repo):
        commit_repo.save(_row("c"), [], {"z.py": "b1", "a.py": None})
        rows = commit_repo.get_changes("c")
        assert [(r.path, r.blob_id) for r in rows] == [("a.py", None), ("z.py", "b1")]


class TestSqliteRefRepository:
    def test_missing_ref(self, ref_repo):
        assert ref_repo.get("main") is None

    def test_set_twice_moves_ref(self, ref_repo, commit_repo):
        commit_repo.save(_row("c1"), [], {})
        commit_repo.save(_row("c2"), ["c1"], {})
        ref_repo.set("main", "c1")
        ref_repo.set("main", "c2")
        assert ref_repo.get("main") == "c2"

    def test_list_refs_sorted(self, ref_repo, commit_repo):
        commit_repo.save(_row("c1"), [], {})
        for name in ("staging", "develop", "main"):
            ref_repo.set(name, "c1")
        assert ref_repo.list_refs() == ["develop", "main", "staging"]


class TestHistoryStore:
    def test_commit_defaults_parent_to_ref_tip(self, store):
        root = store.commit("init", {"README.md": "r1"}, ref="main")
        child = store.commit("next", {"a.py": "a1"}, ref="main")
        assert root.is_root
        assert child.parents == (root.commit_hash,)
        assert store.get_ref("main") == child.commit_hash

    def test_commit_rejects_unknown_parent(self, store):
        with pytest.raises(CommitNotFoundError):
            store.commit("orphan", {}, parents=["f" * 64])

    def test_signature_defaults_to_changeset(self, store):
        a = store.commit("a", {"x.py": "x1"}, ref="one")
        b = store.commit("b", {"x.py": "x1"}, ref="two")
        assert a.commit_hash != b.commit_hash
        assert a.content_signature == b.content_signature

    def test_explicit_signature(self, store):
        info = store.commit("a", {"x.py": "x1"}, signature="custom-sig")
        assert info.content_signature == "custom-sig"

    def test_naive_time_taken_as_utc(self, store):
        info = store.commit("a", {}, authored_at=datetime(2024, 1, 1, 12, 0))
        assert info.authored_at == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_set_ref_requires_commit(self, store):
        with pytest.raises(CommitNotFoundError):
            store.set_ref("main", "f" * 64)

    def test_open_missing_file_without_create(self, tmp_path):
        with pytest.raises(BackendUnavailableError):
            HistoryStore.open(str(tmp_path / "missing.db"), create=False)

    def test_open_without_create_needs_history_schema(self, tmp_path):
        path = str(tmp_path / "other.db")
        engine = create_engine(f"sqlite:///{path}")
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE unrelated (id INTEGER PRIMARY KEY)"))
        engine.dispose()

        with pytest.raises(BackendUnavailableError, match="not a stagediff history store"):
            HistoryStore.open(path, create=False)

        engine = create_engine(f"sqlite:///{path}")
        assert inspect(engine).get_table_names() == ["unrelated"]
        engine.dispose()

    def test_open_without_create_is_read_only(self, tmp_path):
        path = str(tmp_path / "history.db")
        with HistoryStore.open(path) as store:
            store.commit("init", {"a.py": "a1"}, ref="main")
        with HistoryStore.open(path, create=False) as store:
            with pytest.raises(BackendUnavailableError):
                store.commit("late", {"b.py": "b1"}, ref="main")

    def test_file_store_round_trip(self, tmp_path):
        path = str(tmp_path / "history.db")
        with HistoryStore.open(path) as store:
            tip = store.commit("init", {"a.py": "a1"}, ref="main")
        with HistoryStore.open(path, create=False) as store:
            reader = store.reader()
            assert reader.resolve_ref("main") == tip.commit_hash
            assert reader.get_commit(tip.commit_hash).message == "init"


class TestSqlHistoryReader:
    def test_get_commit_round_trip(self, store, reader):
        info = store.commit("feat: api\n\nlong body", {"api.py": "a1"}, ref="main")
        got = reader.get_commit(info.commit_hash)
        assert got == info
        assert got.authored_at.tzinfo is not None
        assert got.subject == "feat: api"

    def test_unknown_commit(self, reader):
        with pytest.raises(CommitNotFoundError):
            reader.get_commit("nope")
        with pytest.raises(CommitNotFoundError):
            reader.parents("nope")
        with pytest.raises(CommitNotFoundError):
            reader.changes("nope")

    def test_resolve_ref_and_full_id(self, store, reader):
        info = store.commit("init", {}, ref="main")
        assert reader.resolve_ref("main") == info.commit_hash
        assert reader.resolve_ref(info.commit_hash) == info.commit_hash

    def test_resolve_unknown_ref(self, reader):
        with pytest.raises(RefNotFoundError) as exc_info:
            reader.resolve_ref("release")
        assert exc_info.value.ref_name == "release"

    def test_changes_and_snapshot(self, store, reader):
        store.commit("init", {"a.py": "a1", "b.py": "b1"}, ref="main")
        store.commit("edit", {"a.py": "a2", "b.py": None}, ref="main")
        tip = store.get_ref("main")
        assert reader.changes(tip) == {"a.py": "a2", "b.py": None}
        assert reader.snapshot(tip) == {"a.py": "a2"}

    def test_merge_queries(self, graph, reader):
        graph.commit("main", "A")
        graph.commit("topic", "B", parents=["A"])
        graph.commit("main", "C")
        merge = graph.merge("main", "topic", "M")
        assert reader.is_merge(merge.commit_hash)
        assert reader.parents(merge.commit_hash) == (graph.h("C"), graph.h("B"))
        assert reader.snapshot(merge.commit_hash) == {
            "a.txt": "blob-a",
            "b.txt": "blob-b",
            "c.txt": "blob-c",
        }

    def test_reachable_signatures_skip_merges(self, graph, reader):
        graph.commit("main", "A")
        graph.commit("topic", "B", parents=["A"])
        graph.commit("main", "C")
        merge = graph.merge("main", "topic", "M")
        sigs = reader.reachable_signatures(merge.commit_hash)
        assert sigs == {graph.commits[n].content_signature for n in ("A", "B", "C")}

    def test_concurrent_reads(self, graph, reader):
        for i in range(20):
            graph.commit("main", f"C{i}")
        tip = graph.h("C19")

        def walk(_: int) -> int:
            return len(list(reader.ancestors(tip)))

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(walk, range(16)))
        assert results == [20] * 16

    def test_reader_can_own_engine(self, tmp_path):
        path = str(tmp_path / "history.db")
        with HistoryStore.open(path) as store:
            store.commit("init", {}, ref="main")
        reader = HistoryStore.open(path, create=False).reader(owns_engine=True)
        assert reader.resolve_ref("main")
        reader.close()
