"""Tests for sync-point location."""

from __future__ import annotations

from stagediff.models.config import default_marker_pattern
from stagediff.operations.sync import RegexMarker, locate_sync_point, merges_downstream
from tests.graphs import GraphBuilder, build_scenario_a

STAGING_MARKER = RegexMarker(default_marker_pattern("staging"))


def _feature_merge(g: GraphBuilder, name: str) -> None:
    """Merge a one-commit feature branch into develop (not a sync marker)."""
    g.commit(f"feature-{name}", f"{name}1", parents=["develop"])
    g.merge("develop", f"feature-{name}", f"{name}M", message=f"Merge pull request from feature-{name}")


def _merge_back(g: GraphBuilder, name: str) -> None:
    g.commit("staging", f"{name}_HOTFIX")
    g.merge("develop", "staging", name, message="Merge branch 'staging' into develop")


class TestRegexMarker:
    def test_case_insensitive_search(self, graph):
        c = graph.commit("main", "A", message="MERGE remote-tracking branch 'origin/Staging'")
        assert STAGING_MARKER(c)

    def test_non_matching(self, graph):
        c = graph.commit("main", "A", message="Merge branch 'feature' into develop")
        assert not STAGING_MARKER(c)

    def test_default_pattern_uses_last_segment(self):
        assert default_marker_pattern("origin/staging") == default_marker_pattern("staging")

    def test_default_pattern_escapes_name(self):
        marker = RegexMarker(default_marker_pattern("release.1"))
        assert marker.pattern.endswith(r"release\.1")


class TestLocateSyncPoint:
    def test_finds_marker(self, graph, reader):
        build_scenario_a(graph)
        found = locate_sync_point(
            reader, graph.h("F"), reader.resolve_ref("staging"), marker=STAGING_MARKER
        )
        assert found is not None
        assert found.commit_hash == graph.h("SYNC")

    def test_no_merges(self, graph, reader):
        graph.commit("develop", "A")
        graph.commit("staging", "S")
        assert locate_sync_point(reader, graph.h("A"), graph.h("S"), marker=STAGING_MARKER) is None

    def test_newest_marker_wins(self, graph, reader):
        graph.commit("staging", "BASE")
        graph.branch("develop", "BASE")
        graph.commit("develop", "A")
        _merge_back(graph, "SYNC1")
        graph.commit("develop", "B")
        _merge_back(graph, "SYNC2")
        graph.commit("develop", "C")
        found = locate_sync_point(
            reader, graph.h("C"), reader.resolve_ref("staging"), marker=STAGING_MARKER
        )
        assert found.commit_hash == graph.h("SYNC2")

    def test_marker_must_merge_downstream(self, graph, reader):
        """A matching message on a merge of unrelated work is not a sync point."""
        graph.commit("staging", "BASE")
        graph.branch("develop", "BASE")
        graph.commit("develop", "A")
        graph.commit("topic", "T", parents=["A"])
        graph.merge("develop", "topic", "FAKE", message="Merge staging fixes into develop")
        graph.commit("develop", "B")
        staging_tip = reader.resolve_ref("staging")

        assert not merges_downstream(reader, graph.commits["FAKE"], staging_tip)
        assert locate_sync_point(reader, graph.h("B"), staging_tip, marker=STAGING_MARKER) is None
        found = locate_sync_point(
            reader, graph.h("B"), staging_tip, marker=STAGING_MARKER, verify_parents=False
        )
        assert found.commit_hash == graph.h("FAKE")

    def test_scan_window_bounds_merges(self, graph, reader):
        graph.commit("staging", "BASE")
        graph.branch("develop", "BASE")
        graph.commit("develop", "A")
        _merge_back(graph, "SYNC")
        for name in ("X", "Y", "Z"):
            _feature_merge(graph, name)
        tip = reader.resolve_ref("develop")
        staging_tip = reader.resolve_ref("staging")

        assert locate_sync_point(reader, tip, staging_tip, marker=STAGING_MARKER, scan_window=3) is None
        found = locate_sync_point(reader, tip, staging_tip, marker=STAGING_MARKER, scan_window=4)
        assert found.commit_hash == graph.h("SYNC")

    def test_non_merge_commits_do_not_count(self, graph, reader):
        graph.commit("staging", "BASE")
        graph.branch("develop", "BASE")
        _merge_back(graph, "SYNC")
        for name in ("A", "B", "C", "D"):
            graph.commit("develop", name)
        found = locate_sync_point(
            reader, graph.h("D"), reader.resolve_ref("staging"), marker=STAGING_MARKER, scan_window=1
        )
        assert found.commit_hash == graph.h("SYNC")

    def test_custom_predicate(self, graph, reader):
        graph.commit("staging", "BASE")
        graph.branch("develop", "BASE")
        graph.commit("develop", "A")
        graph.commit("staging", "S")
        graph.merge("develop", "staging", "SYNC", message="back-merge [sync]")
        graph.commit("develop", "B")

        def tagged(commit) -> bool:
            return "[sync]" in commit.message

        found = locate_sync_point(
            reader, graph.h("B"), reader.resolve_ref("staging"), marker=tagged
        )
        assert found.commit_hash == graph.h("SYNC")
