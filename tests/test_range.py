"""Tests for range extraction."""

from __future__ import annotations

from datetime import timedelta

from stagediff.models.report import SyncMode, WarningCode
from stagediff.operations.range import extract_range
from tests.graphs import T0, build_scenario_a, build_scenario_b, build_scenario_c


def _names(graph, commits) -> list[str]:
    by_hash = {c.commit_hash: name for name, c in graph.commits.items()}
    return [by_hash[c.commit_hash] for c in commits]


class TestExtractRange:
    def test_marker_boundary(self, graph, reader):
        build_scenario_a(graph)
        result = extract_range(
            reader, graph.h("F"), reader.resolve_ref("staging"), graph.commits["SYNC"]
        )
        assert _names(graph, result.candidates) == ["D", "E", "F"]
        assert result.sync_point.mode == SyncMode.MARKER
        assert result.sync_point.commit_hash == graph.h("SYNC")
        assert not result.unverified
        assert result.warnings == []

    def test_common_ancestor_fallback(self, graph, reader):
        build_scenario_b(graph)
        result = extract_range(reader, graph.h("E"), graph.h("C"), None)
        assert _names(graph, result.candidates) == ["D", "E"]
        assert result.sync_point.mode == SyncMode.COMMON_ANCESTOR
        assert result.sync_point.commit_hash == graph.h("C")
        assert [w.code for w in result.warnings] == [WarningCode.DEGRADED_SYNC]
        assert not result.unverified

    def test_disjoint_histories(self, graph, reader):
        build_scenario_c(graph)
        result = extract_range(reader, graph.h("C"), graph.h("Y"), None)
        assert _names(graph, result.candidates) == ["A", "B", "C"]
        assert result.sync_point.mode == SyncMode.DISJOINT
        assert result.sync_point.commit_hash is None
        assert result.unverified
        assert {w.code for w in result.warnings} == {WarningCode.DEGRADED_SYNC, WarningCode.UNVERIFIED}

    def test_merges_are_not_candidates(self, graph, reader):
        graph.commit("staging", "BASE")
        graph.branch("develop", "BASE")
        graph.commit("develop", "A")
        graph.commit("feature", "F1", parents=["A"])
        graph.commit("develop", "B")
        graph.commit("feature", "F2")
        graph.merge("develop", "feature", "M")
        result = extract_range(reader, graph.h("M"), graph.h("BASE"), None)
        assert _names(graph, result.candidates) == ["A", "F1", "B", "F2"]

    def test_ancestors_of_boundary_excluded(self, graph, reader):
        build_scenario_a(graph)
        result = extract_range(
            reader, graph.h("F"), reader.resolve_ref("staging"), graph.commits["SYNC"]
        )
        for cand in result.candidates:
            assert not reader.is_ancestor(cand.commit_hash, graph.h("SYNC"))

    def test_parents_first_under_clock_skew(self, graph, reader):
        graph.commit("staging", "BASE", at=T0)
        graph.branch("develop", "BASE")
        graph.commit("develop", "A", at=T0 + timedelta(hours=5))
        graph.commit("develop", "B", at=T0 + timedelta(hours=1))
        result = extract_range(reader, graph.h("B"), graph.h("BASE"), None)
        assert _names(graph, result.candidates) == ["A", "B"]

    def test_up_to_date(self, graph, reader):
        graph.commit("develop", "A")
        graph.branch("staging", "A")
        result = extract_range(reader, graph.h("A"), graph.h("A"), None)
        assert result.candidates == []
