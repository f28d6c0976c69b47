"""Tests for storyloop.prd.graph module."""

import pytest

from storyloop.lib.errors import CyclicDependency, PRDError, UnknownDependency
from storyloop.prd.graph import (
    build_edges,
    check_acyclic,
    check_references,
    transitive_dependents,
    validate_graph,
)

from conftest import make_prd, make_story


class TestReferences:

    def test_unknown_story_dependency(self):
        prds = [make_prd("P", [make_story("A", deps=["GHOST"])])]

        with pytest.raises(UnknownDependency) as exc:
            check_references(prds)

        assert exc.value.owner == "A"
        assert exc.value.missing == "GHOST"

    def test_unknown_prd_dependency(self):
        prds = [make_prd("P", [make_story("A")], deps=["NOPE"])]

        with pytest.raises(UnknownDependency) as exc:
            check_references(prds)
        assert exc.value.owner == "P"

    def test_unknown_dependency_is_prd_error(self):
        prds = [make_prd("P", [make_story("A", deps=["GHOST"])])]
        with pytest.raises(PRDError):
            validate_graph(prds)


class TestEdges:

    def test_prd_dependency_expands_to_stories(self):
        prds = [
            make_prd("BASE", [make_story("B1"), make_story("B2")]),
            make_prd("TOP", [make_story("T1", deps=["B2"])], deps=["BASE"]),
        ]

        edges = build_edges(prds)

        assert edges["T1"] == ["B2", "B1"]
        assert edges["B1"] == []


class TestCycles:
    """Cycles are rejected before anything is scheduled."""

    def test_two_story_cycle(self):
        prds = [make_prd("P", [make_story("A", deps=["B"]), make_story("B", deps=["A"])])]

        with pytest.raises(CyclicDependency) as exc:
            check_acyclic(prds)

        assert exc.value.cycle == ["A", "B", "A"]
        assert "A -> B -> A" in str(exc.value)

    def test_self_dependency(self):
        prds = [make_prd("P", [make_story("A", deps=["A"])])]
        with pytest.raises(CyclicDependency):
            check_acyclic(prds)

    def test_cycle_through_prd_dependency(self):
        prds = [
            make_prd("P1", [make_story("A", deps=["B"])]),
            make_prd("P2", [make_story("B")], deps=["P1"]),
        ]
        with pytest.raises(CyclicDependency):
            check_acyclic(prds)

    def test_cycle_between_empty_prds(self):
        prds = [make_prd("P1", [], deps=["P2"]), make_prd("P2", [], deps=["P1"])]
        with pytest.raises(CyclicDependency):
            check_acyclic(prds)

    def test_diamond_is_acyclic(self):
        prds = [make_prd("P", [
            make_story("A"),
            make_story("B", deps=["A"]),
            make_story("C", deps=["A"]),
            make_story("D", deps=["B", "C"]),
        ])]

        validate_graph(prds)

    def test_long_chain_is_acyclic(self):
        stories = [make_story("S0")]
        stories += [make_story(f"S{i}", deps=[f"S{i - 1}"]) for i in range(1, 2000)]

        validate_graph([make_prd("P", stories)])


class TestTransitiveDependents:

    def test_collects_indirect_dependents(self):
        prds = [
            make_prd("P1", [make_story("A"), make_story("B", deps=["A"])]),
            make_prd("P2", [make_story("C", deps=["B"]), make_story("X")]),
        ]

        assert transitive_dependents(prds, "A") == {"B", "C"}
        assert transitive_dependents(prds, "X") == set()
