"""Tests for storyloop.workflow.selector module."""

from storyloop.workflow.selector import (
    ScanKind,
    is_eligible,
    scan,
    select_next_story,
    unmet_dependencies,
)

from conftest import make_prd, make_story


class TestSelectNextStory:
    """Tests for select_next_story()."""

    def test_single_pending_story(self):
        """FOUND-SCHEMA-01 is returned when it is the only pending story."""
        story = make_story("FOUND-SCHEMA-01", budget=2)
        prds = [make_prd("FOUND-SCHEMA", [story], phase="foundation", priority=1)]

        assert select_next_story(prds) is story

    def test_skips_story_with_incomplete_dependency(self):
        server = make_story("REF-SERVER-01", status="active", used=1)
        hooks = make_story("REF-HOOKS-01", deps=["REF-SERVER-01"])
        prds = [make_prd("REF", [hooks, server], phase="refactoring")]

        assert select_next_story(prds) is server

    def test_none_when_dependency_not_resumable(self):
        server = make_story("REF-SERVER-01", status="active", budget=2, used=2)
        hooks = make_story("REF-HOOKS-01", deps=["REF-SERVER-01"])
        prds = [make_prd("REF", [hooks, server], phase="refactoring")]

        assert select_next_story(prds) is None

    def test_priority_order(self):
        low = make_story("LOW-01")
        high = make_story("HIGH-01")
        prds = [
            make_prd("LOW", [low], priority=5),
            make_prd("HIGH", [high], priority=1),
        ]

        assert select_next_story(prds) is high

    def test_declaration_order_breaks_priority_ties(self):
        first = make_story("A-01")
        second = make_story("B-01")
        prds = [
            make_prd("A", [first], priority=2),
            make_prd("B", [second], priority=2),
        ]

        assert select_next_story(prds) is first

    def test_story_declaration_order_within_prd(self):
        stories = [make_story("S3"), make_story("S1"), make_story("S2")]
        prds = [make_prd("P", stories)]

        assert select_next_story(prds).id == "S3"

    def test_deterministic(self):
        stories = [make_story("S1", status="complete"), make_story("S2"), make_story("S3")]
        prds = [make_prd("P", stories)]

        assert select_next_story(prds) is select_next_story(prds)

    def test_cross_prd_dependency(self):
        schema = make_story("SCHEMA-01")
        ui = make_story("UI-01", deps=["SCHEMA-01"])
        prds = [
            make_prd("UI", [ui], priority=1),
            make_prd("SCHEMA", [schema], priority=2),
        ]

        assert select_next_story(prds) is schema
        schema.status = "complete"
        assert select_next_story(prds) is ui

    def test_prd_level_dependency(self):
        base = make_story("BASE-01")
        other = make_story("OTHER-01")
        prds = [
            make_prd("OTHER", [other], priority=1, deps=["BASE"]),
            make_prd("BASE", [base], priority=2),
        ]

        assert select_next_story(prds) is base
        base.status = "skipped"
        assert select_next_story(prds) is other

    def test_skipped_story_dependency_stays_unmet(self):
        a = make_story("A", status="skipped")
        b = make_story("B", deps=["A"])
        prds = [make_prd("P", [a, b])]

        assert select_next_story(prds) is None
        assert scan(prds).kind == ScanKind.DEADLOCK

    def test_selection_has_no_side_effects(self):
        story = make_story("S1")
        prds = [make_prd("P", [story])]

        select_next_story(prds)

        assert story.status == "pending"
        assert story.iterations_used == 0


class TestDependencyGating:
    """A story never comes back while any dependency is incomplete."""

    def test_every_non_complete_dependency_status_gates(self):
        for dep_status in ("pending", "active", "blocked", "skipped"):
            dep = make_story("DEP", status=dep_status, budget=1, used=1)
            story = make_story("S", deps=["DEP"])
            prds = [make_prd("P", [story, dep])]

            assert select_next_story(prds) is not story
            assert not is_eligible(story, prds)

    def test_unmet_lists_story_and_prd_ids(self):
        a = make_story("A")
        b = make_story("B", deps=["A"])
        prds = [
            make_prd("P1", [a]),
            make_prd("P2", [b], deps=["P1"]),
        ]

        assert unmet_dependencies(b, prds) == ["A", "P1"]


class TestScan:
    """Tests for scan() classification."""

    def test_all_complete(self):
        prds = [make_prd("P", [make_story("S1", status="complete"), make_story("S2", status="skipped")])]

        result = scan(prds)

        assert result.kind == ScanKind.ALL_COMPLETE
        assert result.story is None

    def test_deadlock_distinct_from_complete(self):
        prds = [make_prd("P", [
            make_story("S1", status="complete"),
            make_story("S2", status="blocked"),
        ])]

        result = scan(prds)

        assert result.kind == ScanKind.DEADLOCK
        assert select_next_story(prds) is None

    def test_deadlock_reports_waiting_stories(self):
        blocked = make_story("B1", status="blocked")
        waiting = make_story("W1", deps=["B1"])
        prds = [make_prd("P", [blocked, waiting])]

        result = scan(prds)

        assert result.kind == ScanKind.DEADLOCK
        assert result.waiting == {"W1": ["B1"]}

    def test_blocked_foundation_halts(self):
        found = make_story("FOUND-01", status="blocked")
        unrelated = make_story("DOM-01")
        prds = [
            make_prd("FOUND", [found], phase="foundation", priority=1),
            make_prd("DOM", [unrelated], phase="domain", priority=2),
        ]

        result = scan(prds)

        assert result.kind == ScanKind.HALTED
        assert result.blocked_foundation == ["FOUND-01"]
        assert select_next_story(prds) is None

    def test_blocked_domain_story_does_not_halt(self):
        blocked = make_story("DOM-01", status="blocked")
        unrelated = make_story("DOM-02")
        prds = [make_prd("DOM", [blocked, unrelated], phase="domain")]

        result = scan(prds)

        assert result.kind == ScanKind.NEXT
        assert result.story is unrelated

    def test_domain_filter(self):
        a = make_story("A")
        b = make_story("B")
        prds = [
            make_prd("PA", [a], domain="customers", priority=1),
            make_prd("PB", [b], domain="orders", priority=2),
        ]

        assert scan(prds, {"orders"}).story is b

    def test_domain_filter_sees_foreign_dependencies(self):
        a = make_story("A")
        b = make_story("B", deps=["A"])
        prds = [
            make_prd("PA", [a], domain="customers"),
            make_prd("PB", [b], domain="orders"),
        ]

        result = scan(prds, {"orders"})

        assert result.kind == ScanKind.DEADLOCK
        assert result.waiting == {"B": ["A"]}

    def test_empty_input_is_complete(self):
        assert scan([]).kind == ScanKind.ALL_COMPLETE
