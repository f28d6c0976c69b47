"""Tests for storyloop.prd.loader module."""

import json

import pytest

from storyloop.lib.errors import CyclicDependency, PRDError, UnknownDependency
from storyloop.lib.validate import ValidationError
from storyloop.prd.loader import apply_progress, build_prds, load_prds
from storyloop.progress.record import ProgressRecord

from conftest import prd_document


def write_prd(prd_dir, name, document):
    prd_dir.mkdir(parents=True, exist_ok=True)
    (prd_dir / name).write_text(json.dumps(document))


class TestLoadPrds:
    """Tests for load_prds()."""

    def test_loads_sorted_by_file_name(self, tmp_path):
        write_prd(tmp_path, "20-domain.json", prd_document("DOM", [{"id": "DOM-01", "title": "d"}], priority=2))
        write_prd(tmp_path, "10-found.json", prd_document(
            "FOUND", [{"id": "FOUND-01", "title": "f", "estimated_iterations": 2}], phase="foundation"))

        prds = load_prds(tmp_path)

        assert [p.id for p in prds] == ["FOUND", "DOM"]
        assert prds[0].source == "10-found.json"
        story = prds[0].stories[0]
        assert story.prd_id == "FOUND"
        assert story.is_foundation
        assert story.estimated_iterations == 2

    def test_missing_directory(self, tmp_path):
        with pytest.raises(PRDError, match="not found"):
            load_prds(tmp_path / "nope")

    def test_empty_directory_warns(self, tmp_path, caplog):
        assert load_prds(tmp_path) == []
        assert "No PRD files" in caplog.text

    def test_invalid_json(self, tmp_path):
        (tmp_path / "bad.json").write_text("{not json")
        with pytest.raises(ValidationError, match="Invalid JSON"):
            load_prds(tmp_path)

    def test_domain_defaults_to_prd_id(self, tmp_path):
        write_prd(tmp_path, "a.json", prd_document("A", [{"id": "A-01", "title": "a"}]))
        write_prd(tmp_path, "b.json", prd_document("B", [{"id": "B-01", "title": "b"}], domain="shared"))

        prds = load_prds(tmp_path)

        assert [p.domain for p in prds] == ["A", "shared"]


class TestSchema:
    """PRD documents are schema-checked."""

    def test_passes_field_rejected(self):
        doc = prd_document("P", [{"id": "P-01", "title": "t", "passes": True}])
        with pytest.raises(ValidationError, match="passes"):
            build_prds([doc])

    def test_missing_priority_rejected(self):
        doc = prd_document("P", [])
        del doc["priority"]
        with pytest.raises(ValidationError):
            build_prds([doc])

    def test_unknown_status_rejected(self):
        doc = prd_document("P", [{"id": "P-01", "title": "t", "status": "done"}])
        with pytest.raises(ValidationError):
            build_prds([doc])

    def test_zero_estimate_rejected(self):
        doc = prd_document("P", [{"id": "P-01", "title": "t", "estimated_iterations": 0}])
        with pytest.raises(ValidationError):
            build_prds([doc])

    def test_all_problems_reported_together(self):
        doc = prd_document("P", [
            {"id": "P-01", "title": "t", "passes": True},
            {"id": "P-02", "title": "u", "status": "done"},
        ])
        del doc["priority"]

        with pytest.raises(ValidationError) as exc:
            build_prds([doc])

        assert exc.value.message.startswith("3 problems")
        assert "stories.0" in exc.value.message
        assert "stories.1.status" in exc.value.message
        assert "'priority' is a required property" in exc.value.message

    def test_file_errors_name_the_file(self, tmp_path):
        doc = prd_document("P", [{"id": "P-01", "title": "t", "passes": False}])
        write_prd(tmp_path, "30-orders.json", doc)

        with pytest.raises(ValidationError, match="30-orders.json") as exc:
            load_prds(tmp_path)
        assert exc.value.path == "stories.0"

    def test_unknown_phase_only_warns(self, caplog):
        prds = build_prds([prd_document("P", [{"id": "P-01", "title": "t"}], phase="polish")])
        assert prds[0].phase == "polish"
        assert "unrecognised phase 'polish'" in caplog.text


class TestIntegrity:

    def test_duplicate_story_id(self):
        docs = [
            prd_document("A", [{"id": "S-01", "title": "a"}]),
            prd_document("B", [{"id": "S-01", "title": "b"}]),
        ]
        with pytest.raises(PRDError, match="Duplicate story id 'S-01'"):
            build_prds(docs)

    def test_duplicate_prd_id(self):
        docs = [prd_document("A", []), prd_document("A", [])]
        with pytest.raises(PRDError, match="Duplicate PRD id"):
            build_prds(docs)

    def test_unknown_dependency(self):
        docs = [prd_document("A", [{"id": "A-01", "title": "a", "dependencies": ["Z-99"]}])]
        with pytest.raises(UnknownDependency):
            build_prds(docs)

    def test_cycle(self):
        docs = [prd_document("A", [
            {"id": "A-01", "title": "a", "dependencies": ["A-02"]},
            {"id": "A-02", "title": "b", "dependencies": ["A-01"]},
        ])]
        with pytest.raises(CyclicDependency):
            build_prds(docs)


class TestApplyProgress:
    """Recorded state overrides the status authored in the PRD file."""

    def test_overlays_status_and_iterations(self, store):
        prds = build_prds([prd_document("P", [
            {"id": "P-01", "title": "a"},
            {"id": "P-02", "title": "b"},
        ])])
        record = ProgressRecord(domain="P")
        record.story("P-01").status = "complete"
        record.story("P-01").iterations_used = 2
        store.save(record)

        apply_progress(prds, store)

        assert prds[0].stories[0].status == "complete"
        assert prds[0].stories[0].iterations_used == 2
        assert prds[0].stories[1].status == "pending"

    def test_no_record_leaves_definitions(self, store):
        prds = build_prds([prd_document("P", [{"id": "P-01", "title": "a", "status": "skipped"}])])

        apply_progress(prds, store)

        assert prds[0].stories[0].status == "skipped"
