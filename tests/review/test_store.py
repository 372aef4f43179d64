"""
Unit tests for ReviewStore.
"""

import json
import re
from datetime import datetime, timedelta

import pytest

from premerge_review.review.models import DiffSummary, ReviewPart, ReviewTarget
from premerge_review.review.store import ReviewStore


def branch_target() -> ReviewTarget:
    return ReviewTarget(
        current_branch="feature/login",
        base_branch="main",
        diff_summary=DiffSummary(files=["src/auth.py", "tests/test_auth.py"], insertions=12, deletions=3),
    )


class TestReviewStore:
    """Tests for in-memory record handling."""

    def test_generated_id_format(self):
        review_id = ReviewStore.generate_id()
        assert re.fullmatch(r"review_\d+_[a-z0-9]{6}", review_id)

    def test_create_makes_record_current(self):
        store = ReviewStore()
        review_id = store.create(branch_target(), instructions_used=".github/instructions.md")

        assert store.current().id == review_id
        assert store.get(review_id).results.instructions_used == ".github/instructions.md"
        assert store.has_results()

    def test_store_parts_in_order(self):
        store = ReviewStore()
        review_id = store.create(branch_target())

        store.store_part(review_id, ReviewPart(part_number=1, total_parts=2, content="one"))
        store.store_part(review_id, ReviewPart(part_number=2, total_parts=2, content="two"))
        store.store_final_merged_result(review_id, "merged")

        results = store.get(review_id).results
        assert results.is_multi_part
        assert [p.content for p in results.parts] == ["one", "two"]
        assert results.final_merged_result == "merged"

    def test_unknown_id_is_ignored(self):
        store = ReviewStore()

        store.store_part("review_0_nope00", ReviewPart(part_number=1, total_parts=1, content="x"))
        store.store_content("review_0_nope00", "x")

        assert not store.has_results()

    def test_all_is_newest_first(self):
        store = ReviewStore()
        older = store.create(branch_target())
        newer = store.create(branch_target())
        store.get(older).timestamp = datetime.now() - timedelta(hours=1)

        assert [r.id for r in store.all()] == [newer, older]
        assert store.latest().id == newer

    def test_delete_and_clear(self):
        store = ReviewStore()
        first = store.create(branch_target())
        second = store.create(branch_target())

        assert store.delete(second)
        assert not store.delete(second)
        assert store.current() is None
        assert store.get(first) is not None

        store.clear()
        assert not store.has_results()


class TestPersistence:
    """Tests for the JSON history file."""

    def test_records_survive_reload(self, tmp_path):
        path = tmp_path / "history" / "reviews.json"
        store = ReviewStore(path)
        review_id = store.create(branch_target())
        store.store_part(review_id, ReviewPart(part_number=1, total_parts=1, content="partial"))

        reloaded = ReviewStore(path)

        record = reloaded.get(review_id)
        assert record.target.current_branch == "feature/login"
        assert record.target.diff_summary.insertions == 12
        assert record.results.parts[0].content == "partial"

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "reviews.json"
        path.write_text("{not json")

        assert not ReviewStore(path).has_results()

    def test_corrupt_file_is_kept_aside(self, tmp_path):
        path = tmp_path / "reviews.json"
        path.write_text("{not json")

        store = ReviewStore(path)
        store.create(branch_target())

        assert (tmp_path / "reviews.json.corrupt").read_text() == "{not json"
        assert len(json.loads(path.read_text())) == 1

    def test_malformed_records_are_skipped(self, tmp_path):
        path = tmp_path / "reviews.json"
        store = ReviewStore(path)
        good_id = store.create(branch_target())
        data = json.loads(path.read_text())
        data.extend([
            {"timestamp": "2024-01-01T00:00:00"},
            {"id": "review_1_abcdef", "timestamp": "not a date"},
            "just a string",
        ])
        path.write_text(json.dumps(data))

        reloaded = ReviewStore(path)

        assert [r.id for r in reloaded.all()] == [good_id]

    def test_non_list_file_starts_empty(self, tmp_path):
        path = tmp_path / "reviews.json"
        path.write_text('{"id": "review_1_abcdef"}')

        assert not ReviewStore(path).has_results()
        assert (tmp_path / "reviews.json.corrupt").exists()

    def test_save_leaves_no_temporary_files(self, tmp_path):
        path = tmp_path / "reviews.json"
        store = ReviewStore(path)
        review_id = store.create(branch_target())
        store.store_content(review_id, "done")

        assert [p.name for p in tmp_path.iterdir()] == ["reviews.json"]

    def test_failed_save_keeps_previous_file(self, tmp_path, monkeypatch):
        path = tmp_path / "reviews.json"
        store = ReviewStore(path)
        review_id = store.create(branch_target())
        before = path.read_text()

        def broken_dump(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(json, "dump", broken_dump)
        with pytest.raises(OSError, match="disk full"):
            store.store_content(review_id, "lost")

        assert path.read_text() == before
        assert [p.name for p in tmp_path.iterdir()] == ["reviews.json"]

    def test_written_after_each_part(self, tmp_path):
        path = tmp_path / "reviews.json"
        store = ReviewStore(path)
        review_id = store.create(branch_target())
        store.store_part(review_id, ReviewPart(part_number=1, total_parts=3, content="first"))

        data = json.loads(path.read_text())
        assert data[0]["results"]["parts"][0]["content"] == "first"


class TestFormatForDisplay:
    """Tests for the markdown report."""

    def test_multi_part_report(self):
        store = ReviewStore()
        review_id = store.create(branch_target(), instructions_used="docs/review-guidelines.md")
        store.store_part(review_id, ReviewPart(part_number=1, total_parts=2, content="alpha"))
        store.store_part(review_id, ReviewPart(part_number=2, total_parts=2, content="beta"))
        store.store_final_merged_result(review_id, "final words")

        report = store.format_for_display(store.get(review_id))

        assert "**Branch:** `feature/login` compared to `main`" in report
        assert "**Files Changed:** 2" in report
        assert "**Changes:** +12 -3" in report
        assert "This review was processed in 2 parts:" in report
        assert report.index("### Part 1/2") < report.index("### Part 2/2") < report.index("## Final Merged Review")
        assert report.endswith("final words")

    def test_single_review_report(self):
        store = ReviewStore()
        target = ReviewTarget(
            current_branch="dev",
            base_branch="main",
            selected_commit="0123456789abcdef",
        )
        review_id = store.create(target)
        store.store_content(review_id, "all good")

        report = store.format_for_display(store.get(review_id))

        assert "from commit `01234567`" in report
        assert "## Review Content\n\nall good" in report

    def test_file_review_report(self):
        store = ReviewStore()
        review_id = store.create(ReviewTarget(files_label="a.py, b.py"))

        report = store.format_for_display(store.get(review_id))

        assert "**Files:** a.py, b.py" in report
        assert "**Branch:**" not in report
