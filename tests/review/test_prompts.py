"""
Unit tests for prompt builders.
"""

from premerge_review.review.models import AuditContext, ReviewPart
from premerge_review.review.prompts import (
    PART_SEPARATOR,
    create_file_review_prompt,
    create_merge_prompt,
    create_review_prompt,
    join_parts,
)

AUDIT = AuditContext(
    reviewer="Test User",
    review_time="2024-05-01T10:00:00",
    source_branch="feature/login",
    target_branch="main",
    from_commit="abc1234",
    to_commit="def5678",
    workspace_name="shop",
    repo_url="git@example.com:team/shop.git",
)


class TestReviewPrompt:
    """Tests for create_review_prompt()."""

    def test_contains_instructions_and_content(self):
        prompt = create_review_prompt("Check naming.", "+x = 1")

        assert "Check naming." in prompt
        assert "+x = 1" in prompt
        assert "Review the following code:" in prompt
        assert "NOTE: This is part" not in prompt

    def test_audit_context_block(self):
        prompt = create_review_prompt("rules", "diff", audit=AUDIT)

        assert "- Reviewer: Test User" in prompt
        assert "- Source Branch: feature/login" in prompt
        assert "- Target Branch: main" in prompt
        assert "- From Commit: abc1234" in prompt
        assert "- Repository: git@example.com:team/shop.git" in prompt
        assert "Review the following code changes:" in prompt
        # Audit block comes first
        assert prompt.index("Reviewer") < prompt.index("rules") < prompt.index("diff")

    def test_optional_audit_fields_are_omitted(self):
        audit = AuditContext(
            reviewer="r", review_time="t", source_branch="s", target_branch="t"
        )
        prompt = create_review_prompt("rules", "diff", audit=audit)

        assert "From Commit" not in prompt
        assert "Repository" not in prompt

    def test_partial_review_note(self):
        prompt = create_review_prompt("rules", "diff", part_number=2, total_parts=5)

        assert "NOTE: This is part 2 of 5 of a larger diff." in prompt
        assert "5. Note any dependencies" in prompt

    def test_output_language(self):
        prompt = create_review_prompt("rules", "diff", output_language="German")
        assert "Write the review in German." in prompt

    def test_empty_instructions_placeholder(self):
        assert "(no project-specific instructions)" in create_review_prompt("  ", "diff")


class TestMergePrompt:
    """Tests for create_merge_prompt()."""

    def test_parts_in_order_with_separator(self):
        parts = [
            ReviewPart(part_number=1, total_parts=2, content="first findings"),
            ReviewPart(part_number=2, total_parts=2, content="second findings"),
        ]

        assert join_parts(parts) == (
            "## Part 1/2\n\nfirst findings" + PART_SEPARATOR + "## Part 2/2\n\nsecond findings"
        )

        prompt = create_merge_prompt(parts, "rules")
        assert join_parts(parts) in prompt
        assert "merge these reviews" in prompt
        assert "rules" in prompt


class TestFileReviewPrompt:
    """Tests for create_file_review_prompt()."""

    def test_file_then_instructions(self):
        prompt = create_file_review_prompt("Be strict.", "def f(): pass")

        assert prompt.index("def f(): pass") < prompt.index("Be strict.")
