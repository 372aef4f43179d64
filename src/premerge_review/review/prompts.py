"""
Prompt builders for review, merge and single-file requests.
"""

from collections.abc import Sequence

from .models import AuditContext, ReviewPart

SEPARATOR = "----------------------------------"
PART_SEPARATOR = "\n\n---\n\n"


def _audit_block(audit: AuditContext) -> list[str]:
    lines = [
        "Based on the following audit context:",
        SEPARATOR,
        "Review Context:",
        f"- Reviewer: {audit.reviewer}",
        f"- Review Time: {audit.review_time}",
        f"- Source Branch: {audit.source_branch}",
        f"- Target Branch: {audit.target_branch}",
    ]
    if audit.from_commit:
        lines.append(f"- From Commit: {audit.from_commit}")
    if audit.to_commit:
        lines.append(f"- To Commit: {audit.to_commit}")
    if audit.workspace_name:
        lines.append(f"- Workspace: {audit.workspace_name}")
    if audit.repo_url:
        lines.append(f"- Repository: {audit.repo_url}")
    lines.extend([SEPARATOR, ""])
    return lines


def create_review_prompt(
    instructions: str,
    content: str,
    *,
    audit: AuditContext | None = None,
    part_number: int | None = None,
    total_parts: int | None = None,
    output_language: str | None = None,
) -> str:
    """Build the prompt for a whole review or for one part of it."""
    is_partial = bool(part_number and total_parts)
    prompt_parts: list[str] = []

    if audit is not None:
        prompt_parts.extend(_audit_block(audit))

    prompt_parts.extend([
        "Follow these review instructions:",
        SEPARATOR,
        instructions.strip() or "(no project-specific instructions)",
        SEPARATOR,
        "",
        # An audit context means the content is a change set, not plain files
        "Review the following code changes:" if audit is not None else "Review the following code:",
        SEPARATOR,
        content,
        SEPARATOR,
        "",
    ])

    if is_partial:
        prompt_parts.extend([
            f"NOTE: This is part {part_number} of {total_parts} of a larger diff. "
            "Focus on reviewing this specific part, but keep in mind it's part of a larger change set.",
            "",
        ])

    if output_language:
        prompt_parts.extend([f"Write the review in {output_language}.", ""])

    prompt_parts.extend([
        "Provide:",
        "1. Overall assessment of the changes",
        "2. Potential issues or improvements",
        "3. Code quality feedback",
        "4. Best practices recommendations",
    ])
    if is_partial:
        prompt_parts.append("5. Note any dependencies or connections this part might have with other parts")

    return "\n".join(prompt_parts)


def format_part_segment(part: ReviewPart) -> str:
    """Heading + content for one part inside the merge prompt."""
    return f"## Part {part.part_number}/{part.total_parts}\n\n{part.content}"


def join_parts(parts: Sequence[ReviewPart]) -> str:
    """Ordered partial results joined with an explicit separator."""
    return PART_SEPARATOR.join(format_part_segment(p) for p in parts)


def create_merge_prompt(parts: Sequence[ReviewPart], instructions: str) -> str:
    """Build the prompt that merges partial reviews into one document."""
    return "\n".join([
        "Based on the following review instructions:",
        SEPARATOR,
        instructions.strip() or "(no project-specific instructions)",
        SEPARATOR,
        "",
        "I have received multiple review parts for a large code diff. "
        "Please merge these reviews into a comprehensive, cohesive final review:",
        "",
        join_parts(parts),
        "",
        "Please provide:",
        "1. A consolidated overall assessment",
        "2. All important issues and improvements (deduplicated)",
        "3. Overall code quality feedback",
        "4. Best practices recommendations",
        "5. A summary of the most critical points",
        "",
        "Make sure to:",
        "- Remove any redundant points between parts",
        "- Prioritize the most important issues",
        "- Provide a coherent narrative",
        "- Keep the final review well-structured and actionable",
    ])


def create_file_review_prompt(instructions: str, file_content: str) -> str:
    """Simple prompt for reviewing one whole file."""
    return "\n".join([
        "Review the following code:",
        SEPARATOR,
        file_content,
        SEPARATOR,
        "And follow these instructions:",
        SEPARATOR,
        instructions.strip(),
    ])
