"""
Data models for the review pipeline.

Defines the structured diff model produced by the parser and the value
objects passed between chunker, resolver and orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class LineType(str, Enum):
    """Kind of a line inside a hunk."""

    ADDITION = "addition"
    DELETION = "deletion"
    CONTEXT = "context"


@dataclass
class DiffLine:
    """A single classified line of a hunk."""

    type: LineType
    content: str
    old_line_no: int | None = None  # None for additions
    new_line_no: int | None = None  # None for deletions


@dataclass
class DiffHunk:
    """A single hunk within a file diff."""

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    context: str = ""
    lines: list[DiffLine] = field(default_factory=list)

    def count(self, line_type: LineType) -> int:
        """Number of lines of the given type."""
        return sum(1 for line in self.lines if line.type == line_type)


@dataclass
class DiffFile:
    """Diff for a single file."""

    old_path: str
    new_path: str
    hunks: list[DiffHunk] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0
    is_new: bool = False
    is_deleted: bool = False
    is_binary: bool = False

    @property
    def path(self) -> str:
        """Path to show for this file (old path once the file is gone)."""
        if self.is_deleted:
            return self.old_path or self.new_path
        return self.new_path or self.old_path

    @property
    def status(self) -> str:
        """added, deleted, renamed or modified."""
        if self.is_new:
            return "added"
        if self.is_deleted:
            return "deleted"
        if self.old_path != self.new_path:
            return "renamed"
        return "modified"

    @property
    def total_lines_changed(self) -> int:
        """Total lines affected."""
        return self.additions + self.deletions


@dataclass
class DiffSummary:
    """File/insertion/deletion summary of a change set."""

    files: list[str] = field(default_factory=list)
    insertions: int = 0
    deletions: int = 0

    @classmethod
    def from_files(cls, files: list[DiffFile]) -> "DiffSummary":
        """Derive a summary from parsed file records."""
        return cls(
            files=[f.path for f in files],
            insertions=sum(f.additions for f in files),
            deletions=sum(f.deletions for f in files),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": list(self.files),
            "insertions": self.insertions,
            "deletions": self.deletions,
        }


@dataclass
class ReviewTarget:
    """What a review covers: branches/commit for diffs, names for file reviews."""

    current_branch: str = ""
    base_branch: str = ""
    selected_commit: str | None = None
    diff_summary: DiffSummary = field(default_factory=DiffSummary)
    files_label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_branch": self.current_branch,
            "base_branch": self.base_branch,
            "selected_commit": self.selected_commit,
            "diff_summary": self.diff_summary.to_dict(),
            "files_label": self.files_label,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewTarget":
        summary = data.get("diff_summary") or {}
        return cls(
            current_branch=data.get("current_branch", ""),
            base_branch=data.get("base_branch", ""),
            selected_commit=data.get("selected_commit"),
            diff_summary=DiffSummary(
                files=list(summary.get("files", [])),
                insertions=int(summary.get("insertions", 0)),
                deletions=int(summary.get("deletions", 0)),
            ),
            files_label=data.get("files_label"),
        )


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of review content."""

    text: str
    index: int
    total: int

    @property
    def number(self) -> int:
        """1-based position, as shown in prompts."""
        return self.index + 1


@dataclass(frozen=True)
class ReviewPart:
    """Backend output for exactly one chunk."""

    part_number: int
    total_parts: int
    content: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "part_number": self.part_number,
            "total_parts": self.total_parts,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewPart":
        timestamp = data.get("timestamp")
        return cls(
            part_number=int(data["part_number"]),
            total_parts=int(data["total_parts"]),
            content=data.get("content", ""),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(),
        )


@dataclass(frozen=True)
class ResolvedModel:
    """A concrete backend model and its input capacity."""

    id: str
    family: str = ""
    max_input_tokens: int | None = None
    is_available: bool = True
    name: str | None = None
    vendor: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass
class AuditContext:
    """Who/what/when metadata included in review prompts."""

    reviewer: str
    review_time: str
    source_branch: str
    target_branch: str
    from_commit: str | None = None
    to_commit: str | None = None
    workspace_name: str | None = None
    repo_url: str | None = None


@dataclass
class ReviewOutcome:
    """Result of one review session."""

    review_id: str
    text: str
    model: ResolvedModel
    parts: list[ReviewPart] = field(default_factory=list)
    is_multi_part: bool = False
    is_partial: bool = False
    total_chunks: int = 1
    failed_parts: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "review_id": self.review_id,
            "text": self.text,
            "model": self.model.id,
            "parts": [p.to_dict() for p in self.parts],
            "is_multi_part": self.is_multi_part,
            "is_partial": self.is_partial,
            "total_chunks": self.total_chunks,
            "failed_parts": list(self.failed_parts),
        }
