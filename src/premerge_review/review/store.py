"""
Review result store.

Keeps review records keyed by a generated id: the per-part results of
multi-part reviews as they arrive, and the final merged text. Optionally
persisted to a JSON file after every change.
"""

import json
import os
import random
import string
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from .models import ReviewPart, ReviewTarget

logger = structlog.get_logger(__name__)


@dataclass
class ReviewResults:
    """Generated output of one review."""

    summary: str = ""
    instructions_used: str = ""
    content: str = ""
    is_multi_part: bool = False
    parts: list[ReviewPart] = field(default_factory=list)
    final_merged_result: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "instructions_used": self.instructions_used,
            "content": self.content,
            "is_multi_part": self.is_multi_part,
            "parts": [p.to_dict() for p in self.parts],
            "final_merged_result": self.final_merged_result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewResults":
        return cls(
            summary=data.get("summary", ""),
            instructions_used=data.get("instructions_used", ""),
            content=data.get("content", ""),
            is_multi_part=bool(data.get("is_multi_part", False)),
            parts=[ReviewPart.from_dict(p) for p in data.get("parts") or []],
            final_merged_result=data.get("final_merged_result"),
        )


@dataclass
class ReviewRecord:
    """A stored review."""

    id: str
    timestamp: datetime
    target: ReviewTarget
    results: ReviewResults

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "target": self.target.to_dict(),
            "results": self.results.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewRecord":
        timestamp = data.get("timestamp")
        return cls(
            id=data["id"],
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(),
            target=ReviewTarget.from_dict(data.get("target") or {}),
            results=ReviewResults.from_dict(data.get("results") or {}),
        )


class ReviewStore:
    """Review records keyed by generated id."""

    ID_ALPHABET = string.ascii_lowercase + string.digits

    def __init__(self, path: str | Path | None = None) -> None:
        """
        Initialize the store.

        Args:
            path: Optional JSON file to load from and persist to
        """
        self.path = Path(path) if path else None
        self._records: dict[str, ReviewRecord] = {}
        self.current_id: str | None = None
        if self.path:
            self._load()

    @classmethod
    def generate_id(cls) -> str:
        """Unique review id: ``review_<epoch ms>_<6 random chars>``."""
        suffix = "".join(random.choices(cls.ID_ALPHABET, k=6))
        return f"review_{int(time.time() * 1000)}_{suffix}"

    def create(
        self,
        target: ReviewTarget,
        summary: str = "",
        instructions_used: str = "",
        is_multi_part: bool = False,
    ) -> str:
        """Create a review record and make it current."""
        review_id = self.generate_id()
        self._records[review_id] = ReviewRecord(
            id=review_id,
            timestamp=datetime.now(),
            target=target,
            results=ReviewResults(
                summary=summary,
                instructions_used=instructions_used,
                is_multi_part=is_multi_part,
            ),
        )
        self.current_id = review_id
        self._save()
        logger.info("Review record created", review_id=review_id)
        return review_id

    def store_part(self, review_id: str, part: ReviewPart) -> None:
        """Append one part result of a multi-part review."""
        record = self._records.get(review_id)
        if record is None:
            logger.error("Review not found", review_id=review_id)
            return

        record.results.parts.append(part)
        record.results.is_multi_part = True
        self._save()
        logger.info(
            "Review part stored",
            review_id=review_id,
            part=part.part_number,
            total=part.total_parts,
        )

    def store_final_merged_result(self, review_id: str, merged: str) -> None:
        """Store the merged text of a multi-part review."""
        record = self._records.get(review_id)
        if record is None:
            logger.error("Review not found", review_id=review_id)
            return

        record.results.final_merged_result = merged
        self._save()
        logger.info("Final merged result stored", review_id=review_id)

    def store_content(self, review_id: str, content: str) -> None:
        """Store the text of a single-request review."""
        record = self._records.get(review_id)
        if record is None:
            logger.error("Review not found", review_id=review_id)
            return

        record.results.content = content
        self._save()

    def get(self, review_id: str) -> ReviewRecord | None:
        return self._records.get(review_id)

    def current(self) -> ReviewRecord | None:
        if not self.current_id:
            return None
        return self._records.get(self.current_id)

    def all(self) -> list[ReviewRecord]:
        """All records, newest first."""
        return sorted(self._records.values(), key=lambda r: r.timestamp, reverse=True)

    def latest(self) -> ReviewRecord | None:
        records = self.all()
        return records[0] if records else None

    def has_results(self) -> bool:
        return bool(self._records)

    def delete(self, review_id: str) -> bool:
        """Delete one record. Returns whether it existed."""
        deleted = self._records.pop(review_id, None) is not None
        if self.current_id == review_id:
            self.current_id = None
        if deleted:
            self._save()
        return deleted

    def clear(self) -> None:
        self._records.clear()
        self.current_id = None
        self._save()
        logger.info("All review results cleared")

    def format_for_display(self, record: ReviewRecord) -> str:
        """Markdown report for a stored review."""
        target = record.target
        results = record.results

        lines = [
            "# Code Review Result",
            "",
            f"**Review ID:** {record.id}",
            f"**Timestamp:** {record.timestamp:%Y-%m-%d %H:%M:%S}",
            "",
        ]

        if target.files_label:
            lines.append(f"**Files:** {target.files_label}")
        else:
            if target.selected_commit:
                compare_info = f"from commit `{target.selected_commit[:8]}`"
            else:
                compare_info = f"compared to `{target.base_branch}`"
            lines.append(f"**Branch:** `{target.current_branch}` {compare_info}")
            lines.append(f"**Files Changed:** {len(target.diff_summary.files)}")
            lines.append(
                f"**Changes:** +{target.diff_summary.insertions} -{target.diff_summary.deletions}"
            )
        lines.extend([f"**Instructions Used:** {results.instructions_used}", ""])

        if results.is_multi_part and results.parts:
            lines.extend([
                "## Multi-Part Review",
                "",
                f"This review was processed in {len(results.parts)} parts:",
                "",
            ])
            for part in results.parts:
                lines.extend([
                    f"### Part {part.part_number}/{part.total_parts}",
                    f"*Processed at: {part.timestamp:%Y-%m-%d %H:%M:%S}*",
                    "",
                    part.content,
                    "",
                    "---",
                    "",
                ])
            if results.final_merged_result:
                lines.extend(["## Final Merged Review", "", results.final_merged_result])
        else:
            lines.extend(["## Review Content", "", results.content])

        return "\n".join(lines)

    def _save(self) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [r.to_dict() for r in self._records.values()]

        # Write beside the target, then atomically replace it
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _load(self) -> None:
        if not self.path or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load review history", path=str(self.path), error=str(e))
            self._set_aside()
            return

        if not isinstance(data, list):
            logger.error("Review history is not a list", path=str(self.path), type=type(data).__name__)
            self._set_aside()
            return

        self._records = {}
        skipped = 0
        for item in data:
            try:
                if not isinstance(item, dict):
                    raise TypeError(f"expected an object, got {type(item).__name__}")
                record = ReviewRecord.from_dict(item)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                skipped += 1
                logger.warning("Skipping malformed review record", path=str(self.path), error=repr(e))
                continue
            self._records[record.id] = record
        logger.debug(
            "Review history loaded",
            path=str(self.path),
            count=len(self._records),
            skipped=skipped,
        )

    def _set_aside(self) -> None:
        """Rename an unreadable history file to ``<name>.corrupt``."""
        backup = self.path.with_name(f"{self.path.name}.corrupt")
        try:
            os.replace(self.path, backup)
        except OSError as e:
            logger.error("Failed to set aside review history", path=str(self.path), error=str(e))
            return
        logger.warning("Unreadable review history moved aside", backup=str(backup))
