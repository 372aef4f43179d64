"""
Review Content Chunker

Splits large review content into parts that fit a model's input budget.
Keeps file sections together whenever possible and only falls back to
line-level splitting for sections that are too large on their own.
"""

import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import structlog

from .models import Chunk

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TokenBudget:
    """Character/token conversion used to size review parts."""

    chars_per_token: float = 4
    prompt_reserve_ratio: float = 0.8  # share of the model input left for content

    def __post_init__(self) -> None:
        if self.chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        if not 0 < self.prompt_reserve_ratio <= 1:
            raise ValueError("prompt_reserve_ratio must be in (0, 1]")

    def estimate_tokens(self, text: str) -> int:
        """Estimate token count for text."""
        return math.ceil(len(text) / self.chars_per_token)

    def usable_tokens(self, max_input_tokens: int) -> int:
        """Tokens available for content once prompt scaffolding is reserved."""
        return math.floor(max_input_tokens * self.prompt_reserve_ratio)

    def to_chars(self, tokens: int) -> int:
        """Character budget for a token budget."""
        return max(1, int(tokens * self.chars_per_token))


@runtime_checkable
class SectionDetector(Protocol):
    """Finds the natural section boundaries of a content shape."""

    name: str

    def detect(self, text: str) -> bool:
        """Whether the text has this detector's shape."""
        ...

    def split(self, text: str) -> list[str]:
        """Split text into ordered blocks, each starting at a boundary."""
        ...


class GitDiffDetector:
    """Sections start at ``diff --git`` file headers."""

    name = "git-diff"
    MARKER = "diff --git"
    PATTERN = re.compile(r"^diff --git", re.MULTILINE)

    def detect(self, text: str) -> bool:
        return bool(self.PATTERN.search(text))

    def split(self, text: str) -> list[str]:
        blocks = self.PATTERN.split(text)
        # Reattach the consumed marker to every block after the first
        return [blocks[0]] + [self.MARKER + block for block in blocks[1:]]


class FileSectionDetector:
    """Sections start at ``file: <name>`` followed by a ``-------`` line."""

    name = "file-sections"
    PATTERN = re.compile(r"^file: .+\n-------\n", re.MULTILINE)
    BOUNDARY = re.compile(r"(?=^file: .+\n-------\n)", re.MULTILINE)

    def detect(self, text: str) -> bool:
        return bool(self.PATTERN.search(text))

    def split(self, text: str) -> list[str]:
        return self.BOUNDARY.split(text)


def default_detectors() -> list[SectionDetector]:
    """Detectors tried in order; the first one that matches wins."""
    return [FileSectionDetector(), GitDiffDetector()]


def build_file_review_content(files: Iterable[tuple[str, str]]) -> str:
    """Render (name, content) pairs as ``file: name`` sections."""
    sections = []
    for name, content in files:
        if not content.endswith("\n"):
            content += "\n"
        sections.append(f"file: {name}\n-------\n{content}")
    return "\n".join(sections)


class Chunker:
    """Split review content into budget-sized chunks."""

    def __init__(self, detectors: Sequence[SectionDetector] | None = None):
        """
        Initialize chunker.

        Args:
            detectors: Section detectors in priority order. Defaults to
                file sections, then git diff headers.
        """
        self.detectors = list(detectors) if detectors is not None else default_detectors()
        self.fallback_detector: SectionDetector = GitDiffDetector()

    def select_detector(self, text: str) -> SectionDetector:
        """Pick the detector for this content."""
        for detector in self.detectors:
            if detector.detect(text):
                return detector
        return self.fallback_detector

    def split(self, text: str, max_chars: int) -> list[str]:
        """
        Split text into chunks of at most max_chars characters.

        Strategy:
        1. Pack whole sections greedily
        2. Re-split any chunk that is still too large line by line
        3. A single line over budget becomes its own chunk
        """
        if max_chars < 1:
            raise ValueError(f"max_chars must be >= 1, got {max_chars}")

        detector = self.select_detector(text)
        blocks = detector.split(text)
        packed = self._pack(blocks, max_chars)

        chunks: list[str] = []
        for part in packed:
            if len(part) <= max_chars:
                chunks.append(part)
            else:
                chunks.extend(self.split_lines(part, max_chars))

        logger.debug(
            "Content chunked",
            detector=detector.name,
            blocks=len(blocks),
            chunks=len(chunks),
            max_chars=max_chars,
        )
        return [c for c in chunks if c.strip()]

    def chunk(self, text: str, max_chars: int) -> list[Chunk]:
        """Split text into numbered Chunk objects."""
        parts = self.split(text, max_chars)
        return [Chunk(text=part, index=i, total=len(parts)) for i, part in enumerate(parts)]

    def split_lines(self, text: str, max_chars: int) -> list[str]:
        """Greedy line-level split for a section larger than the budget."""
        chunks = self._pack(text.split("\n"), max_chars)

        for chunk in chunks:
            if len(chunk) > max_chars:
                logger.warning(
                    "Single line exceeds chunk budget",
                    length=len(chunk),
                    max_chars=max_chars,
                )
        return chunks

    def _pack(self, pieces: Iterable[str], max_chars: int) -> list[str]:
        """Join pieces with newlines while the result stays within budget."""
        chunks: list[str] = []
        current = ""

        for piece in pieces:
            if current and len(current) + 1 + len(piece) > max_chars:
                chunks.append(current.strip())
                current = piece
            elif current:
                current += "\n" + piece
            else:
                current = piece

        if current.strip():
            chunks.append(current.strip())

        return [c for c in chunks if c]
