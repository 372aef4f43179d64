"""
Review instructions.

Loads project review guidelines from files inside the repository.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

MAX_INSTRUCTION_FILE_SIZE = 1024 * 1024


@dataclass
class InstructionFile:
    """One configured instruction file and whether it could be used."""

    path: str
    content: str = ""
    loaded: bool = False
    error: str | None = None


def load_instructions(
    repo_root: str | Path,
    paths: Sequence[str],
    max_bytes: int = MAX_INSTRUCTION_FILE_SIZE,
) -> list[InstructionFile]:
    """
    Load instruction files relative to a repository root.

    Missing, unreadable and oversized files are returned with
    ``loaded=False`` and the reason in ``error``.
    """
    root = Path(repo_root)
    results: list[InstructionFile] = []

    for relative in paths:
        file_path = Path(relative) if Path(relative).is_absolute() else root / relative

        if not file_path.is_file():
            results.append(InstructionFile(path=relative, error="file not found"))
            continue

        size = file_path.stat().st_size
        if size > max_bytes:
            logger.warning("Instruction file too large", path=relative, size=size, max_bytes=max_bytes)
            results.append(
                InstructionFile(path=relative, error=f"file too large ({size} > {max_bytes} bytes)")
            )
            continue

        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read instruction file", path=relative, error=str(e))
            results.append(InstructionFile(path=relative, error=str(e)))
            continue

        results.append(InstructionFile(path=relative, content=content, loaded=True))

    logger.debug(
        "Instruction files loaded",
        loaded=sum(1 for f in results if f.loaded),
        configured=len(results),
    )
    return results


def combine_instructions(files: Iterable[InstructionFile]) -> str:
    """Join the contents of loaded files with a blank line."""
    return "\n\n".join(f.content.strip() for f in files if f.loaded and f.content.strip())


def describe_instructions(files: Iterable[InstructionFile]) -> str:
    """Comma-separated list of the files that were used."""
    names = [f.path for f in files if f.loaded]
    return ", ".join(names) if names else "(none)"
