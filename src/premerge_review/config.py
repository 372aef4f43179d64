"""Configuration for premerge-review.

Every setting can be overridden from a ``PREMERGE_*`` environment variable.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from premerge_review.review.chunker import TokenBudget

DEFAULT_INSTRUCTION_FILES = [
    ".github/instructions.md",
    ".github/review-instructions.md",
    "docs/review-guidelines.md",
]


def _optional_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value else None


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ReviewConfig:
    """Review pipeline configuration."""

    # Model selection
    model: str | None = None
    default_family: str = "gpt-4o"
    probe_models: bool = True
    probe_timeout: float = 10.0
    max_alternates: int = 1

    # Token budget
    max_tokens_per_part: int | None = None  # explicit override
    default_max_tokens_per_part: int = 8000
    chars_per_token: int = 4
    prompt_reserve_ratio: float = 0.8

    # Prompting
    output_language: str | None = None
    instruction_files: list[str] = field(default_factory=lambda: list(DEFAULT_INSTRUCTION_FILES))
    max_instruction_file_size: int = 1024 * 1024

    # Backend
    api_base_url: str | None = None
    api_key: str | None = None
    request_timeout: float = 120.0

    # Review history (None keeps it in memory only)
    store_path: Path | None = None

    @classmethod
    def from_env(cls) -> "ReviewConfig":
        """Create configuration from environment variables."""
        store_path = os.getenv("PREMERGE_STORE_PATH")

        return cls(
            model=os.getenv("PREMERGE_MODEL") or None,
            default_family=os.getenv("PREMERGE_DEFAULT_FAMILY", "gpt-4o"),
            probe_models=_flag("PREMERGE_PROBE_MODELS", True),
            probe_timeout=float(os.getenv("PREMERGE_PROBE_TIMEOUT", "10.0")),
            max_alternates=int(os.getenv("PREMERGE_MAX_ALTERNATES", "1")),
            max_tokens_per_part=_optional_int("PREMERGE_MAX_TOKENS_PER_PART"),
            default_max_tokens_per_part=int(os.getenv("PREMERGE_DEFAULT_MAX_TOKENS_PER_PART", "8000")),
            chars_per_token=int(os.getenv("PREMERGE_CHARS_PER_TOKEN", "4")),
            prompt_reserve_ratio=float(os.getenv("PREMERGE_PROMPT_RESERVE_RATIO", "0.8")),
            output_language=os.getenv("PREMERGE_OUTPUT_LANGUAGE") or None,
            instruction_files=_list("PREMERGE_INSTRUCTION_FILES", DEFAULT_INSTRUCTION_FILES),
            max_instruction_file_size=int(
                os.getenv("PREMERGE_MAX_INSTRUCTION_FILE_SIZE", str(1024 * 1024))
            ),
            api_base_url=os.getenv("PREMERGE_API_BASE_URL") or os.getenv("OPENAI_BASE_URL"),
            api_key=os.getenv("PREMERGE_API_KEY") or os.getenv("OPENAI_API_KEY"),
            request_timeout=float(os.getenv("PREMERGE_REQUEST_TIMEOUT", "120.0")),
            store_path=Path(store_path) if store_path else None,
        )

    def token_budget(self) -> "TokenBudget":
        from premerge_review.review.chunker import TokenBudget

        return TokenBudget(
            chars_per_token=self.chars_per_token,
            prompt_reserve_ratio=self.prompt_reserve_ratio,
        )
