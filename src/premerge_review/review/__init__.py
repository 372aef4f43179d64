"""
Review Pipeline Module

Diff parsing, budget-aware chunking, model resolution and the map/reduce
review orchestrator.
"""

from .backend import GenerationBackend, collect_text
from .chunker import (
    Chunker,
    FileSectionDetector,
    GitDiffDetector,
    SectionDetector,
    TokenBudget,
    build_file_review_content,
)
from .diff_parser import DiffParser, parse_diff
from .errors import (
    BackendError,
    ModelInaccessibleError,
    ModelUnresolvedError,
    NoPartsProcessedError,
    ReviewError,
)
from .events import ProgressEmitter, ProgressEvent, ReviewPhase
from .model_resolver import ModelResolver
from .models import (
    AuditContext,
    Chunk,
    DiffFile,
    DiffHunk,
    DiffLine,
    DiffSummary,
    LineType,
    ResolvedModel,
    ReviewOutcome,
    ReviewPart,
    ReviewTarget,
)
from .orchestrator import ReviewOrchestrator, ReviewSession
from .retry import RetryPolicy
from .store import ReviewRecord, ReviewStore

__all__ = [
    "GenerationBackend",
    "collect_text",
    "Chunker",
    "FileSectionDetector",
    "GitDiffDetector",
    "SectionDetector",
    "TokenBudget",
    "build_file_review_content",
    "DiffParser",
    "parse_diff",
    "BackendError",
    "ModelInaccessibleError",
    "ModelUnresolvedError",
    "NoPartsProcessedError",
    "ReviewError",
    "ProgressEmitter",
    "ProgressEvent",
    "ReviewPhase",
    "ModelResolver",
    "AuditContext",
    "Chunk",
    "DiffFile",
    "DiffHunk",
    "DiffLine",
    "DiffSummary",
    "LineType",
    "ResolvedModel",
    "ReviewOutcome",
    "ReviewPart",
    "ReviewTarget",
    "ReviewOrchestrator",
    "ReviewSession",
    "RetryPolicy",
    "ReviewRecord",
    "ReviewStore",
]
