"""
Review Orchestrator

Map/reduce review pipeline:
1. Resolve the model and the per-part token budget
2. Content that fits: one request, no merge
3. Otherwise: chunk, review each part in order, then merge the parts
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from premerge_review.config import ReviewConfig

from .backend import GenerationBackend
from .chunker import Chunker
from .errors import NoPartsProcessedError
from .events import ProgressEmitter, ProgressEvent, ProgressHandler, ReviewPhase
from .model_resolver import ModelResolver
from .models import AuditContext, Chunk, ResolvedModel, ReviewOutcome, ReviewPart, ReviewTarget
from .prompts import create_file_review_prompt, create_merge_prompt, create_review_prompt
from .retry import RetryPolicy
from .store import ReviewStore

logger = structlog.get_logger(__name__)


@dataclass
class ReviewSession:
    """State owned by exactly one review call."""

    emitter: ProgressEmitter
    requested_model: str | None = None
    review_id: str | None = None
    phase: ReviewPhase = ReviewPhase.IDLE
    model: ResolvedModel | None = None
    registry: list[ResolvedModel] = field(default_factory=list)
    parts: list[ReviewPart] = field(default_factory=list)
    failed_parts: list[int] = field(default_factory=list)
    total_chunks: int = 1
    cancelled: bool = False

    async def transition(
        self,
        phase: ReviewPhase,
        message: str,
        part_number: int | None = None,
        total_parts: int | None = None,
    ) -> None:
        self.phase = phase
        await self.emitter.emit(
            ProgressEvent(
                phase=phase,
                message=message,
                review_id=self.review_id,
                part_number=part_number,
                total_parts=total_parts,
            )
        )


class ReviewOrchestrator:
    """
    Runs reviews against a generation backend.

    Holds no per-review state: every call to review() builds its own
    ReviewSession, so concurrent reviews never share parts.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        config: ReviewConfig | None = None,
        store: ReviewStore | None = None,
        chunker: Chunker | None = None,
        handlers: list[ProgressHandler] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            backend: Generation backend
            config: Review configuration (defaults to ReviewConfig())
            store: Where parts and results are recorded
            chunker: Content chunker (defaults to file sections, then git diffs)
            handlers: Async progress handlers subscribed to every session
        """
        self.backend = backend
        self.config = config or ReviewConfig()
        self.store = store or ReviewStore(self.config.store_path)
        self.chunker = chunker or Chunker()
        self.budget = self.config.token_budget()
        self.resolver = ModelResolver(
            backend,
            default_family=self.config.default_family,
            probe=self.config.probe_models,
            probe_timeout=self.config.probe_timeout,
        )
        self.retry = RetryPolicy(backend, max_alternates=self.config.max_alternates)
        self._handlers: list[ProgressHandler] = list(handlers or [])

    def subscribe(self, handler: ProgressHandler) -> Callable[[], None]:
        """Subscribe a progress handler for all later sessions."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def part_token_budget(self, model: ResolvedModel) -> int:
        """Tokens of content allowed in one request to this model."""
        if self.config.max_tokens_per_part:
            return self.config.max_tokens_per_part
        if model.max_input_tokens:
            return self.budget.usable_tokens(model.max_input_tokens)
        return self.config.default_max_tokens_per_part

    async def review(
        self,
        content: str,
        instructions: str = "",
        *,
        audit: AuditContext | None = None,
        requested_model: str | None = None,
        cancel: asyncio.Event | None = None,
        review_target: ReviewTarget | None = None,
        instructions_used: str = "",
    ) -> ReviewOutcome:
        """
        Review content, splitting it into parts when it exceeds the budget.

        Args:
            content: Unified diff or ``file:`` sectioned text
            instructions: Project review instructions
            audit: Who/what/when block added to every review prompt
            requested_model: Preferred model id (defaults to config.model)
            cancel: Set to stop before the next part; collected parts are merged
            review_target: What is being reviewed, for the stored record
            instructions_used: Label of the instruction sources, for the stored record

        Returns:
            ReviewOutcome with the final text and the ordered parts

        Raises:
            ModelUnresolvedError: If the backend reports no models
            NoPartsProcessedError: If no part produced a result
        """
        return await self._run(
            self._new_session(requested_model),
            content,
            instructions,
            audit=audit,
            cancel=cancel,
            review_target=review_target,
            instructions_used=instructions_used,
            whole_file=False,
        )

    async def review_file(
        self,
        file_content: str,
        instructions: str = "",
        *,
        requested_model: str | None = None,
        cancel: asyncio.Event | None = None,
        review_target: ReviewTarget | None = None,
        instructions_used: str = "",
    ) -> ReviewOutcome:
        """
        Review whole-file content with the plain file prompt.

        Content over the part budget is split at ``file:`` section boundaries
        and merged, exactly as review() does.
        """
        return await self._run(
            self._new_session(requested_model),
            file_content,
            instructions,
            audit=None,
            cancel=cancel,
            review_target=review_target,
            instructions_used=instructions_used,
            whole_file=True,
        )

    def _new_session(self, requested_model: str | None) -> ReviewSession:
        return ReviewSession(
            emitter=ProgressEmitter(self._handlers),
            requested_model=requested_model or self.config.model,
        )

    async def _run(
        self,
        session: ReviewSession,
        content: str,
        instructions: str,
        *,
        audit: AuditContext | None,
        cancel: asyncio.Event | None,
        review_target: ReviewTarget | None,
        instructions_used: str,
        whole_file: bool,
    ) -> ReviewOutcome:
        try:
            budget = await self._prepare(session)
            session.review_id = self.store.create(
                review_target or ReviewTarget(),
                summary=f"Model: {session.model.display_name}",
                instructions_used=instructions_used,
            )

            if self.budget.estimate_tokens(content) <= budget:
                if whole_file:
                    prompt = create_file_review_prompt(instructions, content)
                else:
                    prompt = create_review_prompt(
                        instructions,
                        content,
                        audit=audit,
                        output_language=self.config.output_language,
                    )
                text = await self._single_shot(session, prompt, cancel)
            else:
                if whole_file:
                    logger.info("File content exceeds part budget, using multi-part review", budget=budget)
                text = await self._map_reduce(session, content, instructions, audit, budget, cancel)
        except Exception as e:
            await session.transition(ReviewPhase.FAILED, str(e))
            raise

        await session.transition(ReviewPhase.DONE, "Review complete")
        return self._outcome(session, text)

    async def _prepare(self, session: ReviewSession) -> int:
        """Resolve the session's model and return its part budget."""
        await session.transition(ReviewPhase.RESOLVING, "Resolving model")

        session.registry = await self.backend.list_models()
        session.model = await self.resolver.resolve(session.requested_model, session.registry)

        budget = self.part_token_budget(session.model)
        logger.info(
            "Model resolved",
            model=session.model.id,
            requested=session.requested_model,
            max_input_tokens=session.model.max_input_tokens,
            part_budget=budget,
        )
        return budget

    async def _generate(
        self,
        session: ReviewSession,
        prompt: str,
        cancel: asyncio.Event | None,
    ) -> str:
        return await self.retry.generate(
            prompt,
            session.model,
            registry=session.registry,
            requested_id=session.requested_model,
            cancel=cancel,
        )

    async def _single_shot(
        self,
        session: ReviewSession,
        prompt: str,
        cancel: asyncio.Event | None,
    ) -> str:
        await session.transition(
            ReviewPhase.SINGLE_SHOT, f"Reviewing with {session.model.display_name}"
        )

        if cancel is not None and cancel.is_set():
            session.cancelled = True
            raise NoPartsProcessedError("Review cancelled before the request was sent")

        text = await self._generate(session, prompt, cancel)
        session.cancelled = cancel is not None and cancel.is_set()
        self.store.store_content(session.review_id, text)
        return text

    async def _map_reduce(
        self,
        session: ReviewSession,
        content: str,
        instructions: str,
        audit: AuditContext | None,
        budget: int,
        cancel: asyncio.Event | None,
    ) -> str:
        max_chars = self.budget.to_chars(budget)
        chunks = self.chunker.chunk(content, max_chars)
        session.total_chunks = len(chunks)

        await session.transition(
            ReviewPhase.CHUNKING,
            f"Content split into {len(chunks)} parts",
            total_parts=len(chunks),
        )
        logger.info(
            "Starting multi-part review",
            review_id=session.review_id,
            parts=len(chunks),
            max_chars=max_chars,
        )

        for chunk in chunks:
            if cancel is not None and cancel.is_set():
                session.cancelled = True
                logger.info(
                    "Review cancelled",
                    review_id=session.review_id,
                    completed=len(session.parts),
                    total=len(chunks),
                )
                break
            await self._review_chunk(session, chunk, instructions, audit, cancel)

        if not session.parts:
            raise NoPartsProcessedError(
                f"No review parts were processed successfully ({len(chunks)} attempted)"
            )

        await session.transition(
            ReviewPhase.MERGING,
            f"Merging {len(session.parts)} review parts",
            total_parts=len(chunks),
        )
        # Merge even after cancellation so collected parts are not lost
        merged = await self._generate(session, create_merge_prompt(session.parts, instructions), None)
        self.store.store_final_merged_result(session.review_id, merged)
        return merged

    async def _review_chunk(
        self,
        session: ReviewSession,
        chunk: Chunk,
        instructions: str,
        audit: AuditContext | None,
        cancel: asyncio.Event | None,
    ) -> None:
        await session.transition(
            ReviewPhase.PER_CHUNK_REVIEW,
            f"Reviewing part {chunk.number} of {chunk.total}",
            part_number=chunk.number,
            total_parts=chunk.total,
        )

        prompt = create_review_prompt(
            instructions,
            chunk.text,
            audit=audit,
            part_number=chunk.number,
            total_parts=chunk.total,
            output_language=self.config.output_language,
        )

        try:
            text = await self._generate(session, prompt, cancel)
        except Exception as e:
            logger.error(
                "Review part failed",
                review_id=session.review_id,
                part=chunk.number,
                total=chunk.total,
                error=str(e),
            )
            session.failed_parts.append(chunk.number)
            return

        if not text.strip():
            logger.warning("Empty review part", review_id=session.review_id, part=chunk.number)
            session.failed_parts.append(chunk.number)
            return

        part = ReviewPart(part_number=chunk.number, total_parts=chunk.total, content=text)
        session.parts.append(part)
        self.store.store_part(session.review_id, part)

    def _outcome(self, session: ReviewSession, text: str) -> ReviewOutcome:
        return ReviewOutcome(
            review_id=session.review_id or "",
            text=text,
            model=session.model,
            parts=list(session.parts),
            is_multi_part=bool(session.parts),
            is_partial=session.cancelled or bool(session.failed_parts),
            total_chunks=session.total_chunks,
            failed_parts=list(session.failed_parts),
        )
