"""Protocol for text-generation backends."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import aclosing
from typing import Protocol, runtime_checkable

import structlog

from .models import ResolvedModel

logger = structlog.get_logger(__name__)


@runtime_checkable
class GenerationBackend(Protocol):
    """A backend that lists models and streams generated text.

    Implementations raise on failure; the error message is what the retry
    policy inspects to decide whether another model is worth trying.
    """

    async def list_models(self) -> list[ResolvedModel]:
        """Models the backend can serve, with their input capacity."""
        ...

    def generate(
        self,
        prompt: str,
        model_id: str,
        cancel: asyncio.Event | None = None,
    ) -> AsyncGenerator[str, None]:
        """Stream text fragments for a single-message prompt."""
        ...


async def collect_text(
    backend: GenerationBackend,
    prompt: str,
    model_id: str,
    cancel: asyncio.Event | None = None,
) -> str:
    """Concatenate a generation stream, stopping early once cancelled.

    The stream is closed on every exit path, so an abandoned HTTP response
    is released immediately.
    """
    fragments: list[str] = []

    async with aclosing(backend.generate(prompt, model_id, cancel)) as stream:
        async for fragment in stream:
            if cancel is not None and cancel.is_set():
                logger.warning("Generation cancelled mid-stream", model=model_id)
                break
            fragments.append(fragment or "")

    return "".join(fragments)
