"""
Retry Policy

Wraps one generation call. When the backend refuses a model (permission,
quota, disabled), the call is retried on an alternate model from a
precomputed candidate list; every other failure propagates unchanged.
"""

import asyncio
from collections.abc import Sequence

import structlog

from .backend import GenerationBackend, collect_text
from .errors import is_inaccessible_error
from .families import GENERIC_FAMILY_LITERAL, extract_family, in_family
from .models import ResolvedModel

logger = structlog.get_logger(__name__)


class RetryPolicy:
    """Alternate-model fallback for a single generation call."""

    def __init__(
        self,
        backend: GenerationBackend,
        max_alternates: int = 1,
        generic_family: str = GENERIC_FAMILY_LITERAL,
    ):
        """
        Initialize the policy.

        Args:
            backend: Backend that serves the generation calls
            max_alternates: How many alternate models may be tried after the primary
            generic_family: Literal marking broadly available models
        """
        self.backend = backend
        self.max_alternates = max(0, max_alternates)
        self.generic_family = generic_family

    def candidates(
        self,
        primary: ResolvedModel,
        registry: Sequence[ResolvedModel],
        requested_id: str | None = None,
    ) -> list[ResolvedModel]:
        """
        Models to try, in order: the primary, then alternates.

        Alternates are ranked: same family as the requested id, then models
        whose id or family contains the generic literal, then the rest.
        """
        others = [m for m in registry if m.id != primary.id and m.is_available]

        ranked: list[ResolvedModel] = []
        family = extract_family(requested_id)
        if family:
            ranked.extend(m for m in others if in_family(m.id, m.family, family))
        ranked.extend(
            m for m in others if self.generic_family in m.family or self.generic_family in m.id
        )
        ranked.extend(others)

        seen: set[str] = set()
        alternates: list[ResolvedModel] = []
        for model in ranked:
            if model.id not in seen:
                seen.add(model.id)
                alternates.append(model)

        return [primary] + alternates[: self.max_alternates]

    async def generate(
        self,
        prompt: str,
        model: ResolvedModel,
        *,
        registry: Sequence[ResolvedModel] = (),
        requested_id: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Run one generation call with bounded alternate-model fallback."""
        candidates = self.candidates(model, registry, requested_id)

        for attempt, candidate in enumerate(candidates):
            try:
                return await collect_text(self.backend, prompt, candidate.id, cancel)
            except Exception as e:
                is_last = attempt == len(candidates) - 1
                if is_last or not is_inaccessible_error(e):
                    raise
                logger.warning(
                    "Model not accessible, retrying with alternative",
                    model=candidate.id,
                    alternative=candidates[attempt + 1].id,
                    error=str(e),
                )

        # candidates always holds the primary, so the loop returns or raises
        raise AssertionError("unreachable")
