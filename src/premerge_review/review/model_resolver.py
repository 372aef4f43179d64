"""
Model Resolver

Picks the concrete model a review session will use.

Resolution order:
1. Exact id match (if requested and available)
2. Any available model of the requested id's family
3. The default family, then the first registry entry
"""

import asyncio
from collections.abc import Sequence

import structlog

from .backend import GenerationBackend
from .errors import ModelUnresolvedError, is_inaccessible_error
from .families import DEFAULT_FAMILY, extract_family, in_family
from .models import ResolvedModel

logger = structlog.get_logger(__name__)


class ModelResolver:
    """Resolve a requested model id against the backend's registry."""

    PROBE_PROMPT = "test"

    def __init__(
        self,
        backend: GenerationBackend,
        default_family: str = DEFAULT_FAMILY,
        probe: bool = True,
        probe_timeout: float = 10.0,
    ):
        """
        Initialize the resolver.

        Args:
            backend: Backend used for availability probes
            default_family: Family used when nothing else resolves
            probe: Send a minimal request to validate candidate models
            probe_timeout: Seconds before a probe is treated as passed
        """
        self.backend = backend
        self.default_family = default_family
        self.probe = probe
        self.probe_timeout = probe_timeout

    async def resolve(
        self,
        requested_id: str | None,
        registry: Sequence[ResolvedModel],
    ) -> ResolvedModel:
        """Resolve to one concrete model.

        Raises:
            ModelUnresolvedError: If the registry is empty
        """
        if not registry:
            raise ModelUnresolvedError("No suitable model found: the backend reported no models")

        if requested_id:
            model = await self._resolve_requested(requested_id, registry)
            if model:
                return model

        # Final fallback: default family, without probing
        for model in registry:
            if model.is_available and in_family(model.id, model.family, self.default_family):
                logger.info("Using default family model", model=model.id, family=self.default_family)
                return model

        available = [m for m in registry if m.is_available]
        model = available[0] if available else registry[0]
        logger.info("Using first registry model", model=model.id)
        return model

    async def _resolve_requested(
        self,
        requested_id: str,
        registry: Sequence[ResolvedModel],
    ) -> ResolvedModel | None:
        exact = next((m for m in registry if m.id == requested_id), None)
        if exact is None:
            logger.warning("Requested model not found, falling back to family", model=requested_id)
        elif await self.is_available(exact):
            return exact
        else:
            logger.warning("Requested model unavailable, falling back to family", model=requested_id)

        family = extract_family(requested_id)
        if not family:
            return None

        for model in registry:
            if model.id == requested_id or not in_family(model.id, model.family, family):
                continue
            if await self.is_available(model):
                logger.info("Resolved model by family", requested=requested_id, model=model.id, family=family)
                return model

        return None

    async def is_available(self, model: ResolvedModel) -> bool:
        """Probe a model; only permission/quota/disabled failures count as unavailable."""
        if not model.is_available:
            return False
        if not self.probe:
            return True

        try:
            await asyncio.wait_for(self._send_probe(model), timeout=self.probe_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Model probe timed out, assuming available", model=model.id)
            return True
        except Exception as e:
            if is_inaccessible_error(e):
                logger.warning("Model is not accessible", model=model.id, error=str(e))
                return False
            logger.warning("Model probe failed, assuming available", model=model.id, error=str(e))
            return True

    async def _send_probe(self, model: ResolvedModel) -> None:
        stream = self.backend.generate(self.PROBE_PROMPT, model.id)
        try:
            async for _ in stream:
                break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
