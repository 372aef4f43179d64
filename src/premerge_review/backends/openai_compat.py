"""
OpenAI-compatible generation backend.

Talks to any server exposing ``/models`` and streaming
``/chat/completions`` (OpenAI, vLLM, LiteLLM proxies, Ollama's OpenAI API).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Any

import aiohttp
import structlog

from premerge_review.review.errors import BackendError, ModelInaccessibleError
from premerge_review.review.families import extract_family
from premerge_review.review.models import ResolvedModel

logger = structlog.get_logger(__name__)

# Input capacity (tokens) for models whose /models entry does not report it
KNOWN_CONTEXT_WINDOWS: dict[str, int] = {
    "gpt-4o": 128000,
    "gpt-4o-mini": 128000,
    "gpt-4.1": 1047576,
    "gpt-4.1-mini": 1047576,
    "gpt-4-turbo": 128000,
    "gpt-4": 8192,
    "gpt-3.5-turbo": 16385,
    "o1": 200000,
    "o1-mini": 128000,
}

# Statuses that mean "this model is not usable for us right now"
INACCESSIBLE_STATUSES = {
    401: "access denied",
    403: "permission denied",
    429: "rate limit or quota exceeded",
}


class OpenAICompatibleBackend:
    """Backend for OpenAI-style chat completion APIs."""

    DEFAULT_BASE_URL = "https://api.openai.com/v1"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 120.0,
        temperature: float = 0.0,
        max_output_tokens: int | None = None,
    ):
        """
        Initialize the backend.

        Args:
            base_url: API root including the version segment (``.../v1``)
            api_key: Bearer token, if the server needs one
            timeout: Total timeout per request in seconds
            temperature: Sampling temperature
            max_output_tokens: Optional cap on generated tokens
        """
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def list_models(self) -> list[ResolvedModel]:
        """Fetch the model registry from ``/models``."""
        url = f"{self.base_url}/models"
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers=self._headers()) as response:
                    if response.status != 200:
                        raise self.error_for_status(response.status, await response.text())
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise BackendError(f"Failed to list models: {e}") from e
        except asyncio.TimeoutError as e:
            raise BackendError("Timed out listing models") from e

        models = [self.model_from_payload(item) for item in data.get("data", [])]
        logger.debug("Listed models", count=len(models), base_url=self.base_url)
        return models

    async def generate(
        self,
        prompt: str,
        model_id: str,
        cancel: asyncio.Event | None = None,
    ) -> AsyncGenerator[str, None]:
        """Stream the completion for a single user message."""
        url = f"{self.base_url}/chat/completions"
        payload = self._build_payload(model_id, prompt)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers=self._headers()) as response:
                    if response.status != 200:
                        raise self.error_for_status(response.status, await response.text())

                    async for line in response.content:
                        if cancel is not None and cancel.is_set():
                            break
                        content = self.parse_stream_line(line.decode("utf-8").strip())
                        if content:
                            yield content
        except aiohttp.ClientError as e:
            raise BackendError(f"Request to {model_id} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise BackendError(f"Request to {model_id} timed out") from e

    def _build_payload(self, model_id: str, prompt: str) -> dict[str, Any]:
        """Build OpenAI-compatible streaming request payload"""
        payload: dict[str, Any] = {
            "model": model_id,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "stream": True,
        }
        if self.max_output_tokens:
            payload["max_tokens"] = self.max_output_tokens
        return payload

    @staticmethod
    def parse_stream_line(line_text: str) -> str | None:
        """Extract the content delta from one SSE line."""
        if not line_text.startswith("data: "):
            return None
        data_str = line_text[6:]
        if data_str == "[DONE]":
            return None
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            return None

        choices = data.get("choices") or []
        if not choices:
            return None
        delta = choices[0].get("delta") or {}
        return delta.get("content") or None

    @staticmethod
    def error_for_status(status: int, body: str) -> BackendError:
        """Map an HTTP error response to a backend exception."""
        detail = body.strip()[:500]
        if status in INACCESSIBLE_STATUSES:
            return ModelInaccessibleError(
                f"{INACCESSIBLE_STATUSES[status]} (HTTP {status}): {detail}",
                status=status,
            )
        return BackendError(f"HTTP {status}: {detail}", status=status)

    @staticmethod
    def model_from_payload(item: dict[str, Any]) -> ResolvedModel:
        """Build a registry entry from one ``/models`` item."""
        model_id = str(item.get("id", ""))
        max_tokens = (
            item.get("max_input_tokens")
            or item.get("context_length")
            or item.get("context_window")
            or KNOWN_CONTEXT_WINDOWS.get(model_id)
        )
        return ResolvedModel(
            id=model_id,
            family=extract_family(model_id) or model_id,
            max_input_tokens=int(max_tokens) if max_tokens else None,
            name=item.get("name"),
            vendor=item.get("owned_by"),
        )
