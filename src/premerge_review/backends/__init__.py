"""Concrete text-generation backends."""

from .openai_compat import OpenAICompatibleBackend

__all__ = ["OpenAICompatibleBackend"]
