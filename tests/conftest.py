"""
Shared fixtures for premerge-review tests.

Provides a scripted generation backend, a model registry and temporary git
repositories.
"""

import asyncio
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator

import pytest
import structlog

from premerge_review.review.models import ResolvedModel


# =============================================================================
# FAKE BACKEND
# =============================================================================

class FakeBackend:
    """
    Scripted GenerationBackend.

    ``responder(prompt, model_id)`` returns the text to stream or raises.
    ``on_fragment(prompt, model_id, index)`` runs after each fragment is consumed.
    Every generate() call is recorded as ``(prompt, model_id)``; ``open_streams``
    counts generate() streams that have not been closed yet.
    """

    PROBE_PROMPT = "test"

    def __init__(
        self,
        models: list[ResolvedModel] | None = None,
        responder: Callable[[str, str], str] | None = None,
        after_generate: Callable[[str, str], Any] | None = None,
        on_fragment: Callable[[str, str, int], Any] | None = None,
    ):
        self.models = list(models) if models is not None else [
            ResolvedModel(id="gpt-4o", family="gpt-4o", max_input_tokens=128000),
        ]
        self.responder = responder or (lambda prompt, model_id: f"Looks fine ({model_id})")
        self.after_generate = after_generate
        self.on_fragment = on_fragment
        self.calls: list[tuple[str, str]] = []
        self.list_calls = 0
        self.open_streams = 0

    async def list_models(self) -> list[ResolvedModel]:
        self.list_calls += 1
        return list(self.models)

    async def generate(self, prompt: str, model_id: str, cancel: asyncio.Event | None = None):
        self.calls.append((prompt, model_id))
        text = self.responder(prompt, model_id)

        self.open_streams += 1
        try:
            # Two fragments, so callers must join the stream
            middle = len(text) // 2
            fragments = [f for f in (text[:middle], text[middle:]) if f]
            for index, fragment in enumerate(fragments):
                yield fragment
                if self.on_fragment is not None:
                    self.on_fragment(prompt, model_id, index)
        finally:
            self.open_streams -= 1

        if self.after_generate is not None:
            self.after_generate(prompt, model_id)

    @property
    def generation_calls(self) -> list[tuple[str, str]]:
        """Calls other than availability probes."""
        return [c for c in self.calls if c[0] != self.PROBE_PROMPT]

    @property
    def merge_calls(self) -> list[tuple[str, str]]:
        return [c for c in self.generation_calls if "merge these reviews" in c[0]]

    @property
    def part_calls(self) -> list[tuple[str, str]]:
        return [c for c in self.generation_calls if "merge these reviews" not in c[0]]


@pytest.fixture
def model_registry() -> list[ResolvedModel]:
    """A mixed-vendor registry."""
    return [
        ResolvedModel(id="claude-3-opus", family="claude-3", max_input_tokens=200000),
        ResolvedModel(id="gpt-4o-mini", family="gpt-4o", max_input_tokens=128000),
        ResolvedModel(id="gpt-3.5-turbo", family="gpt-3.5-turbo", max_input_tokens=16385),
        ResolvedModel(id="gemini-1.5-pro", family="gemini-1.5-pro", max_input_tokens=1000000),
    ]


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def make_backend() -> Callable[..., FakeBackend]:
    """Factory for FakeBackend with custom models/responder."""
    return FakeBackend


# =============================================================================
# GIT REPOSITORY FIXTURES
# =============================================================================

def run_git(repo_path: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=repo_path, check=True, capture_output=True)


@pytest.fixture
def temp_git_repo(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Create a temporary git repository with one commit on ``main``.

    Yields:
        Path to the initialized git repository
    """
    repo_path = tmp_path / "test_repo"
    repo_path.mkdir()

    run_git(repo_path, "init")
    run_git(repo_path, "config", "user.email", "test@test.com")
    run_git(repo_path, "config", "user.name", "Test User")

    (repo_path / "app.py").write_text("def main():\n    return 1\n")
    run_git(repo_path, "add", ".")
    run_git(repo_path, "commit", "-m", "Initial commit")
    run_git(repo_path, "branch", "-M", "main")

    yield repo_path


# =============================================================================
# LOGGING
# =============================================================================

@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo any structlog.configure() a test triggered (the CLI configures on every run)."""
    yield
    structlog.reset_defaults()


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: Tests that run the real git binary"
    )
