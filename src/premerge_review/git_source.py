"""
Git Diff Source

Retrieves diffs and change summaries from a local git repository.
"""

import asyncio
from pathlib import Path

import structlog

from premerge_review.review.errors import ReviewError
from premerge_review.review.models import DiffSummary

logger = structlog.get_logger(__name__)


class GitError(ReviewError):
    """A git command exited non-zero."""


class GitDiffSource:
    """Read diffs and metadata from a git repository."""

    def __init__(self, repo_path: str | Path | None = None):
        """Initialize with optional repo path (defaults to cwd)."""
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()

    async def get_diff(self, base: str, head: str = "HEAD") -> str:
        """Raw diff of head against its merge base with base (``base...head``)."""
        return await self._run_git(["diff", f"{base}...{head}"])

    async def get_summary(self, base: str, head: str = "HEAD") -> DiffSummary:
        """Files changed plus insertion/deletion totals for ``base...head``."""
        output = await self._run_git(["diff", "--numstat", f"{base}...{head}"])
        return self.parse_numstat(output)

    async def get_current_branch(self) -> str:
        output = await self._run_git(["rev-parse", "--abbrev-ref", "HEAD"])
        return output.strip()

    async def get_commit_hash(self, ref: str = "HEAD") -> str:
        output = await self._run_git(["rev-parse", ref])
        return output.strip()

    async def get_user_name(self) -> str | None:
        """Configured ``user.name``, or None when unset."""
        try:
            output = await self._run_git(["config", "user.name"])
        except GitError:
            return None
        return output.strip() or None

    async def get_remote_url(self, remote: str = "origin") -> str | None:
        """URL of a remote, or None when the remote does not exist."""
        try:
            output = await self._run_git(["remote", "get-url", remote])
        except GitError:
            return None
        return output.strip() or None

    @staticmethod
    def parse_numstat(output: str) -> DiffSummary:
        """Parse ``git diff --numstat`` output. Binary files count as zero lines."""
        summary = DiffSummary()

        for line in output.splitlines():
            fields = line.split("\t", 2)
            if len(fields) != 3:
                continue
            added, deleted, path = fields
            summary.files.append(path)
            summary.insertions += int(added) if added.isdigit() else 0
            summary.deletions += int(deleted) if deleted.isdigit() else 0

        return summary

    async def _run_git(self, args: list[str]) -> str:
        """Run git command and return output."""
        cmd = ["git", "-C", str(self.repo_path)] + args

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        stdout, stderr = await proc.communicate()

        if proc.returncode != 0:
            error_msg = stderr.decode(errors="replace").strip()
            logger.debug("Git command failed", args=args, returncode=proc.returncode, error=error_msg)
            raise GitError(f"Git command failed: {error_msg}")

        return stdout.decode(errors="replace")
