#!/usr/bin/env python3
"""Command line interface for premerge-review.

Usage:
    premerge-review parse changes.diff
    premerge-review chunk changes.diff --max-tokens 2000
    premerge-review review --base main
    premerge-review review-files src/app.py src/util.py
    premerge-review history --show review_1700000000000_abc123
"""

import argparse
import asyncio
import getpass
import json
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

import structlog

from premerge_review.backends import OpenAICompatibleBackend
from premerge_review.config import ReviewConfig
from premerge_review.git_source import GitDiffSource
from premerge_review.review import (
    AuditContext,
    Chunker,
    DiffSummary,
    ProgressEvent,
    ReviewError,
    ReviewOrchestrator,
    ReviewOutcome,
    ReviewStore,
    ReviewTarget,
    build_file_review_content,
    parse_diff,
)
from premerge_review.review.instructions import (
    combine_instructions,
    describe_instructions,
    load_instructions,
)

logger = structlog.get_logger(__name__)

DEFAULT_HISTORY_PATH = Path.home() / ".premerge-review" / "history.json"


def stderr_logger_factory(*args) -> structlog.PrintLogger:
    """Print to whatever ``sys.stderr`` is when the logger is created."""
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(level: str = "WARNING") -> None:
    """Configure structlog console output to stderr, filtered by level."""
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.WARNING)
        ),
        logger_factory=stderr_logger_factory,
    )


def read_input(path: str) -> str:
    """Read a file, or stdin for ``-``."""
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8", errors="replace")


def load_config(args: argparse.Namespace) -> ReviewConfig:
    """Environment configuration with command line overrides applied."""
    config = ReviewConfig.from_env()
    if getattr(args, "model", None):
        config.model = args.model
    if getattr(args, "max_tokens", None):
        config.max_tokens_per_part = args.max_tokens
    if getattr(args, "language", None):
        config.output_language = args.language
    if getattr(args, "no_probe", False):
        config.probe_models = False
    return config


def open_store(args: argparse.Namespace, config: ReviewConfig) -> ReviewStore:
    return ReviewStore(args.store or config.store_path or DEFAULT_HISTORY_PATH)


# =============================================================================
# parse / chunk
# =============================================================================


def cmd_parse(args: argparse.Namespace) -> int:
    files = parse_diff(read_input(args.diff))

    if args.json:
        print(json.dumps([
            {
                "path": f.path,
                "old_path": f.old_path,
                "new_path": f.new_path,
                "status": f.status,
                "additions": f.additions,
                "deletions": f.deletions,
                "hunks": len(f.hunks),
                "binary": f.is_binary,
            }
            for f in files
        ], indent=2))
        return 0

    for f in files:
        suffix = " (binary)" if f.is_binary else ""
        print(f"{f.status:<9} +{f.additions:<5} -{f.deletions:<5} {len(f.hunks):>3} hunks  {f.path}{suffix}")

    summary = DiffSummary.from_files(files)
    print(f"{len(files)} files changed, +{summary.insertions} -{summary.deletions}")
    return 0


def cmd_chunk(args: argparse.Namespace) -> int:
    config = load_config(args)
    budget = config.token_budget()
    max_tokens = args.max_tokens or config.default_max_tokens_per_part

    chunks = Chunker().chunk(read_input(args.diff), budget.to_chars(max_tokens))

    print(f"{len(chunks)} parts (max {max_tokens} tokens each)")
    for chunk in chunks:
        print(
            f"Part {chunk.number}/{chunk.total}: {len(chunk.text)} chars, "
            f"~{budget.estimate_tokens(chunk.text)} tokens"
        )
    return 0


# =============================================================================
# review / review-files
# =============================================================================


async def print_progress(event: ProgressEvent) -> None:
    print(f"[{event.phase.value}] {event.message}", file=sys.stderr)


def print_outcome(outcome: ReviewOutcome, as_json: bool = False) -> None:
    if as_json:
        print(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False))
        return

    print(outcome.text)
    if outcome.is_partial:
        processed = len(outcome.parts)
        print(
            f"\nNote: partial review ({processed} of {outcome.total_chunks} parts processed)",
            file=sys.stderr,
        )


def install_cancel_handler(cancel: asyncio.Event) -> None:
    """First Ctrl-C sets the cancel event; a second one interrupts."""
    loop = asyncio.get_running_loop()

    def on_interrupt() -> None:
        print("\nCancelling: finishing the current part, then merging...", file=sys.stderr)
        cancel.set()
        loop.remove_signal_handler(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except NotImplementedError:
        # Signal handlers are unavailable on Windows event loops
        logger.debug("SIGINT handler not installed")


def build_orchestrator(args: argparse.Namespace, config: ReviewConfig) -> ReviewOrchestrator:
    backend = OpenAICompatibleBackend(
        base_url=config.api_base_url,
        api_key=config.api_key,
        timeout=config.request_timeout,
    )
    handlers = [] if args.quiet else [print_progress]
    return ReviewOrchestrator(backend, config, store=open_store(args, config), handlers=handlers)


def load_review_instructions(repo: Path, args: argparse.Namespace, config: ReviewConfig) -> tuple[str, str]:
    """Combined instruction text and the label of the files used."""
    files = load_instructions(
        repo,
        args.instructions or config.instruction_files,
        config.max_instruction_file_size,
    )
    for f in files:
        if not f.loaded:
            logger.info("Instruction file not loaded", path=f.path, reason=f.error)
    return combine_instructions(files), describe_instructions(files)


async def run_review(args: argparse.Namespace) -> int:
    config = load_config(args)
    repo = Path(args.repo)
    source = GitDiffSource(repo)
    review_time = datetime.now().isoformat(timespec="seconds")

    if args.diff_file:
        content = read_input(args.diff_file)
        target = ReviewTarget(
            current_branch=args.head,
            base_branch=args.base,
            diff_summary=DiffSummary.from_files(parse_diff(content)),
        )
        audit = AuditContext(
            reviewer=getpass.getuser(),
            review_time=review_time,
            source_branch=args.head,
            target_branch=args.base,
        )
    else:
        current_branch = await source.get_current_branch()
        content = await source.get_diff(args.base, args.head)
        target = ReviewTarget(
            current_branch=current_branch,
            base_branch=args.base,
            diff_summary=await source.get_summary(args.base, args.head),
        )
        audit = AuditContext(
            reviewer=await source.get_user_name() or getpass.getuser(),
            review_time=review_time,
            source_branch=current_branch,
            target_branch=args.base,
            from_commit=await source.get_commit_hash(args.base),
            to_commit=await source.get_commit_hash(args.head),
            workspace_name=repo.resolve().name,
            repo_url=await source.get_remote_url(),
        )

    if not content.strip():
        print("No changes to review.")
        return 0

    instructions, instructions_used = load_review_instructions(repo, args, config)
    orchestrator = build_orchestrator(args, config)

    cancel = asyncio.Event()
    install_cancel_handler(cancel)

    outcome = await orchestrator.review(
        content,
        instructions,
        audit=audit,
        cancel=cancel,
        review_target=target,
        instructions_used=instructions_used,
    )
    print_outcome(outcome, args.json)
    return 0


async def run_review_files(args: argparse.Namespace) -> int:
    config = load_config(args)
    repo = Path(args.repo)

    files = [(path, read_input(path)) for path in args.paths]
    instructions, instructions_used = load_review_instructions(repo, args, config)
    orchestrator = build_orchestrator(args, config)
    target = ReviewTarget(files_label=", ".join(args.paths))

    cancel = asyncio.Event()
    install_cancel_handler(cancel)

    if len(files) == 1:
        outcome = await orchestrator.review_file(
            files[0][1],
            instructions,
            cancel=cancel,
            review_target=target,
            instructions_used=instructions_used,
        )
    else:
        outcome = await orchestrator.review(
            build_file_review_content(files),
            instructions,
            cancel=cancel,
            review_target=target,
            instructions_used=instructions_used,
        )
    print_outcome(outcome, args.json)
    return 0


def cmd_review(args: argparse.Namespace) -> int:
    return asyncio.run(run_review(args))


def cmd_review_files(args: argparse.Namespace) -> int:
    return asyncio.run(run_review_files(args))


# =============================================================================
# history
# =============================================================================


def cmd_history(args: argparse.Namespace) -> int:
    store = open_store(args, ReviewConfig.from_env())

    if args.clear:
        store.clear()
        print("Review history cleared.")
        return 0

    if args.delete:
        if not store.delete(args.delete):
            print(f"Review not found: {args.delete}", file=sys.stderr)
            return 1
        print(f"Deleted {args.delete}")
        return 0

    if args.show or args.latest:
        record = store.get(args.show) if args.show else store.latest()
        if record is None:
            print(f"Review not found: {args.show or 'latest'}", file=sys.stderr)
            return 1
        print(store.format_for_display(record))
        return 0

    if not store.has_results():
        print("No stored reviews.")
        return 0

    for record in store.all():
        target = record.target
        label = target.files_label or f"{target.current_branch} vs {target.base_branch}"
        kind = f"{len(record.results.parts)} parts" if record.results.is_multi_part else "single"
        print(f"{record.id}  {record.timestamp:%Y-%m-%d %H:%M}  {kind:<9} {label}")
    return 0


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="premerge-review",
        description="Review large diffs with a text-generation model",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command")

    parse_cmd = subparsers.add_parser("parse", help="Summarize a unified diff")
    parse_cmd.add_argument("diff", help="Diff file path, or - for stdin")
    parse_cmd.add_argument("--json", action="store_true", help="Print JSON")
    parse_cmd.set_defaults(func=cmd_parse)

    chunk_cmd = subparsers.add_parser("chunk", help="Show how content would be split into parts")
    chunk_cmd.add_argument("diff", help="Diff file path, or - for stdin")
    chunk_cmd.add_argument("--max-tokens", type=int, help="Token budget per part")
    chunk_cmd.set_defaults(func=cmd_chunk)

    def add_review_options(cmd: argparse.ArgumentParser) -> None:
        cmd.add_argument("--repo", default=".", help="Repository root (default: cwd)")
        cmd.add_argument("--model", help="Preferred model id")
        cmd.add_argument("--max-tokens", type=int, help="Token budget per part")
        cmd.add_argument("--language", help="Language to write the review in")
        cmd.add_argument("--instructions", nargs="+", help="Instruction files, relative to the repo")
        cmd.add_argument("--no-probe", action="store_true", help="Skip model availability probes")
        cmd.add_argument("--store", type=Path, help="Review history file")
        cmd.add_argument("--json", action="store_true", help="Print the outcome as JSON")
        cmd.add_argument("--quiet", action="store_true", help="Hide progress messages")

    review_cmd = subparsers.add_parser("review", help="Review a branch diff")
    review_cmd.add_argument("--base", default="main", help="Base branch or commit (default: main)")
    review_cmd.add_argument("--head", default="HEAD", help="Head ref (default: HEAD)")
    review_cmd.add_argument("--diff-file", help="Review this diff file instead of running git")
    add_review_options(review_cmd)
    review_cmd.set_defaults(func=cmd_review)

    files_cmd = subparsers.add_parser("review-files", help="Review whole files")
    files_cmd.add_argument("paths", nargs="+", help="Files to review")
    add_review_options(files_cmd)
    files_cmd.set_defaults(func=cmd_review_files)

    history_cmd = subparsers.add_parser("history", help="List or show stored reviews")
    history_cmd.add_argument("--show", metavar="ID", help="Show one review")
    history_cmd.add_argument("--latest", action="store_true", help="Show the latest review")
    history_cmd.add_argument("--delete", metavar="ID", help="Delete one review")
    history_cmd.add_argument("--clear", action="store_true", help="Delete all reviews")
    history_cmd.add_argument("--store", type=Path, help="Review history file")
    history_cmd.set_defaults(func=cmd_history)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 2

    try:
        return args.func(args)
    except (ReviewError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
