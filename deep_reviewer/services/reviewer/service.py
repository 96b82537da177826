"""Reviewer service - orchestration layer."""

import time
from pathlib import Path
from typing import Optional

from langchain_core.language_models import BaseChatModel

from deep_reviewer.config import Settings, settings as default_settings
from deep_reviewer.core.exceptions import (
    ExternalServiceError,
    InvalidArgumentsError,
    ProcessError,
    ValidationError,
)
from deep_reviewer.core.llm import get_chat_llm
from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.pr_parser import PRReference
from deep_reviewer.core.process import ProcessRunner
from deep_reviewer.schemas.review import PullRequestInfo, ReviewContext
from deep_reviewer.services.analysis.adapters import AnalysisAdapters
from deep_reviewer.services.analysis.linter import LinterRunner
from deep_reviewer.services.github.service import get_pull_request_info, post_review
from deep_reviewer.services.reporting.renderer import render_review
from deep_reviewer.services.repository.inspector import RepositoryInspector, validate_revision
from deep_reviewer.services.reviewer.chunking import ChunkingStrategy
from deep_reviewer.services.reviewer.dispatcher import ToolDispatcher
from deep_reviewer.services.reviewer.graph import ReviewLimits, ReviewOrchestrator
from deep_reviewer.services.reviewer.registry import ToolRegistry
from deep_reviewer.services.reviewer.schemas import ReviewOutcome

logger = get_logger("reviewer.service")


async def resolve_commit(runner: ProcessRunner, repo_path: str, revision: str, field: str) -> str:
    """Resolve a revision to a full commit SHA."""
    try:
        revision = validate_revision(revision, field)
        result = await runner.run(
            "git", ["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"], cwd=repo_path
        )
    except InvalidArgumentsError as e:
        raise ValidationError(str(e), {"field": field}) from e
    except ProcessError as e:
        raise ValidationError(f"Unknown {field} revision: {revision}", {"field": field}) from e
    return result.stdout.strip()


async def gather_review_context(
    repo_path: str,
    base: str,
    head: str,
    runner: ProcessRunner,
    pull_request: Optional[PullRequestInfo] = None,
    settings: Settings = default_settings,
) -> tuple[ReviewContext, int]:
    """Collect changed files and chunk them. Returns the context and the number of skipped files."""
    root = Path(repo_path).expanduser().resolve()
    if not root.is_dir():
        raise ValidationError(f"Repository path does not exist: {repo_path}", {"field": "repo_path"})
    workdir = str(root)

    base_sha = await resolve_commit(runner, workdir, base, "base")
    head_sha = await resolve_commit(runner, workdir, head, "head")

    # File, AST, lint and search tools read the working tree, so it must be head
    checked_out = await resolve_commit(runner, workdir, "HEAD", "head")
    if checked_out != head_sha:
        raise ValidationError(
            f"Head revision {head} ({head_sha[:7]}) is not checked out in {workdir} "
            f"(HEAD is {checked_out[:7]}). Check out the head revision before reviewing.",
            {"field": "head"},
        )

    inspector = RepositoryInspector(runner, workdir, base_sha, head_sha, timeout=settings.tool_timeout_seconds)
    files = await inspector.changed_files()

    skipped = 0
    if len(files) > settings.max_files_per_review:
        logger.warning(f"Limiting review to {settings.max_files_per_review} of {len(files)} files")
        skipped = len(files) - settings.max_files_per_review
        files = files[: settings.max_files_per_review]

    if pull_request is None:
        pull_request = PullRequestInfo(
            title=await inspector.subject_of(head_sha) or f"Changes {base_sha[:7]}..{head_sha[:7]}",
            author=await inspector.author_of(head_sha) or "unknown",
            base_branch=base,
            head_branch=head,
        )

    chunks = ChunkingStrategy(settings.chunk_token_budget).partition(files)
    context = ReviewContext(
        working_directory=workdir,
        base_revision=base_sha,
        head_revision=head_sha,
        changed_files=tuple(files),
        chunks=tuple(chunks),
        pull_request=pull_request,
    )
    return context, skipped


def build_orchestrator(
    model: BaseChatModel,
    runner: ProcessRunner,
    settings: Settings = default_settings,
    registry: Optional[ToolRegistry] = None,
) -> ReviewOrchestrator:
    """Wire a fresh registry, linter, adapters and dispatcher for one run."""
    registry = registry or ToolRegistry()
    linter = LinterRunner(
        runner,
        timeout=settings.tool_timeout_seconds,
        install_dependencies=settings.install_js_dependencies,
    )
    dispatcher = ToolDispatcher(
        registry,
        runner,
        AnalysisAdapters(linter),
        tool_timeout=settings.tool_timeout_seconds,
        max_output_chars=settings.max_tool_output_chars,
        lines_per_chunk=settings.diff_lines_per_chunk,
    )
    return ReviewOrchestrator(model, dispatcher, registry, ReviewLimits.from_settings(settings))


async def review_repository(
    repo_path: str,
    base: str,
    head: str = "HEAD",
    pr_ref: Optional[PRReference] = None,
    post: bool = False,
    model: Optional[BaseChatModel] = None,
    registry: Optional[ToolRegistry] = None,
    settings: Settings = default_settings,
) -> ReviewOutcome:
    """Review base..head of a local checkout and optionally post to the PR."""
    started = time.monotonic()
    runner = ProcessRunner(default_timeout=settings.tool_timeout_seconds)

    pull_request = get_pull_request_info(pr_ref) if pr_ref else None
    context, skipped = await gather_review_context(repo_path, base, head, runner, pull_request, settings)
    logger.info(
        f"Reviewing {context.base_revision[:7]}..{context.head_revision[:7]}: "
        f"{len(context.changed_files)} files, {len(context.chunks)} chunks"
    )

    if model is None:
        try:
            model = get_chat_llm(model=settings.review_model, temperature=settings.model_temperature)
        except ValueError as e:
            raise ExternalServiceError("OpenRouter", str(e)) from e

    orchestrator = build_orchestrator(model, runner, settings, registry)
    result = await orchestrator.run(context, skipped_files=skipped)

    duration = time.monotonic() - started
    report = render_review(result, context, duration)
    logger.info(
        f"Review {result.status}: {result.tool_call_count} tool calls, "
        f"~{result.tokens_consumed_estimate} tokens in {duration:.1f}s"
    )

    outcome = ReviewOutcome(
        result=result,
        report=report,
        context=context,
        pr=str(pr_ref) if pr_ref else None,
        duration_seconds=duration,
    )
    if post and pr_ref:
        inline = post_review(pr_ref, report, result.review.issues, context.changed_files)
        outcome = outcome.model_copy(update={"posted": True, "inline_comments": inline})
    elif post:
        logger.warning("Posting requested without a PR reference, skipping")
    return outcome
