"""Prompt templates using Jinja2."""

from pathlib import Path
from typing import Sequence

from jinja2 import Environment, FileSystemLoader

from deep_reviewer.schemas.review import PullRequestInfo, ReviewContext, ToolDescriptor

PROMPTS_DIR = Path(__file__).parent
_env = Environment(loader=FileSystemLoader(PROMPTS_DIR), trim_blocks=True, lstrip_blocks=True)


def render_system_prompt(
    tools: Sequence[ToolDescriptor],
    final_marker: str,
    review_language: str = "en",
) -> str:
    """Render the system prompt: tool catalog, call protocol and review format."""
    template = _env.get_template("system_prompt.jinja2")
    return template.render(tools=tools, final_marker=final_marker, review_language=review_language)


def render_user_prompt(
    context: ReviewContext,
    chunk_outline: str,
    final_marker: str,
    skipped_files: int = 0,
) -> str:
    """Render the first user prompt for a review run."""
    pr = context.pull_request or PullRequestInfo(
        title=f"Changes {context.base_revision[:7]}..{context.head_revision[:7]}",
        base_branch=context.base_revision,
        head_branch=context.head_revision,
    )
    template = _env.get_template("user_prompt.jinja2")
    return template.render(
        pr=pr,
        base_revision=context.base_revision,
        head_revision=context.head_revision,
        files=context.changed_files,
        chunks=context.chunks,
        total_additions=sum(f.additions for f in context.changed_files),
        total_deletions=sum(f.deletions for f in context.changed_files),
        chunk_outline=chunk_outline,
        final_marker=final_marker,
        skipped_files=skipped_files,
    )
