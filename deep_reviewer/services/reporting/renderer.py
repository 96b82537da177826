"""Markdown rendering of a review run, with statistics."""

from typing import Optional

from pydantic import BaseModel, Field

from deep_reviewer.schemas.review import ReviewContext
from deep_reviewer.services.reviewer.schemas import ReviewRunResult

CATEGORY_ICONS = {
    "critical": "🔴",
    "warning": "⚠️",
    "suggestion": "💡",
    "strength": "✅",
    "security": "🔒",
    "performance": "⚡",
    "architecture": "🏗️",
}
SPARK_CHARS = "▁▂▃▄▅▆▇█"


class ReviewStatistics(BaseModel):
    total_files: int = 0
    additions: int = 0
    deletions: int = 0
    critical_issues: int = 0
    warning_issues: int = 0
    info_issues: int = 0
    files_with_issues: int = 0
    tool_calls: int = 0
    tokens_estimate: int = 0
    duration_seconds: Optional[float] = None
    category_counts: dict[str, int] = Field(default_factory=dict)
    language_distribution: dict[str, int] = Field(default_factory=dict)
    tool_usage: dict[str, int] = Field(default_factory=dict)

    @property
    def issues_found(self) -> int:
        return self.critical_issues + self.warning_issues + self.info_issues

    @property
    def quality_score(self) -> int:
        return max(0, 100 - self.critical_issues * 20 - self.warning_issues * 5 - self.info_issues)


def compute_statistics(
    result: ReviewRunResult,
    context: ReviewContext,
    duration_seconds: Optional[float] = None,
) -> ReviewStatistics:
    review = result.review
    categories: dict[str, int] = {}
    for issue in review.issues:
        if issue.category != "strength":
            categories[issue.category] = categories.get(issue.category, 0) + 1

    languages: dict[str, int] = {}
    for f in context.changed_files:
        lang = f.language or "other"
        languages[lang] = languages.get(lang, 0) + 1

    flagged = {i.file for i in review.issues if i.file and i.category != "strength"}
    return ReviewStatistics(
        total_files=len(context.changed_files),
        additions=sum(f.additions for f in context.changed_files),
        deletions=sum(f.deletions for f in context.changed_files),
        critical_issues=categories.get("critical", 0),
        warning_issues=categories.get("warning", 0),
        info_issues=sum(n for c, n in categories.items() if c not in ("critical", "warning")),
        files_with_issues=len(flagged),
        tool_calls=result.tool_call_count,
        tokens_estimate=result.tokens_consumed_estimate,
        duration_seconds=duration_seconds,
        category_counts=categories,
        language_distribution=languages,
        tool_usage=result.tool_usage,
    )


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "n/a"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def bar(value: int, maximum: int, width: int = 20) -> str:
    filled = round(value / maximum * width) if maximum > 0 else 0
    return "█" * filled + "░" * (width - filled)


def sparkline(values: list[int]) -> str:
    top = max([*values, 1])
    return "".join(
        SPARK_CHARS[min(int(v / top * (len(SPARK_CHARS) - 1)), len(SPARK_CHARS) - 1)] for v in values
    )


def partial_banner(result: ReviewRunResult) -> str:
    reason = result.abort_reason.value if result.abort_reason else "unknown"
    lines = [
        f"> ⚠️ **Partial review** - the review run was aborted ({reason}).",
        "> The findings below come from an incomplete analysis and may miss issues.",
    ]
    if result.abort_detail:
        lines.append(f"> Detail: {result.abort_detail}")
    if result.retryable:
        lines.append("> Retrying the review may succeed.")
    return "\n".join(lines)


def render_statistics(stats: ReviewStatistics) -> str:
    lines = [
        "## 📊 Review Statistics\n",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Files reviewed | {stats.total_files} |",
        f"| Lines changed | +{stats.additions} / -{stats.deletions} |",
        f"| Issues found | {stats.issues_found} |",
        f"| Files with issues | {stats.files_with_issues}/{stats.total_files} |",
        f"| Quality score | {stats.quality_score}/100 |",
        f"| Tool calls | {stats.tool_calls} |",
        f"| Tokens (estimate) | {stats.tokens_estimate:,} |",
        f"| Review time | {format_duration(stats.duration_seconds)} |",
    ]

    counts = [stats.critical_issues, stats.warning_issues, stats.info_issues]
    top = max([*counts, 1])
    lines.append("\n```")
    lines.append(f"🔴 Critical  {bar(stats.critical_issues, top)} {stats.critical_issues:>3}")
    lines.append(f"⚠️ Warnings  {bar(stats.warning_issues, top)} {stats.warning_issues:>3}")
    lines.append(f"📘 Other     {bar(stats.info_issues, top)} {stats.info_issues:>3}")
    lines.append("```")
    if stats.issues_found:
        lines.append(f"\n**Trend**: {sparkline(counts)} (Critical → Warning → Other)")

    if stats.category_counts:
        lines.append("\n### Issues by Category\n")
        for category, count in sorted(stats.category_counts.items(), key=lambda kv: -kv[1]):
            lines.append(f"- {CATEGORY_ICONS.get(category, '📝')} {category}: {count}")

    if stats.language_distribution:
        lines.append("\n### Languages\n")
        total = sum(stats.language_distribution.values())
        for lang, count in sorted(stats.language_distribution.items(), key=lambda kv: -kv[1]):
            lines.append(f"- {lang}: {count} file(s) ({round(count / total * 100)}%)")

    if stats.tool_usage:
        lines.append("\n### Tool Usage\n")
        for name, count in sorted(stats.tool_usage.items(), key=lambda kv: (-kv[1], kv[0])):
            lines.append(f"- `{name}`: {count}")

    return "\n".join(lines)


def render_review(
    result: ReviewRunResult,
    context: ReviewContext,
    duration_seconds: Optional[float] = None,
) -> str:
    """Full markdown report. Aborted runs always open with the partial banner."""
    review = result.review
    sections = []
    if result.partial or review.partial:
        sections.append(partial_banner(result))
        sections.append(review.summary)
        if review.raw_markdown and review.raw_markdown not in review.summary:
            sections.append(review.raw_markdown)
    else:
        sections.append(review.raw_markdown or review.summary)

    sections.append(render_statistics(compute_statistics(result, context, duration_seconds)))
    return "\n\n---\n\n".join(s for s in sections if s)
