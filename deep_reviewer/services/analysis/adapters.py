"""Analysis adapters - normalize parser/linter/call-site output for the model.

The collaborators do the analysis. Adapters only resolve paths, pick the
right collaborator, and turn results into compact markdown with capped lists.
"""

from typing import Callable

from deep_reviewer.core.exceptions import ToolNotFoundError
from deep_reviewer.core.logging import get_logger
from deep_reviewer.schemas.review import Finding, ReviewContext
from deep_reviewer.services.analysis.ast_parser import parse_source
from deep_reviewer.services.analysis.linter import LinterRunner
from deep_reviewer.services.analysis.schemas import AstSummary, FunctionInfo
from deep_reviewer.services.repository.inspector import RepositoryInspector, resolve_repo_path

logger = get_logger("analysis.adapters")

MAX_FINDINGS_PER_SEVERITY = 10
SEVERITY_ICONS = {"error": "❌", "warning": "⚠️", "info": "ℹ️"}


def complexity_assessment(complexity: int) -> str:
    if complexity <= 5:
        return "✅ Low complexity - Easy to understand and maintain"
    if complexity <= 10:
        return "⚠️ Moderate complexity - Consider refactoring if it grows"
    if complexity <= 20:
        return "❌ High complexity - Should be refactored"
    return "🔴 Very high complexity - Refactoring required"


def format_ast_summary(summary: AstSummary) -> str:
    metrics = summary.metrics
    lines = [
        f"## AST Analysis: {summary.path}\n",
        "### Metrics",
        f"- Lines of code: {metrics.lines_of_code}",
        f"- Complexity: {metrics.complexity}",
        f"- Maintainability: {metrics.maintainability_index}",
        f"- Functions: {metrics.function_count}",
        f"- Classes: {metrics.class_count}",
        f"- Comment ratio: {metrics.comment_ratio * 100:.1f}%\n",
    ]

    if summary.functions:
        lines.append(f"### Functions ({len(summary.functions)})")
        for func in summary.functions:
            lines.append(f"- **{func.name}** (line {func.line})")
            lines.append(f"  - Params: {', '.join(func.params) or 'none'}")
            lines.append(f"  - Complexity: {func.complexity}")
            lines.append(f"  - Async: {'yes' if func.is_async else 'no'}")
            lines.append(f"  - Exported: {'yes' if func.is_exported else 'no'}")
            if func.calls:
                lines.append(f"  - Calls: {', '.join(func.calls)}")
        lines.append("")

    if summary.dependencies:
        lines.append(f"### Dependencies ({len(summary.dependencies)})")
        for dep in summary.dependencies:
            kind = "📦 external" if dep.is_external else "📁 local"
            lines.append(f"- {kind}: {dep.source} (line {dep.line})")
            if dep.specifiers:
                lines.append(f"  - Imports: {', '.join(dep.specifiers)}")

    return "\n".join(lines)


def format_lint_findings(path: str, findings: list[Finding]) -> str:
    if not findings:
        return f"✅ No linter issues found in {path}"

    lines = [f"## Linter Results: {path}\n", f"Found {len(findings)} issue(s):\n"]

    grouped: dict[str, list[Finding]] = {}
    for finding in findings:
        grouped.setdefault(finding.severity, []).append(finding)

    for severity in ("error", "warning", "info"):
        items = grouped.get(severity)
        if not items:
            continue
        lines.append(f"### {SEVERITY_ICONS[severity]} {severity.upper()} ({len(items)})\n")
        for item in items[:MAX_FINDINGS_PER_SEVERITY]:
            lines.append(f"- Line {item.line}:{item.column} - {item.message} (`{item.rule_id}`)")
        if len(items) > MAX_FINDINGS_PER_SEVERITY:
            lines.append(f"\n... and {len(items) - MAX_FINDINGS_PER_SEVERITY} more {severity} issues")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_function_complexity(func: FunctionInfo, path: str) -> str:
    lines = [
        f"## Complexity Analysis: {func.name}\n",
        f"File: {path}",
        f"Line: {func.line}\n",
        "### Metrics",
        f"- Cyclomatic Complexity: {func.complexity}",
        f"- Parameters: {len(func.params)}",
        f"- Async: {'Yes' if func.is_async else 'No'}",
        f"- Exported: {'Yes' if func.is_exported else 'No'}",
        f"- Function calls: {len(func.calls)}",
        "\n### Assessment",
        complexity_assessment(func.complexity),
    ]
    return "\n".join(lines)


class AnalysisAdapters:
    """Bridges tool calls to the AST parser, the linter and call-site search."""

    def __init__(
        self,
        linter: LinterRunner,
        parser: Callable[[str, str], AstSummary] = parse_source,
    ) -> None:
        self.linter = linter
        self.parser = parser

    def read_source(self, context: ReviewContext, path: str, field: str = "path") -> str:
        full_path = resolve_repo_path(context.working_directory, path, field)
        if not full_path.is_file():
            raise ToolNotFoundError(f"File not found: {path}")
        return full_path.read_text(encoding="utf-8", errors="replace")

    def summarize(self, context: ReviewContext, path: str, field: str = "path") -> AstSummary:
        return self.parser(self.read_source(context, path, field), path)

    def _find_function(self, context: ReviewContext, name: str, path: str) -> FunctionInfo:
        summary = self.summarize(context, path, field="file_path")
        func = summary.find_function(name)
        if func is None:
            raise ToolNotFoundError(f"Function {name} not found in {path}")
        return func

    async def ast_summary(self, context: ReviewContext, path: str) -> str:
        return format_ast_summary(self.summarize(context, path))

    async def lint_findings(self, context: ReviewContext, path: str) -> str:
        resolve_repo_path(context.working_directory, path)
        findings = await self.linter.lint(path, context.working_directory)
        logger.debug(f"Linter returned {len(findings)} findings for {path}")
        return format_lint_findings(path, findings)

    async def function_complexity(self, context: ReviewContext, name: str, path: str) -> str:
        return format_function_complexity(self._find_function(context, name, path), path)

    async def function_dependencies(self, context: ReviewContext, name: str, path: str) -> str:
        func = self._find_function(context, name, path)
        lines = [f"## Dependencies of {func.name}\n"]
        if func.calls:
            lines.append(f"Directly calls {len(func.calls)} function(s):\n")
            lines.extend(f"- {call}" for call in func.calls)
        else:
            lines.append("This function does not call any other functions.")
        return "\n".join(lines)

    async def function_callers(self, inspector: RepositoryInspector, name: str, path: str) -> str:
        result = await inspector.find_callers(name)
        if not result.matches:
            return f"No callers found for {name}"

        lines = [
            f"## Callers of {name}\n",
            f"Defined in: {path}",
            f"Found {result.total} potential call sites:\n",
        ]
        lines.extend(f"- {match}" for match in result.matches)
        if result.remaining:
            lines.append(f"\n... and {result.remaining} more")
        return "\n".join(lines)
