"""Tool dispatcher - turns model tool calls into results.

``execute`` never raises: every failure becomes a ``ToolInvocationResult``
carrying an ``ErrorKind`` so the model can read it and adjust.
"""

import asyncio
import json
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

from deep_reviewer.core.exceptions import (
    ErrorKind,
    InvalidArgumentsError,
    ToolError,
    ToolNotFoundError,
)
from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.process import ProcessRunner
from deep_reviewer.schemas.review import (
    FileStatus,
    ReviewContext,
    ToolDescriptor,
    ToolInvocationRequest,
    ToolInvocationResult,
)
from deep_reviewer.services.analysis.adapters import AnalysisAdapters, format_lint_findings
from deep_reviewer.services.analysis.linter import normalize_findings
from deep_reviewer.services.repository.inspector import RepositoryInspector, resolve_repo_path
from deep_reviewer.services.repository.schemas import CommitInfo, FileHistoryEntry, SearchResult
from deep_reviewer.services.reviewer.chunking import (
    DEFAULT_LINES_PER_CHUNK,
    chunk_patch_text,
    format_diff_page,
    page_diff,
)
from deep_reviewer.services.reviewer.registry import ToolName, ToolRegistry

logger = get_logger("reviewer.dispatcher")

DEFAULT_TOOL_TIMEOUT = 60.0
DEFAULT_MAX_OUTPUT_CHARS = 40_000

Handler = Callable[[ReviewContext, RepositoryInspector, dict[str, Any]], Awaitable[str]]


def truncate_output(output: str, max_chars: int) -> str:
    """Cut ``output`` to ``max_chars`` and say how much was dropped."""
    if len(output) <= max_chars:
        return output
    return (
        f"{output[:max_chars]}\n\n"
        f"... [output truncated: {len(output)} characters total, showing first {max_chars}. "
        "Use read_large_diff_chunk to read large diffs page by page.]"
    )


def format_commits(commits: list[CommitInfo]) -> str:
    if not commits:
        return "No commits found in this pull request"

    lines = [
        "## Commits in Pull Request\n",
        "| Hash | Author | Email | Date | Message |",
        "|------|--------|-------|------|---------|",
    ]
    for commit in commits:
        date = datetime.fromtimestamp(commit.timestamp, tz=timezone.utc).strftime("%Y-%m-%d")
        lines.append(
            f"| `{commit.short_hash}` | {commit.author} | {commit.email} | {date} | {commit.subject} |"
        )
    lines.append(f"\n**Total commits**: {len(commits)}")
    return "\n".join(lines)


def format_history(path: str, entries: list[FileHistoryEntry]) -> str:
    if not entries:
        return f"No history found for {path}"
    lines = [f"## File History: {path}\n"]
    for entry in entries:
        lines.append(f"- `{entry.short_hash}` - {entry.author}, {entry.relative_date} : {entry.subject}")
    return "\n".join(lines)


def format_search(result: SearchResult) -> str:
    if not result.matches:
        return f"No matches found for pattern: {result.pattern}"
    lines = [f"## Search Results for: {result.pattern}\n", f"Found {result.total} match(es):\n"]
    lines.extend(f"- {match}" for match in result.matches)
    if result.remaining:
        lines.append(f"\n... and {result.remaining} more matches")
    return "\n".join(lines)


def format_pr_context(context: ReviewContext, branch_info: str = "") -> str:
    lines = ["## Pull Request Context\n"]
    pr = context.pull_request
    if pr:
        title = f"#{pr.number} {pr.title}" if pr.number else pr.title
        lines.append(f"**Title**: {title}")
        lines.append(f"**Author**: {pr.author}")
        lines.append(f"**Branches**: {pr.head_branch} -> {pr.base_branch}")
    lines.append(f"**Base Revision**: {context.base_revision[:7]}")
    lines.append(f"**Head Revision**: {context.head_revision[:7]}")
    lines.append(f"**Files Changed**: {len(context.changed_files)}")
    lines.append(f"**Review Chunks**: {len(context.chunks)}")

    counts = {status: 0 for status in FileStatus}
    for f in context.changed_files:
        counts[f.status] += 1
    lines.append("\n**File Changes**:")
    lines.append(f"- ✅ Added: {counts[FileStatus.ADDED]}")
    lines.append(f"- ✏️ Modified: {counts[FileStatus.MODIFIED]}")
    lines.append(f"- ❌ Removed: {counts[FileStatus.REMOVED]}")
    lines.append(f"- ↔️ Renamed: {counts[FileStatus.RENAMED]}")

    if pr and pr.body:
        lines.append("\n**Description**:")
        lines.append(pr.body.strip())

    if branch_info:
        lines.append("\n**Branch Info**:")
        lines.append(f"```\n{branch_info}\n```")
    return "\n".join(lines)


class ToolDispatcher:
    """Executes tool calls against one review context."""

    def __init__(
        self,
        registry: ToolRegistry,
        runner: ProcessRunner,
        adapters: AnalysisAdapters,
        tool_timeout: float = DEFAULT_TOOL_TIMEOUT,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
        lines_per_chunk: int = DEFAULT_LINES_PER_CHUNK,
    ) -> None:
        self.registry = registry
        self.runner = runner
        self.adapters = adapters
        self.tool_timeout = tool_timeout
        self.max_output_chars = max_output_chars
        self.lines_per_chunk = lines_per_chunk

        self._handlers: dict[str, Handler] = {
            ToolName.GET_PR_CONTEXT.value: self._get_pr_context,
            ToolName.GET_COMMITS_LIST.value: self._get_commits_list,
            ToolName.GET_COMMIT_INFO.value: self._get_commit_info,
            ToolName.GET_COMMIT_DIFF.value: self._get_commit_diff,
            ToolName.GET_FILE_DIFF.value: self._get_file_diff,
            ToolName.READ_LARGE_DIFF_CHUNK.value: self._read_large_diff_chunk,
            ToolName.READ_CHUNK_DIFF.value: self._read_chunk_diff,
            ToolName.READ_FILE.value: self._read_file,
            ToolName.ANALYZE_FILE_AST.value: self._analyze_file_ast,
            ToolName.ANALYZE_FUNCTION_COMPLEXITY.value: self._analyze_function_complexity,
            ToolName.FIND_FUNCTION_CALLERS.value: self._find_function_callers,
            ToolName.FIND_FUNCTION_DEPENDENCIES.value: self._find_function_dependencies,
            ToolName.RUN_LINTER.value: self._run_linter,
            ToolName.SEARCH_CODE.value: self._search_code,
            ToolName.GET_FILE_HISTORY.value: self._get_file_history,
        }

    async def execute(self, request: ToolInvocationRequest, context: ReviewContext) -> ToolInvocationResult:
        name = request.name
        try:
            descriptor = self.registry.describe(name)
            arguments = self.registry.validate_arguments(descriptor, request.arguments)
        except ToolError as e:
            logger.info(f"Rejected tool call {name}: {e}")
            return ToolInvocationResult.failure(name, e.kind, str(e))

        logger.debug(f"Executing {name} with {arguments}")
        try:
            output = await asyncio.wait_for(
                self._invoke(descriptor, arguments, context),
                timeout=self.tool_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Tool {name} timed out after {self.tool_timeout}s")
            return ToolInvocationResult.failure(
                name, ErrorKind.TIMEOUT, f"{name} timed out after {self.tool_timeout:g}s"
            )
        except ToolError as e:
            logger.info(f"Tool {name} failed ({e.kind.value}): {e}")
            return ToolInvocationResult.failure(name, e.kind, str(e))
        except Exception as e:
            logger.opt(exception=e).warning(f"Tool {name} raised {type(e).__name__}")
            return ToolInvocationResult.failure(
                name, ErrorKind.EXECUTION_FAILED, str(e) or type(e).__name__
            )

        if len(output) > self.max_output_chars:
            logger.info(f"Truncating {name} output from {len(output)} chars")
        return ToolInvocationResult.success(name, truncate_output(output, self.max_output_chars))

    async def execute_batch(
        self,
        requests: Sequence[ToolInvocationRequest],
        context: ReviewContext,
        max_parallel: int = 4,
    ) -> list[ToolInvocationResult]:
        """Run a batch with bounded concurrency; results keep request order."""
        semaphore = asyncio.Semaphore(max(max_parallel, 1))

        async def bounded(request: ToolInvocationRequest) -> ToolInvocationResult:
            async with semaphore:
                return await self.execute(request, context)

        return list(await asyncio.gather(*(bounded(r) for r in requests)))

    async def _invoke(self, descriptor: ToolDescriptor, arguments: dict[str, Any], context: ReviewContext) -> str:
        if descriptor.is_custom:
            return await self._run_custom(descriptor, arguments, context)

        handler = self._handlers.get(descriptor.name)
        if handler is None:
            raise ToolNotFoundError(f"No handler for tool: {descriptor.name}")
        inspector = RepositoryInspector.for_context(context, self.runner, timeout=self.tool_timeout)
        return await handler(context, inspector, arguments)

    async def _run_custom(self, descriptor: ToolDescriptor, arguments: dict[str, Any], context: ReviewContext) -> str:
        spec = descriptor.command
        target = str(arguments.get("file", ""))
        if target:
            resolve_repo_path(context.working_directory, target, "file")
        if spec.file_pattern and target and not re.search(spec.file_pattern, target):
            return f"Skipped {descriptor.name}: {target} does not match {spec.file_pattern}"

        args = []
        for arg in spec.args:
            for key, value in arguments.items():
                arg = arg.replace(f"{{{key}}}", str(value))
            args.append(arg)

        result = await self.runner.run(
            spec.command,
            args,
            cwd=context.working_directory,
            timeout=self.tool_timeout,
            ignore_exit_code=True,
        )
        output = result.stdout
        if not output.strip():
            return f"No output from {descriptor.name}"

        if spec.parser is not None:
            return format_lint_findings(target or descriptor.name, spec.parser(output))

        if spec.output_format == "json":
            try:
                data = json.loads(output)
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse JSON output from custom tool: {descriptor.name}")
                data = []
            return format_lint_findings(target or descriptor.name, normalize_findings(data, target))

        return output

    # Built-in handlers

    async def _get_pr_context(self, context, inspector, args) -> str:
        return format_pr_context(context, await inspector.branch_info())

    async def _get_commits_list(self, context, inspector, args) -> str:
        return format_commits(await inspector.commits_in_range(args.get("limit", 50)))

    async def _get_commit_info(self, context, inspector, args) -> str:
        return f"```\n{await inspector.commit_info(args['sha'])}\n```"

    async def _get_commit_diff(self, context, inspector, args) -> str:
        path = args.get("file_path")
        if path:
            resolve_repo_path(context.working_directory, path, "file_path")
        return await inspector.diff_for_commit(args["sha"], path)

    async def _get_file_diff(self, context, inspector, args) -> str:
        resolve_repo_path(context.working_directory, args["path"])
        context_lines = args.get("context_lines", 3)
        if context_lines < 0:
            raise InvalidArgumentsError("'context_lines' must not be negative", "context_lines")
        return await inspector.diff_for_file(args["path"], context_lines)

    async def _read_large_diff_chunk(self, context, inspector, args) -> str:
        path = args["path"]
        resolve_repo_path(context.working_directory, path)
        diff = await inspector.full_diff(path)
        if not diff.strip():
            return f"No changes found for {path}"
        page = page_diff(diff, args["chunk_index"], args.get("lines_per_chunk", self.lines_per_chunk))
        return format_diff_page(path, page)

    async def _read_chunk_diff(self, context, inspector, args) -> str:
        index = args["chunk_index"]
        if not 0 <= index < len(context.chunks):
            raise InvalidArgumentsError(
                f"Invalid chunk index {index}. Review has {len(context.chunks)} chunks",
                "chunk_index",
            )
        return chunk_patch_text(context.chunks[index])

    async def _read_file(self, context, inspector, args) -> str:
        path = args["path"]
        content = self.adapters.read_source(context, path)
        return f"```\nFile: {path}\nLines: {len(content.splitlines())}\n\n{content}\n```"

    async def _analyze_file_ast(self, context, inspector, args) -> str:
        return await self.adapters.ast_summary(context, args["path"])

    async def _analyze_function_complexity(self, context, inspector, args) -> str:
        return await self.adapters.function_complexity(context, args["function_name"], args["file_path"])

    async def _find_function_callers(self, context, inspector, args) -> str:
        return await self.adapters.function_callers(inspector, args["function_name"], args["file_path"])

    async def _find_function_dependencies(self, context, inspector, args) -> str:
        return await self.adapters.function_dependencies(context, args["function_name"], args["file_path"])

    async def _run_linter(self, context, inspector, args) -> str:
        return await self.adapters.lint_findings(context, args["path"])

    async def _search_code(self, context, inspector, args) -> str:
        return format_search(await inspector.search_pattern(args["pattern"], args.get("file_pattern")))

    async def _get_file_history(self, context, inspector, args) -> str:
        path = args["path"]
        resolve_repo_path(context.working_directory, path)
        return format_history(path, await inspector.history_for_file(path, args.get("limit", 10)))
