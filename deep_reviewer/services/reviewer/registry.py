"""Tool registry - the catalog of operations advertised to the model."""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Iterable, Literal

from deep_reviewer.core.exceptions import InvalidArgumentsError, ToolNotFoundError
from deep_reviewer.core.logging import get_logger
from deep_reviewer.schemas.review import (
    CustomToolCommand,
    Finding,
    ToolDescriptor,
    ToolParameter,
)

logger = get_logger("reviewer.registry")


class ToolName(str, Enum):
    """Closed set of built-in tools."""

    GET_PR_CONTEXT = "get_pr_context"
    GET_COMMITS_LIST = "get_commits_list"
    GET_COMMIT_INFO = "get_commit_info"
    GET_COMMIT_DIFF = "get_commit_diff"
    GET_FILE_DIFF = "get_file_diff"
    READ_LARGE_DIFF_CHUNK = "read_large_diff_chunk"
    READ_CHUNK_DIFF = "read_chunk_diff"
    READ_FILE = "read_file"
    ANALYZE_FILE_AST = "analyze_file_ast"
    ANALYZE_FUNCTION_COMPLEXITY = "analyze_function_complexity"
    FIND_FUNCTION_CALLERS = "find_function_callers"
    FIND_FUNCTION_DEPENDENCIES = "find_function_dependencies"
    RUN_LINTER = "run_linter"
    SEARCH_CODE = "search_code"
    GET_FILE_HISTORY = "get_file_history"


def _param(type_: str, description: str, required: bool = False) -> ToolParameter:
    return ToolParameter(type=type_, description=description, required=required)


_PATH = _param("string", "Path to the file relative to repository root", required=True)
_FUNCTION_NAME = _param("string", "Name of the function", required=True)
_FUNCTION_FILE = _param("string", "Path to the file containing the function", required=True)

BUILTIN_TOOLS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name=ToolName.GET_PR_CONTEXT.value,
        description=(
            "Get context about the pull request: branches, revisions, author and a "
            "breakdown of changed files by status."
        ),
    ),
    ToolDescriptor(
        name=ToolName.GET_COMMITS_LIST.value,
        description=(
            "Get the list of commits in the pull request with hash, author, date, and "
            "message. Essential for understanding the evolution of changes."
        ),
        parameters={"limit": _param("integer", "Maximum number of commits to return (default: 50)")},
    ),
    ToolDescriptor(
        name=ToolName.GET_COMMIT_INFO.value,
        description=(
            "Get detailed information about a specific commit, including message, "
            "author, and files changed."
        ),
        parameters={"sha": _param("string", "Commit SHA (can be short or full)", required=True)},
    ),
    ToolDescriptor(
        name=ToolName.GET_COMMIT_DIFF.value,
        description=(
            "Get the full diff for a specific commit by its hash. Very large commits "
            "are truncated to 10000 lines."
        ),
        parameters={
            "sha": _param("string", "Commit SHA (can be short or full)", required=True),
            "file_path": _param("string", "Optional: filter diff to specific file only"),
        },
    ),
    ToolDescriptor(
        name=ToolName.GET_FILE_DIFF.value,
        description="Get the git diff for a specific file. Shows what was changed (additions/deletions).",
        parameters={
            "path": _PATH,
            "context_lines": _param("integer", "Number of context lines around changes (default: 3)"),
        },
    ),
    ToolDescriptor(
        name=ToolName.READ_LARGE_DIFF_CHUNK.value,
        description=(
            "Read a portion of a large diff in pages to avoid token limits. Use this for "
            "oversized files and truncated outputs."
        ),
        parameters={
            "path": _PATH,
            "chunk_index": _param("integer", "Which page to read (0-based index)", required=True),
            "lines_per_chunk": _param("integer", "Number of diff lines per page (default: 100)"),
        },
    ),
    ToolDescriptor(
        name=ToolName.READ_CHUNK_DIFF.value,
        description=(
            "Read the combined diff of one review chunk (a group of related files that "
            "fits the context budget), as listed in the chunk outline."
        ),
        parameters={"chunk_index": _param("integer", "Chunk number from the outline (0-based)", required=True)},
    ),
    ToolDescriptor(
        name=ToolName.READ_FILE.value,
        description=(
            "Read the complete content of a file from the repository. Use this to see "
            "the full context of a file."
        ),
        parameters={"path": _PATH},
    ),
    ToolDescriptor(
        name=ToolName.ANALYZE_FILE_AST.value,
        description=(
            "Perform AST (Abstract Syntax Tree) analysis on a file. Returns functions, "
            "classes, imports, and code metrics."
        ),
        parameters={"path": _PATH},
    ),
    ToolDescriptor(
        name=ToolName.ANALYZE_FUNCTION_COMPLEXITY.value,
        description="Analyze cyclomatic complexity and other metrics for a specific function.",
        parameters={"function_name": _FUNCTION_NAME, "file_path": _FUNCTION_FILE},
    ),
    ToolDescriptor(
        name=ToolName.FIND_FUNCTION_CALLERS.value,
        description=(
            "Find all places where a function is called. Useful for understanding the "
            "impact of signature changes."
        ),
        parameters={"function_name": _FUNCTION_NAME, "file_path": _FUNCTION_FILE},
    ),
    ToolDescriptor(
        name=ToolName.FIND_FUNCTION_DEPENDENCIES.value,
        description="Find all functions that a given function calls directly.",
        parameters={"function_name": _FUNCTION_NAME, "file_path": _FUNCTION_FILE},
    ),
    ToolDescriptor(
        name=ToolName.RUN_LINTER.value,
        description=(
            "Run the project's linter on a file to find potential bugs, style violations, "
            "and code quality problems."
        ),
        parameters={"path": _PATH},
    ),
    ToolDescriptor(
        name=ToolName.SEARCH_CODE.value,
        description=(
            "Search for a pattern in the codebase using git grep. Useful for finding "
            "similar patterns or usages."
        ),
        parameters={
            "pattern": _param("string", "Pattern to search for (extended regex)", required=True),
            "file_pattern": _param("string", 'File pattern to search in (e.g., "*.ts", "src/**/*.js")'),
        },
    ),
    ToolDescriptor(
        name=ToolName.GET_FILE_HISTORY.value,
        description=(
            "Get the recent commit history for a specific file. Useful for understanding "
            "the evolution of a file."
        ),
        parameters={
            "path": _PATH,
            "limit": _param("integer", "Maximum number of commits to return (default: 10)"),
        },
    ),
)

_DEFAULT_CUSTOM_PARAMETERS = {
    "file": _param("string", "Path to the file relative to repository root", required=True),
}


def _coerce(name: str, spec: ToolParameter, value: Any) -> Any:
    if spec.type == "string":
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return str(value)
        raise InvalidArgumentsError(f"'{name}' must be a string", name)

    if spec.type in ("integer", "number"):
        if isinstance(value, bool):
            raise InvalidArgumentsError(f"'{name}' must be a {spec.type}", name)
        if isinstance(value, str):
            try:
                value = float(value.strip())
            except ValueError:
                raise InvalidArgumentsError(f"'{name}' must be a {spec.type}, got {value!r}", name)
        if not isinstance(value, (int, float)):
            raise InvalidArgumentsError(f"'{name}' must be a {spec.type}", name)
        if spec.type == "integer":
            if float(value) != int(value):
                raise InvalidArgumentsError(f"'{name}' must be an integer, got {value!r}", name)
            return int(value)
        return value

    if spec.type == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise InvalidArgumentsError(f"'{name}' must be a boolean", name)

    return value


class ToolRegistry:
    """Per-run catalog of tools.

    Built-ins come from ``BUILTIN_TOOLS``. Custom tools are added through
    ``register_custom``; a custom tool with a built-in's name replaces it in
    this registry only.
    """

    def __init__(self, descriptors: Iterable[ToolDescriptor] = BUILTIN_TOOLS) -> None:
        self._tools: dict[str, ToolDescriptor] = {d.name: d for d in descriptors}

    def list(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def describe(self, name: str) -> ToolDescriptor:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(
                f"Unknown tool: {name}. Available tools: {', '.join(self._tools)}"
            ) from None

    def register_custom(
        self,
        name: str,
        command: str,
        args: Iterable[str],
        output_format: Literal["json", "text"] = "text",
        parser: Callable[[str], list[Finding]] | None = None,
        description: str | None = None,
        parameters: dict[str, ToolParameter] | None = None,
        file_pattern: str | None = None,
    ) -> ToolDescriptor:
        """Register a tool backed by an external command template.

        ``args`` may contain ``{file}`` or any ``{parameter}`` placeholder.
        """
        descriptor = ToolDescriptor(
            name=name,
            description=description or f"Run `{command}` on a file and report its findings.",
            parameters=parameters or _DEFAULT_CUSTOM_PARAMETERS,
            command=CustomToolCommand(
                command=command,
                args=tuple(args),
                output_format=output_format,
                parser=parser,
                file_pattern=file_pattern,
            ),
        )
        if name in self._tools and not self._tools[name].is_custom:
            logger.info(f"Custom tool '{name}' shadows the built-in tool")
        self._tools[name] = descriptor
        return descriptor

    @staticmethod
    def validate_arguments(descriptor: ToolDescriptor, arguments: Any) -> dict[str, Any]:
        """Check ``arguments`` against the descriptor's schema.

        Returns the coerced arguments; unknown keys are dropped.

        Raises:
            InvalidArgumentsError: names the first missing or malformed field.
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArgumentsError(
                f"arguments for '{descriptor.name}' must be an object, got {type(arguments).__name__}"
            )

        validated: dict[str, Any] = {}
        for name, spec in descriptor.parameters.items():
            value = arguments.get(name)
            if value is None or (isinstance(value, str) and not value.strip() and spec.required):
                if spec.required:
                    raise InvalidArgumentsError(
                        f"missing required argument '{name}' for tool '{descriptor.name}'", name
                    )
                continue
            validated[name] = _coerce(name, spec, value)

        unknown = set(arguments) - set(descriptor.parameters)
        if unknown:
            logger.debug(f"Ignoring unknown arguments for {descriptor.name}: {sorted(unknown)}")
        return validated
