"""Review-related schemas shared across the review engine."""

from enum import Enum
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from deep_reviewer.core.exceptions import ErrorKind

ParameterType = Literal["string", "number", "integer", "boolean"]
Severity = Literal["error", "warning", "info"]

LANGUAGE_BY_EXTENSION = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "py": "python",
    "rs": "rust",
    "cs": "csharp",
    "go": "go",
    "java": "java",
    "kt": "kotlin",
    "rb": "ruby",
    "php": "php",
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "hpp": "cpp",
    "swift": "swift",
}


def detect_language(path: str) -> Optional[str]:
    """Detect a language tag from the file extension."""
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return None
    return LANGUAGE_BY_EXTENSION.get(name.rsplit(".", 1)[-1].lower())


class FileStatus(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"


class FileChange(BaseModel):
    """One changed file in the reviewed commit range."""

    model_config = ConfigDict(frozen=True)

    path: str
    status: FileStatus = FileStatus.MODIFIED
    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    language: Optional[str] = None
    previous_path: Optional[str] = None
    patch: Optional[str] = None


class Chunk(BaseModel):
    """A budget-bounded group of changed files reviewed together."""

    model_config = ConfigDict(frozen=True)

    index: int
    files: tuple[FileChange, ...]
    estimated_tokens: int = Field(ge=0)
    oversized: bool = False

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]


class PullRequestInfo(BaseModel):
    """Platform metadata about the pull request under review."""

    model_config = ConfigDict(frozen=True)

    number: Optional[int] = None
    title: str
    body: Optional[str] = None
    author: str = "unknown"
    base_branch: str
    head_branch: str
    url: Optional[str] = None


class ReviewContext(BaseModel):
    """Everything a tool may read during one review run. Never mutated."""

    model_config = ConfigDict(frozen=True)

    working_directory: str
    base_revision: str
    head_revision: str
    changed_files: tuple[FileChange, ...] = ()
    chunks: tuple[Chunk, ...] = ()
    pull_request: Optional[PullRequestInfo] = None


# Tools


class ToolParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ParameterType
    description: str
    required: bool = False


class Finding(BaseModel):
    """A normalized linter finding."""

    file: str
    line: int = 0
    column: int = 0
    severity: Severity = "warning"
    message: str
    rule_id: str = "unknown"


class CustomToolCommand(BaseModel):
    """External command template backing a custom tool."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    command: str
    args: tuple[str, ...] = ()
    output_format: Literal["json", "text"] = "text"
    parser: Optional[Callable[[str], list[Finding]]] = None
    file_pattern: Optional[str] = None


class ToolDescriptor(BaseModel):
    """A tool advertised to the model."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, ToolParameter] = Field(default_factory=dict)
    command: Optional[CustomToolCommand] = None

    @property
    def required_parameters(self) -> list[str]:
        return [name for name, p in self.parameters.items() if p.required]

    @property
    def is_custom(self) -> bool:
        return self.command is not None


class ToolInvocationRequest(BaseModel):
    """A tool call extracted from a model response."""

    name: str
    arguments: Any = Field(default_factory=dict)


class ToolInvocationResult(BaseModel):
    """Outcome of one tool call: either output or an error, never both."""

    name: str
    output: str = ""
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "ToolInvocationResult":
        if self.error_kind is None and not self.output:
            raise ValueError("successful tool result must carry output")
        if self.error_kind is not None and self.output:
            raise ValueError("failed tool result must not carry output")
        return self

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, name: str, output: str) -> "ToolInvocationResult":
        return cls(name=name, output=output or "(no output)")

    @classmethod
    def failure(cls, name: str, kind: ErrorKind, message: str) -> "ToolInvocationResult":
        return cls(name=name, error_kind=kind, error_message=message or kind.value)


# Final review


IssueCategory = Literal[
    "critical",
    "warning",
    "suggestion",
    "strength",
    "security",
    "performance",
    "architecture",
]


class ReviewIssue(BaseModel):
    category: IssueCategory
    title: str
    file: Optional[str] = None
    line: Optional[int] = None
    description: str = ""


class FileNote(BaseModel):
    path: str
    notes: str


class StructuredReview(BaseModel):
    """Structured review handed to the renderer and poster."""

    summary: str
    assessment: Optional[str] = None
    issues: list[ReviewIssue] = Field(default_factory=list)
    file_notes: list[FileNote] = Field(default_factory=list)
    raw_markdown: str = ""
    partial: bool = False

    def issues_in(self, category: str) -> list[ReviewIssue]:
        return [i for i in self.issues if i.category == category]
