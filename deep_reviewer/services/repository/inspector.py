"""Repository inspector - git-shaped questions about the reviewed range.

Every operation maps to one read-only git invocation through the process
runner. Nothing here moves HEAD, writes refs or touches the index.
"""

import re
from pathlib import Path

from deep_reviewer.core.exceptions import (
    InvalidArgumentsError,
    ProcessError,
    ToolExecutionError,
    ToolNotFoundError,
)
from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.process import ProcessRunner
from deep_reviewer.schemas.review import FileChange, FileStatus, ReviewContext, detect_language
from deep_reviewer.services.repository.schemas import CommitInfo, FileHistoryEntry, SearchResult

logger = get_logger("repository.inspector")

SEARCH_DISPLAY_LIMIT = 30
CALLER_DISPLAY_LIMIT = 20
MAX_COMMIT_DIFF_LINES = 10_000

_FIELD_SEP = "\x1f"
_REVISION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_./~^@{}-]*$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$.]*$")
_STATUS_CODES = {
    "A": FileStatus.ADDED,
    "C": FileStatus.ADDED,
    "M": FileStatus.MODIFIED,
    "T": FileStatus.MODIFIED,
    "D": FileStatus.REMOVED,
    "R": FileStatus.RENAMED,
}


def validate_revision(revision: str, field: str = "sha") -> str:
    """Reject anything that is not plainly a revision (e.g. option injection)."""
    revision = (revision or "").strip()
    if not revision or not _REVISION_RE.match(revision) or ".." in revision:
        raise InvalidArgumentsError(f"'{field}' is not a valid git revision: {revision!r}", field)
    return revision


def resolve_repo_path(working_directory: str | Path, path: str, field: str = "path") -> Path:
    """Resolve ``path`` inside the working directory."""
    if not path or not str(path).strip():
        raise InvalidArgumentsError(f"'{field}' must not be empty", field)
    root = Path(working_directory).resolve()
    candidate = (root / str(path).strip()).resolve()
    if candidate != root and root not in candidate.parents:
        raise InvalidArgumentsError(f"'{field}' points outside the repository: {path}", field)
    return candidate


def _count_patch_lines(patch: str) -> tuple[int, int]:
    additions = deletions = 0
    in_hunk = False
    for line in patch.split("\n"):
        if line.startswith("@@"):
            in_hunk = True
            continue
        if not in_hunk:
            continue
        if line.startswith("+"):
            additions += 1
        elif line.startswith("-"):
            deletions += 1
    return additions, deletions


def _split_patch_sections(diff: str) -> list[str]:
    sections = re.split(r"^(?=diff --git )", diff, flags=re.MULTILINE)
    return [s for s in sections if s.startswith("diff --git ")]


class RepositoryInspector:
    """Read-only git queries scoped to one base..head range."""

    def __init__(
        self,
        runner: ProcessRunner,
        working_directory: str | Path,
        base_revision: str,
        head_revision: str,
        timeout: float | None = None,
    ) -> None:
        self.runner = runner
        self.working_directory = str(working_directory)
        self.base_revision = base_revision
        self.head_revision = head_revision
        self.timeout = timeout

    @classmethod
    def for_context(
        cls,
        context: ReviewContext,
        runner: ProcessRunner,
        timeout: float | None = None,
    ) -> "RepositoryInspector":
        return cls(
            runner,
            context.working_directory,
            context.base_revision,
            context.head_revision,
            timeout=timeout,
        )

    async def _git(self, *args: str, ignore_exit_code: bool = False):
        return await self.runner.run(
            "git",
            list(args),
            cwd=self.working_directory,
            timeout=self.timeout,
            ignore_exit_code=ignore_exit_code,
        )

    async def _git_stdout(self, *args: str) -> str:
        result = await self._git(*args)
        return result.stdout

    # Diffs

    async def diff_for_file(self, path: str, context_lines: int = 3) -> str:
        """Unified diff of ``path`` over the range, or a no-changes sentinel."""
        output = await self._git_stdout(
            "diff",
            f"-U{max(int(context_lines), 0)}",
            self.base_revision,
            self.head_revision,
            "--",
            path,
        )
        if not output.strip():
            return f"No changes in {path}"
        return output

    async def full_diff(self, path: str) -> str:
        """Raw diff of ``path`` over the range ("" when unchanged)."""
        return await self._git_stdout("diff", self.base_revision, self.head_revision, "--", path)

    async def range_diff(self) -> str:
        return await self._git_stdout("diff", "-M", self.base_revision, self.head_revision)

    # Commits

    async def commits_in_range(self, limit: int = 50) -> list[CommitInfo]:
        """Commits in base..head, newest first, at most ``limit``."""
        output = await self._git_stdout(
            "log",
            f"--max-count={max(int(limit), 1)}",
            "--pretty=format:%H%x1f%an%x1f%ae%x1f%at%x1f%s",
            f"{self.base_revision}..{self.head_revision}",
        )
        commits = []
        for line in output.splitlines():
            parts = line.split(_FIELD_SEP)
            if len(parts) < 5:
                continue
            commit_hash, author, email, timestamp = parts[:4]
            commits.append(
                CommitInfo(
                    hash=commit_hash,
                    author=author,
                    email=email,
                    timestamp=int(timestamp) if timestamp.isdigit() else 0,
                    subject=_FIELD_SEP.join(parts[4:]),
                )
            )
        return commits

    async def _show(self, *args: str, sha: str) -> str:
        try:
            return await self._git_stdout("show", *args)
        except ProcessError as e:
            if any(marker in e.stderr for marker in ("unknown revision", "bad object", "bad revision")):
                raise ToolNotFoundError(f"Commit {sha} not found") from e
            raise

    async def commit_info(self, sha: str) -> str:
        """Message, author and file stats for one commit."""
        sha = validate_revision(sha)
        return await self._show("--stat", "--pretty=format:%H%n%an <%ae>%n%at%n%s%n%b", sha, sha=sha)

    async def diff_for_commit(self, sha: str, path: str | None = None) -> str:
        """Full diff of one commit, truncated to MAX_COMMIT_DIFF_LINES lines."""
        sha = validate_revision(sha)
        args = ["--format=%H%n%an <%ae>%n%at%n%s%n%b", sha]
        if path:
            args += ["--", path]
        output = await self._show(*args, sha=sha)

        if not output.strip():
            if path:
                return f"No changes found in commit {sha} for file {path}"
            return f"Commit {sha} not found"

        lines = output.split("\n")
        if len(lines) > MAX_COMMIT_DIFF_LINES:
            logger.info(f"Truncating diff of {sha}: {len(lines)} lines")
            truncated = "\n".join(lines[:MAX_COMMIT_DIFF_LINES])
            return (
                f"{truncated}\n\n"
                f"... (truncated: commit diff was {len(lines)} lines, "
                f"showing first {MAX_COMMIT_DIFF_LINES})\n"
                "Use read_large_diff_chunk to read specific files in chunks if needed."
            )
        return output

    # History and search

    async def history_for_file(self, path: str, limit: int = 10) -> list[FileHistoryEntry]:
        output = await self._git_stdout(
            "log",
            f"--max-count={max(int(limit), 1)}",
            "--pretty=format:%h%x1f%an%x1f%ar%x1f%s",
            "--",
            path,
        )
        entries = []
        for line in output.splitlines():
            parts = line.split(_FIELD_SEP)
            if len(parts) < 4:
                continue
            entries.append(
                FileHistoryEntry(
                    short_hash=parts[0],
                    author=parts[1],
                    relative_date=parts[2],
                    subject=_FIELD_SEP.join(parts[3:]),
                )
            )
        return entries

    async def _grep(self, pattern: str, args: list[str], limit: int) -> SearchResult:
        result = await self._git("grep", *args, ignore_exit_code=True)
        # git grep: 0 = matches, 1 = no matches, anything else = failure
        if result.exit_code not in (0, 1):
            raise ToolExecutionError(
                f"search failed for {pattern!r}: {result.stderr.strip() or f'exit {result.exit_code}'}"
            )
        lines = [line for line in result.stdout.splitlines() if line.strip()]
        return SearchResult(pattern=pattern, matches=lines[:limit], total=len(lines))

    async def search_pattern(self, pattern: str, file_glob: str | None = None) -> SearchResult:
        """Regex search over the checkout, capped at SEARCH_DISPLAY_LIMIT lines."""
        if not pattern:
            raise InvalidArgumentsError("'pattern' must not be empty", "pattern")
        args = ["-n", "-I", "-E", "-e", pattern]
        if file_glob:
            args += ["--", file_glob]
        return await self._grep(pattern, args, SEARCH_DISPLAY_LIMIT)

    async def find_callers(self, function_name: str) -> SearchResult:
        """Call sites of ``function_name`` at the head revision."""
        if not function_name or not _IDENTIFIER_RE.match(function_name):
            raise InvalidArgumentsError(
                f"'function_name' is not an identifier: {function_name!r}", "function_name"
            )
        escaped = function_name.replace(".", r"\.").replace("$", r"\$")
        pattern = rf"(^|[^A-Za-z0-9_$]){escaped}[[:space:]]*\("
        result = await self._grep(
            function_name,
            ["-n", "-I", "-E", "-e", pattern, self.head_revision],
            CALLER_DISPLAY_LIMIT,
        )
        prefix = f"{self.head_revision}:"
        result.matches = [m[len(prefix):] if m.startswith(prefix) else m for m in result.matches]
        return result

    # Range overview

    async def changed_files(self) -> list[FileChange]:
        """Files changed between base and head, in git's order."""
        name_status = await self._git_stdout(
            "diff", "--name-status", "-M", self.base_revision, self.head_revision
        )
        sections = _split_patch_sections(await self.range_diff())

        files = []
        for line in name_status.splitlines():
            parts = line.split("\t")
            if len(parts) < 2:
                continue
            status = _STATUS_CODES.get(parts[0][:1], FileStatus.MODIFIED)
            previous_path = None
            if status == FileStatus.RENAMED and len(parts) >= 3:
                previous_path, path = parts[1], parts[2]
            else:
                path = parts[-1]

            patch = next(
                (s for s in sections if s.split("\n", 1)[0].endswith(f" b/{path}")),
                "",
            )
            additions, deletions = _count_patch_lines(patch)
            files.append(
                FileChange(
                    path=path,
                    status=status,
                    additions=additions,
                    deletions=deletions,
                    language=detect_language(path),
                    previous_path=previous_path,
                    patch=patch or None,
                )
            )
        logger.info(f"Found {len(files)} changed files in {self.base_revision}..{self.head_revision}")
        return files

    async def branch_info(self) -> str:
        try:
            result = await self._git("branch", "-vv", ignore_exit_code=True)
        except ProcessError as e:
            logger.debug(f"Branch info unavailable: {e}")
            return ""
        return result.stdout.strip() if result.ok else ""

    async def subject_of(self, revision: str) -> str:
        output = await self._git_stdout("log", "-1", "--pretty=format:%s", revision)
        return output.strip()

    async def author_of(self, revision: str) -> str:
        output = await self._git_stdout("log", "-1", "--pretty=format:%an", revision)
        return output.strip()
