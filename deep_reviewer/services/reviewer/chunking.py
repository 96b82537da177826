"""Token-budgeted chunking of changed files and paging of large diffs."""

import math
from typing import Callable, Sequence

from pydantic import BaseModel

from deep_reviewer.core.exceptions import InvalidArgumentsError
from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.tokens import FILE_HEADER_TOKENS, estimate_line_tokens, estimate_tokens
from deep_reviewer.schemas.review import Chunk, FileChange

logger = get_logger("reviewer.chunking")

DEFAULT_LINES_PER_CHUNK = 100


class DiffPage(BaseModel):
    """One page of a diff. Pure function of (diff, chunk_index, lines_per_chunk)."""

    chunk_index: int
    total_chunks: int
    start_line: int
    end_line: int
    total_lines: int
    text: str


def estimate_file_tokens(file: FileChange) -> int:
    """Conservative token estimate for reviewing one file's diff."""
    if file.patch:
        return estimate_tokens(file.patch) + FILE_HEADER_TOKENS
    return estimate_line_tokens(file.additions + file.deletions) + FILE_HEADER_TOKENS


def _module_key(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


class ChunkingStrategy:
    """Partitions changed files into chunks that fit a token budget.

    Files sharing a directory are kept together when the directory fits the
    budget; larger directories are packed file by file. A single file over
    budget becomes its own chunk flagged ``oversized``, to be read through
    diff paging rather than split.
    """

    def __init__(
        self,
        budget: int,
        estimator: Callable[[FileChange], int] = estimate_file_tokens,
    ) -> None:
        if budget <= 0:
            raise ValueError("chunk budget must be positive")
        self.budget = budget
        self.estimator = estimator

    def partition(self, files: Sequence[FileChange]) -> list[Chunk]:
        sizes = [self.estimator(f) for f in files]

        groups: dict[str, list[int]] = {}
        for i, f in enumerate(files):
            groups.setdefault(_module_key(f.path), []).append(i)

        bins: list[tuple[list[int], int, bool]] = []
        current: list[int] = []
        current_tokens = 0

        def close() -> None:
            nonlocal current, current_tokens
            if current:
                bins.append((current, current_tokens, False))
            current, current_tokens = [], 0

        for members in groups.values():
            group_tokens = sum(sizes[i] for i in members)
            if group_tokens <= self.budget:
                if current_tokens + group_tokens > self.budget:
                    close()
                current.extend(members)
                current_tokens += group_tokens
                continue

            for i in members:
                if sizes[i] > self.budget:
                    close()
                    logger.info(f"{files[i].path} exceeds chunk budget ({sizes[i]} > {self.budget})")
                    bins.append(([i], sizes[i], True))
                    continue
                if current_tokens + sizes[i] > self.budget:
                    close()
                current.append(i)
                current_tokens += sizes[i]
        close()

        bins.sort(key=lambda b: min(b[0]))
        chunks = [
            Chunk(
                index=n,
                files=tuple(files[i] for i in sorted(members)),
                estimated_tokens=tokens,
                oversized=oversized,
            )
            for n, (members, tokens, oversized) in enumerate(bins)
        ]
        logger.info(f"Partitioned {len(files)} files into {len(chunks)} chunks (budget {self.budget})")
        return chunks


def page_diff(diff_text: str, chunk_index: int, lines_per_chunk: int = DEFAULT_LINES_PER_CHUNK) -> DiffPage:
    """Return page ``chunk_index`` of ``diff_text``.

    Raises:
        InvalidArgumentsError: non-positive page size or index out of range.
    """
    if lines_per_chunk < 1:
        raise InvalidArgumentsError("'lines_per_chunk' must be at least 1", "lines_per_chunk")

    lines = diff_text.splitlines()
    total_chunks = math.ceil(len(lines) / lines_per_chunk)
    if chunk_index < 0 or chunk_index >= total_chunks:
        raise InvalidArgumentsError(
            f"Invalid chunk index {chunk_index}. Diff has {total_chunks} chunks "
            f"(0-{max(total_chunks - 1, 0)})",
            "chunk_index",
        )

    start = chunk_index * lines_per_chunk
    end = min(start + lines_per_chunk, len(lines))
    return DiffPage(
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        start_line=start + 1,
        end_line=end,
        total_lines=len(lines),
        text="\n".join(lines[start:end]),
    )


def format_diff_page(path: str, page: DiffPage) -> str:
    result = [
        f"## Diff Chunk for: {path}",
        f"**Chunk**: {page.chunk_index + 1}/{page.total_chunks} (chunk_index={page.chunk_index})",
        f"**Lines**: {page.start_line}-{page.end_line} of {page.total_lines}",
        "",
        "```diff",
        page.text,
        "```",
    ]
    if page.chunk_index < page.total_chunks - 1:
        result.append("")
        result.append(f"💡 **Tip**: Use chunk_index={page.chunk_index + 1} to read the next chunk")
    return "\n".join(result)


def render_chunk_outline(chunks: Sequence[Chunk]) -> str:
    """Chunk listing for the first prompt."""
    if not chunks:
        return "No reviewable changes."

    lines = []
    for chunk in chunks:
        header = f"### Chunk {chunk.index} (~{chunk.estimated_tokens} tokens)"
        if chunk.oversized:
            header += " - OVERSIZED: read with read_large_diff_chunk"
        lines.append(header)
        for f in chunk.files:
            lines.append(f"- `{f.path}` ({f.status.value}): +{f.additions} -{f.deletions}")
        lines.append("")
    return "\n".join(lines).rstrip()


def chunk_patch_text(chunk: Chunk) -> str:
    """Combined patch of a chunk, as served by the read_chunk_diff tool."""
    if chunk.oversized:
        path = chunk.files[0].path
        return (
            f"Chunk {chunk.index} holds a single oversized diff ({path}, "
            f"~{chunk.estimated_tokens} tokens).\n"
            f"Read it in pages with read_large_diff_chunk(path=\"{path}\", chunk_index=0)."
        )

    sections = [f"## Chunk {chunk.index} ({len(chunk.files)} files, ~{chunk.estimated_tokens} tokens)"]
    for f in chunk.files:
        sections.append(f"### {f.path} ({f.status.value}, +{f.additions} -{f.deletions})")
        if f.patch:
            sections.append(f"```diff\n{f.patch.rstrip()}\n```")
        else:
            sections.append("(no textual diff; binary file or removed content - use get_file_diff)")
    return "\n\n".join(sections)
