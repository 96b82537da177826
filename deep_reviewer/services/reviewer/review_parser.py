"""Extract a StructuredReview from the model's final markdown."""

import re
from typing import Optional, Sequence

from deep_reviewer.core.logging import get_logger
from deep_reviewer.schemas.review import FileNote, ReviewIssue, StructuredReview

logger = get_logger("reviewer.review_parser")

# Heading keyword -> issue category, checked in order
_SECTION_CATEGORIES = [
    ("critical", "critical"),
    ("blocker", "critical"),
    ("warning", "warning"),
    ("suggestion", "suggestion"),
    ("improvement", "suggestion"),
    ("strength", "strength"),
    ("good practice", "strength"),
    ("security", "security"),
    ("performance", "performance"),
    ("architecture", "architecture"),
]
_NONE_RE = re.compile(r"^\s*(none|n/a|no issues)\b", re.IGNORECASE)
_LOCATION_RE = re.compile(r"`([^`\s]+?\.[A-Za-z0-9]+)(?::(\d+))?`")
_FIELD_RE = r"\*\*{name}\*\*:\s*(.+)"
_JSON_BLOCK_RE = re.compile(r"```json.*?```", re.DOTALL | re.IGNORECASE)


def _split_sections(markdown: str, level: str) -> list[tuple[str, str]]:
    """(heading, body) pairs for headings of exactly ``level`` (e.g. "##")."""
    pattern = re.compile(rf"^{level}\s+(.+?)\s*$", re.MULTILINE)
    matches = list(pattern.finditer(markdown))
    sections = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(markdown)
        body = markdown[match.end():end]
        body = re.sub(r"^\s*---\s*$", "", body, flags=re.MULTILINE).strip()
        sections.append((match.group(1).strip(), body))
    return sections


def _field(body: str, name: str) -> Optional[str]:
    match = re.search(_FIELD_RE.format(name=name), body)
    return match.group(1).strip() if match else None


def _location(text: str) -> tuple[Optional[str], Optional[int]]:
    match = _LOCATION_RE.search(text)
    if not match:
        return None, None
    return match.group(1), int(match.group(2)) if match.group(2) else None


def _category_for(heading: str) -> Optional[str]:
    lowered = heading.lower()
    for keyword, category in _SECTION_CATEGORIES:
        if keyword in lowered:
            return category
    return None


def _parse_issues(category: str, body: str) -> list[ReviewIssue]:
    if not body or _NONE_RE.match(body):
        return []

    issues = []
    subsections = _split_sections(body, "###")
    if subsections:
        for heading, text in subsections:
            title = re.sub(r"^(issue|warning|suggestion)\s*\d*\s*:\s*", "", heading, flags=re.IGNORECASE)
            file, line = _location(_field(text, "File") or "")
            issues.append(
                ReviewIssue(
                    category=category,
                    title=title,
                    file=file,
                    line=line,
                    description=_field(text, "Description") or text,
                )
            )
        return issues

    for bullet in re.findall(r"^\s*(?:[-*•]|\d+\.)\s+(.+)$", body, re.MULTILINE):
        text = bullet.strip()
        if not text or _NONE_RE.match(text):
            continue
        file, line = _location(text)
        issues.append(ReviewIssue(category=category, title=text, file=file, line=line))
    return issues


def _parse_file_notes(body: str) -> list[FileNote]:
    notes = []
    for heading, text in _split_sections(body, "###"):
        path = heading.strip().strip("`")
        if path:
            notes.append(FileNote(path=path, notes=text))
    return notes


def _first_paragraph(markdown: str) -> str:
    for block in re.split(r"\n\s*\n", markdown):
        block = block.strip()
        if block and not block.startswith("#") and block != "---":
            return block
    return markdown.strip()


def parse_final_review(markdown: str) -> StructuredReview:
    """Best-effort parse; unknown layouts still yield a summary and the raw text."""
    markdown = (markdown or "").strip()
    summary = None
    assessment = None
    issues: list[ReviewIssue] = []
    file_notes: list[FileNote] = []

    for heading, body in _split_sections(markdown, "##"):
        lowered = heading.lower()
        if "summary" in lowered and summary is None and "statistic" not in lowered:
            summary = body
        elif "assessment" in lowered:
            assessment = _field(body, "Status") or _first_paragraph(body)
        elif "file" in lowered:
            file_notes.extend(_parse_file_notes(body))
        else:
            category = _category_for(heading)
            if category:
                issues.extend(_parse_issues(category, body))

    if not summary:
        summary = _first_paragraph(markdown) if markdown else "No review content was produced."

    logger.debug(f"Parsed final review: {len(issues)} issues, {len(file_notes)} file notes")
    return StructuredReview(
        summary=summary,
        assessment=assessment,
        issues=issues,
        file_notes=file_notes,
        raw_markdown=markdown,
    )


def build_partial_review(model_texts: Sequence[str], reason: str, tool_call_count: int) -> StructuredReview:
    """Synthesize a degraded review from whatever the model wrote before the abort."""
    narrative = ""
    for text in reversed(model_texts):
        stripped = _JSON_BLOCK_RE.sub("", text or "").strip()
        if stripped:
            narrative = stripped
            break

    banner = (
        f"Review aborted ({reason}) after {tool_call_count} tool calls. "
        "The notes below come from an incomplete analysis."
    )
    if not narrative:
        return StructuredReview(summary=banner, raw_markdown="", partial=True)

    parsed = parse_final_review(narrative)
    return parsed.model_copy(update={"summary": f"{banner}\n\n{parsed.summary}", "partial": True})
