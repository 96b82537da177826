"""Text protocol between the model and the tools.

The model asks for tools with fenced ```json blocks holding one
``{"name": ..., "arguments": {...}}`` object or a list of them, and ends the
conversation with a line containing ``FINAL_REVIEW_MARKER`` followed by the
review markdown.
"""

import json
import re
from typing import Sequence

from deep_reviewer.core.logging import get_logger
from deep_reviewer.schemas.review import ToolInvocationRequest, ToolInvocationResult

logger = get_logger("reviewer.tool_calls")

FINAL_REVIEW_MARKER = "[[FINAL_REVIEW]]"

_JSON_BLOCK_RE = re.compile(r"```json[ \t]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)


def has_final_marker(text: str) -> bool:
    return FINAL_REVIEW_MARKER in (text or "")


def _request_from(item) -> ToolInvocationRequest | None:
    if not isinstance(item, dict):
        return None
    name = item.get("name", item.get("tool"))
    if not isinstance(name, str) or not name.strip():
        return None
    arguments = item.get("arguments", item.get("args"))
    return ToolInvocationRequest(name=name.strip(), arguments={} if arguments is None else arguments)


def parse_tool_calls(text: str) -> list[ToolInvocationRequest]:
    """Extract tool calls from a model response, in order of appearance.

    Only text before the final marker is considered, so code samples inside a
    final review are never executed. A malformed block is skipped without
    affecting the others.
    """
    if not text:
        return []
    if has_final_marker(text):
        text = text.split(FINAL_REVIEW_MARKER, 1)[0]

    requests = []
    for block in _JSON_BLOCK_RE.findall(text):
        try:
            data = json.loads(block)
        except json.JSONDecodeError as e:
            logger.debug(f"Skipping malformed tool call block: {e}")
            continue

        items = data if isinstance(data, list) else [data]
        for item in items:
            request = _request_from(item)
            if request is not None:
                requests.append(request)
    return requests


def extract_final_text(text: str) -> str:
    """Review markdown following the final marker."""
    if not has_final_marker(text):
        return text.strip()
    before, after = text.split(FINAL_REVIEW_MARKER, 1)
    return after.strip() or before.strip()


def format_tool_result(index: int, result: ToolInvocationResult) -> str:
    header = f"### Tool {index}: {result.name}"
    if result.ok:
        return f"{header}\n{result.output}"
    return f"{header}\nERROR ({result.error_kind.value}): {result.error_message}"


def format_tool_results(results: Sequence[ToolInvocationResult]) -> str:
    """One consolidated message for a whole batch, in request order."""
    sections = ["## Tool Results"]
    sections.extend(format_tool_result(i, result) for i, result in enumerate(results, start=1))
    sections.append(
        "Continue with more tool calls if you need them, or write the final review "
        f"on a new line starting with {FINAL_REVIEW_MARKER}."
    )
    return "\n\n".join(sections)
