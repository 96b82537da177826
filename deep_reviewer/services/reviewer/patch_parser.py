"""Line-number bookkeeping for inline review comments.

GitHub only accepts inline comments on lines that appear in the PR diff, so
issues pointing anywhere else are kept out of the inline review and stay in
the report body.
"""

import re

_HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")


def parse_patch_line_numbers(patch: str) -> set[int]:
    """New-file line numbers touched by a unified diff.

    Added lines count at their own position. A removed line counts at the
    position of the next new-file line, which is where GitHub anchors it.
    """
    valid_lines: set[int] = set()
    if not patch:
        return valid_lines

    current_line = 0
    for line in patch.split("\n"):
        hunk = _HUNK_RE.match(line)
        if hunk:
            current_line = int(hunk.group(1))
            continue
        if current_line == 0 or line.startswith("\\"):
            continue

        if line.startswith("+") and not line.startswith("+++"):
            valid_lines.add(current_line)
            current_line += 1
        elif line.startswith("-") and not line.startswith("---"):
            valid_lines.add(current_line)
        else:
            current_line += 1

    return valid_lines


def filter_comments_by_valid_lines(
    comments: list[dict],
    patches: dict[str, str],
) -> tuple[list[dict], list[dict]]:
    """Split comments into (commentable, not commentable).

    ``comments`` carry ``path``, ``line`` and ``message``; ``patches`` maps a
    path to its unified diff.
    """
    valid_lines = {path: parse_patch_line_numbers(patch) for path, patch in patches.items()}

    valid, invalid = [], []
    for comment in comments:
        line = comment.get("line")
        if isinstance(line, int) and line in valid_lines.get(comment.get("path", ""), set()):
            valid.append(comment)
        else:
            invalid.append(comment)
    return valid, invalid
