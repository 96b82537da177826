"""Parse PR references from text."""

import re
from dataclasses import dataclass
from typing import Optional

from deep_reviewer.config import settings


@dataclass
class PRReference:
    """Parsed PR reference."""

    owner: str
    repo: str
    pr_number: int

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}#{self.pr_number}"


def _default_repository() -> Optional[tuple[str, str]]:
    if not settings.github_repository or "/" not in settings.github_repository:
        return None
    owner, repo = settings.github_repository.split("/", 1)
    return owner, repo


def parse_pr_reference(text: str) -> Optional[PRReference]:
    """
    Parse PR reference from text.

    Supported formats:
    - #123 or 123 -> uses GITHUB_REPOSITORY ("owner/repo") from settings
    - owner/repo#123 -> specific repo
    - https://github.com/owner/repo/pull/123 -> full URL
    """
    # Pattern 1: Full GitHub URL
    url_pattern = r"https?://github\.com/([^/]+)/([^/]+)/pull/(\d+)"
    match = re.search(url_pattern, text)
    if match:
        return PRReference(
            owner=match.group(1),
            repo=match.group(2),
            pr_number=int(match.group(3)),
        )

    # Pattern 2: owner/repo#123
    full_ref_pattern = r"([a-zA-Z0-9_-]+)/([a-zA-Z0-9_.-]+)#(\d+)"
    match = re.search(full_ref_pattern, text)
    if match:
        return PRReference(
            owner=match.group(1),
            repo=match.group(2),
            pr_number=int(match.group(3)),
        )

    # Pattern 3: #123 or a bare number (use defaults)
    short_pattern = r"^\s*#?(\d+)\s*$|(?:^|\s)#(\d+)(?:\s|$)"
    match = re.search(short_pattern, text)
    if match:
        default = _default_repository()
        if not default:
            return None
        return PRReference(
            owner=default[0],
            repo=default[1],
            pr_number=int(match.group(1) or match.group(2)),
        )

    return None
