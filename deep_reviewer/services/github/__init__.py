"""GitHub service."""

from deep_reviewer.services.github.service import (
    get_pull_request_info,
    issues_to_comments,
    post_review,
)

__all__ = [
    "get_pull_request_info",
    "issues_to_comments",
    "post_review",
]
