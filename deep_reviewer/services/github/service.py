"""GitHub service - business logic layer."""

from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.pr_parser import PRReference
from deep_reviewer.schemas.review import FileChange, PullRequestInfo, ReviewIssue
from deep_reviewer.services.github.client import (
    create_issue_comment,
    create_review,
    fetch_pull_request,
)
from deep_reviewer.services.reviewer.patch_parser import filter_comments_by_valid_lines

logger = get_logger("github.service")


def get_pull_request_info(ref: PRReference) -> PullRequestInfo:
    """Fetch PR metadata for the review prompt."""
    logger.info(f"Fetching PR: {ref}")
    pr = fetch_pull_request(ref.owner, ref.repo, ref.pr_number)
    return PullRequestInfo(
        number=pr.number,
        title=pr.title,
        body=pr.body,
        author=pr.user.login if pr.user else "unknown",
        base_branch=pr.base.ref,
        head_branch=pr.head.ref,
        url=pr.html_url,
    )


def issues_to_comments(issues: list[ReviewIssue]) -> list[dict]:
    """Inline comment candidates for issues that name a file and line."""
    comments = []
    for issue in issues:
        if issue.category == "strength" or not issue.file or not issue.line:
            continue
        message = f"**{issue.category.title()}**: {issue.title}"
        if issue.description and issue.description != issue.title:
            message += f"\n\n{issue.description}"
        comments.append({"path": issue.file, "line": issue.line, "message": message})
    return comments


def post_review(
    ref: PRReference,
    report: str,
    issues: list[ReviewIssue],
    files: list[FileChange] | tuple[FileChange, ...],
) -> int:
    """Post the report as a comment, plus inline comments on diff lines.

    Returns the number of inline comments posted.
    """
    pr = fetch_pull_request(ref.owner, ref.repo, ref.pr_number)
    create_issue_comment(pr, report)

    patches = {f.path: f.patch for f in files if f.patch}
    valid, invalid = filter_comments_by_valid_lines(issues_to_comments(issues), patches)
    if invalid:
        logger.warning(f"Filtered {len(invalid)} comments with invalid line numbers")
    if not valid:
        return 0

    create_review(pr, "Inline findings from the automated review.", valid, event="COMMENT")
    logger.info(f"Submitted review with {len(valid)} inline comments")
    return len(valid)
