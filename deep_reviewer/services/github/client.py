"""GitHub API client - data layer."""

from typing import Optional

from github import Auth, Github, GithubException, GithubIntegration
from github.PullRequest import PullRequest
from loguru import logger

from deep_reviewer.config import settings
from deep_reviewer.core.exceptions import ExternalServiceError, PRNotFoundError

_github_client: Optional[Github] = None


def get_github_client() -> Github:
    """Get an authenticated GitHub client (token first, then App installation)."""
    global _github_client

    if _github_client:
        return _github_client

    if settings.github_token:
        _github_client = Github(auth=Auth.Token(settings.github_token))
        logger.info("GitHub token client initialized")
        return _github_client

    if not all([settings.github_app_id, settings.github_private_key, settings.github_installation_id]):
        raise ExternalServiceError("GitHub", "no GITHUB_TOKEN or GitHub App credentials configured")

    private_key = settings.github_private_key.replace("\\n", "\n")

    integration = GithubIntegration(
        auth=Auth.AppAuth(int(settings.github_app_id), private_key),
    )

    access_token = integration.get_access_token(int(settings.github_installation_id)).token
    _github_client = Github(auth=Auth.Token(access_token))

    logger.info("GitHub App client initialized")
    return _github_client


def fetch_pull_request(owner: str, repo: str, pr_number: int) -> PullRequest:
    """Fetch a pull request from GitHub API."""
    client = get_github_client()
    try:
        repository = client.get_repo(f"{owner}/{repo}")
        return repository.get_pull(pr_number)
    except GithubException as e:
        if e.status == 404:
            raise PRNotFoundError(owner, repo, pr_number) from e
        raise ExternalServiceError("GitHub", str(e)) from e


def create_issue_comment(pr: PullRequest, body: str) -> None:
    """Post the full report as a conversation comment."""
    pr.create_issue_comment(body)
    logger.info(f"Posted review comment on #{pr.number} ({len(body)} chars)")


def create_review(
    pr: PullRequest,
    body: str,
    comments: list[dict],
    event: str = "COMMENT",
) -> None:
    """Create a review on a PR."""
    review_comments = []
    for c in comments:
        if c.get("line") and c.get("path"):
            review_comments.append({
                "path": c["path"],
                "line": c["line"],
                "body": c["message"],
            })

    if review_comments:
        pr.create_review(body=body, event=event, comments=review_comments)
    else:
        pr.create_review(body=body, event=event)
    logger.info(f"Created review with {len(review_comments)} comments")
