"""Tests for GitHub posting and PR lookup (PyGithub is mocked)."""

from unittest.mock import MagicMock, patch

import pytest
from github import GithubException

from deep_reviewer.core.exceptions import ExternalServiceError, PRNotFoundError
from deep_reviewer.core.pr_parser import PRReference
from deep_reviewer.schemas.review import FileChange, ReviewIssue
from deep_reviewer.services.github import client
from deep_reviewer.services.github.service import (
    get_pull_request_info,
    issues_to_comments,
    post_review,
)

REF = PRReference(owner="acme", repo="api", pr_number=7)
PATCH = "@@ -1,2 +1,3 @@\n def greet(name):\n+    if not name:\n+        return 'hello'\n"


class TestIssuesToComments:
    """Tests for issues_to_comments."""

    def test_only_located_non_strength_issues(self):
        issues = [
            ReviewIssue(category="critical", title="Crash", file="a.py", line=2, description="Explodes on None"),
            ReviewIssue(category="strength", title="Nice", file="a.py", line=2),
            ReviewIssue(category="warning", title="No line", file="a.py"),
            ReviewIssue(category="security", title="Same text", file="b.py", line=9, description="Same text"),
        ]

        comments = issues_to_comments(issues)

        assert comments == [
            {"path": "a.py", "line": 2, "message": "**Critical**: Crash\n\nExplodes on None"},
            {"path": "b.py", "line": 9, "message": "**Security**: Same text"},
        ]


class TestPostReview:
    """Tests for post_review."""

    @patch("deep_reviewer.services.github.service.create_review")
    @patch("deep_reviewer.services.github.service.create_issue_comment")
    @patch("deep_reviewer.services.github.service.fetch_pull_request")
    def test_report_and_inline_comments(self, mock_fetch, mock_comment, mock_review):
        pr = MagicMock()
        mock_fetch.return_value = pr
        issues = [
            ReviewIssue(category="critical", title="Crash", file="src/app.py", line=2),
            ReviewIssue(category="warning", title="Outside diff", file="src/app.py", line=40),
        ]

        posted = post_review(REF, "# Report", issues, [FileChange(path="src/app.py", patch=PATCH)])

        assert posted == 1
        mock_fetch.assert_called_once_with("acme", "api", 7)
        mock_comment.assert_called_once_with(pr, "# Report")
        comments = mock_review.call_args.args[2]
        assert [c["line"] for c in comments] == [2]

    @patch("deep_reviewer.services.github.service.create_review")
    @patch("deep_reviewer.services.github.service.create_issue_comment")
    @patch("deep_reviewer.services.github.service.fetch_pull_request")
    def test_no_inline_review_without_valid_comments(self, mock_fetch, mock_comment, mock_review):
        posted = post_review(REF, "# Report", [], [])

        assert posted == 0
        mock_comment.assert_called_once()
        mock_review.assert_not_called()


class TestPullRequestInfo:
    """Tests for get_pull_request_info."""

    @patch("deep_reviewer.services.github.service.fetch_pull_request")
    def test_maps_fields(self, mock_fetch):
        pr = MagicMock()
        pr.number = 7
        pr.title = "Add punctuation"
        pr.body = "Body"
        pr.user.login = "octocat"
        pr.base.ref = "main"
        pr.head.ref = "feature"
        pr.html_url = "https://github.com/acme/api/pull/7"
        mock_fetch.return_value = pr

        info = get_pull_request_info(REF)

        assert info.number == 7
        assert info.author == "octocat"
        assert (info.base_branch, info.head_branch) == ("main", "feature")


class TestGithubClient:
    """Tests for the PyGithub wrapper."""

    @patch.object(client, "get_github_client")
    def test_missing_pull_request(self, mock_client):
        mock_client.return_value.get_repo.side_effect = GithubException(404, {"message": "Not Found"}, None)

        with pytest.raises(PRNotFoundError) as exc_info:
            client.fetch_pull_request("acme", "api", 7)

        assert exc_info.value.status_code == 404

    @patch.object(client, "get_github_client")
    def test_other_errors_are_external(self, mock_client):
        mock_client.return_value.get_repo.side_effect = GithubException(500, {"message": "boom"}, None)

        with pytest.raises(ExternalServiceError):
            client.fetch_pull_request("acme", "api", 7)

    @patch.object(client, "_github_client", None)
    @patch.object(client, "settings")
    def test_no_credentials(self, mock_settings):
        mock_settings.github_token = None
        mock_settings.github_app_id = None
        mock_settings.github_private_key = None
        mock_settings.github_installation_id = None

        with pytest.raises(ExternalServiceError, match="no GITHUB_TOKEN"):
            client.get_github_client()

    def test_create_review_drops_unlocated_comments(self):
        pr = MagicMock()

        client.create_review(pr, "body", [{"path": "a.py", "line": 3, "message": "m"}, {"path": "a.py", "message": "x"}])

        pr.create_review.assert_called_once_with(
            body="body", event="COMMENT", comments=[{"path": "a.py", "line": 3, "body": "m"}]
        )
