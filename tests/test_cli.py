"""Tests for the command line entry point."""

from unittest.mock import AsyncMock, patch

from deep_reviewer.cli import build_parser, main
from deep_reviewer.core.exceptions import ValidationError
from deep_reviewer.schemas.review import ReviewContext, StructuredReview
from deep_reviewer.services.reviewer.schemas import ReviewOutcome, ReviewRunResult
from deep_reviewer.services.reviewer.state import AbortReason


def _outcome(status="completed") -> ReviewOutcome:
    result = ReviewRunResult(
        status=status,
        abort_reason=AbortReason.BUDGET_EXCEEDED if status == "aborted" else None,
        review=StructuredReview(summary="ok"),
    )
    context = ReviewContext(working_directory="/repo", base_revision="a", head_revision="b")
    return ReviewOutcome(result=result, report="# Report", context=context)


class TestParser:
    """Tests for build_parser."""

    def test_defaults(self):
        args = build_parser().parse_args(["--base", "origin/main"])

        assert (args.repo, args.base, args.head, args.pr, args.post) == (".", "origin/main", "HEAD", None, False)


class TestMain:
    """Tests for main exit codes and output."""

    @patch("deep_reviewer.cli.review_repository", new_callable=AsyncMock)
    def test_completed_prints_report(self, mock_review, capsys):
        mock_review.return_value = _outcome()

        assert main(["--base", "main"]) == 0
        assert capsys.readouterr().out.strip() == "# Report"

    @patch("deep_reviewer.cli.review_repository", new_callable=AsyncMock)
    def test_aborted_exit_code(self, mock_review):
        mock_review.return_value = _outcome("aborted")

        assert main(["--base", "main"]) == 1

    @patch("deep_reviewer.cli.review_repository", new_callable=AsyncMock)
    def test_writes_output_file(self, mock_review, tmp_path):
        mock_review.return_value = _outcome()
        target = tmp_path / "review.md"

        assert main(["--base", "main", "--output", str(target)]) == 0
        assert target.read_text() == "# Report"

    @patch("deep_reviewer.cli.review_repository", new_callable=AsyncMock)
    def test_post_requires_pr(self, mock_review, capsys):
        assert main(["--base", "main", "--post"]) == 2
        assert "--post requires --pr" in capsys.readouterr().err
        mock_review.assert_not_called()

    def test_unparseable_pr(self, capsys):
        assert main(["--base", "main", "--pr", "nonsense"]) == 2
        assert "Could not parse PR reference" in capsys.readouterr().err

    @patch("deep_reviewer.cli.review_repository", new_callable=AsyncMock)
    def test_api_errors(self, mock_review, capsys):
        mock_review.side_effect = ValidationError("Unknown base revision: nope")

        assert main(["--base", "nope"]) == 2
        assert "Error: Unknown base revision: nope" in capsys.readouterr().err
