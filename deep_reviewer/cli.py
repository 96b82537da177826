"""Command line entry point: review a commit range of a local checkout."""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from deep_reviewer.core.exceptions import ApiException  # noqa: E402
from deep_reviewer.core.logging import get_logger  # noqa: E402
from deep_reviewer.core.pr_parser import parse_pr_reference  # noqa: E402
from deep_reviewer.services.reviewer.service import review_repository  # noqa: E402

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deep-reviewer",
        description="Review a commit range with a tool-calling AI reviewer.",
    )
    parser.add_argument("--repo", default=".", help="Path to the git checkout (default: .)")
    parser.add_argument("--base", required=True, help="Base revision, e.g. origin/main")
    parser.add_argument("--head", default="HEAD", help="Head revision (default: HEAD)")
    parser.add_argument("--pr", help="PR reference: URL, owner/repo#123 or #123")
    parser.add_argument("--post", action="store_true", help="Post the review to the pull request")
    parser.add_argument("--output", help="Write the markdown report to this file instead of stdout")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Exit codes: 0 completed, 1 aborted (partial review), 2 usage or setup error."""
    args = build_parser().parse_args(argv)

    pr_ref = None
    if args.pr:
        pr_ref = parse_pr_reference(args.pr)
        if pr_ref is None:
            print(f"Could not parse PR reference: {args.pr}", file=sys.stderr)
            return 2
    if args.post and pr_ref is None:
        print("--post requires --pr", file=sys.stderr)
        return 2

    try:
        outcome = asyncio.run(
            review_repository(args.repo, args.base, args.head, pr_ref=pr_ref, post=args.post)
        )
    except ApiException as e:
        logger.error(f"Review failed: {e.message}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 2

    if args.output:
        Path(args.output).write_text(outcome.report, encoding="utf-8")
        logger.info(f"Report written to {args.output}")
    else:
        print(outcome.report)

    return 0 if outcome.result.status == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
