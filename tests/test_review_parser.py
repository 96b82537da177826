"""Tests for final review parsing."""

from deep_reviewer.services.reviewer.review_parser import build_partial_review, parse_final_review

FINAL_REVIEW = """# Code Review

## Executive Summary
Adds punctuation to greet and a small env helper.

---

## Overall Assessment
**Status**: ⚠️ Needs Changes

The change is small but untested.

## Critical Issues

### Issue 1: Empty name returns without punctuation
**File**: `src/app.py:3`
**Description**: The early return skips the punctuation argument.

## Warnings
- `src/util.py:5` reads the environment on every call
- Missing tests for `web/index.js`

## Suggestions
None

## Strengths
- Small, focused diff

## Detailed File Reviews

### `src/app.py`
Behavior change for empty names.

### `src/util.py`
Fine.
"""


class TestParseFinalReview:
    """Tests for parse_final_review."""

    def test_summary_and_assessment(self):
        review = parse_final_review(FINAL_REVIEW)

        assert review.summary == "Adds punctuation to greet and a small env helper."
        assert review.assessment == "⚠️ Needs Changes"
        assert review.raw_markdown == FINAL_REVIEW.strip()
        assert not review.partial

    def test_subsection_issue(self):
        [critical] = parse_final_review(FINAL_REVIEW).issues_in("critical")

        assert critical.title == "Empty name returns without punctuation"
        assert critical.file == "src/app.py"
        assert critical.line == 3
        assert critical.description == "The early return skips the punctuation argument."

    def test_bullet_issues(self):
        warnings = parse_final_review(FINAL_REVIEW).issues_in("warning")

        assert [(w.file, w.line) for w in warnings] == [("src/util.py", 5), ("web/index.js", None)]

    def test_none_section_is_empty(self):
        assert parse_final_review(FINAL_REVIEW).issues_in("suggestion") == []

    def test_strengths(self):
        [strength] = parse_final_review(FINAL_REVIEW).issues_in("strength")

        assert strength.title == "Small, focused diff"

    def test_file_notes(self):
        notes = parse_final_review(FINAL_REVIEW).file_notes

        assert [(n.path, n.notes) for n in notes] == [
            ("src/app.py", "Behavior change for empty names."),
            ("src/util.py", "Fine."),
        ]

    def test_unstructured_text_uses_first_paragraph(self):
        review = parse_final_review("# Review\n\nLooks good overall.\n\nMore words.")

        assert review.summary == "Looks good overall."
        assert review.issues == []

    def test_empty_text(self):
        assert parse_final_review("").summary == "No review content was produced."


class TestBuildPartialReview:
    """Tests for build_partial_review."""

    def test_uses_last_narrative_without_tool_calls(self):
        texts = [
            "First look.",
            'Checking the diff.\n```json\n{"name": "get_file_diff", "arguments": {"path": "a.py"}}\n```',
            '```json\n{"name": "read_file", "arguments": {"path": "a.py"}}\n```',
        ]

        review = build_partial_review(texts, "BudgetExceeded", 12)

        assert review.partial
        assert review.summary.startswith("Review aborted (BudgetExceeded) after 12 tool calls.")
        assert review.summary.endswith("Checking the diff.")

    def test_nothing_written(self):
        review = build_partial_review([], "ModelTimeout", 0)

        assert review.partial
        assert review.summary == (
            "Review aborted (ModelTimeout) after 0 tool calls. "
            "The notes below come from an incomplete analysis."
        )
        assert review.issues == []
